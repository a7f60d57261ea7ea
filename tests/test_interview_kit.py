import json
import unittest

from support import FakeAIClient, fresh_database, kit_payload

from prepkit.services.interview_kit import (
    InterviewKitError,
    build_prompt,
    generate_interview_kit,
    normalize_kit,
    normalize_question,
    normalize_reverse_questions,
    normalize_tech_checklist,
)
from prepkit.services.llm import set_ai_client
from prepkit.store import histories as history_store
from prepkit.store import users as user_store


class NormalizationTests(unittest.TestCase):
    def test_question_defaults(self):
        self.assertEqual(
            normalize_question({"question": "Q"}),
            {"question": "Q", "intent": "", "answer_points": [], "level": ""},
        )

    def test_plain_string_question(self):
        self.assertEqual(normalize_question("Q")["question"], "Q")

    def test_reverse_questions_from_list(self):
        value = [{"question": "チームの構成は？"}, "評価制度は？"]
        self.assertEqual(normalize_reverse_questions(value), "チームの構成は？\n評価制度は？")
        self.assertEqual(normalize_reverse_questions(None), "")
        self.assertEqual(normalize_reverse_questions(3), "")

    def test_tech_checklist_objects_are_flattened(self):
        self.assertEqual(normalize_tech_checklist([{"item": "A"}, {"item": "B"}]), ["A", "B"])
        self.assertEqual(normalize_tech_checklist(["A"]), ["A"])

    def test_normalize_kit_applies_per_stage(self):
        kit = {
            "stage_1": {
                "questions": [{"question": "Q1"}],
                "reverse_questions": [{"question": "R1"}],
                "tech_checklist": [{"item": "C1"}],
            }
        }
        result = normalize_kit(kit)
        stage = result["stage_1"]
        self.assertEqual(stage["questions"][0]["intent"], "")
        self.assertEqual(stage["reverse_questions"], "R1")
        self.assertEqual(stage["tech_checklist"], ["C1"])


class PromptTests(unittest.TestCase):
    def test_prompt_embeds_job_description_and_format(self):
        prompt = build_prompt("Python エンジニア募集")
        self.assertIn("【求人票】\nPython エンジニア募集", prompt)
        self.assertIn('"stage_3"', prompt)
        self.assertIn("技術質問3個+行動面接質問2個", prompt)


class GenerateInterviewKitTests(unittest.TestCase):
    def setUp(self):
        fresh_database()
        self.user = user_store.create_user(email="kit@example.com", password_hash="x")

    def tearDown(self):
        set_ai_client(None)

    def test_blank_job_description(self):
        set_ai_client(FakeAIClient(kit_payload()))
        with self.assertRaises(InterviewKitError) as ctx:
            generate_interview_kit("   ")
        self.assertEqual(ctx.exception.code, "blank_job_description")

    def test_generates_and_saves_history(self):
        client = FakeAIClient("```json\n" + json.dumps(kit_payload(), ensure_ascii=False) + "\n```")
        set_ai_client(client)

        generated = generate_interview_kit("Python エンジニア募集", company_name="Acme", user=self.user)

        history = generated["history"]
        self.assertEqual(history.user_id, self.user.id)
        self.assertEqual(history.company_name, "Acme")
        self.assertEqual(history.job_description, "Python エンジニア募集")
        self.assertEqual(history.memo, "")
        self.assertTrue(history.content.startswith("```json"))
        self.assertTrue(history.valid_json_content)
        self.assertEqual(len(generated["result"]["stage_1"]["questions"]), 2)
        self.assertEqual(client.calls[0]["temperature"], 0.7)
        self.assertIsNotNone(history_store.get_history(history.id))

    def test_invalid_json_is_not_saved(self):
        set_ai_client(FakeAIClient("これはJSONではありません"))
        with self.assertRaises(InterviewKitError) as ctx:
            generate_interview_kit("Python エンジニア募集", user=self.user)
        self.assertEqual(ctx.exception.code, "invalid_json")
        self.assertEqual(history_store.list_histories(), [])

    def test_llm_failure_keeps_code(self):
        set_ai_client(FakeAIClient(RuntimeError("boom")))
        with self.assertRaises(InterviewKitError) as ctx:
            generate_interview_kit("Python エンジニア募集")
        self.assertEqual(ctx.exception.code, "llm_exception")


if __name__ == "__main__":
    unittest.main()
