import json
import unittest

from support import FakeAIClient, scoring_payload

from prepkit.services.answer_scoring import (
    SCORING_FAILED_MESSAGE,
    ScoringError,
    build_prompt,
    score_answer,
    scoring_criteria,
)
from prepkit.services.llm import set_ai_client

QUESTION = {
    "question": "最も難しかった技術課題は？",
    "intent": "問題解決能力を知りたい",
    "answer_points": ["状況", "行動", "結果"],
    "level": "Senior Engineer",
}


class ScoringCriteriaTests(unittest.TestCase):
    def test_weights_add_up_to_100(self):
        self.assertEqual(sum(criterion["weight"] for criterion in scoring_criteria()), 100)

    def test_prompt_lists_points_and_criteria(self):
        prompt = build_prompt(
            question="Q",
            intent="I",
            answer_points=["A", "B"],
            level="Tech Lead",
            user_answer="回答",
        )
        self.assertIn("1. A\n2. B", prompt)
        self.assertIn("内容の正確性（30点）", prompt)
        self.assertIn("【募集職種レベル】\nTech Lead", prompt)


class ScoreAnswerTests(unittest.TestCase):
    def tearDown(self):
        set_ai_client(None)

    def test_blank_answer(self):
        set_ai_client(FakeAIClient(scoring_payload()))
        with self.assertRaises(ScoringError) as ctx:
            score_answer(QUESTION, "  ")
        self.assertEqual(str(ctx.exception), "回答が入力されていません")

    def test_missing_question(self):
        set_ai_client(FakeAIClient(scoring_payload()))
        with self.assertRaises(ScoringError) as ctx:
            score_answer({"intent": "x"}, "回答")
        self.assertEqual(str(ctx.exception), "質問文が指定されていません")

    def test_successful_scoring(self):
        client = FakeAIClient(scoring_payload(score="85点"))
        set_ai_client(client)

        result = score_answer(QUESTION, "障害対応でレイテンシを半減させました")

        self.assertEqual(result["score"], 85)
        self.assertEqual(len(result["good_points"]), 3)
        self.assertEqual(len(result["improvements"]), 2)
        self.assertTrue(result["improvement_example"])
        self.assertEqual(client.calls[0]["temperature"], 0.5)
        self.assertIn("Senior Engineer", client.last_user_prompt)

    def test_non_string_question_is_stringified(self):
        client = FakeAIClient(scoring_payload())
        set_ai_client(client)
        result = score_answer({"question": 404, "intent": "確認"}, "回答")
        self.assertEqual(result["score"], 82)
        self.assertIn("404", client.last_user_prompt)

    def test_explicit_level_wins(self):
        client = FakeAIClient(scoring_payload())
        set_ai_client(client)
        score_answer(QUESTION, "回答", level="Engineering Manager")
        self.assertIn("【募集職種レベル】\nEngineering Manager", client.last_user_prompt)

    def test_default_level(self):
        client = FakeAIClient(scoring_payload())
        set_ai_client(client)
        score_answer({"question": "Q"}, "回答")
        self.assertIn("【募集職種レベル】\nMid-level", client.last_user_prompt)

    def test_empty_lists_are_accepted(self):
        payload = scoring_payload()
        payload["good_points"] = []
        set_ai_client(FakeAIClient(payload))
        self.assertEqual(score_answer(QUESTION, "回答")["good_points"], [])

    def test_missing_score_gives_generic_error(self):
        payload = scoring_payload()
        del payload["score"]
        set_ai_client(FakeAIClient(payload))
        with self.assertRaises(ScoringError) as ctx:
            score_answer(QUESTION, "回答")
        self.assertEqual(str(ctx.exception), SCORING_FAILED_MESSAGE)

    def test_nan_score_gives_generic_error(self):
        set_ai_client(FakeAIClient(scoring_payload(score=float("nan"))))
        with self.assertRaises(ScoringError) as ctx:
            score_answer(QUESTION, "回答")
        self.assertEqual(str(ctx.exception), SCORING_FAILED_MESSAGE)

    def test_overflowing_score_is_clamped(self):
        content = json.dumps(scoring_payload(score=0)).replace('"score": 0', '"score": 1e400')
        set_ai_client(FakeAIClient(content))
        self.assertEqual(score_answer(QUESTION, "回答")["score"], 0)

    def test_invalid_json_gives_generic_error(self):
        set_ai_client(FakeAIClient("oops"))
        with self.assertRaises(ScoringError) as ctx:
            score_answer(QUESTION, "回答")
        self.assertEqual(str(ctx.exception), SCORING_FAILED_MESSAGE)


if __name__ == "__main__":
    unittest.main()
