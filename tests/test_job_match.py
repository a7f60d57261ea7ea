import json
import unittest

from support import FakeAIClient, fresh_database, kit_payload, match_payload

from prepkit.core.scoring import rank_info
from prepkit.services.job_match import MatchAnalysisError, analyze_match, build_job_info, build_prompt
from prepkit.services.llm import set_ai_client
from prepkit.store import db
from prepkit.store import histories as history_store
from prepkit.store import resumes as resume_store
from prepkit.store import users as user_store


def _single_stage_content(count: int = 5) -> str:
    return json.dumps(
        {"questions": [{"question": f"質問{i}"} for i in range(1, count + 1)]},
        ensure_ascii=False,
    )


class JobMatchTests(unittest.TestCase):
    def setUp(self):
        fresh_database()
        self.user = user_store.create_user(email="match@example.com", password_hash="x")
        self.history = history_store.create_history(
            content=_single_stage_content(),
            user_id=self.user.id,
            job_description="Pythonバックエンドエンジニア募集",
            company_name="Acme",
        )
        resume = resume_store.create_resume(
            user_id=self.user.id,
            filename="resume.pdf",
            content_type="application/pdf",
            file_data=b"%PDF-1.4",
        )
        resume_store.set_raw_text(resume.id, "Python 5年の経験")
        self.resume = resume_store.replace_analyses(
            resume.id,
            [{"category": "structure", "score": 80, "feedback": {}, "improved_text": "改善版"}],
            summary="概要",
            analyzed_at=db.utc_now(),
        )

    def tearDown(self):
        set_ai_client(None)

    def test_job_info_includes_first_three_questions(self):
        info = build_job_info(self.history)
        self.assertIn("Pythonバックエンドエンジニア募集", info)
        self.assertIn("【想定質問】", info)
        self.assertIn("- 質問3", info)
        self.assertNotIn("- 質問4", info)

    def test_job_info_ignores_multi_stage_content(self):
        history = history_store.create_history(
            content=json.dumps(kit_payload(), ensure_ascii=False),
            user_id=self.user.id,
            job_description="求人",
        )
        self.assertEqual(build_job_info(history), "求人")

    def test_job_info_is_truncated(self):
        history = history_store.create_history(content="x", user_id=None, job_description="あ" * 5000)
        info = build_job_info(history)
        self.assertEqual(len(info), 3000)
        self.assertTrue(info.endswith("..."))

    def test_prompt_contains_company_and_resume(self):
        prompt = build_prompt(self.history, self.resume)
        self.assertIn("企業名: Acme", prompt)
        self.assertIn("Python 5年の経験", prompt)
        self.assertIn("【スコアリング基準（厳格に適用）】", prompt)

    def test_requires_analyzed_resume(self):
        draft = resume_store.create_resume(
            user_id=self.user.id, filename="a.pdf", content_type="application/pdf", file_data=b"x"
        )
        with self.assertRaises(MatchAnalysisError) as ctx:
            analyze_match(self.history, draft)
        self.assertEqual(str(ctx.exception), "職務経歴書が分析されていません")

        with self.assertRaises(MatchAnalysisError) as ctx:
            analyze_match(None, self.resume)
        self.assertEqual(str(ctx.exception), "対策ノートが指定されていません")

        with self.assertRaises(MatchAnalysisError) as ctx:
            analyze_match(self.history, None)
        self.assertEqual(str(ctx.exception), "職務経歴書が指定されていません")

    def test_stores_analysis(self):
        set_ai_client(FakeAIClient(match_payload(score="78", rank="B")))

        updated = analyze_match(self.history, self.resume)

        self.assertEqual(updated.match_score, 78)
        self.assertEqual(updated.match_rank, "B")
        self.assertTrue(updated.match_analyzed)
        self.assertEqual(updated.matching_points[0]["requirement"], "Python")
        self.assertEqual(len(updated.interview_tips), 2)
        self.assertEqual(updated.match_analysis["resume_id"], self.resume.id)
        self.assertIn("analyzed_at", updated.match_analysis)
        self.assertEqual(updated.rank_info()["label"], "やや高い")

    def test_invalid_json(self):
        set_ai_client(FakeAIClient("not json"))
        with self.assertRaises(MatchAnalysisError) as ctx:
            analyze_match(self.history, self.resume)
        self.assertEqual(str(ctx.exception), "分析結果の解析に失敗しました")
        self.assertIsNone(history_store.get_history(self.history.id).match_score)

    def test_non_finite_score(self):
        set_ai_client(FakeAIClient(match_payload(score=float("inf"))))
        with self.assertRaises(MatchAnalysisError) as ctx:
            analyze_match(self.history, self.resume)
        self.assertEqual(str(ctx.exception), "分析結果の解析に失敗しました")
        self.assertIsNone(history_store.get_history(self.history.id).match_score)

        content = json.dumps(match_payload(score=0, rank="D")).replace('"match_score": 0', '"match_score": 1e400')
        set_ai_client(FakeAIClient(content))
        self.assertEqual(analyze_match(self.history, self.resume).match_score, 0)

    def test_missing_rank(self):
        payload = match_payload()
        del payload["match_rank"]
        set_ai_client(FakeAIClient(payload))
        with self.assertRaises(MatchAnalysisError) as ctx:
            analyze_match(self.history, self.resume)
        self.assertEqual(str(ctx.exception), "ランクが含まれていません")

    def test_missing_score(self):
        payload = match_payload()
        payload["match_score"] = None
        set_ai_client(FakeAIClient(payload))
        with self.assertRaises(MatchAnalysisError) as ctx:
            analyze_match(self.history, self.resume)
        self.assertEqual(str(ctx.exception), "スコアが含まれていません")


class RankInfoTests(unittest.TestCase):
    def test_known_rank(self):
        info = rank_info("S")
        self.assertEqual(info["rank"], "S")
        self.assertEqual(info["min"], 90)

    def test_unknown_rank_falls_back_to_d(self):
        info = rank_info("Z")
        self.assertEqual(info["rank"], "D")
        self.assertEqual(info["label"], "要改善")


if __name__ == "__main__":
    unittest.main()
