import unittest

from support import FakeAIClient, fresh_database, make_docx_bytes, resume_analysis_payload

from prepkit.services.llm import set_ai_client
from prepkit.services.resume_analysis import (
    ResumeAnalysisError,
    analyze_resume,
    build_analysis_rows,
    build_prompt,
    validate_result,
)
from prepkit.services.resume_text import DOCX_CONTENT_TYPE
from prepkit.store import resumes as resume_store
from prepkit.store import users as user_store


class ValidationTests(unittest.TestCase):
    def test_missing_summary(self):
        payload = resume_analysis_payload()
        payload["summary"] = ""
        with self.assertRaises(ResumeAnalysisError) as ctx:
            validate_result(payload)
        self.assertEqual(str(ctx.exception), "概要が含まれていません")

    def test_missing_categories(self):
        payload = resume_analysis_payload()
        payload["categories"] = {}
        with self.assertRaises(ResumeAnalysisError) as ctx:
            validate_result(payload)
        self.assertEqual(str(ctx.exception), "カテゴリ分析が含まれていません")

    def test_missing_single_category_names_it(self):
        payload = resume_analysis_payload()
        del payload["categories"]["layout"]
        with self.assertRaises(ResumeAnalysisError) as ctx:
            validate_result(payload)
        self.assertEqual(str(ctx.exception), "見やすさの分析が含まれていません")

    def test_rows_skip_unknown_categories(self):
        payload = resume_analysis_payload()
        payload["categories"]["bonus"] = {"score": 99}
        rows = build_analysis_rows(payload)
        self.assertEqual([row["category"] for row in rows], ["structure", "content", "expression", "layout"])
        self.assertEqual(rows[0]["feedback"]["examples"][0]["after"], "主導した")

    def test_prompt_lists_categories(self):
        prompt = build_prompt("職務経歴")
        self.assertIn("1. 構成（structure）", prompt)
        self.assertIn("4. 見やすさ（layout）", prompt)


class AnalyzeResumeTests(unittest.TestCase):
    def setUp(self):
        fresh_database()
        self.user = user_store.create_user(email="resume@example.com", password_hash="x")
        self.resume = resume_store.create_resume(
            user_id=self.user.id,
            filename="resume.docx",
            content_type=DOCX_CONTENT_TYPE,
            file_data=make_docx_bytes(paragraphs=("職務経歴書", "バックエンド開発 5年")),
        )

    def tearDown(self):
        set_ai_client(None)

    def test_success(self):
        client = FakeAIClient(resume_analysis_payload())
        set_ai_client(client)

        analyzed = analyze_resume(self.resume)

        self.assertEqual(analyzed.status, "analyzed")
        self.assertIsNotNone(analyzed.analyzed_at)
        self.assertIn("バックエンド開発 5年", analyzed.raw_text)
        self.assertEqual(len(analyzed.analyses), 4)
        # (80 + 70 + 75 + 64) / 4 = 72.25
        self.assertEqual(analyzed.overall_score, 72)
        self.assertEqual(analyzed.analysis_for("layout").grade, "C")
        self.assertTrue(analyzed.improved_text().startswith("■職務要約"))
        self.assertIn("バックエンド開発 5年", client.last_user_prompt)

    def test_reanalysis_replaces_rows(self):
        set_ai_client(FakeAIClient(resume_analysis_payload()))
        analyze_resume(self.resume)
        analyzed = analyze_resume(resume_store.get_resume(self.resume.id))
        self.assertEqual(len(analyzed.analyses), 4)

    def test_llm_failure_marks_error(self):
        set_ai_client(FakeAIClient("not json"))
        with self.assertRaises(ResumeAnalysisError) as ctx:
            analyze_resume(self.resume)
        self.assertEqual(str(ctx.exception), "分析結果の解析に失敗しました")
        self.assertEqual(resume_store.get_resume(self.resume.id).status, "error")

    def test_extraction_failure_marks_error(self):
        broken = resume_store.create_resume(
            user_id=self.user.id,
            filename="broken.docx",
            content_type=DOCX_CONTENT_TYPE,
            file_data=b"not a zip",
        )
        set_ai_client(FakeAIClient(resume_analysis_payload()))
        with self.assertRaises(ResumeAnalysisError):
            analyze_resume(broken)
        self.assertEqual(resume_store.get_resume(broken.id).status, "error")

    def test_missing_category_marks_error(self):
        payload = resume_analysis_payload()
        del payload["categories"]["content"]
        set_ai_client(FakeAIClient(payload))
        with self.assertRaises(ResumeAnalysisError) as ctx:
            analyze_resume(self.resume)
        self.assertEqual(str(ctx.exception), "内容の分析が含まれていません")
        self.assertEqual(resume_store.get_resume(self.resume.id).analyses, [])


if __name__ == "__main__":
    unittest.main()
