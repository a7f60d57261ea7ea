from __future__ import annotations

import logging
from typing import Any

from prepkit.core.scoring import get_scoring_value
from prepkit.services.llm import LLMError, as_list, chat_json, coerce_score, truncate
from prepkit.services.resume_text import ExtractionError, extract_text
from prepkit.store import db
from prepkit.store import resumes as resume_store
from prepkit.store.models import RESUME_CATEGORIES, Resume

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = """あなたは転職エージェントとして10年以上の経験を持つ職務経歴書の添削専門家です。
日本の採用市場に精通しており、採用担当者の視点から職務経歴書を評価できます。
建設的かつ具体的なフィードバックを提供してください。
出力は必ずJSON形式で行ってください。"""

OUTPUT_FORMAT = """{
  "summary": "この職務経歴書の概要を2-3文で記述",
  "categories": {
    "structure": {
      "score": 75,
      "good_points": ["良い点1", "良い点2"],
      "issues": ["問題点1", "問題点2"],
      "suggestions": ["具体的な改善提案1", "具体的な改善提案2"],
      "examples": [
        {"before": "改善前の文章（実際の職務経歴書から抜粋）", "after": "改善後の文章（具体的に書き換えた例）"}
      ]
    },
    "content": {"score": 70, "good_points": [], "issues": [], "suggestions": [], "examples": []},
    "expression": {"score": 80, "good_points": [], "issues": [], "suggestions": [], "examples": []},
    "layout": {"score": 65, "good_points": [], "issues": [], "suggestions": [], "examples": []}
  },
  "improved_text": "改善後の職務経歴書の全文（元の形式を維持しつつ改善を適用）"
}"""


class ResumeAnalysisError(RuntimeError):
    pass


def category_definitions() -> dict[str, dict[str, Any]]:
    return get_scoring_value("resume_analysis.categories", {}) or {}


def build_prompt(raw_text: str) -> str:
    definitions = category_definitions()
    category_lines = "\n".join(
        f"{i}. {definitions[key]['name']}（{key}）: {definitions[key]['description']}"
        for i, key in enumerate(RESUME_CATEGORIES, start=1)
    )
    text = truncate(raw_text, int(get_scoring_value("resume_analysis.text_max_chars", 8000)))
    return f"""以下の職務経歴書を分析し、改善点と良い点を指摘してください。

【職務経歴書の内容】
{text}

【評価カテゴリ】
{category_lines}

【出力形式（JSON）】
{OUTPUT_FORMAT}

【注意事項】
- scoreは0-100の整数
- 各カテゴリのgood_points, issues, suggestionsはそれぞれ1-3個
- suggestionsは具体的で実践可能な内容にする
- examplesは各カテゴリで1-2個、実際の職務経歴書から抜粋した文章をbeforeに、改善例をafterに記載
- examplesのbeforeは実際の職務経歴書にある文言を使用し、afterは具体的に改善した例を示す
- improved_textは元の職務経歴書を改善したバージョン全文
- JSONのみ出力（説明文不要）
"""


def validate_result(parsed: dict[str, Any]) -> None:
    if not parsed.get("summary"):
        raise ResumeAnalysisError("概要が含まれていません")
    categories = parsed.get("categories")
    if not isinstance(categories, dict) or not categories:
        raise ResumeAnalysisError("カテゴリ分析が含まれていません")
    definitions = category_definitions()
    for key in RESUME_CATEGORIES:
        if not categories.get(key):
            name = definitions.get(key, {}).get("name", key)
            raise ResumeAnalysisError(f"{name}の分析が含まれていません")


def build_analysis_rows(parsed: dict[str, Any]) -> list[dict[str, Any]]:
    rows = []
    for category, data in parsed["categories"].items():
        if category not in RESUME_CATEGORIES or not isinstance(data, dict):
            continue
        rows.append(
            {
                "category": category,
                "score": coerce_score(data.get("score")),
                "feedback": {
                    "good_points": as_list(data.get("good_points")),
                    "issues": as_list(data.get("issues")),
                    "suggestions": as_list(data.get("suggestions")),
                    "examples": as_list(data.get("examples")),
                },
                "improved_text": parsed.get("improved_text"),
            }
        )
    return rows


def _analyze(resume: Resume) -> Resume:
    try:
        raw_text = extract_text(resume.file_data, resume.content_type) or ""
    except ExtractionError as exc:
        raise ResumeAnalysisError(str(exc)) from exc
    resume_store.set_raw_text(resume.id, raw_text)

    try:
        parsed = chat_json(
            system_prompt=SYSTEM_PROMPT,
            user_prompt=build_prompt(raw_text),
            temperature=0.5,
            task="resume_analysis",
        )
    except LLMError as exc:
        if exc.code == "invalid_json":
            raise ResumeAnalysisError("分析結果の解析に失敗しました") from exc
        raise ResumeAnalysisError(str(exc)) from exc

    validate_result(parsed)
    return resume_store.replace_analyses(
        resume.id,
        build_analysis_rows(parsed),
        summary=parsed["summary"],
        analyzed_at=db.utc_now(),
    )


def analyze_resume(resume: Resume) -> Resume:
    """Extract text, run the category analysis, and store the results.

    The résumé moves to ``analyzing`` while this runs and ends up ``analyzed``
    or, on any failure, ``error`` with a ``ResumeAnalysisError`` raised.
    """
    if not resume.has_file:
        raise ResumeAnalysisError("ファイルがアップロードされていません")

    resume_store.set_status(resume.id, "analyzing")
    try:
        analyzed = _analyze(resume)
    except Exception as exc:
        resume_store.set_status(resume.id, "error")
        logger.warning("resume_analysis_failed resume_id=%s: %s", resume.id, exc)
        if isinstance(exc, ResumeAnalysisError):
            raise
        raise ResumeAnalysisError(str(exc)) from exc

    logger.info("resume_analyzed resume_id=%s overall_score=%s", resume.id, analyzed.overall_score)
    return analyzed
