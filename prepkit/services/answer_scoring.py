from __future__ import annotations

import logging
from typing import Any

from prepkit.core.scoring import get_scoring_value
from prepkit.services.llm import LLMError, as_list, chat_json, coerce_score

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = (
    "あなたは面接対策の専門家です。ユーザーの回答を採点し、建設的なフィードバックを提供します。\n"
    "出力は必ずJSON形式で行ってください。"
)

SCORING_FAILED_MESSAGE = "採点に失敗しました。しばらくしてから再度お試しください。"


class ScoringError(ValueError):
    pass


def scoring_criteria() -> list[dict[str, Any]]:
    return list(get_scoring_value("answer_scoring.criteria", []) or [])


def scoring_criteria_text() -> str:
    return "\n".join(
        f"- {criterion['description']}（{criterion['weight']}点）" for criterion in scoring_criteria()
    )


def build_prompt(
    *,
    question: str,
    intent: str,
    answer_points: list[Any],
    level: str,
    user_answer: str,
) -> str:
    points = "\n".join(f"{i}. {point}" for i, point in enumerate(answer_points, start=1))
    return f"""以下の面接質問に対するユーザーの回答を採点してください。

【質問】
{question}

【面接官の意図】
{intent}

【回答のポイント】
{points}

【募集職種レベル】
{level}

【ユーザーの回答】
{user_answer}

【採点基準（合計100点）】
{scoring_criteria_text()}

【出力形式（JSON）】
{{
  "score": 85,
  "good_points": ["良かった点1", "良かった点2", "良かった点3"],
  "improvements": ["改善点1", "改善点2"],
  "improvement_example": "改善例を具体的に1-2文で記述"
}}

※good_pointsは3-4個、improvementsは2-3個
※improvement_exampleは具体的で実践的な内容にする
※JSONのみ出力（説明文不要）
"""


def _validate_result(parsed: dict[str, Any]) -> None:
    if parsed.get("score") is None:
        raise ScoringError("スコアが含まれていません")
    if parsed.get("good_points") is None:
        raise ScoringError("良かった点が含まれていません")
    if parsed.get("improvements") is None:
        raise ScoringError("改善点が含まれていません")


def normalize_result(parsed: dict[str, Any]) -> dict[str, Any]:
    return {
        "score": coerce_score(parsed.get("score")),
        "good_points": as_list(parsed.get("good_points")),
        "improvements": as_list(parsed.get("improvements")),
        "improvement_example": parsed.get("improvement_example") or "",
    }


def score_answer(question_data: dict[str, Any], user_answer: str, level: str | None = None) -> dict[str, Any]:
    """Score a practice answer against the weighted criteria.

    Returns ``{score, good_points, improvements, improvement_example}``. Input
    problems raise ``ScoringError`` with a specific message; anything that goes
    wrong after that is reported with one generic retry message.
    """
    question = str(question_data.get("question") or "").strip()
    if not question:
        raise ScoringError("質問文が指定されていません")
    if not (user_answer or "").strip():
        raise ScoringError("回答が入力されていません")

    resolved_level = (
        level
        or question_data.get("level")
        or get_scoring_value("answer_scoring.default_level", "Mid-level")
    )
    prompt = build_prompt(
        question=question,
        intent=question_data.get("intent") or "",
        answer_points=as_list(question_data.get("answer_points")),
        level=resolved_level,
        user_answer=user_answer,
    )

    try:
        parsed = chat_json(
            system_prompt=SYSTEM_PROMPT,
            user_prompt=prompt,
            temperature=0.5,
            task="answer_scoring",
        )
        _validate_result(parsed)
        return normalize_result(parsed)
    except (LLMError, ScoringError) as exc:
        logger.error("answer_scoring_failed: %s %s", type(exc).__name__, exc)
        raise ScoringError(SCORING_FAILED_MESSAGE) from exc
