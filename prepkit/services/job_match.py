from __future__ import annotations

import json
import logging
from typing import Any

from prepkit.core.scoring import get_scoring_value, rank_info
from prepkit.services.llm import LLMError, as_list, chat_json, coerce_score, truncate
from prepkit.store import db
from prepkit.store import histories as history_store
from prepkit.store.models import History, Resume

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = """あなたは転職エージェントとして10年以上の経験を持つキャリアアドバイザーです。
求職者の職務経歴と求人要件を照合し、マッチ度を分析します。

【重要な評価基準】
1. **業種・職種の一致を最優先で評価してください**
2. 異業種・異職種の場合は、たとえスキルが優れていても大幅に減点してください
3. 例: エンジニア求人に営業職経歴 → 最高でもC判定（60-69点）
4. 例: 営業職求人にエンジニア経歴 → 最高でもC判定（60-69点）
5. 同業種・同職種でも経験年数や具体的なスキルマッチを厳しく評価してください

【評価姿勢】
- 容赦なく正直に、曖昧な表現を避けて評価してください
- 「やや不足」「少し足りない」などの遠回しな表現ではなく、「不足している」「足りない」と明確に伝えてください
- 過度に肯定的な言い回しは避け、改善が必要な点は率直に指摘してください
- ユーザーの成長のために、真実を和らげず直接的で理性的なフィードバックを提供してください

分析は客観的かつ建設的に行い、改善可能なアドバイスを提供してください。
出力は必ずJSON形式で行ってください。"""

OUTPUT_FORMAT = """{
  "match_score": 75,
  "match_rank": "B",
  "matching_points": [
    {"requirement": "求人の要件", "experience": "候補者の該当経験", "strength": "強み/アピールポイント"}
  ],
  "gap_points": [
    {"requirement": "求人の要件", "gap": "不足している点", "suggestion": "補う方法のアドバイス"}
  ],
  "appeal_suggestions": [
    "面接でアピールすべきポイント1",
    "面接でアピールすべきポイント2"
  ],
  "interview_tips": [
    "この求人特有の面接対策アドバイス1",
    "この求人特有の面接対策アドバイス2"
  ],
  "summary": "総合評価を2-3文で"
}"""

SCORING_RULES = """【スコアリング基準（厳格に適用）】
重要: スコアは容赦なく厳格に採点してください。努力や可能性を考慮して甘く採点しないでください。

- 業種・職種が完全に異なる場合: 基本50-60点、最高でも65点まで（C判定またはD判定）
- 業種は同じだが職種が異なる場合: 基本60-70点、最高でも75点まで（B判定またはC判定）
- 業種・職種が同じで経験不足の場合: 基本65-75点（B判定またはC判定）
- 業種・職種が同じで十分な経験がある場合: 80-89点（A判定）
- 業種・職種が同じで経験豊富かつスキル完全一致: 90点以上（S判定）

判定時の注意:
- 「努力している」「ポテンシャルがある」などの理由でスコアを上げないでください
- 現時点での客観的なマッチ度のみを評価してください
- 迷ったら低い方のスコアを選択してください"""


class MatchAnalysisError(ValueError):
    pass


def build_job_info(history: History) -> str:
    """Job description plus the first generated questions, cut to the configured length."""
    info: list[str] = []
    if (history.job_description or "").strip():
        info.append(history.job_description)

    if (history.content or "").strip():
        try:
            parsed = json.loads(history.content)
        except json.JSONDecodeError:
            parsed = None
        if isinstance(parsed, dict) and parsed.get("questions"):
            info.append("【想定質問】")
            count = int(get_scoring_value("job_match.sample_question_count", 3))
            for question in as_list(parsed["questions"])[:count]:
                if isinstance(question, dict) and question.get("question"):
                    info.append(f"- {question['question']}")

    return truncate("\n".join(info), int(get_scoring_value("job_match.job_info_max_chars", 3000)))


def build_prompt(history: History, resume: Resume) -> str:
    resume_info = truncate(resume.raw_text, int(get_scoring_value("job_match.resume_max_chars", 4000)))
    return f"""以下の求人情報と職務経歴書を照合し、マッチ度を分析してください。

【求人情報】
企業名: {history.company_name or ""}
求人内容:
{build_job_info(history)}

【職務経歴書】
{resume_info}

【出力形式（JSON）】
{OUTPUT_FORMAT}

【注意事項】
- match_scoreは0-100の整数（90以上:S, 80-89:A, 70-79:B, 60-69:C, 59以下:D）
- match_rankはS/A/B/C/Dのいずれか
- matching_pointsは2-4個
- gap_pointsは1-3個（ない場合は空配列）
- appeal_suggestionsは2-3個
- interview_tipsは2-3個
- JSONのみ出力（説明文不要）

{SCORING_RULES}
"""


def _validate_inputs(history: History | None, resume: Resume | None) -> None:
    if history is None:
        raise MatchAnalysisError("対策ノートが指定されていません")
    if resume is None:
        raise MatchAnalysisError("職務経歴書が指定されていません")
    if not resume.analyzed:
        raise MatchAnalysisError("職務経歴書が分析されていません")


def analyze_match(history: History | None, resume: Resume | None) -> History:
    """Score how well the résumé fits the history's job posting and store the result."""
    _validate_inputs(history, resume)

    try:
        parsed = chat_json(
            system_prompt=SYSTEM_PROMPT,
            user_prompt=build_prompt(history, resume),
            temperature=0.5,
            task="job_match",
        )
    except LLMError as exc:
        if exc.code == "invalid_json":
            raise MatchAnalysisError("分析結果の解析に失敗しました") from exc
        raise MatchAnalysisError(str(exc)) from exc

    if parsed.get("match_score") is None:
        raise MatchAnalysisError("スコアが含まれていません")
    if not parsed.get("match_rank"):
        raise MatchAnalysisError("ランクが含まれていません")

    score = coerce_score(parsed["match_score"])
    updated = history_store.save_match_analysis(
        history.id,
        match_score=score,
        match_rank=str(parsed["match_rank"]),
        match_analysis={
            "matching_points": as_list(parsed.get("matching_points")),
            "gap_points": as_list(parsed.get("gap_points")),
            "appeal_suggestions": as_list(parsed.get("appeal_suggestions")),
            "interview_tips": as_list(parsed.get("interview_tips")),
            "summary": parsed.get("summary"),
            "analyzed_at": db.utc_now().isoformat(timespec="seconds"),
            "resume_id": resume.id,
        },
    )
    logger.info("job_match_analyzed history_id=%s resume_id=%s score=%s", history.id, resume.id, score)
    return updated


__all__ = ["MatchAnalysisError", "analyze_match", "build_job_info", "build_prompt", "rank_info"]
