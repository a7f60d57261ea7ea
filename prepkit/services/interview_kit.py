from __future__ import annotations

import logging
from typing import Any

from prepkit.services.llm import LLMError, chat_completion, parse_json_content
from prepkit.store import histories as history_store
from prepkit.store.models import History, User

logger = logging.getLogger(__name__)

STAGE_KEYS = ("stage_1", "stage_2", "stage_3")

SYSTEM_PROMPT = (
    "あなたは採用面接の専門家です。求人票から、1次面接（現場クラス）、2次面接（マネージャークラス）、"
    "3次面接（社長・役員クラス）の3段階の面接対策情報をJSON形式で生成します。"
)

OUTPUT_FORMAT = """{
  "stage_1": {
    "questions": [
      {
        "question": "1次面接の質問文",
        "intent": "この質問で面接官が知りたいこと（1-2文）",
        "answer_points": ["回答のポイント1", "回答のポイント2", "回答のポイント3"],
        "level": "募集職種のレベル"
      }
    ],
    "reverse_questions": "1次面接での逆質問のアドバイス（2-3行の文章）",
    "tech_checklist": ["1次面接で確認すべき項目1", "確認項目2", ...]
  },
  "stage_2": {
    "questions": [...],
    "reverse_questions": "2次面接での逆質問のアドバイス（2-3行の文章）",
    "tech_checklist": ["2次面接で確認すべき項目1", ...]
  },
  "stage_3": {
    "questions": [...],
    "reverse_questions": "3次面接での逆質問のアドバイス（2-3行の文章）",
    "tech_checklist": ["3次面接で確認すべき項目1", ...]
  }
}

※各段階の特徴：
- stage_1 (1次面接 - 現場クラス): 技術的な深掘り、実装経験、問題解決能力を重視
- stage_2 (2次面接 - マネージャークラス): チーム適合性、コミュニケーション力、マネジメント経験を重視
- stage_3 (3次面接 - 社長・役員クラス): ビジョン共感、キャリア志向、経営視点での貢献を重視"""

LEVEL_EXAMPLES = """例：
- 「Junior Engineer」募集の場合
  → 基礎知識の理解度、学習意欲、成長ポテンシャルを示すポイント
- 「Senior Engineer」募集の場合
  → 実装力だけでなく、設計判断、技術選定の根拠、パフォーマンス最適化の経験など
- 「Engineering Manager (EM)」募集の場合
  → チームマネジメント経験、1on1やパフォーマンス評価の手法、技術的意思決定とビジネス目標のバランス、採用・育成の実績など
- 「Tech Lead」募集の場合
  → アーキテクチャ設計の主導経験、技術的負債の解消戦略、メンバーのコードレビューやメンタリング、ステークホルダーとの技術コミュニケーションなど"""

REVERSE_QUESTION_EXAMPLES = """例：
- Junior Engineer募集の場合
  「技術スタックの学習機会や、メンターシップ制度の有無について確認しましょう。コードレビューの文化やオンボーディングプロセスについて聞くことで、学習意欲をアピールできます。」
- Senior Engineer募集の場合
  「技術的意思決定のプロセスや、アーキテクチャ設計への関与度について確認しましょう。技術的負債への取り組み方や新技術導入の判断基準を聞くことで、シニアとしての視点をアピールできます。」
- Engineering Manager募集の場合
  「チームの構成や評価制度、1on1の頻度と内容について確認しましょう。採用プロセスへの関与度やキャリア開発の支援体制を聞くことで、マネジメント経験と関心をアピールできます。」"""


class InterviewKitError(RuntimeError):
    def __init__(self, message: str, *, code: str = "llm_unavailable"):
        super().__init__(message)
        self.code = code


def build_prompt(job_description: str) -> str:
    return f"""求人票を分析し、面接対策情報を以下の形式のJSONで生成してください。

【求人票】
{job_description}

【出力形式】
{OUTPUT_FORMAT}

【重要な指示】

1. questions: 技術質問3個+行動面接質問2個の計5個
   - question: 質問文
   - intent: 面接官がこの質問で本当に知りたいこと（深層心理）
   - answer_points: **募集職種のレベルに応じて、その役職に期待される回答ポイント**を3-4個

{LEVEL_EXAMPLES}

   - level: 求人票から判断した募集職種のレベル（日本語または英語で具体的に記述）
     例：「Junior Engineer」「Senior Engineer」「Engineering Manager」「Tech Lead」「Staff Engineer」など

2. reverse_questions: **募集職種のレベルと理想的な人物像に合わせた逆質問のアドバイス**（2-3行の文章）

{REVERSE_QUESTION_EXAMPLES}

3. tech_checklist: 面接前の確認項目5-8個（文字列の配列）

※求人内容に特化した具体的な内容にする
※answer_pointsとreverse_questionsは必ず募集職種のレベル（Junior/Senior/EM/Tech Leadなど）を考慮して記述すること
※JSONのみ出力（説明文不要）
"""


def normalize_question(question: Any) -> dict[str, Any]:
    if isinstance(question, dict):
        return {
            "question": question.get("question"),
            "intent": question.get("intent") or "",
            "answer_points": question.get("answer_points") or [],
            "level": question.get("level") or "",
        }
    return {"question": str(question), "intent": "", "answer_points": [], "level": ""}


def normalize_reverse_questions(value: Any) -> str:
    if not value:
        return ""
    if isinstance(value, list):
        lines = []
        for item in value:
            if isinstance(item, dict):
                lines.append(str(item.get("question") or item))
            else:
                lines.append(str(item))
        return "\n".join(lines)
    if isinstance(value, str):
        return value
    return ""


def normalize_tech_checklist(value: Any) -> Any:
    if not (isinstance(value, list) and value and isinstance(value[0], dict)):
        return value
    return [
        (item.get("item") or str(item)) if isinstance(item, dict) else str(item)
        for item in value
    ]


def _normalize_section(section: dict[str, Any]) -> dict[str, Any]:
    if isinstance(section.get("questions"), list):
        section["questions"] = [normalize_question(q) for q in section["questions"]]
    section["reverse_questions"] = normalize_reverse_questions(section.get("reverse_questions"))
    section["tech_checklist"] = normalize_tech_checklist(section.get("tech_checklist"))
    return section


def normalize_kit(parsed: dict[str, Any]) -> dict[str, Any]:
    """Fill question defaults and flatten reverse questions / checklist items, per stage."""
    _normalize_section(parsed)
    for key in STAGE_KEYS:
        if isinstance(parsed.get(key), dict):
            _normalize_section(parsed[key])
    return parsed


def generate_interview_kit(
    job_description: str,
    company_name: str | None = None,
    user: User | None = None,
) -> dict[str, Any]:
    """Generate a three-stage kit and save the raw response as a history.

    Returns ``{"result": <normalized kit>, "history": History}``.
    """
    if not (job_description or "").strip():
        raise InterviewKitError("求人票の入力は必須です。", code="blank_job_description")

    try:
        content = chat_completion(
            system_prompt=SYSTEM_PROMPT,
            user_prompt=build_prompt(job_description),
            temperature=0.7,
            task="interview_kit",
        )
        parsed = parse_json_content(content, task="interview_kit")
    except LLMError as exc:
        raise InterviewKitError(str(exc), code=exc.code) from exc

    result = normalize_kit(parsed)
    history: History = history_store.create_history(
        content=content,
        memo="",
        job_description=job_description,
        company_name=company_name or None,
        user_id=user.id if user else None,
    )
    logger.info("interview_kit_generated history_id=%s stages=%s", history.id, sum(k in result for k in STAGE_KEYS))
    return {"result": result, "history": history}
