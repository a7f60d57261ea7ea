from __future__ import annotations

from typing import Any
from zoneinfo import ZoneInfo

from prepkit.store.models import History

STAGES = (1, 2, 3)
DISPLAY_TIMEZONE = ZoneInfo("Asia/Tokyo")
UNREGISTERED_COMPANY = "（会社名未登録）"


class HistoryPresenter:
    """Read-side view of a history's generated kit, stage by stage.

    Content from the three-stage kit keeps questions under ``stage_N``; older
    single-stage content keeps them at the top level. Accessors that take a
    ``stage`` return empty values for a missing stage in multi-stage mode and
    ignore it in single-stage mode.
    """

    def __init__(self, history: History):
        self.history = history
        self._parsed: Any = history.parsed_content()

    @property
    def display_company_name(self) -> str:
        return (self.history.company_name or "").strip() or UNREGISTERED_COMPANY

    @property
    def formatted_asked_at(self) -> str | None:
        if self.history.asked_at is None:
            return None
        return self.history.asked_at.astimezone(DISPLAY_TIMEZONE).strftime("%Y年%m月%d日 %H:%M")

    @property
    def parsed_content(self) -> Any:
        return self._parsed

    @property
    def valid_json(self) -> bool:
        return isinstance(self._parsed, dict)

    @property
    def multi_stage(self) -> bool:
        return self.valid_json and bool(self._parsed.get("stage_1"))

    def stage_data(self, stage: int) -> dict[str, Any]:
        if not self.valid_json:
            return {}
        data = self._parsed.get(f"stage_{stage}")
        return data if isinstance(data, dict) else {}

    def _section(self, key: str, stage: int | None, empty: Any) -> Any:
        if self.multi_stage:
            if stage is None:
                return empty
            source = self.stage_data(stage)
        elif self.valid_json:
            source = self._parsed
        else:
            return empty
        value = source.get(key)
        return value if value else empty

    def questions(self, stage: int | None = None) -> list[Any]:
        return self._section("questions", stage, [])

    def star_answers(self, stage: int | None = None) -> list[Any]:
        return self._section("star_answers", stage, [])

    def reverse_questions(self, stage: int | None = None) -> Any:
        return self._section("reverse_questions", stage, "")

    def tech_checklist(self, stage: int | None = None) -> list[Any]:
        return self._section("tech_checklist", stage, [])

    def has_questions(self, stage: int | None = None) -> bool:
        return bool(self.questions(stage))

    def has_star_answers(self, stage: int | None = None) -> bool:
        return bool(self.star_answers(stage))

    def has_reverse_questions(self, stage: int | None = None) -> bool:
        value = self.reverse_questions(stage)
        if isinstance(value, str):
            return bool(value.strip())
        if isinstance(value, list):
            return bool(value)
        return False

    def has_tech_checklist(self, stage: int | None = None) -> bool:
        return bool(self.tech_checklist(stage))

    def has_any_stage_data(self) -> bool:
        if not self.multi_stage:
            return True
        return any(self.has_questions(stage) for stage in STAGES)

    def stage_memo(self, stage: int) -> str | None:
        if stage not in STAGES:
            return None
        return getattr(self.history, f"stage_{stage}_memo")

    def has_stage_memo(self, stage: int) -> bool:
        return bool((self.stage_memo(stage) or "").strip())

    def question_at(self, index: int, stage: int | None = None) -> dict[str, Any] | None:
        """Question at ``index`` in ``stage``, or in the first stage that has that index."""
        if not self.valid_json or index < 0:
            return None

        if self.multi_stage:
            stages = (stage,) if stage is not None else STAGES
            for candidate in stages:
                questions = self.questions(candidate)
                if isinstance(questions, list) and index < len(questions) and questions[index]:
                    return questions[index]
            return None

        questions = self._parsed.get("questions")
        if isinstance(questions, list) and index < len(questions) and questions[index]:
            return questions[index]
        return None

    def all_questions(self) -> list[Any]:
        if not self.valid_json:
            return []
        if self.multi_stage:
            collected: list[Any] = []
            for stage in STAGES:
                questions = self.questions(stage)
                if isinstance(questions, list):
                    collected.extend(questions)
            return collected
        questions = self._parsed.get("questions")
        return questions if isinstance(questions, list) else []

    def _stage_payload(self, stage: int | None) -> dict[str, Any]:
        return {
            "questions": self.questions(stage),
            "star_answers": self.star_answers(stage),
            "reverse_questions": self.reverse_questions(stage),
            "tech_checklist": self.tech_checklist(stage),
        }

    def to_dict(self) -> dict[str, Any]:
        history = self.history
        payload: dict[str, Any] = {
            "id": history.id,
            "user_id": history.user_id,
            "company_name": history.company_name,
            "display_company_name": self.display_company_name,
            "asked_at": history.asked_at,
            "formatted_asked_at": self.formatted_asked_at,
            "memo": history.memo,
            "job_description": history.job_description,
            "content": history.content,
            "stage_memos": {str(stage): self.stage_memo(stage) for stage in STAGES},
            "valid_json": self.valid_json,
            "multi_stage": self.multi_stage,
            "has_any_stage_data": self.has_any_stage_data(),
            "match": {
                "analyzed": history.match_analyzed,
                "score": history.match_score,
                "rank": history.match_rank,
                "rank_info": history.rank_info() if history.match_analyzed else None,
                "matching_points": history.matching_points,
                "gap_points": history.gap_points,
                "appeal_suggestions": history.appeal_suggestions,
                "interview_tips": history.interview_tips,
                "summary": history.match_summary,
            },
            "created_at": history.created_at,
            "updated_at": history.updated_at,
        }
        if self.multi_stage:
            payload["stages"] = [
                {"stage": stage, "memo": self.stage_memo(stage), **self._stage_payload(stage)}
                for stage in STAGES
            ]
        else:
            payload["stages"] = []
            payload.update(self._stage_payload(None))
        return payload
