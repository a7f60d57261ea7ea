from __future__ import annotations

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, Field

from prepkit.store.models import History, QuestionAnswer

AnswersTab = Literal["my_answers", "all_answers"]
AnswerSortParam = Literal["score_desc", "score_asc", "newest"]


class PreparationRequest(BaseModel):
    job_description: str | None = Field(default=None, max_length=50000)
    job_url: str | None = Field(default=None, max_length=2000)
    company_name: str | None = Field(default=None, max_length=200)


class FetchJobRequest(BaseModel):
    job_url: str = Field(min_length=1, max_length=2000)


class FetchJobResponse(BaseModel):
    job_description: str


class HistoryCreateRequest(BaseModel):
    content: str = Field(min_length=1)
    asked_at: datetime | None = None
    memo: str | None = None
    company_name: str | None = Field(default=None, max_length=200)
    job_description: str | None = None
    stage_1_memo: str | None = None
    stage_2_memo: str | None = None
    stage_3_memo: str | None = None


class HistoryUpdateRequest(BaseModel):
    content: str | None = Field(default=None, min_length=1)
    asked_at: datetime | None = None
    memo: str | None = None
    company_name: str | None = Field(default=None, max_length=200)
    stage_1_memo: str | None = None
    stage_2_memo: str | None = None
    stage_3_memo: str | None = None


class HistorySummary(BaseModel):
    id: int
    user_id: int | None = None
    company_name: str | None = None
    display_company_name: str
    asked_at: datetime | None = None
    match_score: int | None = None
    match_rank: str | None = None
    created_at: datetime

    @classmethod
    def from_history(cls, history: History) -> "HistorySummary":
        return cls(
            id=history.id,
            user_id=history.user_id,
            company_name=history.company_name,
            display_company_name=(history.company_name or "").strip() or "（会社名未登録）",
            asked_at=history.asked_at,
            match_score=history.match_score,
            match_rank=history.match_rank,
            created_at=history.created_at,
        )


class AnswerCreateRequest(BaseModel):
    question_index: int = Field(ge=0)
    question_text: str | None = None
    user_answer: str = Field(min_length=1, max_length=20000)
    stage: int | None = Field(default=None, ge=1, le=3)
    save_only: bool = False


class AnswerOut(BaseModel):
    id: int
    history_id: int
    user_id: int | None = None
    question_index: int
    question_text: str
    user_answer: str
    score: int | None = None
    status: str
    good_points: list[Any] = Field(default_factory=list)
    improvements: list[Any] = Field(default_factory=list)
    improvement_example: str = ""
    created_at: datetime

    @classmethod
    def from_answer(cls, answer: QuestionAnswer) -> "AnswerOut":
        return cls(
            id=answer.id,
            history_id=answer.history_id,
            user_id=answer.user_id,
            question_index=answer.question_index,
            question_text=answer.question_text,
            user_answer=answer.user_answer,
            score=answer.score,
            status=answer.status,
            good_points=answer.good_points,
            improvements=answer.improvements,
            improvement_example=answer.improvement_example,
            created_at=answer.created_at,
        )
