from __future__ import annotations

import json
import re
from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, Field

from prepkit.core.scoring import get_scoring_value, grade_for_score, rank_info

AnswerStatus = Literal["draft", "scored"]
ResumeStatus = Literal["draft", "analyzing", "analyzed", "error"]
ResumeCategory = Literal["structure", "content", "expression", "layout"]

RESUME_CATEGORIES: tuple[str, ...] = ("structure", "content", "expression", "layout")

_JSON_FENCE_RE = re.compile(r"```json\s*")
_TRAILING_FENCE_RE = re.compile(r"```\s*$", re.MULTILINE)


class User(BaseModel):
    id: int
    email: str
    password_hash: str = Field(default="", repr=False)
    name: str | None = None
    avatar_url: str | None = None
    provider: str | None = None
    uid: str | None = None
    created_at: datetime
    updated_at: datetime

    @property
    def display_name(self) -> str:
        return self.name or self.email.split("@")[0]

    @property
    def avatar_initial(self) -> str:
        source = self.name or self.email
        return source[:1].upper()


class History(BaseModel):
    id: int
    user_id: int | None = None
    content: str
    memo: str | None = None
    asked_at: datetime | None = None
    job_description: str | None = None
    company_name: str | None = None
    stage_1_memo: str | None = None
    stage_2_memo: str | None = None
    stage_3_memo: str | None = None
    match_score: int | None = None
    match_rank: str | None = None
    match_analysis: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime
    updated_at: datetime

    def clean_content(self) -> str:
        """Content with markdown code fences removed."""
        text = _JSON_FENCE_RE.sub("", self.content or "")
        return _TRAILING_FENCE_RE.sub("", text).strip()

    def parsed_content(self) -> Any:
        try:
            return json.loads(self.clean_content())
        except json.JSONDecodeError:
            return None

    @property
    def valid_json_content(self) -> bool:
        return isinstance(self.parsed_content(), dict)

    @property
    def match_analyzed(self) -> bool:
        return self.match_score is not None and bool(self.match_rank)

    @property
    def matching_points(self) -> list[Any]:
        return self.match_analysis.get("matching_points") or []

    @property
    def gap_points(self) -> list[Any]:
        return self.match_analysis.get("gap_points") or []

    @property
    def appeal_suggestions(self) -> list[Any]:
        return self.match_analysis.get("appeal_suggestions") or []

    @property
    def interview_tips(self) -> list[Any]:
        return self.match_analysis.get("interview_tips") or []

    @property
    def match_summary(self) -> str | None:
        return self.match_analysis.get("summary")

    def rank_info(self) -> dict[str, Any]:
        return rank_info(self.match_rank)


class QuestionAnswer(BaseModel):
    id: int
    history_id: int
    user_id: int | None = None
    question_index: int = Field(ge=0)
    question_text: str
    user_answer: str
    score: int | None = Field(default=None, ge=0, le=100)
    feedback: dict[str, Any] = Field(default_factory=dict)
    status: AnswerStatus = "draft"
    created_at: datetime
    updated_at: datetime

    @property
    def scored(self) -> bool:
        return self.status == "scored"

    @property
    def draft(self) -> bool:
        return self.status == "draft"

    @property
    def good_points(self) -> list[Any]:
        return self.feedback.get("good_points") or []

    @property
    def improvements(self) -> list[Any]:
        return self.feedback.get("improvements") or []

    @property
    def improvement_example(self) -> str:
        return self.feedback.get("improvement_example") or ""


class ResumeAnalysis(BaseModel):
    id: int
    resume_id: int
    category: ResumeCategory
    score: int | None = Field(default=None, ge=0, le=100)
    feedback: dict[str, Any] = Field(default_factory=dict)
    improved_text: str | None = None
    created_at: datetime
    updated_at: datetime

    @property
    def category_name(self) -> str:
        return get_scoring_value(f"resume_analysis.categories.{self.category}.name", self.category)

    @property
    def grade(self) -> str | None:
        return grade_for_score(self.score)

    @property
    def issues(self) -> list[Any]:
        return self.feedback.get("issues") or []

    @property
    def good_points(self) -> list[Any]:
        return self.feedback.get("good_points") or []

    @property
    def suggestions(self) -> list[Any]:
        return self.feedback.get("suggestions") or []

    @property
    def examples(self) -> list[Any]:
        return self.feedback.get("examples") or []


class Resume(BaseModel):
    id: int
    user_id: int
    filename: str | None = None
    content_type: str | None = None
    byte_size: int | None = None
    file_data: bytes | None = Field(default=None, repr=False)
    raw_text: str | None = None
    summary: str | None = None
    status: ResumeStatus = "draft"
    analyzed_at: datetime | None = None
    created_at: datetime
    updated_at: datetime
    analyses: list[ResumeAnalysis] = Field(default_factory=list)

    @property
    def has_file(self) -> bool:
        return bool(self.file_data)

    @property
    def analyzed(self) -> bool:
        return self.status == "analyzed"

    @property
    def analyzing(self) -> bool:
        return self.status == "analyzing"

    @property
    def overall_score(self) -> int | None:
        scores = [analysis.score for analysis in self.analyses if analysis.score is not None]
        if not scores:
            return None
        # half-up rounding; scores are never negative
        return int(sum(scores) / len(scores) + 0.5)

    @property
    def all_issues(self) -> list[Any]:
        return [item for analysis in self.analyses for item in analysis.issues]

    @property
    def all_good_points(self) -> list[Any]:
        return [item for analysis in self.analyses for item in analysis.good_points]

    @property
    def all_suggestions(self) -> list[Any]:
        return [item for analysis in self.analyses for item in analysis.suggestions]

    def analysis_for(self, category: str) -> ResumeAnalysis | None:
        for analysis in self.analyses:
            if analysis.category == category:
                return analysis
        return None

    def improved_text(self) -> str:
        """Improved text of the first analysis, or the extracted text."""
        if self.analyses and self.analyses[0].improved_text:
            return self.analyses[0].improved_text
        return self.raw_text or ""
