from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from prepkit.store.models import Resume, ResumeAnalysis


class ResumeAnalysisOut(BaseModel):
    category: str
    category_name: str
    score: int | None = None
    grade: str | None = None
    good_points: list[Any] = Field(default_factory=list)
    issues: list[Any] = Field(default_factory=list)
    suggestions: list[Any] = Field(default_factory=list)
    examples: list[Any] = Field(default_factory=list)

    @classmethod
    def from_analysis(cls, analysis: ResumeAnalysis) -> "ResumeAnalysisOut":
        return cls(
            category=analysis.category,
            category_name=analysis.category_name,
            score=analysis.score,
            grade=analysis.grade,
            good_points=analysis.good_points,
            issues=analysis.issues,
            suggestions=analysis.suggestions,
            examples=analysis.examples,
        )


class ResumeSummary(BaseModel):
    id: int
    filename: str | None = None
    content_type: str | None = None
    byte_size: int | None = None
    status: str
    summary: str | None = None
    overall_score: int | None = None
    analyzed_at: datetime | None = None
    created_at: datetime

    @classmethod
    def from_resume(cls, resume: Resume) -> "ResumeSummary":
        return cls(
            id=resume.id,
            filename=resume.filename,
            content_type=resume.content_type,
            byte_size=resume.byte_size,
            status=resume.status,
            summary=resume.summary,
            overall_score=resume.overall_score,
            analyzed_at=resume.analyzed_at,
            created_at=resume.created_at,
        )


class ResumeDetail(ResumeSummary):
    analyses: list[ResumeAnalysisOut] = Field(default_factory=list)
    all_issues: list[Any] = Field(default_factory=list)
    all_good_points: list[Any] = Field(default_factory=list)
    all_suggestions: list[Any] = Field(default_factory=list)
    improved_text: str = ""

    @classmethod
    def from_resume(cls, resume: Resume) -> "ResumeDetail":
        base = ResumeSummary.from_resume(resume).model_dump()
        return cls(
            **base,
            analyses=[ResumeAnalysisOut.from_analysis(analysis) for analysis in resume.analyses],
            all_issues=resume.all_issues,
            all_good_points=resume.all_good_points,
            all_suggestions=resume.all_suggestions,
            improved_text=resume.improved_text(),
        )


class SettingsUpdateRequest(BaseModel):
    name: str | None = Field(default=None, max_length=100)
