from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Query, Request, Response, status

from prepkit.core.rate_limit import enforce_llm_rate_limit
from prepkit.core.security import get_current_user
from prepkit.presenters.history import HistoryPresenter
from prepkit.schemas.histories import (
    AnswerOut,
    AnswersTab,
    HistoryCreateRequest,
    HistorySummary,
    HistoryUpdateRequest,
)
from prepkit.services.job_match import MatchAnalysisError, analyze_match
from prepkit.store import histories as history_store
from prepkit.store import question_answers as answer_store
from prepkit.store import resumes as resume_store
from prepkit.store.models import History, User

logger = logging.getLogger(__name__)

router = APIRouter()

SIDEBAR_LIMIT = 5
PAST_ANSWERS_LIMIT = 5


def load_history(history_id: int) -> History:
    history = history_store.get_history(history_id)
    if history is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="対策ノートが見つかりません")
    return history


def _require_owner(history: History, user: User) -> None:
    if history.user_id != user.id:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="この対策ノートを編集する権限がありません")


def _summaries(histories: list[History]) -> list[HistorySummary]:
    return [HistorySummary.from_history(history) for history in histories]


@router.get("/histories", response_model=list[HistorySummary])
def list_histories(current_user: User = Depends(get_current_user)):
    return _summaries(history_store.list_histories())


@router.get("/histories/mine", response_model=list[HistorySummary])
def my_histories(current_user: User = Depends(get_current_user)):
    return _summaries(history_store.list_user_histories(current_user.id))


@router.get("/histories/others", response_model=list[HistorySummary])
def other_histories(current_user: User = Depends(get_current_user)):
    return _summaries(history_store.list_other_histories(current_user.id))


@router.get("/histories/sidebar")
def sidebar(current_user: User = Depends(get_current_user)):
    return {
        "mine": _summaries(history_store.list_user_histories(current_user.id, limit=SIDEBAR_LIMIT)),
        "all": _summaries(history_store.list_histories(limit=SIDEBAR_LIMIT)),
    }


@router.get("/histories/{history_id}")
def show_history(
    history_id: int,
    answers_tab: AnswersTab = Query(default="my_answers"),
    current_user: User = Depends(get_current_user),
):
    history = load_history(history_id)
    past_answers = answer_store.list_scored_answers(
        history.id,
        user_id=None if answers_tab == "all_answers" else current_user.id,
        limit=PAST_ANSWERS_LIMIT,
    )
    return {
        "history": HistoryPresenter(history).to_dict(),
        "can_edit": history.user_id == current_user.id,
        "answers_tab": answers_tab,
        "past_answers": [AnswerOut.from_answer(answer) for answer in past_answers],
    }


@router.post("/histories", status_code=status.HTTP_201_CREATED)
def create_history(payload: HistoryCreateRequest, current_user: User = Depends(get_current_user)):
    try:
        history = history_store.create_history(
            content=payload.content,
            user_id=current_user.id,
            memo=payload.memo,
            asked_at=payload.asked_at,
            job_description=payload.job_description,
            company_name=payload.company_name,
            stage_1_memo=payload.stage_1_memo,
            stage_2_memo=payload.stage_2_memo,
            stage_3_memo=payload.stage_3_memo,
        )
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc)) from exc
    return {"message": "履歴を登録しました。", "history": HistoryPresenter(history).to_dict()}


@router.patch("/histories/{history_id}")
def update_history(
    history_id: int,
    payload: HistoryUpdateRequest,
    current_user: User = Depends(get_current_user),
):
    history = load_history(history_id)
    _require_owner(history, current_user)
    try:
        updated = history_store.update_history(history.id, payload.model_dump(exclude_unset=True))
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc)) from exc
    return {"message": "履歴を更新しました。", "history": HistoryPresenter(updated).to_dict()}


@router.delete("/histories/{history_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_history(history_id: int, current_user: User = Depends(get_current_user)):
    history = load_history(history_id)
    _require_owner(history, current_user)
    history_store.delete_history(history.id)
    logger.info("history_deleted history_id=%s user_id=%s", history.id, current_user.id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/histories/{history_id}/analyze_match")
def analyze_history_match(
    request: Request,
    history_id: int,
    current_user: User = Depends(get_current_user),
):
    history = load_history(history_id)
    resume = resume_store.latest_analyzed_resume(current_user.id)
    if resume is None:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail="職務経歴書がアップロードされていないか、分析が完了していません",
        )

    enforce_llm_rate_limit(request, route_key="analyze_match", user_id=current_user.id)
    try:
        updated = analyze_match(history, resume)
    except MatchAnalysisError as exc:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc)) from exc
    return {"message": "相性診断が完了しました", "history": HistoryPresenter(updated).to_dict()}
