from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query, Request, Response, status

from prepkit.api.v1.histories import load_history
from prepkit.core.rate_limit import enforce_llm_rate_limit
from prepkit.core.security import get_current_user
from prepkit.presenters.history import HistoryPresenter
from prepkit.schemas.histories import AnswerCreateRequest, AnswerOut, AnswerSortParam, AnswersTab
from prepkit.services.answer_scoring import ScoringError, score_answer
from prepkit.store import question_answers as answer_store
from prepkit.store.models import QuestionAnswer, User

router = APIRouter()

QUESTION_NOT_FOUND = "質問が見つかりません"


def _load_answer(history_id: int, answer_id: int) -> QuestionAnswer:
    answer = answer_store.get_history_answer(history_id, answer_id)
    if answer is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="回答が見つかりません")
    return answer


@router.get("/histories/{history_id}/question_answers")
def list_answers(
    history_id: int,
    tab: AnswersTab = Query(default="my_answers"),
    question_index: int | None = Query(default=None, ge=0),
    sort: AnswerSortParam | None = Query(default=None),
    current_user: User = Depends(get_current_user),
):
    history = load_history(history_id)
    presenter = HistoryPresenter(history)
    answers = answer_store.list_scored_answers(
        history.id,
        user_id=None if tab == "all_answers" else current_user.id,
        question_index=question_index,
        sort=sort,
    )
    return {
        "tab": tab,
        "question_index": question_index,
        "question": presenter.question_at(question_index) if question_index is not None else None,
        "questions": presenter.all_questions(),
        "answers": [AnswerOut.from_answer(answer) for answer in answers],
    }


@router.get("/histories/{history_id}/question_answers/new")
def new_answer(
    history_id: int,
    question_index: int = Query(default=0, ge=0),
    stage: int | None = Query(default=None, ge=1, le=3),
    current_user: User = Depends(get_current_user),
):
    history = load_history(history_id)
    question = HistoryPresenter(history).question_at(question_index, stage)
    if question is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=QUESTION_NOT_FOUND)
    return {
        "history_id": history.id,
        "question_index": question_index,
        "stage": stage,
        "question": question,
    }


@router.post("/histories/{history_id}/question_answers", status_code=status.HTTP_201_CREATED)
def create_answer(
    request: Request,
    history_id: int,
    payload: AnswerCreateRequest,
    current_user: User = Depends(get_current_user),
):
    history = load_history(history_id)
    question = HistoryPresenter(history).question_at(payload.question_index, payload.stage)
    if isinstance(question, dict):
        question_data = dict(question)
    elif question is not None:
        question_data = {"question": str(question)}
    else:
        question_data = {}
    question_text = (payload.question_text or "").strip() or str(question_data.get("question") or "")

    if payload.save_only:
        try:
            answer = answer_store.create_answer(
                history_id=history.id,
                user_id=current_user.id,
                question_index=payload.question_index,
                question_text=question_text,
                user_answer=payload.user_answer,
                status="draft",
            )
        except ValueError as exc:
            raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc)) from exc
        return {"message": "回答を下書き保存しました", "answer": AnswerOut.from_answer(answer)}

    if not question_data:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=QUESTION_NOT_FOUND)

    enforce_llm_rate_limit(request, route_key="question_answers", user_id=current_user.id)
    try:
        result = score_answer(question_data, payload.user_answer, question_data.get("level"))
    except ScoringError as exc:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc)) from exc

    answer = answer_store.create_answer(
        history_id=history.id,
        user_id=current_user.id,
        question_index=payload.question_index,
        question_text=question_text,
        user_answer=payload.user_answer,
        status="scored",
        score=result["score"],
        feedback={
            "good_points": result["good_points"],
            "improvements": result["improvements"],
            "improvement_example": result["improvement_example"],
        },
    )
    return {"message": "採点が完了しました", "answer": AnswerOut.from_answer(answer)}


@router.get("/histories/{history_id}/question_answers/{answer_id}", response_model=AnswerOut)
def show_answer(history_id: int, answer_id: int, current_user: User = Depends(get_current_user)):
    load_history(history_id)
    return AnswerOut.from_answer(_load_answer(history_id, answer_id))


@router.delete("/histories/{history_id}/question_answers/{answer_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_answer(history_id: int, answer_id: int, current_user: User = Depends(get_current_user)):
    load_history(history_id)
    answer = _load_answer(history_id, answer_id)
    if answer.user_id != current_user.id:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="この回答を削除する権限がありません")
    answer_store.delete_answer(answer.id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
