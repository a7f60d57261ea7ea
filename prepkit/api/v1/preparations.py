from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Request, status

from prepkit.core.rate_limit import enforce_llm_rate_limit, rate_limit
from prepkit.core.security import get_current_user
from prepkit.schemas.histories import FetchJobRequest, FetchJobResponse, PreparationRequest
from prepkit.services.interview_kit import InterviewKitError, generate_interview_kit
from prepkit.services.job_description_fetcher import FetchError, fetch_job_description
from prepkit.store.models import User

router = APIRouter()

# LLM error codes that mean the service itself is unavailable.
UNAVAILABLE_CODES = {"missing_api_key", "authentication", "content_blank", "llm_exception"}


def _raise_kit_error(exc: InterviewKitError) -> None:
    if exc.code in UNAVAILABLE_CODES:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail={"message": str(exc), "code": exc.code},
        ) from exc
    raise HTTPException(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        detail={"message": str(exc), "code": exc.code},
    ) from exc


@router.post("/preparations", status_code=status.HTTP_201_CREATED)
@rate_limit()
def create_preparation(
    request: Request,
    payload: PreparationRequest,
    current_user: User = Depends(get_current_user),
):
    job_description = (payload.job_description or "").strip()
    if not job_description and (payload.job_url or "").strip():
        try:
            job_description = fetch_job_description(payload.job_url).strip()
        except FetchError as exc:
            raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc)) from exc

    if not job_description:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail="求人票の入力は必須です。")

    enforce_llm_rate_limit(request, route_key="preparations", user_id=current_user.id)
    try:
        generated = generate_interview_kit(
            job_description,
            company_name=(payload.company_name or "").strip() or None,
            user=current_user,
        )
    except InterviewKitError as exc:
        _raise_kit_error(exc)

    return {"history_id": generated["history"].id, "result": generated["result"]}


@router.post("/preparations/fetch", response_model=FetchJobResponse)
@rate_limit()
def fetch_job(
    request: Request,
    payload: FetchJobRequest,
    current_user: User = Depends(get_current_user),
):
    try:
        return FetchJobResponse(job_description=fetch_job_description(payload.job_url))
    except FetchError as exc:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc)) from exc
