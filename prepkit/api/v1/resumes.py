from __future__ import annotations

import logging
from datetime import datetime
from urllib.parse import quote
from zoneinfo import ZoneInfo

from fastapi import APIRouter, Depends, File, HTTPException, Query, Request, UploadFile, status
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import Response

from prepkit.core.config import settings
from prepkit.core.rate_limit import enforce_llm_rate_limit
from prepkit.core.security import get_current_user
from prepkit.schemas.resumes import ResumeDetail, ResumeSummary
from prepkit.services.resume_analysis import ResumeAnalysisError, analyze_resume
from prepkit.services.resume_export import export_docx, export_pdf
from prepkit.services.resume_text import DOCX_CONTENT_TYPE, PDF_CONTENT_TYPE, detect_content_type
from prepkit.store import resumes as resume_store
from prepkit.store.models import Resume, User

logger = logging.getLogger(__name__)

router = APIRouter()

DOWNLOAD_TIMEZONE = ZoneInfo("Asia/Tokyo")
DOWNLOAD_TYPES = {"docx": DOCX_CONTENT_TYPE, "pdf": PDF_CONTENT_TYPE}


def _load_resume(user: User, resume_id: int) -> Resume:
    resume = resume_store.get_user_resume(user.id, resume_id)
    if resume is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="職務経歴書が見つかりません")
    return resume


async def _read_upload(file: UploadFile) -> bytes:
    limit = settings.resume_max_bytes
    chunks: list[bytes] = []
    total = 0
    while True:
        chunk = await file.read(1024 * 64)
        if not chunk:
            break
        total += len(chunk)
        if total > limit:
            raise HTTPException(
                status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
                detail=f"ファイルは{limit // (1024 * 1024)}MB以下にしてください",
            )
        chunks.append(chunk)
    return b"".join(chunks)


def content_disposition(filename: str, ascii_fallback: str) -> str:
    return f"attachment; filename=\"{ascii_fallback}\"; filename*=UTF-8''{quote(filename)}"


@router.get("/resumes", response_model=list[ResumeSummary])
def list_resumes(current_user: User = Depends(get_current_user)):
    return [ResumeSummary.from_resume(resume) for resume in resume_store.list_user_resumes(current_user.id)]


def _store_and_analyze(request: Request, user: User, filename: str, content_type: str, data: bytes) -> Resume:
    """Blocking half of an upload: rate limit, insert, analyse, discard on failure."""
    enforce_llm_rate_limit(request, route_key="resumes", user_id=user.id)
    resume = resume_store.create_resume(
        user_id=user.id,
        filename=filename,
        content_type=content_type,
        file_data=data,
    )
    try:
        return analyze_resume(resume)
    except ResumeAnalysisError as exc:
        resume_store.delete_resume(resume.id)
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc)) from exc


@router.post("/resumes", response_model=ResumeDetail, status_code=status.HTTP_201_CREATED)
async def upload_resume(
    request: Request,
    file: UploadFile = File(...),
    current_user: User = Depends(get_current_user),
):
    data = await _read_upload(file)
    if not data:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail="ファイルを選択してください")

    content_type = detect_content_type(file.filename, file.content_type)
    if content_type is None:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail="ファイルはPDFまたはWord形式のみ対応しています",
        )

    analyzed = await run_in_threadpool(
        _store_and_analyze, request, current_user, file.filename, content_type, data
    )
    return ResumeDetail.from_resume(analyzed)


@router.get("/resumes/{resume_id}", response_model=ResumeDetail)
def show_resume(resume_id: int, current_user: User = Depends(get_current_user)):
    resume = _load_resume(current_user, resume_id)
    if not resume.analyzed:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail="この職務経歴書はまだ分析中または分析されていません",
        )
    return ResumeDetail.from_resume(resume)


@router.delete("/resumes/{resume_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_resume(resume_id: int, current_user: User = Depends(get_current_user)):
    resume = _load_resume(current_user, resume_id)
    resume_store.delete_resume(resume.id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/resumes/{resume_id}/download")
def download_resume(
    resume_id: int,
    format: str = Query(default="pdf"),
    current_user: User = Depends(get_current_user),
):
    resume = _load_resume(current_user, resume_id)
    if not resume.analyzed:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="この職務経歴書はまだ分析されていません")
    if format not in DOWNLOAD_TYPES:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="対応していないフォーマットです")

    try:
        body = export_docx(resume) if format == "docx" else export_pdf(resume)
    except Exception as exc:
        logger.exception("resume_export_failed resume_id=%s format=%s", resume.id, format)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="ダウンロードに失敗しました",
        ) from exc

    stamp = datetime.now(DOWNLOAD_TIMEZONE).strftime("%Y%m%d")
    filename = f"職務経歴書_改善版_{stamp}.{format}"
    return Response(
        content=body,
        media_type=DOWNLOAD_TYPES[format],
        headers={"Content-Disposition": content_disposition(filename, f"resume_improved_{stamp}.{format}")},
    )
