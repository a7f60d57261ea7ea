from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Response, status

from prepkit.core.security import get_current_user
from prepkit.schemas.auth import UserOut
from prepkit.schemas.resumes import ResumeSummary, SettingsUpdateRequest
from prepkit.store import resumes as resume_store
from prepkit.store import users as user_store
from prepkit.store.models import User

logger = logging.getLogger(__name__)

router = APIRouter()


def _settings_payload(user: User) -> dict:
    resume = resume_store.latest_analyzed_resume(user.id)
    return {
        "user": UserOut.from_user(user),
        "resume": ResumeSummary.from_resume(resume) if resume else None,
    }


@router.get("/settings")
def show_settings(current_user: User = Depends(get_current_user)):
    return _settings_payload(current_user)


@router.patch("/settings")
def update_settings(payload: SettingsUpdateRequest, current_user: User = Depends(get_current_user)):
    user = user_store.update_user_name(current_user.id, (payload.name or "").strip() or None)
    return {"message": "設定を更新しました", **_settings_payload(user)}


@router.delete("/settings/account", status_code=status.HTTP_204_NO_CONTENT)
def delete_account(current_user: User = Depends(get_current_user)):
    user_store.delete_user(current_user.id)
    logger.info("account_deleted user_id=%s", current_user.id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
