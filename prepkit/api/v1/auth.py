from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone

import jwt
from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from fastapi.responses import RedirectResponse

from prepkit.core.config import settings
from prepkit.core.rate_limit import rate_limit
from prepkit.core.security import create_token, get_current_user, hash_password, verify_password
from prepkit.schemas.auth import AuthResponse, LoginRequest, RegisterRequest, UserOut
from prepkit.services import google_auth
from prepkit.store import users as user_store
from prepkit.store.models import User

logger = logging.getLogger(__name__)

router = APIRouter()

_STATE_PURPOSE = "google_oauth_state"


def _auth_response(user: User) -> AuthResponse:
    return AuthResponse(token=create_token(user.id), user=UserOut.from_user(user))


def _create_state() -> str:
    payload = {
        "purpose": _STATE_PURPOSE,
        "exp": datetime.now(timezone.utc) + timedelta(minutes=10),
    }
    return jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def _state_is_valid(state: str | None) -> bool:
    if not state:
        return False
    try:
        payload = jwt.decode(state, settings.jwt_secret, algorithms=[settings.jwt_algorithm])
    except jwt.PyJWTError:
        return False
    return payload.get("purpose") == _STATE_PURPOSE


@router.post("/auth/register", response_model=AuthResponse, status_code=status.HTTP_201_CREATED)
@rate_limit()
def register(request: Request, payload: RegisterRequest):
    try:
        user = user_store.create_user(
            email=payload.email,
            password_hash=hash_password(payload.password),
            name=(payload.name or "").strip() or None,
        )
    except user_store.DuplicateEmailError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    logger.info("user_registered user_id=%s", user.id)
    return _auth_response(user)


@router.post("/auth/login", response_model=AuthResponse)
@rate_limit()
def login(request: Request, payload: LoginRequest):
    user = user_store.get_user_by_email(payload.email)
    if user is None or not verify_password(payload.password, user.password_hash):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="メールアドレスまたはパスワードが違います",
        )
    return _auth_response(user)


@router.get("/auth/me", response_model=UserOut)
def me(current_user: User = Depends(get_current_user)):
    return UserOut.from_user(current_user)


@router.get("/auth/google/start")
def google_start():
    if not google_auth.google_enabled():
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Googleログインは設定されていません",
        )
    return RedirectResponse(google_auth.authorization_url(_create_state()))


@router.get("/auth/google/callback")
def google_callback(
    code: str | None = Query(default=None),
    state: str | None = Query(default=None),
    error: str | None = Query(default=None),
):
    frontend = settings.frontend_base_url.rstrip("/")
    if error or not code or not _state_is_valid(state):
        logger.warning("google_callback_rejected error=%s has_code=%s", error, bool(code))
        return RedirectResponse(f"{frontend}/")

    try:
        user = google_auth.find_or_create_user(google_auth.fetch_user_info(code))
    except (google_auth.GoogleAuthError, user_store.DuplicateEmailError) as exc:
        logger.warning("google_callback_failed: %s", exc)
        return RedirectResponse(f"{frontend}/")

    return RedirectResponse(f"{frontend}/#token={create_token(user.id)}")
