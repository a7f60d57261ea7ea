from __future__ import annotations

import logging
import secrets
from typing import Any
from urllib.parse import urlencode

import httpx

from prepkit.core.config import settings
from prepkit.core.security import hash_password
from prepkit.store import users as user_store
from prepkit.store.models import User

logger = logging.getLogger(__name__)

PROVIDER = "google_oauth2"
AUTHORIZE_URL = "https://accounts.google.com/o/oauth2/v2/auth"
TOKEN_URL = "https://oauth2.googleapis.com/token"
USERINFO_URL = "https://openidconnect.googleapis.com/v1/userinfo"


class GoogleAuthError(RuntimeError):
    pass


def google_enabled() -> bool:
    return bool(settings.google_client_id and settings.google_client_secret)


def authorization_url(state: str) -> str:
    params = {
        "client_id": settings.google_client_id or "",
        "redirect_uri": settings.google_redirect_uri,
        "response_type": "code",
        "scope": "openid email profile",
        "state": state,
        "prompt": "select_account",
    }
    return f"{AUTHORIZE_URL}?{urlencode(params)}"


def fetch_user_info(code: str) -> dict[str, Any]:
    """Exchange an authorization code and return Google's OpenID user info."""
    try:
        with httpx.Client(timeout=10.0) as client:
            token_resp = client.post(
                TOKEN_URL,
                data={
                    "code": code,
                    "client_id": settings.google_client_id,
                    "client_secret": settings.google_client_secret,
                    "redirect_uri": settings.google_redirect_uri,
                    "grant_type": "authorization_code",
                },
            )
            token_resp.raise_for_status()
            access_token = token_resp.json().get("access_token")
            if not access_token:
                raise GoogleAuthError("Google token response had no access_token")

            info_resp = client.get(USERINFO_URL, headers={"Authorization": f"Bearer {access_token}"})
            info_resp.raise_for_status()
            info = info_resp.json()
    except httpx.HTTPError as exc:
        raise GoogleAuthError(f"Google sign-in failed: {exc}") from exc

    if not info.get("sub") or not info.get("email"):
        raise GoogleAuthError("Google user info is missing sub or email")
    return info


def find_or_create_user(info: dict[str, Any]) -> User:
    """Look up the user by Google uid, creating one on first sign-in.

    An e-mail already registered to another account raises
    ``DuplicateEmailError``; accounts are never merged by e-mail.
    """
    uid = str(info["sub"])
    existing = user_store.get_user_by_provider(PROVIDER, uid)
    if existing is not None:
        return existing

    user = user_store.create_user(
        email=info["email"],
        password_hash=hash_password(secrets.token_urlsafe(15)[:20]),
        name=info.get("name"),
        avatar_url=info.get("picture"),
        provider=PROVIDER,
        uid=uid,
    )
    logger.info("google_user_created user_id=%s", user.id)
    return user
