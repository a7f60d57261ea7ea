from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field, field_validator

from prepkit.store.models import User


class RegisterRequest(BaseModel):
    email: str = Field(min_length=3, max_length=255)
    password: str = Field(min_length=6, max_length=128)
    name: str | None = Field(default=None, max_length=100)

    @field_validator("email")
    @classmethod
    def _email_shape(cls, value: str) -> str:
        value = value.strip().lower()
        local, _, domain = value.partition("@")
        if not local or "." not in domain:
            raise ValueError("メールアドレスの形式が正しくありません")
        return value


class LoginRequest(BaseModel):
    email: str = Field(min_length=1, max_length=255)
    password: str = Field(min_length=1, max_length=128)


class UserOut(BaseModel):
    id: int
    email: str
    name: str | None = None
    display_name: str
    avatar_url: str | None = None
    avatar_initial: str
    provider: str | None = None
    created_at: datetime

    @classmethod
    def from_user(cls, user: User) -> "UserOut":
        return cls(
            id=user.id,
            email=user.email,
            name=user.name,
            display_name=user.display_name,
            avatar_url=user.avatar_url,
            avatar_initial=user.avatar_initial,
            provider=user.provider,
            created_at=user.created_at,
        )


class AuthResponse(BaseModel):
    token: str
    token_type: str = "bearer"
    user: UserOut
