from __future__ import annotations

import os
from dataclasses import dataclass

from dotenv import load_dotenv

load_dotenv()

def _get_env(name: str, default: str | None = None) -> str | None:
    value = os.getenv(name)
    if value is None or value == "":
        return default
    return value


def _get_env_bool(name: str, default: bool) -> bool:
    raw = _get_env(name, None)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "y", "on"}


def _get_env_int(name: str, default: int) -> int:
    raw = _get_env(name, None)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _get_env_float(name: str, default: float) -> float:
    raw = _get_env(name, None)
    if raw is None:
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _get_env_list(name: str, default: list[str]) -> tuple[str, ...]:
    raw = _get_env(name, None)
    if raw is None:
        return tuple(default)
    values = [item.strip() for item in raw.split(",")]
    clean = [item for item in values if item]
    return tuple(clean) if clean else tuple(default)


@dataclass(frozen=True)
class Settings:
    api_key: str | None
    jwt_secret: str
    jwt_algorithm: str
    jwt_ttl_days: int
    rate_limit: str
    rate_limit_enabled: bool
    log_level: str
    sentry_dsn: str | None
    database_path: str
    analytics_enabled: bool
    analytics_db_path: str
    analytics_retention_days: int
    llm_rate_limit_db_path: str
    llm_rate_limit_per_minute: int
    cors_allowed_origins: tuple[str, ...]
    resume_max_bytes: int
    resume_pdf_font_path: str | None
    job_fetch_timeout_s: float
    google_client_id: str | None
    google_client_secret: str | None
    google_redirect_uri: str
    frontend_base_url: str


def load_settings() -> Settings:
    return Settings(
        api_key=_get_env("API_KEY"),
        jwt_secret=_get_env("JWT_SECRET", "dev-secret-change-me") or "dev-secret-change-me",
        jwt_algorithm=(_get_env("JWT_ALGORITHM", "HS256") or "HS256").strip().upper(),
        jwt_ttl_days=_get_env_int("JWT_TTL_DAYS", 7),
        rate_limit=_get_env("RATE_LIMIT", "60/minute") or "60/minute",
        rate_limit_enabled=_get_env_bool("RATE_LIMIT_ENABLED", True),
        log_level=_get_env("LOG_LEVEL", "INFO") or "INFO",
        sentry_dsn=_get_env("SENTRY_DSN"),
        database_path=_get_env("DATABASE_PATH", "data/prepkit.db") or "data/prepkit.db",
        analytics_enabled=_get_env_bool("ANALYTICS_ENABLED", True),
        analytics_db_path=_get_env("ANALYTICS_DB_PATH", "data/analytics.db") or "data/analytics.db",
        analytics_retention_days=_get_env_int("ANALYTICS_RETENTION_DAYS", 180),
        llm_rate_limit_db_path=_get_env("LLM_RATE_LIMIT_DB_PATH", "data/llm_rate_limit.db") or "data/llm_rate_limit.db",
        llm_rate_limit_per_minute=_get_env_int("LLM_RATE_LIMIT_PER_MINUTE", 10),
        cors_allowed_origins=_get_env_list(
            "CORS_ALLOWED_ORIGINS",
            [
                "http://localhost:5173",
                "http://127.0.0.1:5173",
                "http://localhost:3000",
            ],
        ),
        resume_max_bytes=_get_env_int("RESUME_MAX_BYTES", 5 * 1024 * 1024),
        resume_pdf_font_path=_get_env("RESUME_PDF_FONT_PATH"),
        job_fetch_timeout_s=_get_env_float("JOB_FETCH_TIMEOUT_S", 10.0),
        google_client_id=_get_env("GOOGLE_CLIENT_ID"),
        google_client_secret=_get_env("GOOGLE_CLIENT_SECRET"),
        google_redirect_uri=_get_env("GOOGLE_REDIRECT_URI", "http://localhost:8000/v1/auth/google/callback")
        or "http://localhost:8000/v1/auth/google/callback",
        frontend_base_url=_get_env("FRONTEND_BASE_URL", "http://localhost:5173") or "http://localhost:5173",
    )


settings = load_settings()

if settings.jwt_algorithm not in {"HS256", "HS384", "HS512"}:
    raise RuntimeError("JWT_ALGORITHM must be one of HS256, HS384, HS512.")
