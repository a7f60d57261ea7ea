from __future__ import annotations

import json
import logging
import math
import re
import time
import uuid
from typing import Any

import openai

from prepkit.ai.config import load_ai_config
from prepkit.ai.factory import get_ai_client
from prepkit.ai.types import AIClient, ChatMessage
from prepkit.analytics.db import log_ai_analysis_run

logger = logging.getLogger(__name__)

_CODE_FENCE_START_RE = re.compile(r"\A\s*```(?:json)?", re.IGNORECASE)
_CODE_FENCE_END_RE = re.compile(r"```\s*\Z")

_client_override: AIClient | None = None


class LLMError(RuntimeError):
    def __init__(self, message: str, *, code: str = "llm_unavailable"):
        super().__init__(message)
        self.code = code


MISSING_API_KEY_MESSAGE = "OpenAI の API キーが設定されていません（code: missing_api_key）。管理者にお問い合わせください。"
AUTHENTICATION_MESSAGE = "OpenAI への認証に失敗しました（401）。APIキーが未設定または無効です。管理者にお問い合わせください。"
CONTENT_BLANK_MESSAGE = "生成に失敗しました（code: content_blank）。しばらくしてから再度お試しください。"


def _looks_like_placeholder(value: str) -> bool:
    lower = value.strip().lower()
    return lower.startswith("your_") or lower.startswith("replace_") or lower in {"changeme", "todo"}


def llm_enabled() -> bool:
    if _client_override is not None:
        return True
    api_key = load_ai_config().api_key
    return bool(api_key) and not _looks_like_placeholder(api_key)


def set_ai_client(client: AIClient | None) -> None:
    """Install a client used instead of the configured provider (None restores it)."""
    global _client_override
    _client_override = client


def _client() -> AIClient:
    if _client_override is not None:
        return _client_override
    return get_ai_client()


def _model_name() -> str:
    if _client_override is not None:
        return getattr(_client_override, "model", "override")
    return load_ai_config().model


def _log_ai_run(
    *,
    run_id: str,
    task: str,
    status: str,
    latency_ms: int | None,
    error_code: str | None = None,
    temperature: float | None = None,
    prompt_chars: int = 0,
    response_chars: int = 0,
) -> None:
    try:
        log_ai_analysis_run(
            run_id=run_id,
            task=task or "unknown",
            model=_model_name(),
            status=status,
            temperature=temperature,
            prompt_chars=prompt_chars,
            response_chars=response_chars,
            error_code=error_code,
            latency_ms=latency_ms,
        )
    except Exception:  # pragma: no cover - analytics must not break AI responses
        logger.debug("ai_run_logging_failed", exc_info=True)


def _is_authentication_error(exc: Exception) -> bool:
    if isinstance(exc, openai.AuthenticationError):
        return True
    return "AuthenticationError" in type(exc).__name__ or "401" in str(exc)


def chat_completion(
    *,
    system_prompt: str,
    user_prompt: str,
    temperature: float = 0.5,
    max_tokens: int | None = None,
    task: str = "unknown",
) -> str:
    run_id = uuid.uuid4().hex
    run_info = {
        "run_id": run_id,
        "task": task,
        "temperature": temperature,
        "prompt_chars": len(system_prompt) + len(user_prompt),
    }
    if not llm_enabled():
        _log_ai_run(**run_info, status="skipped", error_code="missing_api_key", latency_ms=0)
        raise LLMError(MISSING_API_KEY_MESSAGE, code="missing_api_key")

    started = time.perf_counter()
    try:
        content = _client().complete(
            [
                ChatMessage(role="system", content=system_prompt),
                ChatMessage(role="user", content=user_prompt),
            ],
            temperature=temperature,
            max_tokens=max_tokens,
        )
    except Exception as exc:
        latency_ms = int((time.perf_counter() - started) * 1000)
        if _is_authentication_error(exc):
            _log_ai_run(**run_info, status="error", error_code="authentication", latency_ms=latency_ms)
            raise LLMError(AUTHENTICATION_MESSAGE, code="authentication") from exc
        logger.error("llm_completion_failed task=%s model=%s: %s %s", task, _model_name(), type(exc).__name__, exc)
        _log_ai_run(**run_info, status="error", error_code="llm_exception", latency_ms=latency_ms)
        raise LLMError(f"AI への問い合わせに失敗しました（{type(exc).__name__}）。", code="llm_exception") from exc

    latency_ms = int((time.perf_counter() - started) * 1000)
    if not content or not content.strip():
        logger.error("llm_content_blank task=%s model=%s", task, _model_name())
        _log_ai_run(**run_info, status="empty", error_code="content_blank", latency_ms=latency_ms)
        raise LLMError(CONTENT_BLANK_MESSAGE, code="content_blank")

    _log_ai_run(**run_info, status="success", latency_ms=latency_ms, response_chars=len(content))
    return content


def strip_code_fences(content: str) -> str:
    text = _CODE_FENCE_START_RE.sub("", content or "", count=1)
    text = _CODE_FENCE_END_RE.sub("", text, count=1)
    return text.strip()


def _reject_constant(name: str) -> Any:
    raise ValueError(f"non-finite number {name}")


def parse_json_content(content: str, *, task: str = "unknown") -> dict[str, Any]:
    json_string = strip_code_fences(content)
    try:
        parsed = json.loads(json_string, parse_constant=_reject_constant)
    except ValueError as exc:
        logger.error("llm_json_parse_failed task=%s: %s", task, exc)
        raise LLMError(f"生成結果の形式が不正でした（{exc}）。もう一度お試しください。", code="invalid_json") from exc
    if not isinstance(parsed, dict):
        logger.error("llm_json_not_object task=%s type=%s", task, type(parsed).__name__)
        raise LLMError("生成結果の形式が不正でした（JSON オブジェクトではありません）。もう一度お試しください。", code="invalid_json")
    return parsed


def chat_json(
    *,
    system_prompt: str,
    user_prompt: str,
    temperature: float = 0.5,
    max_tokens: int | None = None,
    task: str = "unknown",
) -> dict[str, Any]:
    content = chat_completion(
        system_prompt=system_prompt,
        user_prompt=user_prompt,
        temperature=temperature,
        max_tokens=max_tokens,
        task=task,
    )
    return parse_json_content(content, task=task)


def truncate(text: str | None, limit: int, omission: str = "...") -> str:
    """Cut ``text`` to ``limit`` characters including the omission marker."""
    value = text or ""
    if len(value) <= limit:
        return value
    keep = max(0, limit - len(omission))
    return value[:keep] + omission


_LEADING_INT_RE = re.compile(r"\s*([+-]?\d+)")


def as_list(value: Any) -> list[Any]:
    if value is None:
        return []
    if isinstance(value, list):
        return value
    if isinstance(value, (tuple, set)):
        return list(value)
    return [value]


def coerce_score(value: Any, low: int = 0, high: int = 100) -> int:
    """Integer score clamped to ``low..high``; strings use their leading digits ("85点" -> 85)."""
    if isinstance(value, bool):
        number = int(value)
    elif isinstance(value, int):
        number = value
    elif isinstance(value, float):
        # json.loads accepts NaN, Infinity and 1e400
        number = int(value) if math.isfinite(value) else 0
    else:
        match = _LEADING_INT_RE.match(str(value))
        number = int(match.group(1)) if match else 0
    return max(low, min(high, number))
