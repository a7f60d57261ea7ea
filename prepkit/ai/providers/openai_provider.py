from __future__ import annotations

import os
from typing import Optional, Sequence

from openai import OpenAI

from prepkit.ai.types import ChatMessage


class OpenAIProvider:
    def __init__(
        self,
        model: str,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout_s: float = 60.0,
        max_retries: int = 2,
    ):
        self.model = model
        key = (api_key or os.getenv("OPENAI_API_KEY") or "").strip()
        if not key:
            raise RuntimeError("OPENAI_API_KEY is missing")

        self._client = OpenAI(
            api_key=key,
            base_url=(base_url or os.getenv("OPENAI_BASE_URL") or None),
            timeout=timeout_s,
            max_retries=max_retries,
        )

    def complete(
        self,
        messages: Sequence[ChatMessage],
        *,
        temperature: float,
        max_tokens: int | None = None,
    ) -> str:
        payload = [{"role": m.role, "content": m.content} for m in messages]

        create_kwargs = {
            "model": self.model,
            "messages": payload,
            "temperature": temperature,
        }
        if max_tokens:
            create_kwargs["max_tokens"] = max_tokens

        response = self._client.chat.completions.create(**create_kwargs)
        if not response.choices:
            return ""
        return response.choices[0].message.content or ""
