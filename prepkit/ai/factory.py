from prepkit.ai.config import load_ai_config
from prepkit.ai.types import AIClient

from prepkit.ai.providers.openai_provider import OpenAIProvider


def get_ai_client() -> AIClient:
    cfg = load_ai_config()

    if cfg.provider == "openai":
        return OpenAIProvider(
            model=cfg.model,
            api_key=cfg.api_key,
            base_url=cfg.base_url,
            timeout_s=cfg.timeout_s,
            max_retries=cfg.max_retries,
        )

    raise ValueError(f"Unsupported AI_PROVIDER='{cfg.provider}'")
