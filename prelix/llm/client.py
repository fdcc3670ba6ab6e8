"""Chat-completion client for the OpenAI-compatible language-model backend."""

from __future__ import annotations

from functools import lru_cache

import httpx
import structlog

from prelix.config import Settings, get_settings
from prelix.core.errors import BackendUnavailableError

logger = structlog.get_logger()


class LLMClient:
    """Thin async wrapper over ``POST {base}/chat/completions``."""

    def __init__(self, settings: Settings) -> None:
        self.base_url = settings.llm_base_url.rstrip("/")
        self.api_key = settings.openai_api_key
        self.default_model = settings.llm_model
        self.timeout = settings.llm_timeout_seconds
        self.json_mode = settings.llm_json_mode

    async def complete(
        self,
        system: str | None,
        user: str,
        temperature: float = 0.3,
        max_tokens: int = 800,
        json_mode: bool = False,
        model: str | None = None,
    ) -> str:
        """Send one exchange and return the assistant text.

        Raises BackendUnavailableError on a missing key, transport error,
        timeout, non-2xx status, or a response without a message.
        """
        if not self.api_key:
            raise BackendUnavailableError("Language-model API key not configured")

        messages = [{"role": "user", "content": user}]
        if system:
            messages.insert(0, {"role": "system", "content": system})

        payload: dict = {
            "model": model or self.default_model,
            "messages": messages,
            "temperature": temperature,
            "max_tokens": max_tokens,
        }
        if json_mode:
            payload["response_format"] = {"type": "json_object"}

        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                resp = await client.post(
                    f"{self.base_url}/chat/completions",
                    headers={"Authorization": f"Bearer {self.api_key}"},
                    json=payload,
                )
                resp.raise_for_status()
                data = resp.json()
        except httpx.TimeoutException as e:
            logger.warning("llm.timeout", timeout=self.timeout)
            raise BackendUnavailableError("Language-model backend timed out") from e
        except (httpx.HTTPError, ValueError) as e:
            logger.warning("llm.call_failed", error=str(e))
            raise BackendUnavailableError("Language-model backend request failed") from e

        try:
            content = data["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError) as e:
            logger.warning("llm.empty_response")
            raise BackendUnavailableError("Language-model backend returned no message") from e

        logger.debug("llm.completed", model=payload["model"], chars=len(content or ""))
        return content or ""


@lru_cache
def get_llm_client() -> LLMClient:
    """Get cached backend client."""
    return LLMClient(get_settings())
