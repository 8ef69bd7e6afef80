"""Text-completion service backed by an OpenAI-compatible (OpenRouter) endpoint."""
from __future__ import annotations

import time
from typing import Any, Protocol

from research_engine.config import settings
from research_engine.services.logger import log_llm_call


class TextCompletionService(Protocol):
    """Prompt-in, text-out. Callers treat the result as possibly malformed JSON."""

    async def generate(
        self,
        system_prompt: str,
        user_prompt: str,
        *,
        temperature: float,
        max_output_tokens: int,
        caller: str = "unknown",
    ) -> str: ...


class OpenRouterCompletionService:
    def __init__(self, openai_client: Any, model: str):
        self._client = openai_client
        self.model = model

    async def generate(
        self,
        system_prompt: str,
        user_prompt: str,
        *,
        temperature: float,
        max_output_tokens: int,
        caller: str = "unknown",
    ) -> str:
        start = time.monotonic()
        try:
            response = await self._client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": system_prompt},
                    {"role": "user", "content": user_prompt},
                ],
                max_tokens=max_output_tokens,
                temperature=temperature,
            )
        except Exception as exc:
            log_llm_call(
                model=self.model,
                caller=caller,
                duration_ms=int((time.monotonic() - start) * 1000),
                status="error",
                error=str(exc),
            )
            raise

        usage = getattr(response, "usage", None)
        log_llm_call(
            model=self.model,
            caller=caller,
            input_tokens=getattr(usage, "prompt_tokens", 0) or 0,
            output_tokens=getattr(usage, "completion_tokens", 0) or 0,
            duration_ms=int((time.monotonic() - start) * 1000),
        )

        choices = getattr(response, "choices", None) or []
        if not choices:
            return ""
        return getattr(choices[0].message, "content", None) or ""


def get_model() -> str:
    """Get the active OpenRouter model id."""
    if settings.openrouter_model:
        return settings.openrouter_model
    return settings.default_model


def get_client():
    """Get an OpenRouter client via the OpenAI-compatible SDK."""
    from openai import AsyncOpenAI

    base_url = settings.openrouter_base_url.strip() or "https://openrouter.ai/api/v1"
    return AsyncOpenAI(
        api_key=settings.openrouter_api_key,
        base_url=base_url,
        timeout=settings.llm_timeout_seconds,
    )


def get_completion_service(model: str | None = None) -> OpenRouterCompletionService:
    return OpenRouterCompletionService(get_client(), model or get_model())
