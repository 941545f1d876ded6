# app/llm/adapter.py
"""
Unified LLM adapter - single streaming interface for all providers.

NOTE: No fallback logic - if the selected provider fails, the turn fails.
Transport errors are normalized to LLMError so callers only catch one type.
"""
import asyncio
from typing import AsyncIterator, Callable, Dict, List, Optional

import aiohttp

from app.core.config import settings
from app.core.exceptions import LLMError
from app.core.logging import log


ChatMessages = List[Dict[str, str]]  # [{"role": "user"|"assistant", "content": str}]
ModelStream = Callable[[ChatMessages, str], AsyncIterator[str]]


class LLMAdapter:
    """
    Unified adapter for LLM providers.

    Handles:
    - Provider selection
    - SINGLE EXECUTION (no retry, no fallback)
    - Error normalization (raises LLMError)
    """

    def __init__(self, provider: Optional[str] = None):
        self.default_provider = provider or settings.llm.default_provider

    async def stream(
        self,
        messages: ChatMessages,
        system_prompt: str = "",
        provider: Optional[str] = None,
        model: Optional[str] = None,
    ) -> AsyncIterator[str]:
        """
        Yield text fragments from the provider as they arrive.

        Raises:
            LLMError: if the provider is unknown or the call fails
        """
        provider = provider or self.default_provider
        stream_func = self._resolve(provider)
        log("LLM", f"Streaming from {provider} ({len(messages)} messages)")

        try:
            async for fragment in stream_func(
                messages=messages,
                system_prompt=system_prompt,
                model=model,
            ):
                yield fragment
        except LLMError:
            raise
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise LLMError(provider, f"Provider error: {e}") from e

    def _resolve(self, provider: str):
        # Import here to avoid circular imports
        from .providers import bedrock, gemini, openrouter

        provider_map = {
            "gemini": gemini.stream,
            "openrouter": openrouter.stream,
            "bedrock": bedrock.stream,
        }

        if provider not in provider_map:
            raise LLMError(provider, f"Unknown provider: {provider}")
        return provider_map[provider]


# Singleton instance
_adapter = LLMAdapter()


def stream_chat(messages: ChatMessages, system_prompt: str = "") -> AsyncIterator[str]:
    """Convenience entry point matching the ModelStream signature."""
    return _adapter.stream(messages, system_prompt)
