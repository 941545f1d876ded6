# app/llm/providers/openrouter.py
"""
OpenRouter provider implementation (OpenAI-compatible streaming).
"""
import json
from typing import AsyncIterator, Dict, List, Optional

import aiohttp

from app.core.config import settings
from app.core.exceptions import LLMError, RateLimitError
from app.core.logging import log


API_URL = "https://openrouter.ai/api/v1/chat/completions"


def extract_delta(data: Dict) -> str:
    choices = data.get("choices") or []
    if not choices:
        return ""
    return (choices[0].get("delta") or {}).get("content") or ""


async def stream(
    messages: List[Dict[str, str]],
    system_prompt: str = "",
    model: Optional[str] = None,
    temperature: Optional[float] = None,
    max_tokens: Optional[int] = None,
) -> AsyncIterator[str]:
    """
    Stream an OpenRouter chat completion as text fragments.

    Raises:
        RateLimitError on 429, LLMError on any other non-200 answer
    """
    api_key = settings.llm.openrouter_api_key
    if not api_key:
        raise LLMError("openrouter", "OPENROUTER_API_KEY not configured")

    full_messages = list(messages)
    if system_prompt:
        full_messages = [{"role": "system", "content": system_prompt}] + full_messages

    payload = {
        "model": model or settings.llm.openrouter_model,
        "messages": full_messages,
        "temperature": settings.llm.temperature if temperature is None else temperature,
        "max_tokens": max_tokens or settings.llm.max_output_tokens,
        "stream": True,
        "provider": {"sort": "throughput"},
    }

    headers = {
        "Authorization": f"Bearer {api_key}",
        "X-Title": "Vibe Code Platform",
        "Content-Type": "application/json",
    }

    timeout = aiohttp.ClientTimeout(total=settings.llm.request_timeout)
    async with aiohttp.ClientSession(timeout=timeout) as session:
        async with session.post(API_URL, json=payload, headers=headers) as response:
            if response.status == 429:
                raise RateLimitError("openrouter")

            if response.status != 200:
                text = await response.text()
                log("LLM", f"OpenRouter error {response.status}: {text[:500]}")
                raise LLMError("openrouter", f"API error {response.status}: {text[:200]}")

            async for raw in response.content:
                line = raw.decode("utf-8").strip()
                if not line.startswith("data:"):
                    continue
                data = line[5:].strip()
                if data == "[DONE]":
                    break
                try:
                    parsed = json.loads(data)
                except json.JSONDecodeError:
                    log("LLM", f"Skipping undecodable OpenRouter event: {data[:120]}")
                    continue
                content = extract_delta(parsed)
                if content:
                    yield content
