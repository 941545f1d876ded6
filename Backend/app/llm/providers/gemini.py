# app/llm/providers/gemini.py
"""
Google Gemini provider implementation (streaming).
"""
import json
from typing import AsyncIterator, Dict, List, Optional

import aiohttp

from app.core.config import settings
from app.core.exceptions import LLMError, RateLimitError
from app.core.logging import log


API_URL = "https://generativelanguage.googleapis.com/v1beta/models"


def to_contents(messages: List[Dict[str, str]]) -> List[Dict]:
    """Gemini calls the assistant role 'model' and has no system turns."""
    return [
        {
            "role": "model" if msg["role"] == "assistant" else "user",
            "parts": [{"text": msg["content"]}],
        }
        for msg in messages
        if msg["role"] != "system"
    ]


def extract_text(data: Dict) -> str:
    candidates = data.get("candidates") or []
    if not candidates:
        return ""
    parts = candidates[0].get("content", {}).get("parts") or []
    return "".join(part.get("text", "") for part in parts)


async def stream(
    messages: List[Dict[str, str]],
    system_prompt: str = "",
    model: Optional[str] = None,
    temperature: Optional[float] = None,
    max_tokens: Optional[int] = None,
) -> AsyncIterator[str]:
    """
    Stream a Gemini completion as text fragments.

    Raises:
        RateLimitError on 429, LLMError on any other non-200 answer
    """
    api_key = settings.llm.gemini_api_key
    if not api_key:
        raise LLMError("gemini", "GEMINI_API_KEY not configured")

    model = model or settings.llm.gemini_model
    url = f"{API_URL}/{model}:streamGenerateContent?alt=sse&key={api_key}"

    payload = {
        "contents": to_contents(messages),
        "generationConfig": {
            "temperature": settings.llm.temperature if temperature is None else temperature,
            "maxOutputTokens": max_tokens or settings.llm.max_output_tokens,
        },
        # Search grounding
        "tools": [{"google_search": {}}],
    }
    if system_prompt:
        payload["systemInstruction"] = {"parts": [{"text": system_prompt}]}

    timeout = aiohttp.ClientTimeout(total=settings.llm.request_timeout)
    async with aiohttp.ClientSession(timeout=timeout) as session:
        async with session.post(url, json=payload) as response:
            if response.status == 429:
                text = await response.text()
                log("LLM", f"Gemini 429: {text[:500]}")
                raise RateLimitError("gemini")

            if response.status != 200:
                text = await response.text()
                log("LLM", f"Gemini error {response.status}: {text[:500]}")
                raise LLMError("gemini", f"API error {response.status}: {text[:200]}")

            async for raw in response.content:
                line = raw.decode("utf-8").strip()
                if not line.startswith("data:"):
                    continue
                try:
                    data = json.loads(line[5:].strip())
                except json.JSONDecodeError:
                    log("LLM", f"Skipping undecodable Gemini event: {line[:120]}")
                    continue
                text = extract_text(data)
                if text:
                    yield text
