# app/llm/providers/bedrock.py
"""
Amazon Bedrock provider implementation (Converse streaming API).

boto3 is synchronous: the request and every read from the event stream run on
a worker thread, the same way the S3 blob store does.
"""
import asyncio
from typing import Any, AsyncIterator, Dict, List, Optional

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from app.core.config import settings
from app.core.exceptions import LLMError, RateLimitError
from app.core.logging import log


THROTTLING_CODES = {"ThrottlingException", "TooManyRequestsException", "ServiceQuotaExceededException"}

_client = None


def get_client():
    global _client
    if _client is None:
        _client = boto3.client(
            "bedrock-runtime",
            region_name=settings.llm.bedrock_region,
            aws_access_key_id=settings.storage.access_key_id,
            aws_secret_access_key=settings.storage.secret_access_key,
        )
    return _client


def to_messages(messages: List[Dict[str, str]]) -> List[Dict[str, Any]]:
    """Chat history in Converse format. System turns travel separately."""
    return [
        {
            "role": "assistant" if m["role"] == "assistant" else "user",
            "content": [{"text": m["content"]}],
        }
        for m in messages
        if m["role"] != "system"
    ]


def extract_text(event: Dict[str, Any]) -> str:
    delta = (event.get("contentBlockDelta") or {}).get("delta") or {}
    return delta.get("text") or ""


def _to_llm_error(e: Exception) -> LLMError:
    if isinstance(e, ClientError):
        code = e.response.get("Error", {}).get("Code", "")
        if code in THROTTLING_CODES:
            return RateLimitError("bedrock")
        return LLMError("bedrock", f"API error {code}: {e}")
    return LLMError("bedrock", f"Client error: {e}")


async def stream(
    messages: List[Dict[str, str]],
    system_prompt: str = "",
    model: Optional[str] = None,
    temperature: Optional[float] = None,
    max_tokens: Optional[int] = None,
) -> AsyncIterator[str]:
    """
    Stream a Bedrock Converse response as text fragments.

    Raises:
        RateLimitError when throttled, LLMError on any other API failure
    """
    request: Dict[str, Any] = {
        "modelId": model or settings.llm.bedrock_model,
        "messages": to_messages(messages),
        "inferenceConfig": {
            "maxTokens": max_tokens or settings.llm.max_output_tokens,
            "temperature": settings.llm.temperature if temperature is None else temperature,
        },
    }
    if system_prompt:
        request["system"] = [{"text": system_prompt}]

    client = get_client()
    try:
        response = await asyncio.to_thread(client.converse_stream, **request)
        events = iter(response["stream"])
        while True:
            event = await asyncio.to_thread(next, events, None)
            if event is None:
                break
            if "messageStop" in event:
                log("LLM", f"Bedrock stream stopped: {event['messageStop'].get('stopReason')}")
                continue
            text = extract_text(event)
            if text:
                yield text
    except (ClientError, BotoCoreError) as e:
        raise _to_llm_error(e) from e
