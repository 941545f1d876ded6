# app/llm/__init__.py
"""
LLM module - Unified streaming interface for all LLM providers.
"""
from .adapter import LLMAdapter, ChatMessages, ModelStream, stream_chat
from .prompts import BUILDER_PROMPT

__all__ = ["LLMAdapter", "ChatMessages", "ModelStream", "stream_chat", "BUILDER_PROMPT"]
