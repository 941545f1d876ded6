# app/llm/providers/__init__.py
"""
LLM Providers - Individual provider implementations.
"""
from . import bedrock, gemini, openrouter

__all__ = ["bedrock", "gemini", "openrouter"]
