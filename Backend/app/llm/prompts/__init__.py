# app/llm/prompts/__init__.py
"""
Agent prompts.
"""
from .builder import BUILDER_PROMPT

__all__ = ["BUILDER_PROMPT"]
