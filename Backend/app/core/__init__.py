# app/core/__init__.py
"""
Core module - configuration, logging and shared exceptions.
"""
from .config import settings
from .exceptions import (
    VibeCodeError,
    LLMError,
    RateLimitError,
    ModelCallError,
    SandboxError,
    StorageError,
    SearchError,
    DispatchError,
    AuthError,
)

__all__ = [
    # Config
    "settings",
    # Exceptions
    "VibeCodeError",
    "LLMError",
    "RateLimitError",
    "ModelCallError",
    "SandboxError",
    "StorageError",
    "SearchError",
    "DispatchError",
    "AuthError",
]
