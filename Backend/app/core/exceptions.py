# app/core/exceptions.py
"""
Custom exceptions for the application.
"""
from typing import Optional, Dict, Any


class VibeCodeError(Exception):
    """Base exception for all Vibe Code errors."""
    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class LLMError(VibeCodeError):
    """LLM provider error."""
    def __init__(self, provider: str, message: str):
        super().__init__(
            f"LLM error ({provider}): {message}",
            {"provider": provider}
        )
        self.provider = provider


class RateLimitError(LLMError):
    """Provider answered 429."""
    def __init__(self, provider: str):
        super().__init__(provider, "Rate limited by provider (429)")


class ModelCallError(VibeCodeError):
    """The model stream failed before producing any fragment. Fatal for the turn."""
    def __init__(self, message: str, cause: Optional[BaseException] = None):
        super().__init__(message, {"cause": type(cause).__name__ if cause else None})
        self.cause = cause


class SandboxError(VibeCodeError):
    """Remote sandbox error."""
    def __init__(self, project_id: str, message: str):
        super().__init__(
            f"Sandbox error for {project_id}: {message}",
            {"project_id": project_id}
        )
        self.project_id = project_id


class StorageError(VibeCodeError):
    """Blob store error."""
    def __init__(self, key: str, message: str):
        super().__init__(
            f"Storage error for {key}: {message}",
            {"key": key}
        )
        self.key = key


class SearchError(VibeCodeError):
    """Web search provider error."""
    pass


class DispatchError(VibeCodeError):
    """A tool side effect failed. Recovered per call, never aborts a turn."""
    def __init__(self, tool: str, message: str):
        super().__init__(
            f"{tool} failed: {message}",
            {"tool": tool}
        )
        self.tool = tool
        self.reason = message


class AuthError(VibeCodeError):
    """Identity token could not be verified."""
    pass
