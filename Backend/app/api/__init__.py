"""
API module - All route handlers.
"""
from . import health, auth, projects, files, messages, sandbox

__all__ = [
    "health",
    "auth",
    "projects",
    "files",
    "messages",
    "sandbox",
]
