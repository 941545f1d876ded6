# app/models/__init__.py
"""
Database documents.
"""
from .user import User
from .project import Project
from .file import ProjectFile
from .message import ChatMessage, ActionRecord, ToolCallRecord, Attachment

DOCUMENT_MODELS = [User, Project, ProjectFile, ChatMessage]

__all__ = [
    "User",
    "Project",
    "ProjectFile",
    "ChatMessage",
    "ActionRecord",
    "ToolCallRecord",
    "Attachment",
    "DOCUMENT_MODELS",
]
