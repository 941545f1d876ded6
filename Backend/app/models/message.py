from datetime import datetime, timezone
from typing import Any, Dict, List, Literal, Optional
from uuid import uuid4
from beanie import Document, Indexed
from pydantic import BaseModel, Field


Role = Literal["user", "assistant"]
ActionStatus = Literal["in_progress", "completed", "error"]
ToolCallStatus = Literal["in_progress", "completed", "error"]


class ActionRecord(BaseModel):
    """A short progress announcement emitted by the model."""
    description: str
    status: ActionStatus = "in_progress"


class ToolCallRecord(BaseModel):
    """
    One executed tool call.

    Only ever appended after the side effect returned. `in_progress` marks a
    detached long-running command whose launch was acknowledged.
    """
    name: str
    arguments: Dict[str, Any] = Field(default_factory=dict)
    summary: str
    result: Dict[str, Any] = Field(default_factory=dict)
    status: ToolCallStatus = "completed"


class Attachment(BaseModel):
    name: str
    url: str
    mime_type: Optional[str] = None


class ChatMessage(Document):
    """One user or assistant turn. Immutable once inserted."""
    id: str = Field(default_factory=lambda: str(uuid4()))
    project_id: Indexed(str)
    role: Role
    content: str
    tool_calls: Optional[List[ToolCallRecord]] = None
    actions: Optional[List[ActionRecord]] = None
    attachments: Optional[List[Attachment]] = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    class Settings:
        name = "messages"
