from datetime import datetime, timezone
from typing import Optional
from uuid import uuid4
from beanie import Document, Indexed
from pydantic import Field


class Project(Document):
    """An app a user is building. Owns files, messages and one sandbox."""
    id: str = Field(default_factory=lambda: str(uuid4()))
    user_id: Indexed(str)
    name: str
    description: Optional[str] = None
    # Folder path in the bucket for this project
    s3_prefix: Optional[str] = None
    sandbox_id: Optional[str] = None
    sandbox_url: Optional[str] = None
    # Replayed automatically after sandbox recreation (e.g. "npm run dev")
    workflow_command: Optional[str] = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    class Settings:
        name = "projects"
