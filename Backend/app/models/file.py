from datetime import datetime, timezone
from typing import Optional
from uuid import uuid4
from beanie import Document, Indexed
from pydantic import Field


class ProjectFile(Document):
    """Tracks one file stored in the blob store for a project."""
    id: str = Field(default_factory=lambda: str(uuid4()))
    project_id: Indexed(str)
    # Relative to the project root
    path: str
    s3_key: str
    size: Optional[int] = None
    mime_type: Optional[str] = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    class Settings:
        name = "files"
