# app/db/store.py
"""
ProjectStore - persistence for users, projects, files and chat messages.

Every read/write the API and the chat orchestrator perform goes through this
class, so tests can swap it for an in-memory double with the same methods.
"""
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from app.core.logging import log
from app.models import (
    User,
    Project,
    ProjectFile,
    ChatMessage,
    ActionRecord,
    ToolCallRecord,
    Attachment,
)


class ProjectStore:
    """Beanie-backed repository. Stateless; safe to share across requests."""

    # =========================================================================
    # USERS
    # =========================================================================

    async def upsert_user(
        self,
        user_id: str,
        email: str,
        display_name: Optional[str] = None,
        photo_url: Optional[str] = None,
    ) -> User:
        user = await User.get(user_id)
        if user:
            user.email = email
            user.display_name = display_name
            user.photo_url = photo_url
            await user.save()
            return user

        user = User(id=user_id, email=email, display_name=display_name, photo_url=photo_url)
        await user.insert()
        return user

    # =========================================================================
    # PROJECTS
    # =========================================================================

    async def create_project(self, user_id: str, name: str, description: Optional[str] = None) -> Project:
        project = Project(user_id=user_id, name=name, description=description)
        project.s3_prefix = f"projects/{project.id}"
        await project.insert()
        return project

    async def get_project(self, project_id: str) -> Optional[Project]:
        return await Project.get(project_id)

    async def list_projects(self, user_id: str) -> List[Project]:
        return await Project.find(Project.user_id == user_id).sort("-updated_at").to_list()

    async def update_project(self, project_id: str, **fields: Any) -> Optional[Project]:
        project = await Project.get(project_id)
        if not project:
            return None
        for key, value in fields.items():
            setattr(project, key, value)
        project.updated_at = datetime.now(timezone.utc)
        await project.save()
        return project

    async def delete_project(self, project_id: str) -> bool:
        """Delete a project and cascade to its files and messages."""
        project = await Project.get(project_id)
        if not project:
            return False
        await ProjectFile.find(ProjectFile.project_id == project_id).delete()
        await ChatMessage.find(ChatMessage.project_id == project_id).delete()
        await project.delete()
        log("DB", "Project deleted with files and messages", project_id=project_id)
        return True

    # =========================================================================
    # FILES
    # =========================================================================

    async def list_files(self, project_id: str) -> List[ProjectFile]:
        return await ProjectFile.find(ProjectFile.project_id == project_id).sort("+path").to_list()

    async def get_file(self, file_id: str) -> Optional[ProjectFile]:
        return await ProjectFile.get(file_id)

    async def get_file_by_path(self, project_id: str, path: str) -> Optional[ProjectFile]:
        return await ProjectFile.find_one(
            ProjectFile.project_id == project_id,
            ProjectFile.path == path,
        )

    async def upsert_file(
        self,
        project_id: str,
        path: str,
        s3_key: str,
        size: int,
        mime_type: Optional[str] = None,
    ) -> ProjectFile:
        """Create the record if the path is unseen, else update its pointer and size."""
        existing = await self.get_file_by_path(project_id, path)
        if existing:
            existing.s3_key = s3_key
            existing.size = size
            existing.mime_type = mime_type
            existing.updated_at = datetime.now(timezone.utc)
            await existing.save()
            return existing

        record = ProjectFile(
            project_id=project_id,
            path=path,
            s3_key=s3_key,
            size=size,
            mime_type=mime_type,
        )
        await record.insert()
        return record

    async def delete_file(self, file_id: str) -> bool:
        record = await ProjectFile.get(file_id)
        if not record:
            return False
        await record.delete()
        return True

    # =========================================================================
    # MESSAGES
    # =========================================================================

    async def create_message(
        self,
        project_id: str,
        role: str,
        content: str,
        tool_calls: Optional[List[ToolCallRecord]] = None,
        actions: Optional[List[ActionRecord]] = None,
        attachments: Optional[List[Attachment]] = None,
    ) -> ChatMessage:
        message = ChatMessage(
            project_id=project_id,
            role=role,
            content=content,
            tool_calls=tool_calls or None,
            actions=actions or None,
            attachments=attachments or None,
        )
        await message.insert()
        return message

    async def list_messages(self, project_id: str, limit: Optional[int] = None) -> List[ChatMessage]:
        """Messages in chronological order. With `limit`, only the most recent ones."""
        if limit is None:
            return await ChatMessage.find(ChatMessage.project_id == project_id).sort("+created_at").to_list()

        recent = await (
            ChatMessage.find(ChatMessage.project_id == project_id)
            .sort("-created_at")
            .limit(limit)
            .to_list()
        )
        recent.reverse()
        return recent


def file_summary(record: ProjectFile) -> Dict[str, Any]:
    return {"id": record.id, "path": record.path, "size": record.size}
