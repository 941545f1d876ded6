# app/api/deps.py
"""
Shared route dependencies.

`Services` is built once in the app lifespan and stored on app.state; tests
swap in a container of in-memory doubles.
"""
import asyncio
from dataclasses import dataclass, field
from typing import Coroutine, Set

from fastapi import Depends, HTTPException, Request

from app.core.auth import AuthenticatedUser, require_user
from app.core.logging import log
from app.db.store import ProjectStore
from app.lib.blob_store import S3BlobStore
from app.llm import ModelStream, stream_chat
from app.models import Project
from app.sandbox import SandboxRegistry
from app.search import SerperClient
from app.tools import ToolDispatcher


@dataclass
class Services:
    store: ProjectStore
    blobs: S3BlobStore
    sandboxes: SandboxRegistry
    search: SerperClient
    model_stream: ModelStream = stream_chat
    tasks: Set[asyncio.Task] = field(default_factory=set)

    def dispatcher(self, project_id: str) -> ToolDispatcher:
        return ToolDispatcher(project_id, self.store, self.blobs, self.sandboxes, self.search)

    def spawn(self, coro: Coroutine, name: str) -> asyncio.Task:
        """Run work detached from the request; failures are logged, not lost."""
        task = asyncio.create_task(coro, name=name)
        self.tasks.add(task)
        task.add_done_callback(self._finished)
        return task

    def _finished(self, task: asyncio.Task) -> None:
        self.tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            log("STREAM", f"Background task {task.get_name()} failed: {task.exception()!r}")


def get_services(request: Request) -> Services:
    return request.app.state.services


async def owned_project(
    project_id: str,
    user: AuthenticatedUser = Depends(require_user),
    services: Services = Depends(get_services),
) -> Project:
    """Load a project and check it belongs to the caller."""
    project = await services.store.get_project(project_id)
    if not project:
        raise HTTPException(status_code=404, detail="Project not found")
    if project.user_id != user.uid:
        raise HTTPException(status_code=403, detail="Forbidden: Access denied")
    return project
