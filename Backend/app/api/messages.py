# app/api/messages.py
"""
Chat routes.

POST /api/messages/stream runs one chat turn. The orchestrator runs as its own
task so a client that goes away only stops delivery; the turn still finishes
and is persisted.
"""
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import StreamingResponse
from pydantic import BaseModel, Field

from app.api.deps import Services, get_services, owned_project
from app.core.auth import AuthenticatedUser, require_user
from app.models import Attachment, ChatMessage, Project
from app.orchestration import ClientChannel, StreamOrchestrator


router = APIRouter(prefix="/api/messages", tags=["Messages"])


class StreamMessageRequest(BaseModel):
    projectId: str
    content: str = Field(min_length=1)
    attachments: Optional[List[Attachment]] = None


def message_to_dict(message: ChatMessage) -> Dict[str, Any]:
    return {
        "id": message.id,
        "projectId": message.project_id,
        "role": message.role,
        "content": message.content,
        "toolCalls": [t.model_dump() for t in message.tool_calls] if message.tool_calls else None,
        "actions": [a.model_dump() for a in message.actions] if message.actions else None,
        "attachments": [a.model_dump() for a in message.attachments] if message.attachments else None,
        "createdAt": message.created_at.isoformat(),
    }


@router.get("/{project_id}")
async def list_messages(
    project: Project = Depends(owned_project),
    services: Services = Depends(get_services),
):
    messages = await services.store.list_messages(project.id)
    return [message_to_dict(m) for m in messages]


@router.post("/stream")
async def stream_message(
    data: StreamMessageRequest,
    request: Request,
    user: AuthenticatedUser = Depends(require_user),
    services: Services = Depends(get_services),
):
    project = await services.store.get_project(data.projectId)
    if not project:
        raise HTTPException(status_code=404, detail="Project not found")
    if project.user_id != user.uid:
        raise HTTPException(status_code=403, detail="Forbidden: Access denied")

    channel = ClientChannel(is_disconnected=request.is_disconnected, project_id=project.id)
    orchestrator = StreamOrchestrator(
        project_id=project.id,
        store=services.store,
        sandboxes=services.sandboxes,
        dispatcher=services.dispatcher(project.id),
        channel=channel,
        model_stream=services.model_stream,
    )
    services.spawn(orchestrator.run(data.content, data.attachments), name=f"turn-{project.id[:8]}")

    return StreamingResponse(
        channel.frames(),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",
        },
    )
