# app/api/projects.py
"""
Project management routes.

Creating a project also tries to start its sandbox; a sandbox failure is
logged and the project is returned without one.
"""
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field

from app.api.deps import Services, get_services, owned_project
from app.core.auth import AuthenticatedUser, require_user
from app.core.exceptions import SandboxError, StorageError
from app.core.logging import log
from app.lib.blob_store import project_prefix
from app.models import Project


router = APIRouter(prefix="/api/projects", tags=["Projects"])


class CreateProjectRequest(BaseModel):
    name: str = Field(min_length=1, max_length=120)
    description: Optional[str] = None


def project_to_dict(project: Project) -> Dict[str, Any]:
    return {
        "id": project.id,
        "userId": project.user_id,
        "name": project.name,
        "description": project.description,
        "s3Prefix": project.s3_prefix,
        "sandboxId": project.sandbox_id,
        "sandboxUrl": project.sandbox_url,
        "workflowCommand": project.workflow_command,
        "createdAt": project.created_at.isoformat(),
        "updatedAt": project.updated_at.isoformat(),
    }


@router.get("")
async def list_projects(
    user: AuthenticatedUser = Depends(require_user),
    services: Services = Depends(get_services),
):
    projects = await services.store.list_projects(user.uid)
    return [project_to_dict(p) for p in projects]


@router.get("/{project_id}")
async def get_project(project: Project = Depends(owned_project)):
    return project_to_dict(project)


@router.post("")
async def create_project(
    data: CreateProjectRequest,
    user: AuthenticatedUser = Depends(require_user),
    services: Services = Depends(get_services),
):
    project = await services.store.create_project(user.uid, data.name, data.description)
    log("DB", f"Project created: {project.name}", project_id=project.id)

    try:
        sandbox = await services.sandboxes.create(project.id)
    except SandboxError as e:
        log("SANDBOX", f"Failed to create sandbox: {e.message}", project_id=project.id)
        return project_to_dict(project)

    updated = await services.store.update_project(
        project.id,
        sandbox_id=sandbox.sandbox_id,
        sandbox_url=sandbox.preview_url,
    )
    return project_to_dict(updated or project)


@router.delete("/{project_id}")
async def delete_project(
    project: Project = Depends(owned_project),
    services: Services = Depends(get_services),
):
    try:
        await services.blobs.delete_prefix(project_prefix(project.id))
    except StorageError as e:
        raise HTTPException(status_code=500, detail=e.message)

    await services.sandboxes.dispose(project.id)
    await services.store.delete_project(project.id)
    return {"success": True}
