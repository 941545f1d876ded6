# app/api/sandbox.py
"""
E2B sandbox control routes.
"""
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from app.api.deps import Services, get_services, owned_project
from app.core.exceptions import SandboxError, StorageError
from app.core.logging import log
from app.models import Project
from app.sandbox import ProjectSandbox


router = APIRouter(prefix="/api/sandbox", tags=["Sandbox"])


class ExecuteRequest(BaseModel):
    code: str
    language: Optional[str] = "python"


class ShellRequest(BaseModel):
    command: str
    timeout: Optional[float] = None


async def _live_sandbox(project: Project, services: Services) -> ProjectSandbox:
    try:
        sandbox = await services.sandboxes.get_or_create(project.id, project.sandbox_id)
    except SandboxError as e:
        raise HTTPException(status_code=503, detail=e.message)

    if sandbox.sandbox_id != project.sandbox_id:
        await services.store.update_project(
            project.id,
            sandbox_id=sandbox.sandbox_id,
            sandbox_url=sandbox.preview_url,
        )
    return sandbox


@router.get("/{project_id}/url")
async def get_sandbox_url(
    project: Project = Depends(owned_project),
    services: Services = Depends(get_services),
):
    sandbox = await _live_sandbox(project, services)
    return {"url": sandbox.preview_url}


@router.get("/{project_id}/status")
async def get_sandbox_status(
    project: Project = Depends(owned_project),
    services: Services = Depends(get_services),
):
    state = await services.sandboxes.status(project.id, project.sandbox_id)
    return state.to_dict()


@router.get("/{project_id}/validate")
async def validate_sandbox(
    project: Project = Depends(owned_project),
    services: Services = Depends(get_services),
):
    sandbox = services.sandboxes.get(project.id)
    return {"isValid": bool(sandbox) and await sandbox.is_alive()}


@router.post("/{project_id}/recreate")
async def recreate_sandbox(
    project: Project = Depends(owned_project),
    services: Services = Depends(get_services),
):
    """Fresh sandbox, every stored file copied in, saved workflow replayed."""
    try:
        sandbox = await services.sandboxes.create(project.id)
    except SandboxError as e:
        raise HTTPException(status_code=503, detail=e.message)

    await services.store.update_project(
        project.id,
        sandbox_id=sandbox.sandbox_id,
        sandbox_url=sandbox.preview_url,
    )

    synced = 0
    records = await services.store.list_files(project.id)
    for record in records:
        try:
            content = await services.blobs.get(record.s3_key)
            await sandbox.write_file(record.path, content)
            synced += 1
        except (StorageError, SandboxError) as e:
            log("SANDBOX", f"Failed to sync {record.path}: {e.message}", project_id=project.id)

    workflow_started = False
    if project.workflow_command:
        await sandbox.start_background(project.workflow_command)
        workflow_started = True
        log("SANDBOX", f"Replayed workflow: {project.workflow_command}", project_id=project.id)

    return {
        "url": sandbox.preview_url,
        "sandboxId": sandbox.sandbox_id,
        "filesSynced": synced,
        "filesTotal": len(records),
        "workflowStarted": workflow_started,
    }


@router.post("/{project_id}/workflow/run")
async def run_workflow(
    project: Project = Depends(owned_project),
    services: Services = Depends(get_services),
):
    if not project.workflow_command:
        raise HTTPException(status_code=404, detail="No workflow configured")

    sandbox = await _live_sandbox(project, services)
    await sandbox.start_background(project.workflow_command)
    return {"command": project.workflow_command, "url": sandbox.preview_url}


@router.post("/{project_id}/execute")
async def execute_code(
    data: ExecuteRequest,
    project: Project = Depends(owned_project),
    services: Services = Depends(get_services),
):
    sandbox = await _live_sandbox(project, services)
    result = await sandbox.run_code(data.code, data.language or "python")
    return result.to_dict()


@router.post("/{project_id}/shell")
async def run_shell(
    data: ShellRequest,
    project: Project = Depends(owned_project),
    services: Services = Depends(get_services),
):
    sandbox = await _live_sandbox(project, services)
    result = await sandbox.run_shell(data.command, timeout=data.timeout)
    return result.to_dict()
