# app/api/files.py
"""
Project file routes.

Saves and deletes go through the same write-through / delete-through paths
the chat tools use, so the file index, storage and sandbox stay consistent.
"""
from datetime import datetime, timezone
from typing import Any, Dict

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from app.api.deps import Services, get_services, owned_project
from app.core.exceptions import DispatchError, StorageError
from app.core.logging import log
from app.models import Project, ProjectFile
from app.tools.dispatcher import normalize_path


router = APIRouter(prefix="/api/files", tags=["Files"])


class SaveFileRequest(BaseModel):
    path: str
    content: str


def file_to_dict(record: ProjectFile) -> Dict[str, Any]:
    return {
        "id": record.id,
        "projectId": record.project_id,
        "path": record.path,
        "s3Key": record.s3_key,
        "size": record.size,
        "mimeType": record.mime_type,
        "createdAt": record.created_at.isoformat(),
        "updatedAt": record.updated_at.isoformat(),
    }


@router.get("/{project_id}")
async def list_files(
    project: Project = Depends(owned_project),
    services: Services = Depends(get_services),
):
    records = await services.store.list_files(project.id)
    return [file_to_dict(r) for r in records]


@router.get("/{project_id}/download")
async def download_project(
    project: Project = Depends(owned_project),
    services: Services = Depends(get_services),
):
    """Every file's content in one JSON document."""
    contents: Dict[str, str] = {}
    for record in await services.store.list_files(project.id):
        try:
            contents[record.path] = (await services.blobs.get(record.s3_key)).decode("utf-8", errors="replace")
        except StorageError as e:
            log("STORAGE", f"Skipping {record.path} in export: {e.message}", project_id=project.id)

    filename = f"{project.name or 'project'}-source.json"
    return JSONResponse(
        {
            "projectName": project.name or "project",
            "files": contents,
            "exportedAt": datetime.now(timezone.utc).isoformat(),
        },
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@router.get("/{project_id}/{file_id}")
async def get_file(
    file_id: str,
    project: Project = Depends(owned_project),
    services: Services = Depends(get_services),
):
    record = await services.store.get_file(file_id)
    if not record or record.project_id != project.id:
        raise HTTPException(status_code=404, detail="File not found")

    try:
        content = await services.blobs.get(record.s3_key)
    except StorageError as e:
        raise HTTPException(status_code=500, detail=e.message)
    return {**file_to_dict(record), "content": content.decode("utf-8", errors="replace")}


@router.post("/{project_id}")
async def save_file(
    data: SaveFileRequest,
    project: Project = Depends(owned_project),
    services: Services = Depends(get_services),
):
    try:
        path = normalize_path("save_file", data.path)
        outcome = await services.dispatcher(project.id).write_through(path, data.content)
    except DispatchError as e:
        raise HTTPException(status_code=400, detail=e.reason)
    except StorageError as e:
        raise HTTPException(status_code=500, detail=e.message)

    record = await services.store.get_file_by_path(project.id, path)
    return {**file_to_dict(record), "sandbox": outcome["sandbox"]}


@router.delete("/{project_id}/{file_id}")
async def delete_file(
    file_id: str,
    project: Project = Depends(owned_project),
    services: Services = Depends(get_services),
):
    record = await services.store.get_file(file_id)
    if not record or record.project_id != project.id:
        raise HTTPException(status_code=404, detail="File not found")

    outcome = await services.dispatcher(project.id).delete_through(record.path)
    if not outcome.pop("removed"):
        raise HTTPException(status_code=500, detail={"message": "Delete failed", **outcome})
    return {"success": True, **outcome}
