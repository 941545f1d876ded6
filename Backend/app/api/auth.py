# app/api/auth.py
"""
Auth routes - sync the Firebase user into the database.
"""
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from app.api.deps import Services, get_services
from app.core.auth import AuthenticatedUser, require_user


router = APIRouter(prefix="/api/auth", tags=["Auth"])


class SyncUserRequest(BaseModel):
    id: str
    email: str
    displayName: Optional[str] = None
    photoURL: Optional[str] = None


@router.post("/sync")
async def sync_user(
    data: SyncUserRequest,
    user: AuthenticatedUser = Depends(require_user),
    services: Services = Depends(get_services),
):
    if data.id != user.uid:
        raise HTTPException(status_code=403, detail="Forbidden: ID mismatch")

    record = await services.store.upsert_user(
        user_id=data.id,
        email=data.email,
        display_name=data.displayName,
        photo_url=data.photoURL,
    )
    return {
        "id": record.id,
        "email": record.email,
        "displayName": record.display_name,
        "photoURL": record.photo_url,
        "createdAt": record.created_at.isoformat(),
    }
