# app/core/auth.py
"""
Firebase ID-token verification.

Routes depend on `require_user`, which yields the verified user id (the
Firebase uid). With AUTH_DISABLED=true the bearer token itself is trusted as
the user id, for local development only.
"""
import asyncio
import json
from dataclasses import dataclass
from typing import Optional

import firebase_admin
from fastapi import Header, HTTPException
from firebase_admin import auth as firebase_auth
from firebase_admin import credentials

from app.core.config import settings
from app.core.exceptions import AuthError
from app.core.logging import log


@dataclass
class AuthenticatedUser:
    uid: str
    email: Optional[str] = None
    name: Optional[str] = None
    picture: Optional[str] = None


_app: Optional[firebase_admin.App] = None


def _firebase_app() -> firebase_admin.App:
    global _app
    if _app is None:
        options = {"projectId": settings.auth.firebase_project_id} if settings.auth.firebase_project_id else None
        if settings.auth.firebase_service_account:
            cred = credentials.Certificate(json.loads(settings.auth.firebase_service_account))
        else:
            cred = credentials.ApplicationDefault()
        _app = firebase_admin.initialize_app(cred, options)
        log("AUTH", "Firebase Admin initialized")
    return _app


async def verify_token(token: str) -> AuthenticatedUser:
    """
    Verify a Firebase ID token.

    Raises:
        AuthError: if the token is invalid, expired or revoked
    """
    if settings.auth.disabled:
        return AuthenticatedUser(uid=token)

    try:
        claims = await asyncio.to_thread(firebase_auth.verify_id_token, token, _firebase_app())
    except (ValueError, firebase_auth.InvalidIdTokenError, firebase_auth.ExpiredIdTokenError,
            firebase_auth.RevokedIdTokenError, firebase_auth.CertificateFetchError) as e:
        log("AUTH", f"Token rejected: {type(e).__name__}")
        raise AuthError(f"Invalid token: {e}") from e

    return AuthenticatedUser(
        uid=claims["uid"],
        email=claims.get("email"),
        name=claims.get("name"),
        picture=claims.get("picture"),
    )


async def require_user(authorization: Optional[str] = Header(default=None)) -> AuthenticatedUser:
    """FastAPI dependency: `Authorization: Bearer <Firebase ID token>`."""
    if not authorization or not authorization.startswith("Bearer "):
        raise HTTPException(status_code=401, detail="Unauthorized: No token provided")

    token = authorization[len("Bearer "):].strip()
    try:
        return await verify_token(token)
    except AuthError as e:
        raise HTTPException(status_code=401, detail=f"Unauthorized: {e.message}")
