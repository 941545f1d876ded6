# app/db/__init__.py
"""
Database module.
"""
from typing import Optional

from app.core.config import settings
from app.core.logging import log

# Motor client instance
_client = None
_db = None
_connection_error: Optional[str] = None


async def connect_db():
    """
    Connect to MongoDB and initialize Beanie.

    If MongoDB is not available, stores the error for later retrieval
    rather than silently failing.
    """
    global _client, _db, _connection_error
    try:
        from motor.motor_asyncio import AsyncIOMotorClient
        from beanie import init_beanie
        from app.models import DOCUMENT_MODELS

        _client = AsyncIOMotorClient(settings.mongodb_url, serverSelectionTimeoutMS=5000)

        try:
            _db = _client.get_default_database()
        except Exception:
            _db = _client.vibecode

        # Fail fast if MongoDB is not running
        await _client.admin.command("ping")
        log("DB", "Connected to MongoDB")

        await init_beanie(database=_db, document_models=DOCUMENT_MODELS)
        log("DB", "Beanie ODM initialized")
        _connection_error = None
    except Exception as e:
        _connection_error = str(e)
        log("DB", f"MongoDB not available: {_connection_error}")
        _client = None
        _db = None


async def disconnect_db():
    """Disconnect from MongoDB."""
    global _client
    if _client:
        _client.close()
        log("DB", "Disconnected from MongoDB")


def is_connected() -> bool:
    """Check if database is connected."""
    return _db is not None


def get_connection_error() -> Optional[str]:
    """Get connection error message if connection failed."""
    return _connection_error
