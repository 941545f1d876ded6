# app/main.py
"""
Vibe Code Backend
"""
import uvicorn
from contextlib import asynccontextmanager

from fastapi import FastAPI
from starlette.middleware.cors import CORSMiddleware

# Rate limiting
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.util import get_remote_address
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware

from app.core.config import settings
from app.core.logging import log
from app.api.deps import Services
from app.db.store import ProjectStore
from app.lib.blob_store import S3BlobStore
from app.lib.monitoring import register_monitoring
from app.sandbox import SandboxRegistry
from app.search import SerperClient

# Print environment status
print("🔑 Environment check:")
print(f"  GEMINI_API_KEY loaded: {bool(settings.llm.gemini_api_key)}")
print(f"  OPENROUTER_API_KEY loaded: {bool(settings.llm.openrouter_api_key)}")
print(f"  E2B_API_KEY loaded: {bool(settings.sandbox.e2b_api_key)}")
print(f"  S3 bucket: {settings.storage.bucket}")
print(f"  Default provider: {settings.llm.default_provider}")


def build_services() -> Services:
    return Services(
        store=ProjectStore(),
        blobs=S3BlobStore(),
        sandboxes=SandboxRegistry(),
        search=SerperClient(),
    )


# ---------------------------------------------------------------------------
# LIFESPAN
# ---------------------------------------------------------------------------

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application startup and shutdown."""
    print("🚀 Vibe Code starting...")

    from app.db import connect_db, disconnect_db
    await connect_db()

    if not hasattr(app.state, "services"):
        app.state.services = build_services()

    yield

    print("🔌 Shutting down...")
    services: Services = app.state.services
    for task in list(services.tasks):
        task.cancel()
    await services.sandboxes.dispose_all()
    await disconnect_db()


# ---------------------------------------------------------------------------
# APP INITIALIZATION
# ---------------------------------------------------------------------------

app = FastAPI(
    title="Vibe Code",
    version="1.0.0",
    lifespan=lifespan,
)

# Monitoring
register_monitoring(app)

if settings.cors_origins == ["*"] and not settings.debug:
    print("⚠️ [CORS] Warning: Using allow_origins=['*'] - consider setting CORS_ORIGINS in production")

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Rate Limiting - default 100 requests per minute per IP (RATE_LIMIT env var)
limiter = Limiter(key_func=get_remote_address, default_limits=[settings.rate_limit])
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
app.add_middleware(SlowAPIMiddleware)
log("AUTH", f"Rate limiting enabled: {settings.rate_limit}")


# ---------------------------------------------------------------------------
# API ROUTES
# ---------------------------------------------------------------------------

from app.api import (
    health,
    auth,
    projects,
    files,
    messages,
    sandbox,
)

app.include_router(health.router)
app.include_router(auth.router)
app.include_router(projects.router)
app.include_router(files.router)
app.include_router(messages.router)
app.include_router(sandbox.router)


# ---------------------------------------------------------------------------
# RUN
# ---------------------------------------------------------------------------

if __name__ == "__main__":
    uvicorn.run(
        "app.main:app",
        host="0.0.0.0",
        port=settings.port,
        reload=settings.debug,
        reload_dirs=["app"],
    )
