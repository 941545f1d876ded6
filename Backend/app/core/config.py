# app/core/config.py
"""
Application configuration - single source of truth for all settings.
"""
import os
from dataclasses import dataclass, field
from typing import List, Optional
from dotenv import load_dotenv

load_dotenv()


def _env_bool(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).lower() == "true"


@dataclass
class LLMSettings:
    """LLM provider configuration."""
    default_provider: str = field(default_factory=lambda: os.getenv("DEFAULT_LLM_PROVIDER", "gemini"))
    gemini_model: str = field(default_factory=lambda: os.getenv("GEMINI_MODEL", "gemini-2.5-flash"))
    openrouter_model: str = field(default_factory=lambda: os.getenv("OPENROUTER_MODEL", "z-ai/glm-4.5-air:free"))
    bedrock_model: str = field(default_factory=lambda: os.getenv("BEDROCK_MODEL", "us.anthropic.claude-sonnet-4-5-20250929-v1:0"))
    bedrock_region: str = field(default_factory=lambda: os.getenv("BEDROCK_REGION", os.getenv("AWS_REGION", "us-east-1")))
    gemini_api_key: Optional[str] = field(default_factory=lambda: os.getenv("GEMINI_API_KEY"))
    openrouter_api_key: Optional[str] = field(default_factory=lambda: os.getenv("OPENROUTER_API_KEY"))
    temperature: float = 0.7
    max_output_tokens: int = 8192
    # Total budget for one streamed response; the stream itself has no idle timeout
    request_timeout: int = 600


@dataclass
class StorageSettings:
    """S3 object storage configuration."""
    bucket: Optional[str] = field(default_factory=lambda: os.getenv("AWS_S3_BUCKET_NAME"))
    region: str = field(default_factory=lambda: os.getenv("AWS_REGION", "us-east-1"))
    access_key_id: Optional[str] = field(default_factory=lambda: os.getenv("AWS_ACCESS_KEY_ID"))
    secret_access_key: Optional[str] = field(default_factory=lambda: os.getenv("AWS_SECRET_ACCESS_KEY"))
    key_prefix: str = "projects"


@dataclass
class SandboxSettings:
    """E2B sandbox configuration."""
    e2b_api_key: Optional[str] = field(default_factory=lambda: os.getenv("E2B_API_KEY"))
    preview_port: int = 3000
    # Seconds a sandbox stays alive without activity
    lifetime: int = field(default_factory=lambda: int(os.getenv("SANDBOX_LIFETIME", "3600")))
    short_command_timeout: float = 10.0
    port_probe_timeout: float = 3.0


@dataclass
class ChatSettings:
    """Chat turn / streaming configuration."""
    history_window: int = 20
    heartbeat_interval: float = 15.0
    error_excerpt_length: int = 200
    tool_result_excerpt_length: int = 600


@dataclass
class SearchSettings:
    """Serper web search configuration."""
    serper_api_key: Optional[str] = field(default_factory=lambda: os.getenv("SERPER_API_KEY"))
    top_n: int = 5


@dataclass
class AuthSettings:
    """Firebase identity verification."""
    firebase_project_id: Optional[str] = field(default_factory=lambda: os.getenv("FIREBASE_PROJECT_ID"))
    # Service account JSON (inline) - falls back to application default credentials
    firebase_service_account: Optional[str] = field(default_factory=lambda: os.getenv("FIREBASE_SERVICE_ACCOUNT"))
    # Local development only: trust the bearer token as the user id
    disabled: bool = field(default_factory=lambda: _env_bool("AUTH_DISABLED"))


@dataclass
class Settings:
    """Main application settings."""
    llm: LLMSettings = field(default_factory=LLMSettings)
    storage: StorageSettings = field(default_factory=StorageSettings)
    sandbox: SandboxSettings = field(default_factory=SandboxSettings)
    chat: ChatSettings = field(default_factory=ChatSettings)
    search: SearchSettings = field(default_factory=SearchSettings)
    auth: AuthSettings = field(default_factory=AuthSettings)
    mongodb_url: str = field(default_factory=lambda: os.getenv("MONGODB_URL", "mongodb://localhost:27017/vibecode"))
    cors_origins: List[str] = field(default_factory=lambda: [
        o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()
    ])
    rate_limit: str = field(default_factory=lambda: os.getenv("RATE_LIMIT", "100/minute"))
    port: int = field(default_factory=lambda: int(os.getenv("PORT", 8000)))
    debug: bool = field(default_factory=lambda: _env_bool("DEBUG"))


# Singleton instance
settings = Settings()
