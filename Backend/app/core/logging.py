import sys
import os
from datetime import datetime
from typing import Any, Optional


# ═══════════════════════════════════════════════════════════════════════════════
# LOG FILTERING
# ═══════════════════════════════════════════════════════════════════════════════
# Only these scopes are shown at INFO level
# Everything else is gated behind DEBUG

INFO_SCOPES = {
    "STREAM",       # Turn lifecycle
    "DISPATCH",     # Tool execution
    "PARSER",       # Markup warnings
    "LLM",          # Model boundary
    "SANDBOX",      # Remote sandbox
    "STORAGE",      # Blob store
    "DB",           # Database
    "AUTH",         # Token verification
}

# DEBUG-only scopes (hidden by default)
DEBUG_SCOPES = {
    "KEEPALIVE",
    "SEARCH",
    "MONITORING",
    "CONTEXT",
}

# Check if DEBUG mode is enabled
DEBUG_MODE = os.getenv("VIBE_DEBUG", "false").lower() == "true"


def log(scope: str, message: str, data: Any = None, project_id: Optional[str] = None) -> None:
    """
    Unified logging function.

    Only INFO_SCOPES are shown by default.
    Set VIBE_DEBUG=true to see all scopes.
    """
    if not DEBUG_MODE and scope not in INFO_SCOPES:
        return

    timestamp = datetime.now().strftime("%H:%M:%S")
    prefix = f"[{timestamp}] [{scope}]"

    if project_id:
        prefix += f" [{project_id[:8]}]"

    print(f"{prefix} {message}")

    if data:
        print(f"  Data: {data}")

    sys.stdout.flush()


def log_section(scope: str, title: str, project_id: Optional[str] = None) -> None:
    """
    Log a section header with visual separator.
    """
    timestamp = datetime.now().strftime("%H:%M:%S")
    print(f"\n{'='*60}")
    if project_id:
        print(f"[{timestamp}] [{scope}] [{project_id[:8]}] {title}")
    else:
        print(f"[{timestamp}] [{scope}] {title}")
    print(f"{'='*60}")
    sys.stdout.flush()
