"""
Vibe Code - E2B Sandbox Manager
Live previews and remote execution per project
"""

from .sandbox_manager import (
    ProjectSandbox,
    SandboxRegistry,
    SandboxState,
    ShellResult,
)


__all__ = [
    "ProjectSandbox",
    "SandboxRegistry",
    "SandboxState",
    "ShellResult",
]
