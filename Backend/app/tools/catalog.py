# app/tools/catalog.py
"""
═══════════════════════════════════════════════════════════════════════════════
VIBE CODE TOOL CATALOG - SINGLE SOURCE OF TRUTH

Every tool the model can call is a member of ToolName. The dispatcher refuses
to start unless it has a handler for every member.
═══════════════════════════════════════════════════════════════════════════════
"""
from dataclasses import dataclass, field
from enum import Enum, unique
from typing import Any, Dict, List, Optional


@unique
class ToolName(str, Enum):
    CREATE_BOILERPLATE = "create_boilerplate"
    WRITE_FILE = "write_file"
    EDIT_FILE = "edit_file"
    DELETE_FILE = "delete_file"
    LIST_FILES = "list_files"
    READ_FILE = "read_file"
    RUN_SHELL = "run_shell"
    RUN_CODE = "run_code"
    WEB_SEARCH = "web_search"
    CONFIGURE_WORKFLOW = "configure_workflow"

    @classmethod
    def parse(cls, raw: str) -> Optional["ToolName"]:
        """Map a marker's tool name to a member, or None when unknown."""
        try:
            return cls(raw.strip())
        except ValueError:
            return None


@dataclass(frozen=True)
class ToolSpec:
    name: ToolName
    description: str
    required_args: List[str] = field(default_factory=list)
    # Rendered with the call arguments for the client badge
    summary: str = ""


@dataclass(frozen=True)
class ToolCall:
    """A recognized tool-call marker: a catalog member plus its JSON arguments."""
    name: ToolName
    arguments: Dict[str, Any] = field(default_factory=dict)


# ═══════════════════════════════════════════════════════════════════════════════
# SPECS
# ═══════════════════════════════════════════════════════════════════════════════

TOOL_SPECS: Dict[ToolName, ToolSpec] = {
    ToolName.CREATE_BOILERPLATE: ToolSpec(
        name=ToolName.CREATE_BOILERPLATE,
        description="Create a complete starter project",
        required_args=["type"],
        summary="Created {type} boilerplate",
    ),
    ToolName.WRITE_FILE: ToolSpec(
        name=ToolName.WRITE_FILE,
        description="Create or overwrite a file in storage and the sandbox",
        required_args=["path", "content"],
        summary="Created {path}",
    ),
    ToolName.EDIT_FILE: ToolSpec(
        name=ToolName.EDIT_FILE,
        description="Replace the first occurrence of old_str with new_str",
        required_args=["path", "old_str", "new_str"],
        summary="Edited {path}",
    ),
    ToolName.DELETE_FILE: ToolSpec(
        name=ToolName.DELETE_FILE,
        description="Delete a file from storage, the sandbox and the file index",
        required_args=["path"],
        summary="Deleted {path}",
    ),
    ToolName.LIST_FILES: ToolSpec(
        name=ToolName.LIST_FILES,
        description="List all project files",
        summary="Listed all files",
    ),
    ToolName.READ_FILE: ToolSpec(
        name=ToolName.READ_FILE,
        description="Read a file from storage",
        required_args=["path"],
        summary="Read {path}",
    ),
    ToolName.RUN_SHELL: ToolSpec(
        name=ToolName.RUN_SHELL,
        description="Run a shell command in the sandbox",
        required_args=["command"],
        summary="Ran shell command: {command}",
    ),
    ToolName.RUN_CODE: ToolSpec(
        name=ToolName.RUN_CODE,
        description="Execute code in the sandbox interpreter",
        required_args=["code"],
        summary="Executed {language} code",
    ),
    ToolName.WEB_SEARCH: ToolSpec(
        name=ToolName.WEB_SEARCH,
        description="Search the web",
        required_args=["query"],
        summary="Searched: {query}",
    ),
    ToolName.CONFIGURE_WORKFLOW: ToolSpec(
        name=ToolName.CONFIGURE_WORKFLOW,
        description="Save the command that starts the app",
        required_args=["command"],
        summary="Configured workflow: {command}",
    ),
}


class _Defaults(dict):
    def __missing__(self, key: str) -> str:
        return "python" if key == "language" else "?"


def summarize(call: ToolCall) -> str:
    """Short human-readable badge text for a tool call."""
    spec = TOOL_SPECS.get(call.name)
    if spec is None or not spec.summary:
        return call.name.value
    return spec.summary.format_map(_Defaults(call.arguments))


def missing_args(call: ToolCall) -> List[str]:
    spec = TOOL_SPECS[call.name]
    return [arg for arg in spec.required_args if arg not in call.arguments]
