"""
Tools Module - The SINGLE SOURCE OF TRUTH

Architecture:
- catalog.py: closed ToolName enum, specs, summaries
- command_classifier.py: short vs long-running shell commands
- boilerplate.py: starter project templates
- dispatcher.py: one handler per ToolName, executes a ToolCall

NO OTHER FILE should define "what tools exist".
"""

from .catalog import ToolName, ToolSpec, ToolCall, TOOL_SPECS, summarize
from .command_classifier import CommandKind, classify_command
from .dispatcher import ToolDispatcher, ToolResult, error_record

__all__ = [
    "ToolName",
    "ToolSpec",
    "ToolCall",
    "TOOL_SPECS",
    "summarize",
    "CommandKind",
    "classify_command",
    "ToolDispatcher",
    "ToolResult",
    "error_record",
]
