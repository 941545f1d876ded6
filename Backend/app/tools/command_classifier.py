# app/tools/command_classifier.py
"""
Shell command classification.

Decides whether a command starts a persistent process (dev server, app
entrypoint) or finishes on its own. The patterns are heuristics and are
expected to grow; callers only depend on the CommandKind result.
"""
import re
from enum import Enum
from typing import List, Pattern


class CommandKind(str, Enum):
    SHORT = "short"
    LONG = "long"


# Matched against each segment of a compound command (split on ; && ||)
LONG_RUNNING_PATTERNS: List[Pattern[str]] = [
    # Package-manager scripts that start servers
    re.compile(r"^(npm|pnpm|yarn|bun)\s+(run\s+)?(dev|start|serve|preview)\b"),
    # Dev servers invoked directly or through npx
    re.compile(r"^(npx\s+)?(vite|nodemon|http-server|serve|live-server)(\s|$)"),
    re.compile(r"^(npx\s+)?next\s+(dev|start)\b"),
    # Interpreters pointed at a script
    re.compile(r"^node\s+(?!-)\S+\.(m?js|cjs|ts)\b"),
    re.compile(r"^(ts-node|tsx|deno\s+run|bun\s+run)\s+\S+\.(m?js|ts|tsx)\b"),
    re.compile(r"^python3?\s+(?!-)\S+\.py\b"),
    # Framework run commands
    re.compile(r"^python3?\s+-m\s+(http\.server|flask\s+run|uvicorn|gunicorn|streamlit)\b"),
    re.compile(r"^(flask\s+run|uvicorn|gunicorn|streamlit\s+run|php\s+-S|rails\s+s(erver)?)\b"),
]

_SEPARATORS = re.compile(r"\s*(?:;|&&|\|\|)\s*")


def split_segments(command: str) -> List[str]:
    return [seg.strip() for seg in _SEPARATORS.split(command) if seg.strip()]


def classify_command(command: str) -> CommandKind:
    """LONG when any segment of the command looks like it starts a persistent process."""
    text = command.strip()
    if not text:
        return CommandKind.SHORT

    # Explicitly backgrounded by the caller
    if re.search(r"(?<!&)&\s*$", text):
        return CommandKind.LONG

    for segment in split_segments(text):
        if any(pattern.search(segment) for pattern in LONG_RUNNING_PATTERNS):
            return CommandKind.LONG
    return CommandKind.SHORT
