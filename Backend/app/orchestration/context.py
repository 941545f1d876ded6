# app/orchestration/context.py
"""
Model-input context for one chat turn.

History is the most recent window of persisted turns. Assistant turns carry a
compact rendering of their tool results so the model sees what its calls did.
The current user message gets two annexes: the live sandbox status and the
results of commands that finished after their own turn ended.
"""
import json
from typing import Any, Dict, List, Optional

from app.core.config import settings
from app.llm import ChatMessages
from app.models import Attachment, ChatMessage, ToolCallRecord
from app.sandbox import SandboxState


def excerpt(value: Any, limit: int) -> str:
    text = value if isinstance(value, str) else json.dumps(value, default=str)
    if len(text) <= limit:
        return text
    return text[:limit] + "...(truncated)"


def render_tool_results(records: List[ToolCallRecord], limit: Optional[int] = None) -> str:
    limit = limit or settings.chat.tool_result_excerpt_length
    lines = ["[TOOL RESULTS]"]
    for record in records:
        lines.append(f"- {record.name} [{record.status}] {record.summary}: {excerpt(record.result, limit)}")
    return "\n".join(lines)


def render_background_results(entries: List[Dict[str, Any]], limit: Optional[int] = None) -> str:
    limit = limit or settings.chat.tool_result_excerpt_length
    lines = ["[BACKGROUND COMMAND RESULTS]"]
    for entry in entries:
        details = {k: v for k, v in entry.items() if k != "command"}
        lines.append(f"- {entry.get('command', '?')}: {excerpt(details, limit)}")
    return "\n".join(lines)


def render_attachments(attachments: List[Attachment]) -> str:
    return "Attachments:\n" + "\n".join(f"- {a.name} ({a.url})" for a in attachments)


def render_sandbox_annex(
    state: Optional[SandboxState],
    sandbox_id: Optional[str] = None,
    preview_url: Optional[str] = None,
) -> str:
    """
    Status block appended to the user message. `state` is None when the probe
    failed; an inactive sandbox produces no block.
    """
    port = settings.sandbox.preview_port
    if state is None:
        return "[SANDBOX STATUS]\n- Status: unknown (status check failed)\n"
    if not state.is_active:
        return ""

    port_line = "YES - Server is running" if state.preview_port_reachable else f"NO - No server running on port {port}"
    annex = (
        "[SANDBOX STATUS]\n"
        f"- Sandbox ID: {sandbox_id}\n"
        f"- Preview URL: {preview_url}\n"
        f"- Port {port} accessible: {port_line}\n"
        f"- Running processes: {state.process_count}\n"
    )
    if not state.preview_port_reachable and state.has_running_processes:
        annex += (
            f"\nWARNING: Processes are running but port {port} is not accessible. "
            f"The preview won't work until a web server listens on port {port}.\n"
        )
    elif not state.preview_port_reachable:
        annex += (
            f"\nNOTE: No server is running. To show the preview, start a web server "
            f"on port {port} with host 0.0.0.0.\n"
        )
    return annex


def build_history(messages: List[ChatMessage], limit: Optional[int] = None) -> ChatMessages:
    history: ChatMessages = []
    for message in messages:
        content = message.content
        if message.attachments:
            content = f"{content}\n\n{render_attachments(message.attachments)}"
        if message.role == "assistant" and message.tool_calls:
            content = f"{content}\n\n{render_tool_results(message.tool_calls, limit)}".strip()
        history.append({"role": message.role, "content": content})
    return history


def build_model_input(
    history: List[ChatMessage],
    user_content: str,
    sandbox_annex: str = "",
    background_results: Optional[List[Dict[str, Any]]] = None,
    attachments: Optional[List[Attachment]] = None,
) -> ChatMessages:
    """History window followed by the current user message and its annexes."""
    messages = build_history(history)

    parts = [user_content]
    if attachments:
        parts.append(render_attachments(attachments))
    if background_results:
        parts.append(render_background_results(background_results))
    if sandbox_annex:
        parts.append(sandbox_annex.rstrip("\n"))

    messages.append({"role": "user", "content": "\n\n".join(parts)})
    return messages
