# app/tools/dispatcher.py
"""
Tool Dispatcher

Runs one recognized tool call against the project's collaborators (blob store,
sandbox, search, database) and returns a ToolResult.

SEQUENTIAL:
- The orchestrator awaits each call before dispatching the next one
- Long-running shell commands are launched and detached; their output is
  collected into the sandbox registry for the next turn
- Short shell commands are bounded; on timeout they keep running detached

ERRORS:
- Handler failures surface as DispatchError (one per call, never per turn)
- delete_file reports a per-target outcome map instead of raising
"""
import asyncio
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional

from app.core.config import settings
from app.core.exceptions import DispatchError, VibeCodeError
from app.core.logging import log
from app.db.store import ProjectStore, file_summary
from app.lib.blob_store import S3BlobStore, content_type_for, project_key
from app.lib.monitoring import record_tool_call
from app.models import ToolCallRecord
from app.sandbox import ProjectSandbox, SandboxRegistry, ShellResult
from app.search import SerperClient
from app.tools.boilerplate import load_boilerplate
from app.tools.catalog import ToolCall, ToolName, missing_args, summarize
from app.tools.command_classifier import CommandKind, classify_command


BACKGROUND_TIMEOUT_MESSAGE = "Command timed out (running in background)"


@dataclass
class ToolResult:
    success: bool
    summary: str = ""
    data: Dict[str, Any] = field(default_factory=dict)
    # completed | in_progress (detached) | error
    status: str = "completed"

    def to_record(self, call: ToolCall) -> ToolCallRecord:
        return ToolCallRecord(
            name=call.name.value,
            arguments=call.arguments,
            summary=self.summary,
            result=self.data,
            status=self.status,
        )


def error_record(call: ToolCall, reason: str) -> ToolCallRecord:
    """Record for a call whose handler raised."""
    return ToolCallRecord(
        name=call.name.value,
        arguments=call.arguments,
        summary=summarize(call),
        result={"error": reason},
        status="error",
    )


def normalize_path(tool: str, raw: Any) -> str:
    path = str(raw or "").strip().replace("\\", "/")
    while path.startswith("./"):
        path = path[2:]
    path = path.lstrip("/")
    if not path or ".." in path.split("/"):
        raise DispatchError(tool, f"Invalid file path: {raw!r}")
    return path


Handler = Callable[[Dict[str, Any]], Awaitable[ToolResult]]


class ToolDispatcher:
    """One dispatcher per chat turn, bound to a project."""

    def __init__(
        self,
        project_id: str,
        store: ProjectStore,
        blobs: S3BlobStore,
        sandboxes: SandboxRegistry,
        search: SerperClient,
        short_timeout: Optional[float] = None,
    ):
        self.project_id = project_id
        self.store = store
        self.blobs = blobs
        self.sandboxes = sandboxes
        self.search = search
        self.short_timeout = short_timeout or settings.sandbox.short_command_timeout

        self._handlers: Dict[ToolName, Handler] = {
            ToolName.CREATE_BOILERPLATE: self._create_boilerplate,
            ToolName.WRITE_FILE: self._write_file,
            ToolName.EDIT_FILE: self._edit_file,
            ToolName.DELETE_FILE: self._delete_file,
            ToolName.LIST_FILES: self._list_files,
            ToolName.READ_FILE: self._read_file,
            ToolName.RUN_SHELL: self._run_shell,
            ToolName.RUN_CODE: self._run_code,
            ToolName.WEB_SEARCH: self._web_search,
            ToolName.CONFIGURE_WORKFLOW: self._configure_workflow,
        }
        unhandled = [name.value for name in ToolName if name not in self._handlers]
        if unhandled:
            raise RuntimeError(f"No dispatcher handler for: {', '.join(unhandled)}")

    # =========================================================================
    # ENTRY POINT
    # =========================================================================

    async def execute(self, call: ToolCall) -> ToolResult:
        """
        Run one tool call to completion (or to its detach point).

        Raises:
            DispatchError: if the side effect failed
        """
        tool = call.name.value
        missing = missing_args(call)
        if missing:
            record_tool_call(tool, "error")
            raise DispatchError(tool, f"Missing arguments: {', '.join(missing)}")

        log("DISPATCH", f"→ {tool}", project_id=self.project_id)
        try:
            result = await self._handlers[call.name](call.arguments)
        except DispatchError:
            record_tool_call(tool, "error")
            raise
        except VibeCodeError as e:
            record_tool_call(tool, "error")
            raise DispatchError(tool, e.message) from e

        result.summary = result.summary or summarize(call)
        record_tool_call(tool, result.status)
        log("DISPATCH", f"✓ {result.summary} [{result.status}]", project_id=self.project_id)
        return result

    # =========================================================================
    # FILES
    # =========================================================================

    async def write_through(self, path: str, content: str) -> Dict[str, Any]:
        """
        Persist to storage, mirror into the sandbox, upsert the file record.

        A failed mirror is reported but does not fail the write.
        """
        data = content.encode("utf-8")
        mime_type = content_type_for(path)
        key = await self.blobs.put(project_key(self.project_id, path), data, mime_type)

        outcome: Dict[str, Any] = {"path": path, "size": len(data), "storage": "ok", "sandbox": "ok"}
        try:
            sandbox = await self._sandbox()
            await sandbox.write_file(path, content)
        except Exception as e:
            log("DISPATCH", f"Sandbox mirror failed for {path}: {e}", project_id=self.project_id)
            outcome["sandbox"] = "error"
            outcome["sandboxError"] = str(e)

        await self.store.upsert_file(self.project_id, path, key, len(data), mime_type)
        return outcome

    async def _write_file(self, args: Dict[str, Any]) -> ToolResult:
        path = normalize_path("write_file", args["path"])
        outcome = await self.write_through(path, str(args["content"]))
        return ToolResult(success=True, data=outcome)

    async def _edit_file(self, args: Dict[str, Any]) -> ToolResult:
        path = normalize_path("edit_file", args["path"])
        old_str = str(args["old_str"])
        new_str = str(args["new_str"])

        record = await self.store.get_file_by_path(self.project_id, path)
        if not record:
            raise DispatchError("edit_file", f"File not found: {path}")

        current = (await self.blobs.get(record.s3_key)).decode("utf-8")
        if not old_str or old_str not in current:
            raise DispatchError("edit_file", f"old_str not found in {path}")

        outcome = await self.write_through(path, current.replace(old_str, new_str, 1))
        return ToolResult(success=True, data=outcome)

    async def delete_through(self, path: str) -> Dict[str, Any]:
        """
        Delete from storage, the sandbox and the file index independently.

        The index row goes only when storage or the sandbox let go of the file.
        """
        targets: Dict[str, str] = {}
        errors: List[str] = []

        record = await self.store.get_file_by_path(self.project_id, path)
        key = record.s3_key if record else project_key(self.project_id, path)

        try:
            await self.blobs.delete(key)
            targets["storage"] = "deleted"
        except Exception as e:
            targets["storage"] = "failed"
            errors.append(f"storage: {e}")

        sandbox = self.sandboxes.get(self.project_id)
        if sandbox is None:
            targets["sandbox"] = "skipped"
        else:
            try:
                await sandbox.remove_file(path)
                targets["sandbox"] = "deleted"
            except Exception as e:
                targets["sandbox"] = "failed"
                errors.append(f"sandbox: {e}")

        removed_somewhere = "deleted" in (targets["storage"], targets["sandbox"])
        if record is None:
            targets["database"] = "not_found"
        elif removed_somewhere:
            await self.store.delete_file(record.id)
            targets["database"] = "deleted"
        else:
            targets["database"] = "kept"

        if errors:
            log("DISPATCH", f"delete_file {path} partial: {errors}", project_id=self.project_id)

        return {"path": path, "targets": targets, "errors": errors, "removed": removed_somewhere}

    async def _delete_file(self, args: Dict[str, Any]) -> ToolResult:
        outcome = await self.delete_through(normalize_path("delete_file", args["path"]))
        removed = outcome.pop("removed")
        return ToolResult(
            success=removed,
            data=outcome,
            status="completed" if removed else "error",
        )

    async def _list_files(self, args: Dict[str, Any]) -> ToolResult:
        records = await self.store.list_files(self.project_id)
        files = [file_summary(r) for r in records]
        return ToolResult(success=True, data={"files": files, "count": len(files)})

    async def _read_file(self, args: Dict[str, Any]) -> ToolResult:
        path = normalize_path("read_file", args["path"])
        record = await self.store.get_file_by_path(self.project_id, path)
        if not record:
            raise DispatchError("read_file", f"File not found: {path}")
        content = (await self.blobs.get(record.s3_key)).decode("utf-8", errors="replace")
        return ToolResult(success=True, data={"path": path, "content": content})

    async def _create_boilerplate(self, args: Dict[str, Any]) -> ToolResult:
        kind = str(args["type"]).strip()
        files = await load_boilerplate(kind)

        written: List[str] = []
        mirror_errors: List[str] = []
        for path, content in files:
            outcome = await self.write_through(path, content)
            written.append(path)
            if outcome["sandbox"] != "ok":
                mirror_errors.append(f"{path}: {outcome.get('sandboxError')}")

        data: Dict[str, Any] = {"type": kind, "files": written}
        if mirror_errors:
            data["sandboxErrors"] = mirror_errors
        return ToolResult(success=True, data=data)

    # =========================================================================
    # EXECUTION
    # =========================================================================

    async def _run_shell(self, args: Dict[str, Any]) -> ToolResult:
        command = str(args["command"]).strip()
        if not command:
            raise DispatchError("run_shell", "Empty command")

        sandbox = await self._sandbox()
        kind = classify_command(command)

        if kind is CommandKind.LONG:
            handle = await sandbox.start_background(command)
            self.sandboxes.track(asyncio.create_task(self._collect_detached(sandbox, handle, command)))
            await self.store.update_project(self.project_id, workflow_command=command)
            log("DISPATCH", f"Detached long-running command: {command}", project_id=self.project_id)
            return ToolResult(
                success=True,
                summary=f"Started in background: {command}",
                data={
                    "command": command,
                    "kind": kind.value,
                    "background": True,
                    "previewUrl": sandbox.preview_url,
                },
                status="in_progress",
            )

        task = asyncio.ensure_future(sandbox.run_shell(command))
        done, _ = await asyncio.wait({task}, timeout=self.short_timeout)
        if task in done:
            result: ShellResult = task.result()
            return ToolResult(
                success=result.exit_code == 0,
                data={"command": command, "kind": kind.value, **result.to_dict()},
            )

        # Still running: keep it, report it with the next turn
        task.add_done_callback(lambda t: self._record_late_result(command, t))
        self.sandboxes.track(task)
        log("DISPATCH", f"Timed out after {self.short_timeout}s, left running: {command}", project_id=self.project_id)
        return ToolResult(
            success=True,
            data={
                "command": command,
                "kind": kind.value,
                "stdout": "",
                "stderr": BACKGROUND_TIMEOUT_MESSAGE,
                "exitCode": 0,
                "background": True,
            },
        )

    async def _run_code(self, args: Dict[str, Any]) -> ToolResult:
        language = str(args.get("language") or "python")
        sandbox = await self._sandbox()
        result = await sandbox.run_code(str(args["code"]), language)
        return ToolResult(
            success=result.error is None,
            data={"language": language, **result.to_dict()},
        )

    async def _web_search(self, args: Dict[str, Any]) -> ToolResult:
        query = str(args["query"]).strip()
        results = await self.search.search(query)
        return ToolResult(
            success=True,
            data={"query": query, "results": [r.to_dict() for r in results]},
        )

    async def _configure_workflow(self, args: Dict[str, Any]) -> ToolResult:
        command = str(args["command"]).strip()
        if not command:
            raise DispatchError("configure_workflow", "Empty command")
        await self.store.update_project(self.project_id, workflow_command=command)
        return ToolResult(success=True, data={"command": command})

    # =========================================================================
    # INTERNAL
    # =========================================================================

    async def _sandbox(self) -> ProjectSandbox:
        sandbox = self.sandboxes.get(self.project_id)
        if sandbox:
            return sandbox

        project = await self.store.get_project(self.project_id)
        sandbox = await self.sandboxes.get_or_create(
            self.project_id,
            project.sandbox_id if project else None,
        )
        if project and project.sandbox_id != sandbox.sandbox_id:
            await self.store.update_project(
                self.project_id,
                sandbox_id=sandbox.sandbox_id,
                sandbox_url=sandbox.preview_url,
            )
        return sandbox

    async def _collect_detached(self, sandbox: ProjectSandbox, handle: Any, command: str) -> None:
        try:
            result = await sandbox.wait_background(handle)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            log("DISPATCH", f"Detached command failed: {command}: {e}", project_id=self.project_id)
            self.sandboxes.record_background_result(self.project_id, {"command": command, "error": str(e)})
            return
        self.sandboxes.record_background_result(self.project_id, {"command": command, **result.to_dict()})

    def _record_late_result(self, command: str, task: "asyncio.Future[ShellResult]") -> None:
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            log("DISPATCH", f"Late command failed: {command}: {error}", project_id=self.project_id)
            entry = {"command": command, "error": str(error)}
        else:
            entry = {"command": command, **task.result().to_dict()}
        self.sandboxes.record_background_result(self.project_id, entry)
