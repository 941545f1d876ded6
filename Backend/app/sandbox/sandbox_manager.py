"""
E2B Sandbox Manager
✓ One live sandbox per project, reusable across turns
✓ Explicit create / get-or-create / dispose
✓ Per-project turn lock and background-result inbox
"""

import asyncio
from dataclasses import dataclass, asdict
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set, Union

from e2b import CommandExitException, SandboxException
from e2b_code_interpreter import AsyncSandbox

from app.core.config import settings
from app.core.exceptions import SandboxError
from app.core.logging import log
from app.lib.monitoring import set_live_sandboxes


@dataclass
class ShellResult:
    stdout: str = ""
    stderr: str = ""
    exit_code: int = 0
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data = {"stdout": self.stdout, "stderr": self.stderr, "exitCode": self.exit_code}
        if self.error:
            data["error"] = self.error
        return data


@dataclass
class SandboxState:
    """Derived per turn, never persisted."""
    is_active: bool = False
    has_running_processes: bool = False
    process_count: int = 0
    preview_port_reachable: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class ProjectSandbox:
    """Thin async wrapper over one E2B code-interpreter sandbox."""

    def __init__(self, project_id: str, sandbox: AsyncSandbox):
        self.project_id = project_id
        self._sbx = sandbox
        self.created_at = datetime.now(timezone.utc).isoformat()

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    @classmethod
    async def spawn(cls, project_id: str) -> "ProjectSandbox":
        if not settings.sandbox.e2b_api_key:
            raise SandboxError(project_id, "E2B_API_KEY not configured")
        try:
            sbx = await AsyncSandbox.create(
                api_key=settings.sandbox.e2b_api_key,
                timeout=settings.sandbox.lifetime,
                metadata={
                    "projectId": project_id,
                    "createdAt": datetime.now(timezone.utc).isoformat(),
                },
            )
        except Exception as e:
            raise SandboxError(project_id, f"Failed to create E2B sandbox: {e}") from e
        log("SANDBOX", f"Created sandbox {sbx.sandbox_id}", project_id=project_id)
        return cls(project_id, sbx)

    @classmethod
    async def connect(cls, project_id: str, sandbox_id: str) -> "ProjectSandbox":
        try:
            sbx = await AsyncSandbox.connect(sandbox_id, api_key=settings.sandbox.e2b_api_key)
        except Exception as e:
            raise SandboxError(project_id, f"Failed to reconnect to {sandbox_id}: {e}") from e
        log("SANDBOX", f"Reconnected to sandbox {sandbox_id}", project_id=project_id)
        return cls(project_id, sbx)

    @property
    def sandbox_id(self) -> str:
        return self._sbx.sandbox_id

    @property
    def preview_url(self) -> str:
        return f"https://{self._sbx.get_host(settings.sandbox.preview_port)}"

    async def is_alive(self) -> bool:
        try:
            return await self._sbx.is_running()
        except Exception as e:
            log("SANDBOX", f"Liveness check failed: {e}", project_id=self.project_id)
            return False

    async def kill(self) -> None:
        await self._sbx.kill()

    # =========================================================================
    # EXEC
    # =========================================================================

    async def run_shell(self, command: str, timeout: Optional[float] = None) -> ShellResult:
        """Run a command and wait for it. Non-zero exits are results, not errors."""
        kwargs = {"timeout": timeout} if timeout else {}
        try:
            result = await self._sbx.commands.run(command, **kwargs)
        except CommandExitException as e:
            return ShellResult(stdout=e.stdout, stderr=e.stderr, exit_code=e.exit_code)
        return ShellResult(stdout=result.stdout, stderr=result.stderr, exit_code=result.exit_code)

    async def start_background(self, command: str):
        """Launch a command without waiting. Returns the E2B command handle."""
        return await self._sbx.commands.run(command, background=True)

    async def wait_background(self, handle) -> ShellResult:
        try:
            result = await handle.wait()
        except CommandExitException as e:
            return ShellResult(stdout=e.stdout, stderr=e.stderr, exit_code=e.exit_code)
        return ShellResult(stdout=result.stdout, stderr=result.stderr, exit_code=result.exit_code)

    async def run_code(self, code: str, language: str = "python") -> ShellResult:
        execution = await self._sbx.run_code(code, language=language)
        error = execution.error
        return ShellResult(
            stdout="\n".join(execution.logs.stdout),
            stderr="\n".join(execution.logs.stderr) or (error.value if error else ""),
            exit_code=1 if error else 0,
            error=error.name if error else None,
        )

    async def list_processes(self) -> List[Any]:
        return await self._sbx.commands.list()

    async def is_port_open(self, port: int) -> bool:
        probe = (
            f"curl -s -o /dev/null -w '%{{http_code}}' --max-time 2 "
            f"http://localhost:{port}"
        )
        try:
            result = await asyncio.wait_for(
                self.run_shell(probe),
                timeout=settings.sandbox.port_probe_timeout,
            )
        except asyncio.TimeoutError:
            return False
        code = result.stdout.strip()
        return bool(code) and code != "000"

    # =========================================================================
    # FILES
    # =========================================================================

    async def write_file(self, path: str, content: Union[str, bytes]) -> None:
        try:
            await self._sbx.files.write(path, content)
        except SandboxException as e:
            raise SandboxError(self.project_id, f"write {path} failed: {e}") from e

    async def read_file(self, path: str) -> str:
        try:
            return await self._sbx.files.read(path)
        except SandboxException as e:
            raise SandboxError(self.project_id, f"read {path} failed: {e}") from e

    async def remove_file(self, path: str) -> None:
        try:
            await self._sbx.files.remove(path)
        except SandboxException as e:
            raise SandboxError(self.project_id, f"remove {path} failed: {e}") from e

    async def status(self) -> SandboxState:
        if not await self.is_alive():
            return SandboxState()
        processes = await self.list_processes()
        port_open = await self.is_port_open(settings.sandbox.preview_port)
        return SandboxState(
            is_active=True,
            has_running_processes=len(processes) > 0,
            process_count=len(processes),
            preview_port_reachable=port_open,
        )


SandboxFactory = Callable[[str], Awaitable[ProjectSandbox]]
SandboxConnector = Callable[[str, str], Awaitable[ProjectSandbox]]


class SandboxRegistry:
    """
    Live sandbox handles keyed by project id.

    Also owns two per-project concerns that live as long as the sandbox does:
    the turn lock that serializes chat turns, and the inbox of results from
    commands that kept running after their turn moved on.
    """

    def __init__(
        self,
        factory: Optional[SandboxFactory] = None,
        connector: Optional[SandboxConnector] = None,
    ) -> None:
        self._factory = factory or ProjectSandbox.spawn
        self._connector = connector or ProjectSandbox.connect
        self._sandboxes: Dict[str, ProjectSandbox] = {}
        self._create_locks: Dict[str, asyncio.Lock] = {}
        self._turn_locks: Dict[str, asyncio.Lock] = {}
        self._background_results: Dict[str, List[Dict[str, Any]]] = {}
        self._tasks: Set[asyncio.Task] = set()

    # =========================================================================
    # HANDLES
    # =========================================================================

    def get(self, project_id: str) -> Optional[ProjectSandbox]:
        return self._sandboxes.get(project_id)

    async def create(self, project_id: str) -> ProjectSandbox:
        """Create a fresh sandbox, disposing any existing one."""
        async with self._create_lock(project_id):
            await self._dispose_unlocked(project_id)
            sandbox = await self._factory(project_id)
            self._hold(project_id, sandbox)
            return sandbox

    async def get_or_create(self, project_id: str, sandbox_id: Optional[str] = None) -> ProjectSandbox:
        """
        Return the live handle, reconnecting to `sandbox_id` when the process
        restarted, else creating a new sandbox.
        """
        async with self._create_lock(project_id):
            sandbox = self._sandboxes.get(project_id)
            if sandbox:
                return sandbox

            if sandbox_id:
                sandbox = await self._connect_unlocked(project_id, sandbox_id)

            if sandbox is None:
                sandbox = await self._factory(project_id)

            self._hold(project_id, sandbox)
            return sandbox

    async def reconnect(self, project_id: str, sandbox_id: str) -> Optional[ProjectSandbox]:
        """Reattach to a sandbox that outlived this process. Never creates one."""
        async with self._create_lock(project_id):
            sandbox = self._sandboxes.get(project_id)
            if sandbox:
                return sandbox
            sandbox = await self._connect_unlocked(project_id, sandbox_id)
            if sandbox is not None:
                self._hold(project_id, sandbox)
            return sandbox

    async def dispose(self, project_id: str) -> None:
        async with self._create_lock(project_id):
            await self._dispose_unlocked(project_id)
        self._background_results.pop(project_id, None)

    async def dispose_all(self) -> None:
        for project_id in list(self._sandboxes):
            await self.dispose(project_id)
        for task in list(self._tasks):
            task.cancel()

    async def status(self, project_id: str, sandbox_id: Optional[str] = None) -> SandboxState:
        """
        Probe the project's sandbox. With no live handle, `sandbox_id` (the id
        stored on the project) is reconnected first.
        """
        sandbox = self._sandboxes.get(project_id)
        if sandbox is None and sandbox_id:
            sandbox = await self.reconnect(project_id, sandbox_id)
        if sandbox is None:
            return SandboxState()
        return await sandbox.status()

    def active_count(self) -> int:
        return len(self._sandboxes)

    # =========================================================================
    # TURNS AND BACKGROUND WORK
    # =========================================================================

    def turn_lock(self, project_id: str) -> asyncio.Lock:
        lock = self._turn_locks.get(project_id)
        if lock is None:
            lock = asyncio.Lock()
            self._turn_locks[project_id] = lock
        return lock

    def track(self, task: asyncio.Task) -> asyncio.Task:
        """Hold a reference to a detached task until it finishes."""
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    def record_background_result(self, project_id: str, entry: Dict[str, Any]) -> None:
        self._background_results.setdefault(project_id, []).append(entry)

    def drain_background_results(self, project_id: str) -> List[Dict[str, Any]]:
        return self._background_results.pop(project_id, [])

    # =========================================================================
    # INTERNAL
    # =========================================================================

    def _create_lock(self, project_id: str) -> asyncio.Lock:
        lock = self._create_locks.get(project_id)
        if lock is None:
            lock = asyncio.Lock()
            self._create_locks[project_id] = lock
        return lock

    def _hold(self, project_id: str, sandbox: ProjectSandbox) -> None:
        self._sandboxes[project_id] = sandbox
        set_live_sandboxes(len(self._sandboxes))

    async def _connect_unlocked(self, project_id: str, sandbox_id: str) -> Optional[ProjectSandbox]:
        try:
            return await self._connector(project_id, sandbox_id)
        except SandboxError as e:
            log("SANDBOX", f"Reconnect to {sandbox_id} failed: {e.message}", project_id=project_id)
            return None

    async def _dispose_unlocked(self, project_id: str) -> None:
        sandbox = self._sandboxes.pop(project_id, None)
        if sandbox is None:
            return
        set_live_sandboxes(len(self._sandboxes))
        try:
            await sandbox.kill()
            log("SANDBOX", f"Disposed sandbox {sandbox.sandbox_id}", project_id=project_id)
        except Exception as e:
            log("SANDBOX", f"Dispose failed (ignored): {e}", project_id=project_id)
