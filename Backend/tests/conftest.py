# tests/conftest.py
"""
Shared pytest fixtures for Vibe Code tests.

Provides:
- In-memory doubles for the project store, blob store, sandbox and search
- A sandbox registry whose factory hands out fake sandboxes
- A Services container and an HTTP client bound to the FastAPI app
"""
import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional
from uuid import uuid4

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from app.core.exceptions import SandboxError, StorageError
from app.sandbox import SandboxRegistry, SandboxState, ShellResult
from app.search import SearchResult
from app.tools import ToolDispatcher


TEST_USER_ID = "user-123"


def _now() -> datetime:
    return datetime.now(timezone.utc)


# ═══════════════════════════════════════════════════════
# MOCK RECORDS
# ═══════════════════════════════════════════════════════

@dataclass
class MockUser:
    id: str
    email: str
    display_name: Optional[str] = None
    photo_url: Optional[str] = None
    created_at: datetime = field(default_factory=_now)


@dataclass
class MockProject:
    user_id: str
    name: str
    description: Optional[str] = None
    id: str = field(default_factory=lambda: str(uuid4()))
    s3_prefix: Optional[str] = None
    sandbox_id: Optional[str] = None
    sandbox_url: Optional[str] = None
    workflow_command: Optional[str] = None
    created_at: datetime = field(default_factory=_now)
    updated_at: datetime = field(default_factory=_now)


@dataclass
class MockProjectFile:
    project_id: str
    path: str
    s3_key: str
    size: Optional[int] = None
    mime_type: Optional[str] = None
    id: str = field(default_factory=lambda: str(uuid4()))
    created_at: datetime = field(default_factory=_now)
    updated_at: datetime = field(default_factory=_now)


@dataclass
class MockChatMessage:
    project_id: str
    role: str
    content: str
    tool_calls: Optional[list] = None
    actions: Optional[list] = None
    attachments: Optional[list] = None
    id: str = field(default_factory=lambda: str(uuid4()))
    created_at: datetime = field(default_factory=_now)


# ═══════════════════════════════════════════════════════
# MOCK COLLABORATORS
# ═══════════════════════════════════════════════════════

class InMemoryStore:
    """Same methods as ProjectStore, kept in dicts and lists."""

    def __init__(self):
        self.users: Dict[str, MockUser] = {}
        self.projects: Dict[str, MockProject] = {}
        self.files: Dict[str, MockProjectFile] = {}
        self.messages: List[MockChatMessage] = []

    async def upsert_user(self, user_id, email, display_name=None, photo_url=None):
        user = self.users.get(user_id) or MockUser(id=user_id, email=email)
        user.email = email
        user.display_name = display_name
        user.photo_url = photo_url
        self.users[user_id] = user
        return user

    async def create_project(self, user_id, name, description=None):
        project = MockProject(user_id=user_id, name=name, description=description)
        project.s3_prefix = f"projects/{project.id}"
        self.projects[project.id] = project
        return project

    async def get_project(self, project_id):
        return self.projects.get(project_id)

    async def list_projects(self, user_id):
        return [p for p in self.projects.values() if p.user_id == user_id]

    async def update_project(self, project_id, **fields):
        project = self.projects.get(project_id)
        if not project:
            return None
        for key, value in fields.items():
            setattr(project, key, value)
        project.updated_at = _now()
        return project

    async def delete_project(self, project_id):
        if project_id not in self.projects:
            return False
        del self.projects[project_id]
        self.files = {k: f for k, f in self.files.items() if f.project_id != project_id}
        self.messages = [m for m in self.messages if m.project_id != project_id]
        return True

    async def list_files(self, project_id):
        return sorted(
            (f for f in self.files.values() if f.project_id == project_id),
            key=lambda f: f.path,
        )

    async def get_file(self, file_id):
        return self.files.get(file_id)

    async def get_file_by_path(self, project_id, path):
        for record in self.files.values():
            if record.project_id == project_id and record.path == path:
                return record
        return None

    async def upsert_file(self, project_id, path, s3_key, size, mime_type=None):
        existing = await self.get_file_by_path(project_id, path)
        if existing:
            existing.s3_key = s3_key
            existing.size = size
            existing.mime_type = mime_type
            existing.updated_at = _now()
            return existing
        record = MockProjectFile(project_id=project_id, path=path, s3_key=s3_key, size=size, mime_type=mime_type)
        self.files[record.id] = record
        return record

    async def delete_file(self, file_id):
        return self.files.pop(file_id, None) is not None

    async def create_message(self, project_id, role, content, tool_calls=None, actions=None, attachments=None):
        message = MockChatMessage(
            project_id=project_id,
            role=role,
            content=content,
            tool_calls=tool_calls or None,
            actions=actions or None,
            attachments=attachments or None,
        )
        self.messages.append(message)
        return message

    async def list_messages(self, project_id, limit=None):
        messages = [m for m in self.messages if m.project_id == project_id]
        if limit is not None:
            messages = messages[-limit:]
        return messages

    def messages_for(self, project_id: str, role: Optional[str] = None) -> List[MockChatMessage]:
        return [m for m in self.messages if m.project_id == project_id and (role is None or m.role == role)]


class FakeBlobStore:
    def __init__(self):
        self.objects: Dict[str, bytes] = {}
        self.fail_put = False
        self.fail_delete = False

    async def put(self, key, data, content_type=None):
        if self.fail_put:
            raise StorageError(key, "put refused")
        self.objects[key] = data
        return key

    async def get(self, key):
        if key not in self.objects:
            raise StorageError(key, "NoSuchKey")
        return self.objects[key]

    async def delete(self, key):
        if self.fail_delete:
            raise StorageError(key, "delete refused")
        self.objects.pop(key, None)

    async def list(self, prefix):
        return [k for k in self.objects if k.startswith(prefix)]

    async def delete_prefix(self, prefix):
        keys = await self.list(prefix)
        for key in keys:
            await self.delete(key)
        return len(keys)


class FakeSandbox:
    """Stands in for ProjectSandbox."""

    def __init__(self, project_id: str, sandbox_id: str):
        self.project_id = project_id
        self.sandbox_id = sandbox_id
        self.preview_url = f"https://3000-{sandbox_id}.e2b.app"
        self.files: Dict[str, str] = {}
        self.commands: List[str] = []
        self.background: List[str] = []
        self.shell_results: Dict[str, ShellResult] = {}
        self.background_result = ShellResult(stdout="ready", exit_code=0)
        self.processes: List[Any] = []
        self.alive = True
        self.port_open = False
        self.hang_shell = False
        self.fail_writes = False
        self.fail_removes = False
        self.killed = False

    async def is_alive(self):
        return self.alive

    async def kill(self):
        self.killed = True
        self.alive = False

    async def run_shell(self, command, timeout=None):
        self.commands.append(command)
        if self.hang_shell:
            await asyncio.sleep(3600)
        return self.shell_results.get(command, ShellResult(stdout=f"ran {command}"))

    async def start_background(self, command):
        self.background.append(command)
        return {"command": command}

    async def wait_background(self, handle):
        return self.background_result

    async def run_code(self, code, language="python"):
        return ShellResult(stdout=f"{language}:{code}")

    async def list_processes(self):
        return self.processes

    async def write_file(self, path, content):
        if self.fail_writes:
            raise SandboxError(self.project_id, f"write {path} failed: sandbox unreachable")
        self.files[path] = content

    async def read_file(self, path):
        return self.files[path]

    async def remove_file(self, path):
        if self.fail_removes:
            raise SandboxError(self.project_id, f"remove {path} failed: sandbox unreachable")
        self.files.pop(path, None)

    async def status(self):
        if not self.alive:
            return SandboxState()
        return SandboxState(
            is_active=True,
            has_running_processes=bool(self.processes),
            process_count=len(self.processes),
            preview_port_reachable=self.port_open,
        )


class FakeSearch:
    def __init__(self):
        self.queries: List[str] = []

    async def search(self, query):
        self.queries.append(query)
        return [SearchResult(title=f"About {query}", link="https://example.com", snippet="...")]


def build_registry(
    created: List[FakeSandbox],
    fail_create: bool = False,
    reconnectable: bool = False,
) -> SandboxRegistry:
    async def factory(project_id):
        if fail_create:
            raise SandboxError(project_id, "quota exceeded")
        sandbox = FakeSandbox(project_id, f"sbx-{len(created) + 1}")
        created.append(sandbox)
        return sandbox

    async def connector(project_id, sandbox_id):
        if not reconnectable:
            raise SandboxError(project_id, f"{sandbox_id} is gone")
        return FakeSandbox(project_id, sandbox_id)

    return SandboxRegistry(factory=factory, connector=connector)


# ═══════════════════════════════════════════════════════
# FIXTURES - Collaborators
# ═══════════════════════════════════════════════════════

@pytest.fixture
def store():
    return InMemoryStore()


@pytest.fixture
def blobs():
    return FakeBlobStore()


@pytest.fixture
def search():
    return FakeSearch()


@pytest.fixture
def created_sandboxes():
    """Every FakeSandbox the registry factory produced, in order."""
    return []


@pytest_asyncio.fixture
async def sandboxes(created_sandboxes):
    registry = build_registry(created_sandboxes)
    yield registry
    await registry.dispose_all()


@pytest.fixture
def unavailable_sandboxes():
    """A registry whose every create call fails."""
    return build_registry([], fail_create=True)


@pytest_asyncio.fixture
async def surviving_sandboxes(created_sandboxes):
    """A registry started after a restart: stored sandbox ids still reconnect."""
    registry = build_registry(created_sandboxes, reconnectable=True)
    yield registry
    await registry.dispose_all()


@pytest_asyncio.fixture
async def project(store):
    return await store.create_project(TEST_USER_ID, "Todo App")


@pytest_asyncio.fixture
async def live_sandbox(sandboxes, project):
    """A sandbox already running for `project`."""
    return await sandboxes.create(project.id)


@pytest.fixture
def dispatcher(project, store, blobs, sandboxes, search):
    return ToolDispatcher(project.id, store, blobs, sandboxes, search, short_timeout=0.05)


# ═══════════════════════════════════════════════════════
# FIXTURES - HTTP
# ═══════════════════════════════════════════════════════

@pytest.fixture
def services(store, blobs, sandboxes, search):
    from app.api.deps import Services
    return Services(store=store, blobs=blobs, sandboxes=sandboxes, search=search)


@pytest_asyncio.fixture
async def async_client(services):
    from app.core.auth import AuthenticatedUser, require_user
    from app.main import app

    app.state.services = services
    app.dependency_overrides[require_user] = lambda: AuthenticatedUser(uid=TEST_USER_ID)
    try:
        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
            yield client
    finally:
        app.dependency_overrides.clear()
        for task in list(services.tasks):
            task.cancel()
