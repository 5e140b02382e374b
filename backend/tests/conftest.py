"""Shared fakes and fixtures."""

import json
from typing import Callable, Optional, Union

import pytest

from buildable.core.engine import ExecutionEngine
from buildable.core.ledger import CreditLedger, FileStore, SessionLedger, WorkspaceLock
from buildable.core.registry import ProviderRegistry
from buildable.models.credits import Complexity
from buildable.models.generation import SessionStatus
from buildable.models.provider import ProviderType
from buildable.providers.base import AIProvider, ProviderResponse

Reply = Union[str, ProviderResponse, Exception]


class ScriptedProvider(AIProvider):
    """
    Provider that answers from a script instead of a network call.

    Replies are taken in order from ``replies``, or computed by
    ``handler(system_prompt, user_prompt)``. An exception reply is raised.
    """

    def __init__(
        self,
        provider_id: str = "scripted",
        replies: Optional[list[Reply]] = None,
        handler: Optional[Callable[[str, str], Reply]] = None,
        streams: Optional[list[list[Union[str, Exception]]]] = None,
    ):
        self.provider_id = provider_id
        self.replies = list(replies or [])
        self.handler = handler
        self.streams = list(streams or [])
        self.calls: list[dict] = []
        self.stream_calls = 0

    async def generate(
        self,
        system_prompt,
        user_prompt,
        model,
        temperature=0.3,
        max_tokens=None,
        json_mode=False,
        images=None,
    ):
        self.calls.append({
            "system_prompt": system_prompt,
            "user_prompt": user_prompt,
            "model": model,
            "temperature": temperature,
            "max_tokens": max_tokens,
            "json_mode": json_mode,
            "images": images,
        })

        reply = self.handler(system_prompt, user_prompt) if self.handler else self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        if isinstance(reply, ProviderResponse):
            return reply
        return ProviderResponse(content=reply, model=model, input_tokens=10, output_tokens=20)

    async def generate_stream(self, system_prompt, user_prompt, model, temperature=0.3, max_tokens=None):
        self.stream_calls += 1
        for item in self.streams.pop(0):
            if isinstance(item, Exception):
                raise item
            yield item


class MemorySessionLedger(SessionLedger):
    """Session store with the same finality rule as the database one."""

    def __init__(self):
        self.sessions: dict[str, dict] = {}
        self.history: dict[str, list[SessionStatus]] = {}

    def create(self, session_id: str) -> None:
        self.sessions[session_id] = {"status": SessionStatus.PENDING}
        self.history[session_id] = []

    def cancel(self, session_id: str) -> None:
        session = self.sessions[session_id]
        if not session["status"].is_terminal:
            session["status"] = SessionStatus.FAILED
            session["error_message"] = "Cancelled by user"

    async def update_status(self, session_id, status, **fields):
        session = self.sessions.get(session_id)
        if session is None or session["status"].is_terminal:
            return False
        session.update(fields)
        session["status"] = SessionStatus(status)
        self.history[session_id].append(SessionStatus(status))
        return True

    async def get_status(self, session_id):
        session = self.sessions.get(session_id)
        return session["status"] if session else None


class MemoryFileStore(FileStore):

    def __init__(self, files: Optional[dict[str, dict[str, str]]] = None):
        self.files: dict[str, dict[str, str]] = files or {}
        self.operations: list[dict] = []

    async def list_files(self, workspace_id):
        return dict(self.files.get(workspace_id, {}))

    async def upsert_file(self, workspace_id, path, content, *, user_id=None, session_id=None, ai_model=None, reasoning=None):
        self.files.setdefault(workspace_id, {})[path] = content
        self.operations.append({"path": path, "content": content, "reasoning": reasoning})


class MemoryCreditLedger(CreditLedger):

    def __init__(self, balance: int = 100):
        self.balance = balance
        self.deductions: list[tuple[str, int, Complexity, Optional[str]]] = []

    async def deduct(self, user_id, tokens_used, complexity=Complexity.MEDIUM, session_id=None):
        self.deductions.append((user_id, tokens_used, complexity, session_id))
        self.balance = max(self.balance - tokens_used // 1000, 0)
        return self.balance


class MemoryWorkspaceLock(WorkspaceLock):

    def __init__(self):
        self.held: set[str] = set()
        self.released: list[tuple[str, bool]] = []

    async def acquire(self, workspace_id):
        if workspace_id in self.held:
            return False
        self.held.add(workspace_id)
        return True

    async def release(self, workspace_id, success):
        self.held.discard(workspace_id)
        self.released.append((workspace_id, success))


def plan_json(files: list[dict], **extra) -> str:
    return json.dumps({
        "projectType": "app",
        "description": "Todo app",
        "files": files,
        "framework": "react",
        **extra,
    })


class PipelineModel:
    """
    Prompt-aware stand-in for every model the pipeline talks to.

    Code for a file is ``// <path>`` unless ``code`` overrides it. Raising
    entries in ``failures`` make generating that path fail.
    """

    def __init__(
        self,
        plan: str,
        verdicts: Optional[Callable[[str], str]] = None,
        analysis: Optional[str] = None,
        failures: Optional[dict[str, Exception]] = None,
        on_generate: Optional[Callable[[str], None]] = None,
    ):
        self.plan = plan
        self.verdicts = verdicts or (lambda path: '{"valid": true, "issues": []}')
        self.analysis = analysis
        self.failures = failures or {}
        self.on_generate = on_generate
        self.generated_paths: list[str] = []
        self.validated_paths: list[str] = []
        self.fixed_paths: list[str] = []

    @staticmethod
    def _path_after(prefix: str, text: str) -> str:
        line = next(line for line in text.splitlines() if line.startswith(prefix))
        return line[len(prefix):].strip()

    def __call__(self, system_prompt: str, user_prompt: str) -> Reply:
        if "software architect" in system_prompt:
            return self.plan
        if "code validator" in system_prompt:
            path = self._path_after("Validate this", user_prompt).split(": ", 1)[1]
            self.validated_paths.append(path)
            return self.verdicts(path)
        if "fixing code issues" in system_prompt:
            path = self._path_after("File:", user_prompt)
            self.fixed_paths.append(path)
            return f"// fixed {path}"
        if "analyzing a refinement request" in system_prompt:
            return self.analysis
        if "suggest next steps" in system_prompt:
            return '{"suggestions": [{"title": "Add tests", "description": "Cover the hooks", "priority": "high"}]}'
        if "modifying an existing file" in system_prompt:
            path = self._path_after("File:", user_prompt)
            return f"// modified {path}"
        if user_prompt.startswith("Create file:"):
            path = self._path_after("Create file:", user_prompt)
            return f"// created {path}"
        if user_prompt.startswith("Generate the file:"):
            path = self._path_after("Generate the file:", user_prompt)
            if self.on_generate:
                self.on_generate(path)
            if path in self.failures:
                raise self.failures[path]
            self.generated_paths.append(path)
            return f"```tsx\n// {path}\n```"
        raise AssertionError(f"Unexpected prompt: {system_prompt[:60]!r}")


@pytest.fixture
def session_ledger():
    return MemorySessionLedger()


@pytest.fixture
def file_store():
    return MemoryFileStore()


@pytest.fixture
def credit_ledger():
    return MemoryCreditLedger()


@pytest.fixture
def workspace_lock():
    return MemoryWorkspaceLock()


def engine_for(adapters: dict[ProviderType, AIProvider], retry_count: int = 2) -> ExecutionEngine:
    return ExecutionEngine(ProviderRegistry(adapters), retry_count=retry_count, retry_delay=0)


def single_provider_engine(provider: AIProvider) -> ExecutionEngine:
    """Every task routes to ``provider`` (through Anthropic and Gemini)."""
    return engine_for({ProviderType.ANTHROPIC: provider, ProviderType.GEMINI: provider})
