"""Storage contracts used by the orchestrators and the background task runner."""

from abc import ABC, abstractmethod
from typing import Any, Optional

from ..models.credits import Complexity
from ..models.generation import SessionStatus


class SessionLedger(ABC):
    """Status and progress of generation sessions."""

    @abstractmethod
    async def update_status(self, session_id: str, status: SessionStatus, **fields: Any) -> bool:
        """
        Atomically set a session's status and progress fields.

        Sets ``completed_at`` when the new status is terminal. Returns False,
        changing nothing, when the session is already completed or failed.
        """

    @abstractmethod
    async def get_status(self, session_id: str) -> Optional[SessionStatus]:
        """Current status, or None for an unknown session."""


class FileStore(ABC):
    """Workspace file contents."""

    @abstractmethod
    async def list_files(self, workspace_id: str) -> dict[str, str]:
        """Map of file path to content for a workspace."""

    @abstractmethod
    async def upsert_file(
        self,
        workspace_id: str,
        path: str,
        content: str,
        *,
        user_id: Optional[str] = None,
        session_id: Optional[str] = None,
        ai_model: Optional[str] = None,
        reasoning: Optional[str] = None,
    ) -> None:
        """Create or replace a file, recording the operation for audit."""


class CreditLedger(ABC):
    """User credit balances."""

    @abstractmethod
    async def deduct(
        self,
        user_id: str,
        tokens_used: int,
        complexity: Complexity = Complexity.MEDIUM,
        session_id: Optional[str] = None,
    ) -> int:
        """Charge a user for a run's token usage. Returns the remaining balance."""


class WorkspaceLock(ABC):
    """At most one active run per workspace."""

    @abstractmethod
    async def acquire(self, workspace_id: str) -> bool:
        """Mark a workspace as generating. False if a run already holds it."""

    @abstractmethod
    async def release(self, workspace_id: str, success: bool) -> None:
        """Mark the workspace ready after a successful run, errored otherwise."""
