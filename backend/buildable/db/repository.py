"""Repository pattern for database operations."""

import logging
from datetime import datetime, timezone as tz
from typing import Any, Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from .models import (
    CreditBalanceModel,
    CreditTransactionModel,
    FileOperationModel,
    GenerationSessionModel,
    UserModel,
    WorkspaceFileModel,
    WorkspaceModel,
)
from ..core.credits import DEFAULT_COST_MULTIPLIER, calculate_credits
from ..core.ledger import CreditLedger, FileStore, SessionLedger, WorkspaceLock
from ..models.credits import Complexity
from ..models.generation import SessionStatus

logger = logging.getLogger(__name__)

TERMINAL_STATUSES = (SessionStatus.COMPLETED.value, SessionStatus.FAILED.value)

# Columns a status update may also write
SESSION_PROGRESS_FIELDS = frozenset({
    "plan",
    "files_planned",
    "files_generated",
    "tokens_used",
    "credits_used",
    "error_message",
    "file_results",
    "suggestions",
})


class UserRepository:
    """Repository for user rows synced from the auth provider."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get(self, user_id: str) -> Optional[UserModel]:
        result = await self.db.execute(select(UserModel).where(UserModel.id == user_id))
        return result.scalar_one_or_none()

    async def get_or_create(self, user_id: str, email: Optional[str] = None) -> UserModel:
        """Get a user, provisioning the row on first sight."""
        user = await self.get(user_id)
        if user:
            return user

        user = UserModel(id=user_id, email=email)
        self.db.add(user)
        await self.db.commit()
        await self.db.refresh(user)

        logger.info(f"Provisioned user {user_id}")
        return user


class WorkspaceRepository:
    """Repository for workspaces and their files."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def create(self, user_id: str, name: str) -> WorkspaceModel:
        workspace = WorkspaceModel(user_id=user_id, name=name, status="ready")
        self.db.add(workspace)
        await self.db.commit()
        await self.db.refresh(workspace)
        return workspace

    async def get(self, workspace_id: str) -> Optional[WorkspaceModel]:
        result = await self.db.execute(
            select(WorkspaceModel).where(WorkspaceModel.id == workspace_id)
        )
        return result.scalar_one_or_none()

    async def get_for_user(self, workspace_id: str, user_id: str) -> Optional[WorkspaceModel]:
        """Get a workspace only if the user owns it."""
        result = await self.db.execute(
            select(WorkspaceModel).where(
                WorkspaceModel.id == workspace_id,
                WorkspaceModel.user_id == user_id,
            )
        )
        return result.scalar_one_or_none()

    async def try_start_generation(self, workspace_id: str) -> bool:
        """
        Atomically mark a workspace as generating.

        Returns False when another run already holds it (or it does not exist).
        """
        result = await self.db.execute(
            update(WorkspaceModel)
            .where(
                WorkspaceModel.id == workspace_id,
                WorkspaceModel.status != "generating",
            )
            .values(status="generating", updated_at=datetime.now(tz.utc))
        )
        await self.db.commit()
        return result.rowcount > 0

    async def set_status(self, workspace_id: str, status: str) -> None:
        await self.db.execute(
            update(WorkspaceModel)
            .where(WorkspaceModel.id == workspace_id)
            .values(status=status, updated_at=datetime.now(tz.utc))
        )
        await self.db.commit()

    async def list_files(self, workspace_id: str) -> list[WorkspaceFileModel]:
        result = await self.db.execute(
            select(WorkspaceFileModel)
            .where(WorkspaceFileModel.workspace_id == workspace_id)
            .order_by(WorkspaceFileModel.file_path)
        )
        return list(result.scalars().all())

    async def get_file(self, workspace_id: str, path: str) -> Optional[WorkspaceFileModel]:
        result = await self.db.execute(
            select(WorkspaceFileModel).where(
                WorkspaceFileModel.workspace_id == workspace_id,
                WorkspaceFileModel.file_path == path,
            )
        )
        return result.scalar_one_or_none()

    async def upsert_file(
        self,
        workspace_id: str,
        path: str,
        content: str,
        user_id: Optional[str] = None,
        session_id: Optional[str] = None,
        ai_model: Optional[str] = None,
        reasoning: Optional[str] = None,
    ) -> WorkspaceFileModel:
        """
        Create or replace a file and record the operation.

        Args:
            workspace_id: Workspace UUID string
            path: File path inside the workspace
            content: New file content
            user_id: User the change is attributed to
            session_id: Run that produced the change
            ai_model: Model that produced the content
            reasoning: Why the file was written

        Returns:
            The stored WorkspaceFileModel
        """
        existing = await self.get_file(workspace_id, path)
        previous_content = existing.content if existing else None

        if existing:
            existing.content = content
            existing.updated_at = datetime.now(tz.utc)
            file = existing
        else:
            file = WorkspaceFileModel(workspace_id=workspace_id, file_path=path, content=content)
            self.db.add(file)

        self.db.add(FileOperationModel(
            workspace_id=workspace_id,
            user_id=user_id,
            session_id=session_id,
            file_path=path,
            operation="update" if existing else "create",
            previous_content=previous_content,
            new_content=content,
            ai_model=ai_model,
            reasoning=reasoning,
        ))

        await self.db.commit()
        await self.db.refresh(file)
        return file

    async def list_operations(self, workspace_id: str) -> list[FileOperationModel]:
        result = await self.db.execute(
            select(FileOperationModel)
            .where(FileOperationModel.workspace_id == workspace_id)
            .order_by(FileOperationModel.created_at)
        )
        return list(result.scalars().all())


class SessionRepository:
    """
    Repository for generation session operations.

    Status writes are conditional so a finished session can never be
    reopened, whichever writer gets there first.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    async def create(
        self,
        workspace_id: str,
        prompt: str,
        user_id: Optional[str] = None,
        kind: str = "generate",
    ) -> GenerationSessionModel:
        session = GenerationSessionModel(
            workspace_id=workspace_id,
            user_id=user_id,
            kind=kind,
            prompt=prompt,
            status=SessionStatus.PENDING.value,
        )
        self.db.add(session)
        await self.db.commit()
        await self.db.refresh(session)

        logger.info(f"Created {kind} session {session.id} for workspace {workspace_id}")
        return session

    async def get(self, session_id: str) -> Optional[GenerationSessionModel]:
        result = await self.db.execute(
            select(GenerationSessionModel).where(GenerationSessionModel.id == session_id)
        )
        return result.scalar_one_or_none()

    async def get_for_user(self, session_id: str, user_id: str) -> Optional[GenerationSessionModel]:
        result = await self.db.execute(
            select(GenerationSessionModel).where(
                GenerationSessionModel.id == session_id,
                GenerationSessionModel.user_id == user_id,
            )
        )
        return result.scalar_one_or_none()

    async def get_status(self, session_id: str) -> Optional[SessionStatus]:
        result = await self.db.execute(
            select(GenerationSessionModel.status).where(GenerationSessionModel.id == session_id)
        )
        status = result.scalar_one_or_none()
        return SessionStatus(status) if status else None

    async def update_status(self, session_id: str, status: SessionStatus, **fields: Any) -> bool:
        """
        Update session status and progress in a single conditional UPDATE.

        Args:
            session_id: Session UUID string
            status: New status
            **fields: Progress columns to write alongside the status

        Returns:
            False if the session is unknown or already completed/failed
        """
        unknown = set(fields) - SESSION_PROGRESS_FIELDS
        if unknown:
            raise ValueError(f"Unknown session fields: {sorted(unknown)}")

        status = SessionStatus(status)
        now = datetime.now(tz.utc)
        values = {"status": status.value, "updated_at": now, **fields}
        if status.is_terminal:
            values["completed_at"] = now

        result = await self.db.execute(
            update(GenerationSessionModel)
            .where(
                GenerationSessionModel.id == session_id,
                GenerationSessionModel.status.not_in(TERMINAL_STATUSES),
            )
            .values(**values)
        )
        await self.db.commit()
        return result.rowcount > 0

    async def cancel(self, session_id: str, message: str = "Cancelled by user") -> bool:
        """Mark a running session failed. No-op (False) on finished sessions."""
        return await self.update_status(session_id, SessionStatus.FAILED, error_message=message)


class CreditRepository:
    """
    Repository for credit database operations.

    Handles credit balance tracking and the transaction log.
    """

    DEFAULT_INITIAL_CREDITS = 10

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_balance(self, user_id: str) -> Optional[CreditBalanceModel]:
        result = await self.db.execute(
            select(CreditBalanceModel).where(CreditBalanceModel.user_id == user_id)
        )
        return result.scalar_one_or_none()

    async def get_balance_for_update(self, user_id: str) -> Optional[CreditBalanceModel]:
        """Get a balance with a row-level lock (ignored by SQLite)."""
        result = await self.db.execute(
            select(CreditBalanceModel)
            .where(CreditBalanceModel.user_id == user_id)
            .with_for_update()
        )
        return result.scalar_one_or_none()

    async def get_or_create_balance(
        self,
        user_id: str,
        initial_credits: Optional[int] = None,
    ) -> CreditBalanceModel:
        """
        Get a user's balance, creating one with initial credits if it doesn't exist.

        Args:
            user_id: User ID string
            initial_credits: Initial credit grant (defaults to DEFAULT_INITIAL_CREDITS)

        Returns:
            CreditBalanceModel
        """
        balance = await self.get_balance(user_id)
        if balance:
            return balance

        credits = initial_credits if initial_credits is not None else self.DEFAULT_INITIAL_CREDITS
        balance = CreditBalanceModel(user_id=user_id, balance=credits, lifetime_used=0)
        self.db.add(balance)

        if credits > 0:
            self.db.add(CreditTransactionModel(
                user_id=user_id,
                amount=credits,
                type="initial_grant",
                description="Welcome credits for new user",
                balance_after=credits,
            ))

        await self.db.commit()
        await self.db.refresh(balance)

        logger.info(f"Created credit balance for user {user_id} with {credits} credits")
        return balance

    async def deduct(
        self,
        user_id: str,
        amount: int,
        session_id: Optional[str] = None,
        tokens_used: Optional[int] = None,
        complexity: Optional[str] = None,
        description: Optional[str] = None,
    ) -> CreditBalanceModel:
        """
        Charge credits for work that already happened.

        The run has been paid for in tokens regardless of the balance, so the
        balance is clamped at zero rather than refusing the deduction.
        """
        await self.get_or_create_balance(user_id)

        balance = await self.get_balance_for_update(user_id)

        if balance.balance < amount:
            logger.warning(
                f"User {user_id} used {amount} credits with only {balance.balance} available, "
                "clamping balance at 0"
            )

        new_balance = max(balance.balance - amount, 0)
        balance.balance = new_balance
        balance.lifetime_used += amount
        balance.updated_at = datetime.now(tz.utc)

        self.db.add(CreditTransactionModel(
            user_id=user_id,
            amount=-amount,
            type="usage",
            description=description or "AI generation",
            tokens_used=tokens_used,
            complexity=complexity,
            session_id=session_id,
            balance_after=new_balance,
        ))

        await self.db.commit()
        await self.db.refresh(balance)

        logger.info(f"Deducted {amount} credits from user {user_id}, new balance: {new_balance}")
        return balance

    async def get_transactions(self, user_id: str) -> list[CreditTransactionModel]:
        result = await self.db.execute(
            select(CreditTransactionModel)
            .where(CreditTransactionModel.user_id == user_id)
            .order_by(CreditTransactionModel.created_at)
        )
        return list(result.scalars().all())


# ============ Ledger adapters ============
# Each call opens its own short-lived session so they are safe to use from
# background tasks that outlive the request.


class SqlSessionLedger(SessionLedger):

    def __init__(self, session_factory: async_sessionmaker):
        self.session_factory = session_factory

    async def update_status(self, session_id: str, status: SessionStatus, **fields: Any) -> bool:
        async with self.session_factory() as db:
            return await SessionRepository(db).update_status(session_id, status, **fields)

    async def get_status(self, session_id: str) -> Optional[SessionStatus]:
        async with self.session_factory() as db:
            return await SessionRepository(db).get_status(session_id)


class SqlFileStore(FileStore):

    def __init__(self, session_factory: async_sessionmaker):
        self.session_factory = session_factory

    async def list_files(self, workspace_id: str) -> dict[str, str]:
        async with self.session_factory() as db:
            files = await WorkspaceRepository(db).list_files(workspace_id)
            return {f.file_path: f.content for f in files}

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
        async with self.session_factory() as db:
            await WorkspaceRepository(db).upsert_file(
                workspace_id,
                path,
                content,
                user_id=user_id,
                session_id=session_id,
                ai_model=ai_model,
                reasoning=reasoning,
            )


class SqlCreditLedger(CreditLedger):

    def __init__(
        self,
        session_factory: async_sessionmaker,
        cost_multiplier: float = DEFAULT_COST_MULTIPLIER,
        initial_credits: Optional[int] = None,
    ):
        self.session_factory = session_factory
        self.cost_multiplier = cost_multiplier
        self.initial_credits = initial_credits

    async def deduct(
        self,
        user_id: str,
        tokens_used: int,
        complexity: Complexity = Complexity.MEDIUM,
        session_id: Optional[str] = None,
    ) -> int:
        complexity = Complexity(complexity)
        amount = calculate_credits(tokens_used, complexity, self.cost_multiplier)

        async with self.session_factory() as db:
            repo = CreditRepository(db)
            await repo.get_or_create_balance(user_id, self.initial_credits)
            balance = await repo.deduct(
                user_id,
                amount,
                session_id=session_id,
                tokens_used=tokens_used,
                complexity=complexity.value,
            )
            return balance.balance


class SqlWorkspaceLock(WorkspaceLock):

    def __init__(self, session_factory: async_sessionmaker):
        self.session_factory = session_factory

    async def acquire(self, workspace_id: str) -> bool:
        async with self.session_factory() as db:
            return await WorkspaceRepository(db).try_start_generation(workspace_id)

    async def release(self, workspace_id: str, success: bool) -> None:
        async with self.session_factory() as db:
            await WorkspaceRepository(db).set_status(workspace_id, "ready" if success else "error")
