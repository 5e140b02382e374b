"""Process-wide services and the FastAPI dependencies that expose them."""

import logging
from dataclasses import dataclass
from typing import Optional

from fastapi import Request
from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker

from ..core.config import Settings
from ..core.engine import ExecutionEngine
from ..core.provider_health import ProviderHealthTracker
from ..core.registry import ProviderRegistry
from ..core.routing import ProviderRouter
from ..core.tasks import RunSupervisor
from ..db.database import create_session_factory
from ..db.repository import SqlCreditLedger, SqlFileStore, SqlSessionLedger, SqlWorkspaceLock

logger = logging.getLogger(__name__)


@dataclass
class Services:
    """Everything built once at startup and shared by all requests."""
    settings: Settings
    registry: ProviderRegistry
    router: ProviderRouter
    health: ProviderHealthTracker
    engine: ExecutionEngine
    db_engine: AsyncEngine
    session_factory: async_sessionmaker
    session_ledger: SqlSessionLedger
    file_store: SqlFileStore
    credit_ledger: SqlCreditLedger
    workspace_lock: SqlWorkspaceLock
    supervisor: RunSupervisor

    @classmethod
    def build(
        cls,
        settings: Settings,
        db_engine: AsyncEngine,
        registry: Optional[ProviderRegistry] = None,
    ) -> "Services":
        """
        Wire up the registry, routing, execution engine and ledgers.

        Raises:
            NoConfiguredProvider: some task type has no provider with credentials
        """
        registry = registry or ProviderRegistry.from_settings(settings)
        router = ProviderRouter(registry)
        router.validate()

        health = ProviderHealthTracker()
        engine = ExecutionEngine(
            registry,
            router,
            retry_count=settings.retry_count,
            retry_delay=settings.retry_delay_seconds,
            health=health,
            stream_buffer_size=settings.stream_buffer_size,
        )

        session_factory = create_session_factory(db_engine)
        credit_ledger = SqlCreditLedger(
            session_factory,
            cost_multiplier=settings.credits_cost_multiplier,
            initial_credits=settings.default_user_credits,
        )
        workspace_lock = SqlWorkspaceLock(session_factory)

        return cls(
            settings=settings,
            registry=registry,
            router=router,
            health=health,
            engine=engine,
            db_engine=db_engine,
            session_factory=session_factory,
            session_ledger=SqlSessionLedger(session_factory),
            file_store=SqlFileStore(session_factory),
            credit_ledger=credit_ledger,
            workspace_lock=workspace_lock,
            supervisor=RunSupervisor(credit_ledger, workspace_lock),
        )


def get_services(request: Request) -> Services:
    return request.app.state.services
