"""Background execution of orchestrator runs."""

import asyncio
import logging
from typing import Optional, Union

from .ledger import CreditLedger, WorkspaceLock
from .orchestrator import GenerationOrchestrator, RefinementOrchestrator
from ..models.generation import PipelineResult

logger = logging.getLogger(__name__)

Orchestrator = Union[GenerationOrchestrator, RefinementOrchestrator]


class RunSupervisor:
    """
    Owns the asyncio tasks of in-flight runs.

    The event loop only keeps weak references to tasks, so each task is held
    here until it finishes.
    """

    def __init__(self, credit_ledger: CreditLedger, workspace_lock: WorkspaceLock):
        self.credit_ledger = credit_ledger
        self.workspace_lock = workspace_lock
        self._tasks: set[asyncio.Task] = set()

    @property
    def active(self) -> int:
        return len(self._tasks)

    def spawn_run(self, orchestrator: Orchestrator) -> asyncio.Task:
        """Start a run in the background and return its task."""
        session_id = orchestrator.config.session_id
        task = asyncio.create_task(self._supervise(orchestrator), name=f"run-{session_id}")
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        logger.info(f"Spawned background run for session {session_id}")
        return task

    async def _supervise(self, orchestrator: Orchestrator) -> Optional[PipelineResult]:
        config = orchestrator.config
        result: Optional[PipelineResult] = None

        try:
            result = await orchestrator.run()
        except Exception:
            logger.exception(f"Unexpected error in background run for session {config.session_id}")
        finally:
            try:
                await self.workspace_lock.release(config.workspace_id, bool(result and result.success))
            except Exception:
                logger.exception(f"Failed to release workspace {config.workspace_id}")

        tokens_used = result.total_tokens if result else orchestrator.total_tokens
        if config.user_id and tokens_used > 0:
            try:
                remaining = await self.credit_ledger.deduct(
                    config.user_id,
                    tokens_used,
                    config.complexity,
                    session_id=config.session_id,
                )
                logger.info(
                    f"Charged user {config.user_id} for {tokens_used} tokens, "
                    f"{remaining} credits remaining"
                )
            except Exception:
                logger.exception(f"Failed to deduct credits for session {config.session_id}")

        return result

    async def shutdown(self, timeout: float = 5.0) -> None:
        """Cancel runs still in flight, waiting briefly for them to unwind."""
        if not self._tasks:
            return
        pending = list(self._tasks)
        logger.info(f"Cancelling {len(pending)} background run(s)")
        for task in pending:
            task.cancel()
        await asyncio.wait(pending, timeout=timeout)
