"""Multi-phase generation and refinement orchestrators."""

import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Optional

from .coder import CodeResult, Coder
from .credits import DEFAULT_COST_MULTIPLIER, calculate_credits
from .engine import ExecutionEngine
from .errors import InvalidTransition, PerFileGenerationError, ResponseParseError, RunCancelled
from .ledger import FileStore, SessionLedger
from .parsing import parse_model_json
from .planner import Planner
from .templates import apply_template
from .validator import ValidationRepairCoordinator
from ..models.credits import Complexity
from ..models.execution import ExecutionRequest
from ..models.generation import (
    FileSpec,
    GeneratedFile,
    GenerationOptions,
    PipelineResult,
    ProjectPlan,
    RefinementAnalysis,
    SessionStatus,
    Suggestion,
)
from ..models.provider import TaskType

logger = logging.getLogger(__name__)

CANCELLED_MESSAGE = "Cancelled by user"


@dataclass
class RunConfig:
    """Everything a run needs to know about the request that started it."""
    session_id: str
    workspace_id: str
    prompt: str
    user_id: Optional[str] = None
    options: GenerationOptions = field(default_factory=GenerationOptions)
    previous_context: Optional[str] = None
    complexity: Complexity = Complexity.MEDIUM
    max_validation_retries: int = 3
    dependency_context_chars: int = 2000
    cost_multiplier: float = DEFAULT_COST_MULTIPLIER


def order_file_specs(specs: list[FileSpec]) -> list[FileSpec]:
    """
    Drop repeated paths (first occurrence wins) and sort for generation.

    The sort is stable on the explicit priority, falling back to the number
    of dependencies, so files with no dependencies come first.
    """
    seen: set[str] = set()
    unique: list[FileSpec] = []
    for spec in specs:
        if spec.path in seen:
            logger.warning(f"Plan lists {spec.path} more than once, keeping the first entry")
            continue
        seen.add(spec.path)
        unique.append(spec)
    return sorted(unique, key=lambda spec: spec.order_key)


def file_results(files: list[GeneratedFile]) -> list[dict[str, Any]]:
    return [
        {"path": f.path, "validated": f.validated, "issues": list(f.issues)}
        for f in files
    ]


class _Run:
    """Shared bookkeeping: status transitions, cancellation and usage totals."""

    def __init__(
        self,
        engine: ExecutionEngine,
        ledger: SessionLedger,
        file_store: FileStore,
        config: RunConfig,
    ):
        self.engine = engine
        self.ledger = ledger
        self.file_store = file_store
        self.config = config
        self.coder = Coder(engine, dependency_context_chars=config.dependency_context_chars)

        self.status = SessionStatus.PENDING
        self.total_tokens = 0
        self.total_cost = 0.0
        self.generated: list[GeneratedFile] = []

    @property
    def credits_used(self) -> int:
        return calculate_credits(
            self.total_tokens,
            self.config.complexity,
            self.config.cost_multiplier,
        )

    def _track(self, tokens: int, cost: float) -> None:
        self.total_tokens += tokens
        self.total_cost += cost

    async def _check_cancelled(self) -> None:
        status = await self.ledger.get_status(self.config.session_id)
        if status is None or status.is_terminal:
            raise RunCancelled(self.config.session_id)

    async def _transition(self, status: SessionStatus, **fields: Any) -> None:
        if not SessionStatus.can_transition(self.status, status):
            raise InvalidTransition(self.status.value, status.value)

        updated = await self.ledger.update_status(self.config.session_id, status, **fields)
        if not updated:
            # The session was finalized elsewhere, which only a cancel does
            raise RunCancelled(self.config.session_id)
        self.status = status

    async def _persist(self, path: str, content: str, ai_model: Optional[str], reasoning: str) -> None:
        await self.file_store.upsert_file(
            self.config.workspace_id,
            path,
            content,
            user_id=self.config.user_id,
            session_id=self.config.session_id,
            ai_model=ai_model,
            reasoning=reasoning,
        )

    async def _file_generated(self, path: str, content: str) -> None:
        self.generated.append(GeneratedFile(path=path, content=content))
        await self._transition(
            SessionStatus.GENERATING,
            files_generated=len(self.generated),
            tokens_used=self.total_tokens,
        )

    async def _produce_file(
        self,
        path: str,
        produce: Callable[[], Awaitable[CodeResult]],
        reasoning: str,
    ) -> Optional[str]:
        """
        Produce, save and report one file, returning its content.

        Any failure along the way skips this file only and returns None.
        Cancellation still stops the run.
        """
        try:
            result = await produce()
            self._track(result.tokens_used, result.cost)
            await self._persist(path, result.content, result.model, reasoning)
            await self._file_generated(path, result.content)
        except RunCancelled:
            raise
        except PerFileGenerationError as e:
            logger.warning(f"Skipping {path}: {e}")
            return None
        except Exception:
            logger.exception(f"Skipping {path} after an unexpected error")
            return None
        return result.content

    def _result(self, success: bool, **kwargs: Any) -> PipelineResult:
        return PipelineResult(
            success=success,
            files=self.generated,
            total_tokens=self.total_tokens,
            total_cost=self.total_cost,
            credits_used=self.credits_used,
            **kwargs,
        )

    async def _execute(self) -> PipelineResult:
        raise NotImplementedError

    async def run(self) -> PipelineResult:
        """
        Run to a terminal status. Never raises for run-level failures: the
        outcome is written to the session and returned.
        """
        session_id = self.config.session_id

        try:
            return await self._execute()
        except RunCancelled:
            logger.info(f"Session {session_id} cancelled after {len(self.generated)} file(s)")
            return self._result(False, error=CANCELLED_MESSAGE)
        except Exception as e:
            logger.exception(f"Session {session_id} failed during {self.status.value}")
            message = str(e) or e.__class__.__name__

            await self.ledger.update_status(
                session_id,
                SessionStatus.FAILED,
                error_message=message,
                files_generated=len(self.generated),
                file_results=file_results(self.generated),
                tokens_used=self.total_tokens,
                credits_used=self.credits_used,
            )
            self.status = SessionStatus.FAILED
            return self._result(False, error=message)


class GenerationOrchestrator(_Run):
    """
    Runs a full generation: Plan, Scaffold, Generate, Validate/Repair, Suggest.

    Session status moves pending -> planning -> scaffolding -> generating
    (repeated once per file) -> validating -> completed, or to failed from
    any phase.
    """

    def __init__(
        self,
        engine: ExecutionEngine,
        ledger: SessionLedger,
        file_store: FileStore,
        config: RunConfig,
    ):
        super().__init__(engine, ledger, file_store, config)
        self.planner = Planner(engine)
        self.validator = ValidationRepairCoordinator(engine)

    async def _plan(self) -> tuple[ProjectPlan, dict[str, str]]:
        await self._check_cancelled()
        await self._transition(SessionStatus.PLANNING)

        existing = await self.file_store.list_files(self.config.workspace_id)
        try:
            result = await self.planner.create_plan(
                self.config.prompt,
                existing.keys(),
                framework=self.config.options.framework,
            )
        except ResponseParseError as e:
            self._track(e.tokens_used, e.cost)
            raise
        self._track(result.tokens_used, result.cost)
        return result.plan, existing

    async def _scaffold(self, plan: ProjectPlan, specs: list[FileSpec]) -> bool:
        await self._check_cancelled()
        await self._transition(
            SessionStatus.SCAFFOLDING,
            plan=plan.model_dump(mode="json", by_alias=True, exclude_none=True),
            files_planned=len(specs),
            tokens_used=self.total_tokens,
        )

        template = self.config.options.template
        if not template:
            return False

        written = await apply_template(
            template,
            self.config.workspace_id,
            self.file_store,
            user_id=self.config.user_id,
            session_id=self.config.session_id,
        )
        return bool(written)

    async def _generate(self, plan: ProjectPlan, specs: list[FileSpec], available: dict[str, str]) -> None:
        await self._check_cancelled()
        await self._transition(SessionStatus.GENERATING, files_generated=0)

        for spec in specs:
            await self._check_cancelled()

            content = await self._produce_file(
                spec.path,
                lambda: self.coder.generate_file(spec, plan, available, self.config.prompt),
                spec.purpose,
            )
            if content is not None:
                available[spec.path] = content

    async def _validate(self) -> None:
        await self._check_cancelled()
        await self._transition(SessionStatus.VALIDATING, tokens_used=self.total_tokens)

        max_attempts = self.config.options.max_validation_retries
        if max_attempts is None:
            max_attempts = self.config.max_validation_retries

        async def persist_fix(path: str, content: str) -> None:
            try:
                await self._persist(path, content, None, "Validation fix")
            except Exception:
                logger.exception(f"Could not save the validation fix for {path}")

        for file in self.generated:
            await self._check_cancelled()
            outcome = await self.validator.validate_and_repair(file, max_attempts, on_fix=persist_fix)
            self._track(outcome.tokens_used, outcome.cost)

    async def _suggest(self, plan: ProjectPlan) -> list[Suggestion]:
        try:
            suggestions, tokens, cost = await self.planner.suggest(
                [f.path for f in self.generated],
                plan.project_type,
            )
        except ResponseParseError as e:
            self._track(e.tokens_used, e.cost)
            logger.warning(f"Failed to generate suggestions: {e}")
            return []
        except Exception as e:
            logger.warning(f"Failed to generate suggestions: {e}")
            return []

        self._track(tokens, cost)
        return suggestions.suggestions

    async def _execute(self) -> PipelineResult:
        plan, existing = await self._plan()
        specs = order_file_specs(plan.files)

        if await self._scaffold(plan, specs):
            existing = await self.file_store.list_files(self.config.workspace_id)

        await self._generate(plan, specs, dict(existing))
        await self._validate()
        suggestions = await self._suggest(plan)

        await self._transition(
            SessionStatus.COMPLETED,
            files_generated=len(self.generated),
            file_results=file_results(self.generated),
            suggestions=[s.model_dump() for s in suggestions],
            tokens_used=self.total_tokens,
            credits_used=self.credits_used,
        )

        logger.info(
            f"Session {self.config.session_id} completed: {len(self.generated)}/{len(specs)} files, "
            f"{self.total_tokens} tokens, ${self.total_cost:.4f}"
        )
        return self._result(True, plan=plan, suggestions=suggestions)


class RefinementOrchestrator(_Run):
    """
    Applies a follow-up request to an existing workspace.

    One reasoning call decides which files to modify and which to create;
    each is then produced by a single coding call. There is no plan, scaffold
    or validation phase.
    """

    async def _analyze(self, existing: dict[str, str]) -> RefinementAnalysis:
        response = await self.engine.execute(ExecutionRequest(
            task=TaskType.REASONING,
            system_prompt=(
                "You are analyzing a refinement request. Determine what files need to be modified.\n"
                'Return JSON: { "filesToModify": [{ "path": string, "changes": string }], '
                '"newFiles": [{ "path": string, "purpose": string }] }'
            ),
            user_prompt=(
                f"Previous context: {self.config.previous_context or 'None'}\n\n"
                f"Current files: {', '.join(sorted(existing))}\n\n"
                f"Refinement request: {self.config.prompt}"
            ),
            json_mode=True,
        ))
        self._track(response.total_tokens, response.cost)
        return parse_model_json(response.content, RefinementAnalysis, "refinement analysis")

    async def _execute(self) -> PipelineResult:
        await self._check_cancelled()
        await self._transition(SessionStatus.GENERATING, files_generated=0)

        existing = await self.file_store.list_files(self.config.workspace_id)
        analysis = await self._analyze(existing)

        seen: set[str] = set()
        modifications = []
        for mod in analysis.files_to_modify:
            if mod.path in seen:
                continue
            if mod.path not in existing:
                logger.warning(f"Refinement asked to modify missing file {mod.path}, skipping")
                continue
            seen.add(mod.path)
            modifications.append(mod)

        creations = []
        for new_file in analysis.new_files:
            if new_file.path in seen:
                continue
            seen.add(new_file.path)
            creations.append(new_file)

        await self._transition(
            SessionStatus.GENERATING,
            files_planned=len(seen),
            tokens_used=self.total_tokens,
        )

        for mod in modifications:
            await self._check_cancelled()
            await self._produce_file(
                mod.path,
                lambda: self.coder.modify_file(mod.path, existing[mod.path], mod.changes),
                mod.changes,
            )

        for new_file in creations:
            await self._check_cancelled()
            await self._produce_file(
                new_file.path,
                lambda: self.coder.create_file(new_file.path, new_file.purpose, self.config.prompt),
                new_file.purpose,
            )

        await self._transition(
            SessionStatus.COMPLETED,
            files_generated=len(self.generated),
            file_results=file_results(self.generated),
            tokens_used=self.total_tokens,
            credits_used=self.credits_used,
        )

        logger.info(
            f"Refinement {self.config.session_id} completed: {len(self.generated)} file(s), "
            f"{self.total_tokens} tokens"
        )
        return self._result(True)
