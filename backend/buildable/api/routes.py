"""API routes for generation, refinement, streaming and workspaces."""

import logging

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import StreamingResponse
from sqlalchemy.ext.asyncio import AsyncSession

from .dependencies import Services, get_services
from ..core.auth import get_current_user
from ..core.credits import estimate_credits
from ..core.orchestrator import (
    CANCELLED_MESSAGE,
    GenerationOrchestrator,
    RefinementOrchestrator,
    RunConfig,
)
from ..core.security import generation_rate_limit, limiter
from ..db.database import get_db
from ..db.models import UserModel
from ..db.repository import CreditRepository, SessionRepository, WorkspaceRepository
from ..models.credits import CreditEstimate
from ..models.execution import ExecutionRequest
from ..models.generation import GenerationOptions
from ..models.requests import (
    EstimateResponse,
    GenerateRequest,
    GenerationStarted,
    RefineRequest,
    SessionResponse,
    StreamRequest,
    WorkspaceCreate,
)

router = APIRouter()
logger = logging.getLogger(__name__)

DEFAULT_STREAM_SYSTEM_PROMPT = "You are Buildable, an expert software engineering assistant."


async def _estimate(
    db: AsyncSession,
    workspace_id: str,
    prompt: str,
    services: Services,
) -> CreditEstimate:
    """Estimate credits, counting the workspace's existing files as context."""
    files = await WorkspaceRepository(db).list_files(workspace_id)
    return estimate_credits(
        prompt,
        files_count=len(files),
        cost_multiplier=services.settings.credits_cost_multiplier,
    )


async def _require_credits(db: AsyncSession, user_id: str, estimate: CreditEstimate, services: Services) -> None:
    """
    Refuse the request with 402 if the balance cannot cover the estimate.

    A user seen for the first time is granted the welcome credits and let
    through.
    """
    repo = CreditRepository(db)
    balance = await repo.get_balance(user_id)

    if balance is None:
        await repo.get_or_create_balance(user_id, services.settings.default_user_credits)
        return

    if balance.balance < estimate.estimated_credits:
        logger.warning(
            f"Insufficient credits for user {user_id}: "
            f"required {estimate.estimated_credits}, available {balance.balance}"
        )
        raise HTTPException(
            status_code=402,  # Payment Required
            detail={
                "error": "Insufficient credits",
                "required": estimate.estimated_credits,
                "available": balance.balance,
                "message": "Please add more credits to continue",
            },
        )


async def _start_run(
    db: AsyncSession,
    services: Services,
    user: UserModel,
    workspace_id: str,
    prompt: str,
    kind: str,
    options: GenerationOptions,
    previous_context: str = None,
) -> GenerationStarted:
    workspace = await WorkspaceRepository(db).get_for_user(workspace_id, user.id)
    if not workspace:
        raise HTTPException(status_code=404, detail="Workspace not found")

    estimate = await _estimate(db, workspace_id, prompt, services)
    await _require_credits(db, user.id, estimate, services)

    if not await services.workspace_lock.acquire(workspace_id):
        raise HTTPException(status_code=409, detail="Generation already in progress")

    try:
        session = await SessionRepository(db).create(
            workspace_id,
            prompt,
            user_id=user.id,
            kind=kind,
        )
    except Exception:
        await services.workspace_lock.release(workspace_id, success=False)
        raise

    settings = services.settings
    config = RunConfig(
        session_id=session.id,
        workspace_id=workspace_id,
        prompt=prompt,
        user_id=user.id,
        options=options,
        previous_context=previous_context,
        complexity=estimate.complexity,
        max_validation_retries=settings.max_validation_retries,
        dependency_context_chars=settings.dependency_context_chars,
        cost_multiplier=settings.credits_cost_multiplier,
    )

    if kind == "refine":
        orchestrator = RefinementOrchestrator(
            services.engine, services.session_ledger, services.file_store, config
        )
        message = "Refinement started"
    else:
        orchestrator = GenerationOrchestrator(
            services.engine, services.session_ledger, services.file_store, config
        )
        message = "Generation started"

    services.supervisor.spawn_run(orchestrator)

    return GenerationStarted(success=True, session_id=session.id, message=message)


# ============ Generation ============
# /generate/stream is registered first so it is not captured by /generate/{workspace_id}


@router.post("/generate/stream")
@limiter.limit(generation_rate_limit)
async def stream_generation(
    request: Request,
    body: StreamRequest,
    user: UserModel = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    """
    Stream a single model response as Server-Sent Events.

    Each event is a StreamChunk; the last one has ``done`` set and carries
    ``error`` if the stream failed.
    """
    execution = ExecutionRequest(
        task=body.task,
        system_prompt=body.system_prompt or DEFAULT_STREAM_SYSTEM_PROMPT,
        user_prompt=body.prompt,
    )

    async def event_generator():
        async for chunk in services.engine.stream(execution):
            yield f"data: {chunk.model_dump_json()}\n\n"

    return StreamingResponse(
        event_generator(),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",
        }
    )


@router.post("/generate/{workspace_id}/estimate", response_model=EstimateResponse)
async def estimate_generation(
    request: Request,
    workspace_id: str,
    body: GenerateRequest,
    user: UserModel = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    services: Services = Depends(get_services),
) -> EstimateResponse:
    """Estimate the credits a generation request would cost."""
    if not await WorkspaceRepository(db).get_for_user(workspace_id, user.id):
        raise HTTPException(status_code=404, detail="Workspace not found")

    estimate = await _estimate(db, workspace_id, body.prompt, services)
    return EstimateResponse(
        estimated_tokens=estimate.estimated_tokens,
        estimated_credits=estimate.estimated_credits,
        complexity=estimate.complexity.value,
    )


@router.post("/generate/{workspace_id}/refine", response_model=GenerationStarted)
@limiter.limit(generation_rate_limit)
async def start_refinement(
    request: Request,
    workspace_id: str,
    body: RefineRequest,
    user: UserModel = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    services: Services = Depends(get_services),
) -> GenerationStarted:
    """Start a refinement run against the workspace's existing files."""
    try:
        return await _start_run(
            db,
            services,
            user,
            workspace_id,
            body.prompt,
            kind="refine",
            options=GenerationOptions(),
            previous_context=body.previous_context,
        )
    except HTTPException:
        raise
    except Exception:
        logger.exception(f"Failed to start refinement for workspace {workspace_id}")
        raise HTTPException(status_code=500, detail="Failed to start refinement")


@router.post("/generate/{workspace_id}", response_model=GenerationStarted)
@limiter.limit(generation_rate_limit)
async def start_generation(
    request: Request,
    workspace_id: str,
    body: GenerateRequest,
    user: UserModel = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    services: Services = Depends(get_services),
) -> GenerationStarted:
    """
    Start a full generation run in the background.

    Returns immediately with the session id; progress is read from
    GET /generate/session/{session_id}.
    """
    try:
        return await _start_run(
            db,
            services,
            user,
            workspace_id,
            body.prompt,
            kind="generate",
            options=body.options or GenerationOptions(),
        )
    except HTTPException:
        raise
    except Exception:
        logger.exception(f"Failed to start generation for workspace {workspace_id}")
        raise HTTPException(status_code=500, detail="Failed to start generation")


@router.get("/generate/session/{session_id}")
async def get_session(
    session_id: str,
    user: UserModel = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> dict:
    """Get the status and progress of a generation session."""
    session = await SessionRepository(db).get_for_user(session_id, user.id)
    if not session:
        raise HTTPException(status_code=404, detail="Session not found")

    return {"session": SessionResponse.model_validate(session).model_dump(mode="json")}


@router.post("/generate/session/{session_id}/cancel")
async def cancel_session(
    session_id: str,
    user: UserModel = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> dict:
    """
    Cancel a running session.

    The background run notices at its next phase or file boundary.
    Cancelling a finished session changes nothing.
    """
    repo = SessionRepository(db)
    session = await repo.get_for_user(session_id, user.id)
    if not session:
        raise HTTPException(status_code=404, detail="Session not found")

    if await repo.cancel(session_id, CANCELLED_MESSAGE):
        logger.info(f"Session {session_id} cancelled by user {user.id}")
        return {"success": True, "message": "Session cancelled"}

    return {"success": True, "message": f"Session already {session.status}"}


# ============ Workspaces ============


@router.post("/workspaces", status_code=201)
async def create_workspace(
    body: WorkspaceCreate,
    user: UserModel = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> dict:
    """Create a workspace owned by the caller."""
    workspace = await WorkspaceRepository(db).create(user.id, body.name)
    return {"id": workspace.id, "name": workspace.name, "status": workspace.status}


@router.get("/workspaces/{workspace_id}/files")
async def list_workspace_files(
    workspace_id: str,
    user: UserModel = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> dict:
    """List the files in a workspace."""
    repo = WorkspaceRepository(db)
    workspace = await repo.get_for_user(workspace_id, user.id)
    if not workspace:
        raise HTTPException(status_code=404, detail="Workspace not found")

    files = await repo.list_files(workspace_id)
    return {
        "workspace_id": workspace_id,
        "status": workspace.status,
        "files": [
            {
                "path": f.file_path,
                "content": f.content,
                "updated_at": f.updated_at.isoformat() if f.updated_at else None,
            }
            for f in files
        ],
    }
