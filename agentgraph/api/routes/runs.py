"""
Run API Routes.

Endpoints for starting workflow runs, controlling them (pause, resume,
stop) and answering their human decisions.
"""

from fastapi import APIRouter, HTTPException, status
import logging

from agentgraph.api.schemas import (
    AgentPerformanceInfo,
    DecisionRequest,
    ErrorResponse,
    ExecutionLogEntry,
    LogMessage,
    PendingDecisionInfo,
    RunAgentsResponse,
    RunCreateRequest,
    RunListResponse,
    RunLogResponse,
    RunResponse,
    RunStatisticsResponse,
)
from agentgraph.engine.errors import NoPendingDecisionError, RunNotFoundError
from agentgraph.engine.graph import validate_workflow
from agentgraph.runtime.runs import Run, run_manager
from agentgraph.workflows.templates import create_from_template


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/runs", tags=["Runs"])


def _to_response(run: Run) -> RunResponse:
    """Convert a run to its API representation."""
    data = run.to_dict()
    pending = run_manager.broker.get_pending(run.run_id)
    if pending is not None:
        data["pending_decision"] = PendingDecisionInfo(
            node_id=pending.node_id,
            question=pending.question,
            options=pending.options,
            timeout_seconds=pending.timeout_seconds,
        )
    return RunResponse(**data)


async def _get_run(run_id: str) -> Run:
    try:
        return await run_manager.get(run_id)
    except RunNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))


@router.post(
    "",
    response_model=RunResponse,
    status_code=status.HTTP_201_CREATED,
    responses={
        400: {"model": ErrorResponse, "description": "Invalid workflow"},
        404: {"model": ErrorResponse, "description": "Template not found"},
    },
)
async def create_run(request: RunCreateRequest) -> RunResponse:
    """
    Start a run of a template or of an inline workflow graph.

    The run executes in the background; poll ``GET /runs/{run_id}`` or
    connect to ``/ws/runs/{run_id}`` to follow it.
    """
    if (request.template_id is None) == (request.workflow is None):
        raise HTTPException(
            status_code=400,
            detail="Provide exactly one of 'template_id' or 'workflow'",
        )

    if request.template_id is not None:
        workflow = create_from_template(request.template_id)
        if workflow is None:
            raise HTTPException(
                status_code=404,
                detail=f"Template '{request.template_id}' not found",
            )
    else:
        workflow = request.workflow
        validation = validate_workflow(workflow)
        if not validation.valid:
            raise HTTPException(
                status_code=400,
                detail=f"Invalid workflow: {', '.join(validation.errors)}",
            )

    run = await run_manager.create(workflow, template_id=request.template_id)
    logger.info(f"Started run {run.run_id}")
    return _to_response(run)


@router.get("", response_model=RunListResponse)
async def list_runs() -> RunListResponse:
    """List all runs."""
    runs = [_to_response(run) for run in await run_manager.list_all()]
    return RunListResponse(runs=runs, total=len(runs))


@router.get(
    "/{run_id}",
    response_model=RunResponse,
    responses={404: {"model": ErrorResponse}},
)
async def get_run(run_id: str) -> RunResponse:
    """Get the current state of a run."""
    return _to_response(await _get_run(run_id))


@router.get(
    "/{run_id}/log",
    response_model=RunLogResponse,
    responses={404: {"model": ErrorResponse}},
)
async def get_run_log(run_id: str) -> RunLogResponse:
    """Get the node execution log and engine messages of a run."""
    run = await _get_run(run_id)
    return RunLogResponse(
        run_id=run_id,
        steps=[ExecutionLogEntry(**s.to_dict()) for s in run.engine.get_execution_log()],
        messages=[LogMessage(**m.to_dict()) for m in run.messages],
    )


@router.get(
    "/{run_id}/statistics",
    response_model=RunStatisticsResponse,
    responses={404: {"model": ErrorResponse}},
)
async def get_run_statistics(run_id: str) -> RunStatisticsResponse:
    """Get aggregate statistics of a run."""
    run = await _get_run(run_id)
    return RunStatisticsResponse(run_id=run_id, **run.engine.get_statistics().to_dict())


@router.get(
    "/{run_id}/agents",
    response_model=RunAgentsResponse,
    responses={404: {"model": ErrorResponse}},
)
async def get_run_agents(run_id: str) -> RunAgentsResponse:
    """Get call counts and timings of the agents a run has called."""
    run = await _get_run(run_id)
    return RunAgentsResponse(
        run_id=run_id,
        agents=[AgentPerformanceInfo(**p.to_dict()) for p in run.engine.get_agent_performance()],
    )


# ============================================================
# Run Control
# ============================================================

@router.post("/{run_id}/pause", response_model=RunResponse, responses={404: {"model": ErrorResponse}})
async def pause_run(run_id: str) -> RunResponse:
    """Pause a running run before its next node. No effect otherwise."""
    run = await _get_run(run_id)
    await run_manager.pause(run_id)
    return _to_response(run)


@router.post("/{run_id}/resume", response_model=RunResponse, responses={404: {"model": ErrorResponse}})
async def resume_run(run_id: str) -> RunResponse:
    """Resume a paused run. No effect otherwise."""
    run = await _get_run(run_id)
    await run_manager.resume(run_id)
    return _to_response(run)


@router.post("/{run_id}/stop", response_model=RunResponse, responses={404: {"model": ErrorResponse}})
async def stop_run(run_id: str) -> RunResponse:
    """Stop a run and cancel whatever it is waiting on."""
    run = await _get_run(run_id)
    await run_manager.stop(run_id)
    return _to_response(run)


@router.post(
    "/{run_id}/decision",
    response_model=RunResponse,
    responses={
        400: {"model": ErrorResponse, "description": "Unknown option"},
        404: {"model": ErrorResponse},
        409: {"model": ErrorResponse, "description": "No decision pending"},
    },
)
async def submit_decision(run_id: str, request: DecisionRequest) -> RunResponse:
    """Answer the pending human decision of a run."""
    run = await _get_run(run_id)
    try:
        await run_manager.decide(run_id, request.option_id)
    except NoPendingDecisionError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return _to_response(run)
