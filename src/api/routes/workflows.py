"""Workflow execution API routes.

Endpoints:
    POST /v1/workflows                                        Start from a decomposition
    GET  /v1/workflows/{id}                                   Context, progress, next steps
    POST /v1/workflows/{id}/resume                            Resume with optional step input
    POST /v1/workflows/{id}/adapt                             Apply an adaptation
    GET  /v1/workflows/{id}/steps/{phase_id}/{step_id}/guidance   Static step guidance

Handlers are plain functions: tools and the state store block, so FastAPI
runs them in its threadpool instead of on the event loop.
"""

import logging
from typing import Any, Optional

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel, Field

from src.api.routes.plans import dependency_error_detail
from src.errors import (
    AdaptationError,
    DecompositionError,
    DependencyError,
    PhaseflowError,
    WorkflowBusyError,
    WorkflowNotFoundError,
    WorkflowStateError,
)
from src.executor.schemas import ExecutionContext, StepInput, WorkflowRunResult
from src.executor.workflow_runner import WorkflowRunner
from src.orchestrator.decomposition import (
    build_plan,
    coerce_decomposition,
    parse_decomposition_response,
)
from src.orchestrator.plan_revision import AdaptationRequest
from src.orchestrator.progress import (
    NextStep,
    WorkflowProgress,
    calculate_progress,
    identify_next_steps,
    results_summary,
    step_guidance,
    success_rate,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/workflows", tags=["workflows"])

_runner: Optional[WorkflowRunner] = None


def init_runner(runner: WorkflowRunner) -> None:
    global _runner
    _runner = runner


def _get_runner() -> WorkflowRunner:
    if _runner is None:
        raise HTTPException(status_code=503, detail="Workflow runner not initialized")
    return _runner


def _to_http_error(e: PhaseflowError) -> HTTPException:
    if isinstance(e, DependencyError):
        return HTTPException(status_code=422, detail=dependency_error_detail(e))
    if isinstance(e, (DecompositionError, AdaptationError)):
        return HTTPException(status_code=422, detail={"error": str(e)})
    if isinstance(e, WorkflowNotFoundError):
        return HTTPException(status_code=404, detail={"error": str(e)})
    if isinstance(e, (WorkflowBusyError, WorkflowStateError)):
        return HTTPException(status_code=409, detail={"error": str(e)})
    return HTTPException(status_code=500, detail={"error": str(e)})


# ── Request / response models ───────────────────────────────


class StartWorkflowRequest(BaseModel):
    """Either a decomposition object or a raw planner response."""

    decomposition: Optional[dict[str, Any]] = None
    planner_response: Optional[str] = Field(
        default=None,
        description="Planner text output; markdown code fences are tolerated",
    )
    context_data: dict[str, Any] = Field(default_factory=dict)


class WorkflowStatusResponse(BaseModel):
    workflow_id: str
    status: str
    context: ExecutionContext
    progress: WorkflowProgress
    next_steps: list[NextStep]
    summary: str
    success_rate: float


class StepGuidanceResponse(BaseModel):
    workflow_id: str
    phase_id: int
    step_id: int
    title: str
    action_kind: str
    status: str
    tool_needed: Optional[str] = None
    success_criteria: str = ""
    guidance: str


# ── Endpoints ───────────────────────────────────────────────


@router.post("", response_model=WorkflowRunResult)
def start_workflow(request: StartWorkflowRequest):
    """Build a plan from the planner output and run it until done or suspended."""
    runner = _get_runner()
    try:
        if request.planner_response is not None:
            decomposition = parse_decomposition_response(request.planner_response)
        elif request.decomposition is not None:
            decomposition = coerce_decomposition(request.decomposition)
        else:
            raise DecompositionError("Provide either decomposition or planner_response")

        plan = build_plan(decomposition)
        return runner.start(plan, request.context_data)
    except PhaseflowError as e:
        raise _to_http_error(e)


@router.get("/{workflow_id}", response_model=WorkflowStatusResponse)
def get_workflow(workflow_id: str):
    runner = _get_runner()
    try:
        context = runner.get_context(workflow_id)
    except PhaseflowError as e:
        raise _to_http_error(e)

    return WorkflowStatusResponse(
        workflow_id=workflow_id,
        status=context.status.value,
        context=context,
        progress=calculate_progress(context),
        next_steps=identify_next_steps(context),
        summary=results_summary(context),
        success_rate=success_rate(context),
    )


@router.post("/{workflow_id}/resume", response_model=WorkflowRunResult)
def resume_workflow(workflow_id: str, step_input: Optional[StepInput] = None):
    runner = _get_runner()
    try:
        return runner.resume(workflow_id, step_input)
    except PhaseflowError as e:
        raise _to_http_error(e)


@router.post("/{workflow_id}/adapt", response_model=ExecutionContext)
def adapt_workflow(workflow_id: str, request: AdaptationRequest):
    runner = _get_runner()
    try:
        return runner.adapt(workflow_id, request)
    except PhaseflowError as e:
        raise _to_http_error(e)


@router.get(
    "/{workflow_id}/steps/{phase_id}/{step_id}/guidance",
    response_model=StepGuidanceResponse,
)
def get_step_guidance(workflow_id: str, phase_id: int, step_id: int):
    runner = _get_runner()
    try:
        context = runner.get_context(workflow_id)
    except PhaseflowError as e:
        raise _to_http_error(e)

    phase = context.plan.get_phase(phase_id)
    step = phase.get_step(step_id) if phase else None
    if step is None:
        raise HTTPException(
            status_code=404,
            detail={"error": f"Step {phase_id}.{step_id} not found in workflow {workflow_id}"},
        )

    return StepGuidanceResponse(
        workflow_id=workflow_id,
        phase_id=phase_id,
        step_id=step_id,
        title=step.title,
        action_kind=step.action_kind,
        status=step.status.value,
        tool_needed=step.tool_name,
        success_criteria=step.success_criteria,
        guidance=step_guidance(step),
    )
