"""Executor-side schemas for workflow state, results, and run output.

These are distinct from the orchestrator schemas (which describe plans).
Executor schemas describe what happens during and after execution.

Steps are identified across the whole workflow by (phase_id, step_id)
pairs, since step ids are only unique within their phase.
"""

from typing import Any, Optional

from pydantic import BaseModel, Field

from src.errors import WorkflowStateError
from src.orchestrator.schemas import PhaseStatus, WorkflowPlan, WorkflowStatus, utc_now

StepKey = tuple[int, int]

_ALLOWED_TRANSITIONS: dict[WorkflowStatus, set[WorkflowStatus]] = {
    WorkflowStatus.PLANNED: {WorkflowStatus.IN_PROGRESS},
    WorkflowStatus.IN_PROGRESS: {WorkflowStatus.COMPLETED, WorkflowStatus.FAILED},
    WorkflowStatus.COMPLETED: set(),
    WorkflowStatus.FAILED: set(),
}

TERMINAL_WORKFLOW_STATUSES = {WorkflowStatus.COMPLETED, WorkflowStatus.FAILED}


class StepResult(BaseModel):
    """Normalized outcome of executing one step."""

    step_id: int
    phase_id: int
    success: bool
    requires_follow_up: bool = False
    critical_failure: bool = False
    error: Optional[str] = None
    error_type: Optional[str] = None
    execution_time: float = Field(default=0.0, description="Seconds")
    output: dict[str, Any] = Field(default_factory=dict)
    recorded_at: str = Field(default_factory=utc_now)


class PhaseResult(BaseModel):
    """Result of running (or re-entering) a single phase."""

    phase_id: int
    phase_name: str
    status: PhaseStatus
    completed_steps: list[int] = Field(default_factory=list)
    failed_steps: list[int] = Field(default_factory=list)
    skipped_steps: list[int] = Field(default_factory=list)
    halted: bool = Field(
        default=False,
        description="A critical failure stopped the phase; the workflow fails",
    )
    suspended: bool = Field(
        default=False,
        description="A step is waiting for caller input",
    )
    execution_time: float = 0.0
    error: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.status == PhaseStatus.COMPLETED


class ExecutionLogEntry(BaseModel):
    timestamp: str = Field(default_factory=utc_now)
    event: str
    message: str = ""
    phase_id: Optional[int] = None
    step_id: Optional[int] = None


class AdaptiveChange(BaseModel):
    """Audit record of one applied adaptation."""

    adaptation_type: str
    phase_id: int
    description: str
    timestamp: str = Field(default_factory=utc_now)
    details: dict[str, Any] = Field(default_factory=dict)


class MilestoneAchievement(BaseModel):
    name: str
    achieved_at: str
    phase_dependencies: list[int] = Field(default_factory=list)


class AwaitingInput(BaseModel):
    """The suspension point of a workflow waiting on the caller."""

    phase_id: int
    step_id: int
    action_kind: str
    prompt: Optional[str] = None
    details: dict[str, Any] = Field(default_factory=dict)
    requested_at: str = Field(default_factory=utc_now)


class StepInput(BaseModel):
    """The caller's answer to a suspended user_input or decision_point step."""

    success: bool = True
    response: Optional[str] = None
    decision: Optional[str] = None
    data: dict[str, Any] = Field(default_factory=dict)


class ExecutionContext(BaseModel):
    """Everything the engine knows about one workflow run, persisted as a unit."""

    workflow_id: str
    status: WorkflowStatus = WorkflowStatus.PLANNED
    plan: WorkflowPlan
    context_data: dict[str, Any] = Field(
        default_factory=dict,
        description="Caller-supplied context handed to tools",
    )

    completed_steps: list[StepKey] = Field(default_factory=list)
    failed_steps: list[StepKey] = Field(default_factory=list)
    skipped_steps: list[StepKey] = Field(default_factory=list)
    completed_phases: list[int] = Field(default_factory=list)
    failed_phases: list[int] = Field(default_factory=list)
    skipped_phases: list[int] = Field(default_factory=list)

    milestone_achievements: list[MilestoneAchievement] = Field(default_factory=list)
    step_results: list[StepResult] = Field(default_factory=list)
    phase_results: dict[str, PhaseResult] = Field(
        default_factory=dict,
        description="Phase id (as string) -> latest PhaseResult",
    )
    execution_log: list[ExecutionLogEntry] = Field(default_factory=list)
    adaptive_changes: list[AdaptiveChange] = Field(default_factory=list)

    execution_time: float = 0.0
    awaiting_input: Optional[AwaitingInput] = None
    error: Optional[str] = None

    created_at: str = Field(default_factory=utc_now)
    started_at: Optional[str] = None
    completed_at: Optional[str] = None
    updated_at: str = Field(default_factory=utc_now)

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_WORKFLOW_STATUSES

    def transition_to(self, status: WorkflowStatus) -> None:
        """Move along planned -> in_progress -> completed|failed.

        Raises WorkflowStateError for anything else, including staying put.
        """
        if status not in _ALLOWED_TRANSITIONS[self.status]:
            raise WorkflowStateError(
                f"Illegal workflow transition {self.status.value} -> {status.value} "
                f"for {self.workflow_id}"
            )
        self.status = status
        self.plan.status = status
        now = utc_now()
        if status == WorkflowStatus.IN_PROGRESS:
            self.started_at = now
        elif status in TERMINAL_WORKFLOW_STATUSES:
            self.completed_at = now
        self.log("status", f"Workflow {status.value}")

    def log(
        self,
        event: str,
        message: str = "",
        phase_id: Optional[int] = None,
        step_id: Optional[int] = None,
    ) -> None:
        self.execution_log.append(
            ExecutionLogEntry(event=event, message=message, phase_id=phase_id, step_id=step_id)
        )

    def record_step_outcome(self, phase_id: int, step_id: int, outcome: str) -> None:
        """Add the step to completed/failed/skipped. Each key lands in one list."""
        key = (phase_id, step_id)
        target = {
            "completed": self.completed_steps,
            "failed": self.failed_steps,
            "skipped": self.skipped_steps,
        }[outcome]
        if key not in target:
            target.append(key)

    def record_phase_outcome(self, phase_id: int, status: PhaseStatus) -> None:
        target = {
            PhaseStatus.COMPLETED: self.completed_phases,
            PhaseStatus.FAILED: self.failed_phases,
            PhaseStatus.SKIPPED: self.skipped_phases,
        }.get(status)
        if target is not None and phase_id not in target:
            target.append(phase_id)

    def achieved_milestone_names(self) -> list[str]:
        return [m.name for m in self.milestone_achievements]


class WorkflowRunResult(BaseModel):
    """What start/resume/run_simple return to the caller."""

    workflow_id: str
    status: WorkflowStatus
    success: bool
    completed_steps: int = 0
    failed_steps: int = 0
    skipped_steps: int = 0
    total_steps: int = 0
    completed_phases: list[int] = Field(default_factory=list)
    failed_phases: list[int] = Field(default_factory=list)
    skipped_phases: list[int] = Field(default_factory=list)
    execution_time: float = 0.0
    milestones_achieved: list[str] = Field(default_factory=list)
    milestone_completion_rate: float = 0.0
    awaiting_input: Optional[AwaitingInput] = None
    summary: str = ""
    error: Optional[str] = None
    partial_results: Optional[dict[str, Any]] = Field(
        default=None,
        description="Step and phase results so far; absent once the workflow completed",
    )
