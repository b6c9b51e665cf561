"""Schemas for workflow plans.

The central data structure is WorkflowPlan: an ordered list of phases,
each owning its steps, plus milestones that gate on phase completion.
A plan is built once from a planner decomposition (see decomposition.py)
and then mutated only by the executor (statuses) and by the adaptive
replanner (structure, between phases).

Step actions are a closed tagged union keyed on `kind`. Anything the
engine does not recognize is kept as UnrecognizedAction so the plan still
loads and the step fails at dispatch time instead of at parse time.
"""

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Any, Literal, Optional, Union

from pydantic import BaseModel, Discriminator, Field, Tag


def utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


class ActionKind(str, Enum):
    """What a step does when executed."""
    TOOL_CALL = "tool_call"
    USER_INPUT = "user_input"
    INFORMATION_GATHERING = "information_gathering"
    VALIDATION = "validation"
    DECISION_POINT = "decision_point"


ACTION_KINDS = {k.value for k in ActionKind}


class Priority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class StepStatus(str, Enum):
    """Step execution states."""
    PENDING = "pending"
    READY = "ready"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"
    SKIPPED = "skipped"


TERMINAL_STEP_STATUSES = {StepStatus.COMPLETED, StepStatus.FAILED, StepStatus.SKIPPED}


class PhaseStatus(str, Enum):
    """Phase execution states."""
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"
    SKIPPED = "skipped"


class WorkflowStatus(str, Enum):
    """Workflow lifecycle states. completed and failed are terminal."""
    PLANNED = "planned"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"


# ── Step actions ────────────────────────────────────────────


class ToolCallAction(BaseModel):
    """Run a named tool through the tool registry."""

    kind: Literal["tool_call"] = "tool_call"
    tool_name: str
    tool_arguments: dict[str, Any] = Field(default_factory=dict)


class UserInputAction(BaseModel):
    """Wait for the user to provide something."""

    kind: Literal["user_input"] = "user_input"
    input_type: str = "text"
    prompt: Optional[str] = None


class InformationGatheringAction(BaseModel):
    """Record context; never fails and has no side effects."""

    kind: Literal["information_gathering"] = "information_gathering"
    information_sources: list[str] = Field(default_factory=list)


class ValidationCriterion(BaseModel):
    """One sub-check applied to each validated step's result.

    Known types: success_required, result_contains (uses `value`).
    Unknown types hold.
    """

    type: str
    value: Optional[str] = None


class ValidationAction(BaseModel):
    """Check outcomes of other steps in the same phase."""

    kind: Literal["validation"] = "validation"
    validates_steps: list[int] = Field(default_factory=list)
    criteria: list[ValidationCriterion] = Field(default_factory=list)


class DecisionPointAction(BaseModel):
    """Wait for a decision among options."""

    kind: Literal["decision_point"] = "decision_point"
    decision_options: list[str] = Field(default_factory=list)
    decision_criteria: list[str] = Field(default_factory=list)


class UnrecognizedAction(BaseModel):
    """Placeholder for an action kind outside ActionKind."""

    kind: str


def _action_discriminator(value: Any) -> str:
    if isinstance(value, dict):
        kind = value.get("kind")
    else:
        kind = getattr(value, "kind", None)
    if isinstance(kind, Enum):
        kind = kind.value
    return kind if kind in ACTION_KINDS else "unrecognized"


StepAction = Annotated[
    Union[
        Annotated[ToolCallAction, Tag("tool_call")],
        Annotated[UserInputAction, Tag("user_input")],
        Annotated[InformationGatheringAction, Tag("information_gathering")],
        Annotated[ValidationAction, Tag("validation")],
        Annotated[DecisionPointAction, Tag("decision_point")],
        Annotated[UnrecognizedAction, Tag("unrecognized")],
    ],
    Discriminator(_action_discriminator),
]


# ── Plan structure ──────────────────────────────────────────


class Step(BaseModel):
    """Smallest unit of work. `id` is unique within its phase."""

    id: int
    title: str
    description: str = ""
    action: StepAction
    dependencies: set[int] = Field(default_factory=set)
    estimated_minutes: int = Field(
        default=0,
        description="Planning metadata only; the engine enforces no timeouts",
    )
    success_criteria: str = ""
    priority: Priority = Priority.MEDIUM
    status: StepStatus = StepStatus.PENDING
    critical: bool = Field(
        default=False,
        description="A failure of this step halts its phase",
    )

    @property
    def action_kind(self) -> str:
        return self.action.kind

    @property
    def tool_name(self) -> Optional[str]:
        if isinstance(self.action, ToolCallAction):
            return self.action.tool_name
        return None


class Phase(BaseModel):
    """Ordered group of steps. Owns its steps exclusively."""

    id: int
    name: str
    description: str = ""
    steps: list[Step] = Field(default_factory=list)
    deliverables: list[str] = Field(default_factory=list)
    success_criteria: str = ""
    status: PhaseStatus = PhaseStatus.PENDING
    critical: bool = Field(
        default=False,
        description="Any failed step halts the phase and the workflow",
    )
    skip_reason: Optional[str] = None

    def get_step(self, step_id: int) -> Optional[Step]:
        for step in self.steps:
            if step.id == step_id:
                return step
        return None


class Milestone(BaseModel):
    """Checkpoint achieved once its phases complete and its metrics hold."""

    name: str
    description: str = ""
    phase_dependencies: set[int] = Field(default_factory=set)
    success_metrics: list[str] = Field(default_factory=list)
    achieved_at: Optional[str] = Field(
        default=None,
        description="Set once, the first time the milestone is achieved",
    )


class WorkflowPlan(BaseModel):
    """The full ordered structure of phases and milestones for one task."""

    id: str = Field(default_factory=lambda: f"wf-{uuid.uuid4().hex[:12]}")
    name: str = "Workflow"
    phases: list[Phase] = Field(default_factory=list)
    milestones: list[Milestone] = Field(default_factory=list)
    critical_path: list[int] = Field(default_factory=list)
    risk_factors: list[str] = Field(default_factory=list)
    estimated_duration: Optional[str] = None
    status: WorkflowStatus = WorkflowStatus.PLANNED
    created_at: str = Field(default_factory=utc_now)

    def get_phase(self, phase_id: int) -> Optional[Phase]:
        for phase in self.phases:
            if phase.id == phase_id:
                return phase
        return None

    def total_steps(self) -> int:
        return sum(len(p.steps) for p in self.phases)
