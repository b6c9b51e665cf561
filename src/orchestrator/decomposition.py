"""Planner wire format and conversion into WorkflowPlan.

An external planner returns JSON in one of two shapes:

- complex: {workflow_name, phases: [{phase_number, name, steps: [...]}],
  milestones, estimated_duration, critical_path, risk_factors}
- simple:  {steps: [...], estimated_time}

Both are parsed here. A simple decomposition becomes a single phase named
"Task Execution Phase". Only structural emptiness is rejected in this
module; dependency checks belong to validation.py.
"""

import json
import logging
from typing import Any, Optional, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError, field_validator

from src.errors import DecompositionError
from src.orchestrator.schemas import (
    ActionKind,
    DecisionPointAction,
    InformationGatheringAction,
    Milestone,
    Phase,
    Priority,
    Step,
    ToolCallAction,
    UnrecognizedAction,
    UserInputAction,
    ValidationAction,
    ValidationCriterion,
    WorkflowPlan,
)

logger = logging.getLogger(__name__)

SIMPLE_PHASE_NAME = "Task Execution Phase"


def _join_text(value: Any) -> Any:
    if isinstance(value, list):
        return "; ".join(str(v) for v in value)
    return value


class StepDecomposition(BaseModel):
    """One step as emitted by the planner."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    step_number: int = Field(validation_alias=AliasChoices("step_number", "id"))
    title: str
    description: str = ""
    action_kind: str = Field(
        default=ActionKind.INFORMATION_GATHERING.value,
        validation_alias=AliasChoices("action_kind", "action_type"),
    )
    tool_needed: Optional[str] = None
    tool_arguments: dict[str, Any] = Field(default_factory=dict)
    dependencies: list[int] = Field(default_factory=list)
    estimated_time_minutes: int = Field(
        default=0,
        validation_alias=AliasChoices("estimated_time_minutes", "estimated_minutes"),
    )
    success_criteria: str = ""
    priority: Priority = Priority.MEDIUM
    critical: bool = False
    input_type: str = "text"
    prompt: Optional[str] = None
    information_sources: list[str] = Field(default_factory=list)
    validates_steps: list[int] = Field(default_factory=list)
    validation_criteria: list[ValidationCriterion] = Field(default_factory=list)
    decision_options: list[str] = Field(default_factory=list)
    decision_criteria: list[str] = Field(default_factory=list)

    @field_validator("success_criteria", mode="before")
    @classmethod
    def _criteria_as_text(cls, value: Any) -> Any:
        return _join_text(value)

    def to_step(self) -> Step:
        kind = self.action_kind
        if kind == ActionKind.TOOL_CALL:
            if not self.tool_needed:
                raise DecompositionError(
                    f"Step {self.step_number} is a tool_call but names no tool"
                )
            action = ToolCallAction(tool_name=self.tool_needed, tool_arguments=self.tool_arguments)
        elif kind == ActionKind.USER_INPUT:
            action = UserInputAction(input_type=self.input_type, prompt=self.prompt)
        elif kind == ActionKind.INFORMATION_GATHERING:
            action = InformationGatheringAction(information_sources=self.information_sources)
        elif kind == ActionKind.VALIDATION:
            action = ValidationAction(
                validates_steps=self.validates_steps,
                criteria=self.validation_criteria,
            )
        elif kind == ActionKind.DECISION_POINT:
            action = DecisionPointAction(
                decision_options=self.decision_options,
                decision_criteria=self.decision_criteria,
            )
        else:
            action = UnrecognizedAction(kind=kind)

        return Step(
            id=self.step_number,
            title=self.title,
            description=self.description,
            action=action,
            dependencies=set(self.dependencies),
            estimated_minutes=self.estimated_time_minutes,
            success_criteria=self.success_criteria,
            priority=self.priority,
            critical=self.critical,
        )


class PhaseDecomposition(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    phase_number: int = Field(validation_alias=AliasChoices("phase_number", "id"))
    name: str
    description: str = ""
    steps: list[StepDecomposition] = Field(default_factory=list)
    deliverables: list[str] = Field(
        default_factory=list,
        validation_alias=AliasChoices("deliverables", "phase_deliverables"),
    )
    success_criteria: str = ""
    critical: bool = False

    @field_validator("success_criteria", mode="before")
    @classmethod
    def _criteria_as_text(cls, value: Any) -> Any:
        return _join_text(value)

    def to_phase(self) -> Phase:
        return Phase(
            id=self.phase_number,
            name=self.name,
            description=self.description,
            steps=[s.to_step() for s in self.steps],
            deliverables=self.deliverables,
            success_criteria=self.success_criteria,
            critical=self.critical,
        )


class MilestoneDecomposition(BaseModel):
    model_config = ConfigDict(extra="ignore")

    name: str
    description: str = ""
    phase_dependencies: list[int] = Field(default_factory=list)
    success_metrics: list[str] = Field(default_factory=list)

    def to_milestone(self) -> Milestone:
        return Milestone(
            name=self.name,
            description=self.description,
            phase_dependencies=set(self.phase_dependencies),
            success_metrics=self.success_metrics,
        )


class WorkflowDecomposition(BaseModel):
    """Phased planner output."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    workflow_name: str = Field(
        default="Workflow",
        validation_alias=AliasChoices("workflow_name", "name"),
    )
    phases: list[PhaseDecomposition] = Field(default_factory=list)
    milestones: list[MilestoneDecomposition] = Field(default_factory=list)
    estimated_duration: Optional[str] = None
    critical_path: list[int] = Field(default_factory=list)
    risk_factors: list[str] = Field(
        default_factory=list,
        validation_alias=AliasChoices("risk_factors", "risk_assessment"),
    )

    @field_validator("estimated_duration", mode="before")
    @classmethod
    def _duration_as_text(cls, value: Any) -> Any:
        if isinstance(value, (int, float)):
            return str(value)
        return value


class SimpleDecomposition(BaseModel):
    """Flat steps-only planner output."""

    model_config = ConfigDict(extra="ignore")

    steps: list[StepDecomposition] = Field(default_factory=list)
    estimated_time: Optional[str] = None

    @field_validator("estimated_time", mode="before")
    @classmethod
    def _time_as_text(cls, value: Any) -> Any:
        if isinstance(value, (int, float)):
            return str(value)
        return value

    def to_workflow(self, name: str = "Converted Simple Workflow") -> WorkflowDecomposition:
        phase = PhaseDecomposition(
            phase_number=1,
            name=SIMPLE_PHASE_NAME,
            description="Execute all decomposed steps",
            steps=self.steps,
        )
        return WorkflowDecomposition(
            workflow_name=name,
            phases=[phase],
            estimated_duration=self.estimated_time,
            risk_factors=["Converted from simple decomposition"],
        )


# ── Conversion ──────────────────────────────────────────────


def build_plan(
    decomposition: WorkflowDecomposition,
    plan_id: Optional[str] = None,
) -> WorkflowPlan:
    """Turn a planner decomposition into a WorkflowPlan.

    Raises DecompositionError for zero phases, a phase with zero steps, or
    duplicate phase numbers. Step-level references are not checked here.
    """
    if not decomposition.phases:
        raise DecompositionError("Decomposition has no phases")

    seen: set[int] = set()
    for phase in decomposition.phases:
        if phase.phase_number in seen:
            raise DecompositionError(f"Duplicate phase number {phase.phase_number}")
        seen.add(phase.phase_number)
        if not phase.steps:
            raise DecompositionError(
                f"Phase {phase.phase_number} ({phase.name}) has no steps"
            )

    plan_kwargs: dict[str, Any] = {}
    if plan_id:
        plan_kwargs["id"] = plan_id

    plan = WorkflowPlan(
        name=decomposition.workflow_name,
        phases=[p.to_phase() for p in decomposition.phases],
        milestones=[m.to_milestone() for m in decomposition.milestones],
        critical_path=decomposition.critical_path,
        risk_factors=decomposition.risk_factors,
        estimated_duration=decomposition.estimated_duration,
        **plan_kwargs,
    )
    logger.info(
        f"Built plan {plan.id} '{plan.name}': {len(plan.phases)} phases, "
        f"{plan.total_steps()} steps, {len(plan.milestones)} milestones"
    )
    return plan


def coerce_decomposition(data: Union[dict, WorkflowDecomposition, SimpleDecomposition]) -> WorkflowDecomposition:
    """Accept either planner shape and return the phased form."""
    if isinstance(data, WorkflowDecomposition):
        return data
    if isinstance(data, SimpleDecomposition):
        return data.to_workflow()
    if not isinstance(data, dict):
        raise DecompositionError(f"Expected a JSON object, got {type(data).__name__}")

    try:
        if "phases" not in data and "steps" in data:
            return SimpleDecomposition.model_validate(data).to_workflow()
        return WorkflowDecomposition.model_validate(data)
    except ValidationError as e:
        raise DecompositionError(f"Malformed decomposition: {e}") from e


def parse_decomposition_response(raw_text: str) -> WorkflowDecomposition:
    """Parse a planner's text response, tolerating markdown code fences."""
    content = raw_text.strip()
    if content.startswith("```"):
        content = content.split("\n", 1)[1] if "\n" in content else content[3:]
    if content.endswith("```"):
        content = content.rsplit("```", 1)[0]

    try:
        data = json.loads(content.strip())
    except json.JSONDecodeError as e:
        logger.warning(f"Planner response is not valid JSON: {e}")
        raise DecompositionError(f"Invalid planner response: {e}") from e

    return coerce_decomposition(data)
