"""Whole-plan validation and a structural assessment.

validate_plan is fail-fast: the first structural or dependency problem is
raised and nothing is mutated. assess_plan is the lenient counterpart used
for reporting: it collects problems into a list instead of raising.
"""

import logging
from typing import Optional

from pydantic import BaseModel, Field

from src.errors import DecompositionError, DependencyError
from src.orchestrator.graph import build_validated_graph
from src.orchestrator.scheduler import compute_critical_path, compute_execution_order
from src.orchestrator.schemas import Phase, WorkflowPlan

logger = logging.getLogger(__name__)


class PhaseValidation(BaseModel):
    phase_id: int
    execution_order: list[int]
    critical_path: list[int]
    critical_path_minutes: int = 0


class PlanValidation(BaseModel):
    plan_id: str
    phases: list[PhaseValidation] = Field(default_factory=list)

    def longest_critical_path(self) -> list[int]:
        """Critical path of the phase whose chain takes the longest."""
        best: Optional[PhaseValidation] = None
        for pv in self.phases:
            if best is None or pv.critical_path_minutes > best.critical_path_minutes:
                best = pv
        return list(best.critical_path) if best else []


class PlanAssessment(BaseModel):
    """Structural review of a plan that needs no planner round trip."""

    overall_score: int
    issues: list[str] = Field(default_factory=list)
    recommendations: list[str] = Field(default_factory=list)
    success_probability: float
    time_assessment: str = "realistic"
    complexity_rating: str = "medium"
    risk_factors: list[str] = Field(default_factory=list)
    is_valid: bool


def validate_phase(phase: Phase) -> PhaseValidation:
    """Check one phase's step graph and compute its order and critical path."""
    if not phase.steps:
        raise DecompositionError(f"Phase {phase.id} ({phase.name}) has no steps")

    graph = build_validated_graph(phase.steps, phase_id=phase.id)
    critical_path = compute_critical_path(graph)
    return PhaseValidation(
        phase_id=phase.id,
        execution_order=compute_execution_order(graph),
        critical_path=critical_path,
        critical_path_minutes=sum(max(graph[i].step.estimated_minutes, 0) for i in critical_path),
    )


def validate_plan(plan: WorkflowPlan) -> PlanValidation:
    """Validate every phase and every milestone reference.

    Raises:
        DecompositionError: no phases, an empty phase, or duplicate phase ids
        DependencyError: dangling step or phase reference, or a cycle
    """
    if not plan.phases:
        raise DecompositionError("Plan has no phases")

    seen: set[int] = set()
    for phase in plan.phases:
        if phase.id in seen:
            raise DecompositionError(f"Duplicate phase id {phase.id}")
        seen.add(phase.id)

    results = [validate_phase(phase) for phase in plan.phases]

    for milestone in plan.milestones:
        for phase_id in sorted(milestone.phase_dependencies):
            if phase_id not in seen:
                raise DependencyError(
                    f"dangling reference: milestone '{milestone.name}' depends on "
                    f"phase {phase_id}, which does not exist",
                    missing_id=phase_id,
                )

    logger.debug(f"Plan {plan.id} validated: {len(results)} phases")
    return PlanValidation(plan_id=plan.id, phases=results)


def assess_plan(plan: WorkflowPlan) -> PlanAssessment:
    """Collect structural issues without raising."""
    issues: list[str] = []
    if not plan.phases:
        issues.append("No phases defined")
    if any(not p.steps for p in plan.phases):
        issues.append("Empty phases detected")

    if not issues:
        try:
            validate_plan(plan)
        except (DecompositionError, DependencyError) as e:
            issues.append(str(e))

    total_steps = plan.total_steps()
    if total_steps <= 5:
        complexity = "low"
    elif total_steps <= 15:
        complexity = "medium"
    else:
        complexity = "high"

    ok = not issues
    return PlanAssessment(
        overall_score=7 if ok else 4,
        issues=issues,
        recommendations=["Plan looks reasonable"] if ok else ["Address identified issues"],
        success_probability=0.8 if ok else 0.5,
        complexity_rating=complexity,
        risk_factors=list(plan.risk_factors) + issues,
        is_valid=ok,
    )
