"""Progress reporting over an execution context.

Read-only helpers: none of these mutate the context.
"""

from typing import Optional

from pydantic import BaseModel, Field

from src.executor.schemas import ExecutionContext
from src.orchestrator.schemas import ActionKind, PhaseStatus, Step, StepStatus

_FINISHED_PHASE_STATUSES = {PhaseStatus.COMPLETED, PhaseStatus.FAILED, PhaseStatus.SKIPPED}

_STEP_GUIDANCE = {
    ActionKind.TOOL_CALL.value: (
        "Use the {tool} tool to complete this step. Make sure you have the "
        "necessary information ready before proceeding."
    ),
    ActionKind.USER_INPUT.value: (
        "This step requires your input. Please provide the requested "
        "information clearly and completely."
    ),
    ActionKind.INFORMATION_GATHERING.value: (
        "Gather the necessary information as described. Take time to "
        "collect all relevant details."
    ),
    ActionKind.VALIDATION.value: (
        "Review and validate the previous steps to ensure they meet the "
        "success criteria."
    ),
    ActionKind.DECISION_POINT.value: (
        "This is a decision point. Consider the available options "
        "carefully before proceeding."
    ),
}
_DEFAULT_GUIDANCE = "Follow the step description to complete this task."


class WorkflowProgress(BaseModel):
    total_phases: int
    finished_phases: int
    current_phase: Optional[int] = None
    total_steps: int
    completed_steps: int
    failed_steps: int
    skipped_steps: int
    progress_percentage: float = Field(description="Finished phases / total phases, 0-100")
    step_percentage: float = Field(description="Completed steps / total steps, 0-100")


class NextStep(BaseModel):
    phase_id: int
    step_id: int
    title: str
    status: str = Field(description="'ready' or 'blocked'")
    blocked_by: list[str] = Field(default_factory=list)


def _percent(part: int, whole: int) -> float:
    if whole <= 0:
        return 0.0
    return round(part / whole * 100, 1)


def calculate_progress(context: ExecutionContext) -> WorkflowProgress:
    plan = context.plan
    finished = [p for p in plan.phases if p.status in _FINISHED_PHASE_STATUSES]
    current = next((p.id for p in plan.phases if p.status not in _FINISHED_PHASE_STATUSES), None)
    total_steps = plan.total_steps()

    return WorkflowProgress(
        total_phases=len(plan.phases),
        finished_phases=len(finished),
        current_phase=current,
        total_steps=total_steps,
        completed_steps=len(context.completed_steps),
        failed_steps=len(context.failed_steps),
        skipped_steps=len(context.skipped_steps),
        progress_percentage=_percent(len(finished), len(plan.phases)),
        step_percentage=_percent(len(context.completed_steps), total_steps),
    )


def identify_next_steps(context: ExecutionContext) -> list[NextStep]:
    """Unfinished steps of unfinished phases, ready ones first."""
    next_steps: list[NextStep] = []
    for phase in context.plan.phases:
        if phase.status in _FINISHED_PHASE_STATUSES:
            continue
        for step in phase.steps:
            if step.status in (StepStatus.COMPLETED, StepStatus.FAILED, StepStatus.SKIPPED):
                continue
            blockers = []
            for dep_id in sorted(step.dependencies):
                dep = phase.get_step(dep_id)
                if dep is None or dep.status != StepStatus.COMPLETED:
                    blockers.append(dep.title if dep else f"step {dep_id}")
            next_steps.append(NextStep(
                phase_id=phase.id,
                step_id=step.id,
                title=step.title,
                status="blocked" if blockers else "ready",
                blocked_by=blockers,
            ))

    next_steps.sort(key=lambda s: 0 if s.status == "ready" else 1)
    return next_steps


def results_summary(context: ExecutionContext) -> str:
    completed = len(context.completed_phases)
    total = completed + len(context.failed_phases)
    achieved = len(context.milestone_achievements)
    return f"Completed {completed}/{total} phases with {achieved} milestones achieved"


def milestone_completion_rate(context: ExecutionContext) -> float:
    total = len(context.plan.milestones)
    if total == 0:
        return 0.0
    return len(context.milestone_achievements) / total


def success_rate(context: ExecutionContext) -> float:
    """Mean of the phase completion rate and the milestone completion rate."""
    completed = len(context.completed_phases)
    attempted = completed + len(context.failed_phases)
    phase_rate = completed / attempted if attempted else 0.0
    return (phase_rate + milestone_completion_rate(context)) / 2.0


def step_guidance(step: Step) -> str:
    template = _STEP_GUIDANCE.get(step.action_kind, _DEFAULT_GUIDANCE)
    return template.format(tool=step.tool_name or "required")
