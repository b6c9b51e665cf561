"""Milestone evaluation.

A milestone is achieved the first time all of its phase_dependencies are
in completed_phases and every one of its success_metrics holds. Metrics are
free text matched case-insensitively by substring against a table of named
predicates; a metric that matches nothing holds.

achieved_at is written once. Later evaluations never touch it.
"""

import logging
from typing import Callable

from src.executor.schemas import ExecutionContext, MilestoneAchievement
from src.orchestrator.schemas import Milestone, PhaseStatus, utc_now

logger = logging.getLogger(__name__)

MetricPredicate = Callable[[Milestone, ExecutionContext], bool]


def _all_steps_completed(milestone: Milestone, context: ExecutionContext) -> bool:
    """The most recently completed qualifying phase has no failed steps."""
    qualifying = [pid for pid in context.completed_phases if pid in milestone.phase_dependencies]
    if not qualifying:
        return False
    latest = qualifying[-1]
    return not any(pid == latest for pid, _ in context.failed_steps)


def _all_phases_completed(milestone: Milestone, context: ExecutionContext) -> bool:
    return all(
        phase.id in context.completed_phases
        for phase in context.plan.phases
        if phase.status != PhaseStatus.SKIPPED
    )


def _no_skipped_steps(milestone: Milestone, context: ExecutionContext) -> bool:
    return not any(pid in milestone.phase_dependencies for pid, _ in context.skipped_steps)


class MilestoneEvaluator:
    """Holds the metric table; evaluate() records newly achieved milestones."""

    def __init__(self):
        self._metrics: list[tuple[str, MetricPredicate]] = [
            ("all steps completed", _all_steps_completed),
            ("all phases completed", _all_phases_completed),
            ("no skipped steps", _no_skipped_steps),
        ]

    def register_metric(self, name: str, predicate: MetricPredicate) -> None:
        """Add a named metric. Earlier registrations win on overlapping names."""
        self._metrics.append((name.lower(), predicate))

    def check_metric(self, metric: str, milestone: Milestone, context: ExecutionContext) -> bool:
        text = metric.lower()
        for name, predicate in self._metrics:
            if name in text:
                return predicate(milestone, context)
        return True

    def is_achievable(self, milestone: Milestone, context: ExecutionContext) -> bool:
        if not milestone.phase_dependencies:
            return False
        completed = set(context.completed_phases)
        if not milestone.phase_dependencies <= completed:
            return False
        return all(self.check_metric(m, milestone, context) for m in milestone.success_metrics)

    def evaluate(self, context: ExecutionContext) -> list[MilestoneAchievement]:
        """Check every unachieved milestone; return the ones achieved on this pass."""
        newly_achieved = []
        for milestone in context.plan.milestones:
            if milestone.achieved_at is not None:
                continue
            if not self.is_achievable(milestone, context):
                continue

            milestone.achieved_at = utc_now()
            achievement = MilestoneAchievement(
                name=milestone.name,
                achieved_at=milestone.achieved_at,
                phase_dependencies=sorted(milestone.phase_dependencies),
            )
            context.milestone_achievements.append(achievement)
            context.log("milestone_achieved", milestone.name)
            logger.info(f"[{context.workflow_id}] Milestone achieved: {milestone.name}")
            newly_achieved.append(achievement)

        return newly_achieved
