"""Plan revision: caller-driven adaptations of a live plan.

Four adaptation types, all scoped to one phase:
1. add_steps: append planner-format steps to the phase
2. modify_approach: replace the phase description and optionally its steps
3. skip_phase: mark a pending phase skipped; dependent milestones can then
   never be achieved
4. restore_phase: put a skipped phase back to pending

Phases that already completed or failed cannot be adapted. The replanner
does no graph validation itself: the workflow runner validates the phase
afterwards and throws the mutated copy away if that fails.
"""

import logging
from enum import Enum
from typing import Any, Callable

from pydantic import BaseModel, Field, ValidationError

from src.errors import AdaptationError, DecompositionError
from src.executor.schemas import AdaptiveChange, ExecutionContext
from src.orchestrator.decomposition import StepDecomposition
from src.orchestrator.schemas import Phase, PhaseStatus, Step, WorkflowPlan

logger = logging.getLogger(__name__)


class AdaptationType(str, Enum):
    ADD_STEPS = "add_steps"
    MODIFY_APPROACH = "modify_approach"
    SKIP_PHASE = "skip_phase"
    RESTORE_PHASE = "restore_phase"


class AdaptationRequest(BaseModel):
    """Caller feedback to apply to one phase.

    payload by type:
        add_steps: {"steps": [...]}
        modify_approach: {"description": str, "steps": [...] (optional)}
        skip_phase: {"reason": str}
        restore_phase: {}
    """

    adaptation_type: AdaptationType
    phase_id: int
    payload: dict[str, Any] = Field(default_factory=dict)


_LOCKED_PHASE_STATUSES = {PhaseStatus.COMPLETED, PhaseStatus.FAILED}

ChangeHandler = Callable[[Phase, ExecutionContext, dict[str, Any]], tuple[str, dict[str, Any]]]


class AdaptiveReplanner:
    def __init__(self):
        self._handlers: dict[AdaptationType, ChangeHandler] = {
            AdaptationType.ADD_STEPS: self._add_steps,
            AdaptationType.MODIFY_APPROACH: self._modify_approach,
            AdaptationType.SKIP_PHASE: self._skip_phase,
            AdaptationType.RESTORE_PHASE: self._restore_phase,
        }

    def apply(
        self,
        plan: WorkflowPlan,
        context: ExecutionContext,
        request: AdaptationRequest,
    ) -> AdaptiveChange:
        """Mutate `plan` in place and append the audit record to `context`.

        Raises:
            AdaptationError: unknown phase, locked phase, or a bad payload
        """
        phase = plan.get_phase(request.phase_id)
        if phase is None:
            raise AdaptationError(f"Phase {request.phase_id} not found in plan {plan.id}")
        if phase.status in _LOCKED_PHASE_STATUSES:
            raise AdaptationError(
                f"Phase {phase.id} is {phase.status.value} and can no longer be adapted"
            )

        handler = self._handlers[request.adaptation_type]
        description, details = handler(phase, context, request.payload)

        change = AdaptiveChange(
            adaptation_type=request.adaptation_type.value,
            phase_id=phase.id,
            description=description,
            details=details,
        )
        context.adaptive_changes.append(change)
        context.log("adaptation", description, phase_id=phase.id)
        logger.info(f"[{context.workflow_id}] Adaptation applied: {description}")
        return change

    # ── Handlers ────────────────────────────────────────────

    def _add_steps(self, phase: Phase, context: ExecutionContext, payload: dict[str, Any]) -> tuple[str, dict]:
        new_steps = _parse_steps(payload.get("steps"))
        if not new_steps:
            raise AdaptationError("add_steps requires at least one step")

        phase.steps.extend(new_steps)
        ids = [s.id for s in new_steps]
        return (
            f"Added {len(new_steps)} steps to phase {phase.id}",
            {"added_step_ids": ids},
        )

    def _modify_approach(self, phase: Phase, context: ExecutionContext, payload: dict[str, Any]) -> tuple[str, dict]:
        description = payload.get("description") or payload.get("new_approach")
        if not description:
            raise AdaptationError("modify_approach requires a description")

        details: dict[str, Any] = {"previous_description": phase.description}
        if payload.get("steps") is not None:
            if phase.status != PhaseStatus.PENDING:
                raise AdaptationError(
                    f"Cannot replace the steps of phase {phase.id} after it has started"
                )
            new_steps = _parse_steps(payload["steps"])
            if not new_steps:
                raise AdaptationError("modify_approach cannot replace steps with an empty list")
            details["replaced_step_ids"] = [s.id for s in phase.steps]
            details["new_step_ids"] = [s.id for s in new_steps]
            phase.steps = new_steps

        phase.description = description
        return f"Modified approach for phase {phase.id}", details

    def _skip_phase(self, phase: Phase, context: ExecutionContext, payload: dict[str, Any]) -> tuple[str, dict]:
        if phase.status != PhaseStatus.PENDING:
            raise AdaptationError(
                f"Only pending phases can be skipped; phase {phase.id} is {phase.status.value}"
            )
        reason = payload.get("reason") or "Skipped by request"
        phase.status = PhaseStatus.SKIPPED
        phase.skip_reason = reason
        return f"Skipped phase {phase.id}: {reason}", {"reason": reason}

    def _restore_phase(self, phase: Phase, context: ExecutionContext, payload: dict[str, Any]) -> tuple[str, dict]:
        if phase.status != PhaseStatus.SKIPPED:
            raise AdaptationError(f"Phase {phase.id} is not skipped")
        previous_reason = phase.skip_reason
        phase.status = PhaseStatus.PENDING
        phase.skip_reason = None
        if phase.id in context.skipped_phases:
            context.skipped_phases.remove(phase.id)
        return f"Restored phase {phase.id}", {"previous_reason": previous_reason}


def _parse_steps(raw: Any) -> list[Step]:
    if raw is None:
        return []
    if not isinstance(raw, list):
        raise AdaptationError("steps must be a list")
    try:
        return [StepDecomposition.model_validate(item).to_step() for item in raw]
    except (ValidationError, DecompositionError) as e:
        raise AdaptationError(f"Invalid step in adaptation: {e}") from e
