"""Phase runner: executes one phase's steps in dependency order.

Rules, applied per step in execution order:
- already completed/failed/skipped: left alone (re-entry after a resume)
- phase halted by a critical failure: skipped
- any dependency not completed: skipped
- otherwise executed; a follow-up step suspends the phase right there

The phase ends completed iff none of its steps failed. Skips are reported
separately and do not by themselves fail the phase.
"""

import logging
import time
from typing import Optional

from src.executor.schemas import AwaitingInput, ExecutionContext, PhaseResult, StepResult
from src.executor.step_executor import StepExecutor
from src.orchestrator.graph import build_validated_graph
from src.orchestrator.scheduler import compute_execution_order
from src.orchestrator.schemas import TERMINAL_STEP_STATUSES, Phase, PhaseStatus, Step, StepStatus

logger = logging.getLogger(__name__)


def run_phase(
    phase: Phase,
    context: ExecutionContext,
    step_executor: StepExecutor,
) -> PhaseResult:
    """Execute a single phase (or continue it after a suspension).

    Raises DependencyError before touching any step if the phase graph is
    invalid.

    Returns:
        PhaseResult describing the whole phase so far
    """
    graph = build_validated_graph(phase.steps, phase_id=phase.id)
    order = compute_execution_order(graph)

    if phase.status == PhaseStatus.PENDING:
        phase.status = PhaseStatus.IN_PROGRESS
        context.log("phase_started", f"Phase {phase.id}: {phase.name}", phase_id=phase.id)
        logger.info(f"[{context.workflow_id}] Starting phase {phase.id}: {phase.name} ({len(order)} steps)")

    start = time.time()
    suspended = False
    error = None

    # A critical failure recorded on an earlier pass keeps the phase halted
    halted = any(
        s.status == StepStatus.FAILED and (s.critical or phase.critical)
        for s in phase.steps
    )

    for step_id in order:
        step = graph[step_id].step

        if step.status in TERMINAL_STEP_STATUSES:
            continue

        if step.status == StepStatus.IN_PROGRESS:
            # Still waiting for caller input from an earlier pass
            suspended = True
            break

        if halted:
            _skip_step(step, phase, context, "phase halted by a critical failure")
            continue

        unmet = [
            dep_id for dep_id in sorted(step.dependencies)
            if graph[dep_id].step.status != StepStatus.COMPLETED
        ]
        if unmet:
            _skip_step(step, phase, context, f"dependencies not completed: {unmet}")
            continue

        step.status = StepStatus.IN_PROGRESS
        result = step_executor.execute(step, phase, context)
        context.step_results.append(result)
        context.execution_time += result.execution_time

        if result.requires_follow_up:
            context.awaiting_input = _awaiting_input_for(step, phase, result)
            context.log("awaiting_input", f"Waiting on step {step.id}: {step.title}", phase.id, step.id)
            logger.info(f"[{context.workflow_id}] Phase {phase.id} suspended at step {step.id}")
            suspended = True
            break

        if result.success:
            step.status = StepStatus.COMPLETED
            context.record_step_outcome(phase.id, step.id, "completed")
            context.log("step_completed", step.title, phase.id, step.id)
        else:
            step.status = StepStatus.FAILED
            context.record_step_outcome(phase.id, step.id, "failed")
            context.log("step_failed", result.error or "", phase.id, step.id)
            if result.critical_failure:
                halted = True
                error = f"Critical step {step.id} failed: {result.error}"
                logger.warning(f"[{context.workflow_id}] Phase {phase.id} halted: {error}")

    if not suspended:
        failed = any(s.status == StepStatus.FAILED for s in phase.steps)
        phase.status = PhaseStatus.FAILED if failed else PhaseStatus.COMPLETED
        context.log("phase_finished", f"Phase {phase.id} {phase.status.value}", phase_id=phase.id)

    phase_result = _build_phase_result(phase, context, halted, suspended, error)
    logger.info(
        f"[{context.workflow_id}] Phase {phase.id} {phase.status.value}: "
        f"{len(phase_result.completed_steps)} completed, "
        f"{len(phase_result.failed_steps)} failed, "
        f"{len(phase_result.skipped_steps)} skipped "
        f"({time.time() - start:.2f}s)"
    )
    return phase_result


def _skip_step(step: Step, phase: Phase, context: ExecutionContext, reason: str) -> None:
    step.status = StepStatus.SKIPPED
    context.record_step_outcome(phase.id, step.id, "skipped")
    context.log("step_skipped", reason, phase.id, step.id)
    logger.warning(f"[{context.workflow_id}] Skipping step {phase.id}.{step.id} '{step.title}': {reason}")


def _awaiting_input_for(step: Step, phase: Phase, result: StepResult) -> AwaitingInput:
    return AwaitingInput(
        phase_id=phase.id,
        step_id=step.id,
        action_kind=step.action_kind,
        prompt=result.output.get("prompt"),
        details=result.output,
    )


def _build_phase_result(
    phase: Phase,
    context: ExecutionContext,
    halted: bool,
    suspended: bool,
    error: Optional[str],
) -> PhaseResult:
    by_status: dict[StepStatus, list[int]] = {}
    for step in phase.steps:
        by_status.setdefault(step.status, []).append(step.id)

    previous = context.phase_results.get(str(phase.id))
    return PhaseResult(
        phase_id=phase.id,
        phase_name=phase.name,
        status=phase.status,
        completed_steps=by_status.get(StepStatus.COMPLETED, []),
        failed_steps=by_status.get(StepStatus.FAILED, []),
        skipped_steps=by_status.get(StepStatus.SKIPPED, []),
        halted=halted,
        suspended=suspended,
        execution_time=sum(
            r.execution_time for r in context.step_results if r.phase_id == phase.id
        ),
        error=error or (previous.error if previous else None),
    )
