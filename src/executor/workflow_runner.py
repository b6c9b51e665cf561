"""Workflow runner: drives a plan phase by phase.

This is the main entry point for execution. It:
1. Validates the whole plan before anything runs (no side effects on failure)
2. Creates the execution context and moves it planned -> in_progress
3. Runs phases in plan order, evaluating milestones after each completed one
4. Suspends at user_input / decision_point steps and resumes on request
5. Applies adaptations between phases, re-validating the affected phase

The context is persisted after every phase and at every exit. Any
unexpected exception fails the workflow with the progress made so far.
"""

import logging
import threading
from contextlib import contextmanager
from typing import Any, Optional, Union

from src.errors import (
    DecompositionError,
    DependencyError,
    WorkflowBusyError,
    WorkflowNotFoundError,
    WorkflowStateError,
)
from src.executor.milestones import MilestoneEvaluator
from src.executor.phase_runner import run_phase
from src.executor.schemas import (
    ExecutionContext,
    PhaseResult,
    StepInput,
    StepResult,
    WorkflowRunResult,
)
from src.executor.state_store import WorkflowStateStore
from src.executor.step_executor import StepExecutor, jsonable
from src.executor.tools import ToolRegistry
from src.orchestrator.decomposition import SimpleDecomposition, StepDecomposition, build_plan
from src.orchestrator.plan_revision import AdaptationRequest, AdaptiveReplanner
from src.orchestrator.progress import milestone_completion_rate, results_summary
from src.orchestrator.schemas import PhaseStatus, StepStatus, WorkflowPlan, WorkflowStatus
from src.orchestrator.validation import validate_phase, validate_plan

logger = logging.getLogger(__name__)


class WorkflowRunner:
    def __init__(
        self,
        tool_registry: ToolRegistry,
        state_store: WorkflowStateStore,
        replanner: Optional[AdaptiveReplanner] = None,
        milestone_evaluator: Optional[MilestoneEvaluator] = None,
    ):
        self.step_executor = StepExecutor(tool_registry)
        self.state_store = state_store
        self.replanner = replanner or AdaptiveReplanner()
        self.milestones = milestone_evaluator or MilestoneEvaluator()

        # Same-id calls must not interleave; the second one is rejected.
        self._active: set[str] = set()
        self._active_lock = threading.Lock()

    @contextmanager
    def _exclusive(self, workflow_id: str):
        with self._active_lock:
            if workflow_id in self._active:
                logger.warning(f"Concurrent call blocked: workflow {workflow_id} is already active")
                raise WorkflowBusyError(workflow_id)
            self._active.add(workflow_id)
        try:
            yield
        finally:
            with self._active_lock:
                self._active.discard(workflow_id)

    # ── Public operations ───────────────────────────────────

    def start(self, plan: WorkflowPlan, context_data: Optional[dict[str, Any]] = None) -> WorkflowRunResult:
        """Validate the plan, create its context and run until done or suspended.

        Raises DependencyError / DecompositionError without creating any state.
        """
        if plan.status != WorkflowStatus.PLANNED:
            raise WorkflowStateError(f"Plan {plan.id} is {plan.status.value}, expected planned")

        validation = validate_plan(plan)

        plan = plan.model_copy(deep=True)
        if not plan.critical_path:
            plan.critical_path = validation.longest_critical_path()

        with self._exclusive(plan.id):
            if self.state_store.load(plan.id) is not None:
                raise WorkflowStateError(f"Workflow {plan.id} already exists")

            context = ExecutionContext(
                workflow_id=plan.id,
                plan=plan,
                context_data=jsonable(context_data or {}),
            )
            context.transition_to(WorkflowStatus.IN_PROGRESS)
            logger.info(
                f"Starting workflow {plan.id} '{plan.name}': "
                f"{len(plan.phases)} phases, {plan.total_steps()} steps, "
                f"{len(plan.milestones)} milestones"
            )
            self.state_store.store(context)
            return self._drive(context)

    def run_simple(
        self,
        steps: Union[SimpleDecomposition, list[Union[dict, StepDecomposition]]],
        context_data: Optional[dict[str, Any]] = None,
    ) -> WorkflowRunResult:
        """Flat step list -> single-phase plan -> start()."""
        if isinstance(steps, SimpleDecomposition):
            simple = steps
        else:
            simple = SimpleDecomposition(steps=steps)
        plan = build_plan(simple.to_workflow())
        return self.start(plan, context_data)

    def resume(self, workflow_id: str, step_input: Optional[StepInput] = None) -> WorkflowRunResult:
        """Apply the caller's answer to the awaiting step and continue."""
        with self._exclusive(workflow_id):
            context = self.get_context(workflow_id)
            if context.is_terminal:
                raise WorkflowStateError(
                    f"Workflow {workflow_id} is already {context.status.value}"
                )

            if context.awaiting_input is not None:
                if step_input is None:
                    awaiting = context.awaiting_input
                    raise WorkflowStateError(
                        f"Workflow {workflow_id} is waiting for input on step "
                        f"{awaiting.phase_id}.{awaiting.step_id}"
                    )
                self._apply_step_input(context, step_input)

            logger.info(f"Resuming workflow {workflow_id}")
            return self._drive(context)

    def adapt(self, workflow_id: str, request: AdaptationRequest) -> ExecutionContext:
        """Apply an adaptation to a copy of the plan and keep it only if it validates.

        On any failure the stored context is left exactly as it was.
        """
        with self._exclusive(workflow_id):
            context = self.get_context(workflow_id)
            if context.is_terminal:
                raise WorkflowStateError(
                    f"Workflow {workflow_id} is {context.status.value}; adaptations are closed"
                )

            candidate = context.model_copy(deep=True)
            self.replanner.apply(candidate.plan, candidate, request)

            phase = candidate.plan.get_phase(request.phase_id)
            if phase.status != PhaseStatus.SKIPPED:
                try:
                    validate_phase(phase)
                except (DependencyError, DecompositionError) as e:
                    logger.warning(
                        f"Adaptation of workflow {workflow_id} rolled back, "
                        f"phase {phase.id} no longer valid: {e}"
                    )
                    raise

            self.state_store.store(candidate)
            return candidate

    def get_context(self, workflow_id: str) -> ExecutionContext:
        context = self.state_store.load(workflow_id)
        if context is None:
            raise WorkflowNotFoundError(workflow_id)
        return context

    # ── Driving ─────────────────────────────────────────────

    def _drive(self, context: ExecutionContext) -> WorkflowRunResult:
        try:
            for phase in context.plan.phases:
                if phase.status == PhaseStatus.SKIPPED:
                    if phase.id not in context.skipped_phases:
                        context.record_phase_outcome(phase.id, PhaseStatus.SKIPPED)
                        context.log("phase_skipped", phase.skip_reason or "", phase_id=phase.id)
                        logger.info(f"[{context.workflow_id}] Phase {phase.id} skipped: {phase.skip_reason}")
                    continue
                if phase.status in (PhaseStatus.COMPLETED, PhaseStatus.FAILED):
                    continue

                result = run_phase(phase, context, self.step_executor)
                self._record_phase_result(context, result)

                if result.suspended:
                    self.state_store.store(context)
                    return self._build_result(context)

                if result.status == PhaseStatus.COMPLETED:
                    self.milestones.evaluate(context)

                if result.halted:
                    context.error = result.error or f"Phase {phase.id} halted"
                    context.transition_to(WorkflowStatus.FAILED)
                    break

                self.state_store.store(context)

            if not context.is_terminal:
                context.transition_to(WorkflowStatus.COMPLETED)

        except Exception as e:
            logger.error(f"Workflow {context.workflow_id} failed: {e}", exc_info=True)
            context.error = str(e)
            if not context.is_terminal:
                context.transition_to(WorkflowStatus.FAILED)

        self.state_store.store(context)
        logger.info(
            f"Workflow {context.workflow_id} finished: {context.status.value}, "
            f"{len(context.completed_phases)} phases completed, "
            f"{len(context.failed_phases)} failed, {len(context.skipped_phases)} skipped"
        )
        return self._build_result(context)

    def _record_phase_result(self, context: ExecutionContext, result: PhaseResult) -> None:
        context.phase_results[str(result.phase_id)] = result
        if not result.suspended:
            context.record_phase_outcome(result.phase_id, result.status)

    def _apply_step_input(self, context: ExecutionContext, step_input: StepInput) -> None:
        awaiting = context.awaiting_input
        phase = context.plan.get_phase(awaiting.phase_id)
        step = phase.get_step(awaiting.step_id) if phase else None
        if step is None:
            raise WorkflowStateError(
                f"Awaited step {awaiting.phase_id}.{awaiting.step_id} no longer exists"
            )

        failed = not step_input.success
        result = StepResult(
            step_id=step.id,
            phase_id=phase.id,
            success=step_input.success,
            critical_failure=failed and (step.critical or phase.critical),
            error="Step input reported failure" if failed else None,
            error_type="StepInputFailure" if failed else None,
            output={
                "response": step_input.response,
                "decision": step_input.decision,
                "data": jsonable(step_input.data),
            },
        )
        context.step_results.append(result)

        if failed:
            step.status = StepStatus.FAILED
            context.record_step_outcome(phase.id, step.id, "failed")
            context.log("step_failed", "Step input reported failure", phase.id, step.id)
        else:
            step.status = StepStatus.COMPLETED
            context.record_step_outcome(phase.id, step.id, "completed")
            context.log("step_completed", step.title, phase.id, step.id)

        context.awaiting_input = None

    def _build_result(self, context: ExecutionContext) -> WorkflowRunResult:
        completed = context.status == WorkflowStatus.COMPLETED
        return WorkflowRunResult(
            workflow_id=context.workflow_id,
            status=context.status,
            success=completed,
            completed_steps=len(context.completed_steps),
            failed_steps=len(context.failed_steps),
            skipped_steps=len(context.skipped_steps),
            total_steps=context.plan.total_steps(),
            completed_phases=list(context.completed_phases),
            failed_phases=list(context.failed_phases),
            skipped_phases=list(context.skipped_phases),
            execution_time=context.execution_time,
            milestones_achieved=context.achieved_milestone_names(),
            milestone_completion_rate=milestone_completion_rate(context),
            awaiting_input=context.awaiting_input,
            summary=results_summary(context),
            error=context.error,
            partial_results=None if completed else _partial_results(context),
        )


def _partial_results(context: ExecutionContext) -> dict[str, Any]:
    return {
        "completed_steps": [list(k) for k in context.completed_steps],
        "failed_steps": [list(k) for k in context.failed_steps],
        "skipped_steps": [list(k) for k in context.skipped_steps],
        "phase_results": {
            k: v.model_dump(mode="json") for k, v in context.phase_results.items()
        },
        "step_results": [r.model_dump(mode="json") for r in context.step_results],
    }
