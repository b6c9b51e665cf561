"""Single step execution.

StepExecutor dispatches on the step's action kind through one handler
table. Every handler returns the step's output dict or raises a
StepExecutionError; execute() turns either into a StepResult, so callers
never see step-level exceptions.

user_input and decision_point steps do not finish here: they come back
with requires_follow_up=True and the phase runner suspends on them.
"""

import logging
import time
from typing import Any, Callable

from pydantic_core import PydanticSerializationError, to_jsonable_python

from src.errors import (
    StepExecutionError,
    ToolExecutionFailure,
    UnknownActionType,
    ValidationFailed,
)
from src.executor.schemas import ExecutionContext, StepResult
from src.executor.tools import ToolRegistry
from src.orchestrator.progress import calculate_progress, step_guidance
from src.orchestrator.schemas import ActionKind, Phase, Step, StepStatus, utc_now

logger = logging.getLogger(__name__)

FOLLOW_UP_KINDS = {ActionKind.USER_INPUT.value, ActionKind.DECISION_POINT.value}

Handler = Callable[[Step, Phase, ExecutionContext], dict[str, Any]]


class StepExecutor:
    def __init__(self, tool_registry: ToolRegistry):
        self.tool_registry = tool_registry
        self._handlers: dict[str, Handler] = {
            ActionKind.TOOL_CALL.value: self._execute_tool_call,
            ActionKind.USER_INPUT.value: self._request_user_input,
            ActionKind.INFORMATION_GATHERING.value: self._gather_information,
            ActionKind.VALIDATION.value: self._validate_steps,
            ActionKind.DECISION_POINT.value: self._request_decision,
        }

    def execute(self, step: Step, phase: Phase, context: ExecutionContext) -> StepResult:
        """Run one step and normalize the outcome. Never raises StepExecutionError."""
        start = time.time()
        kind = step.action_kind
        try:
            handler = self._handlers.get(kind)
            if handler is None:
                raise UnknownActionType(kind)
            output = handler(step, phase, context)
        except StepExecutionError as e:
            critical = step.critical or phase.critical
            logger.warning(
                f"Step {phase.id}.{step.id} '{step.title}' failed "
                f"({type(e).__name__}): {e}"
            )
            output = {"recoverable": e.recoverable}
            if isinstance(e, ValidationFailed):
                output.update(e.details)
            return StepResult(
                step_id=step.id,
                phase_id=phase.id,
                success=False,
                critical_failure=critical,
                error=str(e),
                error_type=type(e).__name__,
                execution_time=time.time() - start,
                output=output,
            )

        return StepResult(
            step_id=step.id,
            phase_id=phase.id,
            success=True,
            requires_follow_up=kind in FOLLOW_UP_KINDS,
            execution_time=time.time() - start,
            output=output,
        )

    # ── Handlers ────────────────────────────────────────────

    def _execute_tool_call(self, step: Step, phase: Phase, context: ExecutionContext) -> dict[str, Any]:
        tool_name = step.action.tool_name
        args = dict(step.action.tool_arguments)
        args.update({
            "context": context.context_data,
            "step_id": step.id,
            "step_title": step.title,
        })

        try:
            response = self.tool_registry.execute(tool_name, args)
        except StepExecutionError:
            raise
        except Exception as e:
            raise ToolExecutionFailure(f"Tool {tool_name} raised: {e}") from e

        if not response.get("success"):
            reason = response.get("error") or "reported failure"
            raise ToolExecutionFailure(f"Tool {tool_name} {reason}")

        return {"tool_name": tool_name, "result": jsonable(response.get("result"))}

    def _request_user_input(self, step: Step, phase: Phase, context: ExecutionContext) -> dict[str, Any]:
        return {
            "input_type": step.action.input_type,
            "prompt": step.action.prompt or step.description or step.title,
            "guidance": step_guidance(step),
        }

    def _gather_information(self, step: Step, phase: Phase, context: ExecutionContext) -> dict[str, Any]:
        return {
            "information_sources": list(step.action.information_sources),
            "context_keys": sorted(context.context_data),
            "gathered_at": utc_now(),
        }

    def _validate_steps(self, step: Step, phase: Phase, context: ExecutionContext) -> dict[str, Any]:
        results: dict[str, bool] = {}
        for target_id in step.action.validates_steps:
            results[str(target_id)] = self._check_step(target_id, step, phase, context)

        details = {"validation_results": results}
        failed = [sid for sid, ok in results.items() if not ok]
        if failed:
            raise ValidationFailed(
                f"Validation failed for steps: {', '.join(failed)}",
                details=details,
            )
        return {**details, "valid": True}

    def _check_step(self, target_id: int, step: Step, phase: Phase, context: ExecutionContext) -> bool:
        target = phase.get_step(target_id)
        if target is None or target.status != StepStatus.COMPLETED:
            return False

        latest = None
        for result in reversed(context.step_results):
            if result.phase_id == phase.id and result.step_id == target_id:
                latest = result
                break

        for criterion in step.action.criteria:
            if criterion.type == "success_required":
                if latest is None or not latest.success:
                    return False
            elif criterion.type == "result_contains":
                haystack = str(latest.output) if latest else ""
                if criterion.value and criterion.value not in haystack:
                    return False
        return True

    def _request_decision(self, step: Step, phase: Phase, context: ExecutionContext) -> dict[str, Any]:
        return {
            "decision_options": list(step.action.decision_options),
            "decision_criteria": list(step.action.decision_criteria),
            "decision_context": build_decision_context(context),
            "guidance": step_guidance(step),
        }


def jsonable(value: Any) -> Any:
    """Coerce tool or caller data into something the state store can serialize.

    Unknown objects become their str(); bytes that are not UTF-8 become base64.
    """
    try:
        return to_jsonable_python(value, fallback=str)
    except PydanticSerializationError:
        return to_jsonable_python(value, fallback=str, bytes_mode="base64")


def build_decision_context(context: ExecutionContext) -> dict[str, Any]:
    """What a decision-maker sees: history, progress and declared resources."""
    previous_titles = []
    for phase_id, step_id in context.completed_steps:
        phase = context.plan.get_phase(phase_id)
        done = phase.get_step(step_id) if phase else None
        if done is not None:
            previous_titles.append(done.title)

    return {
        "previous_steps": previous_titles,
        "workflow_progress": calculate_progress(context).model_dump(),
        "available_resources": context.context_data.get("resources", []),
        "time_constraints": context.context_data.get("time_constraints"),
    }
