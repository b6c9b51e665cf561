"""Exception taxonomy for Phaseflow.

Two families:
- Plan-level errors (DependencyError, DecompositionError, AdaptationError)
  are raised before anything executes. They never leave partial state.
- Step-level errors (StepExecutionError subclasses) are raised inside the
  step executor and converted into failed StepResults there. They only
  escape the executor if a caller invokes a handler directly.
"""

from typing import Optional


class PhaseflowError(Exception):
    """Base class for all engine errors."""


# ── Plan-level ──────────────────────────────────────────────


class DependencyError(PhaseflowError):
    """Dangling reference, duplicate id, or circular dependency."""

    def __init__(
        self,
        message: str,
        *,
        cycle: Optional[list[int]] = None,
        missing_id: Optional[int] = None,
        phase_id: Optional[int] = None,
    ):
        super().__init__(message)
        self.cycle = cycle
        self.missing_id = missing_id
        self.phase_id = phase_id


class DecompositionError(PhaseflowError):
    """Structurally empty or unparseable plan."""


class AdaptationError(PhaseflowError):
    """An adaptation request cannot be applied to the live plan."""


# ── Step-level ──────────────────────────────────────────────


class StepExecutionError(PhaseflowError):
    """Base for failures that belong to a single step."""

    recoverable = True


class ToolUnavailable(StepExecutionError):
    """The tool registry has no tool under the requested name."""

    def __init__(self, tool_name: str):
        super().__init__(f"Tool not available: {tool_name}")
        self.tool_name = tool_name


class ToolExecutionFailure(StepExecutionError):
    """The tool ran and reported failure, or raised."""


class UnknownActionType(StepExecutionError):
    """The step carries an action kind the executor has no handler for."""

    recoverable = False

    def __init__(self, action_kind: str):
        super().__init__(f"Unknown step action type: {action_kind}")
        self.action_kind = action_kind


class ValidationFailed(StepExecutionError):
    """A validation step's success criteria were not met."""

    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__(message)
        self.details = details or {}


# ── Workflow lifecycle ──────────────────────────────────────


class WorkflowStateError(PhaseflowError):
    """Illegal status transition, or an operation on a finished workflow."""


class WorkflowNotFoundError(PhaseflowError):
    """No execution context is stored under the workflow id."""

    def __init__(self, workflow_id: str):
        super().__init__(f"Workflow not found: {workflow_id}")
        self.workflow_id = workflow_id


class WorkflowBusyError(PhaseflowError):
    """Another call is already driving this workflow id."""

    def __init__(self, workflow_id: str):
        super().__init__(f"Workflow {workflow_id} is already being executed")
        self.workflow_id = workflow_id
