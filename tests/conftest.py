from typing import Any, Optional

import pytest

from src.executor.schemas import ExecutionContext
from src.executor.state_store import InMemoryStateBackend, WorkflowStateStore
from src.executor.tools import InMemoryToolRegistry
from src.executor.workflow_runner import WorkflowRunner
from src.orchestrator.schemas import Milestone, Phase, Step, WorkflowPlan


def _make_step(
    step_id: int,
    deps: tuple = (),
    kind: str = "information_gathering",
    critical: bool = False,
    minutes: int = 0,
    title: Optional[str] = None,
    **action_fields: Any,
) -> Step:
    action = {"kind": kind, **action_fields}
    if kind == "tool_call":
        action.setdefault("tool_name", "echo")
    return Step.model_validate({
        "id": step_id,
        "title": title or f"Step {step_id}",
        "action": action,
        "dependencies": list(deps),
        "estimated_minutes": minutes,
        "critical": critical,
    })


def _make_phase(phase_id: int, steps: list[Step], critical: bool = False, name: Optional[str] = None) -> Phase:
    return Phase(id=phase_id, name=name or f"Phase {phase_id}", steps=steps, critical=critical)


def _make_plan(phases: list[Phase], milestones: tuple = (), plan_id: Optional[str] = None) -> WorkflowPlan:
    kwargs = {"id": plan_id} if plan_id else {}
    return WorkflowPlan(name="Test plan", phases=phases, milestones=list(milestones), **kwargs)


def _make_milestone(name: str, phases: tuple, metrics: tuple = ()) -> Milestone:
    return Milestone(name=name, phase_dependencies=set(phases), success_metrics=list(metrics))


@pytest.fixture
def make_step():
    return _make_step


@pytest.fixture
def make_phase():
    return _make_phase


@pytest.fixture
def make_plan():
    return _make_plan


@pytest.fixture
def make_milestone():
    return _make_milestone


@pytest.fixture
def make_context():
    def _factory(plan: WorkflowPlan, **context_data: Any) -> ExecutionContext:
        return ExecutionContext(workflow_id=plan.id, plan=plan, context_data=context_data)
    return _factory


class FakeClock:
    def __init__(self, start: float = 1_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def tools():
    registry = InMemoryToolRegistry()
    calls: list[dict] = []

    def echo(args):
        calls.append(args)
        return {"success": True, "result": {"echo": args.get("message", "ok")}}

    def fail(args):
        return {"success": False, "error": "could not do it"}

    def explode(args):
        raise RuntimeError("tool crashed")

    registry.register("echo", echo, description="Echo the message argument")
    registry.register("fail", fail)
    registry.register("explode", explode)
    registry.calls = calls
    return registry


@pytest.fixture
def store():
    return WorkflowStateStore(InMemoryStateBackend())


@pytest.fixture
def runner(tools, store):
    return WorkflowRunner(tools, store)
