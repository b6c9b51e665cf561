import pytest

from src.errors import AdaptationError
from src.orchestrator.plan_revision import AdaptationRequest, AdaptationType, AdaptiveReplanner
from src.orchestrator.schemas import PhaseStatus, ToolCallAction


@pytest.fixture
def context(make_step, make_phase, make_plan, make_context):
    plan = make_plan([
        make_phase(1, [make_step(1)]),
        make_phase(2, [make_step(1), make_step(2, deps=[1])], name="Logistics"),
    ])
    return make_context(plan)


def _apply(context, adaptation_type, phase_id, **payload):
    request = AdaptationRequest(adaptation_type=adaptation_type, phase_id=phase_id, payload=payload)
    return AdaptiveReplanner().apply(context.plan, context, request)


def test_add_steps_appends_planner_steps(context):
    change = _apply(context, "add_steps", 2, steps=[
        {"step_number": 3, "title": "Book caterer", "action_type": "tool_call",
         "tool_needed": "booking", "dependencies": [2]},
    ])

    phase = context.plan.get_phase(2)
    assert [s.id for s in phase.steps] == [1, 2, 3]
    assert isinstance(phase.get_step(3).action, ToolCallAction)
    assert change.details == {"added_step_ids": [3]}
    assert context.adaptive_changes == [change]
    assert context.execution_log[-1].event == "adaptation"


def test_add_steps_requires_steps(context):
    with pytest.raises(AdaptationError, match="at least one step"):
        _apply(context, "add_steps", 2, steps=[])


def test_invalid_step_payload_is_an_adaptation_error(context):
    with pytest.raises(AdaptationError, match="Invalid step"):
        _apply(context, "add_steps", 2, steps=[{"title": "no number"}])

    with pytest.raises(AdaptationError, match="names no tool"):
        _apply(context, "add_steps", 2, steps=[
            {"step_number": 3, "title": "Call", "action_type": "tool_call"},
        ])


def test_modify_approach_replaces_description_and_steps(context):
    change = _apply(
        context, "modify_approach", 2,
        description="Outsource logistics",
        steps=[{"step_number": 1, "title": "Hire agency"}],
    )

    phase = context.plan.get_phase(2)
    assert phase.description == "Outsource logistics"
    assert [s.title for s in phase.steps] == ["Hire agency"]
    assert change.details["replaced_step_ids"] == [1, 2]
    assert change.details["new_step_ids"] == [1]


def test_modify_approach_needs_description(context):
    with pytest.raises(AdaptationError, match="requires a description"):
        _apply(context, "modify_approach", 2)


def test_started_phase_keeps_its_steps(context):
    context.plan.get_phase(2).status = PhaseStatus.IN_PROGRESS

    with pytest.raises(AdaptationError, match="after it has started"):
        _apply(context, "modify_approach", 2, new_approach="x", steps=[{"step_number": 1, "title": "y"}])

    change = _apply(context, "modify_approach", 2, new_approach="Just the text")
    assert context.plan.get_phase(2).description == "Just the text"
    assert "replaced_step_ids" not in change.details


def test_skip_and_restore_phase(context):
    _apply(context, "skip_phase", 2, reason="Venue already booked")

    phase = context.plan.get_phase(2)
    assert phase.status == PhaseStatus.SKIPPED
    assert phase.skip_reason == "Venue already booked"

    context.skipped_phases.append(2)
    _apply(context, AdaptationType.RESTORE_PHASE, 2)

    assert phase.status == PhaseStatus.PENDING
    assert phase.skip_reason is None
    assert context.skipped_phases == []


def test_skip_reason_defaults(context):
    change = _apply(context, "skip_phase", 1)

    assert change.details == {"reason": "Skipped by request"}


def test_restore_requires_skipped_phase(context):
    with pytest.raises(AdaptationError, match="not skipped"):
        _apply(context, "restore_phase", 1)


def test_only_pending_phases_can_be_skipped(context):
    context.plan.get_phase(1).status = PhaseStatus.IN_PROGRESS

    with pytest.raises(AdaptationError, match="Only pending phases"):
        _apply(context, "skip_phase", 1)


@pytest.mark.parametrize("status", [PhaseStatus.COMPLETED, PhaseStatus.FAILED])
def test_finished_phases_are_locked(context, status):
    context.plan.get_phase(1).status = status

    with pytest.raises(AdaptationError, match="can no longer be adapted"):
        _apply(context, "add_steps", 1, steps=[{"step_number": 9, "title": "late"}])
    assert context.adaptive_changes == []


def test_unknown_phase(context):
    with pytest.raises(AdaptationError, match="Phase 7 not found"):
        _apply(context, "skip_phase", 7)
