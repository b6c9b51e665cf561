from src.executor.milestones import MilestoneEvaluator
from src.orchestrator.schemas import PhaseStatus


def _complete_phase(context, phase_id):
    context.plan.get_phase(phase_id).status = PhaseStatus.COMPLETED
    context.record_phase_outcome(phase_id, PhaseStatus.COMPLETED)


def _plan_with(make_step, make_phase, make_plan, milestones, phases=(1, 2)):
    return make_plan([make_phase(pid, [make_step(1)]) for pid in phases], milestones=milestones)


def test_milestone_waits_for_every_phase(make_step, make_phase, make_plan, make_milestone, make_context):
    milestone = make_milestone("Both done", phases=(1, 2))
    context = make_context(_plan_with(make_step, make_phase, make_plan, [milestone]))
    evaluator = MilestoneEvaluator()

    _complete_phase(context, 1)
    assert evaluator.evaluate(context) == []
    assert context.plan.milestones[0].achieved_at is None

    _complete_phase(context, 2)
    achieved = evaluator.evaluate(context)
    stamp = context.plan.milestones[0].achieved_at

    assert [a.name for a in achieved] == ["Both done"]
    assert stamp is not None
    assert achieved[0].phase_dependencies == [1, 2]

    assert evaluator.evaluate(context) == []
    assert context.plan.milestones[0].achieved_at == stamp
    assert len(context.milestone_achievements) == 1


def test_milestone_without_phase_dependencies_is_never_achieved(
    make_step, make_phase, make_plan, make_milestone, make_context,
):
    context = make_context(_plan_with(make_step, make_phase, make_plan, [make_milestone("Free", phases=())]))
    _complete_phase(context, 1)
    _complete_phase(context, 2)

    assert MilestoneEvaluator().evaluate(context) == []


def test_all_steps_completed_metric(make_step, make_phase, make_plan, make_milestone, make_context):
    milestone = make_milestone("Clean", phases=(1,), metrics=("All steps completed successfully",))
    context = make_context(_plan_with(make_step, make_phase, make_plan, [milestone]))
    _complete_phase(context, 1)
    context.record_step_outcome(1, 1, "failed")
    evaluator = MilestoneEvaluator()

    assert not evaluator.is_achievable(context.plan.milestones[0], context)

    context.failed_steps.clear()
    assert evaluator.is_achievable(context.plan.milestones[0], context)


def test_no_skipped_steps_metric(make_step, make_phase, make_plan, make_milestone, make_context):
    milestone = make_milestone("Thorough", phases=(1,), metrics=("No skipped steps",))
    context = make_context(_plan_with(make_step, make_phase, make_plan, [milestone]))
    _complete_phase(context, 1)
    context.record_step_outcome(1, 1, "skipped")

    assert MilestoneEvaluator().evaluate(context) == []


def test_all_phases_completed_ignores_skipped_phases(make_step, make_phase, make_plan, make_milestone, make_context):
    milestone = make_milestone("Everything", phases=(1,), metrics=("all phases completed",))
    context = make_context(_plan_with(make_step, make_phase, make_plan, [milestone]))
    _complete_phase(context, 1)
    evaluator = MilestoneEvaluator()

    assert not evaluator.is_achievable(context.plan.milestones[0], context)

    context.plan.get_phase(2).status = PhaseStatus.SKIPPED
    assert evaluator.is_achievable(context.plan.milestones[0], context)


def test_unknown_metric_text_holds(make_step, make_phase, make_plan, make_milestone, make_context):
    milestone = make_milestone("Vibes", phases=(1,), metrics=("Team feels good",))
    context = make_context(_plan_with(make_step, make_phase, make_plan, [milestone]))
    _complete_phase(context, 1)

    assert len(MilestoneEvaluator().evaluate(context)) == 1


def test_registered_metric_is_consulted(make_step, make_phase, make_plan, make_milestone, make_context):
    milestone = make_milestone("Budget", phases=(1,), metrics=("Budget approved by finance",))
    context = make_context(_plan_with(make_step, make_phase, make_plan, [milestone]))
    _complete_phase(context, 1)
    evaluator = MilestoneEvaluator()
    evaluator.register_metric("Budget approved", lambda m, ctx: ctx.context_data.get("approved", False))

    assert evaluator.evaluate(context) == []

    context.context_data["approved"] = True
    assert [a.name for a in evaluator.evaluate(context)] == ["Budget"]
