"""Plan side of the engine.

Everything that describes or reshapes a plan before or between phases:
- schemas: WorkflowPlan, Phase, Step, Milestone and the step action union
- decomposition: planner wire format, response parsing, plan building
- graph: dependency graph construction and cycle detection
- scheduler: execution order and critical path
- validation: whole-plan checks and a structural assessment
- plan_revision: adaptations applied to a live plan
- progress: progress, next steps and summaries over a context

Submodules are imported directly; this package imports none of them.
"""
