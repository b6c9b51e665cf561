#!/usr/bin/env python3
"""Lint a workflow decomposition without running it.

Reads planner output (JSON, optionally wrapped in a markdown code fence)
or instantiates a built-in template, then prints each phase's execution
order and critical path plus a structural assessment.

Usage:
    cd ~/projects/phaseflow
    python scripts/validate_plan.py path/to/decomposition.json
    python scripts/validate_plan.py --template event_planning --param event_name=Offsite

Exits 1 if the plan is invalid.
"""

import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from src.errors import DecompositionError, DependencyError
from src.orchestrator.decomposition import build_plan, parse_decomposition_response
from src.orchestrator.validation import assess_plan, validate_plan
from src.workflows.registry import get_template_registry


def lint(decomposition) -> int:
    try:
        plan = build_plan(decomposition)
        validation = validate_plan(plan)
    except (DecompositionError, DependencyError) as e:
        print(f"INVALID: {e}")
        return 1

    print(f"Plan: {plan.name} ({plan.id})")
    print(f"  Phases: {len(plan.phases)}  Steps: {plan.total_steps()}  Milestones: {len(plan.milestones)}")
    for pv in validation.phases:
        phase = plan.get_phase(pv.phase_id)
        print(f"\n  Phase {pv.phase_id}: {phase.name}")
        print(f"    Execution order: {' -> '.join(str(i) for i in pv.execution_order)}")
        print(f"    Critical path:   {' -> '.join(str(i) for i in pv.critical_path)} "
              f"({pv.critical_path_minutes} min)")

    assessment = assess_plan(plan)
    print(f"\nAssessment: score {assessment.overall_score}, "
          f"complexity {assessment.complexity_rating}, "
          f"success probability {assessment.success_probability:.0%}")
    for rec in assessment.recommendations:
        print(f"  - {rec}")
    return 0


def _parse_params(pairs: list[str]) -> dict[str, str]:
    params = {}
    for pair in pairs:
        key, sep, value = pair.partition("=")
        if not sep:
            raise SystemExit(f"--param expects key=value, got '{pair}'")
        params[key] = value
    return params


if __name__ == "__main__":
    import argparse

    parser = argparse.ArgumentParser(description="Validate a Phaseflow workflow decomposition")
    parser.add_argument("path", nargs="?", help="Planner output file (JSON, fences allowed)")
    parser.add_argument("--template", help="Instantiate a built-in template instead of reading a file")
    parser.add_argument(
        "--param",
        action="append",
        default=[],
        help="Template parameter as key=value (repeatable)",
    )
    args = parser.parse_args()

    if args.template:
        decomposition = get_template_registry().instantiate(args.template, _parse_params(args.param))
        if decomposition is None:
            keys = ", ".join(get_template_registry().get_template_keys())
            raise SystemExit(f"Unknown template '{args.template}'. Available: {keys}")
    elif args.path:
        try:
            decomposition = parse_decomposition_response(Path(args.path).read_text())
        except DecompositionError as e:
            print(f"INVALID: {e}")
            sys.exit(1)
    else:
        parser.error("give a decomposition file or --template")

    sys.exit(lint(decomposition))
