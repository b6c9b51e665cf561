"""Plan validation API route.

Endpoints:
    POST /v1/plans/validate     Decomposition -> orders, critical paths, assessment
"""

import logging
from typing import Any

from fastapi import APIRouter, Body, HTTPException
from pydantic import BaseModel

from src.errors import DecompositionError, DependencyError
from src.orchestrator.decomposition import build_plan, coerce_decomposition
from src.orchestrator.schemas import WorkflowPlan
from src.orchestrator.validation import PlanAssessment, PlanValidation, assess_plan, validate_plan

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/plans", tags=["plans"])


class PlanValidationReport(BaseModel):
    valid: bool = True
    plan: WorkflowPlan
    validation: PlanValidation
    critical_path: list[int]
    assessment: PlanAssessment


def dependency_error_detail(e: DependencyError) -> dict[str, Any]:
    return {
        "error": str(e),
        "cycle": e.cycle,
        "missing_id": e.missing_id,
        "phase_id": e.phase_id,
    }


@router.post("/validate", response_model=PlanValidationReport)
async def validate_decomposition(payload: dict[str, Any] = Body(...)):
    """Validate a planner decomposition (phased or flat) without running it."""
    try:
        plan = build_plan(coerce_decomposition(payload))
        validation = validate_plan(plan)
    except DecompositionError as e:
        raise HTTPException(status_code=422, detail={"error": str(e)})
    except DependencyError as e:
        raise HTTPException(status_code=422, detail=dependency_error_detail(e))

    return PlanValidationReport(
        plan=plan,
        validation=validation,
        critical_path=plan.critical_path or validation.longest_critical_path(),
        assessment=assess_plan(plan),
    )
