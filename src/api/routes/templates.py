"""Workflow template API routes.

Endpoints:
    GET  /v1/templates                          List templates
    GET  /v1/templates/{key}                    Full template definition
    POST /v1/templates/{key}/instantiate        Template + parameters -> plan
"""

import logging
from typing import Any, Optional

from fastapi import APIRouter, HTTPException, Query
from pydantic import BaseModel, Field

from src.errors import DecompositionError, DependencyError
from src.orchestrator.decomposition import WorkflowDecomposition, build_plan
from src.orchestrator.schemas import WorkflowPlan
from src.orchestrator.validation import PlanValidation, validate_plan
from src.workflows.registry import get_template_registry
from src.workflows.schemas import TemplateCategory, TemplateSummary, WorkflowTemplate

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/templates", tags=["templates"])


class InstantiateRequest(BaseModel):
    parameters: dict[str, Any] = Field(default_factory=dict)


class InstantiateResponse(BaseModel):
    template_key: str
    decomposition: WorkflowDecomposition
    plan: WorkflowPlan
    validation: PlanValidation


@router.get("", response_model=list[TemplateSummary])
async def list_templates(
    category: Optional[TemplateCategory] = Query(None, description="Filter by category"),
) -> list[TemplateSummary]:
    """List all workflow templates."""
    registry = get_template_registry()
    if category:
        return registry.list_by_category(category)
    return registry.list_all()


@router.get("/{template_key}", response_model=WorkflowTemplate)
async def get_template(template_key: str) -> WorkflowTemplate:
    template = get_template_registry().get(template_key)
    if template is None:
        raise HTTPException(status_code=404, detail=f"Template not found: {template_key}")
    return template


@router.post("/{template_key}/instantiate", response_model=InstantiateResponse)
async def instantiate_template(template_key: str, request: Optional[InstantiateRequest] = None):
    """Fill the template's parameters and build a validated plan from it."""
    params = request.parameters if request else {}
    decomposition = get_template_registry().instantiate(template_key, params)
    if decomposition is None:
        raise HTTPException(status_code=404, detail=f"Template not found: {template_key}")

    try:
        plan = build_plan(decomposition)
        validation = validate_plan(plan)
    except (DecompositionError, DependencyError) as e:
        logger.error(f"Template {template_key} produced an invalid plan: {e}")
        raise HTTPException(status_code=422, detail=str(e))

    return InstantiateResponse(
        template_key=template_key,
        decomposition=decomposition,
        plan=plan,
        validation=validation,
    )
