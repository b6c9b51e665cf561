"""Workflow template schemas.

A template is a reusable planner decomposition for a common kind of task
(event planning, travel planning, ...). Instantiating one with parameters
yields a WorkflowDecomposition ready for build_plan().
"""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field

from src.orchestrator.decomposition import WorkflowDecomposition


class TemplateCategory(str, Enum):
    """Categories for template organization."""

    EVENTS = "events"
    PROJECTS = "projects"
    TRAVEL = "travel"
    LEARNING = "learning"
    GENERAL = "general"


class TemplateParameter(BaseModel):
    name: str
    description: str = ""
    default: Optional[str] = None


class WorkflowTemplate(BaseModel):
    """A template definition as stored in definitions/*.yaml."""

    template_key: str = Field(..., description="Unique identifier, e.g. 'event_planning'")
    template_name: str
    description: str = ""
    category: TemplateCategory = TemplateCategory.GENERAL
    version: int = 1
    name_pattern: str = Field(
        ...,
        description="Workflow name with {parameter} placeholders",
    )
    parameters: list[TemplateParameter] = Field(default_factory=list)
    decomposition: WorkflowDecomposition

    def step_count(self) -> int:
        return sum(len(p.steps) for p in self.decomposition.phases)


class TemplateSummary(BaseModel):
    """Lightweight template listing."""

    template_key: str
    template_name: str
    description: str
    category: TemplateCategory
    phase_count: int
    step_count: int
    version: int = 1
