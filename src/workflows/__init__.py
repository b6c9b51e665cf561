"""Workflow templates for common kinds of tasks.

Each template is a YAML definition holding a planner decomposition plus a
name pattern and parameters. Instantiating a template yields a
WorkflowDecomposition that goes through build_plan() like any planner
output.
"""

from .schemas import TemplateCategory, TemplateParameter, TemplateSummary, WorkflowTemplate
from .registry import TemplateRegistry, get_template_registry

__all__ = [
    "TemplateCategory",
    "TemplateParameter",
    "TemplateSummary",
    "WorkflowTemplate",
    "TemplateRegistry",
    "get_template_registry",
]
