"""Template registry for loading and instantiating workflow templates."""

import logging
from pathlib import Path
from typing import Any, Optional

import yaml

from src.orchestrator.decomposition import WorkflowDecomposition

from .schemas import TemplateCategory, TemplateSummary, WorkflowTemplate

logger = logging.getLogger(__name__)

GENERIC_TEMPLATE_KEY = "generic"


class _DefaultingParams(dict):
    def __missing__(self, key: str) -> str:
        return "Untitled"


class TemplateRegistry:
    """Registry for workflow templates.

    Loads template definitions from YAML files in the definitions directory.
    """

    def __init__(self, definitions_dir: Optional[Path] = None):
        self.definitions_dir = definitions_dir or (
            Path(__file__).parent / "definitions"
        )
        self._templates: dict[str, WorkflowTemplate] = {}
        self._loaded = False

    def load(self) -> None:
        """Load all template definitions from YAML files."""
        if self._loaded:
            return

        if not self.definitions_dir.exists():
            logger.warning(f"Template definitions not found: {self.definitions_dir}")
            self._loaded = True
            return

        for yaml_file in sorted(self.definitions_dir.glob("*.yaml")):
            try:
                with open(yaml_file) as f:
                    data = yaml.safe_load(f)
                template = WorkflowTemplate.model_validate(data)
                self._templates[template.template_key] = template
                logger.debug(f"Loaded template: {template.template_key}")
            except Exception as e:
                logger.error(f"Failed to load template {yaml_file}: {e}")

        self._loaded = True
        logger.info(f"Loaded {len(self._templates)} workflow templates")

    def get(self, template_key: str) -> Optional[WorkflowTemplate]:
        """Get a template by key."""
        self.load()
        return self._templates.get(template_key)

    def list_all(self) -> list[TemplateSummary]:
        """List all template summaries."""
        self.load()
        return [self._summarize(t) for t in self._templates.values()]

    def list_by_category(self, category: TemplateCategory) -> list[TemplateSummary]:
        self.load()
        return [
            self._summarize(t) for t in self._templates.values()
            if t.category == category
        ]

    def get_template_keys(self) -> list[str]:
        self.load()
        return list(self._templates.keys())

    def count(self) -> int:
        self.load()
        return len(self._templates)

    def instantiate(
        self,
        template_key: str,
        parameters: Optional[dict[str, Any]] = None,
    ) -> Optional[WorkflowDecomposition]:
        """Fill a template's parameters and return a fresh decomposition.

        Missing parameters take the template's declared defaults. Returns
        None if the template does not exist.
        """
        template = self.get(template_key)
        if template is None:
            return None

        values = _DefaultingParams(
            {p.name: p.default for p in template.parameters if p.default is not None}
        )
        for key, value in (parameters or {}).items():
            if value is not None:
                values[key] = str(value)

        decomposition = template.decomposition.model_copy(deep=True)
        decomposition.workflow_name = template.name_pattern.format_map(values)
        return decomposition

    def reload(self) -> None:
        """Force reload all definitions."""
        self._loaded = False
        self._templates.clear()
        self.load()

    @staticmethod
    def _summarize(template: WorkflowTemplate) -> TemplateSummary:
        return TemplateSummary(
            template_key=template.template_key,
            template_name=template.template_name,
            description=template.description,
            category=template.category,
            phase_count=len(template.decomposition.phases),
            step_count=template.step_count(),
            version=template.version,
        )


# Global registry instance
_registry: Optional[TemplateRegistry] = None


def get_template_registry() -> TemplateRegistry:
    """Get the global template registry instance."""
    global _registry
    if _registry is None:
        _registry = TemplateRegistry()
    return _registry
