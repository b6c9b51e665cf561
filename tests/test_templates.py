import pytest
import yaml

from src.orchestrator.decomposition import build_plan
from src.orchestrator.validation import validate_plan
from src.workflows import TemplateCategory, TemplateRegistry, get_template_registry

EXPECTED_KEYS = [
    "event_planning",
    "generic",
    "learning_curriculum",
    "project_management",
    "travel_planning",
]


@pytest.fixture
def registry():
    return TemplateRegistry()


def test_builtin_templates_load(registry):
    assert registry.get_template_keys() == EXPECTED_KEYS
    assert registry.count() == 5


@pytest.mark.parametrize("key", EXPECTED_KEYS)
def test_every_builtin_template_builds_a_valid_plan(registry, key):
    plan = build_plan(registry.instantiate(key))

    validation = validate_plan(plan)

    assert len(validation.phases) == len(plan.phases)
    assert plan.milestones


def test_event_planning_shape(registry):
    template = registry.get("event_planning")

    assert template.category == TemplateCategory.EVENTS
    assert [len(p.steps) for p in template.decomposition.phases] == [3, 2]
    assert template.step_count() == 5


def test_parameters_fill_the_name(registry):
    decomposition = registry.instantiate("event_planning", {"event_name": "Summer Offsite"})

    assert decomposition.workflow_name == "Event Planning - Summer Offsite"


def test_declared_default_is_used(registry):
    assert registry.instantiate("event_planning").workflow_name == "Event Planning - Untitled Event"
    assert registry.instantiate("travel_planning").workflow_name == "Travel Planning - Destination"


def test_instantiation_does_not_share_state(registry):
    first = registry.instantiate("generic", {"name": "A"})
    first.phases[0].steps.clear()

    second = registry.instantiate("generic", {"name": "B"})

    assert second.phases[0].steps
    assert registry.get("generic").decomposition.phases[0].steps


def test_unknown_template_returns_none(registry):
    assert registry.instantiate("space_mission") is None
    assert registry.get("space_mission") is None


def test_list_by_category(registry):
    summaries = registry.list_by_category(TemplateCategory.TRAVEL)

    assert [s.template_key for s in summaries] == ["travel_planning"]
    assert summaries[0].phase_count == 1
    assert summaries[0].step_count == 2


def test_missing_placeholder_becomes_untitled(tmp_path):
    (tmp_path / "custom.yaml").write_text(yaml.safe_dump({
        "template_key": "custom",
        "template_name": "Custom",
        "name_pattern": "{team} - {project}",
        "parameters": [{"name": "team", "default": "Core"}],
        "decomposition": {"phases": [
            {"phase_number": 1, "name": "Only", "steps": [{"step_number": 1, "title": "Do it"}]},
        ]},
    }))
    registry = TemplateRegistry(definitions_dir=tmp_path)

    assert registry.instantiate("custom").workflow_name == "Core - Untitled"


def test_broken_definition_is_skipped(tmp_path):
    (tmp_path / "bad.yaml").write_text("template_key: bad\n")
    registry = TemplateRegistry(definitions_dir=tmp_path)

    assert registry.count() == 0


def test_reload_picks_up_new_files(tmp_path):
    registry = TemplateRegistry(definitions_dir=tmp_path)
    assert registry.count() == 0

    (tmp_path / "one.yaml").write_text(yaml.safe_dump({
        "template_key": "one",
        "template_name": "One",
        "name_pattern": "One",
        "decomposition": {"phases": []},
    }))
    registry.reload()

    assert registry.get_template_keys() == ["one"]


def test_global_registry_is_shared():
    assert get_template_registry() is get_template_registry()
