"""
Unit tests for the template catalog.
"""

from unittest.mock import Mock

import pytest

from prompt_cost_guard.core.errors import NoTemplateFound
from prompt_cost_guard.core.templates import (
    BUILT_IN_TEMPLATES,
    MAX_SESSION_HISTORY,
    OutputFormat,
    TaskType,
    TemplateCatalog,
    TemplateContext,
    TemplateMetadata,
    TimeConstraint,
    UserLevel,
    UserProfile,
    score_template,
)


def _template(template_id: str) -> TemplateMetadata:
    return next(t for t in BUILT_IN_TEMPLATES if t.id == template_id)


class TestTemplateScoring:
    """Test context fit scoring."""

    def test_base_score(self):
        context = TemplateContext(tool_name="smart_plan", task_type=TaskType.PLANNING)
        assert score_template(_template("smart_plan_basic"), context) == 85

    def test_user_level_and_time_bonuses(self):
        context = TemplateContext(
            tool_name="smart_write",
            task_type=TaskType.GENERATION,
            user_level=UserLevel.ADVANCED,
            time_constraint=TimeConstraint.IMMEDIATE,
        )
        assert score_template(_template("smart_write_basic"), context) == 100

    def test_profile_bonus(self):
        context = TemplateContext(tool_name="smart_plan", task_type=TaskType.PLANNING)
        profile = UserProfile(experience_level=UserLevel.INTERMEDIATE)
        assert score_template(_template("smart_plan_basic"), context, profile) == 100

    def test_score_capped(self):
        context = TemplateContext(
            tool_name="smart_orchestrate",
            task_type=TaskType.PLANNING,
            user_level=UserLevel.ADVANCED,
        )
        profile = UserProfile(experience_level=UserLevel.ADVANCED)
        assert score_template(_template("smart_orchestrate_planning"), context, profile) == 100


class TestTemplateCatalog:
    """Test selection, rendering and usage memory."""

    def setup_method(self):
        self.catalog = TemplateCatalog()

    def test_built_ins_loaded(self):
        assert len(self.catalog.all_templates()) == len(BUILT_IN_TEMPLATES) == 6
        assert self.catalog.has_template_for_tool("smart_plan")
        assert not self.catalog.has_template_for_tool("unknown_tool")

    def test_select_by_tool_and_task(self):
        planning = TemplateContext(tool_name="smart_plan", task_type=TaskType.PLANNING)
        analysis = TemplateContext(tool_name="smart_plan", task_type="analysis")

        assert self.catalog.select(planning).id == "smart_plan_basic"
        assert self.catalog.select(analysis).id == "smart_plan_analysis"

    def test_select_highest_score(self):
        self.catalog.add_template(TemplateMetadata(
            id="smart_plan_premium",
            name="Premium",
            tool_name="smart_plan",
            task_type=TaskType.PLANNING,
            body="$content",
            quality_score=95,
        ))
        context = TemplateContext(tool_name="smart_plan", task_type=TaskType.PLANNING)
        assert self.catalog.select(context).id == "smart_plan_premium"

    def test_no_template_found(self):
        context = TemplateContext(tool_name="smart_write", task_type=TaskType.DEBUGGING)
        with pytest.raises(NoTemplateFound, match="No templates found for tool: smart_write, task: debugging"):
            self.catalog.select(context)

    def test_render(self):
        rendered = self.catalog.render(
            "smart_write_basic", {"content": "a date parser", "output_format": OutputFormat.CODE}
        )
        assert rendered == "Write code for: a date parser. Follow best practices."

    def test_render_leaves_missing_placeholders(self):
        rendered = self.catalog.render("smart_begin_basic", {"content": "billing"})
        assert rendered == "Initialize project: billing. Output: $output_format."

    def test_render_unknown_template(self):
        with pytest.raises(KeyError):
            self.catalog.render("missing", {})

    def test_record_usage(self):
        hook = Mock()
        catalog = TemplateCatalog(learning_hook=hook)
        context = TemplateContext(
            tool_name="smart_plan", task_type=TaskType.PLANNING, session_id="session_1"
        )

        session = catalog.record_usage("smart_plan_basic", context)

        assert catalog.get_template("smart_plan_basic").usage_count == 1
        assert catalog.usage_stats()["smart_plan_basic"] == 1
        assert session.session_id == "session_1"
        assert list(session.templates_used) == ["smart_plan_basic"]
        hook.record_template_usage.assert_called_once_with("smart_plan_basic", context)

    def test_session_history_bounded(self):
        context = TemplateContext(
            tool_name="smart_plan", task_type=TaskType.PLANNING, session_id="session_1"
        )
        for _ in range(MAX_SESSION_HISTORY + 50):
            self.catalog.record_usage("smart_plan_basic", context)

        assert len(self.catalog.session("session_1").templates_used) == MAX_SESSION_HISTORY
        assert self.catalog.get_template("smart_plan_basic").usage_count == MAX_SESSION_HISTORY + 50

    def test_session_without_id_is_new(self):
        first = self.catalog.session(None)
        second = self.catalog.session(None)
        assert first.session_id != second.session_id

    def test_anonymous_usage_keeps_no_sessions(self):
        context = TemplateContext(tool_name="smart_plan", task_type=TaskType.PLANNING)
        for _ in range(50):
            self.catalog.record_usage("smart_plan_basic", context)

        assert self.catalog._sessions == {}
        assert self.catalog.get_template("smart_plan_basic").usage_count == 50

    def test_metrics(self):
        metrics = self.catalog.metrics()
        assert metrics["total_templates"] == 6
        assert metrics["active_templates"] == 0
        assert metrics["average_quality_score"] == pytest.approx(520 / 6)

        context = TemplateContext(tool_name="smart_plan", task_type=TaskType.PLANNING)
        self.catalog.record_usage("smart_plan_basic", context)
        metrics = self.catalog.metrics()
        assert metrics["active_templates"] == 1
        assert metrics["total_usage"] == 1

    def test_empty_catalog_metrics(self):
        catalog = TemplateCatalog(templates=[])
        assert catalog.metrics()["total_templates"] == 0
        assert not catalog.has_template_for_tool("smart_plan")
