"""Tests for the template engine."""

import pytest

from mcp_hub.models import TemplateContext
from mcp_hub.templates import TemplateEngine


@pytest.fixture
def engine():
    return TemplateEngine()


@pytest.fixture
def context():
    return TemplateContext(
        data={
            "city": "Oslo",
            "user": {"id": 42, "name": "Ann", "tags": ["a", "b"]},
            "active": True,
            "ratio": 0.5,
            "nothing": None,
            "items": [{"sku": "X1"}, {"sku": "X2"}],
        },
        env={"API_KEY": "secret"},
    )


class TestRender:
    """Tests for TemplateEngine.render."""

    def test_plain_text_passes_through(self, engine, context):
        result = engine.render("no placeholders here", context)
        assert result.success is True
        assert result.result == "no placeholders here"
        assert result.used_variables == []

    def test_data_and_env_substitution(self, engine, context):
        result = engine.render("/weather?q={{data.city}}&key={{env.API_KEY}}", context)
        assert result.success is True
        assert result.result == "/weather?q=Oslo&key=secret"
        assert result.used_variables == ["data.city", "env.API_KEY"]

    def test_nested_path(self, engine, context):
        result = engine.render("/users/{{data.user.id}}/{{data.user.name}}", context)
        assert result.result == "/users/42/Ann"

    def test_list_index(self, engine, context):
        result = engine.render("{{data.items.1.sku}}", context)
        assert result.success is True
        assert result.result == "X2"

    def test_whitespace_inside_braces(self, engine, context):
        result = engine.render("{{ data.city }}", context)
        assert result.result == "Oslo"

    def test_value_rendering(self, engine, context):
        result = engine.render(
            "{{data.active}}|{{data.ratio}}|{{data.user.tags}}", context
        )
        assert result.result == 'true|0.5|["a","b"]'

    def test_dict_renders_as_compact_json(self, engine):
        result = engine.render("{{data.obj}}", TemplateContext(data={"obj": {"a": 1}}))
        assert result.result == '{"a":1}'

    def test_repeated_placeholder_listed_once(self, engine, context):
        result = engine.render("{{data.city}}-{{data.city}}", context)
        assert result.result == "Oslo-Oslo"
        assert result.used_variables == ["data.city"]

    def test_missing_required_variable(self, engine, context):
        result = engine.render("/users/{{data.missing}}", context)
        assert result.success is False
        assert result.result == ""
        assert result.error == "Missing required variable: data.missing"
        assert result.used_variables == []

    def test_none_counts_as_missing(self, engine, context):
        result = engine.render("{{data.nothing}}", context)
        assert result.success is False
        assert "data.nothing" in result.error

    def test_missing_env_variable(self, engine, context):
        result = engine.render("{{env.OTHER}}", context)
        assert result.success is False

    def test_optional_variable_renders_empty(self, engine, context):
        result = engine.render("page={{data.page?}}", context)
        assert result.success is True
        assert result.result == "page="
        assert result.used_variables == []

    def test_optional_variable_present(self, engine, context):
        result = engine.render("{{data.city?}}", context)
        assert result.result == "Oslo"
        assert result.used_variables == ["data.city"]

    def test_no_partial_output_on_late_failure(self, engine, context):
        result = engine.render("{{data.city}} then {{data.missing}}", context)
        assert result.success is False
        assert result.result == ""

    def test_unterminated_placeholder(self, engine, context):
        result = engine.render("hello {{data.city", context)
        assert result.success is False
        assert "Unterminated" in result.error

    def test_invalid_namespace(self, engine, context):
        result = engine.render("{{secrets.key}}", context)
        assert result.success is False
        assert result.error == "Invalid variable path: secrets.key"

    def test_empty_placeholder(self, engine, context):
        result = engine.render("{{ }}", context)
        assert result.success is False
        assert result.error == "Empty placeholder"

    def test_unsupported_value_type(self, engine):
        result = engine.render("{{data.obj}}", TemplateContext(data={"obj": object()}))
        assert result.success is False
        assert "unsupported type" in result.error

    def test_non_string_template(self, engine, context):
        result = engine.render(123, context)
        assert result.success is False

    def test_render_does_not_mutate_context(self, engine, context):
        before = context.model_dump()
        engine.render("{{data.user.id}} {{data.missing?}}", context)
        assert context.model_dump() == before

    def test_used_variables_subset_of_declared(self, engine, context):
        template = "{{data.city}}/{{data.user.id}}/{{data.page?}}/{{env.API_KEY}}"
        result = engine.render(template, context)
        declared = {v.path for v in engine.extract_variables(template)}
        assert result.success is True
        assert set(result.used_variables) <= declared


class TestValidateTemplate:
    """Tests for TemplateEngine.validate_template."""

    def test_valid_template(self, engine):
        result = engine.validate_template("/a/{{data.x}}?k={{env.KEY}}&p={{data.page?}}")
        assert result.valid is True
        assert result.errors == []

    def test_invalid_path_reported(self, engine):
        result = engine.validate_template("{{data.}} and {{foo.bar}}")
        assert result.valid is False
        assert len(result.errors) == 2
        assert all(e.code == "INVALID_VARIABLE_PATH" for e in result.errors)

    def test_unterminated_reported(self, engine):
        result = engine.validate_template("{{data.x")
        assert result.valid is False
        assert result.errors[0].code == "TEMPLATE_SYNTAX_ERROR"
        assert result.errors[0].path == "template"

    def test_bare_namespace_is_invalid(self, engine):
        result = engine.validate_template("{{data}}")
        assert result.valid is False


class TestExtractVariables:
    """Tests for TemplateEngine.extract_variables."""

    def test_extracts_in_order(self, engine):
        variables = engine.extract_variables("{{data.a}}/{{env.B}}/{{data.c?}}")
        assert [v.path for v in variables] == ["data.a", "env.B", "data.c"]
        assert [v.required for v in variables] == [True, True, False]

    def test_deduplicates_paths(self, engine):
        variables = engine.extract_variables("{{data.a}}{{data.a}}")
        assert len(variables) == 1

    def test_required_wins_over_optional(self, engine):
        variables = engine.extract_variables("{{data.a?}}{{data.a}}")
        assert len(variables) == 1
        assert variables[0].required is True

    def test_skips_malformed(self, engine):
        variables = engine.extract_variables("{{bad}}{{data.ok}}")
        assert [v.path for v in variables] == ["data.ok"]
