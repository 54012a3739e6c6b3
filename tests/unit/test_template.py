"""Unit tests for command template substitution."""

from unittest.mock import patch

import pytest

from storybook_e2e.template import render_template, unresolved_placeholders


@pytest.mark.cli_unit
class TestRenderTemplate:
    """Tests for render_template."""

    def test_replaces_all_occurrences(self):
        """Test every occurrence of every placeholder is replaced."""
        command = render_template(
            "{{name}} {{version}} {{name}}-v{{version}} {{name}}",
            [("name", "demo"), ("version", "1.0.0")],
        )
        assert command == "demo 1.0.0 demo-v1.0.0 demo"

    def test_unknown_placeholders_left_untouched(self):
        """Test markers with names not in the substitutions stay as written."""
        command = render_template(
            "gen {{name}} {{other}} {literal} {{ name}}",
            [("name", "demo")],
        )
        assert command == "gen demo {{other}} {literal} {{ name}}"

    def test_accepts_mapping(self):
        """Test a mapping works like ordered pairs."""
        assert render_template("{{a}}/{{b}}", {"a": "x", "b": "y"}) == "x/y"

    def test_pairs_applied_in_order(self):
        """Test earlier substitutions can introduce later placeholders."""
        command = render_template("{{outer}}", [("outer", "{{inner}}"), ("inner", "done")])
        assert command == "done"

    def test_multiline_template_joined(self):
        """Test a template written over several lines becomes one command line."""
        template = """
            npx -p @angular/cli@{{version}} ng new {{name}}
            --routing=true   --minimal=true
        """
        command = render_template(template, [("name", "angular"), ("version", "latest")])
        assert command == "npx -p @angular/cli@latest ng new angular --routing=true --minimal=true"

    def test_inner_whitespace_collapsed(self):
        """Test runs of spaces and tabs become a single space."""
        assert render_template("gen  {{name}}\t\t--flag", [("name", "demo")]) == "gen demo --flag"

    def test_warns_on_leftover_placeholders(self):
        """Test unsubstituted placeholders are reported."""
        with patch("storybook_e2e.template.logger") as mock_logger:
            render_template("gen {{name}} {{missing}}", [("name", "demo")])

        mock_logger.warning.assert_called_once()
        assert mock_logger.warning.call_args.kwargs["placeholders"] == ["missing"]

    def test_no_warning_when_complete(self):
        """Test a fully substituted template logs nothing."""
        with patch("storybook_e2e.template.logger") as mock_logger:
            render_template("gen {{name}}", [("name", "demo")])

        mock_logger.warning.assert_not_called()


@pytest.mark.cli_unit
class TestUnresolvedPlaceholders:
    """Tests for unresolved_placeholders."""

    def test_lists_unique_names_in_order(self):
        assert unresolved_placeholders("{{b}} {{a}} {{b}}") == ["b", "a"]

    def test_ignores_single_braces(self):
        assert unresolved_placeholders("{a} ${HOME} {{}}") == []
