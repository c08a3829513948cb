"""Tests for the command catalog and education content."""

import pytest

from prompt_finance.content import COMMANDS, GLOSSARY, PATHS, RESOURCES, recommend_resources, suggest_commands
from prompt_finance.content.education import get_resource, path_progress
from prompt_finance.models.finance import EducationalLevel
from prompt_finance.parsing import parse_with_grammar


class TestCommandCatalog:
    """Tests for help and suggestions."""

    @pytest.mark.parametrize("command", COMMANDS, ids=lambda c: c.name)
    def test_every_example_parses(self, command):
        """Test that the help never shows a command the grammar rejects."""
        assert parse_with_grammar(command.example) is not None

    def test_empty_input_suggests_featured(self):
        """Test the suggestions before anything is typed."""
        suggestions = suggest_commands("")
        assert suggestions
        assert all(c.is_featured for c in suggestions)

    def test_keyword_match(self):
        """Test that French keywords find commands too."""
        names = [c.name for c in suggest_commands("objectifs")]
        assert "Goals" in names

    def test_no_match(self):
        """Test that unrelated text suggests nothing."""
        assert suggest_commands("zzzz") == []


class TestEducation:
    """Tests for lessons and learning paths."""

    @pytest.mark.parametrize("resource", [r for r in RESOURCES if r.action_command], ids=lambda r: r.id)
    def test_action_commands_parse(self, resource):
        """Test that every lesson's practice command can be run."""
        assert parse_with_grammar(resource.action_command) is not None

    def test_paths_reference_real_lessons(self):
        """Test that learning paths only list known resources."""
        for path in PATHS:
            assert all(get_resource(rid) is not None for rid in path.resource_ids)

    def test_glossary_ids_are_unique(self):
        """Test glossary integrity."""
        ids = [term.id for term in GLOSSARY]
        assert len(ids) == len(set(ids))

    def test_beginners_see_only_beginner_lessons(self):
        """Test that recommendations respect the level ceiling."""
        lessons = recommend_resources(EducationalLevel.BEGINNER)
        assert lessons
        assert all(r.level == EducationalLevel.BEGINNER for r in lessons)

    def test_read_lessons_are_skipped(self):
        """Test that read lessons are not recommended again, easiest first."""
        lessons = recommend_resources(EducationalLevel.ADVANCED, ["basics-budget-101"])
        assert "basics-budget-101" not in [r.id for r in lessons]
        assert lessons[0].level == EducationalLevel.BEGINNER

    def test_path_progress(self):
        """Test the share of a path already read."""
        assert path_progress("path-debt-free", ["debt-snowball"]) == 0.5
        assert path_progress("path-debt-free", []) == 0.0
        assert path_progress("missing", ["debt-snowball"]) == 0.0


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
