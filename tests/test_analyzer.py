"""
Tests for JSON validation and repair.
"""

import os
import json

from conftest import VALID_DESCRIPTOR, write_file, write_json

from jsonscanner.core.analyzer import Analyzer
from jsonscanner.core.project import Project, ProjectStatus


def ready_project(staged_path) -> Project:
    return Project(
        project_base="W1234AB01",
        position="A",
        staged_path=str(staged_path),
        status=ProjectStatus.READY,
    )


class TestRepairLadder:
    """Tests for the ordered repair steps."""

    def test_valid_json_parses(self):
        assert Analyzer().parse_with_repair('{"a": [1, 2]}') == {"a": [1, 2]}

    def test_nan_and_trailing_comma(self):
        assert Analyzer().parse_with_repair('{"a":1, "b": NaN,}') == {"a": 1, "b": None}

    def test_trailing_comma_in_array(self):
        assert Analyzer().parse_with_repair('{"a": [1, 2, ], }') == {"a": [1, 2]}

    def test_control_characters_removed(self):
        assert Analyzer().parse_with_repair('{"a": "x\x01y"}') == {"a": "xy"}

    def test_unterminated_string_fails(self):
        assert Analyzer().parse_with_repair('{"a": "oops}') is None

    def test_no_semantic_guessing(self):
        # Missing value is structural, not syntactic
        assert Analyzer().parse_with_repair('{"a": }') is None

    def test_nan_inside_string_untouched(self):
        result = Analyzer().parse_with_repair('{"note": "ratio:NaN,x", "a": NaN}')
        assert result == {"note": "ratio:NaN,x", "a": None}

    def test_trailing_comma_inside_string_untouched(self):
        result = Analyzer().parse_with_repair('{"note": "a, ]", "b": 1,}')
        assert result == {"note": "a, ]", "b": 1}

    def test_escaped_quotes_keep_string_boundaries(self):
        result = Analyzer().parse_with_repair('{"note": "say \\"x, }\\"", "b": [1, 2,],}')
        assert result == {"note": 'say "x, }"', "b": [1, 2]}


class TestAnalyzeProject:
    """Tests for analyze_project."""

    def test_repaired_project_is_analyzed(self, tmp_path):
        staged = write_file(tmp_path / "W1234AB01A.json", '{"a":1, "b": NaN,}')
        project = ready_project(staged)

        Analyzer().analyze_project(project)

        assert project.status == ProjectStatus.ANALYZED
        assert project.fixed_path == str(tmp_path / "BRK_W1234AB01A_fixed.json")
        with open(project.fixed_path, encoding="utf-8") as f:
            assert json.load(f) == {"a": 1, "b": None}

    def test_descriptor_loaded_into_project(self, tmp_path):
        staged = write_json(tmp_path / "W1234AB01A.json", VALID_DESCRIPTOR)
        project = ready_project(staged)

        Analyzer().analyze_project(project)

        assert list(project.compound_jobs) == ["W1234AB01A.h"]
        assert len(project.operations()) == 2
        assert project.operator == "jdoe"
        assert "GYS-100 D12" in project.tools

    def test_unrepairable_json_fails_without_artifact(self, tmp_path):
        staged = write_file(tmp_path / "W1234AB01A.json", '{"a": "unterminated')
        project = ready_project(staged)

        Analyzer().analyze_project(project)

        assert project.status == ProjectStatus.ANALYSIS_FAILED
        assert not os.path.exists(tmp_path / "BRK_W1234AB01A_fixed.json")

    def test_non_object_descriptor_fails(self, tmp_path):
        staged = write_file(tmp_path / "W1234AB01A.json", "[1, 2, 3]")
        project = ready_project(staged)

        Analyzer().analyze_project(project)

        assert project.status == ProjectStatus.ANALYSIS_FAILED

    def test_missing_json_leaves_status(self, tmp_path):
        project = ready_project(tmp_path / "missing.json")

        Analyzer().analyze_project(project)

        assert project.status == ProjectStatus.READY

    def test_unreadable_json_leaves_status(self, tmp_path):
        # A directory in place of the descriptor cannot be read
        staged = tmp_path / "W1234AB01A.json"
        staged.mkdir()
        project = ready_project(staged)

        Analyzer().analyze_project(project)

        assert project.status == ProjectStatus.READY
        assert not os.path.exists(project.get_fixed_file_path())

    def test_validate_and_fix_json_empty_file(self, tmp_path):
        path = write_file(tmp_path / "empty.json", "")
        assert Analyzer().validate_and_fix_json(path) is None
