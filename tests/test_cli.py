"""
Tests for the command-line interface.
"""

import os
import json
import time

import pytest

from conftest import PROJECT_FILE, VALID_DESCRIPTOR, write_file, write_json

from jsonscanner.cli import create_parser, main
from jsonscanner.config import CONFIG_FILE_NAMES
from jsonscanner.core.staging import SESSION_PREFIX, default_temp_base


@pytest.fixture
def config_file(tmp_path, temp_root):
    """Config keeping sessions under the test temp root."""
    return write_file(
        tmp_path / "scanner.yaml",
        f"app:\n  log_level: warning\npaths:\n  temp_root: {json.dumps(temp_root)}\n",
    )


class TestParser:

    def test_scan_defaults(self):
        args = create_parser().parse_args(["scan"])
        assert args.target is None
        assert args.autorun is None
        assert args.format is None

    def test_auto_and_manual_are_exclusive(self):
        with pytest.raises(SystemExit):
            create_parser().parse_args(["scan", "--auto", "--manual"])

    def test_no_command_prints_help(self, capsys):
        assert main([]) == 0
        assert "usage" in capsys.readouterr().out.lower()


class TestScanCommand:

    def test_scan_json_report(self, source_tree, config_file, tmp_path):
        output = tmp_path / "report.json"
        code = main([
            "scan", source_tree, "-c", config_file,
            "--no-color", "-f", "json", "-o", str(output),
        ])

        assert code == 0
        report = json.loads(output.read_text(encoding="utf-8"))
        assert report["summary"]["projects_processed"] == 1
        assert report["summary"]["by_status"] == {"completed": 1}
        project = report["projects"][0]
        assert project["project"] == "W1234AB01A"
        assert project["results"]["summary"]["overallStatus"] == "passed"

    def test_scan_text_report(self, source_tree, config_file, capsys):
        code = main(["scan", source_tree, "-c", config_file, "--no-color"])

        assert code == 0
        out = capsys.readouterr().out
        assert "W1234AB01A" in out

    def test_failing_rule_sets_exit_code(self, tmp_path, config_file):
        root = tmp_path / "root"
        descriptor = json.loads(json.dumps(VALID_DESCRIPTOR))
        descriptor["compoundJobs"]["W1234AB01A.h"]["operations"][1]["toolName"] = "GYS-200 D8"
        write_json(root / "m" / PROJECT_FILE, descriptor)
        write_file(root / "m" / "W1234AB01A.h", "")

        assert main(["scan", str(root), "-c", config_file, "--no-color", "-f", "json"]) == 1

    def test_invalid_config_exits_with_2(self, source_tree, tmp_path, capsys):
        bad = write_file(tmp_path / "bad.yaml", "app: [unclosed\n")
        assert main(["scan", source_tree, "-c", bad]) == 2
        assert "Configuration error" in capsys.readouterr().err


class TestInitCommand:

    def test_init_creates_config(self, tmp_path, monkeypatch, capsys):
        monkeypatch.chdir(tmp_path)
        assert main(["init"]) == 0
        assert (tmp_path / CONFIG_FILE_NAMES[0]).is_file()
        assert "Created configuration file" in capsys.readouterr().out

    def test_init_refuses_to_overwrite(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        write_file(tmp_path / CONFIG_FILE_NAMES[0], "app: {}\n")

        assert main(["init"]) == 1
        assert (tmp_path / CONFIG_FILE_NAMES[0]).read_text() == "app: {}\n"
        assert main(["init", "--force"]) == 0
        assert "rules:" in (tmp_path / CONFIG_FILE_NAMES[0]).read_text()


class TestListRulesCommand:

    def test_list_rules_json(self, tmp_path, monkeypatch, capsys):
        monkeypatch.chdir(tmp_path)
        assert main(["list-rules", "-f", "json"]) == 0

        rules = json.loads(capsys.readouterr().out)
        names = [rule["name"] for rule in rules]
        assert names == sorted(names)
        assert "single_tool_in_nc" in names
        assert all(rule["has_logic"] for rule in rules)

    def test_list_rules_reports_load_errors(self, tmp_path, capsys):
        plugins = tmp_path / "plugins"
        write_file(plugins / "empty_rule.py", "LIMIT = 3\n")
        config_path = write_file(tmp_path / "c.yaml", f"paths:\n  plugins_dir: {json.dumps(str(plugins))}\n")

        assert main(["list-rules", "-c", config_path]) == 0
        assert "Failed to load empty_rule" in capsys.readouterr().err


class TestChangesCommand:

    def test_unchanged_directory(self, tmp_path, config_file, capsys):
        watched = tmp_path / "watched"
        write_file(watched / "a.nc", "G0 X0\n")

        assert main(["changes", str(watched), "-c", config_file, "-f", "json"]) == 0
        changes = json.loads(capsys.readouterr().out)
        assert changes["hasChanges"] is False
        assert changes["summary"] == "No changes detected"


class TestCleanupSessionsCommand:

    def test_removes_only_old_sessions(self, temp_root, config_file, capsys):
        base = default_temp_base(temp_root)
        old = os.path.join(base, f"{SESSION_PREFIX}1_old")
        fresh = os.path.join(base, f"{SESSION_PREFIX}2_new")
        os.makedirs(old)
        os.makedirs(fresh)
        stale = time.time() - 48 * 3600
        os.utime(old, (stale, stale))

        assert main(["cleanup-sessions", "-c", config_file]) == 0
        assert "Removed 1 old session(s)." in capsys.readouterr().out
        assert not os.path.exists(old)
        assert os.path.isdir(fresh)
