"""
End-to-end tests for scan cycles.
"""

import os
import json
import threading

from conftest import PROJECT_FILE, VALID_DESCRIPTOR, write_file, write_json

from jsonscanner.config import ScanConfig
from jsonscanner.core.engine import ScanEngine, create_engine
from jsonscanner.core.project import ProjectStatus
from jsonscanner.utils import get_file_hash
from jsonscanner.errors import FatalProjectError, is_fatal_error


def read_json(path):
    with open(path, encoding="utf-8") as f:
        return json.load(f)


class TestRunCycle:
    """Tests for a single scan cycle."""

    def test_end_to_end(self, config, source_tree):
        json_path = os.path.join(source_tree, "MachineX", PROJECT_FILE)
        nc_path = os.path.join(source_tree, "MachineX", "W1234AB01A.h")
        hashes = (get_file_hash(json_path), get_file_hash(nc_path))

        engine = ScanEngine(config)
        report = engine.run_cycle(source_tree)

        assert len(report.projects) == 1
        project = report.projects[0]
        assert project.status == ProjectStatus.COMPLETED
        assert project.passed_through(ProjectStatus.ANALYZED)

        session = engine.temp_manager.session_path
        assert os.path.isfile(os.path.join(session, "MachineX", PROJECT_FILE))
        assert os.path.isfile(os.path.join(session, "MachineX", "W1234AB01A.h"))
        assert os.path.isfile(project.fixed_path)

        result = read_json(project.result_path)
        assert result["project"] == "W1234AB01A"
        assert result["machine"] == "MachineX"
        assert result["operator"] == "jdoe"
        assert result["summary"]["overallStatus"] == "passed"
        assert result["summary"]["compoundJobs"] == 1
        statuses = {rule["name"]: rule["status"] for rule in result["rules"]}
        assert statuses["single_tool_in_nc"] == "passed"
        assert statuses["reconditioned_tool"] == "passed"
        assert statuses["gun_drill_60min_limit"] == "not_applicable"

        assert (get_file_hash(json_path), get_file_hash(nc_path)) == hashes
        assert sorted(os.listdir(os.path.dirname(json_path))) == [PROJECT_FILE, "W1234AB01A.h"]
        assert not report.has_failures
        assert report.status_counts == {"completed": 1}

    def test_second_cycle_is_idle(self, config, source_tree):
        engine = ScanEngine(config)
        engine.run_cycle(source_tree)
        assert engine.run_cycle(source_tree).projects == []
        assert len(engine.run_cycle(source_tree, force=True).projects) == 1

    def test_rule_violation_fails_overall(self, config, tmp_path):
        root = tmp_path / "root"
        descriptor = json.loads(json.dumps(VALID_DESCRIPTOR))
        descriptor["compoundJobs"]["W1234AB01A.h"]["operations"][1]["toolName"] = "GYS-200 D8"
        write_json(root / "m" / PROJECT_FILE, descriptor)
        write_file(root / "m" / "W1234AB01A.h", "")

        report = ScanEngine(config).run_cycle(str(root))

        project = report.projects[0]
        assert project.status == ProjectStatus.COMPLETED
        assert project.analysis_results["summary"]["overallStatus"] == "failed"
        assert report.has_failures

    def test_results_dir(self, temp_root, source_tree, tmp_path):
        config = ScanConfig(temp_root=temp_root, results_dir=str(tmp_path / "results"))
        project = ScanEngine(config).run_cycle(source_tree).projects[0]
        assert project.result_path == str(tmp_path / "results" / "BRK_W1234AB01A_result.json")
        assert os.path.isfile(project.result_path)


class TestProcessProject:
    """Tests for per-project error handling."""

    def test_analysis_failure_persists_minimal_result(self, config, tmp_path):
        engine = ScanEngine(config)
        root = tmp_path / "root"
        write_file(root / "m" / "a.h", "")
        write_json(root / "m" / PROJECT_FILE, VALID_DESCRIPTOR)
        project = engine.scanner.perform_scan(str(root))[0]
        # Corrupt the staged copy after staging
        write_file(project.staged_path, '{"a": "unterminated')

        engine.process_project(project)

        assert project.status == ProjectStatus.ANALYSIS_FAILED
        result = read_json(project.result_path)
        assert result["rules"] == []
        assert result["summary"]["overallStatus"] == "failed"
        assert not os.path.exists(project.fixed_path)

    def test_parse_error_marks_fatal(self, config, source_tree, monkeypatch):
        engine = ScanEngine(config)
        project = engine.scanner.perform_scan(source_tree)[0]

        def corrupt(project):
            raise ValueError("Corrupt JSON structure in compound jobs")

        monkeypatch.setattr(engine.rule_engine, "execute_rules", corrupt)
        engine.process_project(project)

        assert project.status == ProjectStatus.FATAL_ERROR
        assert project.has_fatal_marker()
        assert not os.path.exists(project.result_path)
        assert engine.run_cycle(source_tree, force=True).projects == []

    def test_other_error_marks_failed(self, config, source_tree, monkeypatch):
        engine = ScanEngine(config)
        project = engine.scanner.perform_scan(source_tree)[0]

        def broken(project):
            raise RuntimeError("disk went away")

        monkeypatch.setattr(engine.rule_engine, "execute_rules", broken)
        engine.process_project(project)

        assert project.status == ProjectStatus.FAILED
        assert read_json(project.result_path)["summary"]["overallStatus"] == "failed"

    def test_io_error_on_json_path_is_not_fatal(self, config, source_tree):
        engine = ScanEngine(config)
        project = engine.scanner.perform_scan(source_tree)[0]
        # The fixed artifact cannot be written over a directory
        os.makedirs(project.fixed_path)

        engine.process_project(project)

        assert project.status == ProjectStatus.FAILED
        assert not project.has_fatal_marker()
        assert read_json(project.result_path)["summary"]["overallStatus"] == "failed"


class TestFatalClassification:

    def test_os_errors_are_never_fatal(self):
        assert not is_fatal_error(IsADirectoryError(21, "Is a directory", "/tmp/BRK_W1234AB01A_fixed.JSON"))
        assert not is_fatal_error(PermissionError(13, "Permission denied", "W1234AB01A.json"))

    def test_markers_match_case_sensitively(self):
        assert is_fatal_error(ValueError("Invalid JSON in compound jobs"))
        assert is_fatal_error(ValueError("could not parse operation list"))
        assert is_fatal_error(RuntimeError("corrupt tool table"))
        assert not is_fatal_error(RuntimeError("lookup failed for W1234AB01A.json"))

    def test_fatal_project_error(self):
        assert is_fatal_error(FatalProjectError("descriptor rejected"))


class TestAutorun:
    """Tests for the autorun loop."""

    def test_manual_mode_runs_once(self, config, source_tree):
        engine = ScanEngine(config)
        seen = []
        report = engine.run_autorun(source_tree, on_cycle=seen.append)

        assert engine.cycles == 1
        assert seen == [report]
        assert not engine.running

    def test_autorun_respects_max_cycles(self, temp_root, source_tree):
        config = ScanConfig(temp_root=temp_root, autorun=True, scan_interval_ms=0)
        engine = ScanEngine(config)
        engine.run_autorun(source_tree, max_cycles=3)
        assert engine.cycles == 3

    def test_stop_interrupts_wait(self, temp_root, source_tree):
        config = ScanConfig(temp_root=temp_root, autorun=True, scan_interval_ms=60000)
        engine = ScanEngine(config)

        worker = threading.Thread(target=engine.run_autorun, args=(source_tree,))
        worker.start()
        threading.Timer(0.2, engine.stop).start()
        worker.join(timeout=5)

        assert not worker.is_alive()
        assert engine.cycles == 1


class TestCreateEngine:

    def test_create_engine_with_overrides(self, temp_root, tmp_path):
        config_path = write_file(tmp_path / "c.yaml", "app:\n  scan_interval_ms: 1000\n")
        engine = create_engine(config_path, temp_root=temp_root)
        assert engine.config.scan_interval_ms == 1000
        assert engine.config.temp_root == temp_root
