"""
Tests for project discovery and staging.
"""

import os
import json

from conftest import PROJECT_FILE, VALID_DESCRIPTOR, write_file, write_json

from jsonscanner.config import ScanConfig
from jsonscanner.core.project import ProjectStatus
from jsonscanner.core.scanner import Scanner, is_generated_file, parse_project_key
from jsonscanner.core.staging import TempFileManager
from jsonscanner.utils import get_file_hash


class TestProjectKeys:
    """Tests for file name parsing."""

    def test_key_with_position(self):
        key = parse_project_key("W1234AB01A.json")
        assert key.project_base == "W1234AB01"
        assert key.position == "A"
        assert key.key == "W1234AB01A"

    def test_position_defaults_to_a(self):
        key = parse_project_key("1234AB01.json")
        assert key.project_base == "1234AB01"
        assert key.position == "A"

    def test_extension_case_insensitive(self):
        key = parse_project_key("/some/dir/W1234AB01B.JSON")
        assert key.key == "W1234AB01B"

    def test_non_project_names(self):
        assert parse_project_key("notes.json") is None
        assert parse_project_key("W1234AB01A.txt") is None
        assert parse_project_key("BRK_W1234AB01A_fixed.json") is None

    def test_generated_files(self):
        assert is_generated_file("BRK_W1234AB01A_fixed.json")
        assert is_generated_file("W1234AB01A_result.json")
        assert is_generated_file("BRK_W1234AB01A.fatal")
        assert not is_generated_file("W1234AB01A.json")


class TestDiscovery:
    """Tests for candidate discovery."""

    def test_requires_nc_file_in_directory(self, config, tmp_path):
        root = tmp_path / "root"
        write_json(root / "with_nc" / PROJECT_FILE, VALID_DESCRIPTOR)
        write_file(root / "with_nc" / "W1234AB01A.H", "JOB: P1")
        write_json(root / "without_nc" / "W9999ZZ01A.json", VALID_DESCRIPTOR)

        candidates = Scanner(config).discover_candidates(str(root))

        assert candidates == [str(root / "with_nc" / PROJECT_FILE)]

    def test_skips_generated_and_ignored(self, config, tmp_path):
        root = tmp_path / "root"
        write_file(root / "m" / "a.nc", "")
        write_json(root / "m" / "BRK_W1234AB01A_result.json", {})
        write_json(root / "m" / "W1234AB01A_fixed.json", {})
        write_file(root / ".git" / "a.nc", "")
        write_json(root / ".git" / PROJECT_FILE, VALID_DESCRIPTOR)

        assert Scanner(config).discover_candidates(str(root)) == []

    def test_skips_temp_base_inside_root(self, tmp_path):
        root = tmp_path / "root"
        config = ScanConfig(temp_root=str(root))
        scanner = Scanner(config)
        staged_dir = os.path.join(scanner.temp_manager.session_path, "m")
        write_file(os.path.join(staged_dir, "a.h"), "")
        write_json(os.path.join(staged_dir, PROJECT_FILE), VALID_DESCRIPTOR)

        assert scanner.discover_candidates(str(root)) == []


class TestPerformScan:
    """Tests for scanning and staging."""

    def test_stages_project_and_nc_files(self, config, source_tree):
        scanner = Scanner(config)
        projects = scanner.perform_scan(source_tree)

        assert len(projects) == 1
        project = projects[0]
        assert project.status == ProjectStatus.READY
        assert project.key == "W1234AB01A"
        assert project.machine == "MachineX"
        assert project.operator == "jdoe"

        session = scanner.temp_manager.session_path
        assert project.staged_path == os.path.join(session, "MachineX", PROJECT_FILE)
        assert os.path.isfile(project.staged_path)
        assert os.path.isfile(os.path.join(session, "MachineX", "W1234AB01A.h"))
        assert project.fixed_path.endswith("BRK_W1234AB01A_fixed.json")
        assert project.result_path.endswith("BRK_W1234AB01A_result.json")

    def test_sources_are_never_modified(self, config, source_tree):
        json_path = os.path.join(source_tree, "MachineX", PROJECT_FILE)
        nc_path = os.path.join(source_tree, "MachineX", "W1234AB01A.h")
        before = (get_file_hash(json_path), get_file_hash(nc_path), os.stat(json_path).st_mtime)
        listing = sorted(os.listdir(os.path.dirname(json_path)))

        Scanner(config).perform_scan(source_tree, force=True)

        after = (get_file_hash(json_path), get_file_hash(nc_path), os.stat(json_path).st_mtime)
        assert before == after
        assert sorted(os.listdir(os.path.dirname(json_path))) == listing

    def test_unchanged_files_skipped_on_rescan(self, config, source_tree):
        scanner = Scanner(config)
        assert len(scanner.perform_scan(source_tree)) == 1
        assert scanner.perform_scan(source_tree) == []
        assert len(scanner.perform_scan(source_tree, force=True)) == 1

    def test_modified_source_restaged(self, config, source_tree):
        scanner = Scanner(config)
        scanner.perform_scan(source_tree)

        json_path = os.path.join(source_tree, "MachineX", PROJECT_FILE)
        later = os.stat(json_path).st_mtime + 60
        os.utime(json_path, (later, later))

        assert len(scanner.perform_scan(source_tree)) == 1

    def test_modified_nc_file_restages_project(self, config, source_tree):
        scanner = Scanner(config)
        project = scanner.perform_scan(source_tree)[0]
        staged_nc = os.path.join(os.path.dirname(project.staged_path), "W1234AB01A.h")

        nc_path = write_file(os.path.join(source_tree, "MachineX", "W1234AB01A.h"), "JOB: P1\nL X+0 RL F100\n")
        later = os.stat(staged_nc).st_mtime + 60
        os.utime(nc_path, (later, later))

        assert len(scanner.perform_scan(source_tree)) == 1
        with open(staged_nc, encoding="utf-8") as f:
            assert " RL " in f.read()

    def test_nan_inside_string_kept_on_stage(self, config, tmp_path):
        root = tmp_path / "root"
        write_file(root / "m" / "a.h", "")
        write_file(root / "m" / PROJECT_FILE, '{"note": "ratio:NaN,x", "stock": NaN}')

        projects = Scanner(config).perform_scan(str(root))

        with open(projects[0].staged_path, encoding="utf-8") as f:
            staged = json.load(f)
        assert staged["note"] == "ratio:NaN,x"
        assert staged["stock"] is None

    def test_nan_sanitized_on_stage(self, config, tmp_path):
        root = tmp_path / "root"
        write_file(root / "m" / "a.h", "")
        write_file(root / "m" / PROJECT_FILE, '{"compoundJobs": {}, "stock": NaN, "limit": -Infinity}')

        projects = Scanner(config).perform_scan(str(root))

        assert len(projects) == 1
        with open(projects[0].staged_path, encoding="utf-8") as f:
            staged = json.load(f)
        assert staged["stock"] is None
        assert staged["limit"] is None

    def test_unrepairable_json_discarded(self, config, tmp_path):
        root = tmp_path / "root"
        write_file(root / "m" / "a.h", "")
        write_file(root / "m" / PROJECT_FILE, '{"compoundJobs": {"a": "unterminated')

        scanner = Scanner(config)
        projects = scanner.perform_scan(str(root))

        assert projects == []
        assert any("Invalid JSON" in error for error in scanner.errors)
        assert not os.path.exists(os.path.join(scanner.temp_manager.session_path, "m", PROJECT_FILE))

    def test_trailing_comma_still_staged(self, config, tmp_path):
        root = tmp_path / "root"
        write_file(root / "m" / "a.h", "")
        write_file(root / "m" / PROJECT_FILE, '{"compoundJobs": {},}')

        assert len(Scanner(config).perform_scan(str(root))) == 1

    def test_descriptor_overrides_machine(self, config, tmp_path):
        root = tmp_path / "root"
        write_file(root / "folder" / "a.h", "")
        write_json(root / "folder" / PROJECT_FILE, dict(VALID_DESCRIPTOR, machine="DMU100"))

        projects = Scanner(config).perform_scan(str(root))
        assert projects[0].machine == "DMU100"

    def test_missing_root(self, config, tmp_path):
        scanner = Scanner(config)
        assert scanner.perform_scan(str(tmp_path / "missing")) == []
        assert scanner.errors

    def test_fatal_marker_skips_until_cleared(self, config, source_tree):
        scanner = Scanner(config)
        project = scanner.perform_scan(source_tree)[0]
        project.mark_fatal_error("Corrupt JSON structure")

        assert scanner.perform_scan(source_tree, force=True) == []
        assert scanner.clear_fatal_errors() == 1
        assert len(scanner.perform_scan(source_tree, force=True)) == 1

    def test_group_by_key(self, config, tmp_path):
        root = tmp_path / "root"
        for machine in ("MachineX", "MachineY"):
            write_file(root / machine / "a.h", "")
            write_json(root / machine / PROJECT_FILE, VALID_DESCRIPTOR)

        projects = Scanner(config).perform_scan(str(root))
        groups = Scanner.group_by_key(projects)

        assert list(groups) == ["W1234AB01A"]
        assert [p.machine for p in groups["W1234AB01A"]] == ["MachineX", "MachineY"]

    def test_stop_with_cleanup(self, config, source_tree):
        manager = TempFileManager(config.temp_root)
        scanner = Scanner(config, manager)
        scanner.start()
        scanner.perform_scan(source_tree)
        scanner.stop(cleanup=True)

        assert not scanner.running
        assert not os.path.exists(manager.session_path)
