"""
Project discovery and staging.

The Scanner walks a root directory, picks out CAM JSON descriptors that sit
next to NC program files, and stages a sanitized copy of each (plus its
sibling NC files) into the current temp session. Unchanged sources are
skipped on re-scan, which bounds repeated work across scan cycles.
"""

import os
import re
import logging
from collections import OrderedDict
from typing import Dict, List, NamedTuple, Optional

from jsonscanner.config import ScanConfig
from jsonscanner.core.project import (
    DEFAULT_POSITION, FATAL_MARKER_SUFFIX, FIXED_SUFFIX, GENERATED_PREFIX,
    RESULT_SUFFIX, Project, ProjectStatus,
)
from jsonscanner.core.staging import TempFileManager
from jsonscanner.errors import ScanDirectoryError, StagingError
from jsonscanner.utils import (
    normalize_path, parse_json_strict, repair_json_text, sanitize_json_content,
)


logger = logging.getLogger(__name__)

PROJECT_FILE_PATTERN = re.compile(r'^([A-Z]?\d{4}[A-Z]{2}\d{2,})([A-Z])?(?i:\.json)$')

GENERATED_SUFFIXES = (FIXED_SUFFIX, RESULT_SUFFIX)


class ProjectKey(NamedTuple):
    """Base identifier and position letter parsed from a file name."""
    project_base: str
    position: str

    @property
    def key(self) -> str:
        return f"{self.project_base}{self.position}"


def parse_project_key(file_name: str) -> Optional[ProjectKey]:
    """
    Extract the project key from a descriptor file name.

    ``W1234AB01A.json`` gives base ``W1234AB01`` and position ``A``;
    without a trailing letter the position defaults to ``A``.
    """
    match = PROJECT_FILE_PATTERN.match(os.path.basename(file_name))
    if not match:
        return None
    return ProjectKey(match.group(1), match.group(2) or DEFAULT_POSITION)


def is_generated_file(file_name: str) -> bool:
    """Check whether a file was produced by the scanner itself."""
    name = os.path.basename(file_name)
    if name.startswith(GENERATED_PREFIX) or name.endswith(FATAL_MARKER_SUFFIX):
        return True
    stem = os.path.splitext(name)[0]
    return any(suffix in stem for suffix in GENERATED_SUFFIXES)


def validate_json_text(content: str) -> bool:
    """Whether the text parses, directly or after syntactic repair."""
    try:
        parse_json_strict(content)
        return True
    except ValueError:
        pass
    try:
        parse_json_strict(repair_json_text(content))
        return True
    except ValueError:
        return False


class Scanner:
    """
    Discovers candidate projects and stages them for analysis.

    Each call to perform_scan returns the projects staged during that call,
    in discovery order, with status ``ready``.
    """

    def __init__(self, config: Optional[ScanConfig] = None, temp_manager: Optional[TempFileManager] = None):
        self.config = config or ScanConfig()
        self.temp_manager = temp_manager or TempFileManager(self.config.temp_root)
        self.nc_extensions = {ext.lower() for ext in self.config.nc_extensions}
        self.ignored_directories = set(self.config.ignored_directories)
        self.projects: List[Project] = []
        self.errors: List[str] = []
        self.running = False

    def start(self) -> None:
        self.running = True

    def stop(self, cleanup: bool = False) -> None:
        """Stop scanning; optionally remove the temp session."""
        self.running = False
        if cleanup:
            self.temp_manager.cleanup()

    def get_projects(self) -> List[Project]:
        return list(self.projects)

    def get_session_info(self) -> Dict[str, object]:
        return self.temp_manager.get_session_info()

    def is_nc_file(self, file_name: str) -> bool:
        return os.path.splitext(file_name)[1].lower() in self.nc_extensions

    def _on_walk_error(self, error: OSError) -> None:
        directory = getattr(error, "filename", None)
        scan_error = ScanDirectoryError(f"Cannot read directory {directory}: {error.strerror or error}", directory)
        self.errors.append(str(scan_error))
        logger.warning("%s (skipped)", scan_error)

    def discover_candidates(self, root_path: str) -> List[str]:
        """
        List descriptor files under root_path in walk order.

        A directory contributes JSON files only when it also holds at least
        one NC program file.
        """
        candidates: List[str] = []
        temp_base = normalize_path(self.temp_manager.temp_base_path)

        for dirpath, dirnames, filenames in os.walk(root_path, onerror=self._on_walk_error):
            dirnames[:] = sorted(
                d for d in dirnames
                if d not in self.ignored_directories
                and normalize_path(os.path.join(dirpath, d)) != temp_base
            )
            if not any(self.is_nc_file(name) for name in filenames):
                continue

            for name in sorted(filenames):
                if not name.lower().endswith(".json") or is_generated_file(name):
                    continue
                if parse_project_key(name) is None:
                    logger.debug("Ignoring non-project JSON file: %s", name)
                    continue
                candidates.append(os.path.join(dirpath, name))

        return candidates

    def perform_scan(self, root_path: str, force: Optional[bool] = None) -> List[Project]:
        """
        Scan root_path and stage every new or modified project.

        Args:
            root_path: Directory to walk.
            force: Re-stage even unchanged sources. Defaults to the
                configured ``force_reprocess``.

        Returns:
            Projects staged during this scan, status ``ready``.
        """
        force = self.config.force_reprocess if force is None else force
        self.projects = []
        self.errors = []

        root_path = normalize_path(root_path)
        if not os.path.isdir(root_path):
            logger.error("Scan path does not exist or is not a directory: %s", root_path)
            self.errors.append(f"Scan path not found: {root_path}")
            return []

        logger.info("Scanning %s", root_path)
        candidates = self.discover_candidates(root_path)
        skipped = 0

        for source_path in candidates:
            project = self.stage_candidate(source_path, root_path, force)
            if project is None:
                skipped += 1
                continue
            self.projects.append(project)

        logger.info(
            "Scan finished: %d candidate(s), %d staged, %d skipped",
            len(candidates), len(self.projects), skipped,
        )
        return list(self.projects)

    def needs_staging(self, source_path: str, staged_path: str, force: bool) -> bool:
        """Re-stage only when forced, never staged, or the source is newer."""
        if force or not os.path.exists(staged_path):
            return True
        return os.stat(source_path).st_mtime > os.stat(staged_path).st_mtime

    def nc_files_changed(self, directory: str, root_path: str) -> bool:
        """Whether any NC program beside a descriptor is newer than its staged copy."""
        for name in os.listdir(directory):
            path = os.path.join(directory, name)
            if not self.is_nc_file(name) or not os.path.isfile(path):
                continue
            if self.needs_staging(path, self.temp_manager.staged_path_for(path, root_path), False):
                return True
        return False

    def stage_candidate(self, source_path: str, root_path: str, force: bool = False) -> Optional[Project]:
        """Stage one descriptor and its sibling NC files; None when skipped."""
        project_key = parse_project_key(source_path)
        if project_key is None:
            return None

        directory = os.path.dirname(source_path)
        project = Project(
            project_base=project_key.project_base,
            position=project_key.position,
            source_path=source_path,
            machine=os.path.basename(directory),
            staged_path=self.temp_manager.staged_path_for(source_path, root_path),
            results_dir=self.config.results_dir,
            tool_categories=self.config.tool_categories,
        )

        if project.has_fatal_marker():
            logger.warning("Skipping %s: marked as fatal error until cleared", project.key)
            return None

        try:
            if not self.needs_staging(source_path, project.staged_path, force) \
                    and not self.nc_files_changed(directory, root_path):
                logger.debug("Skipping unchanged file: %s", source_path)
                return None
        except OSError as e:
            self.errors.append(f"Cannot stat {source_path}: {e}")
            logger.error("Cannot stat %s: %s", source_path, e)
            return None

        try:
            with open(source_path, "r", encoding="utf-8", errors="replace") as f:
                sanitized = sanitize_json_content(f.read())
        except OSError as e:
            self.errors.append(f"Cannot read {source_path}: {e}")
            logger.error("Cannot read %s: %s", source_path, e)
            return None

        if not validate_json_text(sanitized):
            self.errors.append(f"Invalid JSON discarded: {source_path}")
            logger.error("Discarding %s: JSON is still invalid after sanitizing", source_path)
            return None

        self._apply_identity(project, sanitized)

        try:
            project.staged_path = self.temp_manager.copy_to_temp(
                source_path, root_path, transform=sanitize_json_content
            )
        except StagingError as e:
            self.errors.append(str(e))
            logger.error("Staging failed for %s: %s", source_path, e)
            return None
        project.set_status(ProjectStatus.STAGED)

        self.stage_nc_files(directory, root_path)

        project.fixed_path = project.get_fixed_file_path()
        project.result_path = project.get_result_file_path()
        project.set_status(ProjectStatus.READY)
        logger.info("Staged project %s (%s)", project.key, project.machine)
        return project

    def stage_nc_files(self, directory: str, root_path: str) -> List[str]:
        """Copy the NC program files next to a descriptor into the session."""
        staged: List[str] = []
        try:
            names = sorted(os.listdir(directory))
        except OSError as e:
            logger.warning("Cannot list %s for NC files: %s", directory, e)
            return staged

        for name in names:
            path = os.path.join(directory, name)
            if not self.is_nc_file(name) or not os.path.isfile(path):
                continue
            try:
                staged.append(self.temp_manager.copy_to_temp(path, root_path))
            except StagingError as e:
                self.errors.append(str(e))
                logger.error("Could not stage NC file %s: %s", path, e)
        return staged

    def _apply_identity(self, project: Project, content: str) -> None:
        """Take machine and operator from the descriptor when it names them."""
        try:
            data = parse_json_strict(content)
        except ValueError:
            data = parse_json_strict(repair_json_text(content))
        if isinstance(data, dict):
            if data.get("machine"):
                project.machine = str(data["machine"])
            if data.get("operator"):
                project.operator = str(data["operator"])

    def clear_fatal_errors(self) -> int:
        """Remove every fatal marker in the session; returns how many were removed."""
        removed = 0
        for dirpath, _, filenames in os.walk(self.temp_manager.session_path):
            for name in filenames:
                if name.startswith(GENERATED_PREFIX) and name.endswith(FATAL_MARKER_SUFFIX):
                    os.remove(os.path.join(dirpath, name))
                    removed += 1
        if removed:
            logger.info("Cleared %d fatal error marker(s)", removed)
        return removed

    @staticmethod
    def group_by_key(projects: List[Project]) -> Dict[str, List[Project]]:
        """Group projects of the same logical unit found in different machine folders."""
        groups: Dict[str, List[Project]] = OrderedDict()
        for project in projects:
            groups.setdefault(project.key, []).append(project)
        return groups
