"""
Scan cycle orchestration.

The ScanEngine ties the pipeline together: the Scanner stages projects,
the Analyzer repairs their JSON, the RuleEngine evaluates them and the
ResultsWriter persists one artifact per project. Cycles run sequentially;
in autorun mode the engine waits between cycles on an event so that
stop() takes effect promptly.
"""

import time
import logging
import threading
from collections import Counter
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from jsonscanner.config import ScanConfig
from jsonscanner.core.analyzer import Analyzer
from jsonscanner.core.project import ALLOWED_TRANSITIONS, Project, ProjectStatus
from jsonscanner.core.results import ResultsWriter
from jsonscanner.core.rules import RuleEngine
from jsonscanner.core.scanner import Scanner
from jsonscanner.core.staging import TempFileManager
from jsonscanner.errors import is_fatal_error


logger = logging.getLogger(__name__)

# Upper bound on a single wait slice between autorun cycles
WAIT_SLICE_SECONDS = 1.0

UNSUCCESSFUL_STATUSES = (
    ProjectStatus.ANALYSIS_FAILED,
    ProjectStatus.FAILED,
    ProjectStatus.FATAL_ERROR,
)


@dataclass
class CycleReport:
    """Outcome of one scan cycle."""
    root_path: str
    projects: List[Project] = field(default_factory=list)
    duration_seconds: float = 0.0
    errors: List[str] = field(default_factory=list)

    @property
    def status_counts(self) -> Dict[str, int]:
        return dict(Counter(project.status.value for project in self.projects))

    @property
    def completed_count(self) -> int:
        return sum(1 for p in self.projects if p.status == ProjectStatus.COMPLETED)

    @property
    def unsuccessful_count(self) -> int:
        return sum(1 for p in self.projects if p.status in UNSUCCESSFUL_STATUSES)

    @property
    def failed_rule_count(self) -> int:
        total = 0
        for project in self.projects:
            summary = (project.analysis_results or {}).get("summary") or {}
            total += summary.get("failed", 0)
        return total

    @property
    def has_failures(self) -> bool:
        """Whether any project failed outright or had a failing rule."""
        return bool(self.unsuccessful_count or self.failed_rule_count)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "summary": {
                "root_path": self.root_path,
                "projects_processed": len(self.projects),
                "duration_seconds": self.duration_seconds,
                "by_status": self.status_counts,
                "failed_rules": self.failed_rule_count,
            },
            "projects": [
                {
                    "project": project.key,
                    "machine": project.machine,
                    "operator": project.operator,
                    "status": project.status.value,
                    "source_path": project.source_path,
                    "result_path": project.result_path,
                    "fatal_error_reason": project.fatal_error_reason,
                    "results": project.analysis_results,
                }
                for project in self.projects
            ],
            "errors": list(self.errors),
        }


class ScanEngine:
    """
    Runs scan cycles over a root directory.

    The engine:
    1. Stages new or modified projects through the Scanner
    2. Validates and repairs each project's JSON
    3. Runs the applicable rules
    4. Persists one result artifact per project
    """

    def __init__(
        self,
        config: Optional[ScanConfig] = None,
        temp_manager: Optional[TempFileManager] = None,
        rule_engine: Optional[RuleEngine] = None,
    ):
        self.config = config or ScanConfig()
        self.temp_manager = temp_manager or TempFileManager(self.config.temp_root)
        self.scanner = Scanner(self.config, self.temp_manager)
        self.analyzer = Analyzer()
        self.rule_engine = rule_engine or RuleEngine(self.config)
        self.results_writer = ResultsWriter()
        self.running = False
        self.cycles = 0
        self._stop_event = threading.Event()

    def run_cycle(self, root_path: str, force: Optional[bool] = None) -> CycleReport:
        """Scan once and process every staged project in discovery order."""
        start_time = time.time()
        self.cycles += 1
        logger.info("Starting scan cycle %d on %s", self.cycles, root_path)

        projects = self.scanner.perform_scan(root_path, force=force)
        report = CycleReport(root_path=root_path, errors=list(self.scanner.errors))

        for project in projects:
            if project.status != ProjectStatus.READY:
                logger.debug("Skipping project %s with status %s", project.key, project.status.value)
                continue
            self.process_project(project)
            report.projects.append(project)

        report.duration_seconds = round(time.time() - start_time, 3)
        logger.info(
            "Scan cycle %d finished in %.3fs: %d project(s), %s",
            self.cycles, report.duration_seconds, len(report.projects), report.status_counts or "nothing to do",
        )
        return report

    def process_project(self, project: Project) -> Project:
        """
        Analyze, evaluate and persist one project.

        Failures never escape: a corrupt-data failure marks the project
        fatal (excluded from later scans until cleared), anything else marks
        it failed with an empty result.
        """
        try:
            self.analyzer.analyze_project(project)

            if project.status == ProjectStatus.ANALYSIS_FAILED:
                logger.warning("Analysis failed for %s, saving minimal result", project.key)
                project.set_analysis_results({})
                self.results_writer.save_project_results(project, project.analysis_results)
                return project

            rule_results = self.rule_engine.execute_rules(project)
            analysis_results = project.set_analysis_results(rule_results)
            self.results_writer.save_project_results(project, analysis_results)
            project.set_status(ProjectStatus.COMPLETED)
            logger.info("Completed processing project %s", project.key)

        except Exception as e:
            message = str(e)
            if is_fatal_error(e) and ProjectStatus.FATAL_ERROR in ALLOWED_TRANSITIONS[project.status]:
                logger.error("Fatal error for project %s: %s", project.key, message)
                project.mark_fatal_error(message)
                return project

            logger.error("Processing failed for project %s: %s", project.key, message)
            if not project.status.is_terminal:
                project.set_status(ProjectStatus.FAILED)
            if project.analysis_results is None:
                project.set_analysis_results({})
                self.results_writer.save_project_results(project, project.analysis_results)

        return project

    def run_autorun(
        self,
        root_path: str,
        max_cycles: Optional[int] = None,
        on_cycle: Optional[Callable[[CycleReport], None]] = None,
    ) -> Optional[CycleReport]:
        """
        Run cycles until stopped, waiting ``scan_interval_ms`` between them.

        Only loops when ``autorun`` is enabled; otherwise runs a single
        cycle. ``on_cycle`` receives each report as it completes;
        ``max_cycles`` bounds the loop. Returns the last report.
        """
        report: Optional[CycleReport] = None
        cycles_run = 0
        self.running = True
        self._stop_event.clear()

        try:
            while self.running:
                report = self.run_cycle(root_path)
                cycles_run += 1
                if on_cycle is not None:
                    on_cycle(report)
                if not self.config.autorun:
                    break
                if max_cycles is not None and cycles_run >= max_cycles:
                    break
                self.wait_for_next_cycle()
        finally:
            self.running = False

        return report

    def wait_for_next_cycle(self) -> bool:
        """
        Wait out the scan interval in slices of at most one second.

        Returns False if stop() was requested during the wait.
        """
        remaining = self.config.scan_interval_ms / 1000.0
        if remaining > 0:
            logger.info("Next scan in %d seconds", int(remaining))

        while remaining > 0 and self.running:
            slice_seconds = min(WAIT_SLICE_SECONDS, remaining)
            if self._stop_event.wait(slice_seconds):
                break
            remaining -= slice_seconds
            logger.debug("Next scan in %d seconds", int(remaining))

        return self.running

    def stop(self, cleanup: bool = False) -> None:
        """Request the autorun loop to end; optionally remove the temp session."""
        logger.info("Stopping scan engine")
        self.running = False
        self._stop_event.set()
        self.scanner.stop(cleanup=cleanup)


def create_engine(config_path: Optional[str] = None, **kwargs) -> ScanEngine:
    """
    Create a scan engine with configuration.

    Args:
        config_path: Optional path to a configuration file.
        **kwargs: Configuration overrides.

    Returns:
        Configured ScanEngine instance.
    """
    from jsonscanner.config import load_config

    data: Dict[str, Any] = load_config(config_path) if config_path else {}
    data.update(kwargs)
    return ScanEngine(ScanConfig.from_dict(data))
