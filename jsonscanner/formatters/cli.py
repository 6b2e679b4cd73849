"""
CLI output formatter for human-readable reports.
"""

import sys
from typing import Any, Dict, List

from jsonscanner.core.engine import CycleReport
from jsonscanner.core.project import Project, ProjectStatus
from jsonscanner.core.staging import ChangeSet


# ANSI color codes
class Colors:
    RESET = "\033[0m"
    BOLD = "\033[1m"
    DIM = "\033[2m"

    RED = "\033[91m"
    GREEN = "\033[92m"
    YELLOW = "\033[93m"
    BLUE = "\033[94m"
    CYAN = "\033[96m"
    WHITE = "\033[97m"

    BG_RED = "\033[41m"


def supports_color() -> bool:
    """Check if the terminal supports color output."""
    if not hasattr(sys.stdout, "isatty"):
        return False
    return sys.stdout.isatty()


STATUS_COLORS = {
    "passed": Colors.GREEN,
    "completed": Colors.GREEN,
    "failed": Colors.RED,
    "analysis_failed": Colors.YELLOW,
    "error": Colors.YELLOW,
    "not_applicable": Colors.DIM,
    "fatal_error": Colors.BG_RED + Colors.WHITE,
}


class CLIFormatter:
    """
    Formats cycle reports for human-readable CLI output.
    """

    def __init__(self, use_color: bool = True, verbose: bool = False):
        self.use_color = use_color and supports_color()
        self.verbose = verbose

    def _color(self, text: str, color: str) -> str:
        """Apply color to text if colors are enabled."""
        if self.use_color:
            return f"{color}{text}{Colors.RESET}"
        return text

    def _status_label(self, status: str) -> str:
        return self._color(f"[{status.upper()}]", STATUS_COLORS.get(status, ""))

    def _header(self, title: str) -> List[str]:
        return [
            self._color("=" * 70, Colors.DIM),
            self._color(f" {title} ", Colors.BOLD),
            self._color("=" * 70, Colors.DIM),
        ]

    def format_result(self, report: CycleReport) -> str:
        """Format a complete cycle report."""
        lines = [""]
        lines.extend(self._header("JSON SCAN RESULTS"))
        lines.append("")

        # Summary
        lines.append(self._color("Summary", Colors.BOLD))
        lines.append(self._color("-" * 40, Colors.DIM))
        lines.append(f"  Scan path:         {report.root_path}")
        lines.append(f"  Projects:          {len(report.projects)}")
        lines.append(f"  Scan time:         {report.duration_seconds:.2f}s")
        lines.append(f"  Failed rules:      {report.failed_rule_count}")
        lines.append("")

        if not report.projects:
            lines.append(self._color("  No new or modified projects found.", Colors.GREEN))
            lines.append("")
        else:
            for status, count in sorted(report.status_counts.items()):
                lines.append(f"  {self._status_label(status)} {count}")
            lines.append("")

            lines.extend(self._header("PROJECTS"))
            lines.append("")
            for project in report.projects:
                lines.extend(self._format_project(project))
                lines.append("")

        if report.errors:
            lines.extend(self._header("ERRORS"))
            for error in report.errors:
                lines.append(f"  - {error}")
            lines.append("")

        return "\n".join(lines)

    def _format_project(self, project: Project) -> List[str]:
        """Format one processed project."""
        lines = []
        title = self._color(project.key, Colors.BOLD)
        lines.append(f"  {self._status_label(project.status.value)} {title}")
        lines.append(f"  {self._color('Machine:', Colors.DIM)} {project.machine}")
        lines.append(f"  {self._color('Operator:', Colors.DIM)} {project.operator}")
        lines.append(f"  {self._color('Source:', Colors.DIM)} {project.source_path}")
        if project.result_path:
            lines.append(f"  {self._color('Result:', Colors.DIM)} {project.result_path}")

        if project.status == ProjectStatus.FATAL_ERROR:
            lines.append(self._color(f"  Fatal: {project.fatal_error_reason}", Colors.RED))

        results = project.analysis_results or {}
        for rule in results.get("rules", []):
            if rule["status"] == "not_applicable" and not self.verbose:
                continue
            lines.append(f"    {self._status_label(rule['status'])} {rule['name']}: {rule.get('summary', '')}")
            if rule["status"] == "failed":
                for violation in rule.get("violations", [])[: None if self.verbose else 5]:
                    lines.append(self._color(f"      - {violation.get('message', violation)}", Colors.DIM))

        lines.append(self._color("  " + "-" * 66, Colors.DIM))
        return lines

    def format_rules(self, rules_info: List[Dict[str, Any]]) -> str:
        """Format the list of loaded rules."""
        lines = [self._color(f"Loaded rules ({len(rules_info)})", Colors.BOLD)]
        lines.append(self._color("-" * 40, Colors.DIM))
        for info in rules_info:
            flags = []
            if not info["has_config"]:
                flags.append(self._color("no config", Colors.YELLOW))
            elif not info["has_logic"]:
                flags.append(self._color("no predicate", Colors.YELLOW))
            suffix = f" ({', '.join(flags)})" if flags else ""
            lines.append(f"  {self._color(info['name'], Colors.CYAN)} [{info['failure_type']}]{suffix}")
            lines.append(f"    {info['description']}")
        return "\n".join(lines)

    def format_changes(self, changes: ChangeSet) -> str:
        """Format a change detection pass."""
        lines = [self._color(changes.summary, Colors.BOLD)]
        for change in changes.changed_files:
            lines.append(f"  {self._color('modified', Colors.YELLOW)} {change.path}")
        for path in changes.new_files:
            lines.append(f"  {self._color('new', Colors.GREEN)}      {path}")
        for path in changes.deleted_files:
            lines.append(f"  {self._color('deleted', Colors.RED)}  {path}")
        return "\n".join(lines)
