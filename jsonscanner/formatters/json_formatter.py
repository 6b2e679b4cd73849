"""
JSON output formatter for machine-readable reports.
"""

import json
from typing import Any, Dict, List

from jsonscanner.core.engine import CycleReport
from jsonscanner.core.staging import ChangeSet


class JSONFormatter:
    """
    Formats cycle reports as JSON for machine consumption.
    """

    def __init__(self, indent: int = 2):
        self.indent = indent

    def format_result(self, report: CycleReport) -> str:
        """Format a complete cycle report as JSON."""
        return json.dumps(report.to_dict(), indent=self.indent, default=str)

    def format_rules(self, rules_info: List[Dict[str, Any]]) -> str:
        return json.dumps(rules_info, indent=self.indent)

    def format_changes(self, changes: ChangeSet) -> str:
        return json.dumps(changes.to_dict(), indent=self.indent)
