"""
Rule result data structures and the per-project result writer.

A RuleResult is produced once per rule per project run and never mutated.
The aggregated result object built from them is the only thing persisted
for a project, one artifact per run.
"""

import os
import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple


logger = logging.getLogger(__name__)


class RuleStatus(Enum):
    """Outcome of a single rule on a single project."""
    PASSED = "passed"
    FAILED = "failed"
    NOT_APPLICABLE = "not_applicable"
    ERROR = "error"


class OverallStatus(Enum):
    PASSED = "passed"
    FAILED = "failed"
    ERROR = "error"


@dataclass(frozen=True)
class RuleResult:
    """The result of running one rule against one project."""
    rule_name: str
    status: RuleStatus
    violation_count: int = 0
    violations: Tuple[Dict[str, Any], ...] = field(default_factory=tuple)
    summary: str = ""
    message: Optional[str] = None
    stack: Optional[str] = None

    def __post_init__(self):
        if isinstance(self.status, str):
            object.__setattr__(self, "status", RuleStatus(self.status))
        if not isinstance(self.violations, tuple):
            object.__setattr__(self, "violations", tuple(self.violations))

    @property
    def error(self) -> bool:
        return self.status == RuleStatus.ERROR

    @property
    def passed(self) -> bool:
        return self.status == RuleStatus.PASSED

    @classmethod
    def from_violations(
        cls,
        rule_name: str,
        violations: List[Dict[str, Any]],
        failed_summary: str,
        passed_summary: str,
    ) -> "RuleResult":
        """Build the usual pass/fail result from a list of violations."""
        return cls(
            rule_name=rule_name,
            status=RuleStatus.FAILED if violations else RuleStatus.PASSED,
            violation_count=len(violations),
            violations=tuple(violations),
            summary=failed_summary if violations else passed_summary,
        )

    @classmethod
    def from_error(cls, rule_name: str, message: str, stack: Optional[str] = None) -> "RuleResult":
        return cls(
            rule_name=rule_name,
            status=RuleStatus.ERROR,
            summary=message,
            message=message,
            stack=stack,
        )

    @classmethod
    def from_value(cls, rule_name: str, value: Any) -> "RuleResult":
        """
        Coerce whatever a rule returned into a RuleResult.

        Accepts a RuleResult or a dict in the legacy
        ``{ruleName, status, violationCount, violations, summary}`` shape.
        """
        if isinstance(value, RuleResult):
            return value
        if isinstance(value, dict):
            if value.get("error"):
                return cls.from_error(rule_name, str(value.get("message", "")), value.get("stack"))
            violations = list(value.get("violations") or [])
            status = value.get("status") or (RuleStatus.FAILED.value if violations else RuleStatus.PASSED.value)
            count = value.get("violationCount", value.get("violation_count", len(violations)))
            return cls(
                rule_name=str(value.get("ruleName") or value.get("rule_name") or rule_name),
                status=RuleStatus(status),
                violation_count=int(count),
                violations=tuple(violations),
                summary=str(value.get("summary", "")),
            )
        raise TypeError(
            f"Rule {rule_name} returned {type(value).__name__}, expected RuleResult or dict"
        )

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "ruleName": self.rule_name,
            "status": self.status.value,
            "violationCount": self.violation_count,
            "violations": list(self.violations),
            "summary": self.summary,
        }
        if self.error:
            data["error"] = True
            data["message"] = self.message
            data["stack"] = self.stack
        return data


FAILED_PROJECT_STATUSES = ("analysis_failed", "failed", "fatal_error")


def build_analysis_results(project, rule_results: Dict[str, Optional[RuleResult]]) -> Dict[str, Any]:
    """Aggregate a rule result map into the persisted result object."""
    rules: List[Dict[str, Any]] = []
    counts = {status: 0 for status in RuleStatus}

    for name, result in (rule_results or {}).items():
        if result is None:
            status = RuleStatus.NOT_APPLICABLE
            entry = {"name": name, "status": status.value, "violationCount": 0, "summary": "Not applicable"}
        else:
            status = result.status
            entry = {
                "name": name,
                "status": status.value,
                "violationCount": result.violation_count,
                "summary": result.summary,
                "violations": list(result.violations),
            }
        counts[status] += 1
        rules.append(entry)

    if counts[RuleStatus.FAILED] or project.status.value in FAILED_PROJECT_STATUSES:
        overall = OverallStatus.FAILED
    elif counts[RuleStatus.ERROR]:
        overall = OverallStatus.ERROR
    else:
        overall = OverallStatus.PASSED

    return {
        "project": project.key,
        "operator": project.operator,
        "machine": project.machine,
        "position": project.position,
        "summary": {
            "overallStatus": overall.value,
            "passed": counts[RuleStatus.PASSED],
            "failed": counts[RuleStatus.FAILED],
            "notApplicable": counts[RuleStatus.NOT_APPLICABLE],
            "errors": counts[RuleStatus.ERROR],
            "compoundJobs": len(project.compound_jobs),
            "tools": len(project.tools),
        },
        "rules": rules,
        "processedAt": datetime.now(timezone.utc).isoformat(),
        "status": project.status.value,
    }


class ResultsWriter:
    """Writes one result artifact per processed project."""

    def save_project_results(self, project, analysis_results: Dict[str, Any]) -> Optional[str]:
        """
        Save project results to the project's result path.

        Returns the written path, or None when the artifact could not be
        written (the failure is logged, never raised).
        """
        result_path = project.result_path or project.get_result_file_path()
        if not result_path:
            logger.error("Cannot derive a result path for project %s", project.key)
            return None

        try:
            os.makedirs(os.path.dirname(result_path) or ".", exist_ok=True)
            with open(result_path, "w", encoding="utf-8") as f:
                json.dump(analysis_results, f, indent=2, default=str)
        except (OSError, TypeError, ValueError) as e:
            logger.error("Failed to save result file for %s: %s", project.key, e)
            return None

        project.result_path = result_path
        logger.info("Result file saved: %s", os.path.basename(result_path))
        self.log_summary(analysis_results)
        return result_path

    def log_summary(self, analysis_results: Dict[str, Any]) -> None:
        """Log a readable summary of one project's results."""
        summary = analysis_results.get("summary") or {}
        rules = analysis_results.get("rules") or []
        logger.info(
            "Analysis summary for %s: %s",
            analysis_results.get("project"),
            str(summary.get("overallStatus", "unknown")).upper(),
        )
        if not rules:
            logger.info("  Rules: no rules executed")
            return

        logger.info(
            "  Rules: %d passed, %d failed, %d not applicable, %d errors",
            summary.get("passed", 0),
            summary.get("failed", 0),
            summary.get("notApplicable", 0),
            summary.get("errors", 0),
        )
        for rule in rules:
            if rule["status"] == RuleStatus.FAILED.value:
                logger.info("    %s: %d violation(s)", rule["name"], rule["violationCount"])
