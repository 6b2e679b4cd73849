"""
Project data model for the JSON scanner.

A Project is one manufacturing job unit discovered on disk: a CAM JSON
descriptor (identified by base number + position letter) together with the
NC programs it describes. Projects are created by the Scanner, mutated by
the Analyzer and the orchestrator, and discarded at the end of each cycle.
"""

import os
import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from jsonscanner.errors import InvalidTransitionError, ProjectError


logger = logging.getLogger(__name__)

# Reserved naming for generated files; never re-discovered as sources
GENERATED_PREFIX = "BRK_"
FIXED_SUFFIX = "_fixed"
RESULT_SUFFIX = "_result"
FATAL_MARKER_SUFFIX = ".fatal"
DEFAULT_POSITION = "A"


class ProjectStatus(Enum):
    """Lifecycle states of a project."""
    DISCOVERED = "discovered"
    STAGED = "staged"
    READY = "ready"
    ANALYZED = "analyzed"
    ANALYSIS_FAILED = "analysis_failed"
    COMPLETED = "completed"
    FAILED = "failed"
    FATAL_ERROR = "fatal_error"

    @property
    def is_terminal(self) -> bool:
        return self in (ProjectStatus.COMPLETED, ProjectStatus.FAILED, ProjectStatus.FATAL_ERROR)


ALLOWED_TRANSITIONS: Dict[ProjectStatus, set] = {
    ProjectStatus.DISCOVERED: {ProjectStatus.STAGED, ProjectStatus.FAILED},
    ProjectStatus.STAGED: {ProjectStatus.READY, ProjectStatus.FAILED},
    ProjectStatus.READY: {
        ProjectStatus.ANALYZED,
        ProjectStatus.ANALYSIS_FAILED,
        ProjectStatus.COMPLETED,
        ProjectStatus.FAILED,
        ProjectStatus.FATAL_ERROR,
    },
    ProjectStatus.ANALYZED: {
        ProjectStatus.COMPLETED,
        ProjectStatus.FAILED,
        ProjectStatus.FATAL_ERROR,
    },
    ProjectStatus.ANALYSIS_FAILED: {ProjectStatus.FAILED},
    ProjectStatus.COMPLETED: set(),
    ProjectStatus.FAILED: set(),
    ProjectStatus.FATAL_ERROR: set(),
}


def _number(value: Any) -> Optional[float]:
    """Coerce an exported numeric field; null and garbage become None."""
    if value is None or isinstance(value, bool):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


@dataclass
class Operation:
    """One machining step inside an NC program."""
    program_name: str
    tool_name: str = ""
    operation_type: str = ""
    g_code: str = ""
    side_stock: Optional[float] = None
    stepover: Optional[float] = None
    operation_time: Optional[float] = None
    number: Optional[int] = None
    extra: Dict[str, Any] = field(default_factory=dict)

    KNOWN_KEYS = (
        "programName", "program", "toolName", "tool", "operationType",
        "operation", "gCode", "sideStock", "stepover", "operationTime",
        "number",
    )

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Operation":
        """Build an operation from the exporter's camelCase record."""
        number = data.get("number")
        if isinstance(number, float) and number.is_integer():
            number = int(number)
        return cls(
            program_name=str(data.get("programName") or data.get("program") or ""),
            tool_name=str(data.get("toolName") or data.get("tool") or ""),
            operation_type=str(data.get("operationType") or data.get("operation") or ""),
            g_code=str(data.get("gCode") or ""),
            side_stock=_number(data.get("sideStock")),
            stepover=_number(data.get("stepover")),
            operation_time=_number(data.get("operationTime")),
            number=number if isinstance(number, int) else None,
            extra={k: v for k, v in data.items() if k not in cls.KNOWN_KEYS},
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "programName": self.program_name,
            "toolName": self.tool_name,
            "operationType": self.operation_type,
            "gCode": self.g_code,
            "sideStock": self.side_stock,
            "stepover": self.stepover,
            "operationTime": self.operation_time,
            "number": self.number,
        }


@dataclass
class CompoundJob:
    """The operation sequence of one NC program file."""
    file_name: str
    operations: List[Operation] = field(default_factory=list)

    def programs(self) -> Dict[str, List[Operation]]:
        """Group operations by program name, keeping their order."""
        grouped: Dict[str, List[Operation]] = {}
        for op in self.operations:
            grouped.setdefault(op.program_name, []).append(op)
        return grouped

    def to_dict(self) -> Dict[str, Any]:
        return {
            "fileName": self.file_name,
            "operations": [op.to_dict() for op in self.operations],
        }


@dataclass
class Tool:
    """A tool referenced by the project's operations."""
    name: str
    diameter: Optional[float] = None
    category: Optional[str] = None
    attributes: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Dict[str, Any], name: Optional[str] = None) -> "Tool":
        tool_name = name or data.get("name") or data.get("toolName") or ""
        return cls(
            name=str(tool_name),
            diameter=_number(data.get("diameter")),
            category=data.get("category"),
            attributes={
                k: v for k, v in data.items()
                if k not in ("name", "toolName", "diameter", "category")
            },
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "diameter": self.diameter,
            "category": self.category,
            **self.attributes,
        }


@dataclass
class Project:
    """
    One logical manufacturing job unit discovered from a JSON descriptor.

    The source path is never written to; every generated artifact
    (fixed JSON, result, fatal marker) lives beside the staged copy or
    in the configured results directory.
    """
    project_base: str
    position: str = DEFAULT_POSITION
    source_path: str = ""
    machine: str = "unknown"
    operator: str = "unknown"
    staged_path: Optional[str] = None
    fixed_path: Optional[str] = None
    result_path: Optional[str] = None
    results_dir: Optional[str] = None
    tool_categories: Optional[Dict[str, List[str]]] = None
    compound_jobs: Dict[str, CompoundJob] = field(default_factory=dict)
    tools: Dict[str, Tool] = field(default_factory=dict)
    status: ProjectStatus = ProjectStatus.DISCOVERED
    analysis_results: Optional[Dict[str, Any]] = None
    fatal_error_reason: Optional[str] = None
    history: List[str] = field(default_factory=list)

    def __post_init__(self):
        if isinstance(self.status, str):
            self.status = ProjectStatus(self.status)
        self.history.append(self.status.value)

    @property
    def key(self) -> str:
        """Grouping key: base identifier plus position letter."""
        return f"{self.project_base}{self.position}"

    def get_full_name(self) -> str:
        return self.key

    @property
    def json_file_path(self) -> Optional[str]:
        """The JSON text the pipeline reads: the staged copy if any."""
        return self.staged_path or self.source_path or None

    def set_status(self, status: ProjectStatus) -> None:
        """Move to a new status, enforcing the lifecycle."""
        if isinstance(status, str):
            status = ProjectStatus(status)
        if status == self.status:
            return
        if status not in ALLOWED_TRANSITIONS[self.status]:
            raise InvalidTransitionError(self.status.value, status.value)
        self.status = status
        self.history.append(status.value)

    def passed_through(self, status: ProjectStatus) -> bool:
        return status.value in self.history

    # Generated artifact paths

    def _artifact_dir(self) -> str:
        if self.results_dir:
            return self.results_dir
        base = self.staged_path or self.source_path
        return os.path.dirname(base)

    def _stem(self) -> str:
        base = self.staged_path or self.source_path
        return os.path.splitext(os.path.basename(base))[0]

    def get_fixed_file_path(self) -> str:
        base = self.staged_path or self.source_path
        return os.path.join(os.path.dirname(base), f"{GENERATED_PREFIX}{self._stem()}{FIXED_SUFFIX}.json")

    def get_result_file_path(self) -> str:
        return os.path.join(self._artifact_dir(), f"{GENERATED_PREFIX}{self._stem()}{RESULT_SUFFIX}.json")

    def get_fatal_marker_path(self) -> str:
        base = self.staged_path or self.source_path
        return os.path.join(os.path.dirname(base), f"{GENERATED_PREFIX}{self._stem()}{FATAL_MARKER_SUFFIX}")

    # Content

    def load_data(self, data: Dict[str, Any]) -> None:
        """Populate compound jobs, tools and identity from a parsed descriptor."""
        if not isinstance(data, dict):
            raise ProjectError(f"Descriptor for {self.key} is not a JSON object")

        if data.get("machine"):
            self.machine = str(data["machine"])
        if data.get("operator"):
            self.operator = str(data["operator"])

        self.compound_jobs = {}
        jobs = data.get("compoundJobs") or {}
        if isinstance(jobs, dict):
            for file_name, job in jobs.items():
                ops = job.get("operations", []) if isinstance(job, dict) else job
                self._add_compound_job(str(file_name), ops)
        elif isinstance(jobs, list):
            for job in jobs:
                if isinstance(job, dict):
                    name = job.get("fileName") or job.get("ncFile") or ""
                    self._add_compound_job(str(name), job.get("operations", []))

        self.tools = {}
        tools = data.get("tools") or {}
        if isinstance(tools, dict):
            for name, tool in tools.items():
                self.tools[str(name)] = Tool.from_dict(tool if isinstance(tool, dict) else {}, name=str(name))
        elif isinstance(tools, list):
            for tool in tools:
                if isinstance(tool, dict):
                    parsed = Tool.from_dict(tool)
                    self.tools[parsed.name] = parsed

    def _add_compound_job(self, file_name: str, operations: Any) -> None:
        ops = [Operation.from_dict(op) for op in (operations or []) if isinstance(op, dict)]
        self.compound_jobs[file_name] = CompoundJob(file_name=file_name, operations=ops)

    def operations(self) -> List[Operation]:
        """Flattened operations across all compound jobs."""
        return [op for job in self.compound_jobs.values() for op in job.operations]

    # Results

    def set_analysis_results(self, rule_results: Dict[str, Any]) -> Dict[str, Any]:
        """Aggregate rule results into the persisted result object."""
        if self.analysis_results is not None:
            raise ProjectError(f"Analysis results already set for {self.key}")

        from jsonscanner.core.results import build_analysis_results
        self.analysis_results = build_analysis_results(self, rule_results)
        return self.analysis_results

    def get_analysis_results(self) -> Optional[Dict[str, Any]]:
        return self.analysis_results

    def mark_fatal_error(self, reason: str) -> None:
        """Mark the project fatal and leave a marker that excludes it from rescans."""
        self.fatal_error_reason = reason
        self.set_status(ProjectStatus.FATAL_ERROR)
        marker = self.get_fatal_marker_path()
        try:
            os.makedirs(os.path.dirname(marker), exist_ok=True)
            with open(marker, "w", encoding="utf-8") as f:
                json.dump({
                    "project": self.key,
                    "reason": reason,
                    "markedAt": datetime.now(timezone.utc).isoformat(),
                }, f, indent=2)
        except OSError as e:
            logger.error("Could not write fatal marker for %s: %s", self.key, e)

    def has_fatal_marker(self) -> bool:
        return os.path.exists(self.get_fatal_marker_path())

    def clear_fatal_error(self) -> bool:
        """Remove the fatal marker; returns True if one was removed."""
        marker = self.get_fatal_marker_path()
        if os.path.exists(marker):
            os.remove(marker)
            self.fatal_error_reason = None
            return True
        return False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "project": self.key,
            "projectBase": self.project_base,
            "position": self.position,
            "machine": self.machine,
            "operator": self.operator,
            "sourcePath": self.source_path,
            "stagedPath": self.staged_path,
            "fixedPath": self.fixed_path,
            "resultPath": self.result_path,
            "status": self.status.value,
            "compoundJobs": [job.to_dict() for job in self.compound_jobs.values()],
            "tools": [tool.to_dict() for tool in self.tools.values()],
        }
