"""Core scanning pipeline and data structures."""

from jsonscanner.core.project import Project, ProjectStatus, Operation, CompoundJob, Tool
from jsonscanner.core.results import RuleResult, RuleStatus, ResultsWriter
from jsonscanner.core.staging import TempFileManager, ChangeSet
from jsonscanner.core.scanner import Scanner
from jsonscanner.core.analyzer import Analyzer
from jsonscanner.core.rules import RuleEngine, RuleEngineState
from jsonscanner.core.engine import ScanEngine, CycleReport

__all__ = [
    "Project",
    "ProjectStatus",
    "Operation",
    "CompoundJob",
    "Tool",
    "RuleResult",
    "RuleStatus",
    "ResultsWriter",
    "TempFileManager",
    "ChangeSet",
    "Scanner",
    "Analyzer",
    "RuleEngine",
    "RuleEngineState",
    "ScanEngine",
    "CycleReport",
]
