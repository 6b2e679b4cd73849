"""
CAM JSON Scanner

Quality checks for CAM-exported JSON descriptors and the NC programs they
describe: discovery, read-only staging, JSON repair, rule evaluation and
per-project result artifacts.
"""

__version__ = "1.0.0"
__author__ = "JSON Scanner Team"

from jsonscanner.core.engine import ScanEngine, CycleReport
from jsonscanner.core.project import Project, ProjectStatus
from jsonscanner.core.results import RuleResult, RuleStatus
from jsonscanner.config import ScanConfig

__all__ = [
    "ScanEngine",
    "CycleReport",
    "Project",
    "ProjectStatus",
    "RuleResult",
    "RuleStatus",
    "ScanConfig",
]
