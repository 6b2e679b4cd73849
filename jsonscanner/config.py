"""
Configuration system for the JSON scanner.

Supports YAML and JSON configuration files. One ScanConfig is built at
process start and handed to every component's constructor; nothing reads
configuration from module state.
"""

import os
import re
import json
import logging
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional
from dataclasses import dataclass, field, asdict

import yaml

from jsonscanner.errors import ConfigError
from jsonscanner.utils.operations import (
    CONTOUR_2D, DEFAULT_TOOL_CATEGORIES, HELICAL_DRILLING, tool_in_category,
)


logger = logging.getLogger(__name__)

# Default configuration file names to search for
CONFIG_FILE_NAMES = [
    ".jsonscanner.yaml",
    ".jsonscanner.yml",
    ".jsonscanner.json",
    "jsonscanner.yaml",
    "jsonscanner.yml",
    "jsonscanner.json",
]

LOG_LEVELS = ("debug", "info", "warning", "error")

DEFAULT_NC_EXTENSIONS = [".nc", ".h", ".mpf", ".eia"]

DEFAULT_IGNORED_DIRECTORIES = [".git", ".svn", "__pycache__", "node_modules"]

BUNDLED_PLUGINS_DIR = os.path.join(os.path.dirname(os.path.abspath(__file__)), "rules")

# Keys of the original camelCase configuration contract
CAMEL_CASE_KEYS = {
    "testMode": "test_mode",
    "autorun": "autorun",
    "autoRun": "autorun",
    "scanIntervalMs": "scan_interval_ms",
    "forceReprocess": "force_reprocess",
    "logLevel": "log_level",
    "logFile": "log_file",
    "scanPath": "scan_path",
    "testScanPath": "test_scan_path",
    "pluginsDir": "plugins_dir",
    "tempRoot": "temp_root",
    "resultsDir": "results_dir",
    "ncExtensions": "nc_extensions",
    "ignoredDirectories": "ignored_directories",
    "toolCategories": "tool_categories",
}

Predicate = Callable[[Any], bool]


def build_predicate(
    when: Optional[Dict[str, Any]],
    tool_categories: Optional[Dict[str, List[str]]] = None,
) -> Optional[Predicate]:
    """
    Build a rule applicability predicate from a declarative condition block.

    All given conditions must hold. Supported keys: ``always``,
    ``machines``, ``operators``, ``positions``, ``project_pattern``,
    ``operation_types``, ``tool_categories``, ``min_operations``.
    Returns None when ``when`` is None (no predicate configured).
    """
    if when is None:
        return None
    if not isinstance(when, dict):
        raise ConfigError(f"Rule condition must be a mapping, got {type(when).__name__}")

    unknown = set(when) - {
        "always", "machines", "operators", "positions", "project_pattern",
        "operation_types", "tool_categories", "min_operations",
    }
    if unknown:
        raise ConfigError(f"Unknown rule condition(s): {', '.join(sorted(unknown))}")

    checks: List[Predicate] = []

    if "always" in when:
        always = bool(when["always"])
        checks.append(lambda project: always)

    if "machines" in when:
        machines = {str(m).lower() for m in when["machines"]}
        checks.append(lambda project: (project.machine or "").lower() in machines)

    if "operators" in when:
        operators = {str(o).lower() for o in when["operators"]}
        checks.append(lambda project: (project.operator or "").lower() in operators)

    if "positions" in when:
        positions = {str(p).upper() for p in when["positions"]}
        checks.append(lambda project: project.position.upper() in positions)

    if "project_pattern" in when:
        try:
            pattern = re.compile(when["project_pattern"])
        except re.error as e:
            raise ConfigError(f"Invalid project_pattern: {e}") from e
        checks.append(lambda project: bool(pattern.search(project.key)))

    if "operation_types" in when:
        op_types = set(when["operation_types"])
        checks.append(lambda project: any(op.operation_type in op_types for op in project.operations()))

    if "tool_categories" in when:
        categories = list(when["tool_categories"])
        checks.append(lambda project: any(
            tool_in_category(op.tool_name, category, tool_categories)
            for op in project.operations()
            for category in categories
        ))

    if "min_operations" in when:
        minimum = int(when["min_operations"])
        checks.append(lambda project: len(project.operations()) >= minimum)

    def predicate(project) -> bool:
        return all(check(project) for check in checks)

    return predicate


@dataclass
class RuleConfig:
    """Configuration for one rule: its description and applicability."""
    description: str = ""
    failure_type: str = "unknown"
    enabled: bool = True
    when: Optional[Dict[str, Any]] = None
    logic: Optional[Predicate] = None
    logic_from_when: bool = field(default=False, init=False, repr=False, compare=False)

    def __post_init__(self):
        if self.logic is None and self.when is not None:
            self.logic = build_predicate(self.when)
            self.logic_from_when = True

    def bind_tool_categories(self, tool_categories: Dict[str, List[str]]) -> None:
        """Rebuild a declarative predicate against a custom tool category table."""
        if self.logic_from_when:
            self.logic = build_predicate(self.when, tool_categories)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RuleConfig":
        data = dict(data or {})
        if "failureType" in data:
            data["failure_type"] = data.pop("failureType")
        known_fields = {"description", "failure_type", "enabled", "when", "logic"}
        return cls(**{k: v for k, v in data.items() if k in known_fields})

    def to_dict(self) -> Dict[str, Any]:
        return {
            "description": self.description,
            "failure_type": self.failure_type,
            "enabled": self.enabled,
            "when": self.when,
        }


DEFAULT_RULES: Dict[str, Dict[str, Any]] = {
    "single_tool_in_nc": {
        "description": "Every program in an NC file uses a single tool",
        "failure_type": "ncfile",
        "when": {"always": True},
    },
    "gun_drill_60min_limit": {
        "description": "Gundrill time per program stays under 60 minutes",
        "failure_type": "ncfile",
        "when": {"tool_categories": ["gundrill"]},
    },
    "reconditioned_tool": {
        "description": "No reconditioned endmills are used",
        "failure_type": "tool",
        "when": {"tool_categories": ["endmill_finish", "endmill_roughing"]},
    },
    "m110_helical": {
        "description": "Helical drilling programs carry an M110 command",
        "failure_type": "program",
        "when": {"operation_types": [HELICAL_DRILLING]},
    },
    "m110_contour": {
        "description": "2D contour programs use RL compensation",
        "failure_type": "program",
        "when": {"operation_types": [CONTOUR_2D]},
    },
    "auto_correction_contour": {
        "description": "Contour finishing follows the 6-step auto correction pattern",
        "failure_type": "program",
        "when": {"tool_categories": ["touchprobe"]},
    },
    "auto_correction_plane": {
        "description": "Plane finishing follows the 4-step auto correction pattern",
        "failure_type": "program",
        "when": {"tool_categories": ["touchprobe"]},
    },
}


def default_rule_configs() -> Dict[str, RuleConfig]:
    return {name: RuleConfig.from_dict(data) for name, data in DEFAULT_RULES.items()}


@dataclass
class OutputConfig:
    """Configuration for output formatting."""
    format: str = "text"  # text, json
    output_file: Optional[str] = None
    verbose: bool = False
    color: bool = True


@dataclass
class ScanConfig:
    """
    Main configuration for the JSON scanner.

    Example YAML config:

    ```yaml
    app:
      test_mode: false
      autorun: true
      scan_interval_ms: 60000
      force_reprocess: false
      log_level: info

    scan:
      scan_path: /data/cam/exports
      test_scan_path: ./test-data
      nc_extensions: [.nc, .h, .mpf, .eia]

    rules:
      single_tool_in_nc:
        description: Every program uses a single tool
        when:
          always: true
      gun_drill_60min_limit:
        when:
          tool_categories: [gundrill]
          machines: [DMU100, DMC125]
    ```
    """
    # Application settings
    test_mode: bool = False
    autorun: bool = False
    scan_interval_ms: int = 60000
    force_reprocess: bool = False
    log_level: str = "info"
    log_file: Optional[str] = None

    # Paths
    scan_path: Optional[str] = None
    test_scan_path: Optional[str] = None
    plugins_dir: str = BUNDLED_PLUGINS_DIR
    temp_root: Optional[str] = None
    results_dir: Optional[str] = None

    # Discovery
    nc_extensions: List[str] = field(default_factory=lambda: list(DEFAULT_NC_EXTENSIONS))
    ignored_directories: List[str] = field(default_factory=lambda: list(DEFAULT_IGNORED_DIRECTORIES))

    # Rules
    tool_categories: Dict[str, List[str]] = field(
        default_factory=lambda: {k: list(v) for k, v in DEFAULT_TOOL_CATEGORIES.items()}
    )
    rules: Dict[str, RuleConfig] = field(default_factory=default_rule_configs)

    # Output settings
    output: OutputConfig = field(default_factory=OutputConfig)

    def __post_init__(self):
        self.log_level = str(self.log_level).lower()
        if self.log_level == "warn":
            self.log_level = "warning"
        if self.log_level not in LOG_LEVELS:
            raise ConfigError(
                f"Invalid log_level '{self.log_level}', expected one of: {', '.join(LOG_LEVELS)}"
            )
        try:
            self.scan_interval_ms = int(self.scan_interval_ms)
        except (TypeError, ValueError) as e:
            raise ConfigError(f"scan_interval_ms must be a number: {e}") from e
        if self.scan_interval_ms < 0:
            raise ConfigError("scan_interval_ms must not be negative")
        self.nc_extensions = [
            ext.lower() if ext.startswith(".") else f".{ext.lower()}"
            for ext in self.nc_extensions
        ]
        for rule_config in self.rules.values():
            rule_config.bind_tool_categories(self.tool_categories)

    def active_scan_path(self) -> Optional[str]:
        """The scan root for the current mode."""
        if self.test_mode and self.test_scan_path:
            return self.test_scan_path
        return self.scan_path

    def rule_config(self, rule_name: str) -> Optional[RuleConfig]:
        return self.rules.get(rule_name)

    def to_dict(self) -> Dict[str, Any]:
        """Convert config to a dictionary."""
        data = asdict(self)
        data["rules"] = {name: rc.to_dict() for name, rc in self.rules.items()}
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ScanConfig":
        """Create config from a dictionary."""
        data = dict(data)

        # Flatten the 'app' and 'scan' sections
        for section in ("app", "scan", "paths"):
            if isinstance(data.get(section), dict):
                data.update(data.pop(section))

        for camel, snake in CAMEL_CASE_KEYS.items():
            if camel in data and camel != snake:
                data[snake] = data.pop(camel)

        if isinstance(data.get("output"), dict):
            data["output"] = OutputConfig(**data["output"])

        merge_defaults = data.pop("merge_default_rules", True)
        if "rules" in data:
            rules = default_rule_configs() if merge_defaults else {}
            for name, rule_data in (data.pop("rules") or {}).items():
                if isinstance(rule_data, RuleConfig):
                    rules[name] = rule_data
                else:
                    rules[name] = RuleConfig.from_dict(rule_data)
            data["rules"] = rules

        known_fields = {f.name for f in cls.__dataclass_fields__.values()}
        unknown = sorted(k for k in data if k not in known_fields)
        if unknown:
            logger.warning("Ignoring unknown configuration keys: %s", ", ".join(unknown))
        filtered_data = {k: v for k, v in data.items() if k in known_fields}

        return cls(**filtered_data)


def load_config(path: str) -> Dict[str, Any]:
    """
    Load configuration from a file.

    Supports YAML and JSON formats.
    """
    path = Path(path)

    if not path.exists():
        raise FileNotFoundError(f"Configuration file not found: {path}")

    content = path.read_text(encoding="utf-8")

    try:
        if path.suffix == ".json":
            data = json.loads(content)
        else:
            data = yaml.safe_load(content)
    except (json.JSONDecodeError, yaml.YAMLError) as e:
        raise ConfigError(f"Could not parse configuration file {path}: {e}") from e

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"Configuration file {path} must contain a mapping")
    return data


def find_config(start_path: str = ".") -> Optional[str]:
    """
    Find a configuration file by searching up the directory tree.

    Returns the path to the first config file found, or None.
    """
    current = Path(start_path).resolve()
    if current.is_file():
        current = current.parent

    while True:
        for name in CONFIG_FILE_NAMES:
            config_path = current / name
            if config_path.exists():
                return str(config_path)
        if current == current.parent:
            return None
        current = current.parent


def load_scan_config(path: Optional[str] = None, start_dir: str = ".") -> ScanConfig:
    """
    Load a ScanConfig from a file or create a default one.

    If path is None, searches for a config file starting from start_dir.
    """
    if path is None:
        path = find_config(start_dir)

    if path is None:
        return ScanConfig()

    logger.debug("Loading configuration from %s", path)
    return ScanConfig.from_dict(load_config(path))


def create_default_config() -> str:
    """
    Create a default configuration file content.
    """
    config = {
        "app": {
            "test_mode": False,
            "autorun": False,
            "scan_interval_ms": 60000,
            "force_reprocess": False,
            "log_level": "info",
        },
        "scan": {
            "scan_path": ".",
            "nc_extensions": list(DEFAULT_NC_EXTENSIONS),
            "ignored_directories": list(DEFAULT_IGNORED_DIRECTORIES),
        },
        "rules": DEFAULT_RULES,
        "output": {
            "format": "text",
            "verbose": False,
            "color": True,
        },
    }

    return yaml.safe_dump(config, default_flow_style=False, sort_keys=False)
