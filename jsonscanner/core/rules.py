"""
Rule engine for the JSON scanner.

Rules are plugin modules in a directory. Each module resolves to exactly
one callable; which rules run for a given project is decided by predicates
from configuration, never by the rule modules themselves.

Supported call shapes, tried in order for every rule:

1. ``rule(project)``: current interface.
2. ``rule(operations)``: legacy rules written against a flat list of
   every Operation in the project.
3. ``rule(project, compound_jobs, tools)``: legacy rules that want the
   compound jobs and tools as lists.
"""

import os
import inspect
import logging
import traceback
import importlib.util
from collections import OrderedDict
from enum import Enum
from types import ModuleType
from typing import Any, Callable, Dict, List, Optional

from jsonscanner.config import RuleConfig, ScanConfig
from jsonscanner.core.project import Operation, Project
from jsonscanner.core.results import RuleResult
from jsonscanner.errors import RuleExecutionError, RuleLoadError


logger = logging.getLogger(__name__)

RULE_ENTRY_POINT = "execute"

# Names in the rules section that are result data rather than rules
RESERVED_RULE_NAMES = ("processedAt", "summary", "rules")

RuleFunction = Callable[..., Any]


class RuleEngineState(Enum):
    UNINITIALIZED = "uninitialized"
    RULES_LOADED = "rules_loaded"
    READY = "ready"


def extract_operations(project: Project) -> List[Operation]:
    """Flat list of every operation across the project's compound jobs."""
    operations: List[Operation] = []
    for compound_job in project.compound_jobs.values():
        operations.extend(compound_job.operations or [])
    return operations


def extract_rule_function(module: ModuleType, file_name: str) -> Optional[RuleFunction]:
    """
    Resolve the single rule callable a module exposes.

    An ``execute`` attribute wins. Otherwise the module's own public
    functions are considered (restricted to ``__all__`` when defined): one
    is used as-is, several fall back to the first with a warning, none
    rejects the module.
    """
    entry = getattr(module, RULE_ENTRY_POINT, None)
    if callable(entry):
        return entry

    exported = getattr(module, "__all__", None)
    candidates = []
    for name, value in vars(module).items():
        if name.startswith("_") or not inspect.isfunction(value):
            continue
        if value.__module__ != module.__name__:
            continue
        if exported is not None and name not in exported:
            continue
        candidates.append((name, value))

    if len(candidates) == 1:
        return candidates[0][1]
    if len(candidates) > 1:
        logger.warning(
            "File %s exports %d functions. Expected exactly 1. Using first function: %s",
            file_name, len(candidates), candidates[0][0],
        )
        return candidates[0][1]

    logger.error("File %s exports no functions", file_name)
    return None


class RuleEngine:
    """
    Discovers rule plugins and runs them against projects.

    Each load imports the plugin files afresh under unique module names,
    so reload_rules() picks up edited rule code without a restart.
    """

    def __init__(self, config: Optional[ScanConfig] = None, plugins_dir: Optional[str] = None):
        self.config = config or ScanConfig()
        self.rules_path = plugins_dir or self.config.plugins_dir
        self.rules: "OrderedDict[str, RuleFunction]" = OrderedDict()
        self.load_errors: Dict[str, str] = {}
        self.state = RuleEngineState.UNINITIALIZED
        self._generation = 0

        self.load_rules()
        self.state = RuleEngineState.READY

    def load_rules(self) -> None:
        """Discover and load every rule file in the plugins directory."""
        self._generation += 1

        if not os.path.isdir(self.rules_path):
            logger.warning("Rules directory not found: %s", self.rules_path)
            self.state = RuleEngineState.RULES_LOADED
            return

        files = sorted(
            f for f in os.listdir(self.rules_path)
            if f.endswith(".py") and not f.startswith("_")
        )
        logger.info("Discovering rules in %s", self.rules_path)

        for file_name in files:
            rule_name = os.path.splitext(file_name)[0]
            if rule_name in RESERVED_RULE_NAMES:
                logger.warning("Ignoring rule file with reserved name: %s", file_name)
                continue
            try:
                module = self._import_rule_module(rule_name, os.path.join(self.rules_path, file_name))
                function = extract_rule_function(module, file_name)
                if function is None:
                    raise RuleLoadError(f"No valid rule function found in {file_name}")
            except Exception as e:
                self.load_errors[rule_name] = str(e)
                logger.error("Failed to load rule file %s: %s", file_name, e)
                continue

            self.rules[rule_name] = function
            logger.info("Loaded rule: %s from %s", rule_name, file_name)

        logger.info("Loaded %d rule(s) from %d file(s)", len(self.rules), len(files))
        if self.rules:
            logger.debug("Available rules: %s", ", ".join(sorted(self.rules)))
        self.state = RuleEngineState.RULES_LOADED

    def _import_rule_module(self, rule_name: str, path: str) -> ModuleType:
        module_name = f"jsonscanner_rule_{self._generation}_{rule_name}"
        spec = importlib.util.spec_from_file_location(module_name, path)
        if spec is None or spec.loader is None:
            raise RuleLoadError(f"Cannot import rule file {path}")
        module = importlib.util.module_from_spec(spec)
        spec.loader.exec_module(module)
        return module

    def reload_rules(self) -> None:
        """Clear the registry and rediscover rules from disk."""
        logger.info("Reloading all rules...")
        self.rules.clear()
        self.load_errors.clear()
        self.state = RuleEngineState.UNINITIALIZED
        self.load_rules()
        self.state = RuleEngineState.READY

    @property
    def rule_count(self) -> int:
        return len(self.rules)

    def should_run_rule(self, project: Project, rule_name: str, rule_config: Optional[RuleConfig]) -> bool:
        """Apply the configured predicate; rules without one never run."""
        if rule_config is None:
            logger.warning("No configuration found for rule: %s, skipping", rule_name)
            return False
        if not rule_config.enabled:
            logger.info("Rule %s is disabled", rule_name)
            return False
        if rule_config.logic is None:
            logger.warning("No logic defined for rule: %s", rule_name)
            return False
        try:
            return bool(rule_config.logic(project))
        except Exception as e:
            logger.error("Error in rule logic for %s: %s", rule_name, e)
            return False

    def execute_rules(self, project: Project) -> Dict[str, Optional[RuleResult]]:
        """
        Run every applicable rule against a project.

        Returns a map of rule name to RuleResult, with None for rules whose
        predicate did not match. A failing rule yields an error result and
        never stops the others.
        """
        logger.info("Executing rules for project: %s", project.key)
        results: Dict[str, Optional[RuleResult]] = OrderedDict()
        rules_run = 0
        rules_skipped = 0

        for rule_name, rule_function in self.rules.items():
            rule_config = self.config.rule_config(rule_name)
            if not self.should_run_rule(project, rule_name, rule_config):
                logger.debug("Skipping rule: %s (not applicable for this project)", rule_name)
                results[rule_name] = None
                rules_skipped += 1
                continue

            logger.info("Running rule: %s", rule_name)
            rules_run += 1
            try:
                value = self.execute_rule(project, rule_name, rule_function)
                results[rule_name] = RuleResult.from_value(rule_name, value)
            except Exception as e:
                logger.error("Rule %s execution failed: %s", rule_name, e)
                results[rule_name] = RuleResult.from_error(rule_name, str(e), traceback.format_exc())

        logger.info("Rules execution completed: %d run, %d skipped", rules_run, rules_skipped)
        return results

    def execute_rule(self, project: Project, rule_name: str, rule_function: RuleFunction) -> Any:
        """Call a rule with each supported argument shape until one succeeds."""
        try:
            return rule_function(project)
        except Exception as first_error:
            logger.warning("Rule %s failed with project parameter, trying with operations array", rule_name)

            try:
                return rule_function(extract_operations(project))
            except Exception:
                logger.warning("Rule %s failed with operations array, trying with compound jobs and tools", rule_name)

            try:
                compound_jobs = list(project.compound_jobs.values())
                tools = list(project.tools.values())
                return rule_function(project, compound_jobs, tools)
            except Exception:
                raise RuleExecutionError(
                    rule_name,
                    f"failed with all parameter combinations: {first_error}",
                ) from first_error

    def get_rules_info(self) -> List[Dict[str, Any]]:
        """Describe every loaded rule and whether it is configured."""
        info = []
        for rule_name in self.rules:
            rule_config = self.config.rule_config(rule_name)
            info.append({
                "name": rule_name,
                "description": rule_config.description if rule_config and rule_config.description
                else "No description available",
                "failure_type": rule_config.failure_type if rule_config else "unknown",
                "has_config": rule_config is not None,
                "has_logic": bool(rule_config and rule_config.logic),
            })
        return sorted(info, key=lambda item: item["name"])
