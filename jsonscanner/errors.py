"""
Exception types for the scanning pipeline.

Each stage raises its own error type so the orchestrator can decide
whether a failure skips a file, fails a project, or marks it fatal.
"""

from typing import Optional


class JsonScannerError(Exception):
    """Base class for all jsonscanner errors."""


class ConfigError(JsonScannerError):
    """Raised when a configuration value is missing or invalid."""


class StagingError(JsonScannerError):
    """Raised when a file cannot be copied or hashed into a temp session."""

    def __init__(self, message: str, source_path: Optional[str] = None):
        super().__init__(message)
        self.source_path = source_path


class ScanDirectoryError(JsonScannerError):
    """Raised (and caught by the walker) when a directory cannot be listed."""

    def __init__(self, message: str, directory: Optional[str] = None):
        super().__init__(message)
        self.directory = directory


class AnalysisError(JsonScannerError):
    """Raised when a JSON descriptor stays unparseable after every repair."""


class FatalProjectError(JsonScannerError):
    """A failure that excludes a project from automatic re-processing."""


class RuleLoadError(JsonScannerError):
    """Raised when a rule module cannot be imported or exposes no callable."""


class RuleExecutionError(JsonScannerError):
    """Raised when a rule fails under every supported invocation shape."""

    def __init__(self, rule_name: str, message: str):
        super().__init__(f"Rule {rule_name} failed: {message}")
        self.rule_name = rule_name


class ProjectError(JsonScannerError):
    """Raised on misuse of a Project instance."""


class InvalidTransitionError(ProjectError):
    """Raised when a project status change is not allowed."""

    def __init__(self, current: str, requested: str):
        super().__init__(f"Cannot move project from '{current}' to '{requested}'")
        self.current = current
        self.requested = requested


# Substrings that mark an exception raised during rule-stage processing as fatal
FATAL_ERROR_MARKERS = ("JSON", "parse", "corrupt")


def is_fatal_message(message: str) -> bool:
    """Check whether an error message indicates corrupt or unparseable data."""
    return any(marker in (message or "") for marker in FATAL_ERROR_MARKERS)


def is_fatal_error(error: BaseException) -> bool:
    """
    Decide whether a processing failure should mark the project fatal.

    I/O failures are never fatal, even when the message names a ``.json``
    path; FatalProjectError always is.
    """
    if isinstance(error, OSError):
        return False
    if isinstance(error, FatalProjectError):
        return True
    return is_fatal_message(str(error))
