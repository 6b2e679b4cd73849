"""
Output formatters for scan cycle reports.

Provides:
- Human-readable CLI output
- JSON for machine processing
"""

from jsonscanner.formatters.cli import CLIFormatter
from jsonscanner.formatters.json_formatter import JSONFormatter

__all__ = [
    "CLIFormatter",
    "JSONFormatter",
    "get_formatter",
]


def get_formatter(format_name: str, use_color: bool = True, verbose: bool = False):
    """Get a formatter by name."""
    name = format_name.lower()
    if name in ("text", "cli"):
        return CLIFormatter(use_color=use_color, verbose=verbose)
    if name == "json":
        return JSONFormatter()

    raise ValueError(f"Unknown format: {format_name}")
