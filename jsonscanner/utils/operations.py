"""
Operation and tool classification helpers used by the bundled rules.

Tool names in CAM exports start with a catalogue prefix (for example
``FRA-P15250`` for a finishing endmill); the category table maps each
category to the prefixes or fragments that identify it.
"""

import re
from typing import Dict, List, Optional


DEFAULT_TOOL_CATEGORIES: Dict[str, List[str]] = {
    "endmill_finish": ["FRA-P15250", "FRA-P15251", "FRA-P15254", "FRA-P8420"],
    "endmill_roughing": ["GYS-", "FRA-P15255", "TOS-"],
    "gundrill": ["GUH-", "TGT-GD"],
    "xfeed": ["X-FEED", "XF-"],
    "tgt": ["TGT-"],
    "cleaning": ["KEFEBURSTE", "CLEAN", "BRUSH"],
    "touchprobe": ["TASTER", "PROBE", "RENISHAW"],
}

# Categories matched on a prefix; the rest match anywhere in the tool name
PREFIX_CATEGORIES = {"endmill_finish", "endmill_roughing", "gundrill", "xfeed", "tgt"}

HELICAL_DRILLING = "openMIND Simple Helical Drilling Cycle"
CONTOUR_2D = "openMIND 2D Contour Milling Cycle"

_DIAMETER_PATTERN = re.compile(r'D(\d+(?:\.\d+)?)')


def _categories(categories: Optional[Dict[str, List[str]]]) -> Dict[str, List[str]]:
    return categories if categories is not None else DEFAULT_TOOL_CATEGORIES


def tool_in_category(
    tool_name: Optional[str],
    category: str,
    categories: Optional[Dict[str, List[str]]] = None,
) -> bool:
    """Check whether a tool name belongs to a category."""
    if not tool_name:
        return False
    entries = _categories(categories).get(category, [])
    if category in PREFIX_CATEGORIES:
        return any(tool_name.startswith(entry) for entry in entries)
    upper = tool_name.upper()
    return any(entry.upper() in upper for entry in entries)


def is_finishing_endmill(tool_name: Optional[str], categories=None) -> bool:
    return tool_in_category(tool_name, "endmill_finish", categories)


def is_roughing_endmill(tool_name: Optional[str], categories=None) -> bool:
    return tool_in_category(tool_name, "endmill_roughing", categories)


def is_gundrill_tool(tool_name: Optional[str], categories=None) -> bool:
    return tool_in_category(tool_name, "gundrill", categories)


def is_cleaning_tool(tool_name: Optional[str], categories=None) -> bool:
    return tool_in_category(tool_name, "cleaning", categories)


def is_touch_probe_tool(tool_name: Optional[str], categories=None) -> bool:
    return tool_in_category(tool_name, "touchprobe", categories)


def is_helical_drilling(operation) -> bool:
    return (operation.operation_type or "") == HELICAL_DRILLING


def is_2d_contour(operation) -> bool:
    return (operation.operation_type or "") == CONTOUR_2D


def tool_diameter(tool_name: Optional[str]) -> Optional[str]:
    """Extract the diameter token from a tool name like 'FRA-P15250 D6.6'."""
    if not tool_name:
        return None
    match = _DIAMETER_PATTERN.search(tool_name)
    return match.group(1) if match else None
