"""
Auto correction pattern for plane machining.

Plane programs need at least four steps: roughing with a stepover, a
semi-finish with a smaller stepover, cleaning, then a measurement.
"""

from typing import Any, Dict, List, Optional

from jsonscanner.core.results import RuleResult
from jsonscanner.utils.operations import is_cleaning_tool, is_touch_probe_tool


RULE_NAME = "auto_correction_plane"

MIN_PATTERN_LENGTH = 4

_PLANE_MARKERS = ("plane", "face", "2d contour")


def auto_correction_plane(project) -> RuleResult:
    violations: List[Dict[str, Any]] = []
    categories = project.tool_categories

    for file_name, compound_job in project.compound_jobs.items():
        for program, ops in compound_job.programs().items():
            op_type = (ops[0].operation_type or "").lower()
            if not any(marker in op_type for marker in _PLANE_MARKERS):
                continue
            violation = _check_pattern(file_name, program, ops, categories)
            if violation:
                violations.append(violation)

    return RuleResult.from_violations(
        RULE_NAME,
        violations,
        failed_summary=f"{len(violations)} plane program(s) have incorrect auto correction patterns",
        passed_summary="All plane programs have correct auto correction patterns",
    )


def _check_pattern(file_name: str, program: str, ops, categories) -> Optional[Dict[str, Any]]:
    base = {"ncFile": file_name, "program": program}

    if len(ops) < MIN_PATTERN_LENGTH:
        return dict(
            base, step="pattern", expected="at least 4 operations", actual=len(ops),
            message=f"Plane auto correction pattern requires at least 4 operations, found {len(ops)}",
        )

    rough, semi_finish, cleaning, measure = ops[:MIN_PATTERN_LENGTH]

    if rough.stepover is None or rough.stepover <= 0:
        return dict(
            base, step="1-rough", operation=rough.number, expected="stepover > 0", actual=rough.stepover,
            message=f"Step 1 (rough): stepover must be > 0 for roughing, found {rough.stepover}",
        )

    if semi_finish.stepover is None or semi_finish.stepover >= rough.stepover:
        return dict(
            base, step="2-semi-finish", operation=semi_finish.number,
            expected=f"stepover < {rough.stepover}", actual=semi_finish.stepover,
            message="Step 2 (semi-finish): stepover must be smaller than roughing",
        )

    if not is_cleaning_tool(cleaning.tool_name, categories):
        return dict(
            base, step="3-cleaning", operation=cleaning.number, tool=cleaning.tool_name,
            message=f"Step 3 (cleaning): must use cleaning tool, found {cleaning.tool_name}",
        )

    if not is_touch_probe_tool(measure.tool_name, categories):
        return dict(
            base, step="4-measure", operation=measure.number, tool=measure.tool_name,
            message=f"Step 4 (measure): must use touch probe, found {measure.tool_name}",
        )

    return None
