"""
Auto correction pattern for contour finishing.

A contour finishing program on a finishing endmill must follow six steps:
prefinish with side stock, cleaning, measuring, finish with less side
stock, cleaning, and a final measurement at the finish side stock.
"""

from typing import Any, Dict, List, Optional

from jsonscanner.core.results import RuleResult
from jsonscanner.utils.operations import is_cleaning_tool, is_finishing_endmill, is_touch_probe_tool


RULE_NAME = "auto_correction_contour"

PATTERN_LENGTH = 6


def auto_correction_contour(project) -> RuleResult:
    violations: List[Dict[str, Any]] = []
    categories = project.tool_categories

    for file_name, compound_job in project.compound_jobs.items():
        for program, ops in compound_job.programs().items():
            if not _is_contour_finishing(ops[0], categories):
                continue
            violation = _check_pattern(file_name, program, ops, categories)
            if violation:
                violations.append(violation)

    return RuleResult.from_violations(
        RULE_NAME,
        violations,
        failed_summary=f"{len(violations)} contour program(s) have incorrect auto correction patterns",
        passed_summary="All contour programs have correct auto correction patterns",
    )


def _is_contour_finishing(op, categories) -> bool:
    op_type = (op.operation_type or "").lower()
    return ("contour" in op_type or "helical" in op_type) and is_finishing_endmill(op.tool_name, categories)


def _gt(value, other) -> bool:
    return value is not None and other is not None and value > other


def _violation(file_name: str, program: str, step: str, message: str, **details) -> Dict[str, Any]:
    violation = {"ncFile": file_name, "program": program, "step": step}
    violation.update(details)
    violation["message"] = message
    return violation


def _check_pattern(file_name: str, program: str, ops, categories) -> Optional[Dict[str, Any]]:
    if len(ops) < PATTERN_LENGTH:
        return _violation(
            file_name, program, "pattern",
            f"Contour auto correction pattern requires 6 operations, found {len(ops)}",
            expected="6 operations", actual=len(ops),
        )

    prefinish, clean_1, measure, finish, clean_2, final = ops[:PATTERN_LENGTH]

    if not _gt(prefinish.side_stock, 0):
        return _violation(
            file_name, program, "1-prefinish",
            f"Step 1 (prefinish): sideStock must be > 0, found {prefinish.side_stock}",
            operation=prefinish.number, expected="sideStock > 0", actual=prefinish.side_stock,
        )

    if not is_cleaning_tool(clean_1.tool_name, categories):
        return _violation(
            file_name, program, "2-cleaning",
            f"Step 2 (cleaning): must use cleaning tool, found {clean_1.tool_name}",
            operation=clean_1.number, tool=clean_1.tool_name,
        )

    if not is_touch_probe_tool(measure.tool_name, categories):
        return _violation(
            file_name, program, "3-measure",
            f"Step 3 (measure): must use touch probe, found {measure.tool_name}",
            operation=measure.number, tool=measure.tool_name,
        )

    if not _gt(prefinish.side_stock, finish.side_stock):
        return _violation(
            file_name, program, "4-finish",
            "Step 4 (finish): sideStock must be less than prefinish",
            operation=finish.number, expected=f"sideStock < {prefinish.side_stock}", actual=finish.side_stock,
        )

    if not is_cleaning_tool(clean_2.tool_name, categories):
        return _violation(
            file_name, program, "5-cleaning",
            f"Step 5 (cleaning): must use cleaning tool, found {clean_2.tool_name}",
            operation=clean_2.number, tool=clean_2.tool_name,
        )

    if not is_touch_probe_tool(final.tool_name, categories):
        return _violation(
            file_name, program, "6-final-measure",
            f"Step 6 (final measure): must use touch probe, found {final.tool_name}",
            operation=final.number, tool=final.tool_name,
        )

    if final.side_stock != finish.side_stock:
        return _violation(
            file_name, program, "6-final-measure",
            "Step 6 (final measure): sideStock must match finish operation",
            operation=final.number, expected=f"sideStock = {finish.side_stock}", actual=final.side_stock,
        )

    return None
