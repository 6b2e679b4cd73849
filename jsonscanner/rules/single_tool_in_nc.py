"""
Single tool per NC program.

Checks that all operations within the same program use the same tool.
Auto correction programs are allowed to mix tools and are skipped.
"""

from typing import Any, Dict, List

from jsonscanner.core.results import RuleResult


RULE_NAME = "single_tool_in_nc"

_AUTO_CORRECTION_MARKERS = ("autocorrection", "auto_correction", "contour_correction", "plane_correction")


def single_tool_in_nc(project) -> RuleResult:
    violations: List[Dict[str, Any]] = []

    for file_name, compound_job in project.compound_jobs.items():
        program_tools: Dict[str, List[str]] = {}

        for op in compound_job.operations:
            if _is_auto_correction_program(op):
                continue
            tools = program_tools.setdefault(op.program_name, [])
            if op.tool_name not in tools:
                tools.append(op.tool_name)

        for program, tools in program_tools.items():
            if len(tools) > 1:
                violations.append({
                    "ncFile": file_name,
                    "program": program,
                    "toolCount": len(tools),
                    "tools": tools,
                    "message": f"Program {program} uses {len(tools)} different tools: {', '.join(tools)}",
                })

    return RuleResult.from_violations(
        RULE_NAME,
        violations,
        failed_summary=f"{len(violations)} program(s) use multiple tools",
        passed_summary="All programs use single tools correctly",
    )


def _is_auto_correction_program(op) -> bool:
    program = (op.program_name or "").lower()
    return (
        any(marker in program for marker in _AUTO_CORRECTION_MARKERS)
        or "correction" in (op.operation_type or "")
    )
