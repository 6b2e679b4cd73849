"""
Reconditioned endmill check.

Reconditioned endmills are reground to a non-integer diameter (D6.6
instead of D7) and must not be used.
"""

from typing import Any, Dict, List

from jsonscanner.core.results import RuleResult
from jsonscanner.utils.operations import is_finishing_endmill, is_roughing_endmill, tool_diameter


RULE_NAME = "reconditioned_tool"


def reconditioned_tool(project) -> RuleResult:
    violations: List[Dict[str, Any]] = []
    categories = project.tool_categories

    for file_name, compound_job in project.compound_jobs.items():
        for op in compound_job.operations:
            if not (is_finishing_endmill(op.tool_name, categories) or is_roughing_endmill(op.tool_name, categories)):
                continue

            diameter = tool_diameter(op.tool_name)
            if diameter is None or diameter.isdigit():
                continue

            violations.append({
                "ncFile": file_name,
                "program": op.program_name,
                "operation": op.number,
                "tool": op.tool_name,
                "diameter": diameter,
                "message": (
                    f"Operation {op.number} in program {op.program_name} uses reconditioned "
                    f"tool \"{op.tool_name}\" with diameter {diameter}"
                ),
            })

    return RuleResult.from_violations(
        RULE_NAME,
        violations,
        failed_summary=f"{len(violations)} operation(s) use prohibited reconditioned endmill tools",
        passed_summary="No reconditioned endmill tools detected",
    )
