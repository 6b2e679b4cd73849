"""
Gundrill time limit.

Total gundrill operation time per program must not exceed 60 minutes.
"""

from typing import Any, Dict, List

from jsonscanner.core.results import RuleResult
from jsonscanner.utils.operations import is_gundrill_tool


RULE_NAME = "gun_drill_60min_limit"

LIMIT_SECONDS = 3600


def gun_drill_60min_limit(project) -> RuleResult:
    violations: List[Dict[str, Any]] = []

    for file_name, compound_job in project.compound_jobs.items():
        program_times: Dict[str, float] = {}

        for op in compound_job.operations:
            if not is_gundrill_tool(op.tool_name, project.tool_categories):
                continue
            program_times[op.program_name] = program_times.get(op.program_name, 0.0) + (op.operation_time or 0)

        for program, total_time in program_times.items():
            if total_time > LIMIT_SECONDS:
                minutes = round(total_time / 60)
                violations.append({
                    "ncFile": file_name,
                    "program": program,
                    "actualTime": minutes,
                    "limit": LIMIT_SECONDS // 60,
                    "message": f"Program {program} uses gundrill tools for {minutes} minutes (limit: 60 min)",
                })

    return RuleResult.from_violations(
        RULE_NAME,
        violations,
        failed_summary=f"{len(violations)} program(s) exceed 60-minute gundrill limit",
        passed_summary="All gundrill operations within time limits",
    )
