"""
M110 for helical drilling.

Programs with a helical drilling cycle on a finishing endmill, x-feed or
TGT tool must carry an M110 command.
"""

from typing import Any, Dict, List

from jsonscanner.core.results import RuleResult
from jsonscanner.utils.operations import is_helical_drilling, tool_in_category


RULE_NAME = "m110_helical"

REQUIRED_TOOL_CATEGORIES = ("endmill_finish", "xfeed", "tgt")


def m110_helical(project) -> RuleResult:
    violations: List[Dict[str, Any]] = []

    for file_name, compound_job in project.compound_jobs.items():
        helical_programs: List[str] = []
        programs_with_m110 = set()

        for op in compound_job.operations:
            if is_helical_drilling(op) and _has_required_tool(op, project.tool_categories):
                if op.program_name not in helical_programs:
                    helical_programs.append(op.program_name)
            if "M110" in (op.g_code or ""):
                programs_with_m110.add(op.program_name)

        for program in helical_programs:
            if program not in programs_with_m110:
                violations.append({
                    "ncFile": file_name,
                    "program": program,
                    "message": f"Program {program} requires M110 command for helical drilling but doesn't have it",
                })

    return RuleResult.from_violations(
        RULE_NAME,
        violations,
        failed_summary=f"{len(violations)} helical drilling program(s) missing required M110 command",
        passed_summary="All helical drilling operations have proper M110 commands",
    )


def _has_required_tool(op, categories) -> bool:
    return any(tool_in_category(op.tool_name, category, categories) for category in REQUIRED_TOOL_CATEGORIES)
