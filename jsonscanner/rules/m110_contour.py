"""
RL compensation for 2D contour programs.

Reads the staged NC program (``<stem>.h`` next to the staged descriptor)
and requires an `` RL `` word inside the program's ``JOB:`` section.
"""

import os
from typing import Any, Dict, List, Optional

from jsonscanner.core.results import RuleResult
from jsonscanner.utils import read_file_content
from jsonscanner.utils.operations import is_2d_contour


RULE_NAME = "m110_contour"

NC_PROGRAM_EXTENSION = ".h"


def m110_contour(project) -> RuleResult:
    violations: List[Dict[str, Any]] = []

    for file_name, compound_job in project.compound_jobs.items():
        for program, ops in compound_job.programs().items():
            if not is_2d_contour(ops[0]):
                continue

            nc_path = _find_nc_file(project, file_name)
            if nc_path is None:
                violations.append({
                    "ncFile": file_name,
                    "program": program,
                    "message": f"Cannot find corresponding NC file to check RL compensation for program {program}",
                })
                continue

            if not _has_rl_compensation(nc_path, program):
                violations.append({
                    "ncFile": file_name,
                    "program": program,
                    "ncFilePath": os.path.basename(nc_path),
                    "message": f"Program {program} (2D contour) missing RL compensation in NC file",
                })

    return RuleResult.from_violations(
        RULE_NAME,
        violations,
        failed_summary=f"{len(violations)} 2D contour program(s) missing RL compensation",
        passed_summary="All 2D contour operations have proper RL compensation",
    )


def _find_nc_file(project, file_name: str) -> Optional[str]:
    json_path = project.json_file_path
    if not json_path:
        return None
    directory = os.path.dirname(json_path)

    name = os.path.basename(file_name)
    stem, ext = os.path.splitext(name)
    candidates = [os.path.join(directory, f"{stem}{NC_PROGRAM_EXTENSION}")]
    if ext and ext.lower() != ".json":
        candidates.insert(0, os.path.join(directory, name))

    for candidate in candidates:
        if os.path.isfile(candidate):
            return candidate
    return None


def _has_rl_compensation(nc_path: str, program: str) -> bool:
    content = read_file_content(nc_path)
    if content is None:
        return False

    in_program = False
    for raw_line in content.splitlines():
        line = raw_line.strip()
        if "JOB:" in line:
            if program in line:
                in_program = True
                continue
            if in_program:
                break
        if in_program and " RL " in line:
            return True
    return False
