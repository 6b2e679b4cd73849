"""
JSON validation and repair.

The Analyzer loads a project's staged descriptor, applies a short, ordered
repair ladder for the syntax slips the CAM exporter is known to make, and
writes the result as a "fixed" artifact. It never guesses at structure:
anything still unparseable after the ladder fails closed.
"""

import os
import logging
from typing import Any, Optional

from jsonscanner.core.project import Project, ProjectStatus
from jsonscanner.errors import ProjectError
from jsonscanner.utils import (
    parse_json_strict, read_file_content, repair_json_text,
    sanitize_json_content, write_json_file,
)


logger = logging.getLogger(__name__)


class Analyzer:
    """Validates and repairs project JSON before rule evaluation."""

    def analyze_project(self, project: Project) -> Project:
        """
        Validate and fix the project's JSON in place.

        Sets status to ``analyzed`` and writes the fixed artifact on
        success, or ``analysis_failed`` (no artifact) when the JSON cannot
        be repaired. A project whose JSON file is missing or unreadable is
        left unchanged.
        """
        logger.info("Analyzing project %s", project.key)

        json_path = project.json_file_path
        if not json_path or not os.path.exists(json_path):
            logger.warning("No JSON file found for project %s", project.key)
            return project

        content = read_file_content(json_path)
        if content is None:
            logger.warning("Could not read JSON file for project %s, leaving it unchanged", project.key)
            return project

        data = self.parse_with_repair(content, os.path.basename(json_path))
        if data is None:
            logger.warning("Skipped invalid JSON: %s", os.path.basename(json_path))
            project.set_status(ProjectStatus.ANALYSIS_FAILED)
            return project

        try:
            project.load_data(data)
        except ProjectError as e:
            logger.error("Descriptor for %s has an unexpected structure: %s", project.key, e)
            project.set_status(ProjectStatus.ANALYSIS_FAILED)
            return project

        fixed_path = project.fixed_path or project.get_fixed_file_path()
        write_json_file(fixed_path, data)
        project.fixed_path = fixed_path
        logger.info("Fixed JSON saved: %s", os.path.basename(fixed_path))

        project.set_status(ProjectStatus.ANALYZED)
        return project

    def validate_and_fix_json(self, json_path: str) -> Optional[Any]:
        """
        Read and parse a JSON file, applying syntactic repairs if needed.

        Returns the parsed structure, or None if it cannot be read or
        repaired.
        """
        content = read_file_content(json_path)
        if not content:
            return None
        return self.parse_with_repair(content, os.path.basename(json_path))

    def parse_with_repair(self, content: str, label: str = "<text>") -> Optional[Any]:
        """Run the repair ladder over JSON text."""
        content = sanitize_json_content(content)

        try:
            return parse_json_strict(content)
        except ValueError:
            logger.warning("Trying to auto-fix invalid JSON: %s", label)

        try:
            return parse_json_strict(repair_json_text(content))
        except ValueError as e:
            logger.error("Failed to fix JSON: %s (%s)", label, e)
            return None
