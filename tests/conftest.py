"""
Shared fixtures for the JSON scanner tests.
"""

import os
import sys
import json
import logging

import pytest

# Add parent directory to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from jsonscanner.config import ScanConfig
from jsonscanner.core.project import Project, ProjectStatus


PROJECT_FILE = "W1234AB01A.json"

VALID_DESCRIPTOR = {
    "operator": "jdoe",
    "compoundJobs": {
        "W1234AB01A.h": {
            "operations": [
                {
                    "programName": "P1",
                    "toolName": "GYS-100 D12",
                    "operationType": "Roughing",
                    "operationTime": 120,
                    "number": 1,
                },
                {
                    "programName": "P1",
                    "toolName": "GYS-100 D12",
                    "operationType": "Roughing",
                    "operationTime": 60,
                    "number": 2,
                },
            ]
        }
    },
    "tools": {"GYS-100 D12": {"diameter": 12}},
}

NC_PROGRAM = "BEGIN PGM W1234AB01A MM\nJOB: P1\nL X+0 Y+0 R0 FMAX\nEND PGM W1234AB01A MM\n"


def write_file(path, content: str) -> str:
    path = str(path)
    os.makedirs(os.path.dirname(path), exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        f.write(content)
    return path


def write_json(path, data) -> str:
    return write_file(path, json.dumps(data, indent=2))


def make_project(operations, file_name="W1234AB01A.h", **kwargs) -> Project:
    """Build a ready project holding one compound job."""
    project = Project(project_base="W1234AB01", position="A", status=ProjectStatus.READY, **kwargs)
    project.load_data({"compoundJobs": {file_name: {"operations": operations}}})
    return project


@pytest.fixture
def temp_root(tmp_path):
    path = tmp_path / "tmp"
    path.mkdir()
    return str(path)


@pytest.fixture
def config(temp_root):
    return ScanConfig(temp_root=temp_root)


@pytest.fixture
def source_tree(tmp_path):
    """ProjectA/MachineX/W1234AB01A.json plus its sibling .h program."""
    root = tmp_path / "ProjectA"
    machine_dir = root / "MachineX"
    write_json(machine_dir / PROJECT_FILE, VALID_DESCRIPTOR)
    write_file(machine_dir / "W1234AB01A.h", NC_PROGRAM)
    return str(root)


@pytest.fixture(autouse=True)
def reset_package_logger():
    """Undo handlers installed by configure_logging so caplog keeps working."""
    yield
    logger = logging.getLogger("jsonscanner")
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
    logger.propagate = True
    logger.setLevel(logging.NOTSET)
