"""
Utility functions for the JSON scanner.
"""

import os
import re
import json
import hashlib
import logging
from typing import Any, Optional


logger = logging.getLogger(__name__)

HASH_CHUNK_SIZE = 64 * 1024

# Bare NaN/Infinity values emitted by the CAM exporter; applied outside string literals only
_INVALID_NUMBER_PATTERN = re.compile(
    r'(?<=[:\[,])(\s*)-?(?:NaN|Infinity)\b(?=\s*[,\]}])'
)
_TRAILING_COMMA_PATTERN = re.compile(r',\s*([}\]])')
_CONTROL_CHAR_PATTERN = re.compile(r'[\x00-\x1f]+')
_STRING_LITERAL_PATTERN = re.compile(r'"[^"\\]*(?:\\.[^"\\]*)*"', re.DOTALL)


def get_file_hash(file_path: str, algorithm: str = "md5") -> str:
    """Hash a file by streaming it in chunks."""
    digest = hashlib.new(algorithm)
    with open(file_path, 'rb') as f:
        for chunk in iter(lambda: f.read(HASH_CHUNK_SIZE), b''):
            digest.update(chunk)
    return digest.hexdigest()


def normalize_path(path: str) -> str:
    """Normalize a file path."""
    return os.path.normpath(os.path.abspath(path))


def is_within(path: str, base: str) -> bool:
    """Check whether path lies inside base."""
    path = normalize_path(path)
    base = normalize_path(base)
    try:
        return os.path.commonpath([path, base]) == base
    except ValueError:
        # Different drives on Windows
        return False


def _sub_outside_strings(pattern: re.Pattern, replacement: str, content: str) -> str:
    """Apply a substitution to the text between JSON string literals only."""
    parts = []
    position = 0
    for match in _STRING_LITERAL_PATTERN.finditer(content):
        parts.append(pattern.sub(replacement, content[position:match.start()]))
        parts.append(match.group(0))
        position = match.end()
    parts.append(pattern.sub(replacement, content[position:]))
    return ''.join(parts)


def sanitize_json_content(content: str) -> str:
    """Replace bare NaN / Infinity literals with null so the text is valid JSON."""
    return _sub_outside_strings(_INVALID_NUMBER_PATTERN, r'\1null', content)


def repair_json_text(content: str) -> str:
    """Strip trailing commas before closing brackets and remove control characters."""
    content = _sub_outside_strings(_TRAILING_COMMA_PATTERN, r'\1', content)
    return _CONTROL_CHAR_PATTERN.sub('', content)


def _reject_constant(token: str) -> Any:
    raise ValueError(f"Invalid JSON constant: {token}")


def parse_json_strict(content: str) -> Any:
    """Parse JSON text, rejecting NaN and Infinity which the stdlib accepts."""
    return json.loads(content, parse_constant=_reject_constant)


def read_file_content(file_path: str) -> Optional[str]:
    """Read a UTF-8 text file, returning None when it cannot be read."""
    try:
        with open(file_path, 'r', encoding='utf-8', errors='replace') as f:
            return f.read()
    except OSError as e:
        logger.error("Failed to read file: %s -> %s", file_path, e)
        return None


def write_json_file(file_path: str, data: Any) -> None:
    """Write data as indented JSON, creating parent directories."""
    os.makedirs(os.path.dirname(file_path) or '.', exist_ok=True)
    with open(file_path, 'w', encoding='utf-8') as f:
        json.dump(data, f, indent=2, default=str)
    logger.debug("Saved JSON file: %s", file_path)
