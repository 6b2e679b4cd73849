"""
Temporary staging sessions.

The TempFileManager guarantees read-only access to source files: every
file the pipeline works on is first copied into an isolated session
directory, and all writes target that directory. Each copy is tracked by
content hash and modification time so later scans can tell which sources
actually changed.

Layout::

    <temp root>/jsonscanner/session_<timestamp>_<random>/<mirrored path>
"""

import os
import time
import random
import shutil
import string
import hashlib
import logging
import tempfile
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Union

from jsonscanner.errors import StagingError
from jsonscanner.utils import get_file_hash, is_within, normalize_path


logger = logging.getLogger(__name__)

APP_NAMESPACE = "jsonscanner"
SESSION_PREFIX = "session_"
MAX_STAGED_NAME_LENGTH = 180
DEFAULT_MAX_SESSION_AGE_HOURS = 24

_BASE36 = string.digits + string.ascii_lowercase


@dataclass
class TrackedFile:
    """Hash and mtime recorded when a source file was staged."""
    original_path: str
    staged_path: str
    hash: str
    mtime: float


@dataclass
class FileChange:
    """A tracked file whose content differs from its staged copy."""
    path: str
    old_hash: str
    new_hash: str
    old_mtime: float
    new_mtime: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            "path": self.path,
            "oldHash": self.old_hash,
            "newHash": self.new_hash,
            "oldMtime": self.old_mtime,
            "newMtime": self.new_mtime,
        }


@dataclass
class ChangeSet:
    """Result of a change detection pass."""
    changed_files: List[FileChange] = field(default_factory=list)
    new_files: List[str] = field(default_factory=list)
    deleted_files: List[str] = field(default_factory=list)

    @property
    def has_changes(self) -> bool:
        return bool(self.changed_files or self.new_files or self.deleted_files)

    @property
    def summary(self) -> str:
        total = len(self.changed_files) + len(self.new_files) + len(self.deleted_files)
        if not total:
            return "No changes detected"
        return (
            f"{total} changes detected: {len(self.changed_files)} modified, "
            f"{len(self.new_files)} new, {len(self.deleted_files)} deleted"
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "hasChanges": self.has_changes,
            "changedFiles": [c.to_dict() for c in self.changed_files],
            "newFiles": list(self.new_files),
            "deletedFiles": list(self.deleted_files),
            "summary": self.summary,
        }


def generate_session_id() -> str:
    """Millisecond timestamp plus six random base36 characters."""
    timestamp = int(time.time() * 1000)
    suffix = "".join(random.choice(_BASE36) for _ in range(6))
    return f"{SESSION_PREFIX}{timestamp}_{suffix}"


def default_temp_base(temp_root: Optional[str] = None) -> str:
    return os.path.join(temp_root or tempfile.gettempdir(), APP_NAMESPACE)


class TempFileManager:
    """
    Manages one staging session.

    The session directory is exclusive to this instance; nothing outside
    ``session_path`` is ever written or removed.
    """

    def __init__(self, temp_root: Optional[str] = None, session_id: Optional[str] = None):
        self.temp_base_path = default_temp_base(temp_root)
        self.session_id = session_id or generate_session_id()
        self.session_path = os.path.join(self.temp_base_path, self.session_id)
        self.file_hashes: Dict[str, TrackedFile] = {}
        self.path_mapping: Dict[str, str] = {}

        self.ensure_session_directory()

    def ensure_session_directory(self) -> None:
        try:
            os.makedirs(self.session_path, exist_ok=True)
        except OSError as e:
            raise StagingError(f"Failed to create session directory {self.session_path}: {e}") from e
        logger.debug("Using session directory: %s", self.session_path)

    # Naming

    def get_relative_path(self, absolute_path: str, base_path: Optional[str] = None) -> str:
        """
        Staging name for a source path.

        Inside ``base_path`` the relative path is mirrored; otherwise the
        absolute path is flattened into a single safe name. Names that would
        be too long collapse to ``<hash8>_<parent dir>_<file name>``.
        """
        absolute_path = normalize_path(absolute_path)
        if base_path and is_within(absolute_path, base_path):
            relative = os.path.relpath(absolute_path, normalize_path(base_path))
            if relative == os.curdir:
                relative = os.path.basename(absolute_path)
        else:
            relative = (
                absolute_path.replace(":", "_COLON_")
                .replace("\\", "_BACKSLASH_")
                .replace("/", "_SLASH_")
            )

        if len(relative) > MAX_STAGED_NAME_LENGTH:
            digest = hashlib.md5(absolute_path.encode("utf-8")).hexdigest()
            file_name = os.path.basename(absolute_path)
            dir_name = os.path.basename(os.path.dirname(absolute_path))
            return f"{digest[:8]}_{dir_name}_{file_name}"

        return relative

    def staged_path_for(self, source_path: str, base_path: Optional[str] = None) -> str:
        return os.path.join(self.session_path, self.get_relative_path(source_path, base_path))

    # Copying

    def copy_to_temp(
        self,
        source_path: str,
        base_path: Optional[str] = None,
        transform: Optional[Callable[[str], str]] = None,
    ) -> Union[str, List[str]]:
        """
        Copy a file or a directory tree into the session.

        Returns the staged path for a file, or the list of staged paths for
        a directory. ``transform`` rewrites a file's text on the way in; the
        tracked hash and mtime always describe the untouched source.
        Partially copied directories are left in place on error.
        """
        source_path = normalize_path(source_path)
        staged_path = self.staged_path_for(source_path, base_path)
        try:
            if os.path.isdir(source_path):
                return self._copy_directory(source_path, staged_path, transform)
            return self._copy_file(source_path, staged_path, transform)
        except StagingError:
            raise
        except OSError as e:
            logger.error("Failed to copy %s to temp: %s", source_path, e)
            raise StagingError(f"Failed to stage {source_path}: {e}", source_path) from e

    def _copy_file(
        self,
        source_path: str,
        staged_path: str,
        transform: Optional[Callable[[str], str]] = None,
    ) -> str:
        os.makedirs(os.path.dirname(staged_path), exist_ok=True)

        try:
            source_hash = get_file_hash(source_path)
            source_mtime = os.stat(source_path).st_mtime
            if transform is None:
                shutil.copyfile(source_path, staged_path)
            else:
                with open(source_path, "r", encoding="utf-8", errors="replace") as f:
                    content = transform(f.read())
                with open(staged_path, "w", encoding="utf-8") as f:
                    f.write(content)
        except OSError as e:
            raise StagingError(f"Failed to copy file {source_path}: {e}", source_path) from e

        self.file_hashes[source_path] = TrackedFile(
            original_path=source_path,
            staged_path=staged_path,
            hash=source_hash,
            mtime=source_mtime,
        )
        self.path_mapping[staged_path] = source_path

        logger.debug("Copied file: %s -> %s", source_path, staged_path)
        return staged_path

    def _copy_directory(
        self,
        source_path: str,
        staged_path: str,
        transform: Optional[Callable[[str], str]] = None,
    ) -> List[str]:
        os.makedirs(staged_path, exist_ok=True)
        copied = [staged_path]

        for item in sorted(os.listdir(source_path)):
            source_item = os.path.join(source_path, item)
            staged_item = os.path.join(staged_path, item)
            if os.path.isdir(source_item):
                copied.extend(self._copy_directory(source_item, staged_item, transform))
            else:
                self._copy_file(source_item, staged_item, transform)
                copied.append(staged_item)

        logger.debug("Copied directory: %s -> %s", source_path, staged_path)
        return copied

    # Change detection

    def calculate_file_hash(self, file_path: str) -> str:
        return get_file_hash(file_path)

    def detect_changes(self, source_paths: Optional[List[str]] = None) -> ChangeSet:
        """
        Compare sources with their staged snapshots.

        The mtime is checked first; the hash is only recomputed when the
        mtime moved, so untouched files are never re-read.
        """
        changes = ChangeSet()
        if source_paths is None:
            paths = list(self.file_hashes)
        else:
            paths = [normalize_path(p) for p in source_paths]

        for source_path in paths:
            if not os.path.exists(source_path):
                if source_path in self.file_hashes:
                    changes.deleted_files.append(source_path)
                continue

            stored = self.file_hashes.get(source_path)
            if stored is None:
                changes.new_files.append(source_path)
                continue

            current_mtime = os.stat(source_path).st_mtime
            if current_mtime == stored.mtime:
                continue

            current_hash = self.calculate_file_hash(source_path)
            if current_hash != stored.hash:
                changes.changed_files.append(FileChange(
                    path=source_path,
                    old_hash=stored.hash,
                    new_hash=current_hash,
                    old_mtime=stored.mtime,
                    new_mtime=current_mtime,
                ))

        logger.info("Change detection: %s", changes.summary)
        return changes

    def update_changed_files(self, changes: ChangeSet, base_path: Optional[str] = None) -> List[str]:
        """Re-stage modified files and stage new ones."""
        updated: List[str] = []
        for change in changes.changed_files:
            updated.append(self.copy_to_temp(change.path, base_path))
            logger.info("Updated temp copy: %s", change.path)
        for new_path in changes.new_files:
            updated.append(self.copy_to_temp(new_path, base_path))
            logger.info("Copied new file: %s", new_path)
        return updated

    # Lookups

    def get_original_path(self, staged_path: str) -> Optional[str]:
        if staged_path in self.path_mapping:
            return self.path_mapping[staged_path]
        for original, info in self.file_hashes.items():
            if info.staged_path == staged_path:
                return original
        return None

    def get_staged_path(self, original_path: str) -> Optional[str]:
        info = self.file_hashes.get(normalize_path(original_path))
        return info.staged_path if info else None

    def is_tracked(self, original_path: str) -> bool:
        return normalize_path(original_path) in self.file_hashes

    def get_session_info(self) -> Dict[str, Any]:
        return {
            "sessionId": self.session_id,
            "sessionPath": self.session_path,
            "tempBasePath": self.temp_base_path,
            "trackedFiles": len(self.file_hashes),
            "trackedPaths": list(self.file_hashes),
        }

    # Cleanup

    def cleanup(self) -> None:
        """Remove the whole session directory and forget every tracked file."""
        try:
            if os.path.exists(self.session_path):
                shutil.rmtree(self.session_path)
                logger.info("Cleaned up session directory: %s", self.session_path)
        except OSError as e:
            logger.warning("Failed to clean up temp directory: %s", e)
        finally:
            self.file_hashes.clear()
            self.path_mapping.clear()

    @staticmethod
    def cleanup_old_sessions(
        temp_root: Optional[str] = None,
        max_age_hours: float = DEFAULT_MAX_SESSION_AGE_HOURS,
    ) -> List[str]:
        """Remove session directories older than ``max_age_hours``; returns the removed paths."""
        base = default_temp_base(temp_root)
        removed: List[str] = []
        if not os.path.isdir(base):
            return removed

        cutoff = time.time() - max_age_hours * 3600
        for entry in sorted(os.listdir(base)):
            if not entry.startswith(SESSION_PREFIX):
                continue
            session_path = os.path.join(base, entry)
            try:
                if not os.path.isdir(session_path) or os.stat(session_path).st_mtime >= cutoff:
                    continue
                shutil.rmtree(session_path)
            except OSError as e:
                logger.warning("Failed to remove old session %s: %s", entry, e)
                continue
            removed.append(session_path)
            logger.info("Cleaned up old session: %s", entry)
        return removed
