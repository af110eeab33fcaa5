"""Storage layer for cctasks.

This module provides an abstract storage interface and the two on-disk
layouts a project uses:

- TaskDirectoryStorage: one ``<id>.json`` file per task inside the project
  directory, with a best-effort mirror under the backup root
- GroupFileStorage: a single ``_groups.json`` document

Reads and writes of individual files go through fcntl advisory locks so a
cooperating writer never exposes a half-written file. ChangeDetector holds the
modification-time snapshot both stores use to notice external writes.
"""

import fcntl
import json
import logging
import os
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Dict, List, Optional

from cctasks.models import Project, Status, Task, TaskGroup

logger = logging.getLogger(__name__)


class StorageError(Exception):
    """Raised when a stored document exists but cannot be understood."""


def is_task_file_name(name: str) -> bool:
    """Whether a directory entry name follows the task file naming rule."""
    return not name.startswith("_") and name.endswith(".json")


def count_task_files(directory: Path) -> int:
    """Count task files directly inside a directory.

    Returns:
        Number of task files, 0 when the directory cannot be read
    """
    try:
        entries = list(os.scandir(directory))
    except OSError:
        return 0
    return sum(1 for e in entries if not e.is_dir() and is_task_file_name(e.name))


def list_projects(tasks_dir: Path) -> List[Project]:
    """List project directories that hold at least one task file.

    Args:
        tasks_dir: Root directory containing one directory per project

    Returns:
        Projects sorted by name. Empty if the root does not exist.
    """
    try:
        entries = list(os.scandir(tasks_dir))
    except FileNotFoundError:
        return []

    projects = []
    for entry in entries:
        if not entry.is_dir():
            continue
        count = count_task_files(Path(entry.path))
        if count == 0:
            continue
        projects.append(Project(name=entry.name, task_count=count))

    return sorted(projects, key=lambda p: p.name)


def dump_json(data: Dict[str, Any]) -> bytes:
    """Serialize a document the way every cctasks file is written."""
    return json.dumps(data, indent=2, ensure_ascii=False).encode("utf-8")


def read_locked(path: Path) -> bytes:
    """Read a whole file under a shared lock."""
    with open(path, "rb") as f:
        fcntl.flock(f.fileno(), fcntl.LOCK_SH)
        try:
            return f.read()
        finally:
            fcntl.flock(f.fileno(), fcntl.LOCK_UN)


def write_locked(path: Path, data: bytes) -> None:
    """Replace a file's content under an exclusive lock."""
    with open(path, "wb") as f:
        fcntl.flock(f.fileno(), fcntl.LOCK_EX)
        try:
            f.write(data)
        finally:
            fcntl.flock(f.fileno(), fcntl.LOCK_UN)


def _id_list(value: Any) -> List[str]:
    if not value:
        return []
    if not isinstance(value, list):
        raise ValueError(f"expected a list of task IDs, got {type(value).__name__}")
    return [str(item) for item in value]


def task_to_dict(task: Task) -> Dict[str, Any]:
    """Convert a Task to the on-disk JSON object.

    Empty ``activeForm``, ``owner`` and ``metadata`` are omitted.
    """
    data: Dict[str, Any] = {
        "id": task.id,
        "subject": task.subject,
        "description": task.description,
    }
    if task.active_form:
        data["activeForm"] = task.active_form
    data["status"] = task.status_value
    data["blocks"] = list(task.blocks)
    data["blockedBy"] = list(task.blocked_by)
    if task.owner:
        data["owner"] = task.owner
    metadata = task.metadata
    if metadata:
        data["metadata"] = metadata
    return data


def task_from_dict(data: Any) -> Task:
    """Build a Task from a parsed JSON object.

    Missing fields take their zero value; an empty status means pending. A
    status string that is not a Status value is kept in raw_status.

    Raises:
        ValueError: If the document is not a task object
    """
    if not isinstance(data, dict):
        raise ValueError("task document must be a JSON object")

    raw_id = data.get("id", "")
    if isinstance(raw_id, bool) or not isinstance(raw_id, (str, int)):
        raise ValueError(f"invalid task id: {raw_id!r}")

    metadata = data.get("metadata") or {}
    if not isinstance(metadata, dict):
        raise ValueError("metadata must be a JSON object")
    metadata = dict(metadata)
    raw_status = data.get("status") or Status.PENDING.value
    if not isinstance(raw_status, str):
        raise ValueError(f"invalid status: {raw_status!r}")
    try:
        status = Status(raw_status)
        raw_status = ""
    except ValueError:
        status = Status.PENDING

    group = metadata.pop("group", None)
    if group is not None and not isinstance(group, str):
        # Not a group name we understand; keep it untouched.
        metadata["group"] = group
        group = None

    return Task(
        id=str(raw_id),
        subject=str(data.get("subject") or ""),
        description=str(data.get("description") or ""),
        active_form=str(data.get("activeForm") or ""),
        status=status,
        raw_status=raw_status,
        blocks=_id_list(data.get("blocks")),
        blocked_by=_id_list(data.get("blockedBy")),
        owner=str(data.get("owner") or ""),
        group=group or None,
        extra_metadata=metadata,
    )


class ChangeDetector:
    """Remembers a path's modification time to detect external writes.

    Attributes:
        path: File or directory being watched, None when unset
    """

    def __init__(self, path: Optional[Path] = None):
        self.path = Path(path) if path is not None else None
        self._snapshot: Optional[int] = None

    @property
    def snapshot(self) -> Optional[int]:
        """Captured modification time in nanoseconds, None if never seen."""
        return self._snapshot

    def _current(self) -> Optional[int]:
        if self.path is None:
            return None
        try:
            return self.path.stat().st_mtime_ns
        except OSError:
            return None

    def mark(self) -> None:
        """Capture the path's current modification time as the baseline."""
        self._snapshot = self._current()

    def needs_reload(self) -> bool:
        """Whether the path changed since the last mark.

        Returns False when the path is unset or cannot be stat'ed.
        """
        current = self._current()
        if current is None:
            return False
        if self._snapshot is None:
            return True
        return current > self._snapshot


class Storage(ABC):
    """Abstract base class for cctasks storage implementations."""

    @abstractmethod
    def load(self) -> List[Any]:
        """Load all items from storage."""
        pass

    @abstractmethod
    def save(self, items: List[Any]) -> None:
        """Persist all items to storage."""
        pass

    @property
    @abstractmethod
    def watch_path(self) -> Path:
        """Path whose modification time signals an external change."""
        pass


class TaskDirectoryStorage(Storage):
    """Task storage with one JSON file per task.

    Attributes:
        project_dir: Directory holding ``<id>.json`` files
        backup_dir: Mirror directory for saved task files, None to disable
    """

    def __init__(self, project_dir: Path, backup_dir: Optional[Path] = None):
        self.project_dir = Path(project_dir)
        self.backup_dir = Path(backup_dir) if backup_dir is not None else None

    @property
    def watch_path(self) -> Path:
        return self.project_dir

    def task_path(self, task_id: str) -> Path:
        return self.project_dir / f"{task_id}.json"

    def _task_file_names(self) -> List[str]:
        try:
            entries = list(os.scandir(self.project_dir))
        except FileNotFoundError:
            return []
        return [e.name for e in entries if not e.is_dir() and is_task_file_name(e.name)]

    def load(self) -> List[Task]:
        """Load every readable task file.

        Files that cannot be read or parsed are skipped so one bad file does
        not hide the rest of the project.

        Returns:
            Tasks sorted by numeric ID (non-numeric IDs sort as 0)
        """
        tasks = []
        for name in self._task_file_names():
            path = self.project_dir / name
            try:
                tasks.append(task_from_dict(json.loads(read_locked(path))))
            except (OSError, ValueError) as exc:
                logger.warning("Skipping unreadable task file %s: %s", path, exc)

        tasks.sort(key=lambda t: t.numeric_id)
        return tasks

    def save(self, items: List[Task]) -> None:
        """Write each task to its own file, creating the directory if needed."""
        self.project_dir.mkdir(parents=True, exist_ok=True)
        for task in items:
            self.save_task(task)

    def save_task(self, task: Task) -> None:
        """Write a single task file and mirror it to the backup directory."""
        filename = f"{task.id}.json"
        data = dump_json(task_to_dict(task))
        write_locked(self.project_dir / filename, data)
        self._backup_data(filename, data)

    def remove(self, task_id: str) -> None:
        """Delete a task's file. A file that is already gone is fine."""
        try:
            self.task_path(task_id).unlink()
        except FileNotFoundError:
            pass

    def backup_existing(self) -> None:
        """Mirror task files whose source is newer than the backup copy."""
        for name in self._task_file_names():
            self._backup_file(name)

    def _backup_data(self, filename: str, data: bytes) -> None:
        if self.backup_dir is None:
            return
        backup_path = self.backup_dir / filename
        try:
            self.backup_dir.mkdir(parents=True, exist_ok=True)
            if backup_path.exists() and backup_path.read_bytes() == data:
                return
            backup_path.write_bytes(data)
        except OSError as exc:
            logger.warning("Backup of %s failed: %s", filename, exc)

    def _backup_file(self, filename: str) -> None:
        if self.backup_dir is None:
            return
        src = self.project_dir / filename
        dst = self.backup_dir / filename
        try:
            src_mtime = src.stat().st_mtime_ns
            if dst.exists() and src_mtime <= dst.stat().st_mtime_ns:
                return
            self.backup_dir.mkdir(parents=True, exist_ok=True)
            dst.write_bytes(src.read_bytes())
        except OSError as exc:
            logger.warning("Backup of %s failed: %s", filename, exc)


class GroupFileStorage(Storage):
    """Group storage as a single ``{"groups": [...]}`` JSON document.

    Attributes:
        file_path: Path to the groups file
    """

    def __init__(self, file_path: Path):
        self.file_path = Path(file_path)

    @property
    def watch_path(self) -> Path:
        return self.file_path

    def load(self) -> List[TaskGroup]:
        """Load groups sorted by order.

        Returns:
            Groups, empty if the file does not exist

        Raises:
            StorageError: If the file exists but is not a valid groups document
        """
        try:
            content = read_locked(self.file_path)
        except FileNotFoundError:
            return []

        try:
            data = json.loads(content) if content.strip() else {}
            groups = [
                TaskGroup(
                    name=str(g["name"]),
                    order=int(g.get("order", 0)),
                    color=str(g.get("color") or ""),
                )
                for g in data.get("groups") or []
            ]
        except (ValueError, TypeError, KeyError, AttributeError) as exc:
            raise StorageError(f"invalid groups file {self.file_path}: {exc}") from exc

        groups.sort(key=lambda g: g.order)
        return groups

    def save(self, items: List[TaskGroup]) -> None:
        """Overwrite the groups file with the whole collection."""
        self.file_path.parent.mkdir(parents=True, exist_ok=True)
        data = {
            "groups": [
                {"name": g.name, "order": g.order, "color": g.color} for g in items
            ]
        }
        write_locked(self.file_path, dump_json(data))
