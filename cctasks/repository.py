"""Task and group stores for a single project.

This module provides TaskStore and GroupStore, the in-memory snapshots of a
project's tasks and groups. Each store owns its collection, persists it
through a storage backend and can tell when another process has written the
project since the snapshot was taken. Mutations only touch memory; call
save() to persist them.
"""

import logging
from typing import List, Optional

from cctasks import config
from cctasks.models import DEFAULT_COLORS, NEUTRAL_COLOR, Status, Task, TaskGroup
from cctasks.storage import ChangeDetector, GroupFileStorage, TaskDirectoryStorage

logger = logging.getLogger(__name__)


class TaskNotFoundError(ValueError):
    """Raised when an update or delete names a task ID the store does not hold."""

    def __init__(self, task_id: str):
        super().__init__(f"task not found: {task_id}")
        self.task_id = task_id


def _matches_status(task: Task, status: Optional[str]) -> bool:
    if not status or status == "all":
        return True
    return task.status_value == status


def _matches_query(task: Task, query: str) -> bool:
    if not query:
        return True
    query = query.lower()
    return query in task.subject.lower() or query in task.description.lower()


class TaskStore:
    """Snapshot of a project's tasks.

    Attributes:
        project_name: Name of the project directory
        storage: Backend reading and writing the per-task files
        tasks: Tasks in numeric ID order as of the last load
    """

    def __init__(
        self,
        project_name: str,
        storage: Optional[TaskDirectoryStorage] = None,
        tasks: Optional[List[Task]] = None,
    ):
        """Create a store without touching disk.

        Args:
            project_name: Name of the project
            storage: Storage backend. If None, uses the configured tasks and
                    backup directories for the project.
            tasks: Initial in-memory tasks
        """
        self.project_name = project_name
        self.storage = storage or TaskDirectoryStorage(
            config.get_project_dir(project_name),
            config.get_backup_project_dir(project_name),
        )
        self.tasks: List[Task] = list(tasks) if tasks else []
        self._detector = ChangeDetector(self.storage.watch_path)

    @classmethod
    def load(
        cls, project_name: str, storage: Optional[TaskDirectoryStorage] = None
    ) -> "TaskStore":
        """Load a project's tasks from disk.

        A project directory that does not exist yet loads as an empty store.
        Task files are mirrored to the backup directory when newer than their
        backup copy.
        """
        store = cls(project_name, storage)
        store._detector.mark()
        store.tasks = store.storage.load()
        store.storage.backup_existing()
        logger.debug("Loaded %d tasks for project %s", len(store.tasks), project_name)
        return store

    def save(self) -> None:
        """Write every task to its file.

        The change baseline moves past this write.

        Raises:
            OSError: If a task file cannot be written
        """
        self.storage.save(self.tasks)
        self._detector.mark()
        logger.info("Saved %d tasks for project %s", len(self.tasks), self.project_name)

    def needs_reload(self) -> bool:
        """Whether the project directory changed since the last load."""
        return self._detector.needs_reload()

    def get_task(self, task_id: str) -> Optional[Task]:
        for task in self.tasks:
            if task.id == task_id:
                return task
        return None

    def _generate_id(self) -> str:
        max_id = 0
        for task in self.tasks:
            try:
                max_id = max(max_id, int(task.id))
            except ValueError:
                continue
        return str(max_id + 1)

    def add_task(self, task: Task) -> str:
        """Add a task, assigning the next ID.

        Args:
            task: Task to add. Its ID is overwritten.

        Returns:
            The assigned ID
        """
        task.id = self._generate_id()
        if task.status is None:
            task.status = Status.PENDING
        if task.blocks is None:
            task.blocks = []
        if task.blocked_by is None:
            task.blocked_by = []
        self.tasks.append(task)
        return task.id

    def forget_task(self, task_id: str) -> None:
        """Drop a task from memory only. Its file, if any, is left alone."""
        self.tasks = [t for t in self.tasks if t.id != task_id]

    def update_task(self, task: Task) -> None:
        """Replace the task that has the same ID.

        Raises:
            TaskNotFoundError: If no task has that ID
        """
        for i, existing in enumerate(self.tasks):
            if existing.id == task.id:
                self.tasks[i] = task
                return
        raise TaskNotFoundError(task.id)

    def delete_task(self, task_id: str) -> None:
        """Delete a task, its links from other tasks and its file.

        Raises:
            TaskNotFoundError: If no task has that ID
            OSError: If the task file exists but cannot be removed
        """
        target = self.get_task(task_id)
        if target is None:
            raise TaskNotFoundError(task_id)

        for task in self.tasks:
            if task is target:
                continue
            task.blocks = [i for i in task.blocks if i != task_id]
            task.blocked_by = [i for i in task.blocked_by if i != task_id]

        self.tasks.remove(target)
        self.storage.remove(task_id)
        logger.info("Deleted task %s from project %s", task_id, self.project_name)

    def get_tasks_by_status(self, status: Optional[str]) -> List[Task]:
        """Tasks with the given status value; "" or "all" returns every task."""
        return [t for t in self.tasks if _matches_status(t, status)]

    def get_tasks_by_group(self, group: Optional[str]) -> List[Task]:
        """Tasks in the given group; "" or "all" returns every task."""
        if not group or group == "all":
            return list(self.tasks)
        return [t for t in self.tasks if (t.group or "") == group]

    def search_tasks(self, query: str) -> List[Task]:
        """Case-insensitive substring search over subject and description."""
        return [t for t in self.tasks if _matches_query(t, query)]

    def get_all_groups(self) -> List[str]:
        """Distinct group names referenced by tasks, sorted."""
        return sorted({t.group for t in self.tasks if t.group})


class GroupStore:
    """Snapshot of a project's groups, kept sorted by order.

    Attributes:
        project_name: Name of the project
        storage: Backend reading and writing the groups file
        groups: Groups in display order
    """

    def __init__(
        self,
        project_name: str,
        storage: Optional[GroupFileStorage] = None,
        groups: Optional[List[TaskGroup]] = None,
    ):
        self.project_name = project_name
        self.storage = storage or GroupFileStorage(config.get_groups_file_path(project_name))
        self.groups: List[TaskGroup] = list(groups) if groups else []
        self._detector = ChangeDetector(self.storage.watch_path)

    @classmethod
    def load(cls, project_name: str, storage: Optional[GroupFileStorage] = None) -> "GroupStore":
        """Load a project's groups. A missing groups file loads as empty.

        Raises:
            StorageError: If the groups file is corrupt
        """
        store = cls(project_name, storage)
        store._detector.mark()
        store.groups = store.storage.load()
        return store

    def save(self) -> None:
        """Write the groups file.

        The change baseline moves to the new file so this write is not
        reported as an external change.

        Raises:
            OSError: If the groups file cannot be written
        """
        self.storage.save(self.groups)
        self._detector.mark()
        logger.info("Saved %d groups for project %s", len(self.groups), self.project_name)

    def needs_reload(self) -> bool:
        """Whether the groups file changed since the last load."""
        return self._detector.needs_reload()

    def _sort(self) -> None:
        self.groups.sort(key=lambda g: g.order)

    def _index(self, name: str) -> int:
        for i, group in enumerate(self.groups):
            if group.name == name:
                return i
        return -1

    def get_group(self, name: str) -> Optional[TaskGroup]:
        """Find a group by name.

        Args:
            name: Exact group name

        Returns:
            The group, or None if there is none by that name
        """
        i = self._index(name)
        return self.groups[i] if i >= 0 else None

    def get_group_names(self) -> List[str]:
        """Group names in display order."""
        return [g.name for g in self.groups]

    def add_group(self, group: TaskGroup) -> TaskGroup:
        """Append a group after the current last one.

        The order is always max + 1. An empty colour is taken from the
        palette, indexed by the current group count.
        """
        group.order = max((g.order for g in self.groups), default=0) + 1
        if not group.color:
            group.color = DEFAULT_COLORS[len(self.groups) % len(DEFAULT_COLORS)]
        self.groups.append(group)
        return group

    def update_group(self, name: str, updated: TaskGroup) -> bool:
        """Replace the group called name. Returns False if there is none."""
        i = self._index(name)
        if i < 0:
            return False
        self.groups[i] = updated
        return True

    def delete_group(self, name: str) -> bool:
        """Remove a group. Tasks that name it are left unchanged.

        Args:
            name: Name of the group to remove

        Returns:
            True if the group was removed, False if there is none
        """
        i = self._index(name)
        if i < 0:
            return False
        del self.groups[i]
        return True

    def _swap_with(self, name: str, offset: int) -> bool:
        i = self._index(name)
        j = i + offset
        if i < 0 or j < 0 or j >= len(self.groups):
            return False
        self.groups[i].order, self.groups[j].order = self.groups[j].order, self.groups[i].order
        self._sort()
        return True

    def move_group_up(self, name: str) -> bool:
        """Swap order with the previous group. False at the top."""
        return self._swap_with(name, -1)

    def move_group_down(self, name: str) -> bool:
        """Swap order with the next group. False at the bottom."""
        return self._swap_with(name, 1)

    def get_group_color(self, name: str) -> str:
        """Colour of a group, or the neutral colour for an unregistered name."""
        group = self.get_group(name)
        return group.color if group is not None else NEUTRAL_COLOR

    def ensure_group_exists(self, name: str) -> None:
        """Create the group if it does not exist yet. Empty names are ignored."""
        if not name or self.get_group(name) is not None:
            return
        self.add_group(TaskGroup(name=name))
