"""List composition for the task list screen.

ListComposer turns a TaskStore and GroupStore snapshot plus the current
filter and collapse state into a flat sequence of rows: a header for every
group that has visible tasks, each followed by its tasks unless the group is
collapsed. It also owns the cursor over those rows.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional

from cctasks.models import UNCATEGORIZED, Status, Task
from cctasks.repository import GroupStore, TaskStore

ALL = ""


@dataclass
class ListRow:
    """One display row: a group header when task is None, else a task.

    Attributes:
        group_name: Resolved group the row belongs to
        task: The task shown on this row, None for a header
        collapsed: For headers, whether the group's tasks are hidden
        counts: For headers, task count per status over the whole project,
            with unrecognized statuses counted under None
    """

    group_name: str
    task: Optional[Task] = None
    collapsed: bool = False
    counts: Dict[Optional[Status], int] = field(default_factory=dict)

    @property
    def is_group(self) -> bool:
        return self.task is None

    @property
    def total(self) -> int:
        return sum(self.counts.values())


class ListComposer:
    """Filtered, grouped, collapsible view over a project's tasks.

    Attributes:
        task_store: Source of tasks
        group_store: Source of the group order
        status_filter: Only tasks with this status, None for all
        group_filter: Only tasks whose resolved group matches, "" for all
        search_query: Case-insensitive substring over subject and description
        hide_completed: Drop completed tasks regardless of the status filter
        collapse_by_default: Collapse state of groups never toggled
        rows: Current display rows
        cursor: Index of the selected row
    """

    def __init__(
        self,
        task_store: TaskStore,
        group_store: GroupStore,
        hide_completed: bool = True,
        collapse_by_default: bool = True,
    ):
        self.task_store = task_store
        self.group_store = group_store
        self.status_filter: Optional[Status] = None
        self.group_filter = ALL
        self.search_query = ""
        self.hide_completed = hide_completed
        self.collapse_by_default = collapse_by_default
        self._collapsed: Dict[str, bool] = {}
        self.rows: List[ListRow] = []
        self.cursor = 0
        self.rebuild()

    # ---- collapse state ----

    def is_collapsed(self, group_name: str) -> bool:
        return self._collapsed.get(group_name, self.collapse_by_default)

    def set_collapsed(self, group_name: str, collapsed: bool) -> None:
        self._collapsed[group_name] = collapsed
        self.rebuild()

    def toggle_collapsed(self, group_name: str) -> None:
        self.set_collapsed(group_name, not self.is_collapsed(group_name))

    # ---- filtering ----

    def _accepts(self, task: Task) -> bool:
        if self.status_filter is not None and (
            not task.has_known_status or task.status != self.status_filter
        ):
            return False
        if self.hide_completed and task.status_value == Status.COMPLETED.value:
            return False
        if self.group_filter != ALL and task.group_name != self.group_filter:
            return False
        if self.search_query:
            query = self.search_query.lower()
            if query not in task.subject.lower() and query not in task.description.lower():
                return False
        return True

    def filtered_tasks(self) -> List[Task]:
        return [t for t in self.task_store.tasks if self._accepts(t)]

    def _status_counts(self) -> Dict[str, Dict[Optional[Status], int]]:
        counts: Dict[str, Dict[Optional[Status], int]] = {}
        for task in self.task_store.tasks:
            per_group = counts.setdefault(task.group_name, {})
            key = task.status if task.has_known_status else None
            per_group[key] = per_group.get(key, 0) + 1
        return counts

    # ---- row building ----

    def rebuild(self) -> None:
        """Recompute rows from the stores and clamp the cursor."""
        buckets: Dict[str, List[Task]] = {}
        for task in self.filtered_tasks():
            buckets.setdefault(task.group_name, []).append(task)

        registered = [name for name in self.group_store.get_group_names() if name in buckets]
        remainder = sorted(
            (name for name in buckets if name not in set(registered)),
            key=lambda name: (name == UNCATEGORIZED, name),
        )

        counts = self._status_counts()
        rows: List[ListRow] = []
        for name in registered + remainder:
            collapsed = self.is_collapsed(name)
            rows.append(ListRow(group_name=name, collapsed=collapsed, counts=counts.get(name, {})))
            if not collapsed:
                rows.extend(ListRow(group_name=name, task=task) for task in buckets[name])

        self.rows = rows
        self._clamp()

    def _clamp(self) -> None:
        if self.cursor >= len(self.rows):
            self.cursor = len(self.rows) - 1
        if self.cursor < 0:
            self.cursor = 0

    def reload(self, task_store: TaskStore, group_store: GroupStore) -> None:
        """Swap in fresh store snapshots, keeping filters and collapse state.

        If the cursor was on a task that still has a row, it follows that task
        to its new position; otherwise the old index is clamped.
        """
        current = self.current_task()
        self.task_store = task_store
        self.group_store = group_store
        self.rebuild()
        if current is not None:
            self.select_task(current.id)

    # ---- cursor ----

    def current_row(self) -> Optional[ListRow]:
        if not self.rows:
            return None
        return self.rows[self.cursor]

    def current_task(self) -> Optional[Task]:
        row = self.current_row()
        return row.task if row is not None else None

    def move_cursor(self, delta: int) -> None:
        self.cursor += delta
        self._clamp()

    def cursor_home(self) -> None:
        self.cursor = 0

    def cursor_end(self) -> None:
        self.cursor = max(len(self.rows) - 1, 0)

    def select_task(self, task_id: str) -> bool:
        """Move the cursor to a task's row. Returns False if it has no row."""
        for i, row in enumerate(self.rows):
            if row.task is not None and row.task.id == task_id:
                self.cursor = i
                return True
        return False

    def visible_tasks(self) -> List[Task]:
        return [row.task for row in self.rows if row.task is not None]

    def adjacent_task(self, task_id: str, offset: int) -> Optional[Task]:
        """The visible task offset rows away from task_id, wrapping around."""
        tasks = self.visible_tasks()
        for i, task in enumerate(tasks):
            if task.id == task_id:
                return tasks[(i + offset) % len(tasks)]
        return None

    # ---- filter cycling ----

    def cycle_status_filter(self) -> None:
        """all -> pending -> in_progress -> completed -> all."""
        cycle: List[Optional[Status]] = [None] + list(Status)
        i = cycle.index(self.status_filter) if self.status_filter in cycle else -1
        self.status_filter = cycle[(i + 1) % len(cycle)]
        self.rebuild()

    def cycle_group_filter(self) -> None:
        """all -> registered groups in order -> Uncategorized -> all."""
        cycle = [ALL] + self.group_store.get_group_names() + [UNCATEGORIZED]
        i = cycle.index(self.group_filter) if self.group_filter in cycle else -1
        self.group_filter = cycle[(i + 1) % len(cycle)]
        self.rebuild()

    def toggle_hide_completed(self) -> None:
        self.hide_completed = not self.hide_completed
        self.rebuild()

    def set_search(self, query: str) -> None:
        self.search_query = query
        self.rebuild()

    @property
    def status_label(self) -> str:
        return self.status_filter.value if self.status_filter is not None else "All"

    @property
    def group_label(self) -> str:
        return self.group_filter or "All Groups"
