"""Interactive session state for the terminal application.

Session holds everything the screens share: the loaded stores, the list
composer, which screen is active and the state of the forms. It has no
terminal dependency; the prompt_toolkit front-end in cctasks.tui renders it
and forwards key presses to its methods.
"""

import copy
import logging
from contextlib import contextmanager
from dataclasses import dataclass, field
from enum import Enum
from typing import Iterator, List, Optional, Tuple

from cctasks.composer import ListComposer
from cctasks.config import GROUPS_FILE_NAME, Settings
from cctasks.models import DEFAULT_COLORS, Project, Status, Task, TaskGroup
from cctasks.repository import GroupStore, TaskNotFoundError, TaskStore
from cctasks.storage import (
    GroupFileStorage,
    StorageError,
    TaskDirectoryStorage,
    list_projects,
)

logger = logging.getLogger(__name__)


class Screen(Enum):
    PROJECTS = "projects"
    TASKS = "tasks"
    DETAIL = "detail"
    EDIT = "edit"
    GROUPS = "groups"
    GROUP_EDIT = "group_edit"


class FormError(ValueError):
    """Raised when a form cannot be saved as entered."""


def load_project(settings: Settings, name: str) -> Tuple[TaskStore, GroupStore]:
    """Load the task and group stores of a project under the configured roots."""
    tasks = TaskDirectoryStorage(settings.tasks_dir / name, settings.backup_dir / name)
    groups = GroupFileStorage(settings.tasks_dir / name / GROUPS_FILE_NAME)
    return TaskStore.load(name, tasks), GroupStore.load(name, groups)


def parse_task_ids(text: str) -> List[str]:
    """Split a comma-separated list of task IDs, dropping blanks."""
    return [part.strip() for part in text.split(",") if part.strip()]


@dataclass
class TaskForm:
    """Editable copy of a task's fields.

    Attributes:
        subject: Title, required
        description: Body text
        status: Selected status
        raw_status: Unrecognized status carried over from the task until the
            status is changed
        group: Selected group name, "" for none
        owner: Owner name
        blocks: Comma-separated IDs of tasks waiting for this one
        blocked_by: Comma-separated IDs of tasks this one waits for
    """

    subject: str = ""
    description: str = ""
    status: Status = Status.PENDING
    raw_status: str = ""
    group: str = ""
    owner: str = ""
    blocks: str = ""
    blocked_by: str = ""

    @classmethod
    def from_task(cls, task: Task) -> "TaskForm":
        return cls(
            subject=task.subject,
            description=task.description,
            status=task.status,
            raw_status=task.raw_status,
            group=task.group or "",
            owner=task.owner,
            blocks=", ".join(task.blocks),
            blocked_by=", ".join(task.blocked_by),
        )

    def apply(self, task: Task) -> Task:
        """Write the form's values onto task.

        Raises:
            FormError: If the subject is empty
        """
        subject = self.subject.strip()
        if not subject:
            raise FormError("Subject is required")
        task.subject = subject
        task.description = self.description.strip()
        task.status = self.status
        task.raw_status = self.raw_status
        task.group = self.group or None
        task.owner = self.owner.strip()
        task.blocks = parse_task_ids(self.blocks)
        task.blocked_by = parse_task_ids(self.blocked_by)
        return task

    def cycle_status(self) -> None:
        """Advance the status. An unrecognized status becomes pending first."""
        if self.raw_status:
            self.raw_status = ""
        else:
            self.status = self.status.next()


@dataclass
class GroupForm:
    name: str = ""
    color_index: int = 0

    @property
    def color(self) -> str:
        return DEFAULT_COLORS[self.color_index % len(DEFAULT_COLORS)]

    def cycle_color(self, offset: int) -> None:
        self.color_index = min(max(self.color_index + offset, 0), len(DEFAULT_COLORS) - 1)


PICKER_TARGETS = ("blocks", "blocked_by")


@dataclass
class DependencyPicker:
    """Checkbox list of a project's tasks for a form's link fields.

    Attributes:
        target: Form field the selection is written to, blocks or blocked_by
        tasks: Tasks that can be picked, never the task being edited
        selected: Picked task IDs in the order they were picked
        query: Filter typed by the user
        cursor: Index into matches
    """

    target: str
    tasks: List[Task]
    selected: List[str] = field(default_factory=list)
    query: str = ""
    cursor: int = 0

    @property
    def matches(self) -> List[Task]:
        """Tasks whose subject contains the query (any case) or whose ID does."""
        query = self.query.lower()
        if not query:
            return list(self.tasks)
        return [t for t in self.tasks if query in t.subject.lower() or query in t.id]

    def _clamp(self) -> None:
        last = len(self.matches) - 1
        self.cursor = min(max(self.cursor, 0), max(last, 0))

    def set_query(self, query: str) -> None:
        self.query = query
        self._clamp()

    def move_cursor(self, delta: int) -> None:
        self.cursor += delta
        self._clamp()

    def current(self) -> Optional[Task]:
        matches = self.matches
        return matches[self.cursor] if matches else None

    def is_selected(self, task_id: str) -> bool:
        return task_id in self.selected

    def toggle_current(self) -> None:
        task = self.current()
        if task is None:
            return
        if task.id in self.selected:
            self.selected.remove(task.id)
        else:
            self.selected.append(task.id)

    def value(self) -> str:
        return ", ".join(self.selected)


@dataclass
class Session:
    """State shared by all screens of the terminal application.

    Attributes:
        settings: Resolved configuration
        screen: Active screen
        projects: Projects found under the tasks root
        project_cursor: Selected project index
        project_name: Open project, "" on the projects screen
        task_store: Tasks of the open project
        group_store: Groups of the open project
        composer: List view over the open project
        detail_task_id: Task shown on the detail screen
        form: Task form being edited
        editing_task_id: ID of the task being edited, None for a new task
        group_cursor: Selected group index on the groups screen
        group_form: Group form being edited
        editing_group_name: Name of the group being edited, None for a new one
        confirm_delete: A delete is awaiting y/n
        status_change_mode: The tasks screen awaits a status key
        search_active: The tasks screen is capturing search input
        error: Last error message for the status line
        message: Last informational message for the status line
        picker: Dependency picker open over the task form
    """

    settings: Settings
    screen: Screen = Screen.PROJECTS
    projects: List[Project] = field(default_factory=list)
    project_cursor: int = 0
    project_name: str = ""
    task_store: Optional[TaskStore] = None
    group_store: Optional[GroupStore] = None
    composer: Optional[ListComposer] = None
    detail_task_id: Optional[str] = None
    form: Optional[TaskForm] = None
    editing_task_id: Optional[str] = None
    group_cursor: int = 0
    group_form: Optional[GroupForm] = None
    editing_group_name: Optional[str] = None
    confirm_delete: bool = False
    status_change_mode: bool = False
    search_active: bool = False
    error: str = ""
    message: str = ""
    picker: Optional[DependencyPicker] = None
    previous_screen: Screen = Screen.TASKS

    @contextmanager
    def _reporting(self, action: str) -> Iterator[None]:
        """Turn store failures into a status-line error instead of a crash."""
        try:
            yield
        except (OSError, StorageError, TaskNotFoundError) as exc:
            logger.exception("%s failed", action)
            self.error = f"{action} failed: {exc}"

    def _load_stores(self, name: str) -> Tuple[TaskStore, GroupStore]:
        return load_project(self.settings, name)

    # ---- projects ----

    def refresh_projects(self) -> None:
        self.error = ""
        with self._reporting("Listing projects"):
            self.projects = list_projects(self.settings.tasks_dir)
        if self.project_cursor >= len(self.projects):
            self.project_cursor = max(len(self.projects) - 1, 0)

    def move_project_cursor(self, delta: int) -> None:
        if self.projects:
            self.project_cursor = min(max(self.project_cursor + delta, 0), len(self.projects) - 1)

    def open_selected_project(self) -> None:
        if self.projects:
            self.open_project(self.projects[self.project_cursor].name)

    def open_project(self, name: str) -> None:
        """Load a project and show its task list."""
        self.error = ""
        with self._reporting(f"Loading {name}"):
            task_store, group_store = self._load_stores(name)
            self.project_name = name
            self.task_store = task_store
            self.group_store = group_store
            self.composer = ListComposer(
                task_store,
                group_store,
                hide_completed=self.settings.hide_completed,
                collapse_by_default=self.settings.collapse_groups,
            )
            self.screen = Screen.TASKS

    def back_to_projects(self) -> None:
        self.screen = Screen.PROJECTS
        self.project_name = ""
        self.task_store = None
        self.group_store = None
        self.composer = None
        self.refresh_projects()

    # ---- reload ----

    def reload(self) -> None:
        """Reload both stores from disk, dropping unsaved in-memory edits."""
        if not self.project_name:
            self.refresh_projects()
            return
        with self._reporting("Reload"):
            task_store, group_store = self._load_stores(self.project_name)
            self.task_store = task_store
            self.group_store = group_store
            if self.composer is not None:
                self.composer.reload(task_store, group_store)
            if self.screen == Screen.DETAIL and self.current_detail_task() is None:
                self.screen = Screen.TASKS

    def check_for_external_changes(self) -> bool:
        """Reload when another process wrote the project since the last load.

        Forms are left alone so a reload never discards what is being typed.

        Returns:
            True if a reload happened
        """
        if self.task_store is None or self.group_store is None:
            return False
        if self.screen in (Screen.EDIT, Screen.GROUP_EDIT):
            return False
        if self.task_store.needs_reload() or self.group_store.needs_reload():
            logger.info("Project %s changed on disk, reloading", self.project_name)
            self.reload()
            return True
        return False

    # ---- task list ----

    def activate_current_row(self) -> None:
        """Enter on the task list: toggle a header or open a task."""
        row = self.composer.current_row() if self.composer else None
        if row is None:
            return
        if row.is_group:
            self.composer.toggle_collapsed(row.group_name)
        else:
            self.view_task(row.task.id)

    def set_current_task_status(self, status: Status) -> None:
        self.status_change_mode = False
        task = self.composer.current_task() if self.composer else None
        if task is None:
            return
        self._set_status(task, status)
        self.composer.rebuild()

    def _set_status(self, task: Task, status: Status) -> None:
        task.set_status(status)
        with self._reporting("Saving task"):
            self.task_store.update_task(task)
            self.task_store.save()

    # ---- detail ----

    def view_task(self, task_id: str) -> None:
        self.detail_task_id = task_id
        self.confirm_delete = False
        self.screen = Screen.DETAIL

    def current_detail_task(self) -> Optional[Task]:
        if self.task_store is None or self.detail_task_id is None:
            return None
        return self.task_store.get_task(self.detail_task_id)

    def step_detail(self, offset: int) -> None:
        """Show the next or previous task in list order."""
        if self.composer is None or self.detail_task_id is None:
            return
        task = self.composer.adjacent_task(self.detail_task_id, offset)
        if task is not None:
            self.detail_task_id = task.id
            self.composer.select_task(task.id)

    def cycle_detail_status(self) -> None:
        task = self.current_detail_task()
        if task is not None:
            self._set_status(task, task.status.next() if task.has_known_status else Status.PENDING)

    def delete_detail_task(self) -> None:
        self.confirm_delete = False
        if self.detail_task_id is None:
            return
        with self._reporting("Deleting task"):
            self.task_store.delete_task(self.detail_task_id)
            self.task_store.save()
            self.message = f"Deleted task #{self.detail_task_id}"
        self.back_to_tasks()

    def back_to_tasks(self) -> None:
        self.detail_task_id = None
        self.screen = Screen.TASKS
        self.reload()

    # ---- task form ----

    def new_task(self) -> None:
        self.previous_screen = self.screen
        self.form = TaskForm()
        self.editing_task_id = None
        self.screen = Screen.EDIT

    def edit_task(self, task_id: str) -> None:
        task = self.task_store.get_task(task_id) if self.task_store else None
        if task is None:
            return
        self.previous_screen = self.screen
        self.form = TaskForm.from_task(task)
        self.editing_task_id = task_id
        self.screen = Screen.EDIT

    def form_group_choices(self) -> List[str]:
        names = self.group_store.get_group_names() if self.group_store else []
        return [""] + names

    def save_form(self) -> bool:
        """Apply the task form and persist it.

        Returns:
            True if the task was saved and the list is shown again
        """
        if self.form is None or self.task_store is None:
            return False
        self.error = ""
        try:
            if self.editing_task_id is None:
                task = self.form.apply(Task())
                self.task_store.add_task(task)
                with self._reporting("Saving task"):
                    self.task_store.save()
                    self.message = f"Created task #{task.id}"
                if self.error:
                    # Not on disk; a retry must not add a second copy.
                    self.task_store.forget_task(task.id)
            else:
                original = self.task_store.get_task(self.editing_task_id)
                if original is None:
                    raise TaskNotFoundError(self.editing_task_id)
                task = self.form.apply(copy.deepcopy(original))
                with self._reporting("Saving task"):
                    self.task_store.update_task(task)
                    self.task_store.save()
                    self.message = f"Saved task #{task.id}"
        except (FormError, TaskNotFoundError) as exc:
            self.error = str(exc)
            return False
        if self.error:
            return False
        self.form = None
        self.picker = None
        self.editing_task_id = None
        self.screen = Screen.TASKS
        self.reload()
        if self.composer is not None:
            self.composer.select_task(task.id)
        return True

    def cancel_form(self) -> None:
        self.form = None
        self.picker = None
        self.editing_task_id = None
        self.screen = self.previous_screen if self.previous_screen == Screen.DETAIL else Screen.TASKS

    # ---- dependency picker ----

    def open_picker(self, target: str) -> None:
        """Open the picker for the form's blocks or blocked_by field.

        Args:
            target: "blocks" or "blocked_by"

        Raises:
            ValueError: If target is not a link field
        """
        if target not in PICKER_TARGETS:
            raise ValueError(f"Not a link field: {target}")
        if self.form is None or self.task_store is None:
            return
        candidates = [t for t in self.task_store.tasks if t.id != self.editing_task_id]
        self.picker = DependencyPicker(
            target=target,
            tasks=candidates,
            selected=parse_task_ids(getattr(self.form, target)),
        )

    def confirm_picker(self) -> None:
        """Write the picked IDs back into the form field and close the picker."""
        if self.picker is None:
            return
        if self.form is not None:
            setattr(self.form, self.picker.target, self.picker.value())
        self.picker = None

    def cancel_picker(self) -> None:
        self.picker = None

    # ---- groups ----

    def open_groups(self) -> None:
        self.group_cursor = 0
        self.confirm_delete = False
        self.screen = Screen.GROUPS

    def close_groups(self) -> None:
        self.screen = Screen.TASKS
        self.reload()

    def selected_group(self) -> Optional[TaskGroup]:
        if self.group_store is None or not self.group_store.groups:
            return None
        return self.group_store.groups[min(self.group_cursor, len(self.group_store.groups) - 1)]

    def move_group_cursor(self, delta: int) -> None:
        if self.group_store and self.group_store.groups:
            last = len(self.group_store.groups) - 1
            self.group_cursor = min(max(self.group_cursor + delta, 0), last)

    def move_selected_group(self, offset: int) -> None:
        """Reorder the selected group one step and keep it selected."""
        group = self.selected_group()
        if group is None:
            return
        if offset < 0:
            moved = self.group_store.move_group_up(group.name)
        else:
            moved = self.group_store.move_group_down(group.name)
        if moved:
            with self._reporting("Saving groups"):
                self.group_store.save()
            self.move_group_cursor(offset)

    def delete_selected_group(self) -> None:
        self.confirm_delete = False
        group = self.selected_group()
        if group is None:
            return
        self.group_store.delete_group(group.name)
        with self._reporting("Saving groups"):
            self.group_store.save()
        self.move_group_cursor(0)

    def new_group(self) -> None:
        self.group_form = GroupForm()
        self.editing_group_name = None
        self.screen = Screen.GROUP_EDIT

    def edit_selected_group(self) -> None:
        group = self.selected_group()
        if group is None:
            return
        index = DEFAULT_COLORS.index(group.color) if group.color in DEFAULT_COLORS else 0
        self.group_form = GroupForm(name=group.name, color_index=index)
        self.editing_group_name = group.name
        self.screen = Screen.GROUP_EDIT

    def save_group_form(self) -> bool:
        if self.group_form is None or self.group_store is None:
            return False
        name = self.group_form.name.strip()
        if not name:
            self.error = "Group name is required"
            return False
        if self.editing_group_name is None:
            self.group_store.add_group(TaskGroup(name=name, color=self.group_form.color))
        else:
            existing = self.group_store.get_group(self.editing_group_name)
            order = existing.order if existing is not None else 0
            self.group_store.update_group(
                self.editing_group_name, TaskGroup(name=name, order=order, color=self.group_form.color)
            )
        self.error = ""
        with self._reporting("Saving groups"):
            self.group_store.save()
        self.group_form = None
        self.editing_group_name = None
        self.screen = Screen.GROUPS
        return not self.error

    def cancel_group_form(self) -> None:
        self.group_form = None
        self.editing_group_name = None
        self.screen = Screen.GROUPS

