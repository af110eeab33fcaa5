"""prompt_toolkit front-end for cctasks.

The render_* functions turn a Session into formatted text and have no
terminal dependency. TaskApp wires them into a full-screen Application,
maps keys to Session methods and polls for external changes.
"""

import asyncio
import logging
from typing import List, Optional, Tuple

from prompt_toolkit.application import Application
from prompt_toolkit.data_structures import Point
from prompt_toolkit.filters import Condition
from prompt_toolkit.key_binding import KeyBindings
from prompt_toolkit.keys import Keys
from prompt_toolkit.layout import HSplit, Layout, Window
from prompt_toolkit.layout.containers import DynamicContainer
from prompt_toolkit.layout.controls import FormattedTextControl
from prompt_toolkit.styles import Style
from prompt_toolkit.widgets import TextArea
from wcwidth import wcwidth

from cctasks.models import (
    DEFAULT_COLORS,
    NEUTRAL_COLOR,
    UNCATEGORIZED,
    UNKNOWN_STATUS_ICON,
    Status,
    Task,
)
from cctasks.session import Screen, Session

logger = logging.getLogger(__name__)

Fragments = List[Tuple[str, str]]

STYLE = Style.from_dict(
    {
        "header": "bold #f9fafb bg:#8b5cf6",
        "title": "bold",
        "muted": "#6b7280",
        "selected": "bold #8b5cf6",
        "error": "bold #ef4444",
        "warning": "#f59e0b",
        "success": "#10b981",
        "key": "bold #8b5cf6",
        "filter": "#9ca3af",
        "label": "#6b7280",
        "status.pending": "#6b7280",
        "status.in_progress": "#3b82f6",
        "status.completed": "#10b981",
        "status.unknown": "#f59e0b",
        "blocked": "#f59e0b",
    }
)


def display_width(text: str) -> int:
    return sum(max(wcwidth(ch), 0) for ch in text)


def truncate(text: str, width: int) -> str:
    """Cut text to at most width terminal cells, ending in an ellipsis."""
    if display_width(text) <= width:
        return text
    out = []
    used = 0
    for ch in text:
        w = max(wcwidth(ch), 0)
        if used + w > width - 1:
            break
        out.append(ch)
        used += w
    return "".join(out) + "…"


def status_style(status: Optional[Status]) -> str:
    """Style class for a status. None stands for a status cctasks does not know."""
    return f"class:status.{status.value}" if status is not None else "class:status.unknown"


def task_status_style(task: Task) -> str:
    return status_style(task.status if task.has_known_status else None)


def _hints(keys: List[Tuple[str, str]]) -> Fragments:
    fragments: Fragments = []
    for key, desc in keys:
        fragments.append(("class:key", f" {key}"))
        fragments.append(("class:muted", f" {desc} "))
    return fragments


# ---- screen renderers ----


def render_projects(session: Session) -> Tuple[Fragments, int]:
    """Render the project picker. Returns fragments and the cursor line."""
    lines: Fragments = [("class:title", "Projects\n\n")]
    if not session.projects:
        lines.append(("class:muted", f"No projects found in {session.settings.tasks_dir}\n"))
        return lines, 0

    cursor_line = 2
    for i, project in enumerate(session.projects):
        selected = i == session.project_cursor
        if selected:
            cursor_line = 2 + i
        lines.append(("class:selected" if selected else "", f"{'> ' if selected else '  '}{project.name}"))
        lines.append(("class:muted", f" ({project.task_count})\n"))
    return lines, cursor_line


def _group_header(session: Session, row, selected: bool) -> Fragments:
    color = NEUTRAL_COLOR
    if row.group_name != UNCATEGORIZED:
        color = session.group_store.get_group_color(row.group_name)
    icon = "▶" if row.collapsed else "▼"
    fragments: Fragments = [
        ("class:selected" if selected else "bold", f"{'> ' if selected else '  '}{icon} "),
        (f"fg:{color}", "● "),
        ("class:selected" if selected else "bold", f"{row.group_name} ({row.total})"),
    ]
    for status in Status:
        count = row.counts.get(status, 0)
        if count:
            fragments.append((status_style(status), f"  {status.icon}{count}"))
    unknown = row.counts.get(None, 0)
    if unknown:
        fragments.append((status_style(None), f"  {UNKNOWN_STATUS_ICON}{unknown}"))
    if selected:
        fragments.append(("class:muted", " (Enter: toggle)"))
    fragments.append(("", "\n"))
    return fragments


def _task_line(task: Task, selected: bool, width: int) -> Fragments:
    badge = f"[{task.status_value}]"
    prefix = f"{'> ' if selected else '  '}{task.status_icon} #{task.id} "
    subject = truncate(task.subject, max(width - display_width(prefix) - len(badge) - 6, 20))
    left = prefix + subject
    padding = max(max(width, 60) - display_width(left) - len(badge) - 2, 1)
    fragments: Fragments = [
        ("class:selected" if selected else "", prefix[:2]),
        (task_status_style(task), prefix[2:4]),
        ("class:selected" if selected else "", prefix[4:] + subject + " " * padding),
        (task_status_style(task), badge + "\n"),
    ]
    if task.blocked_by:
        fragments.append(("class:blocked", f"      └─ blocked by: {', '.join(task.blocked_by)}\n"))
    return fragments


def render_task_list(session: Session, width: int = 80) -> Tuple[Fragments, int]:
    """Render the filter bar and the composed rows of the open project."""
    composer = session.composer
    search = composer.search_query + ("_" if session.search_active else "")
    fragments: Fragments = [
        ("class:filter", f"Status (f): [{composer.status_label:<11}]    Group (g): [{composer.group_label}]\n"),
        (
            "class:filter",
            f"Search (/): {search or '-'}    Completed (h): [{'Hide' if composer.hide_completed else 'Show'}]\n",
        ),
        ("class:muted", "─" * max(width, 10) + "\n"),
    ]
    line = 3
    if session.status_change_mode:
        fragments.append(
            ("class:warning", "Change status: [1/p] pending  [2/i] in_progress  [3/c] completed  [Esc] cancel\n")
        )
        line += 1
    if session.search_active:
        fragments.append(("class:warning", "Search: type to filter, [Enter] confirm, [Esc] cancel\n"))
        line += 1

    if not composer.rows:
        fragments.append(("class:muted", "No tasks found.\nPress 'n' to create a new task.\n"))
        return fragments, line

    cursor_line = line
    for i, row in enumerate(composer.rows):
        selected = i == composer.cursor
        if selected:
            cursor_line = line
        if row.is_group:
            fragments.extend(_group_header(session, row, selected))
            line += 1
        else:
            fragments.extend(_task_line(row.task, selected, width))
            line += 2 if row.task.blocked_by else 1
    return fragments, cursor_line


def render_detail(session: Session) -> Fragments:
    task = session.current_detail_task()
    if task is None:
        return [("class:muted", "Task no longer exists.\n")]

    fragments: Fragments = []
    if session.confirm_delete:
        fragments.append(
            ("class:error", f'Delete task #{task.id} "{task.subject}"? [y] yes  [n] no\n\n')
        )

    def field(label: str, value: str, style: str = "") -> None:
        fragments.append(("class:label", f"{label:<12}"))
        fragments.append((style, f"{value}\n"))

    fragments.append(("class:title", f"#{task.id} {task.subject}\n\n"))
    field("Status", f"{task.status_icon} {task.status_value}", task_status_style(task))
    group_color = session.group_store.get_group_color(task.group) if task.group else NEUTRAL_COLOR
    field("Group", task.group or "(none)", f"fg:{group_color}")
    if task.owner:
        field("Owner", task.owner)
    if task.active_form:
        field("Active form", task.active_form)
    field("Blocks", ", ".join(task.blocks) or "-")
    field("Blocked by", ", ".join(task.blocked_by) or "-", "class:blocked" if task.blocked_by else "")
    fragments.append(("", "\n"))
    fragments.append(("class:label", "Description\n"))
    fragments.append(("", (task.description or "(empty)") + "\n"))
    return fragments


def render_groups(session: Session) -> Tuple[Fragments, int]:
    fragments: Fragments = []
    group = session.selected_group()
    if session.confirm_delete and group is not None:
        fragments.append(("class:error", f'Delete group "{group.name}"? [y] yes  [n] no\n\n'))
    groups = session.group_store.groups
    if not groups:
        fragments.append(("class:muted", "No groups defined.\nPress 'n' to create a new group.\n"))
        return fragments, 0

    offset = 2 if session.confirm_delete else 0
    cursor_line = offset
    for i, g in enumerate(groups):
        selected = i == session.group_cursor
        if selected:
            cursor_line = offset + i
        fragments.append(("class:selected" if selected else "", "> " if selected else "  "))
        fragments.append((f"fg:{g.color or NEUTRAL_COLOR}", "██ "))
        fragments.append(("class:selected" if selected else "", g.name))
        if selected:
            hint = (" [K↑]" if i > 0 else "") + (" [J↓]" if i < len(groups) - 1 else "")
            fragments.append(("class:muted", hint))
        fragments.append(("", "\n"))
    return fragments, cursor_line


def render_palette(color_index: int) -> Fragments:
    fragments: Fragments = [("class:label", "Color: "), (f"fg:{DEFAULT_COLORS[color_index]}", "████ "), ("", DEFAULT_COLORS[color_index] + "\n")]
    for i, color in enumerate(DEFAULT_COLORS):
        fragments.append(("", "[" if i == color_index else " "))
        fragments.append((f"fg:{color}", "██"))
        fragments.append(("", "]" if i == color_index else " "))
    fragments.append(("", "\n"))
    return fragments


def render_picker(session: Session) -> Tuple[Fragments, int]:
    """Render the dependency picker. Returns fragments and the cursor line."""
    picker = session.picker
    label = "Blocks" if picker.target == "blocks" else "Blocked By"
    fragments: Fragments = [
        ("class:title", f"Select tasks for {label}\n"),
        ("class:filter", f"/ {picker.query}_\n"),
        ("class:muted", "─" * 40 + "\n"),
    ]
    matches = picker.matches
    if not matches:
        fragments.append(("class:muted", "No matching tasks.\n"))
        return fragments, 3
    for i, task in enumerate(matches):
        selected = i == picker.cursor
        mark = "[x]" if picker.is_selected(task.id) else "[ ]"
        fragments.append(("class:selected" if selected else "", f"{'> ' if selected else '  '}{mark} "))
        fragments.append((task_status_style(task), task.status_icon))
        fragments.append(("class:selected" if selected else "", f" #{task.id} {task.subject}\n"))
    fragments.append(("class:muted", f"\n{len(picker.selected)} selected\n"))
    return fragments, 3 + picker.cursor


PICKER_FOOTER = [("↑↓", "Navigate"), ("Enter", "Toggle"), ("Tab", "Confirm"), ("Esc", "Cancel")]


FOOTERS = {
    Screen.PROJECTS: [("↑↓", "Navigate"), ("Enter", "Select"), ("r", "Refresh"), ("q", "Quit")],
    Screen.TASKS: [
        ("↑↓", "Navigate"),
        ("Enter", "Select"),
        ("Esc", "Back"),
        ("n", "New"),
        ("e", "Edit"),
        ("s", "Status"),
        ("f/g/h", "Filter"),
        ("/", "Search"),
        ("G", "Groups"),
        ("q", "Quit"),
    ],
    Screen.DETAIL: [("j/k", "Next/Prev"), ("e", "Edit"), ("s", "Status"), ("d", "Delete"), ("Esc", "Back")],
    Screen.EDIT: [
        ("Tab", "Next Field"),
        ("/", "Pick Tasks"),
        ("^T", "Status"),
        ("^G", "Group"),
        ("^S", "Save"),
        ("Esc", "Cancel"),
    ],
    Screen.GROUPS: [("↑↓", "Select"), ("Enter", "Edit"), ("n", "New"), ("d", "Delete"), ("K/J", "Reorder"), ("Esc", "Back")],
    Screen.GROUP_EDIT: [("^N/^P", "Color"), ("Enter", "Save"), ("Esc", "Cancel")],
}


class TaskApp:
    """Full-screen terminal application around a Session."""

    def __init__(self, session: Session, version: str = "dev"):
        self.session = session
        self.version = version
        self._cursor_line = 0

        self.subject_field = TextArea(multiline=False, accept_handler=self._next_field)
        self.description_field = TextArea(multiline=True, height=4, wrap_lines=True)
        self.owner_field = TextArea(multiline=False, accept_handler=self._next_field)
        self.blocks_field = TextArea(multiline=False, accept_handler=self._next_field)
        self.blocked_by_field = TextArea(multiline=False, accept_handler=self._next_field)
        self.group_name_field = TextArea(multiline=False, accept_handler=self._accept_group)

        self.app = Application(
            layout=Layout(self._build_root()),
            key_bindings=self._build_key_bindings(),
            style=STYLE,
            full_screen=True,
            mouse_support=False,
        )
        self.app.ttimeoutlen = 0.05
        self.app.key_processor.before_key_press += self._before_key_press

    # ---- layout ----

    def _build_root(self):
        return HSplit(
            [
                Window(FormattedTextControl(self._header_text), height=1, style="class:header"),
                DynamicContainer(self._body),
                Window(FormattedTextControl(self._status_text), height=1),
                Window(FormattedTextControl(self._footer_text), height=1),
            ]
        )

    def _body(self):
        screen = self.session.screen
        if self.session.picker is not None:
            return Window(
                FormattedTextControl(self._picker_text, get_cursor_position=self._cursor_position),
                always_hide_cursor=True,
            )
        if screen == Screen.EDIT:
            return HSplit(
                [
                    self._label("Subject:"),
                    self.subject_field,
                    self._label("Description:"),
                    self.description_field,
                    Window(FormattedTextControl(self._form_selectors), height=2),
                    self._label("Owner:"),
                    self.owner_field,
                    self._label("Blocks (tasks that wait for this):"),
                    self.blocks_field,
                    self._label("Blocked By (tasks this waits for):"),
                    self.blocked_by_field,
                ]
            )
        if screen == Screen.GROUP_EDIT:
            return HSplit(
                [
                    self._label("Name:"),
                    self.group_name_field,
                    Window(FormattedTextControl(self._palette_text), height=2),
                ]
            )
        return Window(
            FormattedTextControl(self._body_text, get_cursor_position=self._cursor_position),
            always_hide_cursor=True,
        )

    @staticmethod
    def _label(text: str) -> Window:
        return Window(FormattedTextControl([("class:label", text)]), height=1)

    def _width(self) -> int:
        return self.app.output.get_size().columns

    def _header_text(self) -> Fragments:
        s = self.session
        titles = {
            Screen.PROJECTS: f"cctasks v{self.version}",
            Screen.TASKS: f"cctasks: {s.project_name}",
            Screen.DETAIL: f"Task #{s.detail_task_id}",
            Screen.EDIT: "New Task" if s.editing_task_id is None else f"Edit Task #{s.editing_task_id}",
            Screen.GROUPS: "Groups",
            Screen.GROUP_EDIT: "New Group" if s.editing_group_name is None else "Edit Group",
        }
        return [("", f" {titles[s.screen]} ")]

    def _body_text(self) -> Fragments:
        s = self.session
        self._cursor_line = 0
        if s.screen == Screen.PROJECTS:
            fragments, self._cursor_line = render_projects(s)
        elif s.screen == Screen.TASKS:
            fragments, self._cursor_line = render_task_list(s, self._width())
        elif s.screen == Screen.DETAIL:
            fragments = render_detail(s)
        else:
            fragments, self._cursor_line = render_groups(s)
        return fragments

    def _picker_text(self) -> Fragments:
        if self.session.picker is None:
            return []
        fragments, self._cursor_line = render_picker(self.session)
        return fragments

    def _cursor_position(self) -> Point:
        return Point(x=0, y=self._cursor_line)

    def _form_selectors(self) -> Fragments:
        form = self.session.form
        if form is None:
            return []
        if form.raw_status:
            selector = (status_style(None), f"{UNKNOWN_STATUS_ICON} {form.raw_status}")
        else:
            selector = (status_style(form.status), f"{form.status.icon} {form.status.value}")
        return [
            ("class:label", "Status: "),
            selector,
            ("class:muted", "  (Ctrl+T)\n"),
            ("class:label", "Group:  "),
            ("", form.group or "(none)"),
            ("class:muted", "  (Ctrl+G)"),
        ]

    def _palette_text(self) -> Fragments:
        form = self.session.group_form
        return render_palette(form.color_index) if form is not None else []

    def _status_text(self) -> Fragments:
        if self.session.error:
            return [("class:error", f"Error: {self.session.error}")]
        if self.session.message:
            return [("class:success", self.session.message)]
        return []

    def _footer_text(self) -> Fragments:
        if self.session.picker is not None:
            return _hints(PICKER_FOOTER)
        return _hints(FOOTERS[self.session.screen])

    # ---- form plumbing ----

    def _load_form_fields(self) -> None:
        form = self.session.form
        self.subject_field.text = form.subject
        self.description_field.text = form.description
        self.owner_field.text = form.owner
        self.blocks_field.text = form.blocks
        self.blocked_by_field.text = form.blocked_by
        self.app.layout.focus(self.subject_field)

    def _store_form_fields(self) -> None:
        form = self.session.form
        form.subject = self.subject_field.text
        form.description = self.description_field.text
        form.owner = self.owner_field.text
        form.blocks = self.blocks_field.text
        form.blocked_by = self.blocked_by_field.text

    def _next_field(self, _buffer) -> bool:
        self.app.layout.focus_next()
        return True

    def _accept_group(self, _buffer) -> bool:
        self.session.group_form.name = self.group_name_field.text
        if self.session.save_group_form():
            self.app.layout = Layout(self._build_root())
        return True

    def _open_form(self) -> None:
        self.session.message = ""
        self.app.layout = Layout(self._build_root())
        self._load_form_fields()

    def _open_group_form(self) -> None:
        self.app.layout = Layout(self._build_root())
        self.group_name_field.text = self.session.group_form.name
        self.app.layout.focus(self.group_name_field)

    def _open_picker(self) -> None:
        target = "blocks" if self.app.layout.has_focus(self.blocks_field) else "blocked_by"
        self._store_form_fields()
        self.session.open_picker(target)
        self.app.layout = Layout(self._build_root())

    def _close_picker(self, confirm: bool) -> None:
        target = self.session.picker.target
        if confirm:
            self.session.confirm_picker()
        else:
            self.session.cancel_picker()
        self.app.layout = Layout(self._build_root())
        self._load_form_fields()
        self.app.layout.focus(self.blocks_field if target == "blocks" else self.blocked_by_field)

    def _before_key_press(self, _sender) -> None:
        if self.session.check_for_external_changes():
            self.session.message = "Reloaded (changed on disk)"

    async def _poll_changes(self) -> None:
        while True:
            await asyncio.sleep(self.session.settings.refresh_interval)
            if self.session.check_for_external_changes():
                self.session.message = "Reloaded (changed on disk)"
                self.app.invalidate()

    # ---- key bindings ----

    def _build_key_bindings(self) -> KeyBindings:
        s = self.session
        kb = KeyBindings()

        def on(*screens: Screen) -> Condition:
            return Condition(lambda: s.screen in screens)

        browsing = Condition(
            lambda: s.screen not in (Screen.EDIT, Screen.GROUP_EDIT)
            and not s.search_active
            and not s.confirm_delete
            and not s.status_change_mode
        )
        tasks = on(Screen.TASKS) & browsing
        detail = on(Screen.DETAIL) & browsing
        groups = on(Screen.GROUPS) & browsing
        confirming = Condition(lambda: s.confirm_delete)
        choosing_status = Condition(lambda: s.status_change_mode)
        searching = Condition(lambda: s.search_active)
        picking = Condition(lambda: s.picker is not None)
        editing = on(Screen.EDIT) & ~picking
        on_link_field = Condition(
            lambda: self.app.layout.has_focus(self.blocks_field) or self.app.layout.has_focus(self.blocked_by_field)
        )
        group_editing = on(Screen.GROUP_EDIT)

        @kb.add("c-c")
        def _(event):
            event.app.exit()

        @kb.add("q", filter=browsing)
        def _(event):
            event.app.exit()

        # projects
        @kb.add("up", filter=on(Screen.PROJECTS) & browsing)
        @kb.add("k", filter=on(Screen.PROJECTS) & browsing)
        def _(event):
            s.move_project_cursor(-1)

        @kb.add("down", filter=on(Screen.PROJECTS) & browsing)
        @kb.add("j", filter=on(Screen.PROJECTS) & browsing)
        def _(event):
            s.move_project_cursor(1)

        @kb.add("enter", filter=on(Screen.PROJECTS) & browsing)
        @kb.add("right", filter=on(Screen.PROJECTS) & browsing)
        def _(event):
            s.open_selected_project()

        @kb.add("r", filter=on(Screen.PROJECTS) & browsing)
        def _(event):
            s.refresh_projects()

        # task list
        @kb.add("up", filter=tasks)
        @kb.add("k", filter=tasks)
        def _(event):
            s.composer.move_cursor(-1)

        @kb.add("down", filter=tasks)
        @kb.add("j", filter=tasks)
        def _(event):
            s.composer.move_cursor(1)

        @kb.add("home", filter=tasks)
        def _(event):
            s.composer.cursor_home()

        @kb.add("end", filter=tasks)
        def _(event):
            s.composer.cursor_end()

        @kb.add("enter", filter=tasks)
        def _(event):
            s.activate_current_row()

        @kb.add("right", filter=tasks)
        def _(event):
            task = s.composer.current_task()
            if task is not None:
                s.view_task(task.id)

        @kb.add("n", filter=tasks)
        def _(event):
            s.new_task()
            self._open_form()

        @kb.add("e", filter=tasks)
        def _(event):
            task = s.composer.current_task()
            if task is not None:
                s.edit_task(task.id)
                self._open_form()

        @kb.add("s", filter=tasks)
        def _(event):
            if s.composer.current_task() is not None:
                s.status_change_mode = True

        @kb.add("f", filter=tasks)
        def _(event):
            s.composer.cycle_status_filter()

        @kb.add("g", filter=tasks)
        def _(event):
            s.composer.cycle_group_filter()

        @kb.add("h", filter=tasks)
        def _(event):
            s.composer.toggle_hide_completed()

        @kb.add("G", filter=tasks)
        def _(event):
            s.open_groups()

        @kb.add("/", filter=tasks)
        def _(event):
            s.search_active = True

        @kb.add("r", filter=tasks)
        def _(event):
            s.reload()

        @kb.add("escape", filter=tasks)
        @kb.add("left", filter=tasks)
        @kb.add("p", filter=tasks)
        def _(event):
            s.back_to_projects()

        for key, status in (("1", Status.PENDING), ("2", Status.IN_PROGRESS), ("3", Status.COMPLETED),
                            ("p", Status.PENDING), ("i", Status.IN_PROGRESS), ("c", Status.COMPLETED)):

            @kb.add(key, filter=choosing_status)
            def _(event, status=status):
                s.set_current_task_status(status)

        @kb.add("escape", filter=choosing_status)
        def _(event):
            s.status_change_mode = False

        # search
        @kb.add("enter", filter=searching)
        @kb.add("escape", filter=searching)
        def _(event):
            s.search_active = False

        @kb.add("backspace", filter=searching)
        def _(event):
            s.composer.set_search(s.composer.search_query[:-1])

        @kb.add(Keys.Any, filter=searching)
        def _(event):
            char = event.data
            if len(char) == 1 and char.isprintable():
                s.composer.set_search(s.composer.search_query + char)

        # detail
        @kb.add("escape", filter=detail)
        @kb.add("left", filter=detail)
        def _(event):
            s.back_to_tasks()

        @kb.add("j", filter=detail)
        @kb.add("down", filter=detail)
        def _(event):
            s.step_detail(1)

        @kb.add("k", filter=detail)
        @kb.add("up", filter=detail)
        def _(event):
            s.step_detail(-1)

        @kb.add("e", filter=detail)
        def _(event):
            if s.detail_task_id is not None:
                s.edit_task(s.detail_task_id)
                self._open_form()

        @kb.add("s", filter=detail)
        def _(event):
            s.cycle_detail_status()

        @kb.add("d", filter=detail)
        @kb.add("d", filter=groups)
        def _(event):
            s.confirm_delete = True

        @kb.add("y", filter=confirming)
        @kb.add("Y", filter=confirming)
        def _(event):
            if s.screen == Screen.DETAIL:
                s.delete_detail_task()
            else:
                s.delete_selected_group()

        @kb.add("n", filter=confirming)
        @kb.add("N", filter=confirming)
        @kb.add("escape", filter=confirming)
        def _(event):
            s.confirm_delete = False

        # task form
        @kb.add("tab", filter=editing)
        def _(event):
            event.app.layout.focus_next()

        @kb.add("s-tab", filter=editing)
        def _(event):
            event.app.layout.focus_previous()

        @kb.add("c-t", filter=editing)
        def _(event):
            s.form.cycle_status()

        @kb.add("c-g", filter=editing)
        def _(event):
            choices = s.form_group_choices()
            i = choices.index(s.form.group) if s.form.group in choices else 0
            s.form.group = choices[(i + 1) % len(choices)]

        @kb.add("c-s", filter=editing)
        def _(event):
            self._store_form_fields()
            if s.save_form():
                self.app.layout = Layout(self._build_root())

        @kb.add("escape", filter=editing)
        def _(event):
            s.cancel_form()
            self.app.layout = Layout(self._build_root())

        @kb.add("/", filter=editing & on_link_field)
        def _(event):
            self._open_picker()

        # dependency picker
        @kb.add("up", filter=picking)
        def _(event):
            s.picker.move_cursor(-1)

        @kb.add("down", filter=picking)
        def _(event):
            s.picker.move_cursor(1)

        @kb.add("enter", filter=picking)
        def _(event):
            s.picker.toggle_current()

        @kb.add("tab", filter=picking)
        def _(event):
            self._close_picker(confirm=True)

        @kb.add("escape", filter=picking)
        def _(event):
            self._close_picker(confirm=False)

        @kb.add("backspace", filter=picking)
        def _(event):
            s.picker.set_query(s.picker.query[:-1])

        @kb.add(Keys.Any, filter=picking)
        def _(event):
            char = event.data
            if len(char) == 1 and char.isprintable():
                s.picker.set_query(s.picker.query + char)

        # groups
        @kb.add("up", filter=groups)
        @kb.add("k", filter=groups)
        def _(event):
            s.move_group_cursor(-1)

        @kb.add("down", filter=groups)
        @kb.add("j", filter=groups)
        def _(event):
            s.move_group_cursor(1)

        @kb.add("K", filter=groups)
        @kb.add("s-up", filter=groups)
        def _(event):
            s.move_selected_group(-1)

        @kb.add("J", filter=groups)
        @kb.add("s-down", filter=groups)
        def _(event):
            s.move_selected_group(1)

        @kb.add("n", filter=groups)
        def _(event):
            s.new_group()
            self._open_group_form()

        @kb.add("enter", filter=groups)
        @kb.add("e", filter=groups)
        def _(event):
            if s.selected_group() is not None:
                s.edit_selected_group()
                self._open_group_form()

        @kb.add("escape", filter=groups)
        def _(event):
            s.close_groups()

        # group form
        @kb.add("c-n", filter=group_editing)
        def _(event):
            s.group_form.cycle_color(1)

        @kb.add("c-p", filter=group_editing)
        def _(event):
            s.group_form.cycle_color(-1)

        @kb.add("escape", filter=group_editing)
        def _(event):
            s.cancel_group_form()
            self.app.layout = Layout(self._build_root())

        return kb

    def run(self) -> None:
        """Run until the user quits."""
        self.session.refresh_projects()

        def pre_run() -> None:
            self.app.create_background_task(self._poll_changes())

        self.app.run(pre_run=pre_run)


def run_tui(session: Session, version: str, project: Optional[str] = None) -> None:
    """Start the terminal application, optionally straight into a project."""
    app = TaskApp(session, version=version)
    if project:
        session.open_project(project)
    logger.info("Starting terminal UI")
    app.run()
