"""Tests for ListComposer."""

import pytest

from cctasks.composer import ALL, ListComposer
from cctasks.models import UNCATEGORIZED, Status, Task, TaskGroup
from cctasks.repository import GroupStore, TaskStore
from cctasks.storage import GroupFileStorage, TaskDirectoryStorage


def make_stores(tmp_path, tasks, groups):
    task_store = TaskStore("proj", TaskDirectoryStorage(tmp_path / "proj"), tasks=tasks)
    group_store = GroupStore("proj", GroupFileStorage(tmp_path / "proj" / "_groups.json"), groups=groups)
    return task_store, group_store


def row_labels(composer):
    """Headers as their group name, tasks as '#id'."""
    return [r.group_name if r.is_group else f"#{r.task.id}" for r in composer.rows]


class TestListComposer:
    """Test suite for row composition."""

    @pytest.fixture
    def tasks(self):
        return [
            Task(id="1", subject="Design API", description="REST endpoints", group="Backend"),
            Task(id="2", subject="Build UI", status=Status.IN_PROGRESS, group="Frontend"),
            Task(id="3", subject="Write docs", status=Status.COMPLETED, group="Backend"),
            Task(id="4", subject="Loose end"),
            Task(id="5", subject="Old idea", group="Zebra"),
            Task(id="6", subject="Another", group="Archive"),
        ]

    @pytest.fixture
    def groups(self):
        return [
            TaskGroup("Frontend", order=1, color="#3b82f6"),
            TaskGroup("Backend", order=2, color="#8b5cf6"),
            TaskGroup("Empty", order=3, color="#10b981"),
        ]

    @pytest.fixture
    def composer(self, tmp_path, tasks, groups):
        task_store, group_store = make_stores(tmp_path, tasks, groups)
        return ListComposer(task_store, group_store, hide_completed=False, collapse_by_default=False)

    def test_group_order(self, composer):
        """Test registered groups first, then the rest alphabetically, Uncategorized last."""
        headers = [r.group_name for r in composer.rows if r.is_group]
        assert headers == ["Frontend", "Backend", "Archive", "Zebra", UNCATEGORIZED]

    def test_rows_expanded(self, composer):
        """Test that each header is followed by its tasks in ID order."""
        assert row_labels(composer) == [
            "Frontend", "#2",
            "Backend", "#1", "#3",
            "Archive", "#6",
            "Zebra", "#5",
            UNCATEGORIZED, "#4",
        ]

    def test_empty_group_has_no_header(self, composer):
        """Test that a registered group without visible tasks is skipped."""
        assert "Empty" not in [r.group_name for r in composer.rows if r.is_group]

    def test_collapsed_by_default(self, tmp_path, tasks, groups):
        """Test that groups start collapsed when configured so."""
        composer = ListComposer(*make_stores(tmp_path, tasks, groups), hide_completed=False)
        assert all(r.is_group and r.collapsed for r in composer.rows)
        assert len(composer.rows) == 5

    def test_toggle_collapsed(self, composer):
        """Test that collapsing a group hides its task rows only."""
        composer.toggle_collapsed("Backend")
        assert row_labels(composer)[:4] == ["Frontend", "#2", "Backend", "Archive"]
        assert composer.is_collapsed("Backend")
        composer.toggle_collapsed("Backend")
        assert "#1" in row_labels(composer)

    def test_header_counts_use_all_tasks(self, composer):
        """Test that header counts ignore the active filters."""
        composer.set_search("design")
        header = composer.rows[0]
        assert header.group_name == "Backend"
        assert header.counts == {Status.PENDING: 1, Status.COMPLETED: 1}
        assert header.total == 2

    def test_hide_completed(self, composer):
        """Test that hiding completed tasks drops them from every group."""
        composer.toggle_hide_completed()
        assert "#3" not in row_labels(composer)

    def test_hide_completed_overrides_status_filter(self, composer):
        """Test that completed tasks stay hidden even when filtered for."""
        composer.hide_completed = True
        composer.status_filter = Status.COMPLETED
        composer.rebuild()
        assert composer.rows == []

    def test_status_filter_cycle(self, composer):
        """Test the status filter cycle all -> pending -> in_progress -> completed -> all."""
        seen = []
        for _ in range(4):
            composer.cycle_status_filter()
            seen.append(composer.status_label)
        assert seen == ["pending", "in_progress", "completed", "All"]

    def test_status_filter_rows(self, composer):
        """Test that a status filter keeps only matching tasks."""
        composer.cycle_status_filter()
        composer.cycle_status_filter()
        assert row_labels(composer) == ["Frontend", "#2"]

    def test_group_filter_cycle(self, composer):
        """Test the group filter cycle through registered groups then Uncategorized."""
        seen = []
        for _ in range(5):
            composer.cycle_group_filter()
            seen.append(composer.group_label)
        assert seen == ["Frontend", "Backend", "Empty", UNCATEGORIZED, "All Groups"]
        assert composer.group_filter == ALL

    def test_group_filter_uncategorized(self, composer):
        """Test filtering for ungrouped tasks."""
        composer.group_filter = UNCATEGORIZED
        composer.rebuild()
        assert row_labels(composer) == [UNCATEGORIZED, "#4"]

    def test_search(self, composer):
        """Test case-insensitive search over subject or description."""
        composer.set_search("rest")
        assert row_labels(composer) == ["Backend", "#1"]
        composer.set_search("BUILD")
        assert row_labels(composer) == ["Frontend", "#2"]
        composer.set_search("")
        assert len(composer.visible_tasks()) == 6

    def test_unknown_status_counted_and_filtered(self, tmp_path, groups):
        """Test that a foreign status counts under None and fails every status filter."""
        tasks = [
            Task(id="1", subject="Known", group="Backend"),
            Task(id="2", subject="Foreign", group="Backend", raw_status="blocked"),
        ]
        composer = ListComposer(*make_stores(tmp_path, tasks, groups), hide_completed=True,
                                collapse_by_default=False)
        assert row_labels(composer) == ["Backend", "#1", "#2"]
        assert composer.rows[0].counts == {Status.PENDING: 1, None: 1}
        assert composer.rows[0].total == 2

        composer.status_filter = Status.PENDING
        composer.rebuild()
        assert row_labels(composer) == ["Backend", "#1"]


class TestListComposerCursor:
    """Test suite for cursor handling."""

    @pytest.fixture
    def composer(self, tmp_path):
        tasks = [Task(id=str(i), subject=f"T{i}", group="G") for i in range(1, 4)]
        stores = make_stores(tmp_path, tasks, [TaskGroup("G", order=1, color="#8b5cf6")])
        return ListComposer(*stores, hide_completed=False, collapse_by_default=False)

    def test_cursor_clamped(self, composer):
        """Test that the cursor stays within the rows."""
        composer.move_cursor(-5)
        assert composer.cursor == 0
        composer.move_cursor(50)
        assert composer.cursor == 3
        composer.cursor_home()
        assert composer.current_row().is_group
        composer.cursor_end()
        assert composer.current_task().id == "3"

    def test_cursor_clamped_on_rebuild(self, composer):
        """Test that a shrinking list pulls the cursor back."""
        composer.cursor_end()
        composer.toggle_collapsed("G")
        assert composer.cursor == 0

    def test_empty_list(self, tmp_path):
        """Test cursor queries on an empty list."""
        composer = ListComposer(*make_stores(tmp_path, [], []))
        assert composer.rows == []
        assert composer.cursor == 0
        assert composer.current_row() is None
        assert composer.current_task() is None

    def test_select_task(self, composer):
        """Test moving the cursor to a task by ID."""
        assert composer.select_task("2") is True
        assert composer.cursor == 2
        assert composer.select_task("99") is False

    def test_adjacent_task_wraps(self, composer):
        """Test next and previous task navigation with wrap-around."""
        assert composer.adjacent_task("1", 1).id == "2"
        assert composer.adjacent_task("3", 1).id == "1"
        assert composer.adjacent_task("1", -1).id == "3"
        assert composer.adjacent_task("99", 1) is None

    def test_reload_keeps_cursor_on_task(self, tmp_path, composer):
        """Test that a reload follows the selected task to its new row."""
        composer.select_task("2")
        tasks = [
            Task(id="0", subject="new first", group="G"),
            Task(id="1", subject="T1", group="G"),
            Task(id="2", subject="T2", group="G"),
        ]
        composer.reload(*make_stores(tmp_path, tasks, [TaskGroup("G", order=1)]))
        assert composer.current_task().id == "2"
        assert composer.cursor == 3

    def test_reload_task_gone(self, tmp_path, composer):
        """Test that the cursor index is clamped when its task disappears."""
        composer.cursor_end()
        composer.reload(*make_stores(tmp_path, [Task(id="1", subject="T1", group="G")], []))
        assert composer.cursor == 1
        assert composer.current_task().id == "1"

    def test_reload_keeps_filters_and_collapse(self, tmp_path, composer):
        """Test that filters and collapse state survive a reload."""
        composer.set_search("T1")
        composer.set_collapsed("Other", True)
        stores = make_stores(
            tmp_path,
            [Task(id="1", subject="T1", group="G"), Task(id="2", subject="x", group="Other")],
            [],
        )
        composer.reload(*stores)
        assert composer.search_query == "T1"
        assert row_labels(composer) == ["G", "#1"]
        assert composer.is_collapsed("Other")
