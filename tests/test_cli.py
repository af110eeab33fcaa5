"""Comprehensive tests for CLI module."""

import json
import os
from io import StringIO
from unittest.mock import patch

import pytest

from cctasks.cli import (
    __version__,
    cmd_add,
    cmd_delete,
    cmd_group_add,
    cmd_group_delete,
    cmd_group_move,
    cmd_groups,
    cmd_list,
    cmd_projects,
    cmd_show,
    cmd_status,
    create_parser,
    main,
)
from cctasks.config import Settings
from cctasks.models import DEFAULT_COLORS, Status
from cctasks.session import load_project


class TestCLI:
    """Test suite for CLI functionality."""

    @pytest.fixture
    def settings(self, tmp_path):
        """Settings pointing at temporary roots."""
        return Settings(
            tasks_dir=tmp_path / "tasks",
            backup_dir=tmp_path / "backup",
            log_dir=tmp_path / "logs",
        )

    @pytest.fixture
    def env(self, settings):
        """Environment that makes main() use the temporary roots."""
        return {
            "CCTASKS_TASKS_DIR": str(settings.tasks_dir),
            "CCTASKS_BACKUP_DIR": str(settings.backup_dir),
            "CCTASKS_LOG_DIR": str(settings.log_dir),
        }

    def run(self, handler, argv, settings):
        """Parse argv and call handler, capturing stdout and stderr."""
        args = create_parser().parse_args(argv)
        with patch("sys.stdout", new_callable=StringIO) as out, \
                patch("sys.stderr", new_callable=StringIO) as err:
            result = handler(args, settings)
        return result, out.getvalue(), err.getvalue()

    def seed(self, settings):
        """Create a project with three tasks and one group."""
        for argv in (
            ["add", "alpha", "Design API", "--group", "Backend", "--description", "REST"],
            ["add", "alpha", "Build UI", "--blocked-by", "1"],
            ["add", "alpha", "Write docs", "--owner", "agent-1"],
        ):
            self.run(cmd_add, argv, settings)

    def test_create_parser(self):
        """Test that parser is created with correct subcommands."""
        parser = create_parser()
        assert parser.prog == "cctasks"

        with pytest.raises(SystemExit):
            parser.parse_args(["--help"])

    def test_parser_defaults_to_no_command(self):
        """Test that no arguments leaves the command unset."""
        args = create_parser().parse_args([])
        assert args.command is None

    def test_parser_list_command(self):
        """Test parsing 'list' command with filters."""
        args = create_parser().parse_args(
            ["list", "alpha", "--status", "in_progress", "--group", "Backend", "--hide-completed"]
        )
        assert args.project == "alpha"
        assert args.status == "in_progress"
        assert args.group == "Backend"
        assert args.hide_completed is True
        assert args.search is None

    def test_parser_rejects_unknown_status(self):
        """Test that only on-disk status values are accepted."""
        with pytest.raises(SystemExit):
            create_parser().parse_args(["status", "alpha", "1", "done"])

    def test_parser_group_move_direction(self):
        """Test parsing 'group-move'."""
        args = create_parser().parse_args(["group-move", "alpha", "Backend", "down"])
        assert args.direction == "down"

    def test_version(self):
        """Test --version output."""
        with patch("sys.stdout", new_callable=StringIO) as out:
            with pytest.raises(SystemExit) as exc_info:
                create_parser().parse_args(["--version"])
        assert exc_info.value.code == 0
        assert out.getvalue().strip() == f"cctasks {__version__}"

    def test_cmd_add(self, settings):
        """Test cmd_add writes a task file and ensures its group."""
        result, out, _ = self.run(
            cmd_add, ["add", "alpha", "Design API", "--group", "Backend", "--blocks", "2, 3"], settings
        )

        assert result == 0
        assert "Task added: #1 Design API" in out
        data = json.loads((settings.tasks_dir / "alpha" / "1.json").read_text())
        assert data["blocks"] == ["2", "3"]
        assert data["metadata"] == {"group": "Backend"}

        _, group_store = load_project(settings, "alpha")
        assert group_store.get_group_names() == ["Backend"]
        assert group_store.get_group("Backend").color == DEFAULT_COLORS[0]

    def test_cmd_add_existing_group_not_duplicated(self, settings):
        """Test that adding to an existing group leaves the groups alone."""
        self.run(cmd_add, ["add", "alpha", "One", "--group", "Backend"], settings)
        self.run(cmd_add, ["add", "alpha", "Two", "--group", "Backend"], settings)
        _, group_store = load_project(settings, "alpha")
        assert len(group_store.groups) == 1

    def test_cmd_add_next_id(self, settings):
        """Test that IDs continue after the largest one."""
        self.seed(settings)
        _, out, _ = self.run(cmd_add, ["add", "alpha", "Fourth"], settings)
        assert "#4" in out

    def test_cmd_projects(self, settings):
        """Test listing projects with counts."""
        self.seed(settings)
        result, out, _ = self.run(cmd_projects, ["projects"], settings)
        assert result == 0
        assert "alpha (3 tasks)" in out

    def test_cmd_projects_empty(self, settings):
        """Test listing projects when none exist."""
        _, out, _ = self.run(cmd_projects, ["projects"], settings)
        assert "No projects found" in out

    def test_cmd_list(self, settings):
        """Test the composed list output."""
        self.seed(settings)
        result, out, _ = self.run(cmd_list, ["list", "alpha"], settings)

        assert result == 0
        lines = out.splitlines()
        assert lines[0].startswith("▼ Backend (1)")
        assert lines[1] == "  ○ #1 Design API [pending]"
        assert lines[2].startswith("▼ Uncategorized (2)")
        assert "    └─ blocked by: 1" in lines

    def test_cmd_list_filters(self, settings):
        """Test status, search and hide-completed filters."""
        self.seed(settings)
        self.run(cmd_status, ["status", "alpha", "3", "completed"], settings)

        _, out, _ = self.run(cmd_list, ["list", "alpha", "--status", "completed"], settings)
        assert "Write docs" in out
        assert "Design API" not in out

        _, out, _ = self.run(cmd_list, ["list", "alpha", "--hide-completed"], settings)
        assert "Write docs" not in out

        _, out, _ = self.run(cmd_list, ["list", "alpha", "--search", "rest"], settings)
        assert "Design API" in out
        assert "Build UI" not in out

    def test_cmd_list_group_filter(self, settings):
        """Test the group filter, including Uncategorized."""
        self.seed(settings)
        _, out, _ = self.run(cmd_list, ["list", "alpha", "--group", "Uncategorized"], settings)
        assert "Build UI" in out
        assert "Design API" not in out

    def test_cmd_list_empty(self, settings):
        """Test cmd_list with no tasks."""
        result, out, _ = self.run(cmd_list, ["list", "ghost"], settings)
        assert result == 0
        assert "No tasks found." in out

    def test_cmd_show(self, settings):
        """Test showing one task."""
        self.seed(settings)
        result, out, _ = self.run(cmd_show, ["show", "alpha", "2"], settings)
        assert result == 0
        assert "#2 Build UI" in out
        assert "Blocked by:  1" in out

    def test_cmd_status(self, settings):
        """Test setting a status persists it."""
        self.seed(settings)
        result, out, _ = self.run(cmd_status, ["status", "alpha", "2", "in_progress"], settings)
        assert result == 0
        assert "Task #2 is now in_progress" in out
        task_store, _ = load_project(settings, "alpha")
        assert task_store.get_task("2").status == Status.IN_PROGRESS

    def test_foreign_status(self, settings):
        """Test that a status written by another tool is listed as ? and can be replaced."""
        project = settings.tasks_dir / "alpha"
        project.mkdir(parents=True)
        (project / "1.json").write_text(json.dumps({"id": "1", "subject": "Waiting", "status": "blocked"}))

        _, out, _ = self.run(cmd_list, ["list", "alpha"], settings)
        assert "? #1 Waiting [blocked]" in out
        assert "?1" in out

        _, out, _ = self.run(cmd_show, ["show", "alpha", "1"], settings)
        assert "Status:      ? blocked" in out

        self.run(cmd_status, ["status", "alpha", "1", "completed"], settings)
        assert json.loads((project / "1.json").read_text())["status"] == "completed"

    def test_cmd_delete_cleans_links(self, settings):
        """Test cmd_delete removes the file and links to it."""
        self.seed(settings)
        result, out, _ = self.run(cmd_delete, ["delete", "alpha", "1"], settings)
        assert result == 0
        assert "Task #1 deleted." in out
        assert not (settings.tasks_dir / "alpha" / "1.json").exists()
        data = json.loads((settings.tasks_dir / "alpha" / "2.json").read_text())
        assert data["blockedBy"] == []

    def test_cmd_groups(self, settings):
        """Test listing groups in order with colours."""
        self.seed(settings)
        self.run(cmd_group_add, ["group-add", "alpha", "Ops", "--color", "#123456"], settings)
        _, out, _ = self.run(cmd_groups, ["groups", "alpha"], settings)
        lines = out.splitlines()
        assert "Backend" in lines[0]
        assert lines[1].endswith("Ops  #123456")

    def test_cmd_group_add_duplicate(self, settings):
        """Test that adding an existing group is an error."""
        self.seed(settings)
        result, _, err = self.run(cmd_group_add, ["group-add", "alpha", "Backend"], settings)
        assert result == 1
        assert "Error: Group 'Backend' already exists." in err

    def test_cmd_group_delete(self, settings):
        """Test deleting a group and a missing group."""
        self.seed(settings)
        result, _, _ = self.run(cmd_group_delete, ["group-delete", "alpha", "Backend"], settings)
        assert result == 0
        result, _, err = self.run(cmd_group_delete, ["group-delete", "alpha", "Backend"], settings)
        assert result == 1
        assert "not found" in err

    def test_cmd_group_move(self, settings):
        """Test moving groups and the no-op at the edges."""
        self.seed(settings)
        self.run(cmd_group_add, ["group-add", "alpha", "Ops"], settings)

        result, out, _ = self.run(cmd_group_move, ["group-move", "alpha", "Ops", "up"], settings)
        assert result == 0
        assert "moved up" in out
        _, group_store = load_project(settings, "alpha")
        assert group_store.get_group_names() == ["Ops", "Backend"]

        result, out, _ = self.run(cmd_group_move, ["group-move", "alpha", "Ops", "up"], settings)
        assert result == 0
        assert "already at the top" in out

    def test_main_no_command_starts_tui(self, env):
        """Test that no command launches the terminal UI."""
        with patch.dict(os.environ, env), \
                patch("cctasks.cli.setup_logging"), \
                patch("cctasks.cli.cmd_tui", return_value=0) as cmd_tui:
            assert main([]) == 0
        cmd_tui.assert_called_once()

    def test_main_dispatch(self, env, settings):
        """Test main dispatches to a handler using the environment roots."""
        with patch.dict(os.environ, env), patch("cctasks.cli.setup_logging"):
            with patch("sys.stdout", new_callable=StringIO):
                assert main(["add", "alpha", "From main"]) == 0
        assert (settings.tasks_dir / "alpha" / "1.json").exists()

    def test_main_task_not_found(self, env):
        """Test that a missing task prints an error and exits 1."""
        with patch.dict(os.environ, env), patch("cctasks.cli.setup_logging"):
            with patch("sys.stderr", new_callable=StringIO) as err:
                assert main(["show", "alpha", "999"]) == 1
        assert "Error: Task #999 not found." in err.getvalue()

    def test_main_corrupt_groups_file(self, env, settings):
        """Test that a corrupt groups file is reported as an error."""
        project = settings.tasks_dir / "alpha"
        project.mkdir(parents=True)
        (project / "_groups.json").write_text("{oops")
        with patch.dict(os.environ, env), patch("cctasks.cli.setup_logging"):
            with patch("sys.stderr", new_callable=StringIO) as err:
                assert main(["groups", "alpha"]) == 1
        assert "Error: invalid groups file" in err.getvalue()
