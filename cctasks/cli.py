"""Command-line interface for cctasks.

Without a command the full-screen terminal application starts. The
subcommands give scriptable access to the same stores:
- projects: List projects and their task counts
- list / show: Print a project's composed task list or one task
- add / status / delete: Create, update and remove tasks
- groups / group-add / group-delete / group-move: Manage groups
"""

import argparse
import logging
import sys
from typing import List, Optional

from cctasks.composer import ListComposer
from cctasks.config import Settings, load_settings
from cctasks.logging_setup import setup_logging
from cctasks.models import UNKNOWN_STATUS_ICON, Status, Task, TaskGroup
from cctasks.repository import TaskNotFoundError
from cctasks.session import Session, load_project, parse_task_ids
from cctasks.storage import StorageError, list_projects

__version__ = "0.1.0"

logger = logging.getLogger(__name__)

STATUS_CHOICES = [s.value for s in Status]


def create_parser() -> argparse.ArgumentParser:
    """Create and configure the argument parser.

    Returns:
        Configured ArgumentParser instance
    """
    parser = argparse.ArgumentParser(
        prog="cctasks",
        description="Browse and edit Claude Code task lists"
    )
    parser.add_argument(
        "-v", "--version",
        action="version",
        version=f"cctasks {__version__}"
    )
    parser.add_argument("--log-dir", help="Directory for cctasks.log")

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # TUI command
    tui_parser = subparsers.add_parser("tui", help="Start the terminal UI (default)")
    tui_parser.add_argument("project", nargs="?", help="Open this project directly")

    subparsers.add_parser("projects", help="List projects")

    # List command
    list_parser = subparsers.add_parser("list", help="List a project's tasks by group")
    list_parser.add_argument("project", help="Project name")
    list_parser.add_argument("--status", choices=STATUS_CHOICES, help="Filter tasks by status")
    list_parser.add_argument("--group", help="Filter tasks by group")
    list_parser.add_argument("--search", help="Filter by text in subject or description")
    list_parser.add_argument(
        "--hide-completed",
        action="store_true",
        help="Leave out completed tasks"
    )

    show_parser = subparsers.add_parser("show", help="Show one task")
    show_parser.add_argument("project", help="Project name")
    show_parser.add_argument("id", help="Task ID")

    # Add command
    add_parser = subparsers.add_parser("add", help="Add a new task")
    add_parser.add_argument("project", help="Project name")
    add_parser.add_argument("subject", help="Task subject")
    add_parser.add_argument("--description", default="", help="Task description")
    add_parser.add_argument("--owner", default="", help="Task owner")
    add_parser.add_argument("--group", help="Group name, created if missing")
    add_parser.add_argument("--blocks", default="", help="Comma-separated IDs this task blocks")
    add_parser.add_argument("--blocked-by", default="", help="Comma-separated IDs blocking this task")

    status_parser = subparsers.add_parser("status", help="Set a task's status")
    status_parser.add_argument("project", help="Project name")
    status_parser.add_argument("id", help="Task ID")
    status_parser.add_argument("status", choices=STATUS_CHOICES, help="New status")

    # Delete command
    delete_parser = subparsers.add_parser("delete", help="Delete a task")
    delete_parser.add_argument("project", help="Project name")
    delete_parser.add_argument("id", help="Task ID")

    groups_parser = subparsers.add_parser("groups", help="List a project's groups")
    groups_parser.add_argument("project", help="Project name")

    group_add_parser = subparsers.add_parser("group-add", help="Add a group")
    group_add_parser.add_argument("project", help="Project name")
    group_add_parser.add_argument("name", help="Group name")
    group_add_parser.add_argument("--color", default="", help="Hex colour (default: next palette colour)")

    group_delete_parser = subparsers.add_parser("group-delete", help="Delete a group")
    group_delete_parser.add_argument("project", help="Project name")
    group_delete_parser.add_argument("name", help="Group name")

    group_move_parser = subparsers.add_parser("group-move", help="Move a group up or down")
    group_move_parser.add_argument("project", help="Project name")
    group_move_parser.add_argument("name", help="Group name")
    group_move_parser.add_argument("direction", choices=["up", "down"], help="Direction")

    return parser


def format_task_line(task: Task) -> str:
    return f"{task.status_icon} #{task.id} {task.subject} [{task.status_value}]"


def cmd_tui(args: argparse.Namespace, settings: Settings) -> int:
    """Handle the default command by starting the terminal UI.

    prompt_toolkit is imported here so scripted commands do not pay for it.
    """
    from cctasks.tui import run_tui

    run_tui(Session(settings), version=__version__, project=getattr(args, "project", None))
    return 0


def cmd_projects(args: argparse.Namespace, settings: Settings) -> int:
    """Handle the 'projects' command.

    Returns:
        Exit code (0 for success)
    """
    projects = list_projects(settings.tasks_dir)
    if not projects:
        print(f"No projects found in {settings.tasks_dir}.")
        return 0
    for project in projects:
        print(f"{project.name} ({project.task_count} tasks)")
    return 0


def cmd_list(args: argparse.Namespace, settings: Settings) -> int:
    """Handle the 'list' command.

    Prints the same rows the task list screen shows, with every group
    expanded.

    Returns:
        Exit code (0 for success)
    """
    task_store, group_store = load_project(settings, args.project)
    composer = ListComposer(
        task_store,
        group_store,
        hide_completed=args.hide_completed,
        collapse_by_default=False,
    )
    composer.status_filter = Status(args.status) if args.status else None
    composer.group_filter = args.group or ""
    composer.search_query = args.search or ""
    composer.rebuild()

    if not composer.rows:
        print("No tasks found.")
        return 0

    for row in composer.rows:
        if row.is_group:
            counts = "  ".join(
                f"{s.icon}{row.counts[s]}" for s in Status if row.counts.get(s)
            )
            if row.counts.get(None):
                counts += f"  {UNKNOWN_STATUS_ICON}{row.counts[None]}"
            print(f"▼ {row.group_name} ({row.total})  {counts}".rstrip())
            continue
        print(f"  {format_task_line(row.task)}")
        if row.task.blocked_by:
            print(f"    └─ blocked by: {', '.join(row.task.blocked_by)}")

    return 0


def cmd_show(args: argparse.Namespace, settings: Settings) -> int:
    """Handle the 'show' command.

    Args:
        args: Parsed command-line arguments
        settings: Resolved settings

    Returns:
        Exit code (0 for success, 1 for error)
    """
    task_store, _ = load_project(settings, args.project)
    task = task_store.get_task(args.id)
    if task is None:
        raise TaskNotFoundError(args.id)

    print(f"#{task.id} {task.subject}")
    print(f"Status:      {task.status_icon} {task.status_value}")
    print(f"Group:       {task.group or '(none)'}")
    if task.owner:
        print(f"Owner:       {task.owner}")
    if task.active_form:
        print(f"Active form: {task.active_form}")
    print(f"Blocks:      {', '.join(task.blocks) or '-'}")
    print(f"Blocked by:  {', '.join(task.blocked_by) or '-'}")
    if task.description:
        print()
        print(task.description)
    return 0


def cmd_add(args: argparse.Namespace, settings: Settings) -> int:
    """Handle the 'add' command.

    Args:
        args: Parsed command-line arguments
        settings: Resolved settings

    Returns:
        Exit code (0 for success)
    """
    task_store, group_store = load_project(settings, args.project)
    task = Task(
        subject=args.subject,
        description=args.description,
        owner=args.owner,
        group=args.group or None,
        blocks=parse_task_ids(args.blocks),
        blocked_by=parse_task_ids(args.blocked_by),
    )
    task_store.add_task(task)
    task_store.save()

    if args.group and group_store.get_group(args.group) is None:
        group_store.ensure_group_exists(args.group)
        group_store.save()

    print(f"Task added: #{task.id} {task.subject}")
    return 0


def cmd_status(args: argparse.Namespace, settings: Settings) -> int:
    """Handle the 'status' command.

    A status written by another tool is replaced.

    Args:
        args: Parsed command-line arguments
        settings: Resolved settings

    Returns:
        Exit code (0 for success, 1 for error)
    """
    task_store, _ = load_project(settings, args.project)
    task = task_store.get_task(args.id)
    if task is None:
        raise TaskNotFoundError(args.id)

    task.set_status(Status(args.status))
    task_store.update_task(task)
    task_store.save()
    print(f"Task #{task.id} is now {task.status_value}: {task.subject}")
    return 0


def cmd_delete(args: argparse.Namespace, settings: Settings) -> int:
    """Handle the 'delete' command.

    Links to the task from other tasks are removed and saved too.

    Returns:
        Exit code (0 for success, 1 for error)
    """
    task_store, _ = load_project(settings, args.project)
    task_store.delete_task(args.id)
    task_store.save()
    print(f"Task #{args.id} deleted.")
    return 0


def cmd_groups(args: argparse.Namespace, settings: Settings) -> int:
    """Handle the 'groups' command, one line per group in display order.

    Returns:
        Exit code (0 for success)
    """
    _, group_store = load_project(settings, args.project)
    if not group_store.groups:
        print("No groups found.")
        return 0
    for group in group_store.groups:
        print(f"{group.order:>3}  {group.name}  {group.color}")
    return 0


def cmd_group_add(args: argparse.Namespace, settings: Settings) -> int:
    """Handle the 'group-add' command.

    The group goes last. Without --color it takes the next palette colour.

    Args:
        args: Parsed command-line arguments
        settings: Resolved settings

    Returns:
        Exit code (0 for success, 1 for error)
    """
    _, group_store = load_project(settings, args.project)
    if group_store.get_group(args.name) is not None:
        print(f"Error: Group '{args.name}' already exists.", file=sys.stderr)
        return 1

    group = group_store.add_group(TaskGroup(name=args.name, color=args.color))
    group_store.save()
    print(f"Group added: {group.name} {group.color}")
    return 0


def cmd_group_delete(args: argparse.Namespace, settings: Settings) -> int:
    """Handle the 'group-delete' command.

    Tasks in the group keep its name in their metadata.

    Args:
        args: Parsed command-line arguments
        settings: Resolved settings

    Returns:
        Exit code (0 for success, 1 for error)
    """
    _, group_store = load_project(settings, args.project)
    if not group_store.delete_group(args.name):
        print(f"Error: Group '{args.name}' not found.", file=sys.stderr)
        return 1

    group_store.save()
    print(f"Group '{args.name}' deleted.")
    return 0


def cmd_group_move(args: argparse.Namespace, settings: Settings) -> int:
    """Handle the 'group-move' command.

    Args:
        args: Parsed command-line arguments
        settings: Resolved settings

    Returns:
        Exit code (0 for success, 1 for error)
    """
    _, group_store = load_project(settings, args.project)
    if group_store.get_group(args.name) is None:
        print(f"Error: Group '{args.name}' not found.", file=sys.stderr)
        return 1

    if args.direction == "up":
        moved = group_store.move_group_up(args.name)
    else:
        moved = group_store.move_group_down(args.name)

    if not moved:
        print(f"Group '{args.name}' is already at the {'top' if args.direction == 'up' else 'bottom'}.")
        return 0

    group_store.save()
    print(f"Group '{args.name}' moved {args.direction}.")
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for the CLI.

    Args:
        argv: Command-line arguments. If None, uses sys.argv[1:]

    Returns:
        Exit code (0 for success, non-zero for error)
    """
    parser = create_parser()
    args = parser.parse_args(argv)

    command = args.command or "tui"
    settings = load_settings(args.log_dir)

    # The terminal UI owns the screen; keep stderr quiet while it runs.
    console_level = logging.CRITICAL if command == "tui" else logging.WARNING
    try:
        setup_logging(settings.log_dir, settings.log_level, console_level)
    except OSError as e:
        print(f"Error: cannot set up logging in {settings.log_dir}: {e}", file=sys.stderr)
        return 1

    # Dispatch to command handlers
    commands = {
        "tui": cmd_tui,
        "projects": cmd_projects,
        "list": cmd_list,
        "show": cmd_show,
        "add": cmd_add,
        "status": cmd_status,
        "delete": cmd_delete,
        "groups": cmd_groups,
        "group-add": cmd_group_add,
        "group-delete": cmd_group_delete,
        "group-move": cmd_group_move,
    }

    handler = commands.get(command)
    if handler is None:
        print(f"Error: Unknown command '{command}'", file=sys.stderr)
        return 1

    logger.debug("Running command %s", command)
    try:
        return handler(args, settings)
    except TaskNotFoundError as e:
        print(f"Error: Task #{e.task_id} not found.", file=sys.stderr)
        return 1
    except (StorageError, OSError) as e:
        logger.error("Command %s failed: %s", command, e)
        print(f"Error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
