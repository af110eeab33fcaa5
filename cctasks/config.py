"""Configuration for cctasks.

All settings come from environment variables so the tool can be pointed at
a scratch directory without touching the real task lists:

- CCTASKS_TASKS_DIR: root holding one directory per project
- CCTASKS_BACKUP_DIR: root of the per-project backup mirror
- CCTASKS_LOG_DIR: where the log file is written
- CCTASKS_LOG_LEVEL: level name for the log file
- CCTASKS_HIDE_COMPLETED / CCTASKS_COLLAPSE_GROUPS: list view defaults
- CCTASKS_REFRESH_INTERVAL: seconds between staleness polls in the TUI
"""

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

GROUPS_FILE_NAME = "_groups.json"

_TRUTHY = {"1", "true", "yes", "on"}
_FALSY = {"0", "false", "no", "off"}


def _claude_home() -> Path:
    return Path.home() / ".claude"


def _env_path(name: str, default: Path) -> Path:
    value = os.environ.get(name)
    if value:
        return Path(value).expanduser()
    return default


def _env_bool(name: str, default: bool) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    value = value.strip().lower()
    if value in _TRUTHY:
        return True
    if value in _FALSY:
        return False
    return default


def _env_float(name: str, default: float) -> float:
    try:
        return float(os.environ.get(name, default))
    except ValueError:
        return default


def get_tasks_dir() -> Path:
    """Return the tasks root, ~/.claude/tasks unless overridden."""
    return _env_path("CCTASKS_TASKS_DIR", _claude_home() / "tasks")


def get_backup_dir() -> Path:
    """Return the backup root, ~/.claude/tasks_backup unless overridden."""
    return _env_path("CCTASKS_BACKUP_DIR", _claude_home() / "tasks_backup")


def get_project_dir(project_name: str) -> Path:
    return get_tasks_dir() / project_name


def get_backup_project_dir(project_name: str) -> Path:
    return get_backup_dir() / project_name


def get_groups_file_path(project_name: str) -> Path:
    return get_project_dir(project_name) / GROUPS_FILE_NAME


@dataclass
class Settings:
    """Resolved runtime settings.

    Attributes:
        tasks_dir: Root holding one directory per project
        backup_dir: Root of the backup mirror
        log_dir: Directory for the log file
        log_level: Level for the log file handler
        hide_completed: Whether the list view starts with completed tasks hidden
        collapse_groups: Whether group headers start collapsed
        refresh_interval: Seconds between staleness polls in the TUI
    """

    tasks_dir: Path
    backup_dir: Path
    log_dir: Path
    log_level: int = logging.DEBUG
    hide_completed: bool = True
    collapse_groups: bool = True
    refresh_interval: float = 1.0


def load_settings(log_dir: Optional[str] = None) -> Settings:
    """Build Settings from the environment.

    Args:
        log_dir: Explicit log directory, taking precedence over CCTASKS_LOG_DIR

    Returns:
        Settings instance
    """
    level_name = os.environ.get("CCTASKS_LOG_LEVEL", "DEBUG").upper()
    level = logging.getLevelName(level_name)
    if not isinstance(level, int):
        level = logging.DEBUG

    return Settings(
        tasks_dir=get_tasks_dir(),
        backup_dir=get_backup_dir(),
        log_dir=Path(log_dir) if log_dir else _env_path("CCTASKS_LOG_DIR", _claude_home() / "cctasks"),
        log_level=level,
        hide_completed=_env_bool("CCTASKS_HIDE_COMPLETED", True),
        collapse_groups=_env_bool("CCTASKS_COLLAPSE_GROUPS", True),
        refresh_interval=max(0.1, _env_float("CCTASKS_REFRESH_INTERVAL", 1.0)),
    )
