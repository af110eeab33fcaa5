"""Core models for cctasks.

This module defines the core data structures for task management:
- Task: A dataclass representing one task file of a project
- TaskGroup: A named, ordered, coloured category tasks may reference
- Project: A project directory and the number of task files it holds
- Status: Enum for task lifecycle status
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

UNCATEGORIZED = "Uncategorized"

# Preset colors for groups, cycled by group count on creation
DEFAULT_COLORS = [
    "#8b5cf6",  # purple
    "#3b82f6",  # blue
    "#10b981",  # green
    "#f59e0b",  # amber
    "#ef4444",  # red
    "#ec4899",  # pink
    "#06b6d4",  # cyan
    "#84cc16",  # lime
]

NEUTRAL_COLOR = "#6b7280"  # gray

UNKNOWN_STATUS_ICON = "?"


class Status(Enum):
    """Task lifecycle status."""

    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"

    @property
    def icon(self) -> str:
        return STATUS_ICONS[self]

    def next(self) -> "Status":
        """Return the status that follows this one, wrapping around."""
        members = list(Status)
        return members[(members.index(self) + 1) % len(members)]


STATUS_ICONS = {
    Status.PENDING: "○",
    Status.IN_PROGRESS: "●",
    Status.COMPLETED: "✓",
}


@dataclass
class Task:
    """Task model representing a single task file.

    Attributes:
        id: Numeric-valued string, unique within a project. Empty until the
            store assigns one.
        subject: Display title
        description: Free text body
        active_form: Present-continuous label written by the producing tool
        status: Current status of the task. Pending while raw_status is set.
        raw_status: A status string written by another tool that is not a
            Status value, kept verbatim so the file round-trips; "" otherwise
        blocks: IDs of tasks that wait for this one
        blocked_by: IDs of tasks this one waits for
        owner: Optional owner name
        group: Name of the group the task belongs to, None when ungrouped
        extra_metadata: Unrecognized metadata keys, kept for round-trips
    """

    subject: str = ""
    description: str = ""
    status: Status = Status.PENDING
    blocks: List[str] = field(default_factory=list)
    blocked_by: List[str] = field(default_factory=list)
    owner: str = ""
    group: Optional[str] = None
    active_form: str = ""
    extra_metadata: Dict[str, Any] = field(default_factory=dict)
    raw_status: str = ""
    id: str = ""

    @property
    def status_value(self) -> str:
        """Status string as stored on disk."""
        return self.raw_status or self.status.value

    @property
    def status_icon(self) -> str:
        return UNKNOWN_STATUS_ICON if self.raw_status else self.status.icon

    @property
    def has_known_status(self) -> bool:
        return not self.raw_status

    def set_status(self, status: Status) -> None:
        """Set a known status, dropping any unrecognized one."""
        self.status = status
        self.raw_status = ""

    @property
    def metadata(self) -> Dict[str, Any]:
        """The open metadata mapping as it appears on disk."""
        meta = dict(self.extra_metadata)
        if self.group:
            meta["group"] = self.group
        return meta

    @property
    def group_name(self) -> str:
        """Group used for display; ungrouped tasks fall into Uncategorized."""
        return self.group or UNCATEGORIZED

    @property
    def numeric_id(self) -> int:
        """Integer value of the ID, zero when it is not a number."""
        try:
            return int(self.id)
        except (TypeError, ValueError):
            return 0


@dataclass
class TaskGroup:
    """A named category with a display order and a colour."""

    name: str
    order: int = 0
    color: str = ""


@dataclass
class Project:
    name: str
    task_count: int
