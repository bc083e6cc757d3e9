"""
Text rendering of tasks for the terminal.
"""

from datetime import date
from typing import Dict, Iterable, List, Optional, Tuple

import click

from .models import Meta, Task, format_due_date
from .tree import UNSET_KEY, UNSET_LABEL

INDENT = "  "
PRIORITY_COLOR = "red"
MUTED_COLOR = "bright_black"

def hex_to_rgb(hex_color: str) -> Tuple[int, int, int]:
    value = hex_color.lstrip("#")
    return int(value[0:2], 16), int(value[2:4], 16), int(value[4:6], 16)

class Printer:
    """Collects feedback lines and renders the requested view of a storage."""

    def __init__(self, meta: Meta, today: Optional[date] = None):
        self.meta = meta
        self.today = today or date.today()
        self.feedback: List[str] = []
        self.view = "full"
        self.view_ids: List[int] = []

    def add_feedback(self, *lines: str) -> 'Printer':
        self.feedback.extend(lines)
        return self

    def set_view(self, view: str, ids: Optional[Iterable[int]] = None) -> 'Printer':
        self.view = view
        self.view_ids = list(ids or [])
        return self

    def _is_done(self, task: Task) -> bool:
        # stale states are displayed, not rejected
        return task.state == self.meta.terminal_state.name

    def _state_icon(self, task: Task) -> str:
        state = self.meta.find_state(task.state)
        if state is None:
            return click.style("?", fg=MUTED_COLOR)
        return click.style(state.icon, fg=hex_to_rgb(state.hex_color))

    def _group_label(self, task: Task) -> str:
        group = self.meta.find_group(task.group)
        if group is None:
            return click.style(f"@{task.group}", fg=MUTED_COLOR)
        return click.style(f"@{group.name}", fg=hex_to_rgb(group.hex_color))

    def task_line(self, task: Task) -> str:
        done = self._is_done(task)
        parts = [
            click.style(f"{task.id}.", fg=MUTED_COLOR),
            self._state_icon(task),
            click.style(task.name, fg=MUTED_COLOR if done else None, strikethrough=done),
        ]
        if task.priority_marks:
            parts.append(click.style(task.priority_marks, fg=PRIORITY_COLOR, bold=True))
        if task.group:
            parts.append(self._group_label(task))
        if task.due_date:
            overdue = not done and task.due_date < self.today
            parts.append(click.style(f"(due {format_due_date(task.due_date)})", fg="red" if overdue else MUTED_COLOR))
        return " ".join(parts)

    def task_lines(self, task: Task, depth: int = 0) -> List[str]:
        lines = [INDENT * depth + self.task_line(task)]
        if task.description:
            lines.append(INDENT * (depth + 2) + click.style(task.description, fg=MUTED_COLOR, italic=True))
        for subtask in task.subtasks:
            lines.extend(self.task_lines(subtask, depth + 1))
        return lines

    def _header(self, key: Optional[str]) -> str:
        if key is UNSET_KEY:
            return click.style(UNSET_LABEL, fg=MUTED_COLOR, bold=True, underline=True)
        state = self.meta.find_state(key)
        if state is not None:
            return click.style(f"{state.icon} {key}", fg=hex_to_rgb(state.hex_color), bold=True, underline=True)
        return click.style(key, bold=True, underline=True)

    def render_grouped(self, grouped: Dict[Optional[str], List[Task]]) -> str:
        lines = []
        for key, tasks in grouped.items():
            lines.append(self._header(key))
            for task in tasks:
                lines.extend(self.task_lines(task, depth=1))
            lines.append("")
        return "\n".join(lines)

    def render_tasks(self, tasks: Iterable[Task]) -> str:
        lines = []
        for task in tasks:
            lines.extend(self.task_lines(task))
        return "\n".join(lines)

    def summary(self, tasks: Iterable[Task]) -> str:
        all_tasks = [t for root in tasks for t in root.walk()]
        done = sum(1 for t in all_tasks if self._is_done(t))
        percent = round(100 * done / len(all_tasks)) if all_tasks else 0
        return click.style(f"{percent}% of all tasks complete ({done}/{len(all_tasks)})", fg=MUTED_COLOR)

    def render(self, storage, group_by=None) -> str:
        """The current view of the storage followed by the feedback lines."""
        sections = []
        if self.view == "specific" and self.view_ids:
            sections.append(self.render_tasks(storage.get(task_id) for task_id in self.view_ids))
        elif self.view == "full":
            if len(storage.tasks):
                sections.append(self.render_grouped(storage.group(group_by or "state")))
            else:
                sections.append(click.style("No tasks yet", fg=MUTED_COLOR))
            sections.append(self.summary(storage.tasks))
        sections.extend(self.feedback)
        return "\n".join(sections)
