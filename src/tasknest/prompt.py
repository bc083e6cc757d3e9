"""
Interactive questions for the fields of a task, used when a command gets no attributes.
"""

from datetime import date
from typing import Any, Dict, Optional, Tuple

import click

from .models import Meta, Task, format_due_date, parse_due_date

NONE_CHOICE = "none"

def _due_date(value: str) -> Optional[date]:
    try:
        return parse_due_date(value)
    except ValueError as e:
        raise click.BadParameter(str(e))

def prompt_task(meta: Meta, task: Optional[Task] = None) -> Tuple[Dict[str, Any], Optional[str]]:
    """
    Ask for every field of a task, using the task's values as defaults when editing.

    Returns:
        The attributes (None for fields answered blank or "none") and the chosen template
        name, always None when editing
    """
    if task is not None:
        click.echo(click.style("Press enter to keep the current value, type a space to clear a field\n", italic=True))

    states = meta.state_names
    state_default = task.state if task is not None and task.state in states else meta.initial_state.name
    groups = [NONE_CHOICE] + [g.name for g in meta.groups]
    group_default = task.group if task is not None and task.group in groups else NONE_CHOICE

    name = click.prompt("Task name", default=task.name if task is not None else None)
    state = click.prompt("State", type=click.Choice(states), default=state_default)
    group = click.prompt("Group", type=click.Choice(groups), default=group_default)
    description = click.prompt(
        "Description",
        default=(task.description or "") if task is not None else "",
        show_default=False,
    )
    due_date = click.prompt(
        "Due date (DD/MM/YYYY)",
        default=format_due_date(task.due_date) if task is not None and task.due_date else "",
        show_default=False,
        value_proc=_due_date,
    )

    template = None
    if task is None and meta.templates:
        templates = [NONE_CHOICE] + [t.name for t in meta.templates]
        chosen = click.prompt("Template", type=click.Choice(templates), default=NONE_CHOICE)
        template = None if chosen == NONE_CHOICE else chosen

    attributes = {
        "name": name.strip(),
        "state": state,
        "description": description.strip() or None,
        "group": None if group == NONE_CHOICE else group,
        "due_date": due_date,
    }
    return attributes, template
