"""
tasknest - A hierarchical task manager for the terminal.

Tasks are organized as a forest: every task may own an ordered list of
subtasks, recursively. The forest and its metadata (states, groups and
templates) live in a single JSON storage file.
"""

from .version import VERSION
from .models import (
    GroupBy,
    Order,
    Task,
    TaskDraft,
    TaskPatch,
    TaskState,
    TaskGroup,
    TaskTemplate,
    Meta,
    StorageFile,
)
from .tree import TaskTree, TaskLocation
from .data import Storage, StorageFactory

__version__ = VERSION

__all__ = [
    "VERSION",
    "GroupBy",
    "Order",
    "Task",
    "TaskDraft",
    "TaskPatch",
    "TaskState",
    "TaskGroup",
    "TaskTemplate",
    "Meta",
    "StorageFile",
    "TaskTree",
    "TaskLocation",
    "Storage",
    "StorageFactory",
]
