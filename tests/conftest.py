"""Shared fixtures for tasknest tests."""

import json

import pytest

from tasknest.models import Meta, Task
from tasknest.tree import TaskTree


META_RECORD = {
    "states": [
        {"name": "todo", "hexColor": "#ff8f00", "icon": "☐"},
        {"name": "wip", "hexColor": "#ab47bc", "icon": "✹"},
        {"name": "done", "hexColor": "#66bb6a", "icon": "✔"},
    ],
    "groups": [{"name": "work", "hexColor": "#2196f3"}],
    "templates": [{"name": "release", "subtasks": [{"name": "changelog"}, {"name": "tag"}]}],
}

# 0 ─┬─ 1 ─── 2
#    └─ 3
# 4
# 5 ─── 6
FOREST_RECORDS = [
    {
        "id": 0, "name": "Project", "state": "todo", "priority": 2, "group": "work",
        "subtasks": [
            {"id": 1, "name": "Design", "state": "wip", "subtasks": [
                {"id": 2, "name": "Sketch", "state": "done"},
            ]},
            {"id": 3, "name": "Build", "state": "todo", "dueDate": "01/03/2025"},
        ],
    },
    {"id": 4, "name": "Groceries", "state": "done", "description": ""},
    {
        "id": 5, "name": "Holidays", "state": "wip", "priority": 0, "dueDate": "15/07/2025",
        "subtasks": [{"id": 6, "name": "Book flights", "state": "todo"}],
    },
]


@pytest.fixture
def meta():
    return Meta.model_validate(META_RECORD)


@pytest.fixture
def tree(meta):
    return TaskTree([Task.model_validate(r) for r in FOREST_RECORDS], meta)


@pytest.fixture
def storage_path(tmp_path):
    path = tmp_path / "tasks.json"
    path.write_text(json.dumps({"meta": META_RECORD, "datas": FOREST_RECORDS}), encoding="utf-8")
    return path
