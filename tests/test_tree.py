"""Unit tests for the TaskTree engine."""

import random

import pytest
from datetime import date

from tasknest.models import GroupBy, Meta, Task, TaskDraft, TaskPatch
from tasknest.recovery import InvalidMoveError, NotFoundError, StateNotFoundError, TemplateNotFoundError
from tasknest.tree import TaskTree, UNSET_KEY, UNSET_LABEL
from conftest import META_RECORD


def snapshot(tree):
    return tree.to_records()


class TestLookup:
    """Test id allocation and lookups."""

    def test_allocate_id(self, tree, meta):
        """Test that new ids follow the highest id, nested ones included."""
        assert tree.allocate_id() == 7
        assert TaskTree([], meta).allocate_id() == 0

    def test_allocate_id_with_gaps(self, meta):
        """Test allocation uses the maximum, not the count."""
        tree = TaskTree([Task(id=10, name="a", state="todo",
                              subtasks=[Task(id=42, name="b", state="todo")])], meta)
        assert tree.allocate_id() == 43

    def test_find_root(self, tree):
        """Test finding a root task."""
        location = tree.find(4)
        assert location.task.name == "Groceries"
        assert location.parent is None
        assert location.index == 1

    def test_find_nested(self, tree):
        """Test finding a task deep in the forest."""
        location = tree.find(2)
        assert location.task.name == "Sketch"
        assert location.parent.id == 1
        assert location.index == 0

        location = tree.find(3)
        assert location.parent.id == 0
        assert location.index == 1

    def test_find_missing(self, tree):
        """Test that a missing id raises NotFoundError."""
        with pytest.raises(NotFoundError) as exc:
            tree.find(99)
        assert exc.value.ids == [99]
        assert tree.retrieve(99) is None

    def test_find_all_reports_every_missing_id(self, tree):
        """Test that all missing ids are reported together."""
        with pytest.raises(NotFoundError) as exc:
            tree.find_all([0, 98, 4, 99])
        assert exc.value.ids == [98, 99]

    def test_walk_and_count(self, tree):
        """Test traversal of the whole forest."""
        assert tree.ids() == [0, 1, 2, 3, 4, 5, 6]
        assert tree.count() == 7
        assert len(tree) == 3

    def test_select_drops_nested(self, tree):
        """Test that selecting a task and its descendant keeps the ancestor only."""
        assert [t.id for t in tree.select([2, 0, 4])] == [0, 4]


class TestInsert:
    """Test task creation."""

    def test_insert_root(self, tree):
        """Test appending a root task with the initial state."""
        task_id = tree.insert({"name": "New"})
        assert task_id == 7
        assert tree.tasks[-1].id == 7
        assert tree.tasks[-1].state == "todo"

    def test_insert_child(self, tree):
        """Test appending as the last child of a parent."""
        task_id = tree.insert(TaskDraft(name="Test", state="wip", priority="!"), parent_id=0)
        location = tree.find(task_id)
        assert location.parent.id == 0
        assert location.index == 2
        assert location.task.priority == 1

    def test_insert_missing_parent(self, tree):
        """Test that an unknown parent leaves the forest unchanged."""
        before = snapshot(tree)
        with pytest.raises(NotFoundError):
            tree.insert({"name": "Orphan"}, parent_id=99)
        assert snapshot(tree) == before

    def test_insert_unknown_state(self, tree):
        """Test that an unknown state is rejected."""
        before = snapshot(tree)
        with pytest.raises(StateNotFoundError):
            tree.insert({"name": "x", "state": "archived"})
        assert snapshot(tree) == before

    def test_insert_with_template(self, tree, meta):
        """Test that template subtasks are copied with fresh ids."""
        task_id = tree.insert({"name": "v1.0"}, template="release")
        task = tree.find(task_id).task
        assert [s.name for s in task.subtasks] == ["changelog", "tag"]
        assert [s.id for s in task.subtasks] == [8, 9]
        assert all(s.state == "todo" for s in task.subtasks)

        task.subtasks[0].name = "renamed"
        assert meta.find_template("release").subtasks[0].name == "changelog"

    def test_template_applied_twice(self, tree):
        """Test that each use of a template creates independent tasks."""
        first = tree.find(tree.insert({"name": "a"}, template="release")).task
        second = tree.find(tree.insert({"name": "b"}, template="release")).task
        assert first.subtasks[0] is not second.subtasks[0]
        assert len(set(tree.ids())) == tree.count()

    def test_unknown_template(self, tree):
        """Test that a missing template is reported."""
        with pytest.raises(TemplateNotFoundError):
            tree.insert({"name": "x"}, template="nope")

    def test_insert_nested_draft(self, tree):
        """Test creating a task with nested subtasks."""
        draft = TaskDraft(name="a", subtasks=[TaskDraft(name="b", subtasks=[TaskDraft(name="c")])])
        task_id = tree.insert(draft)
        assert [t.id for t in tree.find(task_id).task.walk()] == [7, 8, 9]


class TestEdit:
    """Test merging attributes."""

    def test_merge_keeps_other_fields(self, tree):
        """Test that only given attributes are overwritten."""
        tree.edit([0], {"name": "Renamed", "description": None})
        task = tree.find(0).task
        assert task.name == "Renamed"
        assert task.priority == 2
        assert task.group == "work"
        assert "description" not in task.to_record()

    def test_edit_several(self, tree):
        """Test editing a batch of ids."""
        assert tree.edit([3, 6], {"priority": "!!!"}) == [3, 6]
        assert tree.find(3).task.priority == 3
        assert tree.find(6).task.priority == 3
        assert tree.find(0).task.priority == 2

    def test_recursive(self, tree):
        """Test that recursive edits reach every descendant and nothing else."""
        tree.edit([0], {"state": "wip"}, recursive=True)
        assert [tree.find(i).task.state for i in (0, 1, 2, 3)] == ["wip"] * 4
        assert tree.find(4).task.state == "done"
        assert tree.find(6).task.state == "todo"

    def test_missing_id_changes_nothing(self, tree):
        """Test that a batch with a missing id is rejected as a whole."""
        before = snapshot(tree)
        with pytest.raises(NotFoundError) as exc:
            tree.edit([0, 99, 4], {"name": "x"})
        assert exc.value.ids == [99]
        assert snapshot(tree) == before

    def test_unknown_state(self, tree):
        """Test that editing to an unknown state is rejected."""
        before = snapshot(tree)
        with pytest.raises(StateNotFoundError):
            tree.edit([0], {"state": "archived"})
        assert snapshot(tree) == before

    def test_patch_clears_fields(self, tree):
        """Test that a patch with explicit None removes those fields."""
        tree.edit([0, 3], TaskPatch(group=None, due_date=None, priority="!"))
        assert tree.find(0).task.to_record()["priority"] == 1
        assert "group" not in tree.find(0).task.to_record()
        assert "dueDate" not in tree.find(3).task.to_record()

    def test_due_date(self, tree):
        """Test setting a due date from its typed form."""
        tree.edit([4], {"dueDate": "24/12/2025"})
        assert tree.find(4).task.due_date == date(2025, 12, 24)

    def test_check(self, tree):
        """Test checking tasks puts them in the last state."""
        tree.check([5], recursive=True)
        assert tree.find(5).task.state == "done"
        assert tree.find(6).task.state == "done"


class TestAdvance:
    """Test state progression."""

    def test_advance(self, tree):
        """Test moving to the next state."""
        tree.advance([0, 5])
        assert tree.find(0).task.state == "wip"
        assert tree.find(5).task.state == "done"
        # not recursive
        assert tree.find(3).task.state == "todo"

    def test_terminal_is_idempotent(self, tree):
        """Test that a task in the last state stays there without error."""
        assert tree.advance([4]) == [4]
        assert tree.find(4).task.state == "done"
        tree.advance([4])
        assert tree.find(4).task.state == "done"

    def test_recursive(self, tree):
        """Test that each descendant advances once from its own state."""
        tree.advance([0], recursive=True)
        states = {i: tree.find(i).task.state for i in (0, 1, 2, 3)}
        assert states == {0: "wip", 1: "done", 2: "done", 3: "wip"}

    def test_overlapping_ids_advance_once(self, tree):
        """Test that a task listed and reached recursively advances once."""
        tree.advance([0, 3], recursive=True)
        assert tree.find(3).task.state == "wip"

    def test_stale_state(self, tree):
        """Test that an unconfigured state is reported before anything changes."""
        tree.find(6).task.state = "archived"
        before = snapshot(tree)
        with pytest.raises(StateNotFoundError) as exc:
            tree.advance([0, 5], recursive=True)
        assert exc.value.task_id == 6
        assert snapshot(tree) == before


class TestRemove:
    """Test deletions."""

    def test_cascade(self, tree):
        """Test that removing a task removes its N descendants too."""
        before = tree.count()
        assert tree.remove([0]) == [0]
        assert tree.count() == before - 4
        for task_id in (0, 1, 2, 3):
            assert tree.retrieve(task_id) is None

    def test_remove_nested(self, tree):
        """Test removing a subtask from its parent."""
        tree.remove([1])
        assert [t.id for t in tree.find(0).task.subtasks] == [3]

    def test_ancestor_and_descendant(self, tree):
        """Test that a descendant listed with its ancestor is covered by it."""
        assert tree.remove([2, 0]) == [0]
        assert tree.ids() == [4, 5, 6]

    def test_missing_id(self, tree):
        """Test that a missing id removes nothing."""
        before = snapshot(tree)
        with pytest.raises(NotFoundError):
            tree.remove([4, 99])
        assert snapshot(tree) == before


class TestMove:
    """Test reparenting."""

    def test_move(self, tree):
        """Test that a moved subtree keeps its content and order."""
        subtree = tree.find(1).task.to_record()
        assert tree.move([1], 5) == 5
        location = tree.find(1)
        assert location.parent.id == 5
        assert location.index == 1
        assert location.task.to_record() == subtree
        assert [t.id for t in tree.find(0).task.subtasks] == [3]

    def test_move_roots(self, tree):
        """Test moving root tasks keeps the given order."""
        tree.move([5, 4], 3)
        assert [t.id for t in tree.find(3).task.subtasks] == [5, 4]
        assert [t.id for t in tree.tasks] == [0]

    def test_move_into_itself(self, tree):
        """Test that a task can't become its own child."""
        before = snapshot(tree)
        with pytest.raises(InvalidMoveError):
            tree.move([0], 0)
        assert snapshot(tree) == before

    def test_move_into_descendant(self, tree):
        """Test that every descendant is rejected as destination."""
        before = snapshot(tree)
        for destination in (1, 2, 3):
            with pytest.raises(InvalidMoveError):
                tree.move([0], destination)
        assert snapshot(tree) == before

    def test_invalid_batch_changes_nothing(self, tree):
        """Test that one invalid source rejects the whole batch."""
        before = snapshot(tree)
        with pytest.raises(InvalidMoveError):
            tree.move([4, 5], 6)
        assert snapshot(tree) == before

    def test_missing_destination(self, tree):
        """Test that an unknown destination is reported."""
        with pytest.raises(NotFoundError):
            tree.move([4], 99)

    def test_move_to_current_parent(self, tree):
        """Test that moving under the current parent re-appends it last."""
        tree.move([1], 0)
        assert [t.id for t in tree.find(0).task.subtasks] == [3, 1]

    def test_move_nested_sources(self, tree):
        """Test that an id nested under another moved id stays in its subtree."""
        tree.move([1, 2], 4)
        groceries = tree.find(4).task
        assert [t.id for t in groceries.subtasks] == [1]
        assert [t.id for t in groceries.subtasks[0].subtasks] == [2]
        assert [t.id for t in tree.find(0).task.subtasks] == [3]
        assert tree.count() == 7


class TestGroup:
    """Test grouped projections."""

    def test_by_state(self, tree):
        """Test that state groups follow the configured order."""
        grouped = tree.group(GroupBy.STATE)
        assert list(grouped) == ["todo", "wip", "done"]
        assert [t.id for t in grouped["todo"]] == [0]
        assert [t.id for t in grouped["done"]] == [4]

    def test_unknown_state_listed_after(self, tree):
        """Test that a stale state gets its own group after the configured ones."""
        tree.find(4).task.state = "archived"
        assert list(tree.group("state")) == ["todo", "wip", "archived"]

    def test_by_priority(self, tree):
        """Test numeric order with an unset bucket last."""
        grouped = tree.group(GroupBy.PRIORITY)
        assert list(grouped) == ["0", "2", UNSET_KEY]
        assert [t.id for t in grouped[UNSET_KEY]] == [4]

    def test_by_due_date(self, tree):
        """Test date order."""
        tree.edit([0], {"dueDate": "01/01/2026"})
        grouped = tree.group(GroupBy.DUE_DATE)
        assert list(grouped) == ["15/07/2025", "01/01/2026", UNSET_KEY]

    def test_by_group_and_id(self, tree):
        """Test grouping by group name and by id."""
        assert list(tree.group(GroupBy.GROUP)) == ["work", UNSET_KEY]
        assert list(tree.group(GroupBy.ID)) == ["0", "4", "5"]

    def test_value_spelled_like_unset_label(self, meta):
        """Test that a group named like the unset bucket keeps its tasks."""
        tree = TaskTree([Task(id=0, name="a", state="todo", group=UNSET_LABEL),
                         Task(id=1, name="b", state="todo")], meta)
        grouped = tree.group(GroupBy.GROUP)
        assert [t.id for t in grouped[UNSET_LABEL]] == [0]
        assert [t.id for t in grouped[UNSET_KEY]] == [1]
        assert sorted(t.id for tasks in grouped.values() for t in tasks) == [0, 1]

    def test_top_level_only_and_read_only(self, tree):
        """Test that only roots are grouped and nothing is mutated."""
        before = snapshot(tree)
        grouped = tree.group(GroupBy.STATE)
        assert sum(len(tasks) for tasks in grouped.values()) == len(tree)
        assert snapshot(tree) == before

    def test_reverse(self, tree):
        """Test reversing roots only."""
        tree.reverse()
        assert [t.id for t in tree.tasks] == [5, 4, 0]
        assert [t.id for t in tree.find(0).task.subtasks] == [1, 3]


class TestScenario:
    """End to end behaviour of the engine."""

    def test_lifecycle(self):
        """Test insert, advance, move and remove on a fresh forest."""
        meta = Meta.model_validate({"states": META_RECORD["states"]})
        tree = TaskTree([Task(id=0, name="Add more stuff", state="todo")], meta)

        assert tree.insert({"name": "sub"}, parent_id=0) == 1
        assert tree.find(1).parent.id == 0

        tree.advance([0, 1])
        assert tree.find(0).task.state == "wip"
        assert tree.find(1).task.state == "wip"

        assert tree.move([1], 0) == 0
        assert tree.find(1).parent.id == 0

        tree.remove([0])
        with pytest.raises(NotFoundError):
            tree.find(1)
        assert tree.count() == 0

    def test_ids_stay_unique(self, tree):
        """Test id uniqueness over a random sequence of operations."""
        rng = random.Random(1234)
        for _ in range(200):
            ids = tree.ids()
            action = rng.choice(["insert", "insert", "remove", "move"])
            if action == "insert" or not ids:
                parent = rng.choice(ids + [None]) if ids else None
                tree.insert({"name": "t"}, parent_id=parent)
            elif action == "remove":
                tree.remove([rng.choice(ids)])
            else:
                source, destination = rng.choice(ids), rng.choice(ids)
                try:
                    tree.move([source], destination)
                except InvalidMoveError:
                    pass
            ids = tree.ids()
            assert len(ids) == len(set(ids))
