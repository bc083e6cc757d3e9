"""
TaskTree - the in-memory task forest and every structural operation on it.

The forest is an ordered list of root tasks, each owning its subtasks. Parents
are never stored on the children; they are found by searching from the roots.
Nothing in here touches the disk, persistence is the job of data.core.Storage.

Operations that take several ids resolve and validate all of them before
changing anything. When one id is missing the whole call fails with a
NotFoundError listing every missing id, and the forest is left as it was.
"""

from typing import Any, Dict, Iterable, Iterator, List, NamedTuple, Optional, Tuple, Union

from .models import GroupBy, Meta, Task, TaskDraft, TaskPatch
from .recovery import InvalidMoveError, NotFoundError, TemplateNotFoundError
from .logs import get_logger

log = get_logger("tree")

# key of the bucket for tasks without the attribute; never equal to a label
UNSET_KEY = None
UNSET_LABEL = "unset"

class TaskLocation(NamedTuple):
    """Where a task lives: its owner (None for roots) and its position there."""
    task: Task
    parent: Optional[Task]
    index: int

def _unique(ids: Iterable[int]) -> List[int]:
    seen = set()
    result = []
    for task_id in ids:
        if task_id not in seen:
            seen.add(task_id)
            result.append(task_id)
    return result

def _walk_drafts(drafts: Iterable[TaskDraft]) -> Iterator[TaskDraft]:
    for draft in drafts:
        yield draft
        yield from _walk_drafts(draft.subtasks)

class TaskTree:
    """The ordered forest of root tasks."""

    def __init__(self, tasks: Optional[List[Task]] = None, meta: Optional[Meta] = None):
        self.tasks: List[Task] = list(tasks or [])
        self.meta = meta

    def __iter__(self) -> Iterator[Task]:
        return iter(self.tasks)

    def __len__(self) -> int:
        return len(self.tasks)

    def walk(self) -> Iterator[Task]:
        """Every task of the forest, depth first, in declared order."""
        for root in self.tasks:
            yield from root.walk()

    def ids(self) -> List[int]:
        return [task.id for task in self.walk()]

    def count(self) -> int:
        return sum(1 for _ in self.walk())

    def to_records(self) -> List[Dict[str, Any]]:
        return [task.to_record() for task in self.tasks]

    # -------------------- lookup --------------------

    def allocate_id(self) -> int:
        """One more than the highest id in the forest, 0 for an empty forest."""
        return max((task.id for task in self.walk()), default=-1) + 1

    def retrieve(self, task_id: int) -> Optional[TaskLocation]:
        """Depth-first search for a task, roots first. None when absent."""
        def search(siblings: List[Task], parent: Optional[Task]) -> Optional[TaskLocation]:
            for index, task in enumerate(siblings):
                if task.id == task_id:
                    return TaskLocation(task, parent, index)
                found = search(task.subtasks, task)
                if found:
                    return found
            return None

        return search(self.tasks, None)

    def find(self, task_id: int) -> TaskLocation:
        location = self.retrieve(task_id)
        if location is None:
            raise NotFoundError([task_id])
        return location

    def find_all(self, ids: Iterable[int]) -> List[TaskLocation]:
        """Resolve every id, or fail listing all the ids that don't resolve."""
        locations = []
        missing = []
        for task_id in _unique(ids):
            location = self.retrieve(task_id)
            if location is None:
                missing.append(task_id)
            else:
                locations.append(location)
        if missing:
            raise NotFoundError(missing)
        return locations

    def select(self, ids: Iterable[int]) -> List[Task]:
        """
        Resolve ids to tasks, dropping those nested under another selected task.

        The result is the set of subtrees covering the selection, each listed once.
        """
        locations = self.find_all(ids)
        nested = {d.id for location in locations for d in location.task.descendants()}
        return [location.task for location in locations if location.task.id not in nested]

    def _targets(self, locations: List[TaskLocation], recursive: bool) -> List[Task]:
        # each task at most once, even when listed and reached through an ancestor
        seen = set()
        targets = []
        for location in locations:
            tasks = location.task.walk() if recursive else [location.task]
            for task in tasks:
                if task.id not in seen:
                    seen.add(task.id)
                    targets.append(task)
        return targets

    def _detach(self, location: TaskLocation) -> Task:
        if location.parent is None:
            return self.tasks.pop(location.index)
        return location.parent.detach_subtask(location.index)

    # -------------------- mutations --------------------

    def insert(self, draft: Union[TaskDraft, Dict[str, Any]], parent_id: Optional[int] = None,
               template: Optional[str] = None) -> int:
        """
        Create a task and append it to the forest.

        Args:
            draft: Attributes of the new task; nested subtasks are created too
            parent_id: Id of the owner, None to create a root task
            template: Name of a template whose subtasks are copied under the new task

        Returns:
            The id of the new task
        """
        if not isinstance(draft, TaskDraft):
            draft = TaskDraft.model_validate(draft)

        parent = self.find(parent_id).task if parent_id is not None else None

        skeleton = list(draft.subtasks)
        if template:
            found = self.meta.find_template(template)
            if found is None:
                raise TemplateNotFoundError(template)
            skeleton += found.subtasks

        for item in [draft, *_walk_drafts(skeleton)]:
            if item.state is not None:
                self.meta.state_index(item.state)

        task, _ = self._build(draft, skeleton, self.allocate_id())
        if parent is None:
            self.tasks.append(task)
        else:
            parent.add_subtask(task)
        log.debug(f"Inserted task {task.id} under {parent_id if parent_id is not None else 'root'}")
        return task.id

    def _build(self, draft: TaskDraft, subtasks: List[TaskDraft], next_id: int) -> Tuple[Task, int]:
        # new Task objects all the way down, templates are never shared
        attributes = draft.attributes()
        attributes.setdefault("state", self.meta.initial_state.name)
        task = Task(id=next_id, **attributes)
        next_id += 1
        children = []
        for subtask in subtasks:
            child, next_id = self._build(subtask, subtask.subtasks, next_id)
            children.append(child)
        if children:
            task.subtasks = children
        return task, next_id

    def edit(self, ids: Iterable[int], attributes: Union[TaskPatch, Dict[str, Any]],
             recursive: bool = False) -> List[int]:
        """
        Merge the given attributes into each task.

        Only attributes present (and not None) are written, everything else is
        kept. A TaskPatch field explicitly set to None clears that field.
        With recursive, every descendant receives the same attributes.
        """
        if not isinstance(attributes, TaskPatch):
            attributes = TaskPatch.model_validate({k: v for k, v in attributes.items() if v is not None})
        changes = attributes.changes()
        if "state" in changes:
            self.meta.state_index(changes["state"])

        ids = _unique(ids)
        locations = self.find_all(ids)
        for task in self._targets(locations, recursive):
            for key, value in changes.items():
                if value is None:
                    task.clear(key)
                else:
                    setattr(task, key, value)
        log.debug(f"Edited tasks {ids} with {changes} (recursive={recursive})")
        return ids

    def check(self, ids: Iterable[int], recursive: bool = False) -> List[int]:
        """Put tasks in the terminal state."""
        return self.edit(ids, {"state": self.meta.terminal_state.name}, recursive)

    def advance(self, ids: Iterable[int], recursive: bool = False) -> List[int]:
        """
        Move each task to the next configured state.

        A task already in the last state stays there. A task whose state is not
        configured fails the whole call before anything changes.
        """
        ids = _unique(ids)
        locations = self.find_all(ids)
        plan = [(task, self.meta.next_state(task.state, task.id))
                for task in self._targets(locations, recursive)]
        for task, state in plan:
            task.state = state
        return ids

    def remove(self, ids: Iterable[int]) -> List[int]:
        """Detach and discard each task along with its whole subtree."""
        removed = [task.id for task in self.select(ids)]
        for task_id in removed:
            self._detach(self.find(task_id))
        log.debug(f"Removed tasks {removed}")
        return removed

    def move(self, ids: Iterable[int], destination_id: int) -> int:
        """
        Reparent tasks as the last children of the destination, in the given order.

        An id nested under another moved id travels with its ancestor, so
        every moved subtree keeps its shape.

        Raises:
            InvalidMoveError: the destination is one of the moved tasks or lies
                inside one of their subtrees
        """
        sources = self.select(ids)
        destination = self.find(destination_id).task
        for task in sources:
            if task.id == destination_id or any(d.id == destination_id for d in task.descendants()):
                raise InvalidMoveError(task.id, destination_id)

        moved = [task.id for task in sources]
        for task_id in moved:
            location = self.find(task_id)
            self._detach(location)
            destination.add_subtask(location.task)
        log.debug(f"Moved tasks {moved} to {destination_id}")
        return destination_id

    # -------------------- display projections --------------------

    def group(self, group_by: Union[GroupBy, str] = GroupBy.STATE, meta: Optional[Meta] = None) -> Dict[Optional[str], List[Task]]:
        """
        Partition the root tasks by one attribute, for display.

        State keys follow the configured state order, other keys sort
        ascending. Roots without the attribute land in the UNSET_KEY bucket,
        listed last, apart from any real value spelled like UNSET_LABEL. The forest itself is not modified.
        """
        group_by = GroupBy(group_by)
        meta = meta or self.meta

        buckets: Dict[Any, List[Task]] = {}
        unset: List[Task] = []
        for task in self.tasks:
            key = self._group_key(task, group_by)
            if key is None or key == "":
                unset.append(task)
            else:
                buckets.setdefault(key, []).append(task)

        if group_by is GroupBy.STATE and meta is not None:
            names = meta.state_names
            order = [name for name in names if name in buckets]
            order += [key for key in buckets if key not in names]
        else:
            order = sorted(buckets)

        grouped = {self._group_label(key, group_by): buckets[key] for key in order}
        if unset:
            grouped[UNSET_KEY] = unset
        return grouped

    @staticmethod
    def _group_key(task: Task, group_by: GroupBy) -> Any:
        if group_by is GroupBy.STATE:
            return task.state
        elif group_by is GroupBy.ID:
            return task.id
        elif group_by is GroupBy.PRIORITY:
            return task.priority
        elif group_by is GroupBy.GROUP:
            return task.group
        return task.due_date

    @staticmethod
    def _group_label(key: Any, group_by: GroupBy) -> str:
        if group_by is GroupBy.DUE_DATE:
            return key.strftime("%d/%m/%Y")
        return str(key)

    def reverse(self):
        """Flip the order of the root tasks. Subtask order is untouched."""
        self.tasks.reverse()
