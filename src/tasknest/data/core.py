"""
Storage - couples the task forest and its metadata to one JSON document.

The whole document is read once when a Storage is created and rewritten in
full after every successful mutation. Memory is the source of truth for the
lifetime of the process: when a write fails the mutation stays applied in
memory and the write error is raised to the caller.
"""
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Optional, TypeVar, Union

from pydantic import ValidationError

from tasknest.recovery import CorruptStorageError, StorageExistsError, StorageMissingError, TaskManagerError
from tasknest.models import GroupBy, Meta, Order, StorageFile, Task, TaskDraft, TaskPatch
from tasknest.tree import TaskTree
from tasknest.logs import get_logger
from .io import atomic_write, load_json_file, DATA_JSON
from .validate import validate_document

log = get_logger("data")

T = TypeVar("T")
SaveListener = Callable[[Path], Any]

DEFAULT_STORAGE_FILE_NAME = "tasks.json"
DEFAULT_STORAGE_DATA: Dict[str, Any] = {
    "meta": {
        "states": [
            {"name": "todo", "hexColor": "#ff8f00", "icon": "☐"},
            {"name": "wip", "hexColor": "#ab47bc", "icon": "✹"},
            {"name": "done", "hexColor": "#66bb6a", "icon": "✔"},
        ],
        "groups": [],
        "templates": [],
    },
    "datas": [
        {
            "name": "Add more stuff",
            "description": "Run 'task d 0' to delete me or 'task c 0' to check me",
            "state": "todo",
            "id": 0,
        },
    ],
}

class Storage:
    """Owns one task forest and its metadata, bound to a storage file."""

    def __init__(self, path: Union[Path, str], sync=None):
        self.path = Path(path)
        self.listeners: List[SaveListener] = []
        self.sync_warnings: List[str] = []

        document = self.load()
        self.meta: Meta = document.meta
        self.tasks = TaskTree(document.datas, self.meta)
        log.debug(f"Loaded {self.tasks.count()} tasks from {self.path}")

        self.sync = sync
        if sync is not None and sync.is_configured:
            self.add_save_listener(self._commit_and_sync)

    def load(self) -> StorageFile:
        """
        Read and validate the storage document.

        Raises:
            StorageMissingError: the file doesn't exist
            CorruptStorageError: the file isn't a valid storage document
        """
        data = load_json_file(self.path)
        if data is None:
            raise StorageMissingError(self.path)

        validate_document(data, str(self.path))
        try:
            return StorageFile.model_validate(data)
        except ValidationError as e:
            log.error(f"Invalid storage file {self.path}: {e}")
            raise CorruptStorageError(f"Invalid task storage {self.path}: {e}") from e

    # -------------------- persistence --------------------

    def to_record(self) -> Dict[str, Any]:
        return {"meta": self.meta.to_record(), "datas": self.tasks.to_records()}

    def save(self):
        """Rewrite the whole document, then tell the save listeners."""
        atomic_write(DATA_JSON, self.path, self.to_record())
        log.info(f"Saved {self.path}")
        self._notify_saved()

    def add_save_listener(self, listener: SaveListener):
        self.listeners.append(listener)

    def _notify_saved(self):
        # listeners run after the data is on disk; their errors are only warnings
        for listener in self.listeners:
            try:
                listener(self.path)
            except TaskManagerError as e:
                warning = f"Sync warning: {e}"
                log.warning(warning)
                self.sync_warnings.append(warning)

    def _commit_and_sync(self, path: Path):
        self.sync.commit_and_sync(f"Task update at {datetime.now().isoformat(timespec='seconds')}")

    def mutate(self, operation: Callable[..., T], *args, **kwargs) -> T:
        """
        Run one mutating operation, then save the whole document.

        Nothing is saved when the operation raises. When the save raises, the
        in-memory mutation is kept and the save error propagates.
        """
        result = operation(*args, **kwargs)
        self.save()
        return result

    # -------------------- task operations --------------------

    def add_task(self, draft: Union[TaskDraft, Dict[str, Any]], parent_id: Optional[int] = None,
                 template: Optional[str] = None) -> int:
        return self.mutate(self.tasks.insert, draft, parent_id, template)

    def edit_task(self, ids: Iterable[int], attributes: Union[TaskPatch, Dict[str, Any]],
                  recursive: bool = False) -> List[int]:
        return self.mutate(self.tasks.edit, ids, attributes, recursive)

    def check_task(self, ids: Iterable[int], recursive: bool = False) -> List[int]:
        return self.mutate(self.tasks.check, ids, recursive)

    def increment_task(self, ids: Iterable[int], recursive: bool = False) -> List[int]:
        return self.mutate(self.tasks.advance, ids, recursive)

    def delete_task(self, ids: Iterable[int]) -> List[int]:
        return self.mutate(self.tasks.remove, ids)

    def move_task(self, ids: Iterable[int], destination_id: int) -> int:
        return self.mutate(self.tasks.move, ids, destination_id)

    # -------------------- metadata operations --------------------

    def add_group(self, name: str, hex_color: str) -> bool:
        return self.mutate(self.meta.upsert_group, name, hex_color)

    def remove_group(self, name: str) -> bool:
        return self.mutate(self.meta.remove_group, name)

    def add_template(self, name: str, subtask_names: List[str]) -> bool:
        return self.mutate(self.meta.upsert_template, name, subtask_names)

    def remove_template(self, name: str) -> bool:
        return self.mutate(self.meta.remove_template, name)

    # -------------------- read only --------------------

    def get(self, task_id: int) -> Task:
        """The task with this id; raises NotFoundError."""
        return self.tasks.find(task_id).task

    def group(self, group_by: Union[GroupBy, str] = GroupBy.STATE) -> Dict[Optional[str], List[Task]]:
        return self.tasks.group(group_by, self.meta)

    def order(self, order: Union[Order, str]):
        if Order(order) is Order.DESC:
            self.tasks.reverse()

class StorageFactory:
    """Creates new storage files."""

    @staticmethod
    def init(path: Union[Path, str], sync=None) -> Storage:
        """Write the default document to a new file and open it."""
        path = Path(path)
        if path.exists():
            raise StorageExistsError(path)

        atomic_write(DATA_JSON, path, DEFAULT_STORAGE_DATA, create_dirs=True)
        log.info(f"Created storage file {path}")
        return Storage(path, sync)

    @staticmethod
    def extract(path: Union[Path, str], origin: Storage, ids: Iterable[int]) -> Storage:
        """
        Move tasks out of a storage into a brand new storage file.

        The new file gets a copy of the origin's metadata and the selected
        subtrees, with their ids unchanged. The tasks are then deleted from the
        origin, which is saved.
        """
        path = Path(path)
        if path.exists():
            raise StorageExistsError(path)

        tasks = origin.tasks.select(ids)
        document = {
            "meta": origin.meta.to_record(),
            "datas": [task.to_record() for task in tasks],
        }
        atomic_write(DATA_JSON, path, document, create_dirs=True)
        log.info(f"Extracted tasks {[t.id for t in tasks]} to {path}")

        origin.delete_task([task.id for task in tasks])
        return Storage(path)
