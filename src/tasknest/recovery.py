class TaskManagerError(Exception):
    """Base exception for all tasknest errors."""
    pass

class RecoverableError(TaskManagerError):
    """An error that can be recovered from without data loss."""
    pass

class FatalError(TaskManagerError):
    """An error that requires application termination or major intervention."""
    pass

class CorruptionError(FatalError):
    """Corrupted Data Error - from syntax errors in data formats, to just unknown data"""
    pass

class CorruptStorageError(CorruptionError):
    """The storage document cannot be parsed into the expected shape."""
    pass

class StorageMissingError(FatalError):
    """The storage document does not exist."""

    def __init__(self, path):
        self.path = path
        super().__init__(f"Can't find the task storage file '{path}'")

class StorageExistsError(RecoverableError):
    """Refusing to overwrite an existing storage document."""

    def __init__(self, path):
        self.path = path
        super().__init__(f"File '{path}' already exists")

class FileOperationError(RecoverableError):
    """File operation failed but can be retried."""
    pass

class NotFoundError(RecoverableError):
    """One or more task ids do not exist in the forest."""

    def __init__(self, ids):
        self.ids = list(ids)
        joined = ",".join(str(i) for i in self.ids)
        label = "Task" if len(self.ids) == 1 else "Tasks"
        super().__init__(f"{label} '{joined}' not found")

class InvalidMoveError(RecoverableError):
    """A task cannot be moved into itself or one of its descendants."""

    def __init__(self, task_id: int, destination_id: int):
        self.task_id = task_id
        self.destination_id = destination_id
        super().__init__(f"Can't move task {task_id} into task {destination_id}: it is the task itself or one of its subtasks")

class StateNotFoundError(RecoverableError):
    """A state name doesn't match any configured state."""

    def __init__(self, state: str, task_id: int = None):
        self.state = state
        self.task_id = task_id
        where = f" (task {task_id})" if task_id is not None else ""
        super().__init__(f"State '{state}'{where} is not a configured state")

class TemplateNotFoundError(RecoverableError):
    """A named template doesn't exist in the metadata."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Template '{name}' not found")

class SyncError(RecoverableError):
    """Git synchronization failed; local data is untouched."""
    pass

class ConfigError(RecoverableError):
    """User configuration could not be read."""
    pass
