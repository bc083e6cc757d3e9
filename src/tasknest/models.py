from pydantic import BaseModel, ConfigDict, Field, BeforeValidator, PlainSerializer, field_validator, model_validator
from datetime import date, datetime
from enum import Enum
from typing import Annotated, Optional, List, Dict, Iterator, Any
import re

from .recovery import StateNotFoundError

PRIORITY_MARKER = "!"
DUE_DATE_FORMAT = "%d/%m/%Y"
HEX_COLOR_PATTERN = re.compile(r'^#[0-9a-fA-F]{6}$')

class GroupBy(Enum):
    STATE = "state"
    ID = "id"
    PRIORITY = "priority"
    GROUP = "group"
    DUE_DATE = "dueDate"

class Order(Enum):
    ASC = "asc"
    DESC = "desc"

def parse_priority(value: Any) -> Optional[int]:
    """
    Normalize a priority given either as a level or as repeated markers.

    "!!" is level 2; an empty marker string means no priority at all,
    which is not the same thing as level 0.
    """
    if value is None:
        return None
    if isinstance(value, bool):
        raise ValueError(f"Invalid priority: {value!r}")
    if isinstance(value, int):
        if value < 0:
            raise ValueError(f"Priority must be positive, got {value}")
        return value
    if isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            return None
        if set(stripped) == {PRIORITY_MARKER}:
            return len(stripped)
        if stripped.isdigit():
            return int(stripped)
    raise ValueError(f"Invalid priority: {value!r}")

def priority_marks(priority: Optional[int]) -> str:
    """Render a priority level back to its marker form."""
    if priority is None:
        return ""
    return PRIORITY_MARKER * priority

def parse_due_date(value: Any) -> Optional[date]:
    """Accept DD/MM/YYYY (what users type) or ISO dates."""
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            return None
        try:
            return datetime.strptime(stripped, DUE_DATE_FORMAT).date()
        except ValueError:
            pass
        try:
            return date.fromisoformat(stripped)
        except ValueError:
            raise ValueError(f"Invalid due date '{value}', expected DD/MM/YYYY")
    raise ValueError(f"Invalid due date: {value!r}")

def format_due_date(value: date) -> str:
    return value.strftime(DUE_DATE_FORMAT)

def validate_hex_color(value: str) -> str:
    if not HEX_COLOR_PATTERN.match(value):
        raise ValueError(f"Invalid color '{value}', expected #rrggbb")
    return value

Priority = Annotated[Optional[int], BeforeValidator(parse_priority)]
DueDate = Annotated[
    Optional[date],
    BeforeValidator(parse_due_date),
    PlainSerializer(format_due_date, return_type=str, when_used="json-unless-none"),
]

class Task(BaseModel):
    """One node of the task forest. Owns its subtasks exclusively."""

    model_config = ConfigDict(populate_by_name=True, validate_assignment=True)

    id: int = Field(ge=0, description="Identifier, unique across the whole forest")
    name: str = Field(description="Short label of the task")
    state: str = Field(description="Name of one of the configured states")
    description: Optional[str] = Field(default=None, description="Free text details")
    priority: Priority = Field(default=None, description="Severity rank, higher is more urgent")
    group: Optional[str] = Field(default=None, description="Name of a configured group")
    due_date: DueDate = Field(default=None, alias="dueDate", description="When the task is due")
    subtasks: List['Task'] = Field(
        default_factory=list,
        description="Ordered list of subtasks"
    )

    @field_validator('name')
    @classmethod
    def validate_name(cls, v):
        if not v.strip():
            raise ValueError("Task name can't be empty")
        return v

    @property
    def priority_marks(self) -> str:
        return priority_marks(self.priority)

    def state_index(self, meta: 'Meta') -> int:
        """Position of this task's state in the configured progression."""
        return meta.state_index(self.state, task_id=self.id)

    def is_done(self, meta: 'Meta') -> bool:
        return self.state_index(meta) == len(meta.states) - 1

    def walk(self) -> Iterator['Task']:
        """Yield this task then every descendant, depth first."""
        yield self
        for subtask in self.subtasks:
            yield from subtask.walk()

    def descendants(self) -> Iterator['Task']:
        for subtask in self.subtasks:
            yield from subtask.walk()

    def add_subtask(self, task: 'Task'):
        # reassign rather than append so the field is tracked as set
        self.subtasks = [*self.subtasks, task]

    def detach_subtask(self, index: int) -> 'Task':
        task = self.subtasks[index]
        self.subtasks = self.subtasks[:index] + self.subtasks[index + 1:]
        return task

    def clear(self, field: str):
        """Reset an optional field so it is left out of the record again."""
        setattr(self, field, None)
        self.model_fields_set.discard(field)

    def to_record(self) -> Dict[str, Any]:
        """JSON-ready dict; fields never set stay absent."""
        return self.model_dump(mode="json", by_alias=True, exclude_unset=True)

Task.model_rebuild()

class TaskDraft(BaseModel):
    """Task attributes without an identifier, used for new tasks and template skeletons."""

    model_config = ConfigDict(populate_by_name=True)

    name: str = Field(description="Short label of the task")
    state: Optional[str] = Field(default=None, description="Initial state, defaults to the first configured one")
    description: Optional[str] = Field(default=None, description="Free text details")
    priority: Priority = Field(default=None, description="Severity rank, higher is more urgent")
    group: Optional[str] = Field(default=None, description="Name of a configured group")
    due_date: DueDate = Field(default=None, alias="dueDate", description="When the task is due")
    subtasks: List['TaskDraft'] = Field(
        default_factory=list,
        description="Subtask skeletons"
    )

    @field_validator('name')
    @classmethod
    def validate_name(cls, v):
        if not v.strip():
            raise ValueError("Task name can't be empty")
        return v.strip()

    def attributes(self) -> Dict[str, Any]:
        """Attributes that were actually given, without subtasks."""
        return self.model_dump(exclude_unset=True, exclude_none=True, exclude={"subtasks"})

TaskDraft.model_rebuild()

CLEARABLE_FIELDS = frozenset({"description", "priority", "group", "due_date"})

class TaskPatch(BaseModel):
    """A partial set of task attributes to merge into existing tasks."""

    model_config = ConfigDict(populate_by_name=True, extra="forbid")

    name: Optional[str] = None
    state: Optional[str] = None
    description: Optional[str] = None
    priority: Priority = None
    group: Optional[str] = None
    due_date: DueDate = Field(default=None, alias="dueDate")

    @field_validator('name')
    @classmethod
    def validate_name(cls, v):
        if v is not None and not v.strip():
            raise ValueError("Task name can't be empty")
        return v

    def changes(self) -> Dict[str, Any]:
        """
        Attributes to write. An optional field explicitly set to None stays in
        the result and means "clear it"; name and state can't be cleared.
        """
        return {key: value for key, value in self.model_dump(exclude_unset=True).items()
                if value is not None or key in CLEARABLE_FIELDS}

class TaskState(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    name: str = Field(description="Name of the state, ie. todo, wip, done")
    hex_color: str = Field(alias="hexColor", description="Display color as #rrggbb")
    icon: str = Field(description="Symbol shown in front of tasks in this state")

    @field_validator('hex_color')
    @classmethod
    def validate_color(cls, v):
        return validate_hex_color(v)

class TaskGroup(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    name: str = Field(description="Name of the group")
    hex_color: str = Field(alias="hexColor", description="Display color as #rrggbb")

    @field_validator('hex_color')
    @classmethod
    def validate_color(cls, v):
        return validate_hex_color(v)

class TaskTemplate(BaseModel):
    name: str = Field(description="Name of the template")
    subtasks: List[TaskDraft] = Field(
        default_factory=list,
        description="Subtasks copied into every task created from this template"
    )

class Meta(BaseModel):
    """States, groups and templates shared by every task of a storage file."""

    states: List[TaskState] = Field(min_length=1, description="Ordered state progression, first is initial, last is done")
    groups: List[TaskGroup] = Field(default_factory=list, description="Known groups")
    templates: List[TaskTemplate] = Field(default_factory=list, description="Reusable subtask skeletons")

    @model_validator(mode='after')
    def validate_unique_states(self):
        names = self.state_names
        if len(set(names)) != len(names):
            raise ValueError(f"State names must be unique: {names}")
        return self

    @property
    def state_names(self) -> List[str]:
        return [s.name for s in self.states]

    @property
    def initial_state(self) -> TaskState:
        return self.states[0]

    @property
    def terminal_state(self) -> TaskState:
        return self.states[-1]

    def find_state(self, name: str) -> Optional[TaskState]:
        return next((s for s in self.states if s.name == name), None)

    def state_index(self, name: str, task_id: Optional[int] = None) -> int:
        for index, state in enumerate(self.states):
            if state.name == name:
                return index
        raise StateNotFoundError(name, task_id)

    def next_state(self, name: str, task_id: Optional[int] = None) -> str:
        """The state after `name`, or `name` itself when it is terminal."""
        index = self.state_index(name, task_id)
        return self.states[min(index + 1, len(self.states) - 1)].name

    def find_group(self, name: str) -> Optional[TaskGroup]:
        return next((g for g in self.groups if g.name == name), None)

    def find_template(self, name: str) -> Optional[TaskTemplate]:
        return next((t for t in self.templates if t.name == name), None)

    def upsert_group(self, name: str, hex_color: str) -> bool:
        """Add a group or recolor it. Returns True when the group is new."""
        group = TaskGroup(name=name, hex_color=hex_color)
        existing = self.find_group(name)
        if existing:
            existing.hex_color = group.hex_color
            return False
        self.groups = [*self.groups, group]
        return True

    def remove_group(self, name: str) -> bool:
        before = len(self.groups)
        self.groups = [g for g in self.groups if g.name != name]
        return len(self.groups) != before

    def upsert_template(self, name: str, subtask_names: List[str]) -> bool:
        """Create or replace a template. Returns True when the template is new."""
        subtasks = [TaskDraft(name=n) for n in subtask_names]
        existing = self.find_template(name)
        if existing:
            existing.subtasks = subtasks
            return False
        self.templates = [*self.templates, TaskTemplate(name=name, subtasks=subtasks)]
        return True

    def remove_template(self, name: str) -> bool:
        before = len(self.templates)
        self.templates = [t for t in self.templates if t.name != name]
        return len(self.templates) != before

    def to_record(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_unset=True)

class StorageFile(BaseModel):
    """The whole persisted document: metadata plus the task forest."""

    meta: Meta = Field(description="States, groups and templates")
    datas: List[Task] = Field(default_factory=list, description="Root tasks, in display order")

    @model_validator(mode='after')
    def validate_unique_ids(self):
        seen = set()
        duplicates = []
        for root in self.datas:
            for task in root.walk():
                if task.id in seen:
                    duplicates.append(task.id)
                seen.add(task.id)
        if duplicates:
            raise ValueError(f"Duplicate task ids: {sorted(set(duplicates))}")
        return self

    def to_record(self) -> Dict[str, Any]:
        return {
            "meta": self.meta.to_record(),
            "datas": [task.to_record() for task in self.datas],
        }
