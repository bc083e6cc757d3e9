import os
from pathlib import Path
from typing import Optional, Union

from pydantic import BaseModel, Field, ValidationError, field_validator

from .data.core import DEFAULT_STORAGE_FILE_NAME
from .data.io import load_yaml_file
from .models import GroupBy, Order
from .recovery import ConfigError, CorruptStorageError
from .logs import get_logger

log = get_logger("config")

CONFIG_ENV = "TASKNEST_CONFIG"
STORAGE_ENV = "TASKNEST_STORAGE"
DEFAULT_CONFIG_PATH = Path.home() / ".config" / "tasknest" / "config.yml"
DEFAULT_GLOBAL_STORAGE = Path.home() / ".local" / "share" / "tasknest" / DEFAULT_STORAGE_FILE_NAME

class Config(BaseModel):
    """User preferences, read from a YAML file."""

    storage_file: str = Field(default=DEFAULT_STORAGE_FILE_NAME, description="Name of the local storage file looked up in the current directory")
    global_storage: Path = Field(default=DEFAULT_GLOBAL_STORAGE, description="Storage used when there is no local one")
    group_by: GroupBy = Field(default=GroupBy.STATE, description="Attribute the task list is grouped by")
    order: Order = Field(default=Order.ASC, description="Order of the root tasks")
    auto_sync: bool = Field(default=True, description="Commit and push after every change when git is initialized")
    color: bool = Field(default=True, description="Colorize output")

    @field_validator('global_storage')
    @classmethod
    def expand_user(cls, v):
        return v.expanduser()

def config_path() -> Path:
    return Path(os.getenv(CONFIG_ENV) or DEFAULT_CONFIG_PATH).expanduser()

def load_config(path: Optional[Union[Path, str]] = None) -> Config:
    """Load the user config, falling back to defaults when the file doesn't exist."""
    path = Path(path) if path else config_path()
    try:
        data = load_yaml_file(path)
    except CorruptStorageError as e:
        raise ConfigError(str(e)) from e

    if data is None:
        log.debug(f"No config at {path}, using defaults")
        return Config()

    try:
        return Config.model_validate(data)
    except ValidationError as e:
        raise ConfigError(f"Invalid config file {path}: {e}") from e

def resolve_storage_path(config: Config, explicit: Optional[Union[Path, str]] = None,
                         cwd: Optional[Path] = None) -> Path:
    """
    Pick the storage file to use.

    An explicit path wins, then $TASKNEST_STORAGE, then a storage file in the
    current directory, then the global storage.
    """
    if explicit:
        return Path(explicit).expanduser()

    from_env = os.getenv(STORAGE_ENV)
    if from_env:
        return Path(from_env).expanduser()

    local = (cwd or Path.cwd()) / config.storage_file
    if local.exists():
        return local

    return config.global_storage
