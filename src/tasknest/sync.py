"""
Git synchronization of a storage file.

Git is used as transport only: the storage file is committed and pushed after
it has been saved, and pulled on request. A failing git command raises
SyncError; the storage turns that into a warning so local data never depends
on git or the network being available.
"""

import subprocess
from datetime import datetime
from pathlib import Path
from typing import Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .data.io import atomic_write, load_json_file, DATA_JSON
from .recovery import CorruptStorageError, SyncError
from .logs import get_logger

log = get_logger("sync")

GIT_CONFIG_FILE = ".tasknest-git.json"
GIT_TIMEOUT = 60

class GitConfig(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    remote_url: str = Field(alias="remoteUrl", description="URL of the remote repository")
    remote_name: str = Field(default="origin", alias="remoteName", description="Name of the git remote")
    branch_name: str = Field(default="main", alias="branchName", description="Branch the tasks are pushed to")

class GitSync:
    """Commits and pushes one storage file with the git command line."""

    def __init__(self, storage_path: Union[Path, str]):
        """
        Args:
            storage_path: The storage file; its directory is the git repository
        """
        self.storage_path = Path(storage_path).absolute()
        self.repo_path = self.storage_path.parent
        self.config: Optional[GitConfig] = self._load_config()

    @property
    def config_path(self) -> Path:
        return self.repo_path / GIT_CONFIG_FILE

    @property
    def is_configured(self) -> bool:
        return self.config is not None

    def _load_config(self) -> Optional[GitConfig]:
        try:
            data = load_json_file(self.config_path)
        except CorruptStorageError as e:
            raise SyncError(f"Failed to load Git configuration: {e}") from e
        if data is None:
            return None
        try:
            return GitConfig.model_validate(data)
        except ValidationError as e:
            raise SyncError(f"Failed to load Git configuration {self.config_path}: {e}") from e

    def _require_config(self) -> GitConfig:
        if self.config is None:
            raise SyncError('Git is not initialized. Run "task git init <remote-url>" first.')
        return self.config

    def _git(self, *args: str, check: bool = True) -> subprocess.CompletedProcess:
        command = ["git", *args]
        log.debug(f"Running {' '.join(command)} in {self.repo_path}")
        try:
            result = subprocess.run(
                command,
                cwd=self.repo_path,
                capture_output=True,
                text=True,
                timeout=GIT_TIMEOUT,
            )
        except (OSError, subprocess.SubprocessError) as e:
            raise SyncError(f"git {args[0]} failed: {e}") from e

        if check and result.returncode != 0:
            output = (result.stderr or result.stdout or "").strip()
            raise SyncError(f"git {' '.join(args)} failed: {output}")
        return result

    def init(self, remote_url: str, remote_name: str = "origin", branch_name: str = "main") -> GitConfig:
        """Create the repository if needed, point it at the remote and remember the settings."""
        if not (self.repo_path / ".git").exists():
            self._git("init")
            self._git("config", "user.email", "tasknest@local")
            self._git("config", "user.name", "tasknest")

        if self._git("remote", "get-url", remote_name, check=False).returncode == 0:
            self._git("remote", "remove", remote_name)
        self._git("remote", "add", remote_name, remote_url)

        if self._git("rev-parse", "--verify", f"refs/heads/{branch_name}", check=False).returncode != 0:
            self._git("checkout", "-b", branch_name)

        self.config = GitConfig(remote_url=remote_url, remote_name=remote_name, branch_name=branch_name)
        atomic_write(DATA_JSON, self.config_path, self.config.model_dump(by_alias=True))
        log.info(f"Git initialized in {self.repo_path} with remote {remote_name} {remote_url}")
        return self.config

    def commit(self, message: Optional[str] = None) -> bool:
        """Stage and commit the storage file. Returns False when there was nothing to commit."""
        self._require_config()
        self._git("add", "--", str(self.storage_path))

        if self._git("diff", "--cached", "--quiet", check=False).returncode == 0:
            log.debug("Nothing to commit")
            return False

        self._git("commit", "-m", message or f"Task update at {datetime.now().isoformat(timespec='seconds')}")
        return True

    def push(self):
        config = self._require_config()
        self._git("push", "-u", config.remote_name, config.branch_name)

    def pull(self):
        config = self._require_config()
        self._git("pull", config.remote_name, config.branch_name)

    def commit_and_sync(self, message: Optional[str] = None):
        """Commit the storage file then push it."""
        self.commit(message)
        self.push()

    def status(self) -> str:
        if self.config is None:
            return "Git is not initialized"
        return self._git("status", "--short").stdout.strip()
