"""
Line notes configuration.

Settings are held in a single validated model. Environment variables
override the defaults; everything else is passed explicitly.
"""

import os
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

ENV_WORKSPACE = "LINENOTES_WORKSPACE"
ENV_TARGET_BRANCH = "LINENOTES_TARGET_BRANCH"
ENV_STORAGE_DIR = "LINENOTES_STORAGE_DIR"
ENV_POLL_SECONDS = "LINENOTES_POLL_SECONDS"
ENV_LOG_LEVEL = "LINENOTES_LOG_LEVEL"

DEFAULT_TARGET_BRANCH = "notes"
DEFAULT_STORAGE_DIR = ".linenotes"
DEFAULT_POLL_SECONDS = 1.0


class LineNotesConfig(BaseModel):
    """
    Runtime configuration for one workspace.

    Annotations are live only while the workspace is on target_branch.
    They are stored under workspace_root / storage_dir_name.
    """

    model_config = ConfigDict(extra="forbid")

    workspace_root: str = Field(..., description="Absolute path to the workspace")
    target_branch: str = Field(default=DEFAULT_TARGET_BRANCH, min_length=1)
    storage_dir_name: str = Field(default=DEFAULT_STORAGE_DIR, min_length=1)
    poll_interval_seconds: float = Field(default=DEFAULT_POLL_SECONDS, gt=0)
    log_level: str = Field(default="INFO")

    @field_validator("workspace_root")
    @classmethod
    def validate_absolute_path(cls, v: str) -> str:
        """Ensure path is absolute."""
        if not Path(v).is_absolute():
            raise ValueError(f"Workspace root must be absolute: {v}")
        return v

    @field_validator("storage_dir_name")
    @classmethod
    def validate_single_component(cls, v: str) -> str:
        """Storage directory must be a direct child of the workspace."""
        if v in (".", "..") or Path(v).name != v:
            raise ValueError(f"Storage directory must be a single path component: {v}")
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        level = v.upper()
        if level not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"Unknown log level: {v}")
        return level

    @property
    def storage_root(self) -> Path:
        return Path(self.workspace_root) / self.storage_dir_name

    @classmethod
    def from_env(cls, workspace_root: Optional[str] = None) -> "LineNotesConfig":
        """
        Build configuration from environment overrides.

        Args:
            workspace_root: Explicit workspace path. Falls back to
                LINENOTES_WORKSPACE, then the current directory.

        Raises:
            pydantic.ValidationError: If an override is invalid
        """
        root = workspace_root or os.environ.get(ENV_WORKSPACE) or str(Path.cwd())
        return cls(
            workspace_root=str(Path(root).resolve()),
            target_branch=os.environ.get(ENV_TARGET_BRANCH, DEFAULT_TARGET_BRANCH),
            storage_dir_name=os.environ.get(ENV_STORAGE_DIR, DEFAULT_STORAGE_DIR),
            poll_interval_seconds=float(
                os.environ.get(ENV_POLL_SECONDS, DEFAULT_POLL_SECONDS)
            ),
            log_level=os.environ.get(ENV_LOG_LEVEL, "INFO"),
        )
