"""
Configuration for JML Lite workflows.

WorkflowConfig controls which notification channels the orchestrator uses,
whether approvals are raised automatically, and the reminder schedule. It
can be loaded from a YAML file for the admin CLI.
"""

import logging
from pathlib import Path
from typing import List, Optional, Union

import yaml
from pydantic import BaseModel, Field, field_validator

from .models import SiteUser
from .store.directory import InMemoryUserDirectory

logger = logging.getLogger(__name__)


class WorkflowConfig(BaseModel):
    """Orchestrator settings."""
    send_email_notifications: bool = True
    send_teams_notifications: bool = False
    send_in_app_notifications: bool = False
    auto_create_approvals: bool = True
    overdue_reminder_days: List[int] = Field(default_factory=lambda: [1, 3, 7])
    approval_due_days: int = Field(3, ge=0)
    site_url: str = ""

    @field_validator("overdue_reminder_days")
    @classmethod
    def validate_reminder_days(cls, v: List[int]) -> List[int]:
        if any(day <= 0 for day in v):
            raise ValueError("Overdue reminder days must be positive")
        return sorted(set(v))

    @field_validator("site_url")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return v.rstrip("/")


def load_workflow_config(path: Optional[Union[str, Path]] = None) -> WorkflowConfig:
    """
    Load a WorkflowConfig from a YAML file.

    Args:
        path: YAML file path. If None, defaults are returned.

    Returns:
        Validated WorkflowConfig

    Raises:
        FileNotFoundError: If the file does not exist
        ValueError: If the file does not contain a mapping
    """
    if path is None:
        return WorkflowConfig()

    config_file = Path(path)
    with open(config_file, encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}

    if not isinstance(data, dict):
        raise ValueError(f"Workflow config must be a mapping: {config_file}")

    # Allow the settings to sit under a top-level 'workflow' key
    if "workflow" in data and isinstance(data["workflow"], dict):
        data = data["workflow"]

    config = WorkflowConfig(**data)
    logger.info(f"Loaded workflow config from {config_file}")
    return config


def load_user_directory(path: Optional[Union[str, Path]] = None) -> InMemoryUserDirectory:
    """
    Build an in-memory user directory from the ``directory`` section of a YAML file.

    The section holds ``users`` (rows with Id, Title and Email), optional
    ``groups`` mapping group names to user ids, and ``current_user_id``.

    Args:
        path: YAML file path. If None, or the file has no directory section,
              an empty directory is returned.

    Returns:
        Populated InMemoryUserDirectory
    """
    if path is None:
        return InMemoryUserDirectory()

    with open(Path(path), encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}

    section = data.get("directory") if isinstance(data, dict) else None
    if not isinstance(section, dict):
        return InMemoryUserDirectory()

    users = [SiteUser.model_validate(row) for row in section.get("users") or []]
    directory = InMemoryUserDirectory(
        users=users,
        groups=section.get("groups") or {},
        current_user_id=section.get("current_user_id"),
    )
    logger.info(f"Loaded {len(users)} directory users from {path}")
    return directory
