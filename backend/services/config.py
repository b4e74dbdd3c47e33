"""Environment-driven settings."""

import os
from dataclasses import dataclass, field
from typing import Optional

from dotenv import load_dotenv

from services.issue_normalizer import DEFAULT_EPIC_LINK_FIELD

DEFAULT_BASE_URL = "https://issues.redhat.com"
DEFAULT_TEAM_NAME = "Engineering Team"


def _split_list(value: Optional[str]) -> list:
    if not value:
        return []
    return [item.strip() for item in value.split(",") if item.strip()]


def _int_or_default(value: Optional[str], default: int) -> int:
    try:
        parsed = int(value)
    except (TypeError, ValueError):
        return default
    return parsed if parsed > 0 else default


@dataclass
class Settings:
    jira_base_url: str = DEFAULT_BASE_URL
    jira_api_token: Optional[str] = None
    jira_email: Optional[str] = None
    project_keys: list = field(default_factory=list)
    board_ids: list = field(default_factory=list)
    epic_link_field: str = DEFAULT_EPIC_LINK_FIELD
    weeks_back: int = 1
    velocity_periods: int = 6
    team_name: str = DEFAULT_TEAM_NAME
    reports_dir: str = "reports"
    data_dir: str = "data"
    workspace_dir: str = field(default_factory=os.getcwd)

    @classmethod
    def from_env(cls, env_file: Optional[str] = None, environ: Optional[dict] = None) -> "Settings":
        """Build settings from the environment, loading a .env file first.

        Args:
            env_file: Optional path to a .env file (defaults to searching from cwd)
            environ: Mapping to read instead of os.environ (skips .env loading)
        """
        if environ is None:
            load_dotenv(env_file)
            environ = os.environ

        workspace_dir = environ.get("WORKSPACE_DIR") or os.getcwd()

        return cls(
            jira_base_url=(environ.get("JIRA_BASE_URL") or DEFAULT_BASE_URL).rstrip("/"),
            jira_api_token=environ.get("JIRA_API_TOKEN") or None,
            jira_email=environ.get("JIRA_EMAIL") or None,
            project_keys=_split_list(environ.get("JIRA_PROJECT_KEYS")),
            board_ids=_split_list(environ.get("JIRA_BOARD_IDS")),
            epic_link_field=environ.get("JIRA_EPIC_LINK_FIELD") or DEFAULT_EPIC_LINK_FIELD,
            weeks_back=_int_or_default(environ.get("REPORT_WEEKS_BACK"), 1),
            velocity_periods=_int_or_default(environ.get("VELOCITY_SPRINTS_COUNT"), 6),
            team_name=environ.get("REPORT_TEAM_NAME") or DEFAULT_TEAM_NAME,
            reports_dir=environ.get("REPORTS_DIR") or os.path.join(workspace_dir, "reports"),
            data_dir=environ.get("DATA_DIR") or os.path.join(workspace_dir, "data"),
            workspace_dir=workspace_dir
        )

    @property
    def manual_input_path(self) -> str:
        return os.path.join(self.workspace_dir, "manual-input.json")

    @property
    def selection_path(self) -> str:
        return os.path.join(self.workspace_dir, "project-selection.json")

    @property
    def has_credentials(self) -> bool:
        return bool(self.jira_base_url and self.jira_api_token)
