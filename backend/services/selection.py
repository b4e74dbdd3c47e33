"""Saved project/board selection (project-selection.json)."""

import json
import logging
import os
from typing import Optional

logger = logging.getLogger(__name__)

DEFAULT_FILENAME = "project-selection.json"


class SelectionStore:
    """The project and boards a report runs against, kept between runs.

    Stored shape: {"project": {"key", "name"}, "boards": [{"id", "name"}],
    "issuesFilter": {...} or absent}.
    """

    def __init__(self, path: str):
        self.path = path

    def load(self) -> dict:
        if not os.path.exists(self.path):
            return {}
        try:
            with open(self.path, "r") as f:
                return json.load(f)
        except (json.JSONDecodeError, IOError) as e:
            logger.warning(f"Failed to read selection from {self.path}: {e}")
            return {}

    def save(self, project: dict, boards: Optional[list] = None,
             issue_filter: Optional[dict] = None) -> dict:
        if not project or not project.get("key"):
            raise ValueError("A project with a key is required")

        selection = {"project": project, "boards": list(boards or [])}
        if issue_filter:
            selection["issuesFilter"] = issue_filter

        directory = os.path.dirname(self.path)
        if directory and not os.path.exists(directory):
            os.makedirs(directory)
        with open(self.path, "w") as f:
            json.dump(selection, f, indent=2)
        return selection
