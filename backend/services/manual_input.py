"""Narrative report input (team morale, celebrations, milestones...) kept in a JSON file."""

import copy
import json
import logging
import os
from datetime import date
from typing import Optional

logger = logging.getLogger(__name__)

DEFAULT_FILENAME = "manual-input.json"

# (section, field, prompt) in the order the CLI asks them
PROMPTS = [
    ("teamMorale", "assessment", "Team morale assessment (brief summary of team sentiment)"),
    ("teamMorale", "challenges", "Current challenges affecting the team"),
    ("teamMorale", "supportNeeded", "Support needed from leadership"),
    ("celebrations", "teamCelebrations", "Team celebrations or positive feedback"),
    ("celebrations", "kudos", "Kudos/shoutouts for team members"),
    ("celebrations", "noteworthy", "Other noteworthy achievements"),
    ("milestones", "milestonesReached", "Major project milestones reached"),
    ("milestones", "releases", "Releases or deliverables completed"),
    ("forwardLooking", "upcomingPriorities", "Upcoming priorities for next period"),
    ("forwardLooking", "potentialBlockers", "Potential blockers"),
    ("forwardLooking", "risks", "Risks to call out"),
    ("velocityHighlights", "trends", "Notable trends in team velocity"),
    ("velocityHighlights", "anomalies", "Explanation for any velocity anomalies"),
    ("velocityHighlights", "context", "Additional velocity context"),
]


def default_template(today: Optional[date] = None) -> dict:
    data = {"reportDate": (today or date.today()).isoformat()}
    for section, field, _ in PROMPTS:
        data.setdefault(section, {})[field] = ""
    return data


class ManualInputStore:
    """Load and save the manual input file.

    The file lives in the workspace directory; nothing is cached between
    calls, so each load reflects what is on disk.
    """

    def __init__(self, path: str):
        self.path = path

    @classmethod
    def in_directory(cls, directory: str) -> "ManualInputStore":
        return cls(os.path.join(directory, DEFAULT_FILENAME))

    def load(self) -> dict:
        """Load saved input, or the empty template when there is none."""
        if not os.path.exists(self.path):
            return default_template()
        try:
            with open(self.path, "r") as f:
                return json.load(f)
        except (json.JSONDecodeError, IOError) as e:
            logger.warning(f"Failed to read manual input from {self.path}: {e}")
            return default_template()

    def save(self, data: dict) -> dict:
        directory = os.path.dirname(self.path)
        if directory and not os.path.exists(directory):
            os.makedirs(directory)
        with open(self.path, "w") as f:
            json.dump(data, f, indent=2)
        logger.info(f"Manual input saved to {self.path}")
        return data

    def update(self, new_data: dict) -> dict:
        """Shallow-merge new sections over the saved ones and save."""
        data = self.load()
        data.update(new_data)
        return self.save(data)

    def update_from_file(self, input_file: str) -> dict:
        try:
            with open(input_file, "r") as f:
                new_data = json.load(f)
        except (json.JSONDecodeError, IOError) as e:
            raise ValueError(f"Failed to update from file: {e}") from e

        if not isinstance(new_data, dict):
            raise ValueError("Failed to update from file: expected a JSON object")

        logger.info(f"Manual input updated from {input_file}")
        return self.update(new_data)

    def apply_answers(self, answers: dict) -> dict:
        """Store prompt answers keyed by (section, field); blank answers keep the old value."""
        data = copy.deepcopy(self.load())
        for (section, field), value in answers.items():
            if value:
                data.setdefault(section, {})[field] = value
        data["reportDate"] = date.today().isoformat()
        return self.save(data)

    @staticmethod
    def sections() -> list:
        return list(PROMPTS)
