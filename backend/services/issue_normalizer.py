"""Normalize raw Jira issue payloads into one canonical issue record."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, Optional

DEFAULT_EPIC_LINK_FIELD = "customfield_12311140"

TOP_LEVEL_TYPES = {"epic", "initiative", "theme"}

EPIC_LINK_DESCRIPTIONS = {"is epic of", "is parent of"}


@dataclass(frozen=True)
class EpicProgress:
    total: int = 0
    completed: int = 0
    percentage: int = 0

    def to_dict(self) -> dict:
        return {
            "total": self.total,
            "completed": self.completed,
            "percentage": self.percentage
        }


@dataclass(frozen=True)
class IssueRef:
    """Reference to another issue (parent, initiative or outcome)."""

    key: str
    summary: str = ""
    url: str = ""
    issue_type: Optional[str] = None
    progress: Optional[EpicProgress] = None

    def to_dict(self) -> dict:
        return {
            "key": self.key,
            "summary": self.summary,
            "url": self.url,
            "type": self.issue_type,
            "progress": self.progress.to_dict() if self.progress else None
        }


@dataclass(frozen=True)
class Ancestry:
    initiative: Optional[IssueRef] = None
    outcome: Optional[IssueRef] = None

    def to_dict(self) -> dict:
        return {
            "initiative": self.initiative.to_dict() if self.initiative else None,
            "outcome": self.outcome.to_dict() if self.outcome else None
        }


@dataclass(frozen=True)
class NormalizedIssue:
    key: str
    summary: str = ""
    status: str = ""
    assignee: Optional[str] = None
    priority: str = "None"
    issue_type: str = ""
    created: Optional[datetime] = None
    updated: Optional[datetime] = None
    resolution: Optional[str] = None
    url: str = ""
    parent_ref: Optional[IssueRef] = None
    ancestry: Ancestry = field(default_factory=Ancestry)

    def to_dict(self) -> dict:
        return {
            "key": self.key,
            "summary": self.summary,
            "status": self.status,
            "assignee": self.assignee,
            "priority": self.priority,
            "issuetype": self.issue_type,
            "created": self.created.isoformat() if self.created else None,
            "updated": self.updated.isoformat() if self.updated else None,
            "resolution": self.resolution,
            "url": self.url,
            "epic": self.parent_ref.to_dict() if self.parent_ref else None,
            "hierarchy": self.ancestry.to_dict()
        }


def is_top_level_type(issue_type: Optional[str]) -> bool:
    """Epic, Initiative and Theme issues group other work."""
    return (issue_type or "").strip().lower() in TOP_LEVEL_TYPES


def parse_timestamp(value) -> Optional[datetime]:
    """Parse a Jira timestamp into an aware UTC datetime.

    Naive values are taken as UTC. Returns None for anything unparseable.
    """
    if isinstance(value, datetime):
        parsed = value
    elif not value or not isinstance(value, str):
        return None
    else:
        parsed = None
        # Jira formats: "2024-10-31T12:11:56.289-0400" or "2024-10-31T12:11:56.289+0000"
        formats = [
            "%Y-%m-%dT%H:%M:%S.%f%z",
            "%Y-%m-%dT%H:%M:%S%z",
            "%Y-%m-%dT%H:%M:%S.%f",
            "%Y-%m-%dT%H:%M:%S",
            "%Y-%m-%d"
        ]
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+0000"
        for fmt in formats:
            try:
                parsed = datetime.strptime(text, fmt)
                break
            except ValueError:
                continue
        if parsed is None:
            return None

    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def _name(value, attr: str = "name") -> Optional[str]:
    """Read a display value that is either a plain string or a Jira object."""
    if value is None:
        return None
    if isinstance(value, dict):
        return value.get(attr)
    return str(value)


def _browse_url(base_url: str, key: str) -> str:
    return f"{base_url.rstrip('/')}/browse/{key}" if base_url else ""


def _linked_issue(link: dict) -> Optional[dict]:
    return link.get("inwardIssue") or link.get("outwardIssue")


def _ref_from_issue(issue: dict, base_url: str) -> IssueRef:
    fields = issue.get("fields") or {}
    return IssueRef(
        key=issue["key"],
        summary=fields.get("summary") or issue.get("summary") or "Unknown",
        url=issue.get("url") or _browse_url(base_url, issue["key"]),
        issue_type=_name(fields.get("issuetype"))
    )


# Parent extraction strategies. Each takes (fields, base_url, epic_link_field)
# and returns an IssueRef or None; the first one that succeeds wins.

def _from_epic_link_field(fields: dict, base_url: str, epic_link_field: str) -> Optional[IssueRef]:
    value = fields.get(epic_link_field) if epic_link_field else None
    if isinstance(value, dict):
        value = value.get("key")
    if not value or not isinstance(value, str):
        return None
    return IssueRef(key=value, summary="Epic", url=_browse_url(base_url, value), issue_type="Epic")


def _from_embedded_epic(fields: dict, base_url: str, epic_link_field: str) -> Optional[IssueRef]:
    epic = fields.get("epic")
    if not isinstance(epic, dict) or not epic.get("key"):
        return None
    progress = epic.get("progress")
    if isinstance(progress, dict):
        progress = EpicProgress(
            total=progress.get("total", 0),
            completed=progress.get("completed", 0),
            percentage=progress.get("percentage", 0)
        )
    return IssueRef(
        key=epic["key"],
        summary=epic.get("summary") or epic.get("name") or "Epic",
        url=epic.get("url") or _browse_url(base_url, epic["key"]),
        issue_type="Epic",
        progress=progress if isinstance(progress, EpicProgress) else None
    )


def _from_issue_links(fields: dict, base_url: str, epic_link_field: str) -> Optional[IssueRef]:
    for link in fields.get("issuelinks") or []:
        link_type = link.get("type") or {}
        type_name = (link_type.get("name") or "").lower()
        descriptions = {
            (link_type.get("inward") or "").lower(),
            (link_type.get("outward") or "").lower()
        }
        is_parent_link = (
            "epic" in type_name
            or "parent" in type_name
            or bool(descriptions & EPIC_LINK_DESCRIPTIONS)
        )
        linked = _linked_issue(link)
        if is_parent_link and linked and linked.get("key"):
            return _ref_from_issue(linked, base_url)
    return None


def _from_parent_field(fields: dict, base_url: str, epic_link_field: str) -> Optional[IssueRef]:
    parent = fields.get("parent")
    if not isinstance(parent, dict) or not parent.get("key"):
        return None
    parent_type = _name((parent.get("fields") or {}).get("issuetype"))
    if not is_top_level_type(parent_type):
        return None
    return _ref_from_issue(parent, base_url)


PARENT_STRATEGIES: list[Callable[[dict, str, str], Optional[IssueRef]]] = [
    _from_epic_link_field,
    _from_embedded_epic,
    _from_issue_links,
    _from_parent_field,
]


def extract_parent_ref(fields: dict, base_url: str = "",
                       epic_link_field: str = DEFAULT_EPIC_LINK_FIELD) -> Optional[IssueRef]:
    """Find the immediate parent (Epic) reference of an issue."""
    for strategy in PARENT_STRATEGIES:
        ref = strategy(fields, base_url, epic_link_field)
        if ref is not None:
            return ref
    return None


def extract_ancestry(fields: dict, base_url: str = "") -> Ancestry:
    """Scan relationship records for Initiative and Outcome links.

    A record matches a level when either the link type name or the linked
    issue's type contains the level name. The first match per level is kept.
    """
    found = {"initiative": None, "outcome": None}

    for link in fields.get("issuelinks") or []:
        linked = _linked_issue(link)
        if not linked or not linked.get("key"):
            continue
        type_name = ((link.get("type") or {}).get("name") or "").lower()
        linked_type = (_name((linked.get("fields") or {}).get("issuetype")) or "").lower()

        for level in found:
            if found[level] is None and (level in type_name or level in linked_type):
                found[level] = _ref_from_issue(linked, base_url)

    return Ancestry(initiative=found["initiative"], outcome=found["outcome"])


def normalize(raw: dict, base_url: str = "",
              epic_link_field: str = DEFAULT_EPIC_LINK_FIELD) -> NormalizedIssue:
    """Map one raw tracker record into a NormalizedIssue.

    Accepts REST payloads (``{"key": ..., "fields": {...}}``) from both the
    search and board APIs, as well as flat records where the values sit at
    the top level. Missing optional fields fall back to defaults.

    Args:
        raw: Raw issue record
        base_url: Jira server URL, used to build browse links
        epic_link_field: Custom field ID holding the Epic Link

    Returns:
        NormalizedIssue
    """
    fields = raw.get("fields")
    if not isinstance(fields, dict):
        fields = raw

    key = raw.get("key") or ""
    issue_type = _name(fields.get("issuetype")) or _name(fields.get("type")) or ""

    return NormalizedIssue(
        key=key,
        summary=fields.get("summary") or "",
        status=_name(fields.get("status")) or "",
        assignee=_name(fields.get("assignee"), "displayName"),
        priority=_name(fields.get("priority")) or "None",
        issue_type=issue_type,
        created=parse_timestamp(fields.get("created")),
        updated=parse_timestamp(fields.get("updated")),
        resolution=_name(fields.get("resolution")),
        url=raw.get("url") or _browse_url(base_url, key),
        parent_ref=extract_parent_ref(fields, base_url, epic_link_field),
        ancestry=extract_ancestry(fields, base_url)
    )


def normalize_all(raw_issues: list, base_url: str = "",
                  epic_link_field: str = DEFAULT_EPIC_LINK_FIELD) -> list:
    """Normalize a list of raw records, preserving order."""
    return [normalize(raw, base_url, epic_link_field) for raw in raw_issues]
