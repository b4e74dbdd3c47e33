"""Group issues under their parent Epic and build the Epic -> Initiative -> Outcome map."""

import logging
from dataclasses import dataclass, field
from typing import Callable, Optional

from services.issue_normalizer import EpicProgress, IssueRef, NormalizedIssue

logger = logging.getLogger(__name__)


@dataclass
class EpicSummary:
    key: str
    title: str = ""
    url: str = ""
    status: str = "Unknown"
    priority: str = "Unknown"
    assignee: Optional[str] = None
    progress: Optional[EpicProgress] = None

    def to_dict(self) -> dict:
        return {
            "key": self.key,
            "summary": self.title,
            "url": self.url,
            "status": self.status,
            "priority": self.priority,
            "assignee": self.assignee,
            "progress": self.progress.to_dict() if self.progress else None
        }


@dataclass
class EpicGroup:
    epic: EpicSummary
    related_issues: list = field(default_factory=list)

    def has_issue(self, key: str) -> bool:
        return any(existing.key == key for existing in self.related_issues)

    def to_dict(self) -> dict:
        return {
            "epic": self.epic.to_dict(),
            "relatedIssues": [issue.to_dict() for issue in self.related_issues]
        }


@dataclass
class HierarchyGrouping:
    epics_with_issues: list = field(default_factory=list)
    unassociated_issues: list = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "epicsWithIssues": [group.to_dict() for group in self.epics_with_issues],
            "unassociatedIssues": [issue.to_dict() for issue in self.unassociated_issues]
        }


def group_by_parent(issues: list) -> HierarchyGrouping:
    """Group issues by their parent reference.

    Each key is processed once (first occurrence wins). When an issue is
    itself the parent of its group, it updates the group's epic metadata
    instead of being listed as a related issue. Groups keep first-encounter
    order; related issues keep input order.

    Args:
        issues: List of NormalizedIssue

    Returns:
        HierarchyGrouping with epics_with_issues and unassociated_issues
    """
    groups: dict[str, EpicGroup] = {}
    unassociated = []
    seen_keys = set()

    for issue in issues:
        if issue.key in seen_keys:
            continue
        seen_keys.add(issue.key)

        parent: Optional[IssueRef] = issue.parent_ref
        if parent is None or not parent.key:
            unassociated.append(issue)
            continue

        group = groups.get(parent.key)
        if group is None:
            group = EpicGroup(epic=EpicSummary(
                key=parent.key,
                title=parent.summary,
                url=parent.url,
                progress=parent.progress
            ))
            groups[parent.key] = group

        if issue.key == parent.key:
            group.epic.status = issue.status
            group.epic.priority = issue.priority
            group.epic.assignee = issue.assignee
        elif not group.has_issue(issue.key):
            group.related_issues.append(issue)

    return HierarchyGrouping(
        epics_with_issues=list(groups.values()),
        unassociated_issues=unassociated
    )


def _ref_dict(ref) -> Optional[dict]:
    if ref is None:
        return None
    if isinstance(ref, IssueRef):
        return ref.to_dict()
    return dict(ref)


def ancestry_lookup(issues: list) -> Callable[[str], Optional[dict]]:
    """Build an offline hierarchy fetcher from the issues' own ancestry.

    The returned callable maps an epic key to ``{"epic", "initiative",
    "outcome"}`` using the normalized issue with that key, or None when the
    epic is not in the list or has no ancestry.
    """
    by_key: dict[str, NormalizedIssue] = {}
    for issue in issues:
        by_key.setdefault(issue.key, issue)

    def fetch(epic_key: str) -> Optional[dict]:
        issue = by_key.get(epic_key)
        if issue is None:
            return None
        ancestry = issue.ancestry
        if ancestry.initiative is None and ancestry.outcome is None:
            return None
        return {
            "epic": {"key": issue.key, "summary": issue.summary, "url": issue.url,
                     "type": issue.issue_type, "status": issue.status},
            "initiative": _ref_dict(ancestry.initiative),
            "outcome": _ref_dict(ancestry.outcome)
        }

    return fetch


def build_hierarchy_map(epic_groups: list, fetch_hierarchy: Callable[[str], Optional[dict]]) -> dict:
    """Collect the Initiative/Outcome chain above each Epic group.

    Args:
        epic_groups: EpicGroup list from group_by_parent
        fetch_hierarchy: Callable mapping an epic key to a dict with optional
            "epic", "initiative" and "outcome" entries (or None)

    Returns:
        Dict with epicHierarchies, uniqueInitiatives, uniqueOutcomes, hasHierarchy
    """
    initiatives: dict[str, dict] = {}
    outcomes: dict[str, dict] = {}
    epic_hierarchies = []

    for group in epic_groups:
        epic_key = group.epic.key
        try:
            hierarchy = fetch_hierarchy(epic_key)
        except Exception as e:
            logger.warning(f"Could not fetch hierarchy for Epic {epic_key}: {e}")
            continue

        if not hierarchy:
            continue

        hierarchy = dict(hierarchy)
        epic = dict(hierarchy.get("epic") or {})
        epic.update(group.epic.to_dict())
        epic["relatedIssuesCount"] = len(group.related_issues)
        hierarchy["epic"] = epic
        epic_hierarchies.append(hierarchy)

        initiative = _ref_dict(hierarchy.get("initiative"))
        if initiative and initiative.get("key"):
            initiatives.setdefault(initiative["key"], initiative)
        outcome = _ref_dict(hierarchy.get("outcome"))
        if outcome and outcome.get("key"):
            outcomes.setdefault(outcome["key"], outcome)

    logger.info(
        f"Hierarchy map built: {len(outcomes)} outcomes, "
        f"{len(initiatives)} initiatives, {len(epic_hierarchies)} epics"
    )

    return {
        "epicHierarchies": epic_hierarchies,
        "uniqueInitiatives": list(initiatives.values()),
        "uniqueOutcomes": list(outcomes.values()),
        "hasHierarchy": bool(initiatives or outcomes)
    }
