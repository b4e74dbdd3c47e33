"""Issue categorization into completed / in-progress / new / needs-attention buckets.

Bucket membership is not exclusive: an issue can be new, completed and
needing attention at the same time. Completion and in-progress are checked
as an if/elif chain, so completion wins when both match.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Optional

from services.issue_normalizer import NormalizedIssue, is_top_level_type

logger = logging.getLogger(__name__)

DONE_KEYWORDS = ("done", "resolved", "closed", "fixed")
IN_PROGRESS_KEYWORDS = ("in progress", "in review", "testing", "code review")

NEW_ISSUE_WINDOW_DAYS = 7
ATTENTION_AFTER_DAYS = 3
STALE_AFTER_DAYS = 7

STALE_REASON = "Stale (no updates for over a week)"
NO_RECENT_UPDATES_REASON = "No recent updates"


@dataclass(frozen=True)
class AttentionItem:
    """An issue flagged for attention, with the reason and update snapshot."""

    issue: NormalizedIssue
    reason: str
    last_updated: str

    @property
    def key(self) -> str:
        return self.issue.key

    def to_dict(self) -> dict:
        data = self.issue.to_dict()
        data["lastUpdated"] = self.last_updated
        data["reason"] = self.reason
        return data


@dataclass
class CategoryBuckets:
    completed: list = field(default_factory=list)
    in_progress: list = field(default_factory=list)
    new_issues: list = field(default_factory=list)
    needs_attention: list = field(default_factory=list)
    all: Optional[list] = None

    def to_dict(self) -> dict:
        data = {
            "completed": [i.to_dict() for i in self.completed],
            "inProgress": [i.to_dict() for i in self.in_progress],
            "newIssues": [i.to_dict() for i in self.new_issues],
            "needsAttention": [i.to_dict() for i in self.needs_attention]
        }
        if self.all is not None:
            data["all"] = [i.to_dict() for i in self.all]
        return data


@dataclass
class CategorizedSet:
    """Categorized view of one report run.

    ``epics`` holds top-level issues (Epic/Initiative/Theme), ``sub_epic_items``
    everything else plus an ``all`` list for trend analysis. The flat
    ``completed``/``in_progress``/``new_issues``/``needs_attention`` lists pool
    both levels for older templates.
    """

    epics: CategoryBuckets = field(default_factory=CategoryBuckets)
    sub_epic_items: CategoryBuckets = field(default_factory=lambda: CategoryBuckets(all=[]))
    completed: list = field(default_factory=list)
    in_progress: list = field(default_factory=list)
    new_issues: list = field(default_factory=list)
    needs_attention: list = field(default_factory=list)

    # Template aliases
    @property
    def completed_issues(self) -> list:
        return self.completed

    @property
    def in_progress_issues(self) -> list:
        return self.in_progress

    @property
    def issues_needing_attention(self) -> list:
        return self.needs_attention

    def to_dict(self) -> dict:
        completed = [i.to_dict() for i in self.completed]
        in_progress = [i.to_dict() for i in self.in_progress]
        needs_attention = [i.to_dict() for i in self.needs_attention]
        return {
            "epics": self.epics.to_dict(),
            "subEpicItems": self.sub_epic_items.to_dict(),
            "completed": completed,
            "inProgress": in_progress,
            "newIssues": [i.to_dict() for i in self.new_issues],
            "needsAttention": needs_attention,
            "completedIssues": completed,
            "inProgressIssues": in_progress,
            "issuesNeedingAttention": needs_attention
        }


def _as_utc(value) -> Optional[datetime]:
    if not isinstance(value, datetime):
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def is_completed(issue: NormalizedIssue) -> bool:
    """Resolution set AND status text in the done vocabulary."""
    status = (issue.status or "").lower()
    return bool(issue.resolution) and any(word in status for word in DONE_KEYWORDS)


def is_in_progress_status(status: Optional[str]) -> bool:
    status = (status or "").lower()
    return any(word in status for word in IN_PROGRESS_KEYWORDS)


def attention_reason(issue: NormalizedIssue, now: datetime) -> Optional[str]:
    """Return why an issue needs attention, or None if it doesn't.

    Only the update gap counts; resolved issues are flagged too, so a stale
    completed issue shows up in both buckets.
    """
    updated = _as_utc(issue.updated)
    if updated is None:
        return None
    days_since_update = (now - updated).days
    if days_since_update <= ATTENTION_AFTER_DAYS:
        return None
    if days_since_update > STALE_AFTER_DAYS:
        return STALE_REASON
    return NO_RECENT_UPDATES_REASON


def categorize(issues: list, now: Optional[datetime] = None) -> CategorizedSet:
    """Bucket issues by level and activity.

    Args:
        issues: Ordered list of NormalizedIssue
        now: Reference time, defaults to the current UTC time

    Returns:
        CategorizedSet
    """
    now = _as_utc(now) or datetime.now(timezone.utc)
    one_week_ago = now - timedelta(days=NEW_ISSUE_WINDOW_DAYS)

    result = CategorizedSet()

    for issue in issues:
        target = result.epics if is_top_level_type(issue.issue_type) else result.sub_epic_items

        if target is result.sub_epic_items:
            target.all.append(issue)

        created = _as_utc(issue.created)
        if created is not None and created > one_week_ago:
            target.new_issues.append(issue)
            result.new_issues.append(issue)

        if is_completed(issue):
            target.completed.append(issue)
            result.completed.append(issue)
        elif is_in_progress_status(issue.status):
            target.in_progress.append(issue)
            result.in_progress.append(issue)

        reason = attention_reason(issue, now)
        if reason:
            item = AttentionItem(
                issue=issue,
                reason=reason,
                last_updated=_as_utc(issue.updated).strftime("%Y-%m-%d")
            )
            target.needs_attention.append(item)
            result.needs_attention.append(item)

    logger.debug(
        "Categorized %d issues: %d completed, %d in progress, %d new, %d need attention",
        len(issues), len(result.completed), len(result.in_progress),
        len(result.new_issues), len(result.needs_attention)
    )
    return result
