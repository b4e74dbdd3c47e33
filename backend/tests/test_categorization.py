"""Tests for issue categorization."""

from datetime import datetime, timedelta, timezone

import pytest

from services.categorization import (
    NO_RECENT_UPDATES_REASON,
    STALE_REASON,
    AttentionItem,
    categorize,
    is_completed,
    is_in_progress_status,
)
from services.issue_normalizer import NormalizedIssue


class TestCompletionRules:
    """Test the completed / in-progress predicates."""

    @pytest.mark.parametrize("status", ["Done", "Resolved", "Closed", "Fixed", "DONE - verified"])
    def test_resolution_and_done_status(self, issue_factory, status):
        assert is_completed(issue_factory("P-1", status=status, resolution="Done"))

    def test_resolution_alone_is_not_enough(self, issue_factory):
        """Should not count a resolved issue whose status is not done-like."""
        assert not is_completed(issue_factory("P-1", status="Verified", resolution="Done"))

    def test_done_status_without_resolution(self, issue_factory):
        assert not is_completed(issue_factory("P-1", status="Done"))

    @pytest.mark.parametrize("status", ["In Progress", "In Review", "Testing", "code review"])
    def test_in_progress_vocabulary(self, status):
        assert is_in_progress_status(status)

    @pytest.mark.parametrize("status", ["To Do", "Backlog", "", None])
    def test_not_in_progress(self, status):
        assert not is_in_progress_status(status)


class TestCategorize:
    """Test bucket assignment."""

    def test_levels_are_split(self, issue_factory, now):
        """Should route Epics to the epic buckets and keep all sub-level items."""
        epic = issue_factory("P-1", issue_type="Epic", status="In Progress")
        story = issue_factory("P-2", status="In Progress")
        result = categorize([epic, story], now)

        assert result.epics.in_progress == [epic]
        assert result.sub_epic_items.in_progress == [story]
        assert result.sub_epic_items.all == [story]
        assert result.in_progress == [epic, story]
        assert result.epics.all is None

    def test_new_issue_only(self, issue_factory, now):
        """Created 2 days ago, To Do, unresolved, recently updated: new only."""
        issue = issue_factory("P-1", days_created=2, days_updated=1, status="To Do")
        result = categorize([issue], now)

        assert result.new_issues == [issue]
        assert result.completed == []
        assert result.in_progress == []
        assert result.needs_attention == []

    def test_new_window_is_strict(self, issue_factory, now):
        """Created exactly 7 days ago is not new."""
        issue = issue_factory("P-1", days_created=7)
        assert categorize([issue], now).new_issues == []

    def test_completed_wins_over_in_progress(self, issue_factory, now):
        issue = issue_factory("P-1", status="Done - in review", resolution="Done")
        result = categorize([issue], now)
        assert result.completed == [issue]
        assert result.in_progress == []

    def test_stale_completed_issue_in_both_buckets(self, issue_factory, now):
        """Done/Fixed and updated 10 days ago: completed and needs attention."""
        issue = issue_factory("P-1", status="Done", resolution="Fixed", days_updated=10)
        result = categorize([issue], now)

        assert result.completed == [issue]
        assert [item.issue for item in result.needs_attention] == [issue]
        assert result.needs_attention[0].reason == STALE_REASON

    def test_attention_reasons(self, issue_factory, now):
        recent = issue_factory("P-1", days_updated=3)
        quiet = issue_factory("P-2", days_updated=5)
        stale = issue_factory("P-3", days_updated=8)
        result = categorize([recent, quiet, stale], now)

        reasons = {item.key: item.reason for item in result.needs_attention}
        assert reasons == {"P-2": NO_RECENT_UPDATES_REASON, "P-3": STALE_REASON}

    def test_attention_snapshot(self, issue_factory, now):
        issue = issue_factory("P-1", days_updated=5)
        item = categorize([issue], now).needs_attention[0]

        assert isinstance(item, AttentionItem)
        assert item.last_updated == "2024-06-09"
        data = item.to_dict()
        assert data["key"] == "P-1"
        assert data["lastUpdated"] == "2024-06-09"
        assert data["reason"] == NO_RECENT_UPDATES_REASON

    def test_output_records_are_input_records(self, issue_factory, now):
        """Every bucketed record is the same object that went in."""
        issues = [
            issue_factory("P-1", days_created=1, status="In Progress", days_updated=9),
            issue_factory("P-2", status="Closed", resolution="Done"),
            issue_factory("P-3", issue_type="Epic", days_created=2),
        ]
        result = categorize(issues, now)
        buckets = [
            result.completed, result.in_progress, result.new_issues,
            result.epics.completed, result.epics.new_issues,
            result.sub_epic_items.all, result.sub_epic_items.in_progress
        ]
        for bucket in buckets:
            for issue in bucket:
                assert any(issue is original for original in issues)
        for item in result.needs_attention:
            assert any(item.issue is original for original in issues)

    def test_idempotent(self, issue_factory, now):
        issues = [
            issue_factory("P-1", days_created=1, status="In Progress", days_updated=9),
            issue_factory("P-2", status="Closed", resolution="Done"),
        ]
        assert categorize(issues, now).to_dict() == categorize(issues, now).to_dict()

    def test_missing_timestamps_do_not_raise(self, now):
        issue = NormalizedIssue(key="P-1", status="")
        result = categorize([issue], now)
        assert result.new_issues == []
        assert result.needs_attention == []
        assert result.sub_epic_items.all == [issue]

    def test_naive_now_is_treated_as_utc(self, issue_factory):
        issue = issue_factory("P-1", days_updated=5)
        naive_now = datetime(2024, 6, 14, 12, 0)
        assert len(categorize([issue], naive_now).needs_attention) == 1

    def test_defaults_to_current_time(self):
        issue = NormalizedIssue(
            key="P-1",
            created=datetime.now(timezone.utc) - timedelta(days=1),
            updated=datetime.now(timezone.utc)
        )
        assert categorize([issue]).new_issues == [issue]

    def test_template_aliases(self, issue_factory, now):
        issue = issue_factory("P-1", status="Done", resolution="Done", days_updated=9)
        result = categorize([issue], now)
        assert result.completed_issues is result.completed
        assert result.in_progress_issues is result.in_progress
        assert result.issues_needing_attention is result.needs_attention

        data = result.to_dict()
        assert data["completedIssues"] == data["completed"]
        assert data["subEpicItems"]["all"][0]["key"] == "P-1"

    def test_empty_list(self, now):
        result = categorize([], now)
        assert result.completed == []
        assert result.sub_epic_items.all == []
