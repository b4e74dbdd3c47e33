"""Shared fixtures for status report tests."""

import os
import sys
from datetime import datetime, timedelta, timezone

import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from services.config import Settings  # noqa: E402
from services.issue_normalizer import IssueRef, NormalizedIssue  # noqa: E402

NOW = datetime(2024, 6, 14, 12, 0, tzinfo=timezone.utc)


def make_issue(key, days_created=30, days_updated=1, status="To Do", resolution=None,
               issue_type="Story", parent=None, **kwargs):
    """Build a NormalizedIssue relative to NOW."""
    parent_ref = IssueRef(key=parent, summary=f"Epic {parent}") if parent else None
    return NormalizedIssue(
        key=key,
        summary=kwargs.pop("summary", f"Issue {key}"),
        status=status,
        issue_type=issue_type,
        created=NOW - timedelta(days=days_created),
        updated=NOW - timedelta(days=days_updated),
        resolution=resolution,
        parent_ref=parent_ref,
        **kwargs
    )


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def issue_factory():
    return make_issue


@pytest.fixture
def settings(tmp_path):
    """Settings pointing at a temporary workspace."""
    return Settings(
        jira_base_url="https://test.atlassian.net",
        jira_api_token="test-token-123",
        jira_email="test@example.com",
        project_keys=["PROJ"],
        reports_dir=str(tmp_path / "reports"),
        data_dir=str(tmp_path / "data"),
        workspace_dir=str(tmp_path)
    )


@pytest.fixture
def settings_without_token(tmp_path):
    return Settings(
        jira_api_token=None,
        reports_dir=str(tmp_path / "reports"),
        data_dir=str(tmp_path / "data"),
        workspace_dir=str(tmp_path)
    )


@pytest.fixture
def app(settings):
    """Create Flask test app."""
    from app import create_app
    app = create_app(settings)
    app.config['TESTING'] = True
    app.config['JIRA_REQUEST_DELAY'] = 0
    return app


@pytest.fixture
def client(app):
    """Create Flask test client."""
    return app.test_client()


@pytest.fixture
def jira_headers():
    return {
        "X-Jira-Server": "https://test.atlassian.net",
        "X-Jira-Email": "test@example.com",
        "X-Jira-Token": "test-token-123"
    }


@pytest.fixture
def raw_story():
    """Search API story linked to an Epic through the Epic Link field."""
    return {
        "key": "PROJ-101",
        "fields": {
            "summary": "Implement login page",
            "status": {"name": "In Progress"},
            "assignee": {"displayName": "Alice Smith"},
            "priority": {"name": "High"},
            "issuetype": {"name": "Story"},
            "created": "2024-06-10T09:00:00.000+0000",
            "updated": "2024-06-13T15:30:00.000+0000",
            "resolution": None,
            "customfield_12311140": "PROJ-1"
        }
    }


@pytest.fixture
def raw_epic():
    """Epic linked to an Initiative and an Outcome."""
    return {
        "key": "PROJ-1",
        "fields": {
            "summary": "Authentication overhaul",
            "status": {"name": "In Progress"},
            "assignee": {"displayName": "Bob Jones"},
            "priority": {"name": "Major"},
            "issuetype": {"name": "Epic"},
            "created": "2024-05-01T09:00:00.000+0000",
            "updated": "2024-06-12T10:00:00.000+0000",
            "resolution": None,
            "issuelinks": [
                {
                    "type": {"name": "Initiative", "inward": "is implemented by", "outward": "implements"},
                    "outwardIssue": {
                        "key": "INIT-7",
                        "fields": {"summary": "Secure platform", "issuetype": {"name": "Initiative"}}
                    }
                },
                {
                    "type": {"name": "Relates", "inward": "relates to", "outward": "relates to"},
                    "outwardIssue": {
                        "key": "OUT-3",
                        "fields": {"summary": "Customer trust", "issuetype": {"name": "Outcome"}}
                    }
                }
            ]
        }
    }


@pytest.fixture
def raw_bug_done():
    """Resolved bug without any parent."""
    return {
        "key": "PROJ-102",
        "fields": {
            "summary": "Fix session timeout",
            "status": {"name": "Done"},
            "assignee": None,
            "priority": None,
            "issuetype": {"name": "Bug"},
            "created": "2024-05-20T09:00:00.000+0000",
            "updated": "2024-06-01T09:00:00.000+0000",
            "resolution": {"name": "Fixed"}
        }
    }


@pytest.fixture
def raw_issues(raw_epic, raw_story, raw_bug_done):
    return [raw_epic, raw_story, raw_bug_done]


@pytest.fixture
def velocity_samples():
    return [
        {"weekEnding": "2024-05-24", "completedCount": 4, "storyPoints": 8},
        {"weekEnding": "2024-05-31", "completedCount": 3, "storyPoints": 5},
        {"weekEnding": "2024-06-07", "completedCount": 6, "storyPoints": 13},
        {"weekEnding": "2024-06-14", "completedCount": 5, "storyPoints": 11}
    ]


@pytest.fixture
def mock_fields_response():
    """Mock response for Jira fields endpoint."""
    return [
        {"id": "customfield_10002", "name": "Story Points", "schema": {"type": "number"}},
        {"id": "customfield_10016", "name": "Story point estimate", "schema": {"type": "number"}},
        {"id": "summary", "name": "Summary", "schema": {"type": "string"}},
        {"id": "status", "name": "Status", "schema": {"type": "status"}}
    ]
