"""Jira REST client used to fetch issues, boards and throughput samples."""

import logging
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import replace
from datetime import datetime, timedelta, timezone
from typing import Optional

import requests

from services.issue_normalizer import (
    DEFAULT_EPIC_LINK_FIELD,
    EpicProgress,
    extract_ancestry,
    normalize_all,
)
from services.trends import percentage

logger = logging.getLogger(__name__)

BASE_ISSUE_FIELDS = [
    "key", "summary", "status", "assignee", "updated", "created", "priority",
    "resolution", "issuetype", "issuelinks", "parent", "epic"
]

COMPLETED_STATUSES = ["Done", "Resolved", "Closed"]

PAGE_SIZE = 100


class JiraClient:
    """Thin wrapper over the Jira REST and Agile APIs."""

    def __init__(self, server: str, token: str, email: Optional[str] = None,
                 epic_link_field: str = DEFAULT_EPIC_LINK_FIELD,
                 request_delay: float = 0.25):
        self.server = server.rstrip("/")
        self.token = token
        self.email = email
        self.epic_link_field = epic_link_field
        self.request_delay = request_delay
        self._story_points_fields_cache = None

    @classmethod
    def from_settings(cls, settings, **kwargs) -> "JiraClient":
        return cls(
            settings.jira_base_url,
            settings.jira_api_token,
            email=settings.jira_email,
            epic_link_field=settings.epic_link_field,
            **kwargs
        )

    @property
    def issue_fields(self) -> list:
        fields = list(BASE_ISSUE_FIELDS)
        if self.epic_link_field and self.epic_link_field not in fields:
            fields.append(self.epic_link_field)
        return fields

    def _auth_kwargs(self) -> dict:
        """Basic auth when an email is set (Cloud), bearer token otherwise (Server/DC)."""
        headers = {"Accept": "application/json"}
        if self.email:
            return {"auth": (self.email, self.token), "headers": headers}
        headers["Authorization"] = f"Bearer {self.token}"
        return {"headers": headers}

    def _get(self, endpoint: str, params: Optional[dict] = None):
        if self.request_delay:
            time.sleep(self.request_delay)
        return requests.get(
            f"{self.server}{endpoint}",
            params=params,
            timeout=30,
            **self._auth_kwargs()
        )

    def _request(self, endpoint: str, params: Optional[dict] = None):
        """Make authenticated request to Jira API."""
        response = self._get(endpoint, params)
        response.raise_for_status()
        return response.json()

    # -- account, projects and boards --

    def validate_token(self) -> Optional[dict]:
        """Return the current user, or None when Jira rejects the credentials."""
        response = self._get("/rest/api/2/myself")
        if response.status_code == 401:
            return None
        response.raise_for_status()
        return response.json()

    def get_projects(self) -> list:
        projects = self._request("/rest/api/2/project")
        return [
            {
                "key": project.get("key"),
                "name": project.get("name"),
                "id": project.get("id"),
                "projectTypeKey": project.get("projectTypeKey")
            }
            for project in projects
        ]

    def get_boards_for_project(self, project_key: str) -> list:
        """List the boards attached to a project (paginated)."""
        all_boards = []
        start_at = 0
        max_results = 50

        while True:
            data = self._request(
                "/rest/agile/1.0/board",
                params={"projectKeyOrId": project_key, "startAt": start_at, "maxResults": max_results}
            )

            boards = data.get("values", [])
            all_boards.extend(boards)

            if data.get("isLast", True) or len(boards) < max_results:
                break

            start_at += max_results

        return [
            {
                "id": board["id"],
                "name": board.get("name"),
                "type": board.get("type"),
                "projectKey": project_key
            }
            for board in all_boards
        ]

    def get_board(self, board_id) -> dict:
        board = self._request(f"/rest/agile/1.0/board/{board_id}")
        return {
            "id": board["id"],
            "name": board.get("name"),
            "type": board.get("type"),
            "projectKey": board.get("location", {}).get("projectKey")
        }

    # -- JQL --

    def build_jql(self, project_keys: list, weeks_back: Optional[int] = None,
                  statuses: Optional[list] = None, component: Optional[str] = None,
                  issue_types: Optional[list] = None, resolution: Optional[str] = None,
                  start_date: Optional[str] = None, end_date: Optional[str] = None,
                  order_by: Optional[str] = "updated DESC",
                  now: Optional[datetime] = None) -> str:
        """Build a JQL query for the given projects and filters.

        Args:
            project_keys: One or more project keys
            weeks_back: Only issues updated in the last N weeks
            statuses: Status names to include
            component: Component name
            issue_types: Issue type names to include
            resolution: Resolution value (e.g. "Unresolved")
            start_date/end_date: Explicit YYYY-MM-DD update window
            order_by: ORDER BY clause, or None
            now: Reference time for weeks_back

        Returns:
            JQL string
        """
        if not project_keys:
            raise ValueError("At least one project key is required")

        clauses = [f"project in ({','.join(project_keys)})"]

        if weeks_back:
            now = now or datetime.now(timezone.utc)
            since = (now - timedelta(weeks=weeks_back)).strftime("%Y-%m-%d")
            clauses.append(f'updated >= "{since}"')

        if statuses:
            quoted = ",".join(f'"{s}"' for s in statuses)
            clauses.append(f"status in ({quoted})")

        if component:
            clauses.append(f'component = "{component}"')

        if issue_types:
            clauses.append(f"issuetype in ({','.join(issue_types)})")

        if resolution:
            clauses.append(f"resolution = {resolution}")

        if start_date and end_date:
            clauses.append(f'updated >= "{start_date}" AND updated <= "{end_date}"')

        jql = " AND ".join(clauses)
        if order_by:
            jql += f" ORDER BY {order_by}"
        return jql

    def build_issues_jql(self, issue_filter: dict, project_key: str,
                         now: Optional[datetime] = None) -> str:
        """Build the JQL for issues mode from a saved filter.

        Filter keys: issueTypes, statuses, resolution, component, dateRange (days).
        """
        now = now or datetime.now(timezone.utc)
        days = int(issue_filter.get("dateRange") or 7)
        return self.build_jql(
            [project_key],
            statuses=issue_filter.get("statuses"),
            component=issue_filter.get("component"),
            issue_types=issue_filter.get("issueTypes"),
            resolution=issue_filter.get("resolution"),
            start_date=(now - timedelta(days=days)).strftime("%Y-%m-%d"),
            end_date=now.strftime("%Y-%m-%d"),
            order_by="priority DESC, updated DESC"
        )

    # -- issue search --

    def search_raw(self, jql: str, max_results: Optional[int] = None,
                   fields: Optional[list] = None) -> list:
        """Run a JQL search and return the raw issue payloads.

        Args:
            jql: JQL query
            max_results: Cap on the number of issues returned (None = all)
            fields: Fields to request, defaults to issue_fields
        """
        fields = fields or self.issue_fields
        all_issues = []
        start_at = 0

        while True:
            page_size = PAGE_SIZE if max_results is None else min(PAGE_SIZE, max_results - len(all_issues))
            data = self._request(
                "/rest/api/2/search",
                params={
                    "jql": jql,
                    "startAt": start_at,
                    "maxResults": page_size,
                    "fields": ",".join(fields)
                }
            )

            issues = data.get("issues", [])
            all_issues.extend(issues)
            start_at += len(issues)

            if len(issues) < page_size or start_at >= data.get("total", 0):
                break
            if max_results is not None and len(all_issues) >= max_results:
                break

        logger.debug(f"JQL returned {len(all_issues)} issues: {jql}")
        return all_issues

    def search_issues(self, jql: str, max_results: Optional[int] = None) -> list:
        """Run a JQL search and return NormalizedIssue records."""
        raw = self.search_raw(jql, max_results)
        return normalize_all(raw, self.server, self.epic_link_field)

    def get_board_issues(self, board_id, jql: Optional[str] = None) -> list:
        """Fetch a board's issues (Agile API), optionally narrowed by JQL."""
        all_issues = []
        start_at = 0

        while True:
            params = {
                "startAt": start_at,
                "maxResults": PAGE_SIZE,
                "fields": ",".join(self.issue_fields)
            }
            if jql:
                params["jql"] = jql
            data = self._request(f"/rest/agile/1.0/board/{board_id}/issue", params=params)

            issues = data.get("issues", [])
            all_issues.extend(issues)

            if len(issues) < PAGE_SIZE:
                break

            start_at += PAGE_SIZE

        return normalize_all(all_issues, self.server, self.epic_link_field)

    def get_issues_from_boards(self, boards: list, jql: str) -> list:
        """Fetch issues from several boards, keeping the first copy of each key.

        A board that fails is logged and skipped. When no board yields any
        issue the query runs as a plain project search instead.
        """
        all_issues = []
        seen_keys = set()

        for board in boards:
            board_id = board["id"] if isinstance(board, dict) else board
            board_name = board.get("name", board_id) if isinstance(board, dict) else board_id
            try:
                board_issues = self.get_board_issues(board_id, jql)
            except requests.exceptions.RequestException as e:
                logger.warning(f"Could not get issues from board {board_name}: {e}")
                continue

            for issue in board_issues:
                if issue.key not in seen_keys:
                    seen_keys.add(issue.key)
                    all_issues.append(issue)

            logger.info(f"Board {board_name}: {len(board_issues)} issues ({len(all_issues)} total unique)")

        if not all_issues:
            logger.warning("No issues found from any boards, falling back to project-wide search")
            return self.search_issues(jql)

        return all_issues

    def fetch_report_issues(self, project_key: str, boards: Optional[list] = None,
                            weeks_back: int = 1, issue_filter: Optional[dict] = None,
                            now: Optional[datetime] = None) -> list:
        """Fetch the issues for one report run, with Epic progress attached.

        Issues mode (issue_filter given) runs a filtered project search;
        otherwise issues updated in the window come from the selected boards,
        or from the whole project when no board is selected.
        """
        if issue_filter:
            jql = self.build_issues_jql(issue_filter, project_key, now)
            issues = self.search_issues(jql)
        else:
            jql = self.build_jql([project_key], weeks_back=weeks_back, now=now)
            if boards:
                issues = self.get_issues_from_boards(boards, jql)
            else:
                issues = self.search_issues(jql)

        logger.info(f"Fetched {len(issues)} issues for {project_key}")
        return self.enrich_with_epic_progress(issues)

    # -- epics --

    def fetch_epic_progress(self, epic_key: str) -> EpicProgress:
        """Count done vs total children of an Epic. Zeroes on failure."""
        try:
            children = self.search_raw(
                f'"Epic Link" = {epic_key} OR parent = {epic_key}',
                fields=["key", "status", "issuetype"]
            )
        except requests.exceptions.RequestException as e:
            logger.warning(f"Could not fetch Epic progress for {epic_key}: {e}")
            return EpicProgress()

        total = len(children)
        completed = sum(
            1 for child in children
            if (child.get("fields", {}).get("status") or {}).get("name") in COMPLETED_STATUSES
        )
        return EpicProgress(total=total, completed=completed, percentage=percentage(completed, total))

    def enrich_with_epic_progress(self, issues: list) -> list:
        """Attach Epic progress to each issue's parent reference.

        Progress is fetched once per unique parent key. Returns new records;
        the input issues are left untouched.
        """
        epic_keys = {issue.parent_ref.key for issue in issues if issue.parent_ref}
        if not epic_keys:
            return list(issues)

        logger.info(f"Fetching progress for {len(epic_keys)} unique Epics")
        progress_by_key = {}

        with ThreadPoolExecutor(max_workers=5) as executor:
            futures = {executor.submit(self.fetch_epic_progress, key): key for key in epic_keys}
            for future in as_completed(futures):
                progress_by_key[futures[future]] = future.result()

        enriched = []
        for issue in issues:
            if issue.parent_ref and issue.parent_ref.key in progress_by_key:
                parent_ref = replace(issue.parent_ref, progress=progress_by_key[issue.parent_ref.key])
                issue = replace(issue, parent_ref=parent_ref)
            enriched.append(issue)
        return enriched

    def fetch_epic_hierarchy(self, epic_key: str) -> Optional[dict]:
        """Return {epic, initiative, outcome} for an Epic, or None on failure."""
        try:
            issue = self._request(
                f"/rest/api/2/issue/{epic_key}",
                params={"fields": "key,summary,status,issuetype,issuelinks,parent"}
            )
        except requests.exceptions.RequestException as e:
            logger.warning(f"Could not fetch Epic hierarchy for {epic_key}: {e}")
            return None

        fields = issue.get("fields", {})
        ancestry = extract_ancestry(fields, self.server)

        return {
            "epic": {
                "key": issue.get("key", epic_key),
                "summary": fields.get("summary"),
                "url": f"{self.server}/browse/{issue.get('key', epic_key)}",
                "type": (fields.get("issuetype") or {}).get("name"),
                "status": (fields.get("status") or {}).get("name")
            },
            **ancestry.to_dict()
        }

    # -- throughput --

    def get_story_points_fields(self) -> list:
        """Find all possible story points custom field IDs."""
        if self._story_points_fields_cache is not None:
            return self._story_points_fields_cache

        fields = self._request("/rest/api/2/field")
        sp_fields = []

        for field in fields:
            name = field.get("name", "")
            name_lower = name.lower()
            field_id = field.get("id", "")
            field_type = field.get("schema", {}).get("type")

            if field_type != "number":
                continue

            if name == "Story Points":
                sp_fields.insert(0, field_id)
            elif "story point" in name_lower:
                sp_fields.append(field_id)

        for fallback in ["customfield_12310243", "customfield_10002", "customfield_10016"]:
            if fallback not in sp_fields:
                sp_fields.append(fallback)

        self._story_points_fields_cache = sp_fields
        return sp_fields

    def _get_story_points(self, issue: dict) -> float:
        fields = issue.get("fields", {})

        for field_id in self.get_story_points_fields():
            points = fields.get(field_id)
            if points is not None:
                try:
                    return float(points)
                except (TypeError, ValueError):
                    pass

        return 0

    def get_throughput_data(self, project_keys: list, weeks: int = 6,
                            now: Optional[datetime] = None) -> list:
        """Completed issues and story points per week, oldest week first.

        Returns:
            List of {weekEnding, completedCount, storyPoints}
        """
        now = now or datetime.now(timezone.utc)
        base_jql = self.build_jql(project_keys, statuses=COMPLETED_STATUSES, order_by=None)
        fields = ["key", "status"] + self.get_story_points_fields()
        samples = []

        for week in range(weeks):
            week_end = now - timedelta(weeks=week)
            week_start = week_end - timedelta(weeks=1)
            jql = (
                f'{base_jql} AND resolutiondate >= "{week_start.strftime("%Y-%m-%d")}"'
                f' AND resolutiondate <= "{week_end.strftime("%Y-%m-%d")}"'
            )
            completed = self.search_raw(jql, fields=fields)
            samples.append({
                "weekEnding": week_end.strftime("%Y-%m-%d"),
                "completedCount": len(completed),
                "storyPoints": sum(self._get_story_points(issue) for issue in completed)
            })

        samples.reverse()
        return samples

    def get_velocity_samples(self, project_keys: list, periods: int = 6,
                             now: Optional[datetime] = None) -> list:
        """Throughput samples for velocity, or an empty list when Jira fails."""
        try:
            return self.get_throughput_data(project_keys, periods, now)
        except requests.exceptions.RequestException as e:
            logger.warning(f"Could not retrieve velocity data: {e}")
            return []
