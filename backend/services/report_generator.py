"""Report rendering (Jinja2 templates) and file export."""

import csv
import json
import logging
import os
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from jinja2 import Environment, FileSystemLoader, select_autoescape

from services.categorization import categorize
from services.config import DEFAULT_TEAM_NAME
from services.hierarchy import build_hierarchy_map, group_by_parent
from services.trends import calculate_velocity, calculate_work_breakdown, summarize_trends

logger = logging.getLogger(__name__)

TEMPLATES_DIR = os.path.join(os.path.dirname(__file__), "templates")

# kind -> (template, output subdirectory, file extension)
REPORT_KINDS = {
    "epic-focused": ("epic-focused.md.j2", "markdown", "md"),
    "weekly-summary": ("weekly-summary.md.j2", "markdown", "md"),
    "html": ("google-docs.html.j2", "google-docs", "html"),
    "text": ("plain-text.txt.j2", "plain-text", "txt"),
    "dashboard": ("dashboard.html.j2", "dashboard", "html"),
}

ALL_FORMATS = {"markdown": "epic-focused", "html": "html", "text": "text"}

SUBDIR_BY_FORMAT = {
    "html": "google-docs",
    "google-docs": "google-docs",
    "text": "plain-text",
    "plain-text": "plain-text",
}

CSV_COLUMNS = ["Key", "Summary", "Status", "Assignee", "Priority", "Type", "Created", "Updated", "Resolution"]


def progress_bar(value, width: int = 10) -> str:
    """Render a percentage as a fixed-width text bar: [=====     ]."""
    try:
        filled = int(value) * width // 100
    except (TypeError, ValueError):
        filled = 0
    filled = max(0, min(width, filled))
    return "[" + "=" * filled + " " * (width - filled) + "]"


class TemplateCache:
    """Compiled templates, loaded on first use."""

    def __init__(self, templates_dir: str = TEMPLATES_DIR):
        self.env = Environment(
            loader=FileSystemLoader(templates_dir),
            autoescape=select_autoescape(enabled_extensions=("html.j2",), default_for_string=False),
            trim_blocks=True,
            lstrip_blocks=True,
        )
        self.env.filters["progress_bar"] = progress_bar
        self._templates = {}

    def get(self, name: str):
        if name not in self._templates:
            logger.debug(f"Loading template {name}")
            self._templates[name] = self.env.get_template(name)
        return self._templates[name]


def describe_project(project: Optional[dict], default: str) -> str:
    if not project:
        return default
    if project.get("name"):
        return f"{project['key']} - {project['name']}"
    return project["key"]


def describe_team(project_info: str, boards: list, project: Optional[dict], default: str) -> str:
    if boards:
        if len(boards) == 1:
            return boards[0].get("name") or project_info
        return f"{project_info} ({len(boards)} teams)"
    if project:
        return project_info
    return default


def describe_boards(boards: list) -> str:
    if not boards:
        return ""
    if len(boards) == 1:
        return boards[0].get("name", "")
    return f"{len(boards)} boards: {', '.join(b.get('name', str(b.get('id'))) for b in boards)}"


class ReportGenerator:
    """Turns a list of NormalizedIssue into rendered reports."""

    def __init__(self, reports_dir: str = "reports", data_dir: str = "data",
                 team_name: str = DEFAULT_TEAM_NAME,
                 template_cache: Optional[TemplateCache] = None):
        self.reports_dir = reports_dir
        self.data_dir = data_dir
        self.team_name = team_name
        self.templates = template_cache or TemplateCache()

    @classmethod
    def from_settings(cls, settings) -> "ReportGenerator":
        return cls(settings.reports_dir, settings.data_dir, settings.team_name)

    def build_report_data(self, issues: list, velocity_samples: Optional[list] = None,
                          manual_input: Optional[dict] = None, project: Optional[dict] = None,
                          boards: Optional[list] = None, now: Optional[datetime] = None,
                          hierarchy_map: Optional[dict] = None,
                          component_name: Optional[str] = None,
                          fetch_hierarchy: Optional[Callable] = None,
                          weeks_back: int = 1) -> dict:
        """Run the categorize/group/aggregate pipeline and gather template data.

        Args:
            issues: List of NormalizedIssue
            velocity_samples: Per-period {weekEnding|sprint, completedCount, storyPoints}
            manual_input: Narrative sections from ManualInputStore
            project: {key, name} of the reported project
            boards: Selected boards ({id, name})
            now: Reference time, defaults to now (UTC)
            hierarchy_map: Pre-built hierarchy map; built from fetch_hierarchy when omitted
            component_name: Component filter shown in the header
            fetch_hierarchy: Epic key -> {epic, initiative, outcome} lookup
            weeks_back: Size of the reporting window in weeks

        Returns:
            JSON-serializable dict consumed by every template
        """
        now = now or datetime.now(timezone.utc)
        boards = boards or []
        velocity_samples = velocity_samples or []

        categorized = categorize(issues, now)
        grouping = group_by_parent(issues)

        if hierarchy_map is None and fetch_hierarchy is not None:
            hierarchy_map = build_hierarchy_map(grouping.epics_with_issues, fetch_hierarchy)

        project_info = describe_project(project, self.team_name)
        start = now - timedelta(weeks=weeks_back)

        epics = categorized.epics
        categorized_data = categorized.to_dict()

        return {
            "dateRange": f"{start.strftime('%b %d')} - {now.strftime('%b %d, %Y')}",
            "totalIssues": len(issues),
            "epicIssues": len(epics.completed) + len(epics.in_progress) + len(epics.new_issues),
            "subEpicIssues": len(categorized.sub_epic_items.all),
            "generatedOn": now.strftime("%Y-%m-%d %H:%M:%S"),
            "projectInfo": project_info,
            "teamName": describe_team(project_info, boards, project, self.team_name),
            "boardInfo": describe_boards(boards),
            "componentName": component_name,
            "velocity": calculate_velocity(velocity_samples),
            "manualInput": manual_input or {},
            "boards": boards,
            "multiBoard": len(boards) > 1,
            "subEpicTrends": summarize_trends(categorized, velocity_samples),
            "workBreakdown": calculate_work_breakdown(categorized),
            "epicsWithIssues": [group.to_dict() for group in grouping.epics_with_issues],
            "unassociatedIssues": [issue.to_dict() for issue in grouping.unassociated_issues],
            "hierarchyMap": hierarchy_map,
            "completed": categorized_data["epics"]["completed"],
            "inProgress": categorized_data["epics"]["inProgress"],
            "newIssues": categorized_data["epics"]["newIssues"],
            "needsAttention": categorized_data["needsAttention"],
            "categorized": categorized_data
        }

    def render(self, kind: str, data: dict) -> str:
        if kind not in REPORT_KINDS:
            raise ValueError(f"Unknown report kind: {kind}")
        template_name = REPORT_KINDS[kind][0]
        return self.templates.get(template_name).render(**data)

    def generate(self, kind: str, issues: list, **kwargs) -> str:
        """Build the report data and render one report kind."""
        data = self.build_report_data(issues, **kwargs)
        return self.render(kind, data)

    def generate_all_formats(self, issues: list, **kwargs) -> dict:
        """Render the Markdown, HTML and plain-text reports from one data build."""
        logger.info("Generating multiple report formats")
        data = self.build_report_data(issues, **kwargs)
        return {fmt: self.render(kind, data) for fmt, kind in ALL_FORMATS.items()}

    @staticmethod
    def report_filename(kind: str, project_key: Optional[str] = None,
                        now: Optional[datetime] = None) -> str:
        now = now or datetime.now(timezone.utc)
        extension = REPORT_KINDS[kind][2] if kind in REPORT_KINDS else "md"
        suffix = f"-{project_key}" if project_key else ""
        return f"{kind}-report{suffix}-{now.strftime('%Y-%m-%d')}.{extension}"

    def save_report(self, content: str, filename: str, kind: str = "markdown") -> str:
        """Write a rendered report under reports/{markdown|google-docs|plain-text}/."""
        subdir = SUBDIR_BY_FORMAT.get(kind)
        if subdir is None and kind in REPORT_KINDS:
            subdir = REPORT_KINDS[kind][1]
        format_dir = os.path.join(self.reports_dir, subdir or "markdown")
        os.makedirs(format_dir, exist_ok=True)

        filepath = os.path.join(format_dir, filename)
        with open(filepath, "w", encoding="utf-8") as f:
            f.write(content)
        logger.info(f"Report saved to {filepath}")
        return filepath

    def write_reports(self, data: dict, kinds: list, project_key: Optional[str] = None,
                      now: Optional[datetime] = None) -> dict:
        """Render and save several report kinds from one data build.

        Returns:
            Dict mapping kind to saved file path
        """
        saved = {}
        for kind in kinds:
            content = self.render(kind, data)
            filename = self.report_filename(kind, project_key, now)
            saved[kind] = self.save_report(content, filename, kind)
        return saved

    def export_data(self, issues: list, velocity_samples: Optional[list] = None,
                    fmt: str = "json", project_suffix: str = "",
                    now: Optional[datetime] = None) -> str:
        """Export issues to data/ as JSON (with velocity summary) or CSV.

        Returns:
            Path of the written file
        """
        if fmt not in ("json", "csv"):
            raise ValueError(f"Unsupported export format: {fmt}")

        now = now or datetime.now(timezone.utc)
        os.makedirs(self.data_dir, exist_ok=True)
        timestamp = now.strftime("%Y-%m-%d")
        suffix = f"-{project_suffix}" if project_suffix else ""
        velocity_samples = velocity_samples or []

        if fmt == "json":
            data = {
                "exportDate": now.isoformat(),
                "issues": [issue.to_dict() for issue in issues],
                "velocityData": velocity_samples,
                "summary": {
                    "totalIssues": len(issues),
                    "averageVelocity": calculate_velocity(velocity_samples)["average"]
                }
            }
            filepath = os.path.join(self.data_dir, f"jira-export{suffix}-{timestamp}.json")
            with open(filepath, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2)
            return filepath

        filepath = os.path.join(self.data_dir, f"jira-issues{suffix}-{timestamp}.csv")
        with open(filepath, "w", newline="", encoding="utf-8") as f:
            writer = csv.writer(f, quoting=csv.QUOTE_ALL)
            writer.writerow(CSV_COLUMNS)
            for issue in issues:
                writer.writerow([
                    issue.key,
                    issue.summary,
                    issue.status,
                    issue.assignee or "",
                    issue.priority,
                    issue.issue_type or "",
                    issue.created.isoformat() if issue.created else "",
                    issue.updated.isoformat() if issue.updated else "",
                    issue.resolution or ""
                ])
        return filepath


def list_reports(reports_dir: str) -> list:
    """List saved report files, newest first."""
    reports = []
    if not os.path.isdir(reports_dir):
        return reports

    for root, _, files in os.walk(reports_dir):
        for name in files:
            path = os.path.join(root, name)
            stat = os.stat(path)
            reports.append({
                "name": name,
                "subdir": os.path.relpath(root, reports_dir),
                "path": path,
                "size": stat.st_size,
                "modified": datetime.fromtimestamp(stat.st_mtime, timezone.utc).isoformat()
            })

    reports.sort(key=lambda r: r["modified"], reverse=True)
    return reports
