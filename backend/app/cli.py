"""Command line interface: status-builder."""

import json
import logging
import sys

import click
import requests

from services.config import Settings
from services.hierarchy import ancestry_lookup
from services.issue_normalizer import normalize_all
from services.jira_client import JiraClient
from services.manual_input import ManualInputStore
from services.report_generator import ALL_FORMATS, ReportGenerator
from services.selection import SelectionStore

logger = logging.getLogger(__name__)

REPORT_FORMATS = ["epic-focused", "weekly-summary", "html", "text", "all"]

pass_settings = click.make_pass_decorator(Settings)


def make_client(settings: Settings) -> JiraClient:
    if not settings.has_credentials:
        raise click.ClickException("JIRA_API_TOKEN is not set (add it to the environment or a .env file)")
    return JiraClient.from_settings(settings)


def resolve_project(settings: Settings, client, project_key=None, board_ids=()):
    """Pick the project and boards for a run.

    Explicit options win, then the saved selection, then JIRA_PROJECT_KEYS
    and JIRA_BOARD_IDS. Returns (project, boards, issues filter); the filter
    is the saved one when the saved project is picked, else None.
    """
    saved = SelectionStore(settings.selection_path).load()
    saved_project = saved.get("project") or {}

    key = project_key or saved_project.get("key") or next(iter(settings.project_keys), None)
    if not key:
        raise click.ClickException("No project given; use --project or run 'status-builder select'")

    if saved_project.get("key") == key:
        project = saved_project
        saved_boards = saved.get("boards", [])
        issue_filter = saved.get("issuesFilter")
    else:
        project = {"key": key}
        saved_boards = []
        issue_filter = None

    if board_ids:
        known = {str(b.get("id")): b for b in saved_boards}
        boards = []
        for board_id in board_ids:
            board = known.get(str(board_id))
            if board is None:
                try:
                    board = client.get_board(board_id)
                except requests.exceptions.RequestException as e:
                    logger.warning(f"Could not look up board {board_id}: {e}")
                    board = {"id": board_id, "name": f"Board {board_id}"}
            boards.append(board)
    elif saved_boards:
        boards = saved_boards
    else:
        boards = [{"id": board_id, "name": f"Board {board_id}"} for board_id in settings.board_ids]

    return project, boards, issue_filter


def load_offline_issues(path: str, settings: Settings):
    """Read issues (and optional velocity samples) from a JSON dump.

    Accepts a list of raw issues, a search response ({"issues": [...]}) or an
    earlier export ({"issues": [...], "velocityData": [...]}).
    """
    try:
        with open(path, "r") as f:
            payload = json.load(f)
    except (json.JSONDecodeError, IOError) as e:
        raise click.ClickException(f"Could not read {path}: {e}")

    samples = []
    if isinstance(payload, dict):
        samples = payload.get("velocityData") or []
        payload = payload.get("issues", [])
    if not isinstance(payload, list):
        raise click.ClickException(f"{path} does not contain a list of issues")

    return normalize_all(payload, settings.jira_base_url, settings.epic_link_field), samples


@click.group()
@click.option("--log", "log_level", default="WARNING",
              type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
              help="Logging level")
@click.option("--env-file", type=click.Path(dir_okay=False), default=None,
              help="Read settings from this .env file")
@click.pass_context
def cli(ctx, log_level, env_file):
    """Build weekly Jira status reports."""
    logging.basicConfig(
        level=getattr(logging, log_level.upper()),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr
    )
    if ctx.obj is None:
        ctx.obj = Settings.from_env(env_file)


@cli.command()
@click.option("--project", "project_key", help="Project key (defaults to the saved selection)")
@click.option("--board", "board_ids", multiple=True, help="Board ID, repeatable")
@click.option("--weeks", type=click.IntRange(min=1), default=None, help="Weeks to look back")
@click.option("--velocity-periods", type=click.IntRange(min=1), default=None,
              help="Number of weekly throughput samples")
@click.option("--format", "fmt", type=click.Choice(REPORT_FORMATS), default="epic-focused",
              show_default=True)
@click.option("--include-manual-input/--no-manual-input", default=True, show_default=True)
@click.option("--offline", type=click.Path(exists=True, dir_okay=False),
              help="Build the report from a JSON file instead of querying Jira")
@pass_settings
def report(settings, project_key, board_ids, weeks, velocity_periods, fmt,
           include_manual_input, offline):
    """Generate and save a status report."""
    weeks = weeks or settings.weeks_back
    periods = velocity_periods or settings.velocity_periods
    kinds = list(ALL_FORMATS.values()) if fmt == "all" else [fmt]

    fetch_hierarchy = None
    issue_filter = None
    if offline:
        issues, samples = load_offline_issues(offline, settings)
        key = project_key or next(iter(settings.project_keys), None)
        project = {"key": key} if key else None
        boards = []
        fetch_hierarchy = ancestry_lookup(issues)
    else:
        client = make_client(settings)
        try:
            project, boards, issue_filter = resolve_project(settings, client, project_key, board_ids)
            click.echo(f"Fetching issues for {project['key']}...")
            issues = client.fetch_report_issues(project["key"], boards, weeks, issue_filter)
            samples = client.get_velocity_samples([project["key"]], periods)
        except requests.exceptions.RequestException as e:
            raise click.ClickException(f"Jira request failed: {e}")
        if "epic-focused" in kinds:
            fetch_hierarchy = client.fetch_epic_hierarchy

    manual_input = None
    if include_manual_input:
        manual_input = ManualInputStore(settings.manual_input_path).load()

    generator = ReportGenerator.from_settings(settings)
    data = generator.build_report_data(
        issues, samples, manual_input, project, boards,
        component_name=(issue_filter or {}).get("component"),
        fetch_hierarchy=fetch_hierarchy,
        weeks_back=weeks
    )
    saved = generator.write_reports(data, kinds, project["key"] if project else None)

    click.echo(f"Processed {len(issues)} issues")
    for kind, path in saved.items():
        click.echo(f"  {kind}: {path}")


@cli.command()
@click.option("--jql", help="JQL query (defaults to the recent issues of the project)")
@click.option("--project", "project_key", help="Project key (defaults to the saved selection)")
@click.option("--weeks", type=click.IntRange(min=1), default=None, help="Weeks to look back")
@click.option("--format", "fmt", type=click.Choice(["json", "csv"]), default="json", show_default=True)
@pass_settings
def export(settings, jql, project_key, weeks, fmt):
    """Export issues to the data directory as JSON or CSV."""
    client = make_client(settings)
    weeks = weeks or settings.weeks_back

    try:
        if jql:
            suffix = project_key or ""
            project_keys = [project_key] if project_key else settings.project_keys
        else:
            project, _, issue_filter = resolve_project(settings, client, project_key)
            suffix = project["key"]
            project_keys = [project["key"]]
            if issue_filter:
                jql = client.build_issues_jql(issue_filter, project["key"])
            else:
                jql = client.build_jql(project_keys, weeks_back=weeks)

        issues = client.search_issues(jql)
        samples = client.get_velocity_samples(project_keys, settings.velocity_periods) if project_keys else []
    except requests.exceptions.RequestException as e:
        raise click.ClickException(f"Jira request failed: {e}")

    generator = ReportGenerator.from_settings(settings)
    path = generator.export_data(issues, samples, fmt, project_suffix=suffix)
    click.echo(f"Exported {len(issues)} issues to {path}")


@cli.command()
@click.argument("jql")
@click.option("--max-results", type=click.IntRange(min=1), default=50, show_default=True)
@click.option("--plain", "output", flag_value="plain", help="One line per issue")
@click.option("--raw", "output", flag_value="raw", help="Raw Jira payloads as JSON")
@pass_settings
def query(settings, jql, max_results, output):
    """Run a JQL query and print the matching issues."""
    client = make_client(settings)
    try:
        if output == "raw":
            click.echo(json.dumps(client.search_raw(jql, max_results), indent=2))
            return
        issues = client.search_issues(jql, max_results)
    except requests.exceptions.RequestException as e:
        raise click.ClickException(f"Jira request failed: {e}")

    if output == "plain":
        for issue in issues:
            click.echo(f"{issue.key}\t{issue.status}\t{issue.assignee or 'Unassigned'}\t{issue.summary}")
    else:
        click.echo(json.dumps([issue.to_dict() for issue in issues], indent=2))


@cli.command()
@click.option("--project", "project_key", help="Project key")
@click.option("--board", "board_ids", multiple=True, help="Board ID, repeatable")
@click.option("--component", help="Issues mode: only this component")
@click.option("--status", "statuses", multiple=True, help="Issues mode: status, repeatable")
@click.option("--issue-type", "issue_types", multiple=True, help="Issues mode: issue type, repeatable")
@click.option("--days", type=click.IntRange(min=1), default=None,
              help="Issues mode: look back this many days (default 7)")
@pass_settings
def select(settings, project_key, board_ids, component, statuses, issue_types, days):
    """Save the project and boards used by later runs.

    Prompts for whatever is not given on the command line. Any issues-mode
    option switches later runs to a filtered project search.
    """
    client = make_client(settings)
    try:
        if not project_key:
            projects = client.get_projects()
            for project in projects:
                click.echo(f"  {project['key']}\t{project['name']}")
            project_key = click.prompt("Project key").strip()
        project = {"key": project_key}

        available = client.get_boards_for_project(project_key)
        if not board_ids and available:
            for board in available:
                click.echo(f"  {board['id']}\t{board['name']}")
            answer = click.prompt("Board IDs (comma separated, blank for none)", default="", show_default=False)
            board_ids = [b.strip() for b in answer.split(",") if b.strip()]
    except requests.exceptions.RequestException as e:
        raise click.ClickException(f"Jira request failed: {e}")

    by_id = {str(b["id"]): b for b in available}
    boards = []
    for board_id in board_ids:
        board = by_id.get(str(board_id))
        if board is None:
            raise click.ClickException(f"Board {board_id} does not belong to {project_key}")
        boards.append({"id": board["id"], "name": board["name"]})

    issue_filter = {}
    if component:
        issue_filter["component"] = component
    if statuses:
        issue_filter["statuses"] = list(statuses)
    if issue_types:
        issue_filter["issueTypes"] = list(issue_types)
    if days:
        issue_filter["dateRange"] = days
    if issue_filter:
        issue_filter.setdefault("dateRange", 7)

    selection = SelectionStore(settings.selection_path).save(project, boards, issue_filter)
    names = ", ".join(b["name"] for b in selection["boards"]) or "all boards"
    click.echo(f"Selected {project_key} ({names})")
    if issue_filter:
        click.echo(f"Issues mode: {json.dumps(issue_filter)}")


@cli.command("input")
@click.option("--from-file", type=click.Path(exists=True, dir_okay=False),
              help="Merge sections from a JSON file instead of prompting")
@pass_settings
def manual_input(settings, from_file):
    """Collect the narrative sections of the report."""
    store = ManualInputStore(settings.manual_input_path)

    if from_file:
        try:
            store.update_from_file(from_file)
        except ValueError as e:
            raise click.ClickException(str(e))
        click.echo(f"Manual input updated from {from_file}")
        return

    current = store.load()
    answers = {}
    section_shown = None
    for section, field, prompt in store.sections():
        if section != section_shown:
            click.echo(f"\n{section}")
            section_shown = section
        existing = current.get(section, {}).get(field, "")
        answers[(section, field)] = click.prompt(
            f"  {prompt}", default=existing, show_default=bool(existing)
        )

    store.apply_answers(answers)
    click.echo(f"Manual input saved to {store.path}")


@cli.command()
@pass_settings
def validate(settings):
    """Check that the configured Jira credentials work."""
    client = make_client(settings)
    try:
        user = client.validate_token()
    except requests.exceptions.RequestException as e:
        raise click.ClickException(f"Could not reach Jira: {e}")

    if user is None:
        raise click.ClickException("Jira rejected the credentials")
    name = user.get("displayName") or user.get("name")
    click.echo(f"Connected to {settings.jira_base_url} as {name}")


@cli.command()
@click.option("--host", default="127.0.0.1", show_default=True)
@click.option("--port", type=int, default=5000, show_default=True)
@click.option("--debug", is_flag=True)
@pass_settings
def serve(settings, host, port, debug):
    """Run the web dashboard and JSON API."""
    from app import create_app

    app = create_app(settings)
    app.run(host=host, port=port, debug=debug)


if __name__ == "__main__":
    cli()
