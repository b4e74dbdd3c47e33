"""Report generation and report file endpoints."""

import os

from flask import Blueprint, abort, current_app, request, jsonify, send_from_directory
import requests

from app.api.common import (
    get_jira_client,
    get_report_generator,
    get_settings,
    missing_credentials,
    upstream_error,
)
from services.manual_input import ManualInputStore
from services.report_generator import ALL_FORMATS, REPORT_KINDS, list_reports
from services.selection import SelectionStore

bp = Blueprint("reports", __name__, url_prefix="/api/reports")

REPORT_SUBDIRS = {"markdown", "google-docs", "plain-text", "dashboard"}


def resolve_target(client, project_key=None, board_ids=None):
    """Work out the project and boards for a run.

    Falls back to the saved selection, then to the first configured project
    key. Board names come from the saved selection when known, else from Jira.
    The saved issues-mode filter applies only when the saved project is the
    one being reported.

    Returns:
        Tuple of (project dict or None, list of board dicts, filter dict or None)
    """
    settings = get_settings()
    saved = SelectionStore(settings.selection_path).load()
    saved_project = saved.get("project") or {}

    key = project_key or saved_project.get("key") or next(iter(settings.project_keys), None)
    if not key:
        return None, [], None

    if saved_project.get("key") == key:
        project = saved_project
        issue_filter = saved.get("issuesFilter")
    else:
        project = {"key": key}
        issue_filter = None

    if board_ids is None:
        board_ids = [b["id"] for b in saved.get("boards", [])] if project is saved_project else settings.board_ids

    known = {str(b.get("id")): b for b in saved.get("boards", [])}
    boards = []
    for board_id in board_ids:
        board = known.get(str(board_id))
        if board is None:
            try:
                board = client.get_board(board_id)
            except requests.exceptions.RequestException as e:
                current_app.logger.warning(f"Could not look up board {board_id}: {e}")
                board = {"id": board_id, "name": f"Board {board_id}"}
        boards.append(board)

    return project, boards, issue_filter


def parse_kinds(formats):
    """Map requested formats to report kinds; "all" expands to every saved format."""
    if not formats:
        return ["epic-focused"]
    if isinstance(formats, str):
        formats = [formats]
    kinds = []
    for fmt in formats:
        for kind in (ALL_FORMATS.values() if fmt == "all" else [fmt]):
            if kind not in REPORT_KINDS:
                raise ValueError(f"Unknown report format: {kind}")
            if kind not in kinds:
                kinds.append(kind)
    return kinds


@bp.route("/generate", methods=["POST"])
def generate_report():
    """Generate and save reports synchronously.

    Expects JSON body with optional fields:
        - projectKey: Project to report on (defaults to saved selection)
        - boardIds: Board IDs to pull issues from
        - weeksBack: Look-back window in weeks
        - velocityPeriods: Number of weekly throughput samples
        - formats: List of epic-focused, weekly-summary, html, text or "all"
        - includeManualInput: Include the saved manual input (default true)
        - issuesFilter: Issues-mode filter (issueTypes, statuses, resolution, component,
          dateRange), defaults to the one saved with the selected project
    """
    data = request.get_json(silent=True) or {}
    settings = get_settings()

    client = get_jira_client()
    if client is None:
        return missing_credentials()

    try:
        kinds = parse_kinds(data.get("formats"))
        weeks_back = int(data.get("weeksBack") or settings.weeks_back)
        periods = int(data.get("velocityPeriods") or settings.velocity_periods)
    except (TypeError, ValueError) as e:
        return jsonify({"error": str(e)}), 400

    try:
        project, boards, saved_filter = resolve_target(client, data.get("projectKey"), data.get("boardIds"))
        if project is None:
            return jsonify({"error": "No project selected"}), 400

        issue_filter = data.get("issuesFilter") or saved_filter

        issues = client.fetch_report_issues(project["key"], boards, weeks_back, issue_filter)
        samples = client.get_velocity_samples([project["key"]], periods)

        manual_input = None
        if data.get("includeManualInput", True):
            manual_input = ManualInputStore(settings.manual_input_path).load()

        generator = get_report_generator()
        report_data = generator.build_report_data(
            issues, samples, manual_input, project, boards,
            component_name=(issue_filter or {}).get("component"),
            fetch_hierarchy=client.fetch_epic_hierarchy if "epic-focused" in kinds else None,
            weeks_back=weeks_back
        )
        saved = generator.write_reports(report_data, kinds, project["key"])
    except requests.exceptions.RequestException as e:
        return upstream_error(e)

    return jsonify({
        "data": {
            "projectKey": project["key"],
            "totalIssues": len(issues),
            "files": saved
        }
    })


@bp.route("", methods=["GET"])
def get_reports():
    """List saved reports, newest first."""
    reports_dir = get_settings().reports_dir
    reports = list_reports(reports_dir)
    for report in reports:
        report.pop("path", None)
    return jsonify({"data": reports})


@bp.route("/files/<subdir>/<path:filename>", methods=["GET"])
def get_report_file(subdir, filename):
    """Serve one saved report file."""
    if subdir not in REPORT_SUBDIRS:
        abort(404)
    directory = os.path.abspath(os.path.join(get_settings().reports_dir, subdir))
    return send_from_directory(directory, filename)
