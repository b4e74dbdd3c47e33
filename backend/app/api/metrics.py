"""Project metrics API endpoints."""

from flask import Blueprint, request, jsonify
import requests

from app.api.common import (
    get_int_arg,
    get_jira_client,
    get_settings,
    missing_credentials,
    upstream_error,
)
from services.categorization import categorize
from services.hierarchy import group_by_parent
from services.trends import calculate_velocity, calculate_work_breakdown, summarize_trends

bp = Blueprint("metrics", __name__, url_prefix="/api/metrics")


def get_board_ids():
    """Get optional board IDs from the comma-separated `boards` query param."""
    boards = request.args.get("boards", "")
    return [b.strip() for b in boards.split(",") if b.strip()]


@bp.route("/<project_key>/velocity", methods=["GET"])
def get_velocity(project_key):
    """Get weekly throughput and velocity for a project.

    Query params:
        - periods: Number of weeks to include (default: VELOCITY_SPRINTS_COUNT)

    Returns:
        - average, unit, trend and per-period data
        - the raw weekly samples
    """
    client = get_jira_client()
    if client is None:
        return missing_credentials()

    periods = get_int_arg("periods", get_settings().velocity_periods)

    try:
        samples = client.get_throughput_data([project_key], periods)
    except requests.exceptions.RequestException as e:
        return upstream_error(e)

    velocity = calculate_velocity(samples)
    velocity["samples"] = samples
    return jsonify({"data": velocity})


@bp.route("/<project_key>/summary", methods=["GET"])
def get_summary(project_key):
    """Get categorized counts, trends and Epic grouping for recent work.

    Query params:
        - weeks: Look-back window in weeks (default: REPORT_WEEKS_BACK)
        - boards: Optional comma-separated board IDs
    """
    client = get_jira_client()
    if client is None:
        return missing_credentials()

    weeks = get_int_arg("weeks", get_settings().weeks_back)
    boards = [{"id": board_id} for board_id in get_board_ids()]

    try:
        issues = client.fetch_report_issues(project_key, boards, weeks)
    except requests.exceptions.RequestException as e:
        return upstream_error(e)

    categorized = categorize(issues)

    return jsonify({
        "data": {
            "projectKey": project_key,
            "weeks": weeks,
            "totalIssues": len(issues),
            "counts": {
                "completed": len(categorized.completed),
                "inProgress": len(categorized.in_progress),
                "newIssues": len(categorized.new_issues),
                "needsAttention": len(categorized.needs_attention)
            },
            "trends": summarize_trends(categorized),
            "workBreakdown": calculate_work_breakdown(categorized),
            "epicGrouping": group_by_parent(issues).to_dict()
        }
    })
