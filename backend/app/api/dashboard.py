"""Web dashboard and analytics endpoints."""

from flask import Blueprint, redirect, request, jsonify, url_for
import requests

from app.api.common import (
    get_int_arg,
    get_jira_client,
    get_report_generator,
    get_settings,
    missing_credentials,
    upstream_error,
)
from app.api.reports import resolve_target

bp = Blueprint("dashboard", __name__)


def build_analytics():
    """Fetch and aggregate the dashboard data.

    Returns:
        Tuple of (report data dict, None) or (None, error response)
    """
    client = get_jira_client()
    if client is None:
        return None, missing_credentials()

    settings = get_settings()
    weeks = get_int_arg("weeks", settings.weeks_back)
    periods = get_int_arg("periods", settings.velocity_periods)

    try:
        project, boards, issue_filter = resolve_target(client, request.args.get("project"))
        if project is None:
            return None, (jsonify({"error": "No project selected"}), 400)

        issues = client.fetch_report_issues(project["key"], boards, weeks, issue_filter)
        samples = client.get_velocity_samples([project["key"]], periods)
    except requests.exceptions.RequestException as e:
        return None, upstream_error(e)

    generator = get_report_generator()
    data = generator.build_report_data(
        issues, samples, None, project, boards,
        component_name=(issue_filter or {}).get("component"),
        weeks_back=weeks
    )
    return data, None


@bp.route("/")
def index():
    return redirect(url_for("dashboard.dashboard"))


@bp.route("/dashboard")
def dashboard():
    """Render the HTML dashboard."""
    data, error = build_analytics()
    if error:
        return error

    generator = get_report_generator()
    return generator.render("dashboard", data)


@bp.route("/api/analytics")
def analytics():
    """Same data as the dashboard, as JSON."""
    data, error = build_analytics()
    if error:
        return error
    return jsonify({"data": data})
