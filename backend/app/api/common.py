"""Helpers shared by the API blueprints."""

from flask import current_app, jsonify, request
import requests

from services.config import Settings
from services.jira_client import JiraClient
from services.report_generator import ReportGenerator


def get_settings() -> Settings:
    return current_app.config["SETTINGS"]


def get_jira_credentials():
    """Extract Jira credentials from request headers, falling back to settings.

    Returns:
        Tuple of (server, email, token); all None when no token is available
    """
    settings = get_settings()
    server = (request.headers.get("X-Jira-Server") or settings.jira_base_url or "").rstrip("/")
    token = request.headers.get("X-Jira-Token") or settings.jira_api_token
    email = request.headers.get("X-Jira-Email") or settings.jira_email

    if not all([server, token]):
        return None, None, None

    return server, email, token


def get_jira_client():
    """Build a JiraClient for this request, or None without credentials."""
    server, email, token = get_jira_credentials()
    if not server:
        return None

    settings = get_settings()
    return JiraClient(
        server, token, email=email,
        epic_link_field=settings.epic_link_field,
        request_delay=current_app.config.get("JIRA_REQUEST_DELAY", 0.25)
    )


def missing_credentials():
    return jsonify({"error": "Missing Jira credentials in headers"}), 401


def upstream_error(e: Exception):
    """Translate a failed Jira call into a JSON error response."""
    if isinstance(e, requests.exceptions.Timeout):
        return jsonify({"error": "Connection to Jira timed out"}), 504
    if isinstance(e, requests.exceptions.HTTPError) and e.response is not None:
        status = e.response.status_code
        if status in (401, 403, 404):
            return jsonify({"error": f"Jira API error: {status}"}), status
    current_app.logger.error(f"Jira request failed: {e}")
    return jsonify({"error": f"Failed to connect to Jira: {str(e)}"}), 500


def get_int_arg(name: str, default: int) -> int:
    """Read a positive integer query param, falling back to the default."""
    value = request.args.get(name, default, type=int)
    return value if value and value > 0 else default


def get_report_generator():
    """ReportGenerator sharing the app's template cache."""
    settings = get_settings()
    return ReportGenerator(
        settings.reports_dir,
        settings.data_dir,
        settings.team_name,
        template_cache=current_app.config["TEMPLATE_CACHE"]
    )
