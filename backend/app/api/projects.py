"""Project and board API endpoints."""

from flask import Blueprint, jsonify
import requests

from app.api.common import get_jira_client, missing_credentials, upstream_error

bp = Blueprint("projects", __name__, url_prefix="/api/projects")


@bp.route("", methods=["GET"])
def list_projects():
    """List the projects visible to the user.

    Requires headers (or configured settings):
        - X-Jira-Server: Jira server URL
        - X-Jira-Token: Jira API token
        - X-Jira-Email: Optional Jira email
    """
    client = get_jira_client()
    if client is None:
        return missing_credentials()

    try:
        projects = client.get_projects()
    except requests.exceptions.RequestException as e:
        return upstream_error(e)

    projects.sort(key=lambda p: p.get("key") or "")
    return jsonify({"data": projects})


@bp.route("/<project_key>/boards", methods=["GET"])
def list_boards(project_key):
    """List the boards attached to a project."""
    client = get_jira_client()
    if client is None:
        return missing_credentials()

    try:
        boards = client.get_boards_for_project(project_key)
    except requests.exceptions.RequestException as e:
        return upstream_error(e)

    return jsonify({"data": boards})
