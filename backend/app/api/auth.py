"""Authentication API endpoints."""

from flask import Blueprint, current_app, request, jsonify
import requests

from app.api.common import get_settings, upstream_error
from services.jira_client import JiraClient

bp = Blueprint("auth", __name__, url_prefix="/api/auth")


@bp.route("/validate", methods=["POST"])
def validate_token():
    """Validate a Jira API token by fetching the current user.

    Expects JSON body with:
        - server: Jira server URL (defaults to JIRA_BASE_URL)
        - token: Jira API token (personal access token or Cloud API token)
        - email: Optional Jira email; when given, basic auth is used

    Returns user info on success.
    """
    data = request.get_json(silent=True)

    if not data:
        return jsonify({"error": "Missing request body"}), 400

    settings = get_settings()
    server = (data.get("server") or settings.jira_base_url or "").rstrip("/")
    email = data.get("email")
    token = data.get("token")

    if not all([server, token]):
        return jsonify({"error": "Missing required fields: server, token"}), 400

    client = JiraClient(server, token, email=email,
                        request_delay=current_app.config.get("JIRA_REQUEST_DELAY", 0.25))

    try:
        user_info = client.validate_token()
    except requests.exceptions.RequestException as e:
        return upstream_error(e)

    if user_info is None:
        return jsonify({"error": "Invalid credentials"}), 401

    return jsonify({
        "data": {
            "valid": True,
            "user": {
                "name": user_info.get("name") or user_info.get("accountId"),
                "displayName": user_info.get("displayName"),
                "emailAddress": user_info.get("emailAddress"),
                "avatarUrl": user_info.get("avatarUrls", {}).get("48x48")
            }
        }
    })
