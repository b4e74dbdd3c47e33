"""Saved project/board selection endpoints."""

from flask import Blueprint, request, jsonify

from app.api.common import get_settings
from services.selection import SelectionStore

bp = Blueprint("selection", __name__, url_prefix="/api/selection")


def _store():
    return SelectionStore(get_settings().selection_path)


@bp.route("", methods=["GET"])
def get_selection():
    """Get the saved project and boards (empty object when none)."""
    return jsonify({"data": _store().load()})


@bp.route("", methods=["POST"])
def save_selection():
    """Save the project and boards used for reports.

    Expects JSON body with:
        - project: { key, name }
        - boards: Optional list of { id, name }
        - issuesFilter: Optional issues-mode filter
    """
    data = request.get_json(silent=True)

    if not data:
        return jsonify({"error": "Missing request body"}), 400

    try:
        selection = _store().save(
            data.get("project"),
            data.get("boards"),
            data.get("issuesFilter")
        )
    except ValueError as e:
        return jsonify({"error": str(e)}), 400

    return jsonify({"data": selection})
