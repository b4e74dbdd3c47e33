"""Manual report input endpoints."""

from flask import Blueprint, request, jsonify

from app.api.common import get_settings
from services.manual_input import ManualInputStore

bp = Blueprint("manual_input", __name__, url_prefix="/api/manual-input")


@bp.route("", methods=["GET"])
def get_manual_input():
    store = ManualInputStore(get_settings().manual_input_path)
    return jsonify({"data": store.load()})


@bp.route("", methods=["POST"])
def save_manual_input():
    """Merge the posted sections into the saved manual input."""
    data = request.get_json(silent=True)

    if not data or not isinstance(data, dict):
        return jsonify({"error": "Missing request body"}), 400

    store = ManualInputStore(get_settings().manual_input_path)
    return jsonify({"data": store.update(data)})
