"""Weekly timetable routes."""

from __future__ import annotations

from flask import Blueprint, jsonify

from helpers import json_body, missing_user
from storage import get_storage
from validation import ValidationError, parse_new_timetable, parse_schedule

bp = Blueprint("timetable", __name__)


@bp.route("/api/timetable/<user_id>")
def api_get_timetable(user_id):
    timetable = get_storage().get_user_timetable(user_id)
    return jsonify(timetable.to_dict() if timetable else None)


@bp.route("/api/timetable", methods=["POST"])
def api_create_timetable():
    store = get_storage()
    new_timetable = parse_new_timetable(json_body())
    if missing_user(store, new_timetable.user_id):
        return jsonify({"error": "User not found"}), 404
    if store.get_user_timetable(new_timetable.user_id):
        return jsonify({"error": "Timetable already exists"}), 409
    return jsonify(store.create_timetable(new_timetable).to_dict()), 201


@bp.route("/api/timetable/<user_id>", methods=["PUT"])
def api_update_timetable(user_id):
    data = json_body()
    if "schedule" not in data:
        raise ValidationError("schedule is required.")
    timetable = get_storage().update_timetable(user_id, parse_schedule(data["schedule"]))
    if not timetable:
        return jsonify({"error": "Timetable not found"}), 404
    return jsonify(timetable.to_dict())
