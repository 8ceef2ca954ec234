"""Peer directory and profile editing routes."""

from __future__ import annotations

from flask import Blueprint, jsonify
from flask_login import login_required

from helpers import current_user_id, json_body
from storage import get_storage
from validation import parse_user_update

bp = Blueprint("users", __name__)


@bp.route("/api/users")
def api_list_users():
    return jsonify([u.to_public() for u in get_storage().list_users()])


@bp.route("/api/users/<user_id>")
def api_get_user(user_id):
    user = get_storage().get_user(user_id)
    if not user:
        return jsonify({"error": "User not found"}), 404
    return jsonify(user.to_public())


@bp.route("/api/users/<user_id>", methods=["PATCH"])
@login_required
def api_update_user(user_id):
    if current_user_id() != user_id:
        return jsonify({"error": "You can only edit your own profile"}), 403
    update = parse_user_update(json_body())
    user = get_storage().update_user(user_id, update)
    if not user:
        return jsonify({"error": "User not found"}), 404
    return jsonify(user.to_public())
