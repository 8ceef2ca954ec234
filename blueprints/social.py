"""Peer connections and direct messages."""

from __future__ import annotations

import logging

from flask import Blueprint, jsonify
from flask_login import login_required

from helpers import current_user_id, json_body, missing_user
from storage import get_storage
from validation import parse_connection_status, parse_new_connection, parse_new_message

logger = logging.getLogger(__name__)

bp = Blueprint("social", __name__)


# ── Connections ──────────────────────────────────────────

@bp.route("/api/connections/<user_id>")
def api_list_connections(user_id):
    return jsonify([c.to_dict() for c in get_storage().get_connections(user_id)])


@bp.route("/api/connections", methods=["POST"])
def api_create_connection():
    store = get_storage()
    new_connection = parse_new_connection(json_body())
    if missing_user(store, new_connection.requester_id, new_connection.receiver_id):
        return jsonify({"error": "User not found"}), 404
    connection = store.create_connection(new_connection)
    logger.info("connection %s: %s -> %s", connection.id, connection.requester_id, connection.receiver_id)
    return jsonify(connection.to_dict()), 201


@bp.route("/api/connections/<connection_id>/status", methods=["PUT"])
@login_required
def api_update_connection_status(connection_id):
    store = get_storage()
    existing = store.get_connection(connection_id)
    if not existing:
        return jsonify({"error": "Connection not found"}), 404
    if current_user_id() != existing.receiver_id:
        return jsonify({"error": "Only the receiver can respond to this connection request"}), 403
    status = parse_connection_status(json_body().get("status"))
    connection = store.update_connection_status(connection_id, status)
    logger.info("connection %s marked %s", connection.id, connection.status)
    return jsonify(connection.to_dict())


# ── Messages ─────────────────────────────────────────────

@bp.route("/api/messages/<user_a>/<user_b>")
def api_conversation(user_a, user_b):
    return jsonify([m.to_dict() for m in get_storage().get_messages(user_a, user_b)])


@bp.route("/api/messages", methods=["POST"])
def api_send_message():
    store = get_storage()
    new_message = parse_new_message(json_body())
    if missing_user(store, new_message.sender_id, new_message.receiver_id):
        return jsonify({"error": "User not found"}), 404
    return jsonify(store.create_message(new_message).to_dict()), 201
