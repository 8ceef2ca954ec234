"""Study-buddy request routes: browse, post, and manage your own requests."""

from __future__ import annotations

import logging

from flask import Blueprint, jsonify, request
from flask_login import login_required

from helpers import current_user_id, enrich_request, json_body, missing_user
from models import StudyBuddyFilter
from storage import get_storage
from validation import parse_new_study_buddy_request, parse_study_buddy_update

logger = logging.getLogger(__name__)

bp = Blueprint("buddies", __name__)


@bp.route("/api/study-buddies")
def api_list_requests():
    store = get_storage()
    filters = StudyBuddyFilter(
        subject=request.args.get("subject"),
        topic=request.args.get("topic"),
        location=request.args.get("location"),
    )
    return jsonify([enrich_request(store, r) for r in store.get_study_buddy_requests(filters)])


@bp.route("/api/study-buddies", methods=["POST"])
def api_create_request():
    store = get_storage()
    new_request = parse_new_study_buddy_request(json_body())
    if missing_user(store, new_request.user_id):
        return jsonify({"error": "User not found"}), 404
    created = store.create_study_buddy_request(new_request)
    logger.info("study buddy request %s posted by %s", created.id, created.user_id)
    return jsonify(created.to_dict()), 201


@bp.route("/api/study-buddies/user/<user_id>")
def api_user_requests(user_id):
    return jsonify([r.to_dict() for r in get_storage().get_user_study_buddy_requests(user_id)])


@bp.route("/api/study-buddies/<request_id>", methods=["PATCH"])
@login_required
def api_update_request(request_id):
    store = get_storage()
    existing = store.get_study_buddy_request(request_id)
    if not existing:
        return jsonify({"error": "Study buddy request not found"}), 404
    if current_user_id() != existing.user_id:
        return jsonify({"error": "You can only edit your own requests"}), 403
    update = parse_study_buddy_update(json_body())
    updated = store.update_study_buddy_request(request_id, update)
    return jsonify(updated.to_dict())
