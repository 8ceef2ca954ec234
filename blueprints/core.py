"""Service health route."""

from __future__ import annotations

from flask import Blueprint, jsonify

from storage import get_storage

bp = Blueprint("core", __name__)


@bp.route("/api/health")
def health():
    store = get_storage()
    return jsonify({
        "status": "ok",
        "storage": type(store).__name__,
        "counts": store.counts(),
    })
