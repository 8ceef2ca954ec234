"""
Shared helpers used across blueprints.

Request-body parsing, the public projection of users, and the joins that
enrich requests and notes with their owners.
"""

from __future__ import annotations

from flask import request
from flask_login import current_user

from models import Note, StudyBuddyRequest, User
from storage import Storage
from validation import ValidationError


def current_user_id() -> str | None:
    """Return the logged-in user's ID, or None for anonymous requests."""
    if current_user.is_authenticated:
        return current_user.id
    return None


def json_body() -> dict:
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object.")
    return data


def public_user(user: User | None) -> dict | None:
    return user.to_public() if user else None


def missing_user(store: Storage, *user_ids: str) -> str | None:
    """Return the first id that does not resolve to a user, else None."""
    for user_id in user_ids:
        if store.get_user(user_id) is None:
            return user_id
    return None


def enrich_request(store: Storage, req: StudyBuddyRequest) -> dict:
    data = req.to_dict()
    data["user"] = public_user(store.get_user(req.user_id))
    return data


def enrich_note(store: Storage, note: Note) -> dict:
    data = note.to_dict()
    uploader = store.get_user(note.uploaded_by)
    data["uploader"] = (
        {"fullName": uploader.full_name, "username": uploader.username} if uploader else None
    )
    return data
