"""Shared notes: upload, browse, download and like routes."""

from __future__ import annotations

import logging
import mimetypes
from pathlib import Path

from flask import Blueprint, current_app, jsonify, request, send_file

from helpers import enrich_note, missing_user
from models import NoteFilter
from storage import get_storage
from uploads import discard, save_upload
from validation import parse_new_note, parse_note_form

logger = logging.getLogger(__name__)

bp = Blueprint("notes", __name__)


@bp.route("/api/notes")
def api_list_notes():
    store = get_storage()
    notes = store.get_notes(NoteFilter(subject=request.args.get("subject")))
    return jsonify([enrich_note(store, n) for n in notes])


@bp.route("/api/notes", methods=["POST"])
def api_upload_note():
    if "file" not in request.files or not request.files["file"].filename:
        return jsonify({"error": "No file uploaded"}), 400

    store = get_storage()
    form = request.form.to_dict()
    parse_note_form(form)
    if missing_user(store, form["uploadedBy"].strip()):
        return jsonify({"error": "User not found"}), 404

    # UploadError propagates to the app-level 400 handler
    stored = save_upload(
        request.files["file"],
        current_app.config["UPLOAD_DIR"],
        current_app.config.get("MAX_UPLOAD_BYTES", 10 * 1024 * 1024),
    )
    try:
        note = store.create_note(parse_new_note(form, stored))
    except Exception:
        discard(stored)
        raise

    logger.info("note %s uploaded by %s (%s)", note.id, note.uploaded_by, note.file_name)
    return jsonify(note.to_dict()), 201


@bp.route("/api/notes/<note_id>")
def api_get_note(note_id):
    store = get_storage()
    note = store.get_note(note_id)
    if not note:
        return jsonify({"error": "Note not found"}), 404
    return jsonify(enrich_note(store, note))


@bp.route("/api/notes/<note_id>/download")
def api_download_note(note_id):
    store = get_storage()
    note = store.get_note(note_id)
    if not note:
        return jsonify({"error": "Note not found"}), 404

    # counted before the file check, so a download of a missing file still registers
    store.update_note_stats(note_id, "download")

    path = Path(note.file_path)
    if not path.is_file():
        logger.warning("note %s points at missing file %s", note_id, path)
        return jsonify({"error": "File not found"}), 404

    return send_file(
        path,
        as_attachment=True,
        download_name=note.file_name,
        mimetype=mimetypes.guess_type(note.file_name)[0] or "application/octet-stream",
    )


@bp.route("/api/notes/<note_id>/like", methods=["POST"])
def api_like_note(note_id):
    note = get_storage().update_note_stats(note_id, "like")
    if not note:
        return jsonify({"error": "Note not found"}), 404
    return jsonify(note.to_dict())


@bp.route("/api/notes/user/<user_id>")
def api_user_notes(user_id):
    return jsonify([n.to_dict() for n in get_storage().get_user_notes(user_id)])
