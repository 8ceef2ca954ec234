"""
User Authentication — Flask-Login blueprint.

Provides JSON register, login, logout and current-user routes.
Uses werkzeug.security for password hashing; the store only ever sees hashes.
"""

from __future__ import annotations

from flask import Blueprint, jsonify
from flask_login import LoginManager, UserMixin, current_user, login_required, login_user, logout_user
from werkzeug.security import check_password_hash, generate_password_hash

from audit import log_event
from extensions import limiter
from helpers import json_body
from storage import get_storage
from validation import parse_login, parse_new_user

auth_bp = Blueprint("auth", __name__)
login_manager = LoginManager()


class SessionUser(UserMixin):
    """Wraps a stored user id for Flask-Login."""

    def __init__(self, id: str, username: str):
        self.id = id
        self.username = username

    @staticmethod
    def get(user_id: str):
        user = get_storage().get_user(user_id)
        if user:
            return SessionUser(user.id, user.username)
        return None


@login_manager.user_loader
def load_user(user_id):
    return SessionUser.get(user_id)


@login_manager.unauthorized_handler
def unauthorized():
    return jsonify({"error": "Authentication required"}), 401


@auth_bp.route("/api/auth/register", methods=["POST"])
@limiter.limit("10 per hour")
def register():
    new_user = parse_new_user(json_body())
    new_user.password = generate_password_hash(new_user.password)

    # DuplicateUserError propagates to the app-level 400 handler
    user = get_storage().create_user(new_user)

    log_event("register", user.id, f"username={user.username}")
    login_user(SessionUser(user.id, user.username), remember=True)
    return jsonify({"user": user.to_public(), "message": "User registered successfully"}), 201


@auth_bp.route("/api/auth/login", methods=["POST"])
@limiter.limit("10 per minute")
def login():
    username, password = parse_login(json_body())

    user = get_storage().get_user_by_username(username)
    if user is None or not check_password_hash(user.password, password):
        log_event("login_failed", user.id if user else None, f"username={username}")
        return jsonify({"error": "Invalid credentials"}), 401

    login_user(SessionUser(user.id, user.username), remember=True)
    log_event("login_success", user.id)
    return jsonify({"user": user.to_public(), "message": "Login successful"})


@auth_bp.route("/api/auth/logout", methods=["POST"])
def logout():
    if current_user.is_authenticated:
        log_event("logout", current_user.id)
    logout_user()
    return jsonify({"success": True})


@auth_bp.route("/api/auth/me")
@login_required
def me():
    user = get_storage().get_user(current_user.id)
    if user is None:
        logout_user()
        return jsonify({"error": "Authentication required"}), 401
    return jsonify({"user": user.to_public()})
