"""
Blueprint registration for Campus Study Buddy.

All routes carry their full /api/... path, so blueprints are registered
without URL prefixes.
"""

from __future__ import annotations


def register_blueprints(app):
    from blueprints.core import bp as core_bp
    from blueprints.users import bp as users_bp
    from blueprints.buddies import bp as buddies_bp
    from blueprints.notes import bp as notes_bp
    from blueprints.timetable import bp as timetable_bp
    from blueprints.social import bp as social_bp
    from blueprints.assistant import bp as assistant_bp

    app.register_blueprint(core_bp)
    app.register_blueprint(users_bp)
    app.register_blueprint(buddies_bp)
    app.register_blueprint(notes_bp)
    app.register_blueprint(timetable_bp)
    app.register_blueprint(social_bp)
    app.register_blueprint(assistant_bp)
