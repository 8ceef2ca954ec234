"""
Request payload validation.

Turns raw JSON / form data into the typed request objects from models.py.
Every failure raises ValidationError with a message that is safe to show to
the end user; the app factory maps it to a 400 response.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from models import (
    CONNECTION_STATUSES,
    ConnectionStatus,
    NewConnection,
    NewMessage,
    NewNote,
    NewStudyBuddyRequest,
    NewTimetable,
    NewUser,
    Schedule,
    StudyBuddyRequestUpdate,
    UserUpdate,
)

if TYPE_CHECKING:
    from uploads import StoredFile

MAX_MESSAGE_LENGTH = 5000
SLOT_FIELDS = ("subject", "room", "type")


class ValidationError(ValueError):
    """Malformed or missing input."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class DuplicateUserError(ValidationError):
    """A unique user field (email, username, registration number) is taken."""

    MESSAGES = {
        "email": "User already exists with this email",
        "username": "Username already taken",
        "registration_number": "Registration number already registered",
    }

    def __init__(self, field_name: str) -> None:
        super().__init__(self.MESSAGES.get(field_name, f"{field_name} already in use"))
        self.field = field_name


# ── Field helpers ────────────────────────────────────────────────────


def _require_str(data: dict, key: str) -> str:
    value = data.get(key)
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"{key} is required.")
    return value.strip()


def _optional_str(data: dict, key: str) -> str | None:
    value = data.get(key)
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValidationError(f"{key} must be a string.")
    return value.strip() or None


def _bool(data: dict, key: str, default: bool) -> bool:
    value = data.get(key, default)
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.lower() in ("true", "false"):
        return value.lower() == "true"
    raise ValidationError(f"{key} must be true or false.")


def _year(value: Any) -> int:
    if isinstance(value, bool):
        raise ValidationError("year must be a positive integer.")
    try:
        year = int(value)
    except (TypeError, ValueError):
        raise ValidationError("year must be a positive integer.") from None
    if year <= 0 or (isinstance(value, float) and value != year):
        raise ValidationError("year must be a positive integer.")
    return year


def _string_list(value: Any, key: str) -> list[str]:
    if value is None:
        return []
    if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
        raise ValidationError(f"{key} must be a list of strings.")
    return [v.strip() for v in value if v.strip()]


def _email(value: str) -> str:
    email = value.strip().lower()
    local, _, domain = email.partition("@")
    host, dot, tld = domain.rpartition(".")
    if not (local and host and dot and tld) or "@" in domain:
        raise ValidationError("email must be a valid email address.")
    return email


def validate_password(password: str) -> str | None:
    """Return an error message if password is too weak, else None."""
    if len(password) < 8:
        return "Password must be at least 8 characters."
    if not any(c.isalpha() for c in password):
        return "Password must contain at least one letter."
    if not any(c.isdigit() for c in password):
        return "Password must contain at least one digit."
    return None


# ── Users ────────────────────────────────────────────────────────────


def parse_new_user(data: dict) -> NewUser:
    """Validate a registration payload. The password is returned in plaintext."""
    password = data.get("password")
    if not isinstance(password, str) or not password:
        raise ValidationError("password is required.")
    pw_error = validate_password(password)
    if pw_error:
        raise ValidationError(pw_error)

    if "year" not in data:
        raise ValidationError("year is required.")

    return NewUser(
        username=_require_str(data, "username"),
        email=_email(_require_str(data, "email")),
        password=password,
        full_name=_require_str(data, "fullName"),
        registration_number=_require_str(data, "registrationNumber"),
        program=_require_str(data, "program"),
        year=_year(data["year"]),
        preferred_location=_optional_str(data, "preferredLocation"),
        subjects=_string_list(data.get("subjects"), "subjects"),
        study_topics=_optional_str(data, "studyTopics"),
        profile_image=_optional_str(data, "profileImage"),
    )


def parse_user_update(data: dict) -> UserUpdate:
    """Profile edit payload. Only keys present in data become changes."""
    update = UserUpdate()
    if "fullName" in data:
        update.full_name = _require_str(data, "fullName")
    if "program" in data:
        update.program = _require_str(data, "program")
    if "year" in data:
        update.year = _year(data["year"])
    if "email" in data:
        update.email = _email(_require_str(data, "email"))
    if "preferredLocation" in data:
        update.preferred_location = _optional_str(data, "preferredLocation")
    if "subjects" in data:
        update.subjects = _string_list(data["subjects"], "subjects")
    if "studyTopics" in data:
        update.study_topics = _optional_str(data, "studyTopics")
    if "profileImage" in data:
        update.profile_image = _optional_str(data, "profileImage")
    if not update.changes():
        raise ValidationError("No updatable fields supplied.")
    return update


def parse_login(data: dict) -> tuple[str, str]:
    username = data.get("username")
    password = data.get("password")
    if not isinstance(username, str) or not username.strip() or not isinstance(password, str) or not password:
        raise ValidationError("Username and password are required.")
    return username.strip(), password


# ── Study buddy requests ─────────────────────────────────────────────


def parse_new_study_buddy_request(data: dict) -> NewStudyBuddyRequest:
    return NewStudyBuddyRequest(
        user_id=_require_str(data, "userId"),
        subject=_require_str(data, "subject"),
        topic=_require_str(data, "topic"),
        location=_require_str(data, "location"),
        description=_optional_str(data, "description"),
    )


def parse_study_buddy_update(data: dict) -> StudyBuddyRequestUpdate:
    update = StudyBuddyRequestUpdate()
    for key in ("subject", "topic", "location"):
        if key in data:
            setattr(update, key, _require_str(data, key))
    if "description" in data:
        update.description = _optional_str(data, "description")
    if "isActive" in data:
        update.is_active = _bool(data, "isActive", True)
    if not update.changes():
        raise ValidationError("No updatable fields supplied.")
    return update


# ── Notes ────────────────────────────────────────────────────────────


def parse_new_note(form: dict, stored: StoredFile) -> NewNote:
    """Combine the multipart form fields with the saved file's metadata."""
    return NewNote(
        title=_require_str(form, "title"),
        subject=_require_str(form, "subject"),
        description=_optional_str(form, "description"),
        file_name=stored.original_name,
        file_type=stored.file_type,
        file_size=stored.size,
        file_path=str(stored.path),
        uploaded_by=_require_str(form, "uploadedBy"),
    )


def parse_note_form(form: dict) -> None:
    """Check the text fields of a note upload before the file is written."""
    for key in ("title", "subject", "uploadedBy"):
        _require_str(form, key)


# ── Timetables ───────────────────────────────────────────────────────


def parse_schedule(value: Any) -> Schedule:
    """Validate {day: {slot: {subject, room, type}}}."""
    if not isinstance(value, dict):
        raise ValidationError("schedule must be an object keyed by day.")
    schedule: Schedule = {}
    for day, slots in value.items():
        if not isinstance(slots, dict):
            raise ValidationError(f"schedule.{day} must be an object keyed by time slot.")
        day_slots: dict[str, dict[str, str]] = {}
        for slot, entry in slots.items():
            if not isinstance(entry, dict):
                raise ValidationError(f"schedule.{day}.{slot} must be an object.")
            cleaned = {}
            for key in SLOT_FIELDS:
                item = entry.get(key)
                if item is None:
                    continue
                if not isinstance(item, str):
                    raise ValidationError(f"schedule.{day}.{slot}.{key} must be a string.")
                cleaned[key] = item
            day_slots[slot] = cleaned
        schedule[day] = day_slots
    return schedule


def parse_new_timetable(data: dict) -> NewTimetable:
    return NewTimetable(
        user_id=_require_str(data, "userId"),
        schedule=parse_schedule(data.get("schedule", {})),
        is_public=_bool(data, "isPublic", False),
    )


# ── Connections & messages ───────────────────────────────────────────


def parse_connection_status(value: Any) -> ConnectionStatus:
    if value not in CONNECTION_STATUSES:
        raise ValidationError(f"status must be one of: {', '.join(CONNECTION_STATUSES)}.")
    return value


def parse_new_connection(data: dict) -> NewConnection:
    requester_id = _require_str(data, "requesterId")
    receiver_id = _require_str(data, "receiverId")
    if requester_id == receiver_id:
        raise ValidationError("You cannot connect with yourself.")
    return NewConnection(
        requester_id=requester_id,
        receiver_id=receiver_id,
        status=parse_connection_status(data.get("status", "pending")),
    )


def parse_new_message(data: dict) -> NewMessage:
    content = _require_str(data, "content")
    if len(content) > MAX_MESSAGE_LENGTH:
        raise ValidationError(f"content must be at most {MAX_MESSAGE_LENGTH} characters.")
    return NewMessage(
        sender_id=_require_str(data, "senderId"),
        receiver_id=_require_str(data, "receiverId"),
        content=content,
    )
