"""
Entity model for Campus Study Buddy.

Six record kinds (users, study-buddy requests, notes, timetables, connections,
messages) plus the typed payloads used to create, update and filter them.

Stored records are frozen dataclasses: the storage layer never mutates a
record in place, it swaps in a replacement built with dataclasses.replace().
JSON field names are camelCase to match the client contract.
"""

from __future__ import annotations

import copy
from dataclasses import dataclass, field, fields
from datetime import datetime
from typing import Any, Literal, get_args


ConnectionStatus = Literal["pending", "accepted", "rejected"]
CONNECTION_STATUSES: tuple[str, ...] = get_args(ConnectionStatus)

NoteStat = Literal["download", "like"]

# stat kind -> counter field on Note
NOTE_STATS: dict[NoteStat, str] = {
    "download": "downloads",
    "like": "likes",
}


class _Unset:
    """Marker for a partial-update field that was not supplied.

    Distinct from None, which means "clear this optional field".
    """

    _instance: _Unset | None = None

    def __new__(cls) -> _Unset:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __bool__(self) -> bool:
        return False

    def __repr__(self) -> str:
        return "UNSET"

    def __copy__(self) -> _Unset:
        return self

    def __deepcopy__(self, memo: dict) -> _Unset:
        return self


UNSET: Any = _Unset()


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


def dedupe(items) -> tuple[str, ...]:
    """Collapse a subject list into an ordered set."""
    seen: dict[str, None] = {}
    for item in items or ():
        seen.setdefault(item, None)
    return tuple(seen)


# ── Users ────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class User:
    id: str
    username: str
    email: str
    password: str  # werkzeug hash, never serialised
    full_name: str
    registration_number: str
    program: str
    year: int
    created_at: datetime
    preferred_location: str | None = None
    subjects: tuple[str, ...] = ()
    study_topics: str | None = None
    profile_image: str | None = None

    def to_public(self) -> dict:
        """JSON shape returned to clients (password stripped)."""
        return {
            "id": self.id,
            "username": self.username,
            "email": self.email,
            "fullName": self.full_name,
            "registrationNumber": self.registration_number,
            "program": self.program,
            "year": self.year,
            "preferredLocation": self.preferred_location,
            "subjects": list(self.subjects),
            "studyTopics": self.study_topics,
            "profileImage": self.profile_image,
            "createdAt": _iso(self.created_at),
        }


@dataclass
class NewUser:
    username: str
    email: str
    password: str
    full_name: str
    registration_number: str
    program: str
    year: int
    preferred_location: str | None = None
    subjects: list[str] = field(default_factory=list)
    study_topics: str | None = None
    profile_image: str | None = None


# ── Study Buddy Requests ─────────────────────────────────────────────


@dataclass(frozen=True)
class StudyBuddyRequest:
    id: str
    user_id: str
    subject: str
    topic: str
    location: str
    created_at: datetime
    description: str | None = None
    is_active: bool = True

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "userId": self.user_id,
            "subject": self.subject,
            "topic": self.topic,
            "location": self.location,
            "description": self.description,
            "isActive": self.is_active,
            "createdAt": _iso(self.created_at),
        }


@dataclass
class NewStudyBuddyRequest:
    user_id: str
    subject: str
    topic: str
    location: str
    description: str | None = None


# ── Notes ────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class Note:
    id: str
    title: str
    subject: str
    file_name: str
    file_type: str
    file_size: int
    file_path: str
    uploaded_by: str
    created_at: datetime
    description: str | None = None
    downloads: int = 0
    likes: int = 0

    def to_dict(self) -> dict:
        # file_path is a server-side location and stays internal
        return {
            "id": self.id,
            "title": self.title,
            "subject": self.subject,
            "description": self.description,
            "fileName": self.file_name,
            "fileType": self.file_type,
            "fileSize": self.file_size,
            "uploadedBy": self.uploaded_by,
            "downloads": self.downloads,
            "likes": self.likes,
            "createdAt": _iso(self.created_at),
        }


@dataclass
class NewNote:
    title: str
    subject: str
    file_name: str
    file_type: str
    file_size: int
    file_path: str
    uploaded_by: str
    description: str | None = None


# ── Timetables ───────────────────────────────────────────────────────

# {"Monday": {"9:00 AM": {"subject": "Math", "room": "AB1-204", "type": "Lecture"}}}
Schedule = dict[str, dict[str, dict[str, str]]]


@dataclass(frozen=True)
class Timetable:
    id: str
    user_id: str
    schedule: Schedule
    created_at: datetime
    updated_at: datetime
    is_public: bool = False

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "userId": self.user_id,
            "schedule": copy.deepcopy(self.schedule),
            "isPublic": self.is_public,
            "createdAt": _iso(self.created_at),
            "updatedAt": _iso(self.updated_at),
        }


@dataclass
class NewTimetable:
    user_id: str
    schedule: Schedule = field(default_factory=dict)
    is_public: bool = False


# ── Connections & Messages ───────────────────────────────────────────


@dataclass(frozen=True)
class Connection:
    id: str
    requester_id: str
    receiver_id: str
    created_at: datetime
    status: ConnectionStatus = "pending"

    def involves(self, user_id: str) -> bool:
        return user_id in (self.requester_id, self.receiver_id)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "requesterId": self.requester_id,
            "receiverId": self.receiver_id,
            "status": self.status,
            "createdAt": _iso(self.created_at),
        }


@dataclass
class NewConnection:
    requester_id: str
    receiver_id: str
    status: ConnectionStatus = "pending"


@dataclass(frozen=True)
class Message:
    id: str
    sender_id: str
    receiver_id: str
    content: str
    created_at: datetime

    def between(self, user_a: str, user_b: str) -> bool:
        return (
            (self.sender_id == user_a and self.receiver_id == user_b)
            or (self.sender_id == user_b and self.receiver_id == user_a)
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "senderId": self.sender_id,
            "receiverId": self.receiver_id,
            "content": self.content,
            "createdAt": _iso(self.created_at),
        }


@dataclass
class NewMessage:
    sender_id: str
    receiver_id: str
    content: str


# ── Partial updates ──────────────────────────────────────────────────


class _PartialUpdate:
    def changes(self) -> dict[str, Any]:
        """Return only the fields that were explicitly supplied."""
        return {
            f.name: getattr(self, f.name)
            for f in fields(self)
            if getattr(self, f.name) is not UNSET
        }


@dataclass
class UserUpdate(_PartialUpdate):
    username: Any = UNSET
    email: Any = UNSET
    password: Any = UNSET
    full_name: Any = UNSET
    registration_number: Any = UNSET
    program: Any = UNSET
    year: Any = UNSET
    preferred_location: Any = UNSET
    subjects: Any = UNSET
    study_topics: Any = UNSET
    profile_image: Any = UNSET


@dataclass
class StudyBuddyRequestUpdate(_PartialUpdate):
    subject: Any = UNSET
    topic: Any = UNSET
    location: Any = UNSET
    description: Any = UNSET
    is_active: Any = UNSET


# ── Filters ──────────────────────────────────────────────────────────


def _contains(haystack: str | None, needle: str) -> bool:
    return needle.lower() in (haystack or "").lower()


@dataclass
class StudyBuddyFilter:
    """Case-insensitive substring filters, combined with AND.

    None or "" on a field means no constraint on it.
    """

    subject: str | None = None
    topic: str | None = None
    location: str | None = None
    include_inactive: bool = False

    def matches(self, request: StudyBuddyRequest) -> bool:
        if not self.include_inactive and not request.is_active:
            return False
        if self.subject and not _contains(request.subject, self.subject):
            return False
        if self.topic and not _contains(request.topic, self.topic):
            return False
        if self.location and not _contains(request.location, self.location):
            return False
        return True


@dataclass
class NoteFilter:
    subject: str | None = None

    def matches(self, note: Note) -> bool:
        if self.subject and not _contains(note.subject, self.subject):
            return False
        return True
