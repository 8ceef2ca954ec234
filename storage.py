"""Storage layer: a swappable capability protocol plus the in-memory store.

Every blueprint talks to the store through the Storage protocol, so a
durable backend (SQLite / Postgres tables) can replace MemStorage without
changing callers.

Conventions shared by all implementations:
- lookups and updates addressed by id/owner return None when nothing matches;
- listings are sorted newest first, except conversations (oldest first);
- text filters are case-insensitive substring matches combined with AND.

Usage:
    from storage import init_storage, get_storage
    init_storage(app)            # called once in create_app()
    store = get_storage()        # inside a request / app context
"""

from __future__ import annotations

import copy
import logging
import threading
import uuid
from dataclasses import replace
from datetime import datetime, timedelta, timezone
from typing import Any, Protocol

from flask import current_app

from models import (
    NOTE_STATS,
    Connection,
    ConnectionStatus,
    Message,
    NewConnection,
    NewMessage,
    NewNote,
    NewStudyBuddyRequest,
    NewTimetable,
    NewUser,
    Note,
    NoteFilter,
    NoteStat,
    Schedule,
    StudyBuddyFilter,
    StudyBuddyRequest,
    StudyBuddyRequestUpdate,
    Timetable,
    User,
    UserUpdate,
    dedupe,
)
from validation import DuplicateUserError

logger = logging.getLogger(__name__)

UNIQUE_USER_FIELDS = ("email", "username", "registration_number")


# ── Protocol ───────────────────────────────────────────────

class Storage(Protocol):
    # Users
    def get_user(self, user_id: str) -> User | None: ...
    def get_user_by_username(self, username: str) -> User | None: ...
    def get_user_by_email(self, email: str) -> User | None: ...
    def get_user_by_registration_number(self, number: str) -> User | None: ...
    def create_user(self, new_user: NewUser) -> User: ...
    def update_user(self, user_id: str, update: UserUpdate) -> User | None: ...
    def list_users(self) -> list[User]: ...

    # Study buddy requests
    def get_study_buddy_requests(self, filters: StudyBuddyFilter | None = None) -> list[StudyBuddyRequest]: ...
    def get_study_buddy_request(self, request_id: str) -> StudyBuddyRequest | None: ...
    def create_study_buddy_request(self, new_request: NewStudyBuddyRequest) -> StudyBuddyRequest: ...
    def get_user_study_buddy_requests(self, user_id: str) -> list[StudyBuddyRequest]: ...
    def update_study_buddy_request(self, request_id: str,
                                   update: StudyBuddyRequestUpdate) -> StudyBuddyRequest | None: ...

    # Notes
    def get_notes(self, filters: NoteFilter | None = None) -> list[Note]: ...
    def create_note(self, new_note: NewNote) -> Note: ...
    def get_note(self, note_id: str) -> Note | None: ...
    def update_note_stats(self, note_id: str, kind: NoteStat) -> Note | None: ...
    def get_user_notes(self, user_id: str) -> list[Note]: ...

    # Timetables
    def get_user_timetable(self, user_id: str) -> Timetable | None: ...
    def create_timetable(self, new_timetable: NewTimetable) -> Timetable: ...
    def update_timetable(self, user_id: str, schedule: Schedule) -> Timetable | None: ...

    # Connections
    def get_connections(self, user_id: str) -> list[Connection]: ...
    def get_connection(self, connection_id: str) -> Connection | None: ...
    def create_connection(self, new_connection: NewConnection) -> Connection: ...
    def update_connection_status(self, connection_id: str, status: ConnectionStatus) -> Connection | None: ...

    # Messages
    def get_messages(self, user_a: str, user_b: str) -> list[Message]: ...
    def create_message(self, new_message: NewMessage) -> Message: ...

    def counts(self) -> dict[str, int]: ...


def _newest_first(records) -> list:
    # sorted() is stable, so equal timestamps keep insertion order
    return sorted(records, key=lambda r: r.created_at, reverse=True)


def _oldest_first(records) -> list:
    return sorted(records, key=lambda r: r.created_at)


# ── In-Memory Implementation ──────────────────────────────

class MemStorage:
    """Dict-backed store guarded by a single re-entrant lock.

    Holding one lock for every public operation makes each call atomic:
    uniqueness checks and inserts cannot interleave, counters cannot lose
    increments, and readers never see a half-applied write.
    """

    def __init__(self) -> None:
        self._users: dict[str, User] = {}
        self._requests: dict[str, StudyBuddyRequest] = {}
        self._notes: dict[str, Note] = {}
        self._timetables: dict[str, Timetable] = {}
        self._connections: dict[str, Connection] = {}
        self._messages: dict[str, Message] = {}
        self._lock = threading.RLock()
        self._last_timestamp: datetime | None = None

    @staticmethod
    def _new_id() -> str:
        return str(uuid.uuid4())

    def _now(self) -> datetime:
        """Strictly increasing UTC clock (callers hold the lock)."""
        now = datetime.now(timezone.utc)
        if self._last_timestamp is not None and now <= self._last_timestamp:
            now = self._last_timestamp + timedelta(microseconds=1)
        self._last_timestamp = now
        return now

    # ── Users ─────────────────────────────────────────────

    def get_user(self, user_id: str) -> User | None:
        with self._lock:
            return self._users.get(user_id)

    def _find_user(self, attr: str, value: Any) -> User | None:
        for user in self._users.values():
            if getattr(user, attr) == value:
                return user
        return None

    def get_user_by_username(self, username: str) -> User | None:
        with self._lock:
            return self._find_user("username", username)

    def get_user_by_email(self, email: str) -> User | None:
        with self._lock:
            return self._find_user("email", email)

    def get_user_by_registration_number(self, number: str) -> User | None:
        with self._lock:
            return self._find_user("registration_number", number)

    def _check_unique(self, values: dict[str, Any], exclude_id: str | None = None) -> None:
        for attr in UNIQUE_USER_FIELDS:
            if attr not in values:
                continue
            existing = self._find_user(attr, values[attr])
            if existing is not None and existing.id != exclude_id:
                raise DuplicateUserError(attr)

    def create_user(self, new_user: NewUser) -> User:
        with self._lock:
            self._check_unique({attr: getattr(new_user, attr) for attr in UNIQUE_USER_FIELDS})
            user = User(
                id=self._new_id(),
                username=new_user.username,
                email=new_user.email,
                password=new_user.password,
                full_name=new_user.full_name,
                registration_number=new_user.registration_number,
                program=new_user.program,
                year=new_user.year,
                created_at=self._now(),
                preferred_location=new_user.preferred_location,
                subjects=dedupe(new_user.subjects),
                study_topics=new_user.study_topics,
                profile_image=new_user.profile_image,
            )
            self._users[user.id] = user
            logger.debug("created user %s (%s)", user.id, user.username)
            return user

    def update_user(self, user_id: str, update: UserUpdate) -> User | None:
        with self._lock:
            user = self._users.get(user_id)
            if user is None:
                return None
            changes = update.changes()
            if "subjects" in changes:
                changes["subjects"] = dedupe(changes["subjects"])
            self._check_unique(changes, exclude_id=user_id)
            updated = replace(user, **changes)
            self._users[user_id] = updated
            return updated

    def list_users(self) -> list[User]:
        with self._lock:
            return _newest_first(self._users.values())

    # ── Study Buddy Requests ──────────────────────────────

    def get_study_buddy_requests(self, filters: StudyBuddyFilter | None = None) -> list[StudyBuddyRequest]:
        filters = filters or StudyBuddyFilter()
        with self._lock:
            return _newest_first(r for r in self._requests.values() if filters.matches(r))

    def get_study_buddy_request(self, request_id: str) -> StudyBuddyRequest | None:
        with self._lock:
            return self._requests.get(request_id)

    def create_study_buddy_request(self, new_request: NewStudyBuddyRequest) -> StudyBuddyRequest:
        with self._lock:
            request = StudyBuddyRequest(
                id=self._new_id(),
                user_id=new_request.user_id,
                subject=new_request.subject,
                topic=new_request.topic,
                location=new_request.location,
                description=new_request.description,
                is_active=True,
                created_at=self._now(),
            )
            self._requests[request.id] = request
            return request

    def get_user_study_buddy_requests(self, user_id: str) -> list[StudyBuddyRequest]:
        with self._lock:
            return _newest_first(r for r in self._requests.values() if r.user_id == user_id)

    def update_study_buddy_request(self, request_id: str,
                                   update: StudyBuddyRequestUpdate) -> StudyBuddyRequest | None:
        with self._lock:
            request = self._requests.get(request_id)
            if request is None:
                return None
            updated = replace(request, **update.changes())
            self._requests[request_id] = updated
            return updated

    # ── Notes ─────────────────────────────────────────────

    def get_notes(self, filters: NoteFilter | None = None) -> list[Note]:
        filters = filters or NoteFilter()
        with self._lock:
            return _newest_first(n for n in self._notes.values() if filters.matches(n))

    def create_note(self, new_note: NewNote) -> Note:
        with self._lock:
            note = Note(
                id=self._new_id(),
                title=new_note.title,
                subject=new_note.subject,
                description=new_note.description,
                file_name=new_note.file_name,
                file_type=new_note.file_type,
                file_size=new_note.file_size,
                file_path=new_note.file_path,
                uploaded_by=new_note.uploaded_by,
                downloads=0,
                likes=0,
                created_at=self._now(),
            )
            self._notes[note.id] = note
            return note

    def get_note(self, note_id: str) -> Note | None:
        with self._lock:
            return self._notes.get(note_id)

    def update_note_stats(self, note_id: str, kind: NoteStat) -> Note | None:
        """Increment the downloads or likes counter by exactly one."""
        counter = NOTE_STATS.get(kind)
        if counter is None:
            raise ValueError(f"Unknown note stat: {kind!r}")
        with self._lock:
            note = self._notes.get(note_id)
            if note is None:
                return None
            updated = replace(note, **{counter: getattr(note, counter) + 1})
            self._notes[note_id] = updated
            return updated

    def get_user_notes(self, user_id: str) -> list[Note]:
        with self._lock:
            return _newest_first(n for n in self._notes.values() if n.uploaded_by == user_id)

    # ── Timetables ────────────────────────────────────────

    def _find_timetable(self, user_id: str) -> Timetable | None:
        for timetable in self._timetables.values():
            if timetable.user_id == user_id:
                return timetable
        return None

    def get_user_timetable(self, user_id: str) -> Timetable | None:
        with self._lock:
            return self._find_timetable(user_id)

    def create_timetable(self, new_timetable: NewTimetable) -> Timetable:
        # At most one timetable per user is enforced by the caller.
        with self._lock:
            now = self._now()
            timetable = Timetable(
                id=self._new_id(),
                user_id=new_timetable.user_id,
                schedule=copy.deepcopy(new_timetable.schedule),
                is_public=new_timetable.is_public,
                created_at=now,
                updated_at=now,
            )
            self._timetables[timetable.id] = timetable
            return timetable

    def update_timetable(self, user_id: str, schedule: Schedule) -> Timetable | None:
        with self._lock:
            existing = self._find_timetable(user_id)
            if existing is None:
                return None
            updated = replace(existing, schedule=copy.deepcopy(schedule), updated_at=self._now())
            self._timetables[existing.id] = updated
            return updated

    # ── Connections ───────────────────────────────────────

    def get_connections(self, user_id: str) -> list[Connection]:
        with self._lock:
            return _newest_first(c for c in self._connections.values() if c.involves(user_id))

    def get_connection(self, connection_id: str) -> Connection | None:
        with self._lock:
            return self._connections.get(connection_id)

    def create_connection(self, new_connection: NewConnection) -> Connection:
        with self._lock:
            connection = Connection(
                id=self._new_id(),
                requester_id=new_connection.requester_id,
                receiver_id=new_connection.receiver_id,
                status=new_connection.status,
                created_at=self._now(),
            )
            self._connections[connection.id] = connection
            return connection

    def update_connection_status(self, connection_id: str, status: ConnectionStatus) -> Connection | None:
        # No transition rules here; pending -> accepted -> rejected is caller policy.
        with self._lock:
            connection = self._connections.get(connection_id)
            if connection is None:
                return None
            updated = replace(connection, status=status)
            self._connections[connection_id] = updated
            return updated

    # ── Messages ──────────────────────────────────────────

    def get_messages(self, user_a: str, user_b: str) -> list[Message]:
        with self._lock:
            return _oldest_first(m for m in self._messages.values() if m.between(user_a, user_b))

    def create_message(self, new_message: NewMessage) -> Message:
        with self._lock:
            message = Message(
                id=self._new_id(),
                sender_id=new_message.sender_id,
                receiver_id=new_message.receiver_id,
                content=new_message.content,
                created_at=self._now(),
            )
            self._messages[message.id] = message
            return message

    def counts(self) -> dict[str, int]:
        with self._lock:
            return {
                "users": len(self._users),
                "study_buddy_requests": len(self._requests),
                "notes": len(self._notes),
                "timetables": len(self._timetables),
                "connections": len(self._connections),
                "messages": len(self._messages),
            }


# ── App binding ───────────────────────────────────────────

def init_storage(app, storage: Storage | None = None) -> Storage:
    """Attach a store to the app. Call once from create_app()."""
    store = storage if storage is not None else MemStorage()
    app.extensions["storage"] = store
    app.logger.info("Storage backend: %s", type(store).__name__)
    return store


def get_storage() -> Storage:
    """Return the store bound to the current Flask app."""
    return current_app.extensions["storage"]
