"""
In-memory repository adapter - Implements AttendeeStore for development and tests.

All operations run under a single lock, so count increments are atomic
just like the UPDATE ... SET x = x + delta statement of the SQL adapter.
"""

import threading
from dataclasses import replace
from datetime import datetime, timezone

from src.domain.exceptions import AttendeeNotFound, CountNotInitialized
from src.domain.models import AdminInfo, Attendee, Count, CountDelta, StatusChange


class InMemoryAttendeeStore:
    """
    Implements AttendeeStore protocol with plain dicts.

    Uses structural subtyping - no explicit inheritance from Protocol.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._attendees: dict[int, Attendee] = {}
        self._deleted: set[int] = set()
        self._admin_infos: dict[int, AdminInfo] = {}
        self._status_changes: dict[int, list[StatusChange]] = {}
        self._counts: dict[tuple[str, str], Count] = {}
        self._next_id = 1

    # --- attendees ---

    def add_attendee(self, attendee: Attendee) -> int:
        with self._lock:
            attendee_id = self._next_id
            self._next_id += 1
            self._attendees[attendee_id] = replace(attendee, id=attendee_id)
            return attendee_id

    def get_attendee(self, attendee_id: int) -> Attendee:
        with self._lock:
            try:
                return self._attendees[attendee_id]
            except KeyError:
                raise AttendeeNotFound(attendee_id) from None

    def update_attendee(self, attendee: Attendee) -> None:
        with self._lock:
            if attendee.id not in self._attendees:
                raise AttendeeNotFound(attendee.id)
            self._attendees[attendee.id] = attendee

    def count_attendees_by_nickname_zip_email(self, nickname: str, zip_code: str, email: str) -> int:
        # deleted attendees count too, they still occupy the unique index
        with self._lock:
            return sum(
                1
                for a in self._attendees.values()
                if a.nickname == nickname and a.zip == zip_code and a.email == email
            )

    def find_by_identity(self, identity: str) -> list[Attendee]:
        with self._lock:
            return [a for a in self._attendees.values() if identity and a.identity == identity]

    def find_by_package(self, package: str) -> list[Attendee]:
        with self._lock:
            return [
                a
                for a_id, a in sorted(self._attendees.items())
                if a_id not in self._deleted and a.package_count(package) > 0
            ]

    def soft_delete_attendee(self, attendee_id: int) -> None:
        with self._lock:
            self._deleted.add(attendee_id)

    def undelete_attendee(self, attendee_id: int) -> None:
        with self._lock:
            self._deleted.discard(attendee_id)

    def is_deleted(self, attendee_id: int) -> bool:
        with self._lock:
            return attendee_id in self._deleted

    # --- admin info ---

    def get_admin_info(self, attendee_id: int) -> AdminInfo:
        with self._lock:
            return self._admin_infos.get(attendee_id, AdminInfo(attendee_id=attendee_id))

    def write_admin_info(self, admin_info: AdminInfo) -> None:
        with self._lock:
            self._admin_infos[admin_info.attendee_id] = admin_info

    # --- status history ---

    def get_status_changes(self, attendee_id: int) -> list[StatusChange]:
        with self._lock:
            return list(self._status_changes.get(attendee_id, []))

    def add_status_change(self, change: StatusChange) -> None:
        if change.created_at is None:
            change = replace(change, created_at=datetime.now(timezone.utc))
        with self._lock:
            self._status_changes.setdefault(change.attendee_id, []).append(change)

    # --- counts ---

    def create_count(self, initial: Count) -> Count:
        """Provision a count row if missing, returning the stored row."""
        with self._lock:
            return self._counts.setdefault((initial.area, initial.name), initial)

    def get_count(self, area: str, name: str) -> Count:
        with self._lock:
            try:
                return self._counts[(area, name)]
            except KeyError:
                raise CountNotInitialized(area, name) from None

    def add_count(self, delta: CountDelta) -> Count:
        with self._lock:
            current = self._counts.get((delta.area, delta.name))
            if current is None:
                raise CountNotInitialized(delta.area, delta.name)
            updated = replace(
                current,
                pending=current.pending + delta.pending,
                attending=current.attending + delta.attending,
            )
            self._counts[(delta.area, delta.name)] = updated
            return updated

    def reset_count(self, overwrite: Count) -> None:
        with self._lock:
            if (overwrite.area, overwrite.name) not in self._counts:
                raise CountNotInitialized(overwrite.area, overwrite.name)
            self._counts[(overwrite.area, overwrite.name)] = overwrite
