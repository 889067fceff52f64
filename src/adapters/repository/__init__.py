"""Repository adapters - Attendee store implementations."""

from .memory import InMemoryAttendeeStore
from .postgres import PostgresAttendeeStore, run_migrations

__all__ = ["InMemoryAttendeeStore", "PostgresAttendeeStore", "run_migrations"]
