"""
Port interfaces - Protocol definitions for infrastructure abstraction.

This module defines the interfaces (ports) that the domain requires
from infrastructure, plus the enumerations shared by domain and adapters.
Adapters implement these protocols by structural subtyping.
"""

from __future__ import annotations

from collections.abc import Mapping
from enum import Enum
from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from .models import AdminInfo, Attendee, Count, CountDelta, StatusChange, Transaction


class Status(str, Enum):
    """
    Registration status of an attendee.

    Main line:
        new -> approved | waiting -> partially paid -> paid -> checked in

    Side exits reachable from (almost) anywhere:
        cancelled, deleted

    The initial "new" status is implicit at registration time and never
    stored as a status change.
    """

    NEW = "new"
    APPROVED = "approved"
    PARTIALLY_PAID = "partially paid"
    PAID = "paid"
    CHECKED_IN = "checked in"
    WAITING = "waiting"
    CANCELLED = "cancelled"
    DELETED = "deleted"


# statuses from which the payment statuses can only be reached via approved
PRE_APPROVAL_OR_EXIT = frozenset({Status.NEW, Status.WAITING, Status.CANCELLED, Status.DELETED})

# statuses whose value is recomputed from the balances after booking dues
PAYMENT_PHASE = frozenset({Status.APPROVED, Status.PARTIALLY_PAID, Status.PAID})


class TransactionType(str, Enum):
    """Kind of ledger transaction."""

    DUE = "due"
    PAYMENT = "payment"


class TransactionStatus(str, Enum):
    """Lifecycle status of a ledger transaction."""

    TENTATIVE = "tentative"
    PENDING = "pending"
    VALID = "valid"
    DELETED = "deleted"


class PaymentMethod(str, Enum):
    """How a transaction was settled. Dues booked by this service are internal."""

    CREDIT = "credit"
    PAYPAL = "paypal"
    TRANSFER = "transfer"
    INTERNAL = "internal"
    GIFT = "gift"


class TransactionLedger(Protocol):
    """Port interface for the external, append-only transaction ledger."""

    def list_transactions(self, debitor_id: int) -> list[Transaction]:
        """
        List all transactions for a debitor in ledger append order.

        Raises:
            DebitorNotFound: The ledger has never seen this debitor
            LedgerUnavailable: Transport or availability failure
        """
        ...

    def append_transaction(self, transaction: Transaction) -> None:
        """
        Append a transaction to the ledger.

        Raises:
            LedgerUnavailable: Transport or availability failure
        """
        ...


class AttendeeStore(Protocol):
    """Port interface for attendee, history and count persistence."""

    def add_attendee(self, attendee: Attendee) -> int:
        """Persist a new attendee and return its assigned id."""
        ...

    def get_attendee(self, attendee_id: int) -> Attendee:
        """Load an attendee (including soft deleted ones)."""
        ...

    def update_attendee(self, attendee: Attendee) -> None:
        """Overwrite an existing attendee record."""
        ...

    def count_attendees_by_nickname_zip_email(self, nickname: str, zip_code: str, email: str) -> int:
        """Count attendees (including deleted) sharing nickname, zip and email."""
        ...

    def find_by_identity(self, identity: str) -> list[Attendee]:
        """Return all attendees owned by a login identity."""
        ...

    def find_by_package(self, package: str) -> list[Attendee]:
        """Return all non-deleted attendees currently holding a package."""
        ...

    def soft_delete_attendee(self, attendee_id: int) -> None:
        """Mark an attendee as deleted."""
        ...

    def undelete_attendee(self, attendee_id: int) -> None:
        """Remove the deleted marker of an attendee."""
        ...

    def get_admin_info(self, attendee_id: int) -> AdminInfo:
        """Return admin info for an attendee (empty defaults if never written)."""
        ...

    def write_admin_info(self, admin_info: AdminInfo) -> None:
        """Insert or overwrite admin info for an attendee."""
        ...

    def get_status_changes(self, attendee_id: int) -> list[StatusChange]:
        """Return stored status changes in creation order."""
        ...

    def add_status_change(self, change: StatusChange) -> None:
        """Append a status change history entry."""
        ...

    def get_count(self, area: str, name: str) -> Count:
        """
        Read a count row.

        Raises:
            CountNotInitialized: The row was never provisioned
        """
        ...

    def add_count(self, delta: CountDelta) -> Count:
        """Atomically add a delta to a count row and return the new value."""
        ...

    def reset_count(self, overwrite: Count) -> None:
        """Overwrite a count row with recomputed values."""
        ...


class NotificationSender(Protocol):
    """Port interface for templated attendee notifications."""

    def send_notification(
        self,
        template: str,
        variables: Mapping[str, str],
        recipient: str,
        language: str,
    ) -> None:
        """
        Send a templated notification.

        Raises:
            MailUnavailable: The mail service could not accept the request
        """
        ...
