"""
Registration domain service - attendee lifecycle orchestration.

This module ties together the dues reconciler, the status machine and the
allocation limiter into the operations callers actually perform:

- register()           new attendee, implicit status "new"
- update_attendee()    attendee edits, package changes re-book dues
- update_admin_info()  guest flag or manual dues changes re-book dues
- change_status()      explicit status transition request

Every path that can change dues funnels into StatusMachine.commit(), which
books the ledger difference and refreshes the cached balances. Package
changes pass the AllocationLimiter first; count deltas are recorded only
after the change has been committed.

Concurrent updates of the same attendee are not serialized here. Callers
that need strict ordering must hold a per-attendee lock around these calls.
"""

from dataclasses import dataclass, field, replace

from .dues import DuesReconciler
from .exceptions import DuplicateAttendeeError
from .limits import AllocationLimiter
from .models import Actor, AdminInfo, Attendee, Count, StatusChange
from .policy import DuesPolicy
from .ports import AttendeeStore, NotificationSender, Status, TransactionLedger
from .status import CommitResult, StatusMachine


@dataclass
class RegistrationService:
    """
    Domain service for attendee registrations.

    Orchestrates registration, updates and status changes on top of the
    store, ledger and notification ports.
    """

    store: AttendeeStore
    ledger: TransactionLedger
    notifier: NotificationSender
    policy: DuesPolicy
    reconciler: DuesReconciler = field(init=False)
    status_machine: StatusMachine = field(init=False)
    limiter: AllocationLimiter = field(init=False)

    def __post_init__(self) -> None:
        self.reconciler = DuesReconciler(self.ledger, self.policy)
        self.status_machine = StatusMachine(self.store, self.reconciler, self.notifier, self.policy)
        self.limiter = AllocationLimiter(self.store, self.policy)

    def register(self, actor: Actor, attendee: Attendee) -> int:
        """
        Register a new attendee.

        The attendee is owned by the actor's login identity. Selected
        packages are allocated as pending.

        Returns:
            The id assigned by the store

        Raises:
            DuplicateAttendeeError: Same nickname, zip and email already registered
            OverrunError: A selected package is fully allocated
        """
        attendee = replace(
            attendee,
            email=self._normalize_email(attendee.email),
            identity=actor.subject,
            cache_total_dues=0,
            cache_payment_balance=0,
            cache_open_balance=0,
            cache_due_date=None,
        )
        self._check_not_duplicate(attendee, expected_max=0)

        nothing_selected = replace(attendee, packages={})
        deltas = self.limiter.would_exceed_limit(nothing_selected, attendee, Status.NEW, Status.NEW)

        attendee_id = self.store.add_attendee(attendee)
        self.limiter.record_limit_changes(deltas)
        return attendee_id

    def get_attendee(self, attendee_id: int) -> Attendee:
        return self.store.get_attendee(attendee_id)

    def update_attendee(
        self, actor: Actor, attendee: Attendee, suppress_minor_update_email: bool = False
    ) -> CommitResult:
        """
        Store attendee edits and re-book dues for the current status.

        Cached balances and the owning identity are never taken from the
        caller's copy, they always come from the stored record.

        Raises:
            DuplicateAttendeeError: The edit collides with another registration
            OverrunError: A newly selected package is fully allocated
        """
        stored = self.store.get_attendee(attendee.id)
        attendee = replace(
            attendee,
            email=self._normalize_email(attendee.email),
            identity=stored.identity,
            created_at=stored.created_at,
            cache_total_dues=stored.cache_total_dues,
            cache_payment_balance=stored.cache_payment_balance,
            cache_open_balance=stored.cache_open_balance,
            cache_due_date=stored.cache_due_date,
        )
        # the stored record itself matches when the unique key is unchanged
        unchanged_key = (stored.nickname, stored.zip, stored.email) == (
            attendee.nickname,
            attendee.zip,
            attendee.email,
        )
        self._check_not_duplicate(attendee, expected_max=1 if unchanged_key else 0)

        current = self.status_machine.current_status(stored)
        deltas = self.limiter.would_exceed_limit(stored, attendee, current, current)

        self.store.update_attendee(attendee)
        self.limiter.record_limit_changes(deltas)

        return self.status_machine.commit(
            attendee,
            current,
            current,
            status_comment=f"attendee update by {actor.subject}",
            suppress_minor_update_email=suppress_minor_update_email,
        )

    def get_admin_info(self, attendee_id: int) -> AdminInfo:
        return self.store.get_admin_info(attendee_id)

    def update_admin_info(self, actor: Actor, admin_info: AdminInfo) -> CommitResult:
        """Store admin info; guest flag and manual dues may change dues and status."""
        self.store.write_admin_info(admin_info)
        attendee = self.store.get_attendee(admin_info.attendee_id)
        current = self.status_machine.current_status(attendee)
        return self.status_machine.commit(
            attendee,
            current,
            current,
            status_comment=f"admin info update by {actor.subject}",
            override_dues_comment=admin_info.manual_dues_description,
        )

    def change_status(
        self,
        actor: Actor,
        attendee_id: int,
        new_status: Status,
        comment: str = "",
        override_dues_comment: str = "",
        suppress_minor_update_email: bool = False,
    ) -> CommitResult:
        """
        Request a status transition.

        Raises:
            StatusChangeForbidden: The actor may not request this transition
            StatusChangeError: A financial precondition is not met
            OverrunError: The new status would overrun a package limit
        """
        attendee = self.store.get_attendee(attendee_id)
        old_status = self.status_machine.current_status(attendee)

        self.status_machine.status_change_allowed(actor, attendee, old_status, new_status)
        self.status_machine.status_change_possible(attendee, old_status, new_status)
        deltas = self.limiter.would_exceed_limit(attendee, attendee, old_status, new_status)

        return self.status_machine.commit(
            attendee,
            old_status,
            new_status,
            status_comment=comment,
            override_dues_comment=override_dues_comment,
            suppress_minor_update_email=suppress_minor_update_email,
            on_recorded=lambda: self.limiter.record_limit_changes(deltas),
        )

    def status_history(self, attendee_id: int) -> list[StatusChange]:
        return self.status_machine.full_status_history(self.store.get_attendee(attendee_id))

    def resend_status_mail(self, attendee_id: int) -> bool:
        return self.status_machine.resend_status_mail(self.store.get_attendee(attendee_id))

    def recalculate_limit(self, package: str) -> Count:
        return self.limiter.recalculate_limit(package)

    def _check_not_duplicate(self, attendee: Attendee, expected_max: int) -> None:
        count = self.store.count_attendees_by_nickname_zip_email(
            attendee.nickname, attendee.zip, attendee.email
        )
        if count > expected_max:
            raise DuplicateAttendeeError(
                "duplicate attendee data - same nickname, zip and email already registered"
            )

    def _normalize_email(self, email: str) -> str:
        """
        Normalize email address for consistent storage and lookup.

        Applies: strip whitespace + lowercase
        """
        return email.strip().lower()
