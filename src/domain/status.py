"""
Status workflow - authorization, financial preconditions and commit.

A status change request goes through three steps:

1. status_change_allowed()  - may this actor request the transition?
2. status_change_possible() - do the ledger balances permit it?
3. commit()                 - book dues, persist, record history, notify.

The commit step may resolve a requested payment phase status to a
different one (approved / partially paid / paid) based on the refreshed
balances. History entries and notifications are produced only for the
resolved status, and only if it differs from the old one.
"""

import logging
from collections.abc import Callable
from dataclasses import dataclass

from .balances import Balances, calculate_balances, has_valid_payments
from .dues import DuesReconciler
from .exceptions import (
    CannotDeleteError,
    GoToApprovedFirstError,
    HasPaymentBalanceError,
    InsufficientPaymentError,
    SameStatusError,
    StatusChangeForbidden,
    UnknownStatusError,
)
from .models import Actor, AdminInfo, Attendee, StatusChange
from .notifications import GUEST_TEMPLATE, status_mail_variables, status_template
from .policy import DuesPolicy
from .ports import PAYMENT_PHASE, PRE_APPROVAL_OR_EXIT, AttendeeStore, NotificationSender, Status

logger = logging.getLogger(__name__)

REGISTRATION_COMMENT = "registration"

_FORBIDDEN_MESSAGE = "you are not allowed to make this status transition - the attempt has been logged"

# self service cancellation is possible from these statuses
_SELF_CANCELLABLE = frozenset({Status.NEW, Status.APPROVED})

# no mails for these, the attendee is either gone or standing at the reg desk
_SILENT_STATUSES = frozenset({Status.DELETED, Status.CHECKED_IN})


def registration_entry(attendee: Attendee) -> StatusChange:
    """The implicit first history entry, synthesized from the creation time."""
    return StatusChange(
        attendee_id=attendee.id,
        status=Status.NEW,
        comment=REGISTRATION_COMMENT,
        created_at=attendee.created_at,
    )


@dataclass(frozen=True)
class CommitResult:
    """Outcome of committing a status change."""

    attendee: Attendee
    status: Status
    status_changed: bool
    notified: bool


class StatusMachine:
    """Validates and commits status transitions for attendees."""

    def __init__(
        self,
        store: AttendeeStore,
        reconciler: DuesReconciler,
        notifier: NotificationSender,
        policy: DuesPolicy,
    ) -> None:
        self._store = store
        self._reconciler = reconciler
        self._notifier = notifier
        self._policy = policy

    # --- history ---

    def full_status_history(self, attendee: Attendee) -> list[StatusChange]:
        return [registration_entry(attendee), *self._store.get_status_changes(attendee.id)]

    def current_status(self, attendee: Attendee) -> Status:
        return self.full_status_history(attendee)[-1].status

    # --- authorization ---

    def status_change_allowed(self, actor: Actor, attendee: Attendee, old: Status, new: Status) -> None:
        """
        Check that the actor may request old -> new for this attendee.

        Raises:
            StatusChangeForbidden: The actor lacks permission
        """
        if actor.is_privileged:
            return

        if not actor.subject:
            raise StatusChangeForbidden("all status changes require a logged in user")

        if actor.subject == attendee.identity:
            if new == Status.CANCELLED and old in _SELF_CANCELLABLE:
                logger.info("self cancellation for attendee %d by %s", attendee.id, actor.subject)
                return
            logger.warning(
                "forbidden self status change attempt %s -> %s for attendee %d by %s",
                old.value,
                new.value,
                attendee.id,
                actor.subject,
            )
            raise StatusChangeForbidden(_FORBIDDEN_MESSAGE)

        # regdesk grants are read from the actor's own registrations, not the target attendee
        if old == Status.PAID and new == Status.CHECKED_IN and self._has_regdesk_permission(actor.subject):
            logger.info("regdesk check in for attendee %d by %s", attendee.id, actor.subject)
            return

        logger.warning(
            "forbidden status change attempt %s -> %s for attendee %d by %s",
            old.value,
            new.value,
            attendee.id,
            actor.subject,
        )
        raise StatusChangeForbidden(_FORBIDDEN_MESSAGE)

    def _has_regdesk_permission(self, subject: str) -> bool:
        # the permission lives in the admin info of a registration owned by the subject
        for owned in self._store.find_by_identity(subject):
            if self._policy.regdesk_permission in self._store.get_admin_info(owned.id).permissions:
                return True
        return False

    # --- preconditions ---

    def status_change_possible(self, attendee: Attendee, old: Status, new: Status) -> None:
        """
        Check the financial preconditions of old -> new.

        Raises:
            StatusChangeError: A subclass naming the failed precondition
        """
        if old == new:
            raise SameStatusError()

        history = self._reconciler.transaction_history(attendee.id)
        balances = calculate_balances(history)

        if new in (Status.NEW, Status.APPROVED, Status.WAITING):
            self._check_zero_or_negative_payment_balance(balances)
        elif new == Status.PARTIALLY_PAID:
            self._check_approved_first(old)
            if not 0 <= balances.payments < balances.dues:
                raise InsufficientPaymentError()
        elif new == Status.PAID:
            self._check_approved_first(old)
            # negative dues (earlier refunds) are possible, so payments may be <= 0 here
            if balances.payments < balances.dues - self._policy.grace_amount_cents:
                raise InsufficientPaymentError()
        elif new == Status.CHECKED_IN:
            self._check_approved_first(old)
            if balances.payments < balances.dues:
                raise InsufficientPaymentError()
        elif new == Status.CANCELLED:
            return
        elif new == Status.DELETED:
            if has_valid_payments(history):
                raise CannotDeleteError()
        else:
            raise UnknownStatusError(str(new))

    @staticmethod
    def _check_zero_or_negative_payment_balance(balances: Balances) -> None:
        if balances.payments > 0:
            raise HasPaymentBalanceError()

    @staticmethod
    def _check_approved_first(old: Status) -> None:
        if old in PRE_APPROVAL_OR_EXIT:
            raise GoToApprovedFirstError()

    # --- commit ---

    def commit(
        self,
        attendee: Attendee,
        old: Status,
        new: Status,
        status_comment: str = "",
        override_dues_comment: str = "",
        suppress_minor_update_email: bool = False,
        on_recorded: Callable[[], object] | None = None,
    ) -> CommitResult:
        """
        Book dues, persist the refreshed attendee and record the resulting status.

        Callers are expected to have checked status_change_allowed() and
        status_change_possible() for explicit status change requests. Updates
        that only affect dues pass old == new.

        on_recorded runs once the new status is stored and before any mail is
        sent, so a mail failure cannot skip it.

        Raises:
            DownstreamError: Ledger, store or mail failure (propagated unchanged)
        """
        admin_info = self._store.get_admin_info(attendee.id)
        result = self._reconciler.reconcile(attendee, admin_info, old, new, override_dues_comment)
        updated = result.attendee
        if result.changed:
            self._store.update_attendee(updated)

        resolved = result.status
        if resolved == old:
            notified = False
            dues_update = old == new and resolved in (Status.APPROVED, Status.PARTIALLY_PAID)
            if dues_update and _dues_changed(attendee, updated):
                notified = self._notify(
                    updated, admin_info, resolved, status_comment, suppress_minor_update_email
                )
            return CommitResult(attendee=updated, status=resolved, status_changed=False, notified=notified)

        self._store.add_status_change(
            StatusChange(attendee_id=updated.id, status=resolved, comment=status_comment)
        )
        if resolved == Status.DELETED:
            self._store.soft_delete_attendee(updated.id)
        elif old == Status.DELETED:
            self._store.undelete_attendee(updated.id)
        if on_recorded is not None:
            on_recorded()

        notified = False
        if resolved not in _SILENT_STATUSES:
            suppress = suppress_minor_update_email and old in PAYMENT_PHASE and resolved in PAYMENT_PHASE
            notified = self._notify(updated, admin_info, resolved, status_comment, suppress)

        return CommitResult(attendee=updated, status=resolved, status_changed=True, notified=notified)

    def resend_status_mail(self, attendee: Attendee) -> bool:
        """Send the mail for the current status again, if that status has one."""
        history = self.full_status_history(attendee)
        current = history[-1]
        if current.status in _SILENT_STATUSES or current.status == Status.NEW:
            return False
        admin_info = self._store.get_admin_info(attendee.id)
        return self._notify(attendee, admin_info, current.status, current.comment, False)

    def _notify(
        self, attendee: Attendee, admin_info: AdminInfo, status: Status, comment: str, suppress: bool
    ) -> bool:
        template = status_template(status)
        if self._policy.guest_flag in admin_info.flags:
            if status in PAYMENT_PHASE:
                template = GUEST_TEMPLATE
        elif suppress:
            logger.info("sending mail %s to %s suppressed", template, attendee.email)
            return False

        variables = status_mail_variables(attendee, self._policy, status, comment)
        self._notifier.send_notification(template, variables, attendee.email, attendee.registration_language)
        return True


def _dues_changed(before: Attendee, after: Attendee) -> bool:
    return (
        before.cache_total_dues != after.cache_total_dues
        or before.cache_payment_balance != after.cache_payment_balance
        or before.cache_due_date != after.cache_due_date
    )
