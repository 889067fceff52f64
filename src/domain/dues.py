"""
Dues reconciliation - keeps the ledger consistent with status and packages.

The ledger is append-only. Every correction is booked as a new dues
transaction whose amount is the signed difference between what the
attendee should owe and what the ledger currently says, per VAT rate.
Because all decisions are derived from ledger content, re-running a
reconciliation after a concurrent change converges to the same result.

Dispatch by target status:
    new, waiting, deleted   -> compensate all valid dues
    cancelled               -> compensate only the unpaid part of the dues
    anything else           -> adjust dues to manual dues + selected packages

After booking, the cached balance fields of the attendee are re-derived
from the ledger and, for payment phase statuses, the resulting status is
recomputed from the balances.
"""

import logging
from collections.abc import Sequence
from dataclasses import dataclass, replace
from datetime import date
from decimal import Decimal

from .balances import Balances, calculate_balances, dues_by_vat, pseudo_payments_from_negative_dues
from .exceptions import DebitorNotFound
from .models import DELETED_SUFFIX_PREFIX, AdminInfo, Amount, Attendee, Transaction
from .policy import DuesPolicy, vat_key
from .ports import (
    PAYMENT_PHASE,
    PaymentMethod,
    Status,
    TransactionLedger,
    TransactionStatus,
    TransactionType,
)

logger = logging.getLogger(__name__)

ADJUSTMENT_COMMENT = "dues adjustment due to change in status or selected packages"
CANCEL_COMMENT = "void unpaid dues on cancel"

_COMPENSATE_ALL = frozenset({Status.NEW, Status.WAITING, Status.DELETED})


@dataclass(frozen=True)
class ReconcileResult:
    """
    Outcome of a reconciliation.

    attendee carries refreshed cache fields and identity/zip markers.
    changed is True when any of those differ from the attendee passed in,
    i.e. when the record needs to be persisted.
    """

    attendee: Attendee
    status: Status
    changed: bool
    balances: Balances
    booked: int = 0


def resulting_status(requested: Status, balances: Balances, grace_amount_cents: int) -> Status:
    """
    Status implied by the balances for payment phase statuses.

    Any other requested status, including checked in, is returned unchanged.
    """
    if requested not in PAYMENT_PHASE:
        return requested
    dues, payments = balances.dues, balances.payments
    if dues <= 0 or payments >= dues - grace_amount_cents:
        return Status.PAID
    if payments <= 0:
        return Status.APPROVED
    return Status.PARTIALLY_PAID


def deletion_suffix(attendee_id: int) -> str:
    return f"{DELETED_SUFFIX_PREFIX}{attendee_id}"


def mark_deleted(value: str, attendee_id: int) -> str:
    suffix = deletion_suffix(attendee_id)
    if value.endswith(suffix):
        return value
    return value + suffix


def unmark_deleted(value: str, attendee_id: int) -> str:
    suffix = deletion_suffix(attendee_id)
    if value.endswith(suffix):
        return value[: -len(suffix)]
    return value


class DuesReconciler:
    """Books compensating and adjusting dues transactions for one attendee at a time."""

    def __init__(self, ledger: TransactionLedger, policy: DuesPolicy) -> None:
        self._ledger = ledger
        self._policy = policy

    def transaction_history(self, attendee_id: int) -> list[Transaction]:
        """Ledger history, with an unknown debitor treated as an empty ledger."""
        try:
            return list(self._ledger.list_transactions(attendee_id))
        except DebitorNotFound:
            return []

    def reconcile(
        self,
        attendee: Attendee,
        admin_info: AdminInfo,
        old_status: Status,
        new_status: Status,
        override_comment: str = "",
        today: date | None = None,
    ) -> ReconcileResult:
        """
        Book the dues implied by new_status and refresh the cached balances.

        Args:
            attendee: Current attendee record
            admin_info: Admin info (guest flag, manual dues)
            old_status: Status before the change
            new_status: Requested status
            override_comment: Comment for adjustment transactions, default if empty
            today: Booking date, defaults to the current date

        Returns:
            ReconcileResult with the effective status and refreshed attendee

        Raises:
            LedgerUnavailable: Ledger failure, the attendee is left unrefreshed
        """
        today = today or date.today()
        history = self.transaction_history(attendee.id)

        if new_status in _COMPENSATE_ALL:
            booked = self.compensate_all_dues(attendee.id, new_status, history, today)
        elif new_status == Status.CANCELLED:
            booked = self.compensate_unpaid_dues_on_cancel(attendee.id, history, today)
        else:
            booked = self.adjust_dues_according_to_selected_packages(
                attendee, admin_info, history, override_comment, today
            )

        if booked:
            history = self.transaction_history(attendee.id)

        balances = calculate_balances(history)
        refreshed = self._refresh_attendee(attendee, balances, new_status)
        status = resulting_status(new_status, balances, self._policy.grace_amount_cents)

        if status != new_status:
            logger.info(
                "attendee %d requested status %s resolves to %s (dues %d payments %d)",
                attendee.id,
                new_status.value,
                status.value,
                balances.dues,
                balances.payments,
            )

        return ReconcileResult(
            attendee=refreshed,
            status=status,
            changed=refreshed != attendee,
            balances=balances,
            booked=booked,
        )

    def compensate_all_dues(
        self, attendee_id: int, new_status: Status, history: Sequence[Transaction], today: date
    ) -> int:
        """Book one negative dues transaction per non-zero VAT bucket."""
        comment = f"remove dues balance - status changed to {new_status.value}"
        booked = 0
        for vat, balance in dues_by_vat(history).items():
            if balance != 0:
                self._book(attendee_id, -balance, vat, comment, today)
                booked += 1
        return booked

    def compensate_unpaid_dues_on_cancel(
        self, attendee_id: int, history: Sequence[Transaction], today: date
    ) -> int:
        """
        Void dues not covered by payments, filling the earliest dues first.

        Refunded (negative) dues count as payments here, which makes a
        repeated cancellation a no-op.
        """
        available = calculate_balances(history).payments + pseudo_payments_from_negative_dues(history)
        booked = 0
        for tx in history:
            if tx.status != TransactionStatus.VALID or tx.transaction_type != TransactionType.DUE:
                continue
            amount = tx.amount.gross_cent
            if amount <= 0:
                continue
            if available >= amount:
                available -= amount
                continue
            self._book(attendee_id, -(amount - max(available, 0)), tx.amount.vat_rate, CANCEL_COMMENT, today)
            available = 0
            booked += 1
        return booked

    def desired_dues_by_vat(self, attendee: Attendee, admin_info: AdminInfo) -> dict[Decimal, int]:
        """Dues the attendee should owe per VAT bucket: manual dues plus package prices."""
        result: dict[Decimal, int] = {}
        if admin_info.manual_dues != 0:
            key = vat_key(self._policy.manual_dues_vat_rate)
            result[key] = result.get(key, 0) + admin_info.manual_dues

        if self._policy.guest_flag in admin_info.flags:
            return result

        for code, count in attendee.packages.items():
            if count <= 0:
                continue
            conf = self._policy.packages.get(code)
            if conf is None:
                logger.warning(
                    "attendee %d holds non-configured package %s - ignored for dues", attendee.id, code
                )
                continue
            key = vat_key(conf.vat_rate)
            result[key] = result.get(key, 0) + conf.price * count
        return result

    def adjust_dues_according_to_selected_packages(
        self,
        attendee: Attendee,
        admin_info: AdminInfo,
        history: Sequence[Transaction],
        override_comment: str,
        today: date,
    ) -> int:
        """Book the signed difference between desired and current dues per VAT bucket."""
        current = dues_by_vat(history)
        desired = self.desired_dues_by_vat(attendee, admin_info)
        for key in current:
            desired.setdefault(key, 0)

        comment = override_comment or ADJUSTMENT_COMMENT
        booked = 0
        for key in sorted(desired):
            difference = desired[key] - current.get(key, 0)
            if difference != 0:
                self._book(attendee.id, difference, key, comment, today)
                booked += 1
        return booked

    def _book(self, attendee_id: int, amount: int, vat_rate: Decimal, comment: str, today: date) -> None:
        tx = Transaction(
            debitor_id=attendee_id,
            transaction_type=TransactionType.DUE,
            method=PaymentMethod.INTERNAL,
            amount=Amount(currency=self._policy.currency, gross_cent=amount, vat_rate=vat_key(vat_rate)),
            comment=comment,
            status=TransactionStatus.VALID,
            effective_date=today,
            due_date=self._policy.due_date_for(today) if amount > 0 else None,
        )
        self._ledger.append_transaction(tx)
        logger.info(
            "booked dues transaction for attendee %d: %s at %s%% VAT (%s)",
            attendee_id,
            self._policy.format_cents(amount),
            vat_key(vat_rate),
            comment,
        )

    def _refresh_attendee(self, attendee: Attendee, balances: Balances, new_status: Status) -> Attendee:
        due_date = balances.due_date
        if attendee.cache_due_date is not None and (due_date is None or due_date < attendee.cache_due_date):
            # manual edits may have moved the due date forward, never move it back
            due_date = attendee.cache_due_date

        if new_status == Status.DELETED:
            identity = mark_deleted(attendee.identity, attendee.id)
            zip_code = mark_deleted(attendee.zip, attendee.id)
        else:
            identity = unmark_deleted(attendee.identity, attendee.id)
            zip_code = unmark_deleted(attendee.zip, attendee.id)

        return replace(
            attendee,
            identity=identity,
            zip=zip_code,
            cache_total_dues=balances.dues,
            cache_payment_balance=balances.payments,
            cache_open_balance=balances.open_payments,
            cache_due_date=due_date,
        )
