"""
Balance calculation - pure functions over a transaction history.

The history is always processed in ledger append order, which is stable,
so every function here is deterministic for a given input.
"""

from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from datetime import date
from decimal import Decimal

from .models import Transaction
from .policy import vat_key
from .ports import TransactionStatus, TransactionType


@dataclass(frozen=True)
class Balances:
    """Aggregate figures derived from one attendee's transaction history."""

    dues: int = 0
    payments: int = 0
    open_payments: int = 0
    due_date: date | None = None


def _valid_dues(transactions: Iterable[Transaction]) -> Iterable[Transaction]:
    return (
        tx
        for tx in transactions
        if tx.status == TransactionStatus.VALID and tx.transaction_type == TransactionType.DUE
    )


def calculate_balances(transactions: Sequence[Transaction]) -> Balances:
    """
    Compute valid dues, valid payments, open payments and the due date.

    The due date is the one of the earliest due transaction that is not
    covered by payments yet. If all dues are covered, the due date of the
    last valid due transaction is reported.
    """
    dues = 0
    payments = 0
    open_payments = 0
    default_due_date: date | None = None

    for tx in transactions:
        if tx.status == TransactionStatus.VALID:
            if tx.transaction_type == TransactionType.PAYMENT:
                payments += tx.amount.gross_cent
            elif tx.transaction_type == TransactionType.DUE:
                dues += tx.amount.gross_cent
                if tx.due_date is not None:
                    default_due_date = tx.due_date
        elif tx.status in (TransactionStatus.TENTATIVE, TransactionStatus.PENDING):
            if tx.transaction_type == TransactionType.PAYMENT:
                open_payments += tx.amount.gross_cent

    due_date = default_due_date
    accrued_dues = 0
    for tx in _valid_dues(transactions):
        accrued_dues += tx.amount.gross_cent
        if accrued_dues > payments:
            # earliest unpaid dues determine the urgency
            if tx.due_date is not None:
                due_date = tx.due_date
            break

    return Balances(dues=dues, payments=payments, open_payments=open_payments, due_date=due_date)


def dues_by_vat(transactions: Iterable[Transaction]) -> dict[Decimal, int]:
    """Sum of valid dues per VAT-rate bucket."""
    result: dict[Decimal, int] = {}
    for tx in _valid_dues(transactions):
        key = vat_key(tx.amount.vat_rate)
        result[key] = result.get(key, 0) + tx.amount.gross_cent
    return result


def pseudo_payments_from_negative_dues(transactions: Iterable[Transaction]) -> int:
    """Total of refunded (negative) valid dues, counted as payments on cancellation."""
    return sum(-tx.amount.gross_cent for tx in _valid_dues(transactions) if tx.amount.gross_cent < 0)


def has_valid_payments(transactions: Iterable[Transaction]) -> bool:
    return any(
        tx.status == TransactionStatus.VALID
        and tx.transaction_type == TransactionType.PAYMENT
        and tx.amount.gross_cent != 0
        for tx in transactions
    )
