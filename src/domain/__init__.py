"""
Domain layer - Pure business logic with zero framework imports.

This package contains the attendee registration core: the balance
calculator, dues reconciliation, the status workflow and package
allocation limits. It defines its own port interfaces for the ledger,
the attendee store and notifications, keeping infrastructure out.
"""

from .balances import Balances, calculate_balances
from .dues import DuesReconciler, ReconcileResult, resulting_status
from .exceptions import (
    CannotDeleteError,
    DebitorNotFound,
    DownstreamError,
    DuplicateAttendeeError,
    GoToApprovedFirstError,
    HasPaymentBalanceError,
    InsufficientPaymentError,
    LedgerUnavailable,
    OverrunError,
    RegistrationError,
    SameStatusError,
    StatusChangeError,
    StatusChangeForbidden,
)
from .limits import AllocationLimiter
from .models import Actor, AdminInfo, Amount, Attendee, Count, CountDelta, StatusChange, Transaction
from .policy import DuesPolicy, PackageConfig
from .ports import (
    AttendeeStore,
    NotificationSender,
    PaymentMethod,
    Status,
    TransactionLedger,
    TransactionStatus,
    TransactionType,
)
from .registration import RegistrationService
from .status import CommitResult, StatusMachine

__all__ = [
    "Actor",
    "AdminInfo",
    "AllocationLimiter",
    "Amount",
    "Attendee",
    "AttendeeStore",
    "Balances",
    "CannotDeleteError",
    "CommitResult",
    "Count",
    "CountDelta",
    "DebitorNotFound",
    "DownstreamError",
    "DuesPolicy",
    "DuesReconciler",
    "DuplicateAttendeeError",
    "GoToApprovedFirstError",
    "HasPaymentBalanceError",
    "InsufficientPaymentError",
    "LedgerUnavailable",
    "NotificationSender",
    "OverrunError",
    "PackageConfig",
    "PaymentMethod",
    "ReconcileResult",
    "RegistrationError",
    "RegistrationService",
    "SameStatusError",
    "Status",
    "StatusChange",
    "StatusChangeError",
    "StatusChangeForbidden",
    "StatusMachine",
    "Transaction",
    "TransactionLedger",
    "TransactionStatus",
    "TransactionType",
    "calculate_balances",
    "resulting_status",
]
