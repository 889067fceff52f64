"""Domain models representing attendee, ledger and allocation state.

These are plain value objects with no persistence or transport concerns.
Changes are expressed with dataclasses.replace so that every
read-modify-write step is explicit at the call site.
"""

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from types import MappingProxyType

from .ports import PaymentMethod, Status, TransactionStatus, TransactionType

COUNT_AREA_PACKAGE = "package"

# appended to identity and zip of deleted attendees to free their unique constraints
DELETED_SUFFIX_PREFIX = "_d_"


def _frozen_mapping(value: Mapping[str, int] | None) -> Mapping[str, int]:
    return MappingProxyType(dict(value or {}))


@dataclass(frozen=True)
class Amount:
    """Signed monetary amount in cents, tagged with its VAT rate in percent."""

    currency: str
    gross_cent: int
    vat_rate: Decimal


@dataclass(frozen=True)
class Transaction:
    """A ledger transaction. Owned by the ledger, read-only for this service."""

    debitor_id: int
    transaction_type: TransactionType
    amount: Amount
    status: TransactionStatus
    method: PaymentMethod = PaymentMethod.INTERNAL
    comment: str = ""
    effective_date: date | None = None
    due_date: date | None = None
    id: str | None = None


@dataclass(frozen=True)
class Attendee:
    """
    Attendee registration record.

    packages maps package codes to selected counts. The cache_* fields are
    projections of the ledger and are only ever written by dues reconciliation.
    """

    id: int
    nickname: str
    email: str
    zip: str
    created_at: datetime
    identity: str = ""
    registration_language: str = "en-US"
    packages: Mapping[str, int] = field(default_factory=dict)
    cache_total_dues: int = 0
    cache_payment_balance: int = 0
    cache_open_balance: int = 0
    cache_due_date: date | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "packages", _frozen_mapping(self.packages))

    def package_count(self, package: str) -> int:
        return self.packages.get(package, 0)


@dataclass(frozen=True)
class AdminInfo:
    """Admin-only information attached to an attendee."""

    attendee_id: int
    flags: frozenset[str] = frozenset()
    permissions: frozenset[str] = frozenset()
    admin_comments: str = ""
    manual_dues: int = 0
    manual_dues_description: str = ""


@dataclass(frozen=True)
class StatusChange:
    """Status history entry."""

    attendee_id: int
    status: Status
    comment: str = ""
    created_at: datetime | None = None


@dataclass(frozen=True)
class Count:
    """Occupancy counters for one allocation-limited item."""

    area: str
    name: str
    pending: int = 0
    attending: int = 0

    @property
    def total(self) -> int:
        return self.pending + self.attending


@dataclass(frozen=True)
class CountDelta:
    """Signed change to be atomically added to a Count row."""

    area: str
    name: str
    pending: int = 0
    attending: int = 0

    def is_empty(self) -> bool:
        return self.pending == 0 and self.attending == 0


@dataclass(frozen=True)
class Actor:
    """
    The caller on whose behalf an operation runs.

    subject is the login identity ("" for anonymous callers).
    """

    subject: str = ""
    is_admin: bool = False
    has_api_token: bool = False

    @property
    def is_privileged(self) -> bool:
        return self.is_admin or self.has_api_token
