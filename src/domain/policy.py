"""
Dues policy - immutable configuration snapshot for the domain engines.

A DuesPolicy is built once from settings and handed to every engine, so
reconciliation never reads process-wide configuration while it runs.
"""

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import date, timedelta
from decimal import Decimal
from types import MappingProxyType

VAT_QUANTUM = Decimal("0.000001")


def vat_key(rate: Decimal | float | int | str) -> Decimal:
    """Normalize a VAT rate into the bucket key used for grouping dues."""
    return Decimal(str(rate)).quantize(VAT_QUANTUM)


@dataclass(frozen=True)
class PackageConfig:
    """Price (cents), VAT rate (percent) and capacity limit of one package."""

    price: int
    vat_rate: Decimal = Decimal("19")
    limit: int = 0
    max_count: int = 1


@dataclass(frozen=True)
class DuesPolicy:
    """Read-only view of everything reconciliation and status logic depend on."""

    packages: Mapping[str, PackageConfig] = field(default_factory=dict)
    currency: str = "EUR"
    guest_flag: str = "guest"
    manual_dues_vat_rate: Decimal = Decimal("19")
    grace_amount_cents: int = 100
    due_days: int = 14
    earliest_due_date: date | None = None
    latest_due_date: date | None = None
    human_date_format: str = "%d.%m.%Y"
    public_url: str = ""
    regdesk_permission: str = "regdesk"

    def __post_init__(self) -> None:
        object.__setattr__(self, "packages", MappingProxyType(dict(self.packages)))

    def limited_packages(self) -> dict[str, PackageConfig]:
        return {code: conf for code, conf in self.packages.items() if conf.limit > 0}

    def due_date_for(self, today: date) -> date:
        """Due date for dues booked today, clamped into the configured window."""
        due = today + timedelta(days=self.due_days)
        if self.earliest_due_date is not None and due < self.earliest_due_date:
            due = self.earliest_due_date
        if self.latest_due_date is not None and due > self.latest_due_date:
            due = self.latest_due_date
        return due

    def format_cents(self, value: int) -> str:
        return f"{self.currency} {value / 100.0:0.2f}"
