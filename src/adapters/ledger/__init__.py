"""Ledger adapters - Transaction ledger implementations."""

from .http import HttpTransactionLedger
from .memory import InMemoryTransactionLedger

__all__ = ["HttpTransactionLedger", "InMemoryTransactionLedger"]
