"""
In-memory ledger adapter - Implements TransactionLedger for development and tests.

Mirrors the behavior of the payment service: unknown debitors raise
DebitorNotFound, appended transactions are kept in append order.
"""

import logging
import threading

from src.domain.exceptions import DebitorNotFound
from src.domain.models import Transaction

logger = logging.getLogger(__name__)


class InMemoryTransactionLedger:
    """
    Implements TransactionLedger protocol with a dict of lists.

    Uses structural subtyping - no explicit inheritance from Protocol.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._data: dict[int, list[Transaction]] = {}
        self._recording: list[Transaction] = []
        self.simulate_list_error: Exception | None = None
        self.simulate_append_error: Exception | None = None

    def list_transactions(self, debitor_id: int) -> list[Transaction]:
        if self.simulate_list_error is not None:
            raise self.simulate_list_error
        with self._lock:
            if debitor_id not in self._data:
                raise DebitorNotFound(debitor_id)
            return list(self._data[debitor_id])

    def append_transaction(self, transaction: Transaction) -> None:
        if self.simulate_append_error is not None:
            raise self.simulate_append_error
        self.inject(transaction)
        with self._lock:
            self._recording.append(transaction)
        logger.info(
            "add transaction debitor %d type %s status %s for %d cents %s",
            transaction.debitor_id,
            transaction.transaction_type.value,
            transaction.status.value,
            transaction.amount.gross_cent,
            transaction.amount.currency,
        )

    def inject(self, transaction: Transaction) -> None:
        """Add a transaction without recording it, e.g. a payment made elsewhere."""
        with self._lock:
            self._data.setdefault(transaction.debitor_id, []).append(transaction)

    def recording(self) -> list[Transaction]:
        """Transactions appended through the port, in order."""
        with self._lock:
            return list(self._recording)

    def reset(self) -> None:
        with self._lock:
            self._data.clear()
            self._recording.clear()
        self.simulate_list_error = None
        self.simulate_append_error = None
