"""
HTTP ledger adapter - Implements TransactionLedger against the payment service.

Transactions are read and appended through the payment service REST API:

    GET  {base}/api/rest/v1/transactions?debitor_id=<id>
    POST {base}/api/rest/v1/transactions

A 404 on listing means the payment service has never seen the debitor,
which is reported as DebitorNotFound. Every other failure, including
transport errors, becomes LedgerUnavailable. No retries are attempted,
retry policy belongs to the caller.
"""

import logging
from datetime import date
from decimal import Decimal

import httpx
from pydantic import BaseModel, Field

from src.domain.exceptions import DebitorNotFound, LedgerUnavailable
from src.domain.models import Amount, Transaction
from src.domain.ports import PaymentMethod, TransactionStatus, TransactionType

logger = logging.getLogger(__name__)

API_KEY_HEADER = "X-Api-Key"


class AmountDto(BaseModel):
    """Wire representation of an amount."""

    currency: str
    gross_cent: int
    vat_rate: Decimal


class TransactionDto(BaseModel):
    """Wire representation of a ledger transaction."""

    transaction_identifier: str | None = None
    debitor_id: int
    transaction_type: TransactionType
    method: PaymentMethod = PaymentMethod.INTERNAL
    amount: AmountDto
    comment: str = ""
    status: TransactionStatus
    effective_date: date | None = None
    due_date: date | None = None

    @classmethod
    def from_domain(cls, tx: Transaction) -> "TransactionDto":
        return cls(
            transaction_identifier=tx.id,
            debitor_id=tx.debitor_id,
            transaction_type=tx.transaction_type,
            method=tx.method,
            amount=AmountDto(
                currency=tx.amount.currency,
                gross_cent=tx.amount.gross_cent,
                vat_rate=tx.amount.vat_rate,
            ),
            comment=tx.comment,
            status=tx.status,
            effective_date=tx.effective_date,
            due_date=tx.due_date,
        )

    def to_domain(self) -> Transaction:
        return Transaction(
            id=self.transaction_identifier,
            debitor_id=self.debitor_id,
            transaction_type=self.transaction_type,
            method=self.method,
            amount=Amount(
                currency=self.amount.currency,
                gross_cent=self.amount.gross_cent,
                vat_rate=self.amount.vat_rate,
            ),
            comment=self.comment,
            status=self.status,
            effective_date=self.effective_date,
            due_date=self.due_date,
        )


class TransactionListDto(BaseModel):
    """Response body of the transaction listing."""

    payload: list[TransactionDto] = Field(default_factory=list)


class HttpTransactionLedger:
    """
    Implements TransactionLedger protocol via httpx.

    Uses structural subtyping - no explicit inheritance from Protocol.
    """

    def __init__(self, client: httpx.Client, base_url: str, api_token: str = "") -> None:
        """
        Initialize ledger client.

        Args:
            client: httpx client, owned and closed by the caller
            base_url: Payment service base URL
            api_token: Value for the X-Api-Key header
        """
        self._client = client
        self._base_url = base_url.rstrip("/")
        self._headers = {API_KEY_HEADER: api_token} if api_token else {}

    def list_transactions(self, debitor_id: int) -> list[Transaction]:
        url = f"{self._base_url}/api/rest/v1/transactions"
        response = self._perform("GET", url, params={"debitor_id": debitor_id})
        if response.status_code == httpx.codes.NOT_FOUND:
            raise DebitorNotFound(debitor_id)
        self._raise_for_status(response, "list transactions", debitor_id)

        try:
            body = TransactionListDto.model_validate_json(response.content)
        except ValueError as e:
            logger.error("unparseable transaction list for debitor %d: %s", debitor_id, e)
            raise LedgerUnavailable("payment service returned an invalid transaction list") from e
        return [dto.to_domain() for dto in body.payload]

    def append_transaction(self, transaction: Transaction) -> None:
        url = f"{self._base_url}/api/rest/v1/transactions"
        body = TransactionDto.from_domain(transaction).model_dump(mode="json", exclude_none=True)
        response = self._perform("POST", url, json=body)
        self._raise_for_status(response, "append transaction", transaction.debitor_id)

    def _perform(self, method: str, url: str, **kwargs: object) -> httpx.Response:
        try:
            return self._client.request(method, url, headers=self._headers, **kwargs)
        except httpx.RequestError as e:
            logger.error("payment service request %s %s failed: %s", method, url, e)
            raise LedgerUnavailable(f"payment service unreachable: {e}") from e

    @staticmethod
    def _raise_for_status(response: httpx.Response, action: str, debitor_id: int) -> None:
        if response.status_code >= 300:
            logger.error(
                "payment service failed to %s for debitor %d: status %d",
                action,
                debitor_id,
                response.status_code,
            )
            raise LedgerUnavailable(f"payment service returned status {response.status_code}")
