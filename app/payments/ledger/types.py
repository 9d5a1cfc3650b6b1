"""
Data types for ledger operations.

Types:
    Money: A monetary amount in cents with currency
    RecordEntryParams: Parameters for recording a ledger entry
    HistoryItem: One line of a user's balance or escrow history
    WalletSnapshot: A user's balances plus both histories

Usage:
    from payments.ledger.types import RecordEntryParams

    params = RecordEntryParams(
        debit_account_id=external.id,
        credit_account_id=balance.id,
        amount_cents=5000,
        entry_type=EntryType.DEPOSIT,
        idempotency_key='deposit:pi_123',
    )
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from .exceptions import InvalidAmount


@dataclass(frozen=True)
class Money:
    """
    A monetary amount in the currency's smallest unit.

    Example:
        str(Money(cents=5000))  # "$50.00 USD"
    """

    cents: int
    currency: str = "usd"

    def __str__(self) -> str:
        return f"${self.cents / 100:.2f} {self.currency.upper()}"


@dataclass
class RecordEntryParams:
    """
    Parameters for recording a ledger entry.

    Every entry debits one account and credits another.

    Required Attributes:
        debit_account_id: UUID of the account money leaves
        credit_account_id: UUID of the account money enters
        amount_cents: Amount in cents (must be a positive int)
        entry_type: EntryType value
        idempotency_key: Unique key; replaying it returns the original entry

    Optional Attributes:
        reference_id / reference_type: Business entity the entry belongs to
        description: Human-readable description (shown in user history)
        metadata: Arbitrary JSON-serializable data
        created_by: Identifier of the service/user creating the entry

    Raises:
        InvalidAmount: If amount_cents is not a positive int
        ValueError: If the key is empty or both sides are the same account
    """

    debit_account_id: uuid.UUID
    credit_account_id: uuid.UUID
    amount_cents: int
    entry_type: str
    idempotency_key: str

    reference_id: uuid.UUID | None = None
    reference_type: str | None = None
    description: str | None = None
    metadata: dict[str, Any] | None = field(default_factory=dict)
    created_by: str | None = None

    def __post_init__(self) -> None:
        validate_amount(self.amount_cents)
        if not self.idempotency_key:
            raise ValueError("idempotency_key is required")
        if self.debit_account_id == self.credit_account_id:
            raise ValueError("debit_account_id and credit_account_id must be different")


@dataclass(frozen=True)
class HistoryItem:
    """
    One line of a user's balance or escrow history.

    type is one of: add, withdraw, deposit, withdrawal (balance history) or
    escrow_hold, escrow_release, escrow_removed (escrow history).
    """

    type: str
    amount_cents: int
    description: str
    created_at: datetime
    reference_id: uuid.UUID | None = None


@dataclass(frozen=True)
class WalletSnapshot:
    """A user's available and escrowed funds with their audit trails."""

    user_id: uuid.UUID
    currency: str
    balance_cents: int
    escrow_balance_cents: int
    balance_history: list[HistoryItem]
    escrow_history: list[HistoryItem]


def validate_amount(amount_cents: Any) -> None:
    """
    Reject amounts that are not a positive whole number of cents.

    bool is rejected explicitly because it is an int subclass.
    """
    if (
        isinstance(amount_cents, bool)
        or not isinstance(amount_cents, int)
        or amount_cents <= 0
    ):
        raise InvalidAmount(
            "Amount must be a positive whole number of cents",
            details={"amount_cents": repr(amount_cents)},
        )
