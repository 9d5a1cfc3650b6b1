"""
Ledger-specific exceptions for financial operations.

Exception Hierarchy:
    LedgerError (base)
    ├── AccountNotFound - Account lookup failures
    ├── InvalidAmount - Non-positive or non-integer amount
    ├── InactiveAccount - Operations on inactive accounts
    └── InsufficientBalance - Debit would take a non-negative account below zero
        ├── InsufficientFunds - A user's available balance is too low
        └── InsufficientEscrow - A user's escrow balance is too low

Usage:
    from payments.ledger.exceptions import InsufficientFunds

    try:
        ledger.debit(user.id, 5000, "Withdrawal")
    except InsufficientFunds as e:
        print(f"Need {e.required}, have {e.available}")
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from rest_framework import status

from core.exceptions import BaseApplicationError

if TYPE_CHECKING:
    import uuid
    from typing import Any


class LedgerError(BaseApplicationError):
    """Base exception for all ledger operations."""

    default_error_code: str = "LEDGER_ERROR"


class AccountNotFound(LedgerError):
    default_error_code: str = "ACCOUNT_NOT_FOUND"
    http_status: int = status.HTTP_404_NOT_FOUND


class InvalidAmount(LedgerError):
    """Raised when an amount is not a positive whole number of cents."""

    default_error_code: str = "INVALID_AMOUNT"


class InactiveAccount(LedgerError):
    """Raised when attempting to move money through a deactivated account."""

    default_error_code: str = "INACTIVE_ACCOUNT"
    http_status: int = status.HTTP_409_CONFLICT


class InsufficientBalance(LedgerError):
    """
    Raised when an account has insufficient funds for an operation.

    Attributes:
        account_id: The UUID of the account with insufficient funds
        required: The amount (in cents) that was required
        available: The amount (in cents) that was available
    """

    default_error_code: str = "INSUFFICIENT_BALANCE"
    http_status: int = status.HTTP_409_CONFLICT

    def __init__(
        self,
        account_id: uuid.UUID,
        required: int,
        available: int,
        error_code: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        self.account_id = account_id
        self.required = required
        self.available = available

        message = (
            f"Account {account_id} has insufficient balance: "
            f"required {required} cents, available {available} cents"
        )

        full_details = {
            "account_id": str(account_id),
            "required_cents": required,
            "available_cents": available,
        }
        if details:
            full_details.update(details)

        super().__init__(
            message=message,
            error_code=error_code,
            details=full_details,
        )


class InsufficientFunds(InsufficientBalance):
    default_error_code: str = "INSUFFICIENT_FUNDS"


class InsufficientEscrow(InsufficientBalance):
    default_error_code: str = "INSUFFICIENT_ESCROW"
