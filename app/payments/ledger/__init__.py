"""
Ledger - double-entry bookkeeping behind every wallet.

A user's available balance and escrow balance are two ledger accounts;
every movement is an immutable entry debiting one account and crediting
another, so balances and histories are always derived from the same rows.

Public API:
    ledger / LedgerService - credit, debit, move_to_escrow,
        release_from_escrow, remove_from_escrow, hold_wallet_escrow,
        release_wallet_escrow, fund_escrow,
        refund_voided, get_snapshot
    LedgerAccount, LedgerEntry, AccountType, EntryType
    Money, RecordEntryParams, HistoryItem, WalletSnapshot
    LedgerError, AccountNotFound, InvalidAmount, InactiveAccount,
    InsufficientBalance, InsufficientFunds, InsufficientEscrow

Usage:
    from payments.ledger import ledger, InsufficientFunds

    ledger.credit(user.id, 10000, "Top up")
    try:
        ledger.move_to_escrow(user.id, 25000, "Send to escrow")
    except InsufficientFunds as e:
        print(f"Need {e.required}, have {e.available}")
"""

from .exceptions import (
    AccountNotFound,
    InactiveAccount,
    InsufficientBalance,
    InsufficientEscrow,
    InsufficientFunds,
    InvalidAmount,
    LedgerError,
)
from .models import AccountType, EntryType, LedgerAccount, LedgerEntry
from .services import LedgerService, ledger
from .types import HistoryItem, Money, RecordEntryParams, WalletSnapshot

__all__ = [
    # Models
    "LedgerAccount",
    "LedgerEntry",
    "AccountType",
    "EntryType",
    # Service
    "ledger",
    "LedgerService",
    # Types
    "Money",
    "RecordEntryParams",
    "HistoryItem",
    "WalletSnapshot",
    # Exceptions
    "LedgerError",
    "AccountNotFound",
    "InvalidAmount",
    "InactiveAccount",
    "InsufficientBalance",
    "InsufficientFunds",
    "InsufficientEscrow",
]
