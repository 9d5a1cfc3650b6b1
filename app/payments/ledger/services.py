"""
Ledger service layer for financial operations.

LedgerService is the only code path that changes a user's balance or
escrow balance. Every write goes through record_entries, which:

1. Opens a transaction and locks every touched account row
   (select_for_update, ordered by id to avoid deadlocks)
2. Returns existing entries for replayed idempotency keys
3. Validates balances after the lock is held
4. Writes all entries or none

User-level operations:
    credit              external -> balance            (history: add)
    debit               balance -> external            (history: withdraw)
    move_to_escrow      balance -> escrow              (withdrawal / escrow_hold)
    release_from_escrow escrow -> balance              (escrow_release / deposit)
    remove_from_escrow  escrow -> void                 (escrow_removed)
    hold_wallet_escrow  move_to_escrow tagged as wallet escrow
    release_wallet_escrow  release_from_escrow, limited to wallet escrow
    fund_escrow         external -> balance -> escrow  (deposit, withdrawal / escrow_hold)
    refund_voided       void -> external               (no user history)

Usage:
    from payments.ledger.services import ledger

    ledger.credit(user.id, 10000, "Top up")
    balance, escrow = ledger.move_to_escrow(user.id, 4000, "Send to escrow")
"""

from __future__ import annotations

import logging
import uuid

from django.conf import settings
from django.db import IntegrityError, transaction
from django.db.models import Q, Sum

from .exceptions import (
    AccountNotFound,
    InactiveAccount,
    InsufficientBalance,
    InsufficientEscrow,
    InsufficientFunds,
)
from .models import AccountType, EntryType, LedgerAccount, LedgerEntry
from .types import HistoryItem, Money, RecordEntryParams, WalletSnapshot, validate_amount

logger = logging.getLogger(__name__)


# (account type, entry type, side) -> history line type shown to the user.
# Side is "credit" when money enters the account, "debit" when it leaves.
HISTORY_TYPES: dict[tuple[str, str, str], str] = {
    (AccountType.USER_BALANCE, EntryType.DEPOSIT, "credit"): "add",
    (AccountType.USER_BALANCE, EntryType.WITHDRAWAL, "debit"): "withdraw",
    (AccountType.USER_BALANCE, EntryType.PAYMENT_CAPTURED, "credit"): "deposit",
    (AccountType.USER_BALANCE, EntryType.ESCROW_RELEASE, "credit"): "deposit",
    (AccountType.USER_BALANCE, EntryType.ESCROW_HOLD, "debit"): "withdrawal",
    (AccountType.USER_ESCROW, EntryType.ESCROW_HOLD, "credit"): "escrow_hold",
    (AccountType.USER_ESCROW, EntryType.ESCROW_RELEASE, "debit"): "escrow_release",
    (AccountType.USER_ESCROW, EntryType.ESCROW_REMOVED, "debit"): "escrow_removed",
}


# reference_type of escrow moved by the user themselves rather than for a request.
WALLET_REFERENCE = "wallet"


def _default_currency() -> str:
    return settings.DEFAULT_CURRENCY


def _key(idempotency_key: str | None, prefix: str) -> str:
    return idempotency_key or f"{prefix}:{uuid.uuid4().hex}"


class LedgerService:
    """
    Service class for ledger operations.

    All methods are static - no instance state is maintained.
    """

    # =========================================================================
    # Accounts
    # =========================================================================

    @staticmethod
    def get_or_create_account(
        account_type: AccountType | str,
        owner_id: uuid.UUID | None = None,
        currency: str | None = None,
        allow_negative: bool = False,
    ) -> LedgerAccount:
        """
        Get existing account or create new one by (type, owner_id, currency).
        """
        account, _ = LedgerAccount.objects.get_or_create(
            type=account_type,
            owner_id=owner_id,
            currency=currency or _default_currency(),
            defaults={"allow_negative": allow_negative},
        )
        return account

    @staticmethod
    def get_account(account_id: uuid.UUID) -> LedgerAccount:
        """
        Raises:
            AccountNotFound: If account doesn't exist
        """
        try:
            return LedgerAccount.objects.get(id=account_id)
        except LedgerAccount.DoesNotExist:
            raise AccountNotFound(
                f"Account {account_id} not found",
                details={"account_id": str(account_id)},
            )

    @staticmethod
    def user_accounts(
        user_id: uuid.UUID, currency: str | None = None
    ) -> tuple[LedgerAccount, LedgerAccount]:
        """Return the (balance, escrow) account pair of a user, creating them lazily."""
        return (
            LedgerService.get_or_create_account(AccountType.USER_BALANCE, user_id, currency),
            LedgerService.get_or_create_account(AccountType.USER_ESCROW, user_id, currency),
        )

    @staticmethod
    def external_account(currency: str | None = None) -> LedgerAccount:
        return LedgerService.get_or_create_account(
            AccountType.EXTERNAL_FUNDING, currency=currency, allow_negative=True
        )

    @staticmethod
    def void_account(currency: str | None = None) -> LedgerAccount:
        return LedgerService.get_or_create_account(AccountType.ESCROW_VOID, currency=currency)

    # =========================================================================
    # Recording
    # =========================================================================

    @staticmethod
    def _validate_account_for_debit(account: LedgerAccount, amount_cents: int) -> None:
        """
        Raises:
            InactiveAccount: If account is inactive
            InsufficientFunds / InsufficientEscrow / InsufficientBalance:
                If a non-negative account lacks funds
        """
        if not account.is_active:
            raise InactiveAccount(
                f"Account {account.id} is inactive",
                details={"account_id": str(account.id)},
            )

        if account.allow_negative:
            return

        current_balance = account.get_balance()
        if current_balance >= amount_cents:
            return

        error_class = {
            AccountType.USER_BALANCE: InsufficientFunds,
            AccountType.USER_ESCROW: InsufficientEscrow,
        }.get(account.type, InsufficientBalance)
        details = {"owner_id": str(account.owner_id)} if account.owner_id else None
        raise error_class(
            account_id=account.id,
            required=amount_cents,
            available=current_balance,
            details=details,
        )

    @staticmethod
    def _validate_account_for_credit(account: LedgerAccount) -> None:
        if not account.is_active:
            raise InactiveAccount(
                f"Account {account.id} is inactive",
                details={"account_id": str(account.id)},
            )

    @staticmethod
    def record_entry(params: RecordEntryParams) -> LedgerEntry:
        """Record a single ledger entry (see record_entries)."""
        return LedgerService.record_entries([params])[0]

    @staticmethod
    def record_entries(entries: list[RecordEntryParams]) -> list[LedgerEntry]:
        """
        Record multiple ledger entries atomically.

        All entries succeed or all fail. Entries are applied in order, so
        a later entry may spend what an earlier one credited. Replayed
        idempotency keys return the stored entry unchanged.

        Raises:
            AccountNotFound: If any account doesn't exist
            InactiveAccount: If any account is inactive
            InsufficientBalance (or a subclass): If a debit account lacks funds
        """
        if not entries:
            return []

        results: list[LedgerEntry] = []

        with transaction.atomic():
            account_ids: set[uuid.UUID] = set()
            for params in entries:
                account_ids.add(params.debit_account_id)
                account_ids.add(params.credit_account_id)

            # Consistent lock order prevents deadlocks between concurrent
            # batches touching the same accounts.
            accounts = {
                acc.id: acc
                for acc in LedgerAccount.objects.filter(id__in=account_ids)
                .select_for_update()
                .order_by("id")
            }

            for account_id in account_ids:
                if account_id not in accounts:
                    raise AccountNotFound(
                        f"Account {account_id} not found",
                        details={"account_id": str(account_id)},
                    )

            for params in entries:
                debit_account = accounts[params.debit_account_id]
                credit_account = accounts[params.credit_account_id]

                # Idempotency first: validating a replay would check the
                # balance after the original entry was already applied.
                existing = LedgerEntry.objects.filter(
                    idempotency_key=params.idempotency_key
                ).first()
                if existing is not None:
                    logger.info(
                        "Ledger entry replayed",
                        extra={
                            "idempotency_key": params.idempotency_key,
                            "entry_id": existing.id,
                        },
                    )
                    results.append(existing)
                    continue

                LedgerService._validate_account_for_debit(
                    debit_account, params.amount_cents
                )
                LedgerService._validate_account_for_credit(credit_account)

                try:
                    with transaction.atomic():
                        entry = LedgerEntry.objects.create(
                            idempotency_key=params.idempotency_key,
                            debit_account=debit_account,
                            credit_account=credit_account,
                            amount_cents=params.amount_cents,
                            currency=debit_account.currency,
                            entry_type=params.entry_type,
                            reference_id=params.reference_id,
                            reference_type=params.reference_type,
                            description=params.description or "",
                            metadata=params.metadata or {},
                            created_by=params.created_by,
                        )
                except IntegrityError:
                    entry = LedgerEntry.objects.get(
                        idempotency_key=params.idempotency_key
                    )

                logger.info(
                    "Ledger entry recorded",
                    extra={
                        "entry_id": entry.id,
                        "entry_type": params.entry_type,
                        "amount_cents": params.amount_cents,
                        "debit_account_id": str(debit_account.id),
                        "credit_account_id": str(credit_account.id),
                        "reference_type": params.reference_type,
                        "reference_id": str(params.reference_id)
                        if params.reference_id
                        else None,
                    },
                )
                results.append(entry)

        return results

    # =========================================================================
    # User operations
    # =========================================================================

    @staticmethod
    def credit(
        user_id: uuid.UUID,
        amount_cents: int,
        description: str,
        idempotency_key: str | None = None,
        reference_type: str | None = None,
        reference_id: uuid.UUID | None = None,
        created_by: str | None = None,
    ) -> int:
        """
        Add funds to a user's available balance.

        Returns:
            The new balance in cents

        Raises:
            InvalidAmount: If amount_cents is not positive
        """
        validate_amount(amount_cents)
        with transaction.atomic():
            balance, _ = LedgerService.user_accounts(user_id)
            external = LedgerService.external_account(balance.currency)
            LedgerService.record_entry(
                RecordEntryParams(
                    debit_account_id=external.id,
                    credit_account_id=balance.id,
                    amount_cents=amount_cents,
                    entry_type=EntryType.DEPOSIT,
                    idempotency_key=_key(idempotency_key, "deposit"),
                    description=description,
                    reference_type=reference_type,
                    reference_id=reference_id,
                    created_by=created_by,
                )
            )
            return balance.get_balance()

    @staticmethod
    def debit(
        user_id: uuid.UUID,
        amount_cents: int,
        description: str,
        idempotency_key: str | None = None,
        reference_type: str | None = None,
        reference_id: uuid.UUID | None = None,
        created_by: str | None = None,
    ) -> int:
        """
        Withdraw funds from a user's available balance.

        Returns:
            The new balance in cents

        Raises:
            InvalidAmount: If amount_cents is not positive
            InsufficientFunds: If the balance is lower than amount_cents
        """
        validate_amount(amount_cents)
        with transaction.atomic():
            balance, _ = LedgerService.user_accounts(user_id)
            external = LedgerService.external_account(balance.currency)
            LedgerService.record_entry(
                RecordEntryParams(
                    debit_account_id=balance.id,
                    credit_account_id=external.id,
                    amount_cents=amount_cents,
                    entry_type=EntryType.WITHDRAWAL,
                    idempotency_key=_key(idempotency_key, "withdrawal"),
                    description=description,
                    reference_type=reference_type,
                    reference_id=reference_id,
                    created_by=created_by,
                )
            )
            return balance.get_balance()

    @staticmethod
    def move_to_escrow(
        user_id: uuid.UUID,
        amount_cents: int,
        description: str,
        idempotency_key: str | None = None,
        reference_type: str | None = None,
        reference_id: uuid.UUID | None = None,
        created_by: str | None = None,
    ) -> tuple[int, int]:
        """
        Move funds from a user's balance into their escrow.

        Returns:
            (balance_cents, escrow_balance_cents) after the move

        Raises:
            InvalidAmount: If amount_cents is not positive
            InsufficientFunds: If the balance is lower than amount_cents
        """
        validate_amount(amount_cents)
        with transaction.atomic():
            balance, escrow = LedgerService.user_accounts(user_id)
            LedgerService.record_entry(
                RecordEntryParams(
                    debit_account_id=balance.id,
                    credit_account_id=escrow.id,
                    amount_cents=amount_cents,
                    entry_type=EntryType.ESCROW_HOLD,
                    idempotency_key=_key(idempotency_key, "escrow-hold"),
                    description=description,
                    reference_type=reference_type,
                    reference_id=reference_id,
                    created_by=created_by,
                )
            )
            return balance.get_balance(), escrow.get_balance()

    @staticmethod
    def release_from_escrow(
        user_id: uuid.UUID,
        amount_cents: int,
        description: str,
        idempotency_key: str | None = None,
        reference_type: str | None = None,
        reference_id: uuid.UUID | None = None,
        created_by: str | None = None,
    ) -> tuple[int, int]:
        """
        Move funds from a user's escrow back into their available balance.

        Returns:
            (balance_cents, escrow_balance_cents) after the release

        Raises:
            InvalidAmount: If amount_cents is not positive
            InsufficientEscrow: If escrow holds less than amount_cents
        """
        validate_amount(amount_cents)
        with transaction.atomic():
            balance, escrow = LedgerService.user_accounts(user_id)
            LedgerService.record_entry(
                RecordEntryParams(
                    debit_account_id=escrow.id,
                    credit_account_id=balance.id,
                    amount_cents=amount_cents,
                    entry_type=EntryType.ESCROW_RELEASE,
                    idempotency_key=_key(idempotency_key, "escrow-release"),
                    description=description,
                    reference_type=reference_type,
                    reference_id=reference_id,
                    created_by=created_by,
                )
            )
            return balance.get_balance(), escrow.get_balance()

    @staticmethod
    def remove_from_escrow(
        user_id: uuid.UUID,
        amount_cents: int,
        description: str,
        idempotency_key: str | None = None,
        reference_type: str | None = None,
        reference_id: uuid.UUID | None = None,
        created_by: str | None = None,
    ) -> int:
        """
        Void escrowed funds without crediting the user's balance.

        The funds move to the ESCROW_VOID account, from where an approved
        refund returns them to the payer.

        Returns:
            The new escrow balance in cents

        Raises:
            InvalidAmount: If amount_cents is not positive
            InsufficientEscrow: If escrow holds less than amount_cents
        """
        validate_amount(amount_cents)
        with transaction.atomic():
            _, escrow = LedgerService.user_accounts(user_id)
            void = LedgerService.void_account(escrow.currency)
            LedgerService.record_entry(
                RecordEntryParams(
                    debit_account_id=escrow.id,
                    credit_account_id=void.id,
                    amount_cents=amount_cents,
                    entry_type=EntryType.ESCROW_REMOVED,
                    idempotency_key=_key(idempotency_key, "escrow-remove"),
                    description=description,
                    reference_type=reference_type,
                    reference_id=reference_id,
                    created_by=created_by,
                )
            )
            return escrow.get_balance()

    # =========================================================================
    # Wallet escrow
    # =========================================================================

    @staticmethod
    def hold_wallet_escrow(
        user_id: uuid.UUID,
        amount_cents: int,
        description: str,
        idempotency_key: str | None = None,
        created_by: str | None = None,
    ) -> tuple[int, int]:
        """
        move_to_escrow on the user's own initiative, tagged as wallet escrow.

        Only wallet escrow can later leave through release_wallet_escrow;
        escrow held for delivery requests is released by its request.
        """
        return LedgerService.move_to_escrow(
            user_id,
            amount_cents,
            description,
            idempotency_key=idempotency_key,
            reference_type=WALLET_REFERENCE,
            created_by=created_by,
        )

    @staticmethod
    def release_wallet_escrow(
        user_id: uuid.UUID,
        amount_cents: int,
        description: str,
        idempotency_key: str | None = None,
        created_by: str | None = None,
    ) -> tuple[int, int]:
        """
        Return wallet escrow to the user's available balance.

        Returns:
            (balance_cents, escrow_balance_cents) after the release

        Raises:
            InvalidAmount: If amount_cents is not positive
            InsufficientEscrow: If less than amount_cents of the escrow was
                held through the wallet
        """
        validate_amount(amount_cents)
        key = _key(idempotency_key, "escrow-release")
        with transaction.atomic():
            balance, escrow = LedgerService.user_accounts(user_id)
            # Serializes concurrent releases before the releasable sum is read.
            LedgerAccount.objects.select_for_update().get(pk=escrow.pk)

            if not LedgerEntry.objects.filter(idempotency_key=key).exists():
                releasable = LedgerService.wallet_escrow_cents(escrow)
                if releasable < amount_cents:
                    raise InsufficientEscrow(
                        account_id=escrow.id,
                        required=amount_cents,
                        available=releasable,
                        details={"owner_id": str(user_id), "scope": WALLET_REFERENCE},
                    )

            return LedgerService.release_from_escrow(
                user_id,
                amount_cents,
                description,
                idempotency_key=key,
                reference_type=WALLET_REFERENCE,
                created_by=created_by,
            )

    @staticmethod
    def wallet_escrow_cents(escrow: LedgerAccount) -> int:
        """Escrow held through the wallet and not yet released, in cents."""
        wallet_entries = LedgerEntry.objects.filter(reference_type=WALLET_REFERENCE)
        held = wallet_entries.filter(
            credit_account=escrow, entry_type=EntryType.ESCROW_HOLD
        ).aggregate(total=Sum("amount_cents"))["total"] or 0
        released = wallet_entries.filter(
            debit_account=escrow, entry_type=EntryType.ESCROW_RELEASE
        ).aggregate(total=Sum("amount_cents"))["total"] or 0
        return held - released

    # =========================================================================
    # Request settlement
    # =========================================================================

    @staticmethod
    def fund_escrow(
        user_id: uuid.UUID,
        amount_cents: int,
        description: str,
        idempotency_key: str,
        reference_type: str | None = None,
        reference_id: uuid.UUID | None = None,
        created_by: str | None = None,
    ) -> tuple[int, int]:
        """
        Credit an externally captured payment and hold it in escrow.

        Written as one batch: PAYMENT_CAPTURED (external -> balance) then
        ESCROW_HOLD (balance -> escrow). The user's available balance is
        unchanged overall, and no state in between is ever visible.

        Args:
            idempotency_key: Base key; ":capture" and ":hold" are appended

        Returns:
            (balance_cents, escrow_balance_cents) after the hold
        """
        validate_amount(amount_cents)
        with transaction.atomic():
            balance, escrow = LedgerService.user_accounts(user_id)
            external = LedgerService.external_account(balance.currency)
            common = {
                "amount_cents": amount_cents,
                "description": description,
                "reference_type": reference_type,
                "reference_id": reference_id,
                "created_by": created_by,
            }
            LedgerService.record_entries(
                [
                    RecordEntryParams(
                        debit_account_id=external.id,
                        credit_account_id=balance.id,
                        entry_type=EntryType.PAYMENT_CAPTURED,
                        idempotency_key=f"{idempotency_key}:capture",
                        **common,
                    ),
                    RecordEntryParams(
                        debit_account_id=balance.id,
                        credit_account_id=escrow.id,
                        entry_type=EntryType.ESCROW_HOLD,
                        idempotency_key=f"{idempotency_key}:hold",
                        **common,
                    ),
                ]
            )
            return balance.get_balance(), escrow.get_balance()

    @staticmethod
    def refund_voided(
        amount_cents: int,
        description: str,
        idempotency_key: str,
        currency: str | None = None,
        reference_type: str | None = None,
        reference_id: uuid.UUID | None = None,
        created_by: str | None = None,
    ) -> LedgerEntry:
        """
        Return voided escrow to the outside world (provider refund).

        Raises:
            InsufficientBalance: If less than amount_cents was ever voided
        """
        void = LedgerService.void_account(currency)
        external = LedgerService.external_account(void.currency)
        return LedgerService.record_entry(
            RecordEntryParams(
                debit_account_id=void.id,
                credit_account_id=external.id,
                amount_cents=amount_cents,
                entry_type=EntryType.REFUND,
                idempotency_key=idempotency_key,
                description=description,
                reference_type=reference_type,
                reference_id=reference_id,
                created_by=created_by,
            )
        )

    # =========================================================================
    # Queries
    # =========================================================================

    @staticmethod
    def get_balance(account_id: uuid.UUID) -> Money:
        """
        Raises:
            AccountNotFound: If account doesn't exist
        """
        account = LedgerService.get_account(account_id)
        return Money(cents=account.get_balance(), currency=account.currency)

    @staticmethod
    def get_user_balances(user_id: uuid.UUID) -> tuple[int, int]:
        """Return (balance_cents, escrow_balance_cents) for a user."""
        balance, escrow = LedgerService.user_accounts(user_id)
        return balance.get_balance(), escrow.get_balance()

    @staticmethod
    def _history(account: LedgerAccount) -> list[HistoryItem]:
        items: list[HistoryItem] = []
        entries = LedgerEntry.objects.filter(
            Q(debit_account=account) | Q(credit_account=account)
        ).order_by("id")
        for entry in entries:
            side = "credit" if entry.credit_account_id == account.id else "debit"
            history_type = HISTORY_TYPES.get((account.type, entry.entry_type, side))
            if history_type is None:
                continue
            items.append(
                HistoryItem(
                    type=history_type,
                    amount_cents=entry.amount_cents,
                    description=entry.description,
                    created_at=entry.created_at,
                    reference_id=entry.reference_id,
                )
            )
        return items

    @staticmethod
    def get_snapshot(user_id: uuid.UUID) -> WalletSnapshot:
        """
        Return a user's balances and both histories, oldest line first.
        """
        balance, escrow = LedgerService.user_accounts(user_id)
        return WalletSnapshot(
            user_id=user_id,
            currency=balance.currency,
            balance_cents=balance.get_balance(),
            escrow_balance_cents=escrow.get_balance(),
            balance_history=LedgerService._history(balance),
            escrow_history=LedgerService._history(escrow),
        )

    @staticmethod
    def get_entries_by_reference(
        reference_type: str,
        reference_id: uuid.UUID,
    ) -> list[LedgerEntry]:
        """All entries for a business entity, in insertion order."""
        return list(
            LedgerEntry.objects.filter(
                reference_type=reference_type,
                reference_id=reference_id,
            ).order_by("id")
        )


# Singleton instance for convenience
# Usage: from payments.ledger.services import ledger
ledger = LedgerService()
