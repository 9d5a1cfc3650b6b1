"""
Ledger models for double-entry bookkeeping.

- LedgerAccount: Holds monetary value (user balance, user escrow, external world)
- LedgerEntry: Records one movement between two accounts

A user's "balance" and "escrow balance" are the balances of their
USER_BALANCE and USER_ESCROW accounts. History lines shown to users are
derived from the entries touching those accounts, so balance and history
can never disagree.

Usage:
    from payments.ledger.models import LedgerAccount, AccountType

    account = LedgerAccount.objects.get(type=AccountType.USER_ESCROW, owner_id=user.id)
    account.get_balance()  # cents
"""

from __future__ import annotations

from django.db import models
from django.db.models import Case, Q, Sum, Value, When
from django.db.models.functions import Coalesce

from core.model_mixins import UUIDPrimaryKeyMixin


class AccountType(models.TextChoices):
    """
    Types of ledger accounts.

    Values:
        USER_BALANCE: A user's available funds (never negative)
        USER_ESCROW: A user's funds committed to in-flight requests (never negative)
        EXTERNAL_FUNDING: Money entering/leaving through payment providers
            and bank transfers (allowed negative)
        ESCROW_VOID: Escrow removed on cancellation, awaiting refund to payer
    """

    USER_BALANCE = "user_balance", "User Balance"
    USER_ESCROW = "user_escrow", "User Escrow"
    EXTERNAL_FUNDING = "external_funding", "External Funding"
    ESCROW_VOID = "escrow_void", "Escrow Void"


class EntryType(models.TextChoices):
    """
    Types of ledger entries.

    Values:
        DEPOSIT: User added funds (external -> balance)
        WITHDRAWAL: User withdrew funds (balance -> external)
        PAYMENT_CAPTURED: Provider payment credited for a request (external -> balance)
        ESCROW_HOLD: Funds committed to escrow (balance -> escrow)
        ESCROW_RELEASE: Escrow paid out on delivery (escrow -> balance)
        ESCROW_REMOVED: Escrow voided on cancellation (escrow -> void)
        REFUND: Voided escrow returned to the payer (void -> external)
    """

    DEPOSIT = "deposit", "Deposit"
    WITHDRAWAL = "withdrawal", "Withdrawal"
    PAYMENT_CAPTURED = "payment_captured", "Payment Captured"
    ESCROW_HOLD = "escrow_hold", "Escrow Hold"
    ESCROW_RELEASE = "escrow_release", "Escrow Release"
    ESCROW_REMOVED = "escrow_removed", "Escrow Removed"
    REFUND = "refund", "Refund"


class LedgerAccount(UUIDPrimaryKeyMixin, models.Model):
    """
    A ledger account that holds monetary value.

    The balance is never stored; it is the sum of credits minus the sum of
    debits over the account's entries.

    Fields:
        type: Account category
        owner_id: UUID of the owning user (None for system accounts)
        currency: ISO 4217 currency code
        allow_negative: Whether balance can go negative (external accounts)
        is_active: Whether the account accepts new entries
        created_at: Timestamp when account was created

    Constraints:
        - Unique combination of (type, owner_id, currency)
    """

    type = models.CharField(
        max_length=50,
        choices=AccountType.choices,
        help_text="Category of this account",
    )
    owner_id = models.UUIDField(
        null=True,
        blank=True,
        db_index=True,
        help_text="UUID of the user that owns this account",
    )
    currency = models.CharField(
        max_length=3,
        default="usd",
        help_text="ISO 4217 currency code",
    )
    allow_negative = models.BooleanField(
        default=False,
        help_text="Whether this account can have a negative balance",
    )
    is_active = models.BooleanField(
        default=True,
        db_index=True,
        help_text="Whether this account is active",
    )
    created_at = models.DateTimeField(
        auto_now_add=True,
        db_index=True,
        help_text="Timestamp when this account was created",
    )

    class Meta:
        constraints = [
            models.UniqueConstraint(
                fields=["type", "owner_id", "currency"],
                name="unique_account_per_owner",
            )
        ]
        indexes = [
            models.Index(
                fields=["type", "currency"], name="ledger_account_type_cur_idx"
            ),
        ]

    def __str__(self) -> str:
        if self.owner_id:
            return f"{self.get_type_display()} ({self.owner_id})"
        return self.get_type_display()

    def get_balance(self) -> int:
        """
        Compute current balance from entries.

        Returns:
            Sum of credits minus sum of debits, in cents
        """
        result = LedgerEntry.objects.filter(
            Q(credit_account=self) | Q(debit_account=self)
        ).aggregate(
            credits=Coalesce(
                Sum(
                    Case(
                        When(credit_account=self, then="amount_cents"),
                        default=Value(0),
                        output_field=models.BigIntegerField(),
                    )
                ),
                Value(0),
                output_field=models.BigIntegerField(),
            ),
            debits=Coalesce(
                Sum(
                    Case(
                        When(debit_account=self, then="amount_cents"),
                        default=Value(0),
                        output_field=models.BigIntegerField(),
                    )
                ),
                Value(0),
                output_field=models.BigIntegerField(),
            ),
        )
        return result["credits"] - result["debits"]


class LedgerEntry(models.Model):
    """
    An immutable movement of money between two accounts.

    The auto-increment primary key doubles as the insertion sequence, which
    keeps history ordering stable for entries written in the same batch.

    Constraints:
        - amount_cents must be positive
        - idempotency_key must be unique
    """

    created_at = models.DateTimeField(
        auto_now_add=True,
        db_index=True,
        help_text="Timestamp when this entry was recorded",
    )

    debit_account = models.ForeignKey(
        LedgerAccount,
        on_delete=models.PROTECT,
        related_name="debit_entries",
        help_text="Account money is taken from",
    )
    credit_account = models.ForeignKey(
        LedgerAccount,
        on_delete=models.PROTECT,
        related_name="credit_entries",
        help_text="Account money is added to",
    )
    amount_cents = models.PositiveBigIntegerField(
        help_text="Amount in cents (always positive)",
    )
    currency = models.CharField(
        max_length=3,
        default="usd",
        help_text="ISO 4217 currency code",
    )

    entry_type = models.CharField(
        max_length=50,
        choices=EntryType.choices,
        help_text="Category of this entry",
    )
    reference_id = models.UUIDField(
        null=True,
        blank=True,
        help_text="UUID of related business entity (e.g., delivery request ID)",
    )
    reference_type = models.CharField(
        max_length=50,
        null=True,
        blank=True,
        help_text="Type of related entity (e.g., 'delivery_request', 'refund')",
    )

    description = models.TextField(
        blank=True,
        default="",
        help_text="Human-readable description shown in user history",
    )
    metadata = models.JSONField(
        default=dict,
        blank=True,
        help_text="Arbitrary JSON data for extensibility",
    )

    created_by = models.CharField(
        max_length=255,
        null=True,
        blank=True,
        help_text="Identifier of service/user that created this entry",
    )
    idempotency_key = models.CharField(
        max_length=255,
        unique=True,
        help_text="Unique key to prevent duplicate entries",
    )

    class Meta:
        ordering = ["id"]
        verbose_name_plural = "ledger entries"
        indexes = [
            models.Index(
                fields=["reference_type", "reference_id"],
                name="ledger_entry_reference_idx",
            ),
            models.Index(fields=["entry_type"], name="ledger_entry_type_idx"),
        ]
        constraints = [
            models.CheckConstraint(
                condition=Q(amount_cents__gt=0),
                name="ledger_entry_amount_cents_positive",
            )
        ]

    def __str__(self) -> str:
        return f"{self.get_entry_type_display()}: {self.amount_cents} cents"
