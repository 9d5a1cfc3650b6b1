"""
Read-only admin views over the ledger.

Balances are computed per row from entries; nothing here writes to the
ledger. Corrections go through LedgerService as new entries.
"""

from django.contrib import admin

from .models import LedgerAccount, LedgerEntry


class ReadOnlyAdminMixin:
    def has_add_permission(self, request, obj=None) -> bool:
        return False

    def has_change_permission(self, request, obj=None) -> bool:
        return False

    def has_delete_permission(self, request, obj=None) -> bool:
        return False


@admin.register(LedgerAccount)
class LedgerAccountAdmin(ReadOnlyAdminMixin, admin.ModelAdmin):
    list_display = [
        "id",
        "type",
        "owner_id",
        "currency",
        "balance",
        "is_active",
        "created_at",
    ]
    list_filter = ["type", "currency", "is_active"]
    search_fields = ["=id", "=owner_id"]
    ordering = ["-created_at"]

    @admin.display(description="Balance")
    def balance(self, obj: LedgerAccount) -> str:
        return f"{obj.get_balance() / 100:.2f} {obj.currency.upper()}"


@admin.register(LedgerEntry)
class LedgerEntryAdmin(ReadOnlyAdminMixin, admin.ModelAdmin):
    """Entries are immutable; the admin only lists and inspects them."""

    list_display = [
        "id",
        "created_at",
        "entry_type",
        "amount",
        "debit_account",
        "credit_account",
        "reference_type",
        "reference_id",
    ]
    list_filter = ["entry_type", "reference_type"]
    search_fields = ["idempotency_key", "=reference_id", "description"]
    list_select_related = ["debit_account", "credit_account"]
    date_hierarchy = "created_at"

    @admin.display(description="Amount", ordering="amount_cents")
    def amount(self, obj: LedgerEntry) -> str:
        return f"{obj.amount_cents / 100:.2f} {obj.currency.upper()}"
