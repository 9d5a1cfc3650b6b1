"""
Payment admin configuration.

Ledger admins live in the ledger submodule and are imported here so they
register with the payments app. Refund decisions go through RefundService;
webhook events are read-only.
"""

from django.contrib import admin, messages

from core.exceptions import BaseApplicationError
from payments.ledger.admin import LedgerAccountAdmin, LedgerEntryAdmin, ReadOnlyAdminMixin
from payments.models import RefundRequest, WebhookEvent
from payments.services import RefundService

__all__ = [
    "LedgerAccountAdmin",
    "LedgerEntryAdmin",
    "RefundRequestAdmin",
    "WebhookEventAdmin",
]


@admin.register(RefundRequest)
class RefundRequestAdmin(admin.ModelAdmin):
    list_display = [
        "id",
        "delivery_request",
        "requested_by",
        "amount_cents",
        "currency",
        "status",
        "created_at",
        "decided_at",
    ]
    list_filter = ["status", "currency"]
    search_fields = ["=id", "=delivery_request__id", "requested_by__email"]
    raw_id_fields = ["delivery_request", "requested_by", "decided_by"]
    readonly_fields = [
        "status",
        "amount_cents",
        "currency",
        "provider_refund_id",
        "decided_by",
        "decided_at",
        "failure_reason",
        "version",
    ]
    ordering = ["-created_at"]
    actions = ["approve_selected", "reject_selected"]

    def has_add_permission(self, request) -> bool:
        return False

    @admin.action(description="Approve selected refunds")
    def approve_selected(self, request, queryset):
        service = RefundService()
        for refund in queryset:
            try:
                refund = service.approve_refund(refund.id, request.user)
            except BaseApplicationError as e:
                self.message_user(request, f"{refund}: {e.message}", level=messages.ERROR)
                continue
            if refund.failure_reason:
                self.message_user(
                    request, f"{refund}: {refund.failure_reason}", level=messages.WARNING
                )

    @admin.action(description="Reject selected refunds")
    def reject_selected(self, request, queryset):
        service = RefundService()
        for refund in queryset:
            try:
                service.reject_refund(refund.id, request.user)
            except BaseApplicationError as e:
                self.message_user(request, f"{refund}: {e.message}", level=messages.ERROR)


@admin.register(WebhookEvent)
class WebhookEventAdmin(ReadOnlyAdminMixin, admin.ModelAdmin):
    list_display = [
        "id",
        "provider",
        "event_type",
        "event_id",
        "status",
        "retry_count",
        "created_at",
        "processed_at",
    ]
    list_filter = ["provider", "status", "event_type"]
    search_fields = ["event_id", "event_type"]
    ordering = ["-created_at"]
