"""
Django admin configuration for delivery models.

Request status, payment and escrow fields are read-only here: they only
change through deliveries.services. Disputes are decided with admin
actions that call DisputeService.
"""

from django.contrib import admin, messages

from core.exceptions import BaseApplicationError
from deliveries.models import (
    DeliveryRequest,
    Dispute,
    DisputeStatus,
    MovementEvent,
    Package,
    Trip,
    TripReview,
)
from deliveries.services import DisputeService


class TripReviewInline(admin.TabularInline):
    model = TripReview
    extra = 0
    readonly_fields = ("reviewer", "rating", "comment", "created_at")
    can_delete = False


@admin.register(Trip)
class TripAdmin(admin.ModelAdmin):
    list_display = (
        "id",
        "traveler",
        "from_location",
        "to_location",
        "departure_date",
        "available_kg",
        "travel_means",
        "status",
    )
    list_filter = ("status", "travel_means", "departure_date")
    search_fields = ("from_location", "to_location", "traveler__email")
    raw_id_fields = ("traveler",)
    inlines = [TripReviewInline]


@admin.register(Package)
class PackageAdmin(admin.ModelAdmin):
    list_display = ("id", "sender", "from_city", "to_city", "weight_kg", "created_at")
    search_fields = ("sender__email", "receiver_name", "from_city", "to_city")
    raw_id_fields = ("sender",)


class MovementEventInline(admin.TabularInline):
    model = MovementEvent
    extra = 0
    readonly_fields = ("status", "location", "notes", "actor", "created_at")
    can_delete = False

    def has_add_permission(self, request, obj=None) -> bool:
        return False


@admin.register(DeliveryRequest)
class DeliveryRequestAdmin(admin.ModelAdmin):
    list_display = (
        "id",
        "sender",
        "traveler",
        "status",
        "payment_status",
        "amount_cents",
        "escrow_held",
        "escrow_cleared",
        "created_at",
    )
    list_filter = ("status", "payment_status", "payment_provider", "insurance")
    search_fields = ("=id", "payment_reference", "sender__email", "traveler__email")
    raw_id_fields = ("sender", "traveler", "package", "trip")
    inlines = [MovementEventInline]
    readonly_fields = (
        "version",
        "status",
        "amount_cents",
        "insurance_cost_cents",
        "referral_discount_cents",
        "sender_received",
        "sender_received_at",
        "payment_provider",
        "payment_reference",
        "payment_status",
        "paid_at",
        "escrow_held",
        "escrow_amount_cents",
        "escrow_released",
        "escrow_cleared",
        "accepted_at",
        "completed_at",
        "cancelled_at",
    )

    def has_add_permission(self, request) -> bool:
        return False


@admin.register(Dispute)
class DisputeAdmin(admin.ModelAdmin):
    list_display = ("id", "request", "raised_by", "status", "created_at", "resolved_at")
    list_filter = ("status",)
    search_fields = ("=request__id", "raised_by__email", "reason")
    raw_id_fields = ("request", "raised_by", "resolved_by")
    readonly_fields = ("status", "resolved_by", "resolved_at")
    actions = ["mark_resolved", "mark_rejected"]

    def _decide(self, request, queryset, decision: str) -> None:
        for dispute in queryset:
            try:
                DisputeService.resolve_dispute(dispute.request_id, request.user, decision)
            except BaseApplicationError as e:
                self.message_user(request, f"{dispute}: {e.message}", level=messages.ERROR)

    @admin.action(description="Resolve selected disputes")
    def mark_resolved(self, request, queryset):
        self._decide(request, queryset, DisputeStatus.RESOLVED)

    @admin.action(description="Reject selected disputes")
    def mark_rejected(self, request, queryset):
        self._decide(request, queryset, DisputeStatus.REJECTED)
