"""
Django admin configuration for authentication models.

KYC review happens here: bulk actions mark selected users verified or
rejected through UserService so the decision is logged.
"""

from django.contrib import admin
from django.contrib.auth.admin import UserAdmin as BaseUserAdmin

from authentication.models import KYCStatus, User
from authentication.services import UserService


@admin.register(User)
class UserAdmin(BaseUserAdmin):
    """Admin configuration for User model."""

    list_display = (
        "email",
        "get_full_name",
        "kyc_status",
        "has_used_referral_discount",
        "is_active",
        "is_staff",
        "date_joined",
    )
    list_filter = ("kyc_status", "is_active", "is_staff", "is_superuser", "date_joined")
    search_fields = ("email", "first_name", "last_name", "referral_code")
    ordering = ("-date_joined",)
    actions = ["mark_kyc_verified", "mark_kyc_rejected"]

    fieldsets = (
        (None, {"fields": ("email", "password")}),
        ("Contact", {"fields": ("first_name", "last_name", "phone")}),
        (
            "Marketplace",
            {
                "fields": (
                    "kyc_status",
                    "has_used_referral_discount",
                    "referral_code",
                    "referred_by",
                )
            },
        ),
        ("Status", {"fields": ("is_active", "is_staff", "is_superuser")}),
        ("Permissions", {"fields": ("groups", "user_permissions")}),
        ("Important dates", {"fields": ("date_joined", "last_login")}),
    )

    add_fieldsets = (
        (
            None,
            {
                "classes": ("wide",),
                "fields": ("email", "password1", "password2"),
            },
        ),
    )

    readonly_fields = (
        "date_joined",
        "last_login",
        "has_used_referral_discount",
        "referral_code",
    )
    raw_id_fields = ("referred_by",)

    @admin.action(description="Mark KYC verified")
    def mark_kyc_verified(self, request, queryset):
        for user in queryset:
            UserService.set_kyc_status(user.pk, KYCStatus.VERIFIED)

    @admin.action(description="Mark KYC rejected")
    def mark_kyc_rejected(self, request, queryset):
        for user in queryset:
            UserService.set_kyc_status(user.pk, KYCStatus.REJECTED)
