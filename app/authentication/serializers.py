"""
Serializers for authentication endpoints.

Security:
    - Password fields are write-only
    - KYC and referral state are read-only for the account owner
"""

from django.contrib.auth.password_validation import validate_password
from rest_framework import serializers

from authentication.models import KYCStatus, User


class UserSerializer(serializers.ModelSerializer):
    """Current user representation (GET /auth/me/)."""

    full_name = serializers.CharField(source="get_full_name", read_only=True)

    class Meta:
        model = User
        fields = [
            "id",
            "email",
            "first_name",
            "last_name",
            "full_name",
            "phone",
            "kyc_status",
            "has_used_referral_discount",
            "referral_code",
            "date_joined",
        ]
        read_only_fields = [
            "id",
            "email",
            "full_name",
            "kyc_status",
            "has_used_referral_discount",
            "referral_code",
            "date_joined",
        ]


class PublicUserSerializer(serializers.ModelSerializer):
    """Minimal user info shown to the other party of a delivery."""

    full_name = serializers.CharField(source="get_full_name", read_only=True)

    class Meta:
        model = User
        fields = ["id", "full_name", "kyc_status"]
        read_only_fields = fields


class RegisterSerializer(serializers.Serializer):
    """Input for POST /auth/register/."""

    email = serializers.EmailField()
    password = serializers.CharField(write_only=True, min_length=8)
    first_name = serializers.CharField(max_length=150, required=False, allow_blank=True)
    last_name = serializers.CharField(max_length=150, required=False, allow_blank=True)
    phone = serializers.CharField(max_length=32, required=False, allow_blank=True)
    referral_code = serializers.CharField(max_length=16, required=False, allow_blank=True)

    def validate_email(self, value):
        if User.objects.filter(email__iexact=value).exists():
            raise serializers.ValidationError("A user with this email already exists.")
        return value

    def validate_password(self, value):
        validate_password(value)
        return value


class KYCStatusSerializer(serializers.Serializer):
    """Input for POST /auth/users/{id}/kyc/ (admin only)."""

    kyc_status = serializers.ChoiceField(choices=KYCStatus.choices)


class ReferralApplySerializer(serializers.Serializer):
    """Input for POST /auth/referral/apply/."""

    amount_cents = serializers.IntegerField(min_value=1)


class ReferralDiscountSerializer(serializers.Serializer):
    applied = serializers.BooleanField()
    discount_cents = serializers.IntegerField()
    percent = serializers.IntegerField()
