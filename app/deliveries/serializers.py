"""
Serializers for delivery endpoints.

Output serializers are ModelSerializers over the delivery models; every
state-changing field (status, payment, escrow flags) is read-only and only
changes through deliveries.services. Input serializers are plain
Serializers whose validated_data is passed straight to a service method.
"""

from rest_framework import serializers

from authentication.serializers import PublicUserSerializer
from deliveries.models import (
    DeliveryRequest,
    Dispute,
    DisputeStatus,
    MovementEvent,
    Package,
    TravelMeans,
    Trip,
    TripReview,
    TripStatus,
)
from payments.state_machines import PaymentProvider


# =============================================================================
# Trips & packages
# =============================================================================


class TripReviewSerializer(serializers.ModelSerializer):
    reviewer = PublicUserSerializer(read_only=True)

    class Meta:
        model = TripReview
        fields = ["id", "reviewer", "rating", "comment", "created_at"]
        read_only_fields = fields


class TripSerializer(serializers.ModelSerializer):
    traveler = PublicUserSerializer(read_only=True)
    average_rating = serializers.DecimalField(
        max_digits=3, decimal_places=2, read_only=True
    )
    reviews = TripReviewSerializer(many=True, read_only=True)

    class Meta:
        model = Trip
        fields = [
            "id",
            "traveler",
            "from_location",
            "to_location",
            "departure_date",
            "arrival_date",
            "available_kg",
            "travel_means",
            "status",
            "average_rating",
            "reviews",
            "created_at",
            "updated_at",
        ]
        read_only_fields = fields


class TripCreateSerializer(serializers.Serializer):
    from_location = serializers.CharField(max_length=255)
    to_location = serializers.CharField(max_length=255)
    departure_date = serializers.DateField()
    arrival_date = serializers.DateField()
    available_kg = serializers.DecimalField(max_digits=8, decimal_places=2, min_value=0)
    travel_means = serializers.ChoiceField(choices=TravelMeans.choices)


class TripUpdateSerializer(serializers.Serializer):
    from_location = serializers.CharField(max_length=255, required=False)
    to_location = serializers.CharField(max_length=255, required=False)
    departure_date = serializers.DateField(required=False)
    arrival_date = serializers.DateField(required=False)
    available_kg = serializers.DecimalField(
        max_digits=8, decimal_places=2, min_value=0, required=False
    )
    travel_means = serializers.ChoiceField(choices=TravelMeans.choices, required=False)
    status = serializers.ChoiceField(choices=TripStatus.choices, required=False)


class TripSearchSerializer(serializers.Serializer):
    from_location = serializers.CharField(required=False, allow_blank=True)
    to_location = serializers.CharField(required=False, allow_blank=True)
    departure_date = serializers.DateField(required=False)


class ReviewCreateSerializer(serializers.Serializer):
    rating = serializers.IntegerField(min_value=0, max_value=5)
    comment = serializers.CharField(required=False, allow_blank=True, default="")


class PackageSerializer(serializers.ModelSerializer):
    class Meta:
        model = Package
        fields = [
            "id",
            "sender",
            "from_country",
            "from_city",
            "to_country",
            "to_city",
            "weight_kg",
            "receiver_name",
            "receiver_phone",
            "declared_value_cents",
            "description",
            "image_url",
            "created_at",
        ]
        read_only_fields = ["id", "sender", "created_at"]


# =============================================================================
# Requests
# =============================================================================


class MovementEventSerializer(serializers.ModelSerializer):
    class Meta:
        model = MovementEvent
        fields = ["id", "status", "location", "notes", "actor", "created_at"]
        read_only_fields = fields


class DisputeSerializer(serializers.ModelSerializer):
    raised_by = PublicUserSerializer(read_only=True)

    class Meta:
        model = Dispute
        fields = [
            "id",
            "request",
            "raised_by",
            "reason",
            "status",
            "resolution_note",
            "resolved_by",
            "created_at",
            "resolved_at",
        ]
        read_only_fields = fields


class DeliveryRequestSerializer(serializers.ModelSerializer):
    sender = PublicUserSerializer(read_only=True)
    traveler = PublicUserSerializer(read_only=True)
    package = PackageSerializer(read_only=True)
    total_cents = serializers.IntegerField(read_only=True)
    dispute = serializers.SerializerMethodField()
    movement_events = MovementEventSerializer(many=True, read_only=True)

    class Meta:
        model = DeliveryRequest
        fields = [
            "id",
            "version",
            "sender",
            "traveler",
            "package",
            "trip",
            "amount_cents",
            "insurance",
            "insurance_cost_cents",
            "referral_discount_cents",
            "total_cents",
            "currency",
            "status",
            "cancellation_reason",
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
            "dispute",
            "movement_events",
            "accepted_at",
            "completed_at",
            "cancelled_at",
            "created_at",
            "updated_at",
        ]
        read_only_fields = fields

    def get_dispute(self, obj):
        dispute = getattr(obj, "dispute", None)
        if dispute is None:
            return None
        return DisputeSerializer(dispute).data


class DeliveryRequestCreateSerializer(serializers.Serializer):
    traveler_id = serializers.UUIDField()
    package_id = serializers.UUIDField()
    trip_id = serializers.UUIDField(required=False, allow_null=True)
    amount_cents = serializers.IntegerField(min_value=1)
    insurance = serializers.BooleanField(default=False)
    insurance_cost_cents = serializers.IntegerField(
        required=False, allow_null=True, min_value=0
    )
    use_referral_discount = serializers.BooleanField(default=False)
    currency = serializers.CharField(max_length=3, required=False)


class VersionedActionSerializer(serializers.Serializer):
    """Optional version the client last saw, for optimistic locking."""

    version = serializers.IntegerField(required=False, min_value=1)


class StatusTransitionSerializer(VersionedActionSerializer):
    status = serializers.CharField(max_length=20)
    location = serializers.CharField(required=False, allow_blank=True, default="")
    notes = serializers.CharField(required=False, allow_blank=True, default="")


class ReasonSerializer(VersionedActionSerializer):
    reason = serializers.CharField(required=False, allow_blank=True, default="")


class ConfirmReceivedSerializer(serializers.Serializer):
    location = serializers.CharField(required=False, allow_blank=True, default="")
    notes = serializers.CharField(required=False, allow_blank=True, default="")


class DisputeCreateSerializer(serializers.Serializer):
    reason = serializers.CharField()


class DisputeResolveSerializer(serializers.Serializer):
    decision = serializers.ChoiceField(
        choices=[DisputeStatus.RESOLVED, DisputeStatus.REJECTED]
    )
    resolution_note = serializers.CharField(required=False, allow_blank=True, default="")


class PaymentIntentSerializer(serializers.Serializer):
    """
    Start or record a payment.

    Without a reference the provider is asked for a new intent; with one,
    an intent created client-side is recorded as is.
    """

    provider = serializers.ChoiceField(choices=PaymentProvider.choices)
    reference = serializers.CharField(max_length=255, required=False)


class PaymentIntentResponseSerializer(serializers.Serializer):
    provider = serializers.CharField()
    reference = serializers.CharField()
    status = serializers.CharField()
    amount_cents = serializers.IntegerField()
    currency = serializers.CharField()
    client_secret = serializers.CharField(allow_null=True)
    authorization_url = serializers.CharField(allow_null=True)
