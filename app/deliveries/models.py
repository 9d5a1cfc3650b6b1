"""
Delivery marketplace models.

- Trip: A traveler's offered capacity along a route
- TripReview: Rating left on a trip (additive, never deduplicated)
- Package: A sender's shipment descriptor
- DeliveryRequest: Agreement between a package and a traveler, with price,
  payment and escrow state
- Dispute: At most one per request; freezes completion while open
- MovementEvent: Append-only tracking timeline of a request

Usage:
    from deliveries.models import DeliveryRequest, RequestStatus

    request = DeliveryRequest.objects.get(pk=request_id)
    request.accept()  # pending -> accepted
    request.save()

State transitions are only ever performed by deliveries.services; the
FSM fields are protected and cannot be assigned directly.
"""

from __future__ import annotations

from decimal import Decimal

from django.conf import settings
from django.core.validators import MaxValueValidator, MinValueValidator
from django.db import models
from django.db.models import Avg
from django.utils import timezone

from django_fsm import FSMField, transition

from core.models import BaseModel
from core.model_mixins import UUIDPrimaryKeyMixin, VersionedMixin
from payments.state_machines import PaymentProvider, PaymentStatus


# =============================================================================
# Choices
# =============================================================================


class TravelMeans(models.TextChoices):
    AIRPLANE = "airplane", "Airplane"
    BUS = "bus", "Bus"
    TRAIN = "train", "Train"
    CAR = "car", "Car"
    SHIP = "ship", "Ship"


class TripStatus(models.TextChoices):
    ACTIVE = "active", "Active"
    COMPLETED = "completed", "Completed"
    CANCELLED = "cancelled", "Cancelled"


class RequestStatus(models.TextChoices):
    """
    Lifecycle of a delivery request.

    State Flow:
        PENDING -> ACCEPTED -> PICKED_UP -> IN_TRANSIT -> CUSTOMS -> DELIVERING -> COMPLETED
        PENDING -> REJECTED
        any non-terminal -> CANCELLED

    Terminal states: COMPLETED, CANCELLED, REJECTED
    """

    PENDING = "pending", "Pending"
    ACCEPTED = "accepted", "Accepted"
    PICKED_UP = "picked_up", "Picked Up"
    IN_TRANSIT = "in_transit", "In Transit"
    CUSTOMS = "customs", "Customs"
    DELIVERING = "delivering", "Delivering"
    COMPLETED = "completed", "Completed"
    CANCELLED = "cancelled", "Cancelled"
    REJECTED = "rejected", "Rejected"


TERMINAL_STATUSES = frozenset(
    {RequestStatus.COMPLETED, RequestStatus.CANCELLED, RequestStatus.REJECTED}
)
ACTIVE_STATUSES = [s for s in RequestStatus.values if s not in TERMINAL_STATUSES]
# States after pickup, from which the sender may confirm receipt.
IN_FLIGHT_STATUSES = [
    RequestStatus.PICKED_UP,
    RequestStatus.IN_TRANSIT,
    RequestStatus.CUSTOMS,
    RequestStatus.DELIVERING,
]


class DisputeStatus(models.TextChoices):
    OPEN = "open", "Open"
    RESOLVED = "resolved", "Resolved"
    REJECTED = "rejected", "Rejected"


# =============================================================================
# Trips
# =============================================================================


class Trip(UUIDPrimaryKeyMixin, BaseModel):
    """
    Capacity a traveler offers between two locations.

    available_kg is decremented when the traveler accepts a request.
    """

    traveler = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="trips",
    )
    from_location = models.CharField(max_length=255)
    to_location = models.CharField(max_length=255)
    departure_date = models.DateField()
    arrival_date = models.DateField()
    available_kg = models.DecimalField(
        max_digits=8,
        decimal_places=2,
        validators=[MinValueValidator(Decimal("0"))],
    )
    travel_means = models.CharField(max_length=20, choices=TravelMeans.choices)
    status = models.CharField(
        max_length=20,
        choices=TripStatus.choices,
        default=TripStatus.ACTIVE,
        db_index=True,
    )

    class Meta(BaseModel.Meta):
        indexes = [
            models.Index(
                fields=["status", "departure_date"], name="trip_status_departure_idx"
            ),
        ]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(available_kg__gte=0),
                name="trip_available_kg_non_negative",
            ),
        ]

    def __str__(self) -> str:
        return f"{self.from_location} -> {self.to_location} ({self.departure_date})"

    @property
    def average_rating(self) -> Decimal:
        """Mean review rating rounded to 2 places, 0 without reviews."""
        avg = self.reviews.aggregate(avg=Avg("rating"))["avg"]
        if avg is None:
            return Decimal("0")
        return Decimal(str(avg)).quantize(Decimal("0.01"))


class TripReview(BaseModel):
    """A rating left on a trip. Repeat reviews by one user are all kept."""

    trip = models.ForeignKey(Trip, on_delete=models.CASCADE, related_name="reviews")
    reviewer = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="trip_reviews",
    )
    rating = models.PositiveSmallIntegerField(
        validators=[MinValueValidator(0), MaxValueValidator(5)],
    )
    comment = models.TextField(blank=True, default="")

    class Meta:
        ordering = ["created_at", "id"]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(rating__lte=5),
                name="trip_review_rating_max_5",
            ),
        ]

    def __str__(self) -> str:
        return f"{self.rating}/5 on {self.trip_id}"


# =============================================================================
# Packages
# =============================================================================


class Package(UUIDPrimaryKeyMixin, BaseModel):
    """
    What a sender wants carried. There is no update path once created.

    image_url is a reference to an already-uploaded image; storage is
    handled elsewhere.
    """

    sender = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="packages",
    )
    from_country = models.CharField(max_length=100)
    from_city = models.CharField(max_length=100)
    to_country = models.CharField(max_length=100)
    to_city = models.CharField(max_length=100)
    weight_kg = models.DecimalField(
        max_digits=8,
        decimal_places=2,
        validators=[MinValueValidator(Decimal("0.01"))],
    )
    receiver_name = models.CharField(max_length=255)
    receiver_phone = models.CharField(max_length=30)
    declared_value_cents = models.PositiveBigIntegerField(default=0)
    description = models.TextField(blank=True, default="")
    image_url = models.URLField(blank=True, default="")

    def __str__(self) -> str:
        return f"{self.weight_kg}kg {self.from_city} -> {self.to_city}"


# =============================================================================
# Delivery Requests
# =============================================================================


class DeliveryRequest(UUIDPrimaryKeyMixin, VersionedMixin, BaseModel):
    """
    A sender's package matched with a traveler, at an agreed price.

    Two independent state machines live on this model:

    status (RequestStatus): operational lifecycle, see RequestStatus
    payment_status (PaymentStatus):
        UNPAID -> PAID | FAILED, FAILED -> UNPAID on a fresh intent

    Escrow flags make every escrow movement at-most-once:
        escrow_held: funds were captured and held for this request
        escrow_amount_cents: exactly what was held (amount + insurance)
        escrow_released: held funds went to the traveler's balance
        escrow_cleared: escrow is no longer held (released or removed)

    Amounts are integer cents. amount_cents is the agreed price after any
    referral discount.
    """

    # ==========================================================================
    # Parties
    # ==========================================================================

    sender = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="sent_requests",
    )
    traveler = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="carried_requests",
    )
    package = models.ForeignKey(
        Package,
        on_delete=models.PROTECT,
        related_name="requests",
    )
    trip = models.ForeignKey(
        Trip,
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="requests",
    )

    # ==========================================================================
    # Price
    # ==========================================================================

    amount_cents = models.PositiveBigIntegerField(
        help_text="Agreed price in cents (after referral discount)",
    )
    insurance = models.BooleanField(default=False)
    insurance_cost_cents = models.PositiveBigIntegerField(
        default=0,
        help_text="Insurance cost in cents; 0 when insurance is False",
    )
    referral_discount_cents = models.PositiveBigIntegerField(default=0)
    currency = models.CharField(max_length=3, default="usd")

    # ==========================================================================
    # Lifecycle
    # ==========================================================================

    status = FSMField(
        default=RequestStatus.PENDING,
        choices=RequestStatus.choices,
        db_index=True,
        protected=True,
    )
    cancellation_reason = models.TextField(blank=True, default="")
    accepted_at = models.DateTimeField(null=True, blank=True)
    completed_at = models.DateTimeField(null=True, blank=True)
    cancelled_at = models.DateTimeField(null=True, blank=True)

    sender_received = models.BooleanField(default=False)
    sender_received_at = models.DateTimeField(null=True, blank=True)

    # ==========================================================================
    # Payment
    # ==========================================================================

    payment_provider = models.CharField(
        max_length=20,
        choices=PaymentProvider.choices,
        null=True,
        blank=True,
    )
    payment_reference = models.CharField(
        max_length=255,
        null=True,
        blank=True,
        unique=True,
        help_text="Provider reference (Stripe PaymentIntent id, Paystack reference)",
    )
    payment_status = FSMField(
        default=PaymentStatus.UNPAID,
        choices=PaymentStatus.choices,
        db_index=True,
        protected=True,
    )
    paid_at = models.DateTimeField(null=True, blank=True)

    # ==========================================================================
    # Escrow
    # ==========================================================================

    escrow_held = models.BooleanField(default=False)
    escrow_amount_cents = models.PositiveBigIntegerField(default=0)
    escrow_released = models.BooleanField(default=False)
    escrow_cleared = models.BooleanField(default=False)

    class Meta(BaseModel.Meta):
        indexes = [
            models.Index(
                fields=["sender", "status"], name="delivery_req_sender_st_idx"
            ),
            models.Index(
                fields=["traveler", "status"], name="delivery_req_travlr_st_idx"
            ),
        ]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(amount_cents__gt=0),
                name="delivery_request_amount_positive",
            ),
            models.CheckConstraint(
                condition=models.Q(insurance=True) | models.Q(insurance_cost_cents=0),
                name="delivery_request_insurance_cost_iff_insured",
            ),
        ]

    def __str__(self) -> str:
        return f"DeliveryRequest({self.id}, {self.status})"

    @property
    def total_cents(self) -> int:
        """What the sender pays and what escrow holds."""
        return self.amount_cents + self.insurance_cost_cents

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    @property
    def has_open_dispute(self) -> bool:
        dispute = getattr(self, "dispute", None) if self.pk else None
        return dispute is not None and dispute.status == DisputeStatus.OPEN

    def is_participant(self, user) -> bool:
        return user.pk in (self.sender_id, self.traveler_id)

    # ==========================================================================
    # Lifecycle transitions (django-fsm)
    # ==========================================================================

    @transition(field=status, source=RequestStatus.PENDING, target=RequestStatus.ACCEPTED)
    def accept(self):
        self.accepted_at = timezone.now()

    @transition(field=status, source=RequestStatus.PENDING, target=RequestStatus.REJECTED)
    def reject(self):
        pass

    @transition(field=status, source=RequestStatus.ACCEPTED, target=RequestStatus.PICKED_UP)
    def mark_picked_up(self):
        pass

    @transition(
        field=status, source=RequestStatus.PICKED_UP, target=RequestStatus.IN_TRANSIT
    )
    def mark_in_transit(self):
        pass

    @transition(field=status, source=RequestStatus.IN_TRANSIT, target=RequestStatus.CUSTOMS)
    def mark_customs(self):
        pass

    @transition(
        field=status,
        source=[RequestStatus.IN_TRANSIT, RequestStatus.CUSTOMS],
        target=RequestStatus.DELIVERING,
    )
    def mark_delivering(self):
        pass

    @transition(field=status, source=IN_FLIGHT_STATUSES, target=RequestStatus.COMPLETED)
    def complete(self):
        now = timezone.now()
        self.sender_received = True
        self.sender_received_at = now
        self.completed_at = now

    @transition(field=status, source=ACTIVE_STATUSES, target=RequestStatus.CANCELLED)
    def cancel(self, reason: str = ""):
        self.cancellation_reason = reason
        self.cancelled_at = timezone.now()

    # ==========================================================================
    # Payment transitions (django-fsm)
    # ==========================================================================

    @transition(
        field=payment_status,
        source=[PaymentStatus.UNPAID, PaymentStatus.FAILED],
        target=PaymentStatus.UNPAID,
    )
    def record_payment_intent(self, provider: str, reference: str):
        self.payment_provider = provider
        self.payment_reference = reference

    @transition(field=payment_status, source=PaymentStatus.UNPAID, target=PaymentStatus.PAID)
    def mark_paid(self):
        self.paid_at = timezone.now()

    @transition(
        field=payment_status, source=PaymentStatus.UNPAID, target=PaymentStatus.FAILED
    )
    def mark_payment_failed(self):
        pass


class Dispute(UUIDPrimaryKeyMixin, BaseModel):
    """
    A disagreement over a delivery request, decided by an admin.

    State Flow:
        OPEN -> RESOLVED
        OPEN -> REJECTED

    While OPEN the request cannot be completed and its escrow cannot move.
    Resolution does not move money; it only lifts the block.
    """

    request = models.OneToOneField(
        DeliveryRequest,
        on_delete=models.CASCADE,
        related_name="dispute",
    )
    raised_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="raised_disputes",
    )
    reason = models.TextField()
    status = FSMField(
        default=DisputeStatus.OPEN,
        choices=DisputeStatus.choices,
        db_index=True,
        protected=True,
    )
    resolution_note = models.TextField(blank=True, default="")
    resolved_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="+",
    )
    resolved_at = models.DateTimeField(null=True, blank=True)

    def __str__(self) -> str:
        return f"Dispute({self.request_id}, {self.status})"

    @property
    def is_open(self) -> bool:
        return self.status == DisputeStatus.OPEN

    @transition(field=status, source=DisputeStatus.OPEN, target=DisputeStatus.RESOLVED)
    def resolve(self, note: str = "", admin=None):
        self._close(note, admin)

    @transition(field=status, source=DisputeStatus.OPEN, target=DisputeStatus.REJECTED)
    def reject(self, note: str = "", admin=None):
        self._close(note, admin)

    def _close(self, note: str, admin) -> None:
        self.resolution_note = note
        self.resolved_by = admin
        self.resolved_at = timezone.now()


class MovementEvent(models.Model):
    """
    One entry of a request's tracking timeline.

    Rows are only ever inserted; the auto-increment id keeps insertion order.
    """

    request = models.ForeignKey(
        DeliveryRequest,
        on_delete=models.CASCADE,
        related_name="movement_events",
    )
    status = models.CharField(max_length=20, choices=RequestStatus.choices)
    location = models.CharField(max_length=255, blank=True, default="")
    notes = models.TextField(blank=True, default="")
    actor = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="+",
    )
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["id"]

    def __str__(self) -> str:
        return f"{self.request_id}: {self.status}"
