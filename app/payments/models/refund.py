"""
RefundRequest model for returning voided escrow to the payer.

Cancelling a paid delivery request removes its escrow into the
ESCROW_VOID ledger account. Getting that money back to the sender's card
is a separate, admin-approved step tracked here.

Usage:
    from payments.models import RefundRequest

    refund = RefundRequest.objects.create(
        delivery_request=request,
        requested_by=request.sender,
        amount_cents=5000,
        reason="Trip cancelled",
    )

    refund.approve(admin_user, provider_refund_id="re_123")  # pending -> approved
    refund.save()
"""

from __future__ import annotations

from django.conf import settings
from django.db import models
from django.utils import timezone

from django_fsm import FSMField, transition

from core.models import BaseModel
from core.model_mixins import UUIDPrimaryKeyMixin, VersionedMixin

from payments.state_machines import RefundState


class RefundRequest(UUIDPrimaryKeyMixin, VersionedMixin, BaseModel):
    """
    A sender's request to get a cancelled request's payment back.

    State Flow:
        PENDING -> APPROVED (provider refund issued, ledger REFUND recorded)
        PENDING -> REJECTED (admin declined)
        PENDING -> FAILED   (provider refused the refund)

    Fields:
        delivery_request: Cancelled request the payment belonged to
        requested_by: Sender who filed the refund
        amount_cents: Amount to return (at most the removed escrow)
        status: Current FSM state
        provider_refund_id: Refund id returned by the provider
        decided_by / decided_at: Admin decision audit
        decision_note / failure_reason: Free text
    """

    delivery_request = models.ForeignKey(
        "deliveries.DeliveryRequest",
        on_delete=models.PROTECT,
        related_name="refund_requests",
        help_text="Cancelled delivery request being refunded",
    )

    requested_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="refund_requests",
        help_text="User who filed the refund request",
    )

    amount_cents = models.PositiveBigIntegerField(
        help_text="Refund amount in smallest currency unit (e.g., cents)",
    )

    currency = models.CharField(
        max_length=3,
        default="usd",
        help_text="ISO 4217 currency code (lowercase)",
    )

    reason = models.TextField(
        blank=True,
        default="",
        help_text="Why the sender wants the refund",
    )

    status = FSMField(
        default=RefundState.PENDING,
        choices=RefundState.choices,
        db_index=True,
        protected=True,
        help_text="Current state of the refund (managed by FSM)",
    )

    provider_refund_id = models.CharField(
        max_length=255,
        null=True,
        blank=True,
        unique=True,
        help_text="Refund id returned by the payment provider",
    )

    decided_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="+",
        help_text="Admin who approved or rejected the refund",
    )

    decided_at = models.DateTimeField(null=True, blank=True)

    decision_note = models.TextField(blank=True, default="")

    failure_reason = models.TextField(blank=True, default="")

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "Refund Request"
        verbose_name_plural = "Refund Requests"
        indexes = [
            models.Index(
                fields=["delivery_request", "status"], name="refund_req_request_st_idx"
            ),
            models.Index(
                fields=["status", "created_at"], name="refund_req_status_created_idx"
            ),
        ]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(amount_cents__gt=0),
                name="refund_request_amount_positive",
            ),
        ]

    def __str__(self) -> str:
        amount_display = f"{self.amount_cents / 100:.2f} {self.currency.upper()}"
        return f"RefundRequest({self.id}, {self.status}, {amount_display})"

    # ==========================================================================
    # State Transitions (django-fsm)
    # ==========================================================================

    @transition(field=status, source=RefundState.PENDING, target=RefundState.APPROVED)
    def approve(self, admin, provider_refund_id: str | None = None, note: str = ""):
        self.decided_by = admin
        self.decided_at = timezone.now()
        self.provider_refund_id = provider_refund_id
        self.decision_note = note

    @transition(field=status, source=RefundState.PENDING, target=RefundState.REJECTED)
    def reject(self, admin, note: str = ""):
        self.decided_by = admin
        self.decided_at = timezone.now()
        self.decision_note = note

    @transition(field=status, source=RefundState.PENDING, target=RefundState.FAILED)
    def fail(self, reason: str):
        """Provider refused the refund; the voided funds stay in ESCROW_VOID."""
        self.decided_at = timezone.now()
        self.failure_reason = reason

    @property
    def is_pending(self) -> bool:
        return self.status == RefundState.PENDING
