"""
Payment settlement for delivery requests.

Turns a provider's (possibly repeated, possibly late) payment confirmation
into a single paid/failed fact on a DeliveryRequest, and holds escrow on
the first successful confirmation.

Flow:
    1. create_intent: provider intent created under the request lock,
       reference stored with record_intent
    2. The payer completes the provider's checkout
    3. confirm: called from the confirm endpoint, the webhook task or the
       verification task. The provider is asked for the real outcome unless
       the caller already verified it (signed webhook).

Providers come from the ProviderRegistry built at startup; tests pass their
own registry.

Usage:
    from payments.services import SettlementService

    service = SettlementService()
    intent = service.create_intent(request_id, actor=user, provider_name="stripe")
    request = service.confirm(intent.reference, "paid")
"""

from __future__ import annotations

import logging
import uuid
from typing import TYPE_CHECKING

from django.db import IntegrityError, transaction

from authentication.services import UserService
from core.fsm import apply_transition
from deliveries.exceptions import NotRequestParticipant, RequestNotFound
from deliveries.models import DeliveryRequest
from deliveries.notifications import RequestEvent, notify
from payments.adapters import CreateIntentParams, get_registry
from payments.exceptions import (
    InvalidTransition,
    PaymentValidationError,
    ProviderError,
    UnknownReference,
    VerificationError,
)
from payments.locks import request_lock
from payments.services.escrow_service import EscrowService
from payments.state_machines import PaymentOutcome, PaymentStatus

if TYPE_CHECKING:
    from authentication.models import User
    from payments.adapters import (
        IntentResult,
        PaymentProvider,
        ProviderRegistry,
        VerificationResult,
    )


logger = logging.getLogger(__name__)

SETTLED_STATUSES = frozenset({PaymentStatus.PAID, PaymentStatus.FAILED})


def intent_idempotency_key(request: DeliveryRequest) -> str:
    """
    Provider idempotency key for a request's payment intent.

    Includes the version so that a new intent after a failed payment gets a
    new key, while a retried call for the same attempt reuses it.
    """
    return f"dr_{request.id.hex}_{request.version}"


class SettlementService:
    """Records payment intents and settles provider outcomes exactly once."""

    def __init__(self, registry: ProviderRegistry | None = None) -> None:
        self._registry = registry

    @property
    def registry(self) -> ProviderRegistry:
        if self._registry is None:
            self._registry = get_registry()
        return self._registry

    # =========================================================================
    # Intents
    # =========================================================================

    def create_intent(
        self,
        request_id: uuid.UUID,
        actor: User,
        provider_name: str,
    ) -> IntentResult:
        """
        Start a provider payment for the request's total and record it.

        The provider call happens under the request lock but outside any
        database transaction.

        Raises:
            RequestNotFound: If the request doesn't exist
            NotRequestParticipant: If actor is not the request's sender
            KYCNotVerified: If the sender has not passed KYC
            PaymentValidationError: Unsupported provider
            InvalidTransition: Request terminal or already paid
            ProviderError: The provider refused or could not be reached
        """
        provider = self.registry.get(provider_name)

        with request_lock(request_id):
            request = self._get_request(request_id)
            if request.sender_id != actor.pk:
                raise NotRequestParticipant(
                    "Only the sender can pay for a delivery request",
                    details={"request_id": str(request.id)},
                )
            UserService.require_kyc_verified(actor)
            self._check_can_record(request)

            intent = provider.create_intent(
                CreateIntentParams(
                    amount_cents=request.total_cents,
                    currency=request.currency,
                    idempotency_key=intent_idempotency_key(request),
                    request_id=request.id,
                    customer_email=actor.email,
                    metadata={"sender_id": str(actor.pk)},
                )
            )

            with transaction.atomic():
                request = DeliveryRequest.objects.select_for_update().get(pk=request.pk)
                self._record(request, provider.name, intent.reference)

        return intent

    def record_intent(
        self,
        request_id: uuid.UUID,
        provider_name: str,
        reference: str,
    ) -> DeliveryRequest:
        """
        Store the provider and reference of an intent created elsewhere.

        Payment status is (or returns to) unpaid.

        Raises:
            RequestNotFound: If the request doesn't exist
            PaymentValidationError: Unsupported provider, empty or reused reference
            InvalidTransition: Request terminal or already paid
        """
        provider = self.registry.get(provider_name)
        if not reference:
            raise PaymentValidationError(
                "Payment reference is required",
                error_code="MISSING_REFERENCE",
            )

        with request_lock(request_id):
            with transaction.atomic():
                try:
                    request = DeliveryRequest.objects.select_for_update().get(
                        pk=request_id
                    )
                except DeliveryRequest.DoesNotExist:
                    raise RequestNotFound(
                        f"Delivery request {request_id} not found",
                        details={"request_id": str(request_id)},
                    )
                self._check_can_record(request)
                self._record(request, provider.name, reference)
        return request

    @staticmethod
    def _check_can_record(request: DeliveryRequest) -> None:
        if request.is_terminal:
            raise InvalidTransition(
                f"Request {request.id} is {request.status}; no payment can be recorded",
                details={"request_id": str(request.id), "current_state": request.status},
            )
        if request.payment_status == PaymentStatus.PAID:
            raise InvalidTransition(
                f"Request {request.id} is already paid",
                details={
                    "request_id": str(request.id),
                    "current_state": request.payment_status,
                    "transition": "record_payment_intent",
                },
            )

    @staticmethod
    def _record(request: DeliveryRequest, provider: str, reference: str) -> None:
        try:
            with transaction.atomic():
                apply_transition(request, "record_payment_intent", str(provider), reference)
                request.save()
        except IntegrityError:
            raise PaymentValidationError(
                "Payment reference is already used by another request",
                error_code="DUPLICATE_REFERENCE",
                details={"reference": reference},
            )

        logger.info(
            "Payment intent recorded",
            extra={
                "request_id": str(request.id),
                "provider": str(provider),
                "reference": reference,
            },
        )

    # =========================================================================
    # Confirmation
    # =========================================================================

    def confirm(
        self,
        reference: str,
        outcome: str | None,
        verified: bool = False,
        amount_cents: int | None = None,
        currency: str | None = None,
    ) -> DeliveryRequest:
        """
        Settle the payment identified by reference.

        A repeated confirmation for an already paid or failed payment is a
        no-op returning the request unchanged. When verified is False the
        provider's answer decides the outcome; outcome may then be None to
        mean "whatever the provider says".

        A paid outcome only settles when the captured amount and currency
        equal the request's total. Verified callers pass what the provider
        reported in amount_cents and currency; otherwise the provider's
        verification result supplies them.

        Raises:
            PaymentValidationError: If outcome is not paid/failed
            UnknownReference: If no request carries this reference
            InvalidTransition: If the request already reached a terminal state
            VerificationError: If the provider could not confirm the payment;
                the payment stays unpaid
        """
        if outcome is None and verified:
            raise PaymentValidationError(
                "A verified confirmation needs an outcome",
                error_code="INVALID_OUTCOME",
            )
        if outcome is not None and outcome not in PaymentOutcome.values:
            raise PaymentValidationError(
                f"Unknown payment outcome: {outcome}",
                error_code="INVALID_OUTCOME",
                details={"outcome": outcome, "allowed": PaymentOutcome.values},
            )

        request_id = self._request_id_for(reference)

        with request_lock(request_id):
            request = DeliveryRequest.objects.get(pk=request_id)
            if request.payment_reference != reference:
                # Replaced by a newer intent while we waited for the lock.
                raise UnknownReference(
                    f"No delivery request has payment reference {reference}",
                    details={"reference": reference},
                )

            if request.payment_status in SETTLED_STATUSES:
                logger.info(
                    "Payment already settled, ignoring confirmation",
                    extra={
                        "request_id": str(request.id),
                        "reference": reference,
                        "payment_status": request.payment_status,
                    },
                )
                return request

            if request.is_terminal:
                logger.warning(
                    "Stale payment confirmation for terminal request",
                    extra={
                        "request_id": str(request.id),
                        "reference": reference,
                        "status": request.status,
                    },
                )
                raise InvalidTransition(
                    f"Request {request.id} is {request.status}; payment confirmation rejected",
                    details={
                        "request_id": str(request.id),
                        "current_state": request.status,
                        "transition": "confirm_payment",
                    },
                )

            if verified:
                captured = (amount_cents, currency)
            else:
                result = self._verify(request, reference, outcome)
                outcome = result.outcome
                captured = (result.amount_cents, result.currency)

            if outcome == PaymentOutcome.PAID:
                self._check_captured(
                    request, reference, *captured, amount_required=verified
                )

            with transaction.atomic():
                request = DeliveryRequest.objects.select_for_update().get(pk=request_id)
                if outcome == PaymentOutcome.PAID:
                    apply_transition(request, "mark_paid")
                    request.save()
                    EscrowService.hold_for_request(request, created_by="settlement")
                    notify(request, RequestEvent.PAYMENT_CONFIRMED)
                else:
                    apply_transition(request, "mark_payment_failed")
                    request.save()

        logger.info(
            "Payment settled",
            extra={
                "request_id": str(request.id),
                "reference": reference,
                "outcome": outcome,
                "provider": request.payment_provider,
            },
        )
        return request

    def _verify(
        self,
        request: DeliveryRequest,
        reference: str,
        claimed: str | None,
    ) -> VerificationResult:
        """Ask the request's provider for the final payment outcome."""
        provider: PaymentProvider = self.registry.get(request.payment_provider)
        details = {
            "request_id": str(request.id),
            "reference": reference,
            "provider": request.payment_provider,
        }

        try:
            result = provider.verify(reference)
        except ProviderError as e:
            logger.warning(
                "Payment verification failed",
                extra={**details, "error_code": e.error_code},
                exc_info=True,
            )
            raise VerificationError(
                f"Could not verify payment {reference}: {e.message}",
                is_retryable=e.is_retryable,
                details={**details, "provider_error": e.error_code},
            ) from e

        if not result.is_final:
            raise VerificationError(
                f"Payment {reference} is still being processed ({result.status})",
                details={**details, "provider_status": result.status},
            )

        if claimed is not None and claimed != result.outcome:
            logger.warning(
                "Claimed payment outcome differs from provider",
                extra={**details, "claimed": claimed, "verified": result.outcome},
            )
        return result

    @staticmethod
    def _check_captured(
        request: DeliveryRequest,
        reference: str,
        amount_cents: int | None,
        currency: str | None,
        amount_required: bool,
    ) -> None:
        """
        Refuse a paid outcome whose captured sum differs from the request total.

        A missing currency is not checked. A missing amount is refused when
        amount_required is set (webhook payloads always carry one).
        """
        amount_ok = (
            request.total_cents == amount_cents
            if amount_cents is not None
            else not amount_required
        )
        currency_ok = currency is None or currency.lower() == request.currency.lower()
        if amount_ok and currency_ok:
            return

        details = {
            "request_id": str(request.id),
            "reference": reference,
            "provider": request.payment_provider,
            "captured_amount_cents": amount_cents,
            "captured_currency": currency,
            "expected_amount_cents": request.total_cents,
            "expected_currency": request.currency,
        }
        logger.error("Captured payment does not match request total", extra=details)
        raise VerificationError(
            f"Payment {reference} amount does not match the request",
            is_retryable=False,
            error_code="AMOUNT_MISMATCH",
            details=details,
        )

    @staticmethod
    def _request_id_for(reference: str) -> uuid.UUID:
        request_id = (
            DeliveryRequest.objects.filter(payment_reference=reference)
            .values_list("id", flat=True)
            .first()
        )
        if request_id is None or not reference:
            raise UnknownReference(
                f"No delivery request has payment reference {reference}",
                details={"reference": reference},
            )
        return request_id

    @staticmethod
    def _get_request(request_id: uuid.UUID) -> DeliveryRequest:
        try:
            return DeliveryRequest.objects.select_related("sender").get(pk=request_id)
        except DeliveryRequest.DoesNotExist:
            raise RequestNotFound(
                f"Delivery request {request_id} not found",
                details={"request_id": str(request_id)},
            )
