"""
Delivery views.

Endpoints:
    GET/POST  /api/v1/deliveries/trips/                     - My trips / create
    GET/PATCH /api/v1/deliveries/trips/{id}/                - Trip detail / update (owner)
    GET       /api/v1/deliveries/trips/search/              - Search active trips
    POST      /api/v1/deliveries/trips/{id}/reviews/        - Review a trip
    GET/POST  /api/v1/deliveries/packages/                  - My packages / create
    GET/POST  /api/v1/deliveries/requests/                  - My requests / create
    GET       /api/v1/deliveries/requests/{id}/             - Request detail
    POST      /api/v1/deliveries/requests/{id}/accept/      - Traveler accepts
    POST      /api/v1/deliveries/requests/{id}/reject/      - Traveler rejects
    POST      /api/v1/deliveries/requests/{id}/status/      - Status transition
    POST      /api/v1/deliveries/requests/{id}/confirm-received/ - Sender confirms
    POST      /api/v1/deliveries/requests/{id}/cancel/      - Cancel
    GET/POST  /api/v1/deliveries/requests/{id}/dispute/     - View / raise dispute
    POST      /api/v1/deliveries/requests/{id}/dispute/resolve/ - Admin decision
    POST      /api/v1/deliveries/requests/{id}/payment-intent/  - Start/record payment
"""

from dataclasses import asdict

from drf_spectacular.utils import OpenApiParameter, extend_schema
from rest_framework import status
from rest_framework.permissions import IsAdminUser, IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from core.viewset_mixins import DomainErrorMixin
from deliveries.exceptions import NotRequestParticipant
from deliveries.serializers import (
    ConfirmReceivedSerializer,
    DeliveryRequestCreateSerializer,
    DeliveryRequestSerializer,
    DisputeCreateSerializer,
    DisputeResolveSerializer,
    DisputeSerializer,
    PackageSerializer,
    PaymentIntentResponseSerializer,
    PaymentIntentSerializer,
    ReasonSerializer,
    ReviewCreateSerializer,
    StatusTransitionSerializer,
    TripCreateSerializer,
    TripReviewSerializer,
    TripSearchSerializer,
    TripSerializer,
    TripUpdateSerializer,
    VersionedActionSerializer,
)
from deliveries.services import (
    DisputeService,
    PackageService,
    RequestService,
    TripService,
)
from payments.services import SettlementService


def request_response(request_id, user, http_status=status.HTTP_200_OK) -> Response:
    """Serialize the current state of a delivery request."""
    delivery_request = RequestService.get_request(request_id, user)
    return Response(DeliveryRequestSerializer(delivery_request).data, status=http_status)


# =============================================================================
# Trips
# =============================================================================


class TripListCreateView(DomainErrorMixin, APIView):
    permission_classes = [IsAuthenticated]

    @extend_schema(summary="List my trips", tags=["Trips"], responses={200: TripSerializer(many=True)})
    def get(self, request):
        trips = TripService.list_trips(request.user)
        return Response(TripSerializer(trips, many=True).data)

    @extend_schema(
        summary="Create trip",
        tags=["Trips"],
        request=TripCreateSerializer,
        responses={201: TripSerializer},
    )
    def post(self, request):
        serializer = TripCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        trip = TripService.create_trip(request.user, **serializer.validated_data)
        return Response(TripSerializer(trip).data, status=status.HTTP_201_CREATED)


class TripDetailView(DomainErrorMixin, APIView):
    permission_classes = [IsAuthenticated]

    @extend_schema(summary="Get trip", tags=["Trips"], responses={200: TripSerializer})
    def get(self, request, trip_id):
        return Response(TripSerializer(TripService.get_trip(trip_id)).data)

    @extend_schema(
        summary="Update trip",
        tags=["Trips"],
        request=TripUpdateSerializer,
        responses={200: TripSerializer},
    )
    def patch(self, request, trip_id):
        serializer = TripUpdateSerializer(data=request.data, partial=True)
        serializer.is_valid(raise_exception=True)
        trip = TripService.update_trip(trip_id, request.user, **serializer.validated_data)
        return Response(TripSerializer(trip).data)


class TripSearchView(DomainErrorMixin, APIView):
    permission_classes = [IsAuthenticated]

    @extend_schema(
        summary="Search trips",
        tags=["Trips"],
        parameters=[
            OpenApiParameter("from_location", str),
            OpenApiParameter("to_location", str),
            OpenApiParameter("departure_date", str),
        ],
        responses={200: TripSerializer(many=True)},
    )
    def get(self, request):
        serializer = TripSearchSerializer(data=request.query_params)
        serializer.is_valid(raise_exception=True)
        trips = TripService.search_trips(**serializer.validated_data)
        return Response(TripSerializer(trips, many=True).data)


class TripReviewView(DomainErrorMixin, APIView):
    permission_classes = [IsAuthenticated]

    @extend_schema(
        summary="Review trip",
        tags=["Trips"],
        request=ReviewCreateSerializer,
        responses={201: TripReviewSerializer},
    )
    def post(self, request, trip_id):
        serializer = ReviewCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        review = TripService.add_review(trip_id, request.user, **serializer.validated_data)
        return Response(TripReviewSerializer(review).data, status=status.HTTP_201_CREATED)


# =============================================================================
# Packages
# =============================================================================


class PackageListCreateView(DomainErrorMixin, APIView):
    permission_classes = [IsAuthenticated]

    @extend_schema(
        summary="List my packages",
        tags=["Packages"],
        responses={200: PackageSerializer(many=True)},
    )
    def get(self, request):
        packages = PackageService.list_packages(request.user)
        return Response(PackageSerializer(packages, many=True).data)

    @extend_schema(
        summary="Create package",
        tags=["Packages"],
        request=PackageSerializer,
        responses={201: PackageSerializer},
    )
    def post(self, request):
        serializer = PackageSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        package = PackageService.create_package(request.user, **serializer.validated_data)
        return Response(PackageSerializer(package).data, status=status.HTTP_201_CREATED)


# =============================================================================
# Requests
# =============================================================================


class RequestListCreateView(DomainErrorMixin, APIView):
    permission_classes = [IsAuthenticated]

    @extend_schema(
        summary="List my delivery requests",
        tags=["Requests"],
        parameters=[
            OpenApiParameter("role", str, enum=["sender", "traveler"]),
            OpenApiParameter("status", str),
        ],
        responses={200: DeliveryRequestSerializer(many=True)},
    )
    def get(self, request):
        requests = RequestService.list_requests(
            request.user,
            role=request.query_params.get("role"),
            status=request.query_params.get("status"),
        ).prefetch_related("movement_events")
        return Response(DeliveryRequestSerializer(requests, many=True).data)

    @extend_schema(
        summary="Create delivery request",
        tags=["Requests"],
        request=DeliveryRequestCreateSerializer,
        responses={201: DeliveryRequestSerializer},
    )
    def post(self, request):
        serializer = DeliveryRequestCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        delivery_request = RequestService.create_request(
            request.user, **serializer.validated_data
        )
        return request_response(
            delivery_request.id, request.user, http_status=status.HTTP_201_CREATED
        )


class RequestDetailView(DomainErrorMixin, APIView):
    permission_classes = [IsAuthenticated]

    @extend_schema(summary="Get delivery request", tags=["Requests"], responses={200: DeliveryRequestSerializer})
    def get(self, request, request_id):
        return request_response(request_id, request.user)


class RequestAcceptView(DomainErrorMixin, APIView):
    permission_classes = [IsAuthenticated]

    @extend_schema(
        summary="Accept delivery request",
        tags=["Requests"],
        request=VersionedActionSerializer,
        responses={200: DeliveryRequestSerializer},
    )
    def post(self, request, request_id):
        serializer = VersionedActionSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        RequestService.accept_request(
            request_id, request.user, serializer.validated_data.get("version")
        )
        return request_response(request_id, request.user)


class RequestRejectView(DomainErrorMixin, APIView):
    permission_classes = [IsAuthenticated]

    @extend_schema(
        summary="Reject delivery request",
        tags=["Requests"],
        request=ReasonSerializer,
        responses={200: DeliveryRequestSerializer},
    )
    def post(self, request, request_id):
        serializer = ReasonSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        RequestService.reject_request(
            request_id, request.user, serializer.validated_data["reason"]
        )
        return request_response(request_id, request.user)


class RequestStatusView(DomainErrorMixin, APIView):
    permission_classes = [IsAuthenticated]

    @extend_schema(
        summary="Change delivery request status",
        tags=["Requests"],
        request=StatusTransitionSerializer,
        responses={200: DeliveryRequestSerializer},
    )
    def post(self, request, request_id):
        serializer = StatusTransitionSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        RequestService.transition_status(
            request_id,
            request.user,
            data["status"],
            location=data["location"],
            notes=data["notes"],
            expected_version=data.get("version"),
        )
        return request_response(request_id, request.user)


class ConfirmReceivedView(DomainErrorMixin, APIView):
    permission_classes = [IsAuthenticated]

    @extend_schema(
        summary="Confirm package received",
        tags=["Requests"],
        request=ConfirmReceivedSerializer,
        responses={200: DeliveryRequestSerializer},
    )
    def post(self, request, request_id):
        serializer = ConfirmReceivedSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        RequestService.confirm_received(
            request_id, request.user, **serializer.validated_data
        )
        return request_response(request_id, request.user)


class RequestCancelView(DomainErrorMixin, APIView):
    permission_classes = [IsAuthenticated]

    @extend_schema(
        summary="Cancel delivery request",
        tags=["Requests"],
        request=ReasonSerializer,
        responses={200: DeliveryRequestSerializer},
    )
    def post(self, request, request_id):
        serializer = ReasonSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        RequestService.cancel_request(
            request_id,
            request.user,
            serializer.validated_data["reason"],
            expected_version=serializer.validated_data.get("version"),
        )
        return request_response(request_id, request.user)


# =============================================================================
# Disputes
# =============================================================================


class DisputeView(DomainErrorMixin, APIView):
    permission_classes = [IsAuthenticated]

    @extend_schema(summary="Get dispute", tags=["Disputes"], responses={200: DisputeSerializer})
    def get(self, request, request_id):
        dispute = DisputeService.get_dispute(request_id, request.user)
        return Response(DisputeSerializer(dispute).data)

    @extend_schema(
        summary="Raise dispute",
        tags=["Disputes"],
        request=DisputeCreateSerializer,
        responses={201: DisputeSerializer},
    )
    def post(self, request, request_id):
        serializer = DisputeCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        dispute = DisputeService.raise_dispute(
            request_id, request.user, serializer.validated_data["reason"]
        )
        return Response(DisputeSerializer(dispute).data, status=status.HTTP_201_CREATED)


class DisputeResolveView(DomainErrorMixin, APIView):
    permission_classes = [IsAdminUser]

    @extend_schema(
        summary="Resolve dispute",
        tags=["Disputes - Admin"],
        request=DisputeResolveSerializer,
        responses={200: DisputeSerializer},
    )
    def post(self, request, request_id):
        serializer = DisputeResolveSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        dispute = DisputeService.resolve_dispute(
            request_id,
            request.user,
            serializer.validated_data["decision"],
            serializer.validated_data["resolution_note"],
        )
        return Response(DisputeSerializer(dispute).data)


# =============================================================================
# Payment
# =============================================================================


class PaymentIntentView(DomainErrorMixin, APIView):
    """
    Start the sender's payment for a request.

    Without a reference a provider intent is created (Stripe client secret
    or Paystack authorization url). With a reference, an intent created
    elsewhere is recorded.
    """

    permission_classes = [IsAuthenticated]

    @extend_schema(
        summary="Start or record payment",
        tags=["Requests"],
        request=PaymentIntentSerializer,
        responses={201: PaymentIntentResponseSerializer, 200: DeliveryRequestSerializer},
    )
    def post(self, request, request_id):
        serializer = PaymentIntentSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        provider = serializer.validated_data["provider"]
        reference = serializer.validated_data.get("reference")
        settlement = SettlementService()

        if not reference:
            intent = settlement.create_intent(request_id, request.user, provider)
            data = asdict(intent)
            data.pop("raw_response", None)
            return Response(
                PaymentIntentResponseSerializer(data).data,
                status=status.HTTP_201_CREATED,
            )

        delivery_request = RequestService.get_request(request_id, request.user)
        if delivery_request.sender_id != request.user.pk:
            raise NotRequestParticipant(
                "Only the sender can record a payment",
                details={"request_id": str(request_id)},
            )
        settlement.record_intent(request_id, provider, reference)
        return request_response(request_id, request.user)
