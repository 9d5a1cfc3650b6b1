"""
Authentication views.

Endpoints:
    POST /api/v1/auth/register/             - Create an account
    POST /api/v1/auth/token/                - Obtain JWT pair (simplejwt)
    POST /api/v1/auth/token/refresh/        - Refresh access token (simplejwt)
    GET/PATCH /api/v1/auth/me/              - Current user
    POST /api/v1/auth/users/{id}/kyc/       - Set KYC status (admin)
    POST /api/v1/auth/referral/apply/       - Consume referral discount
"""

from dataclasses import asdict

from drf_spectacular.utils import extend_schema
from rest_framework import status
from rest_framework.permissions import AllowAny, IsAdminUser, IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from authentication.serializers import (
    KYCStatusSerializer,
    ReferralApplySerializer,
    ReferralDiscountSerializer,
    RegisterSerializer,
    UserSerializer,
)
from authentication.services import UserService
from core.viewset_mixins import DomainErrorMixin


class RegisterView(DomainErrorMixin, APIView):
    """Create an account. KYC starts as pending."""

    permission_classes = [AllowAny]
    authentication_classes = []

    @extend_schema(
        summary="Register",
        tags=["Auth"],
        request=RegisterSerializer,
        responses={201: UserSerializer},
    )
    def post(self, request):
        serializer = RegisterSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        user = UserService.register(**serializer.validated_data)
        return Response(UserSerializer(user).data, status=status.HTTP_201_CREATED)


class MeView(APIView):
    """
    API view for the current user.

    GET: Retrieve account details, KYC and referral state
    PATCH: Update contact details
    """

    permission_classes = [IsAuthenticated]

    @extend_schema(summary="Get current user", tags=["Auth"], responses={200: UserSerializer})
    def get(self, request):
        return Response(UserSerializer(request.user).data)

    @extend_schema(
        summary="Update current user",
        tags=["Auth"],
        request=UserSerializer,
        responses={200: UserSerializer},
    )
    def patch(self, request):
        serializer = UserSerializer(request.user, data=request.data, partial=True)
        serializer.is_valid(raise_exception=True)
        serializer.save()
        return Response(serializer.data)


class KYCStatusView(DomainErrorMixin, APIView):
    """Admin decision on a user's identity verification."""

    permission_classes = [IsAdminUser]

    @extend_schema(
        summary="Set KYC status",
        tags=["Auth - Admin"],
        request=KYCStatusSerializer,
        responses={200: UserSerializer},
    )
    def post(self, request, user_id):
        serializer = KYCStatusSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        user = UserService.set_kyc_status(
            user_id, serializer.validated_data["kyc_status"]
        )
        return Response(UserSerializer(user).data)


class ReferralApplyView(DomainErrorMixin, APIView):
    """
    Consume the one-time referral discount.

    Repeat calls succeed with applied=false and a zero discount.
    """

    permission_classes = [IsAuthenticated]

    @extend_schema(
        summary="Apply referral discount",
        tags=["Auth"],
        request=ReferralApplySerializer,
        responses={200: ReferralDiscountSerializer},
    )
    def post(self, request):
        serializer = ReferralApplySerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        result = UserService.apply_referral_discount(
            request.user, serializer.validated_data["amount_cents"]
        )
        return Response(ReferralDiscountSerializer(asdict(result)).data)
