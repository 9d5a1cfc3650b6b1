"""
URL configuration for authentication app.

URL structure:
    /api/v1/auth/register/
    /api/v1/auth/token/
    /api/v1/auth/token/refresh/
    /api/v1/auth/me/
    /api/v1/auth/users/<uuid>/kyc/
    /api/v1/auth/referral/apply/
"""

from django.urls import path
from rest_framework_simplejwt.views import TokenObtainPairView, TokenRefreshView

from authentication.views import KYCStatusView, MeView, ReferralApplyView, RegisterView

app_name = "authentication"

urlpatterns = [
    path("register/", RegisterView.as_view(), name="register"),
    path("token/", TokenObtainPairView.as_view(), name="token-obtain"),
    path("token/refresh/", TokenRefreshView.as_view(), name="token-refresh"),
    path("me/", MeView.as_view(), name="me"),
    path("users/<uuid:user_id>/kyc/", KYCStatusView.as_view(), name="user-kyc"),
    path("referral/apply/", ReferralApplyView.as_view(), name="referral-apply"),
]
