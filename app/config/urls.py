"""
URL configuration for the Django application.

URL Structure:
    /                              - ReDoc API documentation
    /admin/                        - Django admin interface
    /health/                       - Health check endpoint (load balancers, Docker)
    /schema/                       - OpenAPI schema (YAML)
    /api/v1/auth/                  - Registration, JWT tokens, profile, KYC, referral
    /api/v1/deliveries/            - Trips, packages, delivery requests, disputes
        trips/                     - Trip list/create
        trips/search/              - Trip search
        trips/{id}/                - Trip detail/update
        trips/{id}/reviews/        - Trip reviews
        packages/                  - Package list/create
        requests/                  - Request list/create
        requests/{id}/             - Request detail
        requests/{id}/accept/      - Traveler accepts
        requests/{id}/reject/      - Traveler rejects
        requests/{id}/status/      - Status transition
        requests/{id}/confirm-received/ - Sender confirms receipt
        requests/{id}/cancel/      - Cancel
        requests/{id}/dispute/     - Raise/get dispute
        requests/{id}/dispute/resolve/ - Admin decision
        requests/{id}/payment-intent/  - Start or record payment
    /api/v1/payments/              - Wallet, payment confirmation, refunds, webhooks

https://docs.djangoproject.com/en/5.2/topics/http/urls/
"""

from django.contrib import admin
from django.urls import include, path
from drf_spectacular.views import SpectacularAPIView, SpectacularRedocView

from core.views import health_check

# =============================================================================
# API v1 Routes
# =============================================================================
# All routes here are prefixed with /api/v1/ automatically
api_v1_patterns = [
    path("auth/", include("authentication.urls")),
    path("deliveries/", include("deliveries.urls")),
    path("payments/", include("payments.urls")),
]

urlpatterns = [
    # Documentation
    path("", SpectacularRedocView.as_view(url_name="schema"), name="redoc"),
    path("schema/", SpectacularAPIView.as_view(), name="schema"),
    # Admin
    path("admin/", admin.site.urls),
    # Health check (Docker, Kubernetes, load balancers)
    path("health/", health_check, name="health_check"),
    # API v1
    path("api/v1/", include(api_v1_patterns)),
]

# =============================================================================
# Admin Site Customization
# =============================================================================
admin.site.site_header = "Parcel Delivery Admin"
admin.site.site_title = "Parcel Delivery"
admin.site.index_title = "Operations"
