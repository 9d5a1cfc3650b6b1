"""
URL configuration for deliveries app.

URL structure:
    /api/v1/deliveries/trips/
    /api/v1/deliveries/trips/search/
    /api/v1/deliveries/trips/<uuid>/
    /api/v1/deliveries/trips/<uuid>/reviews/
    /api/v1/deliveries/packages/
    /api/v1/deliveries/requests/
    /api/v1/deliveries/requests/<uuid>/...
"""

from django.urls import path

from deliveries import views

app_name = "deliveries"

urlpatterns = [
    # Trips
    path("trips/", views.TripListCreateView.as_view(), name="trip-list"),
    path("trips/search/", views.TripSearchView.as_view(), name="trip-search"),
    path("trips/<uuid:trip_id>/", views.TripDetailView.as_view(), name="trip-detail"),
    path(
        "trips/<uuid:trip_id>/reviews/",
        views.TripReviewView.as_view(),
        name="trip-reviews",
    ),
    # Packages
    path("packages/", views.PackageListCreateView.as_view(), name="package-list"),
    # Requests
    path("requests/", views.RequestListCreateView.as_view(), name="request-list"),
    path(
        "requests/<uuid:request_id>/",
        views.RequestDetailView.as_view(),
        name="request-detail",
    ),
    path(
        "requests/<uuid:request_id>/accept/",
        views.RequestAcceptView.as_view(),
        name="request-accept",
    ),
    path(
        "requests/<uuid:request_id>/reject/",
        views.RequestRejectView.as_view(),
        name="request-reject",
    ),
    path(
        "requests/<uuid:request_id>/status/",
        views.RequestStatusView.as_view(),
        name="request-status",
    ),
    path(
        "requests/<uuid:request_id>/confirm-received/",
        views.ConfirmReceivedView.as_view(),
        name="request-confirm-received",
    ),
    path(
        "requests/<uuid:request_id>/cancel/",
        views.RequestCancelView.as_view(),
        name="request-cancel",
    ),
    path(
        "requests/<uuid:request_id>/dispute/",
        views.DisputeView.as_view(),
        name="request-dispute",
    ),
    path(
        "requests/<uuid:request_id>/dispute/resolve/",
        views.DisputeResolveView.as_view(),
        name="request-dispute-resolve",
    ),
    path(
        "requests/<uuid:request_id>/payment-intent/",
        views.PaymentIntentView.as_view(),
        name="request-payment-intent",
    ),
]
