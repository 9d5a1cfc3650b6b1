"""
Delivery services.

- TripService / PackageService: traveler capacity and sender packages
- RequestService: delivery request lifecycle (the request state machine)
- DisputeService: one dispute per request, decided by an admin

Usage:
    from deliveries.services import RequestService

    request = RequestService.create_request(sender, traveler.id, package.id, 5000)
    RequestService.accept_request(request.id, actor=traveler)
"""

from deliveries.services.dispute_service import DisputeService
from deliveries.services.request_service import RequestService, normalize_status
from deliveries.services.trip_service import PackageService, TripService

__all__ = [
    "DisputeService",
    "PackageService",
    "RequestService",
    "TripService",
    "normalize_status",
]
