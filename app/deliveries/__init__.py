"""
Deliveries app: trips, packages, delivery requests and disputes.

This app handles:
- Trips offered by travelers and their reviews
- Packages described by senders
- The delivery request lifecycle, from pending to completed or cancelled
- Disputes raised on a request and decided by an admin
- Movement tracking and participant notifications

Related apps:
    - payments: escrow and settlement for each request
    - authentication: KYC gate and referral discount

Usage:
    from deliveries.services import RequestService

    request = RequestService.confirm_received(request_id, actor=user)
"""
