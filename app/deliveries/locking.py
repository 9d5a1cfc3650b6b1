"""
Request-scoped locking.

Every operation that changes a delivery request's status, payment state or
escrow runs inside locked_request: the Redis request lock serializes web
and worker processes, and the row is re-read with select_for_update inside
a transaction so the caller always works on the committed state.

Usage:
    from deliveries.locking import locked_request

    with locked_request(request_id) as request:
        request.accept()
        request.save()
"""

from __future__ import annotations

from contextlib import contextmanager
from typing import TYPE_CHECKING

from django.db import transaction

from core.exceptions import NotFoundError
from deliveries.exceptions import RequestNotFound
from deliveries.models import DeliveryRequest
from payments.locks import check_version, request_lock

if TYPE_CHECKING:
    from collections.abc import Iterator
    from typing import Any


@contextmanager
def locked_request(
    request_id: Any,
    expected_version: int | None = None,
) -> Iterator[DeliveryRequest]:
    """
    Yield the delivery request locked for update.

    Raises:
        RequestNotFound: If no request has this id
        StaleRecordError: If expected_version no longer matches
        LockAcquisitionError: If the request lock could not be acquired
    """
    with request_lock(request_id):
        with transaction.atomic():
            if expected_version is not None:
                try:
                    request = check_version(DeliveryRequest, request_id, expected_version)
                except NotFoundError:
                    raise RequestNotFound(
                        f"Delivery request {request_id} not found",
                        details={"request_id": str(request_id)},
                    )
            else:
                try:
                    request = DeliveryRequest.objects.select_for_update().get(pk=request_id)
                except DeliveryRequest.DoesNotExist:
                    raise RequestNotFound(
                        f"Delivery request {request_id} not found",
                        details={"request_id": str(request_id)},
                    )
            yield request
