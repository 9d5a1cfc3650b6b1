"""
ViewSet mixins for common DRF functionality.

DomainErrorMixin lets views call services directly and let domain errors
propagate: any BaseApplicationError raised while handling a request is
rendered as its to_dict() payload with the error's http_status. Errors that
are not BaseApplicationError fall through to DRF's default handling.

Usage:
    from core.viewset_mixins import DomainErrorMixin

    class TripViewSet(DomainErrorMixin, viewsets.ModelViewSet):
        ...
"""

from __future__ import annotations

import logging

from rest_framework.response import Response

from core.exceptions import BaseApplicationError

logger = logging.getLogger(__name__)


class DomainErrorMixin:
    """Translate BaseApplicationError into a JSON error response."""

    def handle_exception(self, exc):
        if isinstance(exc, BaseApplicationError):
            logger.info(
                "Domain error in %s: %s",
                self.__class__.__name__,
                exc,
                extra={
                    "error_code": exc.error_code,
                    "http_status": exc.http_status,
                },
            )
            return Response(exc.to_dict(), status=exc.http_status)
        return super().handle_exception(exc)
