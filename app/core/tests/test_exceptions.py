"""
Tests for the application exception hierarchy.
"""

import pytest
from rest_framework import status

from core.exceptions import (
    BaseApplicationError,
    ConflictError,
    ExternalServiceError,
    InvalidTransition,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)


class TestBaseApplicationError:
    def test_defaults(self):
        error = BaseApplicationError("Something broke")

        assert error.error_code == "APPLICATION_ERROR"
        assert error.details == {}
        assert error.to_dict() == {"error": "Something broke", "error_code": "APPLICATION_ERROR"}

    def test_custom_code_and_details(self):
        error = NotFoundError(
            "Trip 1 not found", error_code="TRIP_NOT_FOUND", details={"trip_id": "1"}
        )

        assert error.to_dict() == {
            "error": "Trip 1 not found",
            "error_code": "TRIP_NOT_FOUND",
            "details": {"trip_id": "1"},
        }
        assert str(error) == "[TRIP_NOT_FOUND] Trip 1 not found"


@pytest.mark.parametrize(
    "error_class,http_status",
    [
        (ValidationError, status.HTTP_400_BAD_REQUEST),
        (NotFoundError, status.HTTP_404_NOT_FOUND),
        (PermissionDeniedError, status.HTTP_403_FORBIDDEN),
        (ConflictError, status.HTTP_409_CONFLICT),
        (InvalidTransition, status.HTTP_409_CONFLICT),
        (ExternalServiceError, status.HTTP_502_BAD_GATEWAY),
    ],
)
def test_http_status(error_class, http_status):
    assert error_class("x").http_status == http_status


def test_invalid_transition_is_a_conflict():
    error = InvalidTransition("nope")

    assert isinstance(error, ConflictError)
    assert error.error_code == "INVALID_TRANSITION"
