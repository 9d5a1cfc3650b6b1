"""
Tests for distributed locking utilities.

Tests the DistributedLock class which provides Redis-based mutual exclusion
across processes for money-moving operations, request_lock built on it,
and check_version for optimistic locking.
"""

import pytest
from django.test import override_settings

from core.exceptions import NotFoundError
from deliveries.models import DeliveryRequest
from deliveries.tests.factories import DeliveryRequestFactory
from payments.exceptions import LockAcquisitionError, StaleRecordError
from payments.locks import DistributedLock, check_version, request_lock


class TestDistributedLock:
    """Tests for DistributedLock class."""

    def test_acquire_success(self, mock_redis):
        lock = DistributedLock("test:key", ttl=30, blocking=False)

        assert lock.acquire() is True
        assert lock.is_held is True
        call_args = mock_redis.set.call_args
        assert call_args[0][0] == "lock:test:key"
        assert call_args[1]["nx"] is True
        assert call_args[1]["ex"] == 30

    def test_acquire_generates_unique_token(self, mock_redis):
        lock1 = DistributedLock("test:key1", blocking=False)
        lock2 = DistributedLock("test:key2", blocking=False)

        lock1.acquire()
        lock2.acquire()

        assert lock1._token != lock2._token

    def test_acquire_non_blocking_raises_when_held(self, mock_redis):
        mock_redis.set.return_value = None

        lock = DistributedLock("test:key", blocking=False)

        with pytest.raises(LockAcquisitionError) as exc_info:
            lock.acquire()

        assert "already held" in str(exc_info.value)
        assert exc_info.value.details["key"] == "lock:test:key"
        assert lock.is_held is False

    def test_acquire_blocking_waits_and_acquires(self, mock_redis, mocker):
        mocker.patch("payments.locks.time.sleep")
        mock_redis.set.side_effect = [None, None, True]

        lock = DistributedLock("test:key", blocking=True, timeout=1.0)

        assert lock.acquire() is True
        assert mock_redis.set.call_count == 3

    def test_acquire_blocking_timeout_raises_error(self, mock_redis):
        mock_redis.set.return_value = None

        lock = DistributedLock("test:key", blocking=True, timeout=0.1)

        with pytest.raises(LockAcquisitionError) as exc_info:
            lock.acquire()

        assert "within 0.1s" in str(exc_info.value)
        assert exc_info.value.details["timeout"] == 0.1

    def test_release_success(self, mock_redis):
        lock = DistributedLock("test:key", blocking=False)
        lock.acquire()

        assert lock.release() is True
        assert lock.is_held is False
        mock_redis.eval.assert_called_once()

    def test_release_only_if_owned(self, mock_redis):
        mock_redis.eval.return_value = 0  # token no longer matches

        lock = DistributedLock("test:key", blocking=False)
        lock.acquire()

        assert lock.release() is False

    def test_release_without_acquire_returns_false(self, mock_redis):
        lock = DistributedLock("test:key", blocking=False)

        assert lock.release() is False
        mock_redis.eval.assert_not_called()

    def test_context_manager_releases_on_exception(self, mock_redis):
        with pytest.raises(ValueError, match="Test error"):
            with DistributedLock("test:key"):
                raise ValueError("Test error")

        mock_redis.eval.assert_called_once()


class TestRequestLock:
    @override_settings(REQUEST_LOCK_TTL_SECONDS=45, REQUEST_LOCK_TIMEOUT_SECONDS=3.0)
    def test_configured_from_settings(self):
        lock = request_lock("abc")

        assert lock.key == "lock:delivery-request:abc"
        assert lock.ttl == 45
        assert lock.timeout == 3.0
        assert lock.blocking is True

    def test_serializes_same_request(self, in_memory_locks):
        with request_lock("abc"):
            contender = request_lock("abc")
            contender.blocking = False
            with pytest.raises(LockAcquisitionError):
                contender.acquire()

        with request_lock("abc") as lock:
            assert lock.is_held

    def test_different_requests_do_not_block(self, in_memory_locks):
        with request_lock("one"), request_lock("two") as second:
            assert second.is_held


@pytest.mark.django_db
class TestCheckVersion:
    def test_returns_row_at_expected_version(self):
        request = DeliveryRequestFactory()
        locked = check_version(DeliveryRequest, request.pk, request.version)
        assert locked.pk == request.pk

    def test_stale_version(self):
        request = DeliveryRequestFactory()

        with pytest.raises(StaleRecordError) as exc_info:
            check_version(DeliveryRequest, request.pk, request.version + 1)

        assert exc_info.value.details["current_version"] == request.version

    def test_missing_row(self):
        with pytest.raises(NotFoundError):
            check_version(DeliveryRequest, "00000000-0000-0000-0000-000000000000", 1)
