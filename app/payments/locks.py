"""
Concurrency control for money-moving operations.

Two complementary mechanisms guard every balance and escrow mutation:

1. **Distributed Locks** (DistributedLock, request_lock)
   - Redis SET NX EX mutual exclusion across web and worker processes
   - Serializes request-scoped flows (payment confirmation, cancellation,
     receipt confirmation) that span several rows and provider calls
   - TTL prevents deadlocks from crashed processes

2. **Optimistic Locking** (check_version)
   - Compares a caller-supplied version with DeliveryRequest.version
   - Used when a client sends the version it last saw

Per-user balance serialization is not done here: the ledger locks the
affected LedgerAccount rows with select_for_update (see
payments.ledger.services.LedgerService.record_entries).

Usage:
    from payments.locks import check_version, request_lock

    with request_lock(delivery_request.id):
        with transaction.atomic():
            ...
"""

from __future__ import annotations

import time
import uuid as uuid_module
from typing import TYPE_CHECKING, TypeVar

from django.conf import settings
from django.db import models, transaction

from django_redis import get_redis_connection

from core.exceptions import NotFoundError
from payments.exceptions import LockAcquisitionError, StaleRecordError

if TYPE_CHECKING:
    from typing import Any

    from redis import Redis

T = TypeVar("T", bound=models.Model)


# =============================================================================
# Distributed Locks
# =============================================================================


class DistributedLock:
    """
    Redis-based distributed lock with TTL.

    A random token is stored as the key's value so that only the holder can
    release it; release is an atomic compare-and-delete Lua script.

    Example:
        with DistributedLock("delivery-request:123", ttl=30):
            confirm_payment()

        lock = DistributedLock("wallet:42", blocking=False)
        try:
            with lock:
                ...
        except LockAcquisitionError:
            ...

    Args:
        key: Lock identifier (will be prefixed with "lock:")
        ttl: Lock TTL in seconds (auto-releases after this time)
        blocking: If True, acquire() polls until the lock is available
        timeout: Maximum wait time in seconds (only if blocking=True)
    """

    RELEASE_SCRIPT = """
    if redis.call("get", KEYS[1]) == ARGV[1] then
        return redis.call("del", KEYS[1])
    else
        return 0
    end
    """

    POLL_INTERVAL_SECONDS = 0.05

    def __init__(
        self,
        key: str,
        ttl: int = 30,
        blocking: bool = True,
        timeout: float = 10.0,
    ) -> None:
        self.key = f"lock:{key}"
        self.ttl = ttl
        self.blocking = blocking
        self.timeout = timeout
        self._token: str | None = None
        self._redis: Redis | None = None

    def _get_redis(self) -> Redis:
        if self._redis is None:
            self._redis = get_redis_connection("default")
        return self._redis

    def acquire(self) -> bool:
        """
        Acquire the lock.

        Returns:
            True once the lock is held

        Raises:
            LockAcquisitionError: If the lock is held elsewhere (non-blocking)
                or could not be obtained within the timeout (blocking)
        """
        token = str(uuid_module.uuid4())
        redis = self._get_redis()

        if self.blocking:
            deadline = time.monotonic() + self.timeout
            while time.monotonic() < deadline:
                if redis.set(self.key, token, nx=True, ex=self.ttl):
                    self._token = token
                    return True
                time.sleep(self.POLL_INTERVAL_SECONDS)

            raise LockAcquisitionError(
                f"Failed to acquire lock '{self.key}' within {self.timeout}s",
                details={"key": self.key, "timeout": self.timeout},
            )

        if not redis.set(self.key, token, nx=True, ex=self.ttl):
            raise LockAcquisitionError(
                f"Lock '{self.key}' is already held",
                details={"key": self.key},
            )
        self._token = token
        return True

    def release(self) -> bool:
        """
        Release the lock if we hold it.

        Returns:
            True if the lock was released, False if we did not hold it
            (never acquired, or expired and taken by someone else)
        """
        if self._token is None:
            return False

        result = self._get_redis().eval(self.RELEASE_SCRIPT, 1, self.key, self._token)
        self._token = None
        return bool(result)

    @property
    def is_held(self) -> bool:
        return self._token is not None

    def __enter__(self) -> DistributedLock:
        self.acquire()
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: Any,
    ) -> bool:
        self.release()
        return False


def request_lock(request_id: Any) -> DistributedLock:
    """Lock serializing every money-moving operation on one delivery request."""
    return DistributedLock(
        f"delivery-request:{request_id}",
        ttl=settings.REQUEST_LOCK_TTL_SECONDS,
        blocking=True,
        timeout=settings.REQUEST_LOCK_TIMEOUT_SECONDS,
    )


# =============================================================================
# Optimistic Locking
# =============================================================================


def check_version(
    model_class: type[T],
    pk: Any,
    expected_version: int,
) -> T:
    """
    Lock a row for update after checking it still has the expected version.

    Must be called inside the caller's transaction; the row lock is held
    until that transaction ends.

    Args:
        model_class: Model with a VersionedMixin ``version`` field
        pk: Primary key of the record
        expected_version: Version the caller last saw

    Returns:
        The locked model instance

    Raises:
        NotFoundError: If the record doesn't exist
        StaleRecordError: If the version moved on (concurrent modification)
    """
    with transaction.atomic():
        instance = (
            model_class.objects.select_for_update()
            .filter(pk=pk, version=expected_version)
            .first()
        )
        if instance is not None:
            return instance

        model_name = model_class.__name__
        current_version = (
            model_class.objects.filter(pk=pk).values_list("version", flat=True).first()
        )
        if current_version is None:
            raise NotFoundError(
                f"{model_name} {pk} not found",
                error_code=f"{model_name.upper()}_NOT_FOUND",
                details={"pk": str(pk)},
            )

        raise StaleRecordError(
            f"{model_name} {pk} has been modified "
            f"(expected version {expected_version}, current {current_version})",
            details={
                "pk": str(pk),
                "expected_version": expected_version,
                "current_version": current_version,
            },
        )


__all__ = [
    "DistributedLock",
    "request_lock",
    "check_version",
]
