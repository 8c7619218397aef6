"""
Redis-based distributed lock for payment sweeps.

Database row locks serialize writes; this lock keeps two workers from
working the same payment against Stripe at the same time (the stuck
payment sweep runs on every beat node and may overlap with a submission
retry).

Usage:
    from payments.locks import DistributedLock

    with DistributedLock(f"payment:reconcile:{payment.id}", ttl=60, blocking=False):
        reconcile(payment)
"""

from __future__ import annotations

import time
import uuid as uuid_module
from typing import TYPE_CHECKING

from django_redis import get_redis_connection

from payments.exceptions import LockAcquisitionError

if TYPE_CHECKING:
    from typing import Any

    from redis import Redis


class DistributedLock:
    """
    Token-owned Redis lock with a TTL.

    The TTL releases the lock if the holder crashes; the token makes sure
    only the holder can release or extend it.

    Args:
        key: Lock identifier (prefixed with "lock:")
        ttl: Seconds before Redis drops the lock on its own
        blocking: Wait for the lock instead of failing at once
        timeout: Maximum wait in blocking mode

    Raises (on acquire / enter):
        LockAcquisitionError: The lock is held elsewhere
    """

    # Compare-and-delete so a lock that expired and was re-acquired by
    # another worker is not released by us.
    RELEASE_SCRIPT = """
    if redis.call("get", KEYS[1]) == ARGV[1] then
        return redis.call("del", KEYS[1])
    else
        return 0
    end
    """

    EXTEND_SCRIPT = """
    if redis.call("get", KEYS[1]) == ARGV[1] then
        return redis.call("expire", KEYS[1], ARGV[2])
    else
        return 0
    end
    """

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

    def _try_acquire(self, token: str) -> bool:
        return bool(self._get_redis().set(self.key, token, nx=True, ex=self.ttl))

    def acquire(self) -> bool:
        token = str(uuid_module.uuid4())

        if not self.blocking:
            if not self._try_acquire(token):
                raise LockAcquisitionError(
                    f"Lock '{self.key}' is already held",
                    details={"key": self.key},
                )
            self._token = token
            return True

        deadline = time.time() + self.timeout
        while time.time() < deadline:
            if self._try_acquire(token):
                self._token = token
                return True
            time.sleep(0.05)

        raise LockAcquisitionError(
            f"Failed to acquire lock '{self.key}' within {self.timeout}s",
            details={"key": self.key, "timeout": self.timeout},
        )

    def release(self) -> bool:
        """Release the lock if we own it. Safe to call more than once."""
        if self._token is None:
            return False
        result = self._get_redis().eval(self.RELEASE_SCRIPT, 1, self.key, self._token)
        self._token = None
        return bool(result)

    def extend(self, ttl: int | None = None) -> bool:
        """Reset the TTL (to ``ttl`` or the original) if we still own the lock."""
        if self._token is None:
            return False
        result = self._get_redis().eval(self.EXTEND_SCRIPT, 1, self.key, self._token, ttl or self.ttl)
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
