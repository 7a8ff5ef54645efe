"""
Per-booking lock managers for serializing lifecycle writes.

Two implementations share the ``lock_context(resource_key)`` contract:
- KeyedLockManager: one asyncio.Lock per key inside a single event loop.
  Waiters are served first-come first-served, so writes to one booking apply
  in the order they were requested.
- ValkeyLockManager: Valkey SET with NX and PX plus an owner-checked Lua
  release, for deployments running several worker processes.
"""

import asyncio
import logging
import time
import uuid
from collections import Counter
from datetime import datetime, timedelta
from typing import Optional, Dict, Any, List
from dataclasses import dataclass, field
from contextlib import asynccontextmanager

import valkey

from .errors import LockAcquisitionError

logger = logging.getLogger(__name__)

LOCK_KEY_PREFIX = "skybooker:lock"


def build_lock_key(resource_key: str) -> str:
    """Namespace a resource key ('booking:42') as a lock key."""
    return f"{LOCK_KEY_PREFIX}:{resource_key}"


@dataclass
class LockInfo:
    """Information about a held lock."""
    lock_key: str
    lock_value: str
    acquired_at: datetime
    owner_id: str
    wait_time_ms: float = 0.0
    expires_at: Optional[datetime] = None

    @property
    def is_expired(self) -> bool:
        """Local locks never expire; Valkey locks expire with their TTL."""
        return self.expires_at is not None and datetime.now() > self.expires_at

    def to_dict(self) -> Dict[str, Any]:
        return {
            "lock_key": self.lock_key,
            "lock_value": self.lock_value,
            "acquired_at": self.acquired_at.isoformat(),
            "owner_id": self.owner_id,
            "wait_time_ms": self.wait_time_ms,
            "expires_at": self.expires_at.isoformat() if self.expires_at else None,
            "is_expired": self.is_expired,
        }


@dataclass
class LockStats:
    """Acquisition counters, kept per manager."""
    acquisitions: int = 0
    contended: int = 0
    failures: int = 0
    total_wait_ms: float = 0.0
    per_key: Counter = field(default_factory=Counter)

    @property
    def avg_wait_ms(self) -> float:
        return self.total_wait_ms / self.acquisitions if self.acquisitions else 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "acquisitions": self.acquisitions,
            "contended": self.contended,
            "failures": self.failures,
            "avg_wait_ms": self.avg_wait_ms,
            "busiest_keys": self.per_key.most_common(5),
        }


class KeyedLockManager:
    """
    In-process mutual exclusion keyed by resource.

    A lock object exists only while some coroutine holds or waits for it, so
    the table does not grow with the number of bookings ever touched.
    """

    def __init__(self):
        self.instance_id = str(uuid.uuid4())[:8]
        self._locks: Dict[str, asyncio.Lock] = {}
        self._refcounts: Dict[str, int] = {}
        self.active_locks: Dict[str, LockInfo] = {}
        self.stats = LockStats()

        logger.info(f"KeyedLockManager initialized with instance ID: {self.instance_id}")

    def _checkout(self, lock_key: str) -> asyncio.Lock:
        lock = self._locks.get(lock_key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[lock_key] = lock
        self._refcounts[lock_key] = self._refcounts.get(lock_key, 0) + 1
        return lock

    def _checkin(self, lock_key: str) -> None:
        remaining = self._refcounts[lock_key] - 1
        if remaining:
            self._refcounts[lock_key] = remaining
        else:
            del self._refcounts[lock_key]
            del self._locks[lock_key]

    @asynccontextmanager
    async def lock_context(self, resource_key: str):
        """
        Hold the lock for ``resource_key`` for the duration of the block.

        Usage:
            async with lock_manager.lock_context("booking:42") as lock:
                ...  # read-modify-write booking 42
        """
        lock_key = build_lock_key(resource_key)
        lock = self._checkout(lock_key)
        start_time = time.time()

        if lock.locked():
            self.stats.contended += 1
            logger.debug(f"Waiting for lock: {lock_key}")

        try:
            await lock.acquire()
        except BaseException:
            self._checkin(lock_key)
            raise

        wait_time_ms = (time.time() - start_time) * 1000
        lock_info = LockInfo(
            lock_key=lock_key,
            lock_value=f"{self.instance_id}:{uuid.uuid4()}",
            acquired_at=datetime.now(),
            owner_id=self.instance_id,
            wait_time_ms=wait_time_ms,
        )
        self.active_locks[lock_key] = lock_info
        self.stats.acquisitions += 1
        self.stats.total_wait_ms += wait_time_ms
        self.stats.per_key[resource_key] += 1

        try:
            yield lock_info
        finally:
            self.active_locks.pop(lock_key, None)
            lock.release()
            self._checkin(lock_key)

    def is_locked(self, resource_key: str) -> bool:
        lock = self._locks.get(build_lock_key(resource_key))
        return lock is not None and lock.locked()

    def get_active_locks(self) -> List[Dict[str, Any]]:
        """Get information about all locks currently held."""
        return [lock.to_dict() for lock in self.active_locks.values()]


class ValkeyLockManager:
    """
    Lock manager backed by Valkey SET with NX and PX options.

    Unlike KeyedLockManager, waiters poll and are not served in arrival order;
    the TTL bounds how long a crashed worker can block a booking.
    """

    RELEASE_SCRIPT = """
    if redis.call("get", KEYS[1]) == ARGV[1] then
        return redis.call("del", KEYS[1])
    else
        return 0
    end
    """

    def __init__(
        self,
        client: "valkey.Valkey",
        ttl_seconds: int = 30,
        timeout_seconds: float = 10.0,
        retry_delay: float = 0.05
    ):
        """
        Initialize Valkey lock manager.

        Args:
            client: Connected Valkey client
            ttl_seconds: Lock expiry, bounding how long a dead holder blocks others
            timeout_seconds: Maximum time to wait for lock acquisition
            retry_delay: Delay between acquisition attempts
        """
        self.client = client
        self.instance_id = str(uuid.uuid4())[:8]
        self.ttl_seconds = ttl_seconds
        self.timeout_seconds = timeout_seconds
        self.retry_delay = retry_delay
        self.active_locks: Dict[str, LockInfo] = {}
        self.stats = LockStats()

        logger.info(f"ValkeyLockManager initialized with instance ID: {self.instance_id}")

    @classmethod
    def from_settings(
        cls,
        host: str = "localhost",
        port: int = 6379,
        password: Optional[str] = None,
        database: int = 0,
        **kwargs: Any
    ) -> "ValkeyLockManager":
        client = valkey.Valkey(
            host=host, port=port, password=password, db=database, decode_responses=True
        )
        return cls(client, **kwargs)

    async def acquire_lock(self, resource_key: str) -> Optional[LockInfo]:
        """
        Try to acquire the lock for ``resource_key`` until the timeout.

        Returns:
            LockInfo if acquired, None on timeout
        """
        lock_key = build_lock_key(resource_key)
        lock_value = f"{self.instance_id}:{uuid.uuid4()}"
        ttl_ms = self.ttl_seconds * 1000

        start_time = time.time()
        attempts = 0

        while True:
            attempts += 1
            if self.client.set(lock_key, lock_value, nx=True, px=ttl_ms):
                acquired_at = datetime.now()
                wait_time_ms = (time.time() - start_time) * 1000
                lock_info = LockInfo(
                    lock_key=lock_key,
                    lock_value=lock_value,
                    acquired_at=acquired_at,
                    owner_id=self.instance_id,
                    wait_time_ms=wait_time_ms,
                    expires_at=acquired_at + timedelta(seconds=self.ttl_seconds),
                )
                self.active_locks[lock_key] = lock_info
                self.stats.acquisitions += 1
                self.stats.total_wait_ms += wait_time_ms
                self.stats.per_key[resource_key] += 1
                if attempts > 1:
                    self.stats.contended += 1
                logger.debug(f"Lock acquired: {lock_key} (attempts: {attempts}, wait: {wait_time_ms:.1f}ms)")
                return lock_info

            if time.time() - start_time >= self.timeout_seconds:
                self.stats.failures += 1
                logger.warning(f"Failed to acquire lock: {lock_key} (attempts: {attempts})")
                return None

            await asyncio.sleep(self.retry_delay)

    async def release_lock(self, lock_info: LockInfo) -> bool:
        """Release a lock if this manager still owns it."""
        self.active_locks.pop(lock_info.lock_key, None)
        result = self.client.eval(self.RELEASE_SCRIPT, 1, lock_info.lock_key, lock_info.lock_value)

        if result:
            logger.debug(f"Lock released: {lock_info.lock_key}")
            return True

        logger.warning(f"Lock release failed (not owner or expired): {lock_info.lock_key}")
        return False

    @asynccontextmanager
    async def lock_context(self, resource_key: str):
        """
        Hold the Valkey lock for ``resource_key`` for the duration of the block.

        Raises:
            LockAcquisitionError: If the lock is not acquired before the timeout
        """
        lock_info = await self.acquire_lock(resource_key)
        if lock_info is None:
            raise LockAcquisitionError(
                f"Timed out after {self.timeout_seconds}s waiting for {resource_key}"
            )

        try:
            yield lock_info
        finally:
            await self.release_lock(lock_info)

    def get_active_locks(self) -> List[Dict[str, Any]]:
        """Get information about all locks held by this instance."""
        return [lock.to_dict() for lock in self.active_locks.values()]


def create_lock_manager(config) -> Any:
    """Build the lock manager selected by ``config.lock_backend``."""
    if config.lock_backend == "valkey":
        return ValkeyLockManager.from_settings(
            host=config.valkey_host,
            port=config.valkey_port,
            password=config.valkey_password,
            database=config.valkey_database,
            ttl_seconds=config.lock_ttl_seconds,
            timeout_seconds=config.lock_timeout_seconds,
        )
    return KeyedLockManager()
