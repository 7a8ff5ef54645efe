"""
Tests for per-booking lock managers.

KeyedLockManager is exercised on the real event loop; ValkeyLockManager runs
against a mock Valkey client so no server is needed.
"""

import asyncio
import pytest

from skybooker.services.errors import LockAcquisitionError
from skybooker.services.lock_manager import (
    KeyedLockManager,
    ValkeyLockManager,
    build_lock_key,
    create_lock_manager,
)
from skybooker.utils.config import BookingEngineConfig


class MockValkeyClient:
    """Mock Valkey client for testing."""

    def __init__(self):
        self.data = {}
        self.set_calls = []

    def get(self, key):
        """Mock GET operation."""
        return self.data.get(key)

    def set(self, key, value, nx=False, px=None):
        """Mock SET operation."""
        self.set_calls.append((key, value, nx, px))
        if nx and key in self.data:
            return False
        self.data[key] = value
        return True

    def eval(self, script, num_keys, *args):
        """Mock EVAL operation for the lock release script."""
        if "get" in script and "del" in script:
            key, expected_value = args[0], args[1]
            if self.data.get(key) == expected_value:
                self.data.pop(key, None)
                return 1
            return 0
        return 0


class TestKeyedLockManager:
    """In-process keyed locking."""

    def test_lock_key_namespace(self):
        assert build_lock_key("booking:42") == "skybooker:lock:booking:42"

    @pytest.mark.asyncio
    async def test_serializes_same_key_in_arrival_order(self):
        manager = KeyedLockManager()
        order = []

        async def worker(name):
            async with manager.lock_context("booking:1"):
                order.append(f"{name}-start")
                await asyncio.sleep(0.01)
                order.append(f"{name}-end")

        await asyncio.gather(worker("a"), worker("b"), worker("c"))

        assert order == ["a-start", "a-end", "b-start", "b-end", "c-start", "c-end"]
        assert manager.stats.acquisitions == 3
        assert manager.stats.contended == 2

    @pytest.mark.asyncio
    async def test_different_keys_do_not_block(self):
        manager = KeyedLockManager()
        entered = asyncio.Event()

        async def holder():
            async with manager.lock_context("booking:1"):
                await entered.wait()

        async def other():
            async with manager.lock_context("booking:2"):
                entered.set()

        await asyncio.wait_for(asyncio.gather(holder(), other()), timeout=1)

    @pytest.mark.asyncio
    async def test_idle_locks_are_removed(self):
        manager = KeyedLockManager()

        async with manager.lock_context("booking:7") as lock_info:
            assert manager.is_locked("booking:7")
            assert lock_info.owner_id == manager.instance_id
            assert len(manager.get_active_locks()) == 1

        assert not manager.is_locked("booking:7")
        assert manager._locks == {}
        assert manager._refcounts == {}
        assert manager.get_active_locks() == []

    @pytest.mark.asyncio
    async def test_lock_released_on_error(self):
        manager = KeyedLockManager()

        with pytest.raises(RuntimeError):
            async with manager.lock_context("booking:3"):
                raise RuntimeError("boom")

        assert not manager.is_locked("booking:3")
        async with manager.lock_context("booking:3"):
            pass


class TestValkeyLockManager:
    """Valkey-backed locking with a mock client."""

    @pytest.fixture
    def client(self):
        return MockValkeyClient()

    @pytest.mark.asyncio
    async def test_acquire_and_release(self, client):
        manager = ValkeyLockManager(client, ttl_seconds=5)

        lock_info = await manager.acquire_lock("booking:42")

        assert lock_info is not None
        assert client.data[lock_info.lock_key] == lock_info.lock_value
        key, _, nx, px = client.set_calls[0]
        assert key == "skybooker:lock:booking:42"
        assert nx is True
        assert px == 5000

        assert await manager.release_lock(lock_info) is True
        assert lock_info.lock_key not in client.data

    @pytest.mark.asyncio
    async def test_release_refuses_foreign_lock(self, client):
        manager = ValkeyLockManager(client)
        lock_info = await manager.acquire_lock("booking:1")
        client.data[lock_info.lock_key] = "someone-else"

        assert await manager.release_lock(lock_info) is False
        assert client.data[lock_info.lock_key] == "someone-else"

    @pytest.mark.asyncio
    async def test_lock_context_times_out(self, client):
        client.data[build_lock_key("booking:9")] = "other-worker"
        manager = ValkeyLockManager(client, timeout_seconds=0.05, retry_delay=0.01)

        with pytest.raises(LockAcquisitionError):
            async with manager.lock_context("booking:9"):
                pass

        assert manager.stats.failures == 1

    @pytest.mark.asyncio
    async def test_lock_context_releases(self, client):
        manager = ValkeyLockManager(client)

        async with manager.lock_context("booking:5"):
            assert build_lock_key("booking:5") in client.data

        assert client.data == {}
        assert manager.get_active_locks() == []


class TestCreateLockManager:

    def test_local_backend(self):
        manager = create_lock_manager(BookingEngineConfig())
        assert isinstance(manager, KeyedLockManager)

    def test_valkey_backend(self):
        config = BookingEngineConfig(lock_backend="valkey", lock_ttl_seconds=12)
        manager = create_lock_manager(config)
        assert isinstance(manager, ValkeyLockManager)
        assert manager.ttl_seconds == 12
