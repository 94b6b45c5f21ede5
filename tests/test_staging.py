"""Tests for the staging buffer and manager."""
import asyncio
import ipaddress

import pytest

from netd.errors import StagingFullError
from netd.interpreter.schema import AddressFamily, InterfaceConfig, RouteConfig
from netd.staging import StagingBuffer, StagingManager
from netd.system.memory import MemoryBackend

SEED = {
    "interfaces": [
        {"name": "em0", "ipv4": ["192.168.1.1/24"]},
        {"name": "em1"},
    ],
}


def iface(name="em1", cidr="10.0.0.1/24", fib=0):
    interface = ipaddress.ip_interface(cidr)
    return InterfaceConfig(
        name=name,
        family=AddressFamily.INET4,
        address=interface.ip,
        prefix_len=interface.network.prefixlen,
        fib=fib,
    )


def route(dest="172.16.0.0/12", gw="10.0.0.254", fib=None):
    network = ipaddress.ip_network(dest)
    return RouteConfig(
        family=AddressFamily.INET4,
        destination=network.network_address,
        prefix_len=network.prefixlen,
        gateway=ipaddress.ip_address(gw),
        fib=fib,
    )


def make_manager(**kwargs):
    backend = MemoryBackend.from_seed(SEED)
    manager = StagingManager(StagingBuffer(kwargs.pop("capacity", 64)), backend, backend, **kwargs)
    return manager, backend


class TestStagingBuffer:
    """Tests for StagingBuffer."""

    def test_separates_kinds(self):
        buffer = StagingBuffer()
        buffer.add(route())
        buffer.add(iface())
        assert len(buffer.interfaces) == 1
        assert len(buffer.routes) == 1
        assert len(buffer) == 2

    def test_entries_apply_order(self):
        """Interfaces come before routes regardless of staging order."""
        buffer = StagingBuffer()
        r, i = route(), iface()
        buffer.add(r)
        buffer.add(i)
        assert buffer.entries() == [i, r]

    def test_capacity(self):
        buffer = StagingBuffer(capacity=2)
        buffer.add(iface())
        buffer.add(route())
        with pytest.raises(StagingFullError) as exc_info:
            buffer.add(route("10.9.0.0/16"))
        assert exc_info.value.capacity == 2
        assert len(buffer) == 2

    def test_drain_empties(self):
        buffer = StagingBuffer()
        buffer.add(iface())
        interfaces, routes = buffer.drain()
        assert len(interfaces) == 1
        assert routes == []
        assert len(buffer) == 0

    def test_rejects_invalid_capacity(self):
        with pytest.raises(ValueError):
            StagingBuffer(capacity=0)


class TestStagingManager:
    """Tests for StagingManager commit and discard."""

    @pytest.mark.asyncio
    async def test_commit_applies_interfaces_before_routes(self):
        """A route staged before its interface still applies."""
        manager, backend = make_manager()
        manager.stage(route())  # gateway 10.0.0.254 reachable only after em1 is up
        manager.stage(iface())

        result = await manager.commit()

        assert result.success
        assert len(result.applied) == 2
        routes = await backend.list_routes(0)
        assert any(r.destination == "172.16.0.0/12" for r in routes)

    @pytest.mark.asyncio
    async def test_commit_drains_buffer(self):
        manager, _ = make_manager()
        manager.stage(iface())
        await manager.commit()
        assert manager.pending == []
        second = await manager.commit()
        assert second.total == 0
        assert "No pending changes" in second.summary()

    @pytest.mark.asyncio
    async def test_continue_on_error(self):
        """A failing entry does not stop later entries."""
        manager, backend = make_manager()
        manager.stage(iface("em9"))  # no such interface
        manager.stage(iface("em1"))
        manager.stage(route())

        result = await manager.commit()

        assert not result.success
        assert len(result.failed) == 1
        assert result.failed[0].entry.name == "em9"
        assert len(result.applied) == 2
        assert result.skipped == []
        assert "1 failed" in result.summary()

    @pytest.mark.asyncio
    async def test_stop_on_error(self):
        """stop_on_error reports the rest as skipped and drops them."""
        manager, backend = make_manager(stop_on_error=True)
        manager.stage(iface("em9"))
        manager.stage(iface("em1"))
        manager.stage(route())

        result = await manager.commit()

        assert len(result.failed) == 1
        assert len(result.skipped) == 2
        assert result.applied == []
        assert manager.pending == []
        interfaces = await backend.list_interfaces("em1")
        assert interfaces[0].ipv4 == []

    @pytest.mark.asyncio
    async def test_no_rollback(self):
        """Applied entries stay applied when a later one fails."""
        manager, backend = make_manager()
        manager.stage(iface("em1"))
        manager.stage(route(gw="203.0.113.1"))  # unreachable gateway

        result = await manager.commit()

        assert len(result.applied) == 1
        assert len(result.failed) == 1
        info = (await backend.list_interfaces("em1"))[0]
        assert info.ipv4 == ["10.0.0.1/24"]

    @pytest.mark.asyncio
    async def test_timeout_is_failure(self):
        """A backend call exceeding the timeout becomes an ApplyFailure."""
        manager, backend = make_manager(timeout=0.05)

        async def slow(config):
            await asyncio.sleep(1)
            return True, "late"

        backend.configure_interface = slow
        manager.stage(iface())

        result = await manager.commit()

        assert len(result.failed) == 1
        assert "timed out" in result.failed[0].message

    @pytest.mark.asyncio
    async def test_backend_exception_is_failure(self):
        manager, backend = make_manager()

        async def broken(config):
            raise RuntimeError("ioctl failed")

        backend.add_route = broken
        manager.stage(iface())
        manager.stage(route())

        result = await manager.commit()

        assert len(result.applied) == 1
        assert result.failed[0].message == "ioctl failed"

    def test_discard_idempotent(self):
        manager, _ = make_manager()
        manager.stage(iface())
        manager.stage(route())
        assert manager.discard() == 2
        assert manager.discard() == 0
        assert manager.pending == []
