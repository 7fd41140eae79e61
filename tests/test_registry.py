"""Tests for the push token and cancellation registries."""

import asyncio

import pytest

from lapush.push.registry import CancellationHandle, CancellationRegistry, PushTokenRegistry


class TestPushTokenRegistry:
    def test_missing_device_returns_none(self):
        registry = PushTokenRegistry()
        assert registry.get("device-1") is None
        assert len(registry) == 0

    def test_update_is_last_write_wins(self):
        registry = PushTokenRegistry()
        registry.update("device-1", "token-a")
        registry.update("device-1", "token-b")
        registry.update("device-2", "token-c")

        assert registry.get("device-1") == "token-b"
        assert registry.get("device-2") == "token-c"
        assert len(registry) == 2


class TestCancellationHandle:
    def test_cancel_is_idempotent(self):
        handle = CancellationHandle("device-1")
        assert not handle.cancelled
        handle.cancel()
        handle.cancel()
        assert handle.cancelled

    @pytest.mark.asyncio
    async def test_wait_returns_after_cancel(self):
        handle = CancellationHandle("device-1")
        waiter = asyncio.create_task(handle.wait())
        await asyncio.sleep(0)
        assert not waiter.done()

        handle.cancel()
        await asyncio.wait_for(waiter, timeout=1)


class TestCancellationRegistry:
    def test_register_installs_handle(self):
        registry = CancellationRegistry()
        handle = registry.register("device-1")

        assert registry.get("device-1") is handle
        assert "device-1" in registry
        assert not handle.cancelled

    def test_register_supersedes_and_signals_previous(self):
        registry = CancellationRegistry()
        first = registry.register("device-1")
        second = registry.register("device-1")

        assert first.cancelled
        assert not second.cancelled
        assert registry.get("device-1") is second
        assert len(registry) == 1

    def test_register_does_not_touch_other_devices(self):
        registry = CancellationRegistry()
        other = registry.register("device-2")
        registry.register("device-1")
        registry.register("device-1")

        assert not other.cancelled
        assert len(registry) == 2

    def test_cancel_signals_and_removes(self):
        registry = CancellationRegistry()
        handle = registry.register("device-1")

        assert registry.cancel("device-1") is True
        assert handle.cancelled
        assert "device-1" not in registry

    def test_cancel_unknown_device_is_noop(self):
        registry = CancellationRegistry()
        assert registry.cancel("nobody") is False
        assert len(registry) == 0

    def test_remove_if_current_removes_own_handle(self):
        registry = CancellationRegistry()
        handle = registry.register("device-1")

        assert registry.remove_if_current("device-1", handle) is True
        assert "device-1" not in registry

    def test_remove_if_current_keeps_newer_handle(self):
        registry = CancellationRegistry()
        old = registry.register("device-1")
        new = registry.register("device-1")

        assert registry.remove_if_current("device-1", old) is False
        assert registry.get("device-1") is new

    def test_remove_if_current_after_cancel(self):
        registry = CancellationRegistry()
        handle = registry.register("device-1")
        registry.cancel("device-1")

        assert registry.remove_if_current("device-1", handle) is False
