"""Unit tests for the shutdown finalizer registry."""

import signal
from unittest.mock import Mock

import pytest

from claims_rpa.core.lifecycle import DEFAULT_TERMINATION_REASON, ShutdownRegistry


@pytest.mark.unit
class TestShutdownRegistry:
    """Test registration and one-shot execution of finalizers."""

    async def test_runs_each_finalizer_once(self):
        registry = ShutdownRegistry(install_atexit=False)
        calls = []

        async def finalize(reason):
            calls.append(("async", reason))

        registry.register(finalize, name="run:1")
        registry.register(lambda reason: calls.append(("sync", reason)), name="run:2")
        assert registry.pending == 2

        assert await registry.run_all("SIGTERM") == 2
        assert await registry.run_all("again") == 0
        assert calls == [("async", "SIGTERM"), ("sync", "SIGTERM")]
        assert registry.pending == 0

    async def test_unregistered_finalizer_does_not_run(self):
        registry = ShutdownRegistry(install_atexit=False)
        finalizer = Mock()
        unregister = registry.register(finalizer)
        unregister()
        unregister()

        assert await registry.run_all() == 0
        finalizer.assert_not_called()

    async def test_failing_finalizer_does_not_stop_the_rest(self):
        registry = ShutdownRegistry(install_atexit=False)
        second = Mock()

        def broken(reason):
            raise RuntimeError("store unavailable")

        registry.register(broken, name="broken")
        registry.register(second, name="second")

        assert await registry.run_all() == 1
        second.assert_called_once_with(DEFAULT_TERMINATION_REASON)

    def test_run_all_blocking_outside_event_loop(self):
        registry = ShutdownRegistry(install_atexit=False)
        finalizer = Mock()
        registry.register(finalizer)

        assert registry.run_all_blocking("atexit") == 1
        finalizer.assert_called_once_with("atexit")
        assert registry.run_all_blocking() == 0

    def test_signal_cancels_task(self):
        registry = ShutdownRegistry(install_atexit=False)
        task = Mock()
        registry._on_signal(signal.SIGTERM, task)

        task.cancel.assert_called_once_with()
        assert registry.received_signal == signal.SIGTERM
