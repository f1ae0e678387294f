"""Process shutdown registry.

Batch CLIs own one ``ShutdownRegistry``. Components register finalizers on
it (the run tracker registers one per run) and the CLI's top-level shutdown
path awaits :meth:`ShutdownRegistry.run_all` in its ``finally`` block. SIGINT
and SIGTERM cancel the main task so that ``finally`` still runs; an
``atexit`` hook covers exits that bypass the event loop entirely.
"""

import asyncio
import atexit
import inspect
import signal
from typing import Awaitable, Callable, Dict, Optional, Union

import structlog

logger = structlog.get_logger(__name__)

Finalizer = Callable[[str], Union[Awaitable[None], None]]

DEFAULT_TERMINATION_REASON = "Process terminated before run finished"


class ShutdownRegistry:
    """Ordered set of finalizers invoked once on process shutdown."""

    def __init__(self, install_atexit: bool = True):
        self._finalizers: Dict[int, tuple] = {}
        self._next_token = 0
        self._ran = False
        self.received_signal: Optional[int] = None
        if install_atexit:
            atexit.register(self._atexit_hook)

    @property
    def pending(self) -> int:
        return len(self._finalizers)

    def register(self, finalizer: Finalizer, name: str = "finalizer") -> Callable[[], None]:
        """Register ``finalizer``; returns a callable that unregisters it."""
        token = self._next_token
        self._next_token += 1
        self._finalizers[token] = (name, finalizer)

        def unregister() -> None:
            self._finalizers.pop(token, None)

        return unregister

    async def run_all(self, reason: str = DEFAULT_TERMINATION_REASON) -> int:
        """Run every pending finalizer once. Returns how many ran."""
        ran = 0
        while self._finalizers:
            token = next(iter(self._finalizers))
            name, finalizer = self._finalizers.pop(token)
            try:
                result = finalizer(reason)
                if inspect.isawaitable(result):
                    await result
                ran += 1
            except Exception as exc:
                # One broken finalizer must not stop the others from running.
                logger.error("Shutdown finalizer failed", finalizer=name, error=str(exc))
        self._ran = True
        return ran

    def run_all_blocking(self, reason: str = DEFAULT_TERMINATION_REASON) -> int:
        """Run pending finalizers outside of any event loop."""
        if not self._finalizers:
            return 0
        return asyncio.run(self.run_all(reason))

    def install_signal_handlers(self, task: "asyncio.Task") -> None:
        """Cancel ``task`` on SIGINT/SIGTERM so its ``finally`` path runs."""
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, self._on_signal, sig, task)
            except (NotImplementedError, RuntimeError):
                # Platforms without loop signal support fall back to atexit.
                logger.debug("Signal handler not installed", signal=int(sig))

    def _on_signal(self, sig: int, task: "asyncio.Task") -> None:
        self.received_signal = int(sig)
        logger.warning("Received shutdown signal, cancelling batch", signal=int(sig))
        task.cancel()

    def _atexit_hook(self) -> None:
        if not self._finalizers:
            return
        try:
            asyncio.get_running_loop()
        except RuntimeError:
            self.run_all_blocking()
            return
        logger.error("Finalizers still pending while an event loop is running", pending=self.pending)
