"""Cooperative cancellation for long-running ingestion runs.

Ingestion checks a :class:`CancellationToken` between per-URL iterations.
The process-wide :class:`ShutdownHandler` is a token that is cancelled by
SIGINT/SIGTERM, so Ctrl+C stops a scrape cleanly and keeps what was
already accepted.
"""

import signal
import sys
import threading
from typing import Callable, List, Optional

from cotton_finder.logging_config import get_logger

__all__ = [
    "CancellationToken",
    "ShutdownHandler",
    "get_shutdown_handler",
    "shutdown_requested",
]

logger = get_logger("shutdown")


class CancellationToken:
    """Thread-safe flag a caller sets to stop a run between iterations."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        """Request cancellation."""
        self._event.set()

    @property
    def cancelled(self) -> bool:
        """Check if cancellation has been requested."""
        return self._event.is_set()

    def reset(self) -> None:
        """Clear the flag (for reuse between runs or in tests)."""
        self._event.clear()


class ShutdownHandler(CancellationToken):
    """Cancellation token driven by SIGINT/SIGTERM.

    Usage:
        handler = get_shutdown_handler().install()
        try:
            pipeline.run(target, cancel_token=handler)
        finally:
            handler.cleanup()
            handler.uninstall()
    """

    _instance: Optional["ShutdownHandler"] = None
    _lock = threading.Lock()

    def __init__(self) -> None:
        super().__init__()
        self._cleanup_callbacks: List[Callable[[], None]] = []
        self._original_sigint = None
        self._original_sigterm = None
        self._installed = False

    @classmethod
    def get_instance(cls) -> "ShutdownHandler":
        """Get or create the singleton instance."""
        if cls._instance is None:
            with cls._lock:
                if cls._instance is None:
                    cls._instance = cls()
        return cls._instance

    def install(self) -> "ShutdownHandler":
        """Install signal handlers. Returns self for chaining."""
        if self._installed:
            return self

        self._original_sigint = signal.getsignal(signal.SIGINT)
        self._original_sigterm = signal.getsignal(signal.SIGTERM)

        signal.signal(signal.SIGINT, self._handle_signal)
        signal.signal(signal.SIGTERM, self._handle_signal)

        self._installed = True
        return self

    def uninstall(self) -> None:
        """Restore original signal handlers."""
        if not self._installed:
            return

        if self._original_sigint is not None:
            signal.signal(signal.SIGINT, self._original_sigint)
        if self._original_sigterm is not None:
            signal.signal(signal.SIGTERM, self._original_sigterm)

        self._installed = False

    def _handle_signal(self, signum: int, frame) -> None:
        signal_name = "SIGINT" if signum == signal.SIGINT else "SIGTERM"
        logger.warning(
            f"Received {signal_name}, finishing the current product and stopping "
            "(press Ctrl+C again to force quit)"
        )
        self.cancel()

        # Second signal forces exit
        signal.signal(signum, self._force_exit)

    def _force_exit(self, signum: int, frame) -> None:
        logger.error("Force quitting")
        self.cleanup()
        sys.exit(1)

    def register_cleanup(self, callback: Callable[[], None]) -> None:
        """Register a callback to run on cleanup (e.g. closing a session)."""
        self._cleanup_callbacks.append(callback)

    def cleanup(self) -> None:
        """Run all registered cleanup callbacks."""
        for callback in self._cleanup_callbacks:
            try:
                callback()
            except Exception as e:
                logger.warning(f"Cleanup callback failed: {e}")

        self._cleanup_callbacks.clear()


def get_shutdown_handler() -> ShutdownHandler:
    """Get the global shutdown handler instance."""
    return ShutdownHandler.get_instance()


def shutdown_requested() -> bool:
    """Check if shutdown has been requested."""
    return get_shutdown_handler().cancelled
