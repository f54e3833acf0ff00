"""
Cancellation

Architectural Intent:
- A thread-safe flag set once by an asynchronous event source (OS signals)
  and polled by the orchestration engine at loop boundaries
- Passed by reference into the engine instead of living in a global
- In-flight remote commands are never interrupted; cancellation only stops
  the engine from advancing
"""

from __future__ import annotations
import logging
import signal
import threading
from contextlib import contextmanager
from typing import Iterator, Optional

logger = logging.getLogger(__name__)


class CancellationToken:
    def __init__(self) -> None:
        self._event = threading.Event()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self) -> None:
        self._event.set()

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Block up to timeout seconds. Returns True if cancelled meanwhile."""
        return self._event.wait(timeout)


def _termination_signals() -> list[signal.Signals]:
    names = ("SIGINT", "SIGTERM", "SIGHUP")
    return [getattr(signal, n) for n in names if hasattr(signal, n)]


@contextmanager
def install_signal_handlers(token: CancellationToken) -> Iterator[CancellationToken]:
    """Route termination signals to token for the duration of the block.

    Must be entered from the main thread. Previous handlers are restored on
    exit.
    """
    def handler(signum, frame) -> None:
        if not token.cancelled:
            logger.warning("Please wait while finishing up...")
        token.cancel()

    previous = {}
    for sig in _termination_signals():
        previous[sig] = signal.signal(sig, handler)
    try:
        yield token
    finally:
        for sig, old in previous.items():
            signal.signal(sig, old)
