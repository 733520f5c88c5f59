"""
Cooperative cancellation for long-running analyses.

A CancellationToken is handed to an analysis by its caller. The query runner
checks it before each statement and registers a driver-level abort callback
while a statement is in flight, so cancelling from another thread stops both
pending and running queries.
"""

import logging
import threading
from typing import Callable, Dict

from profiling_framework.core.exceptions import AnalysisCancelledError

logger = logging.getLogger(__name__)


class CancellationToken:
    """Thread-safe cancellation signal with abort callbacks."""

    def __init__(self):
        self._event = threading.Event()
        self._lock = threading.Lock()
        self._callbacks: Dict[int, Callable[[], None]] = {}
        self._next_handle = 0

    @property
    def is_cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self) -> None:
        """Signal cancellation and fire every registered abort callback."""
        with self._lock:
            if self._event.is_set():
                return
            self._event.set()
            callbacks = list(self._callbacks.values())

        for callback in callbacks:
            try:
                callback()
            except Exception as e:
                # The statement may already have finished; nothing left to abort
                logger.debug(f"Abort callback failed during cancellation: {e}")

    def register(self, callback: Callable[[], None]) -> int:
        """
        Register an abort callback for an in-flight statement.

        If the token is already cancelled the callback fires immediately.

        Returns:
            Handle to pass to unregister()
        """
        with self._lock:
            handle = self._next_handle
            self._next_handle += 1
            self._callbacks[handle] = callback
            already_cancelled = self._event.is_set()

        if already_cancelled:
            callback()
        return handle

    def unregister(self, handle: int) -> None:
        with self._lock:
            self._callbacks.pop(handle, None)

    def raise_if_cancelled(self, context: str = "") -> None:
        if self._event.is_set():
            message = f"Analysis cancelled{': ' + context if context else ''}"
            raise AnalysisCancelledError(message)
