"""
Cancellation Support for Fritz!Box Status Client
================================================

A small thread-safe cancellation token threaded through every network call.
Callbacks registered on a token run once, on the thread that cancels it; the
transport uses them to close in-flight responses.

"""

import logging
import threading
from typing import Callable, Optional

from .exceptions import FritzBoxCancelledError

logger = logging.getLogger("fritzbox-status")


class CancellationToken:
    """
    Cooperative cancellation signal.

    Examples:
        >>> token = CancellationToken()
        >>> child = token.create_linked()
        >>> token.cancel()
        >>> child.cancelled
        True
    """

    def __init__(self, parent: Optional["CancellationToken"] = None) -> None:
        self._event = threading.Event()
        self._lock = threading.Lock()
        self._callbacks: dict[int, Callable[[], None]] = {}
        self._next_handle = 0
        self._unlink: Optional[Callable[[], None]] = None

        if parent is not None:
            self._unlink = parent.register(self.cancel)

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self) -> None:
        """Signal cancellation and run registered callbacks (first call only)."""
        with self._lock:
            if self._event.is_set():
                return
            self._event.set()
            callbacks = list(self._callbacks.values())
            self._callbacks.clear()

        for callback in callbacks:
            try:
                callback()
            except Exception as e:
                # Abort hooks close sockets that may already be gone
                logger.debug(f"Cancellation callback failed: {e}")

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise FritzBoxCancelledError()

    def register(self, callback: Callable[[], None]) -> Callable[[], None]:
        """
        Register a callback to run on cancellation.

        If the token is already cancelled, the callback runs immediately.

        Returns:
            A function that unregisters the callback
        """
        with self._lock:
            if not self._event.is_set():
                handle = self._next_handle
                self._next_handle += 1
                self._callbacks[handle] = callback

                def unregister() -> None:
                    with self._lock:
                        self._callbacks.pop(handle, None)

                return unregister

        callback()
        return lambda: None

    def create_linked(self) -> "CancellationToken":
        """Create a child token that is cancelled together with this one."""
        return CancellationToken(parent=self)

    def detach(self) -> None:
        """Stop following the parent token."""
        if self._unlink is not None:
            self._unlink()
            self._unlink = None

    def wait(self, timeout: Optional[float] = None) -> bool:
        return self._event.wait(timeout)


def ensure_token(cancel: Optional[CancellationToken]) -> CancellationToken:
    """Return ``cancel`` or a token that never fires."""
    return cancel if cancel is not None else CancellationToken()


__all__ = ["CancellationToken", "ensure_token"]
