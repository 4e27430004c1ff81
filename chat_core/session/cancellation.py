"""Per-session cancellation tokens built on :class:`threading.Event`."""

from __future__ import annotations

import threading
from typing import Optional

__all__ = ["CancellationToken", "CancellationController"]


class CancellationToken:
    """Handle for one generation; cancellation is advisory and checked by the consumer."""

    __slots__ = ("_event",)

    def __init__(self) -> None:
        self._event = threading.Event()

    @property
    def cancelled(self) -> bool:
        """Return ``True`` when cancellation has been requested."""

        return self._event.is_set()

    def cancel(self) -> None:
        """Signal cancellation."""

        self._event.set()


class CancellationController:
    """Owns the single active token of a session.

    A new token is handed out per ``send_message``; acquiring supersedes the
    previous token, which is cancelled so a stale consumer cannot keep running.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._active: Optional[CancellationToken] = None

    @property
    def active_token(self) -> Optional[CancellationToken]:
        return self._active

    def acquire(self) -> CancellationToken:
        token = CancellationToken()
        with self._lock:
            previous, self._active = self._active, token
        if previous is not None:
            previous.cancel()
        return token

    def request_cancel(self) -> bool:
        """Cancel the active token; returns ``False`` when nothing is in flight."""

        with self._lock:
            token = self._active
        if token is None:
            return False
        token.cancel()
        return True

    @staticmethod
    def is_cancelled(token: CancellationToken) -> bool:
        return token.cancelled

    def release(self, token: CancellationToken) -> None:
        """Drop *token* if it is still the active one."""

        with self._lock:
            if self._active is token:
                self._active = None
