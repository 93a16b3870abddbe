"""Cooperative cancellation shared between a job, its watchdog and the supervisor."""

from __future__ import annotations

import threading
from typing import Optional


class CancellationToken:
    """One-shot cancellation signal carrying the reason it was triggered."""

    def __init__(self) -> None:
        self._event = threading.Event()
        self._lock = threading.Lock()
        self._reason: Optional[str] = None

    def cancel(self, reason: str = "requested") -> bool:
        """Signal cancellation.

        Returns:
            True if this call cancelled the token, False if it was already cancelled
        """
        with self._lock:
            if self._event.is_set():
                return False
            self._reason = reason
            self._event.set()
            return True

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    @property
    def reason(self) -> Optional[str]:
        return self._reason

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Block up to *timeout* seconds; returns True once cancelled."""

        return self._event.wait(timeout)

    def __repr__(self) -> str:
        state = f"cancelled:{self._reason}" if self.cancelled else "active"
        return f"CancellationToken({state})"
