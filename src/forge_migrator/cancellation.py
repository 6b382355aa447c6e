"""Cooperative cancellation for running migrations."""

from __future__ import annotations

import threading

from .exceptions import MigrationCancelledError


class CancelToken:
    """A cancellation signal shared between the caller and a running migration.

    The caller (worker shutdown, SIGINT handler, ...) calls cancel(); the
    migration observes it through raise_if_cancelled() before every remote
    call and through sleep() while backing off.
    """

    def __init__(self) -> None:
        self._event: threading.Event = threading.Event()
        self._reason: str = ""

    def cancel(self, reason: str = "migration was cancelled") -> None:
        if not self._event.is_set():
            self._reason = reason
            self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self) -> None:
        """Raise MigrationCancelledError if cancel() was called."""
        if self._event.is_set():
            raise MigrationCancelledError(self._reason)

    def sleep(self, seconds: float) -> None:
        """Sleep for `seconds`, waking up early (and raising) on cancellation."""
        if self._event.wait(timeout=seconds):
            raise MigrationCancelledError(self._reason)
