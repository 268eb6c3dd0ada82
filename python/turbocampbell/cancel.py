"""Cooperative cancellation for long-running diagram builds."""

from __future__ import annotations

import threading
from typing import Optional


class CancelledError(RuntimeError):
    """Raised when a long-running call observes a cancelled token."""


class CancelToken:
    """Thread-safe cancellation flag passed through group processing,
    tracking and cluster refinement.

    A token created with a *parent* also reports cancelled once the parent
    is, while cancelling it leaves the parent untouched.
    """

    def __init__(self, parent: Optional["CancelToken"] = None):
        self._event = threading.Event()
        self._parent = parent

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        if self._event.is_set():
            return True
        return self._parent is not None and self._parent.cancelled

    def raise_if_cancelled(self, what: str = "operation") -> None:
        if self.cancelled:
            raise CancelledError(f"{what} cancelled")


def check_cancelled(token: Optional[CancelToken], what: str = "operation") -> None:
    """Raise CancelledError if *token* is set (no-op when *token* is None)."""
    if token is not None:
        token.raise_if_cancelled(what)
