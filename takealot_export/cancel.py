from __future__ import annotations

import threading
from typing import Optional

from .errors import QueryCancelled


class CancellationToken:
    """Cancellation flag shared by every network call of one query.

    Call sites check the token right before they hit the network; an
    in-flight request is not interrupted, but the next one never starts.
    """

    def __init__(self, label: str = "") -> None:
        self.label = label
        self._cancelled = threading.Event()

    def cancel(self) -> None:
        self._cancelled.set()

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    def raise_if_cancelled(self) -> None:
        if self._cancelled.is_set():
            raise QueryCancelled(f"query {self.label or '<unnamed>'} was superseded")

    def wait(self, seconds: float) -> bool:
        """Sleep up to ``seconds``; returns True if cancelled meanwhile."""
        return self._cancelled.wait(seconds)


def check(token: Optional[CancellationToken]) -> None:
    if token is not None:
        token.raise_if_cancelled()
