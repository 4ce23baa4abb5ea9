"""Cooperative cancellation for long-running loads."""

import threading
from typing import Optional

from .errors import MigrationCancelled


class CancellationToken:
    """
    Set once (e.g. from a SIGINT handler) and polled by the pipeline.

    Checked before each table and between loader batches only; a batch that
    has started always finishes.
    """

    def __init__(self):
        self._event = threading.Event()
        self.reason: Optional[str] = None

    def cancel(self, reason: str = "cancelled by operator") -> None:
        if not self._event.is_set():
            self.reason = reason
            self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self, where: str = "") -> None:
        if self._event.is_set():
            suffix = f" ({where})" if where else ""
            raise MigrationCancelled(f"Migration {self.reason}{suffix}")
