"""In-memory ledger of glucose readings already transferred.

Share read windows overlap from one cycle to the next, so the same reading is
usually returned several times. The ledger remembers the dedup keys (received
time in epoch milliseconds) of readings written to the destination and
forgets them after a retention window, which keeps memory bounded over long
daemon runs. Nothing is persisted; a restart starts with an empty ledger.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Iterable

from share_bridge.models import GlucoseReading

logger = logging.getLogger(__name__)

DEFAULT_RETENTION_MS = 24 * 60 * 60 * 1000


def now_epoch_ms() -> int:
    return int(time.time() * 1000)


class DedupLedger:
    """Track which reading keys have been transferred.

    A key in the ledger is never transferred again. A key missing from it may
    still have been transferred before it was pruned.
    """

    def __init__(
        self,
        retention_ms: int = DEFAULT_RETENTION_MS,
        clock: Callable[[], int] = now_epoch_ms,
    ):
        """Initialize an empty ledger.

        Args:
            retention_ms: Keys older than this (relative to prune time) are dropped
            clock: Returns the current time in epoch milliseconds
        """
        self.retention_ms = retention_ms
        self.clock = clock
        self._keys: set[int] = set()

    def has(self, key: int) -> bool:
        return key in self._keys

    def add(self, key: int) -> None:
        self._keys.add(key)

    def add_many(self, keys: Iterable[int]) -> None:
        for key in keys:
            self.add(key)

    def filter_new_readings(self, readings: list[GlucoseReading]) -> list[GlucoseReading]:
        """Filter out readings whose key is already in the ledger.

        Args:
            readings: Readings in source order

        Returns:
            Readings not yet transferred, in the same order
        """
        new_readings = [r for r in readings if not self.has(r.key)]
        logger.debug(
            f"Filtered {len(readings)} readings: {len(new_readings)} new, "
            f"{len(readings) - len(new_readings)} already synced"
        )
        return new_readings

    def prune(self, now_ms: int | None = None) -> int:
        """Drop keys older than the retention window.

        Args:
            now_ms: Current time in epoch milliseconds (defaults to the ledger clock)

        Returns:
            Number of removed keys
        """
        if now_ms is None:
            now_ms = self.clock()
        cutoff = now_ms - self.retention_ms

        old_size = len(self)
        self._keys = {key for key in self._keys if key > cutoff}
        removed = old_size - len(self)

        if removed > 0:
            logger.debug(f"Pruned {removed} old keys from ledger, {len(self)} left")
        return removed

    def __len__(self) -> int:
        return len(self._keys)
