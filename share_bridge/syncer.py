"""Sync engine mirroring glucose readings between two Share accounts.

Each cycle:
1. Reads a recent window of readings from the source account
2. Filters out readings already transferred (in-memory ledger)
3. Uploads the rest to the destination account in one batch
4. Records the transferred keys in the ledger
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import signal
from collections.abc import Awaitable
from datetime import datetime
from typing import Any, TypeVar

from share_bridge.ledger import DedupLedger
from share_bridge.models import (
    AccountCredentials,
    ConnectionReport,
    ConnectionStatus,
    GlucoseReading,
    SyncResult,
)
from share_bridge.share.client import ShareClient
from share_bridge.share.constants import DEFAULT_TIMEOUT

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_SERIAL_NUMBER = "DEX2COM0001"
DEFAULT_INTERVAL_MINUTES = 5
DEFAULT_MAX_READINGS = 12

# Read window = interval x this, so a delayed cycle still covers the gap
READ_WINDOW_MULTIPLIER = 3


class ShareSyncer:
    """Mirror readings from a source Share account to a destination account."""

    def __init__(
        self,
        source: ShareClient,
        destination: ShareClient,
        interval_minutes: int = DEFAULT_INTERVAL_MINUTES,
        max_readings: int = DEFAULT_MAX_READINGS,
        serial_number: str = DEFAULT_SERIAL_NUMBER,
        ledger: DedupLedger | None = None,
    ):
        """Initialize the syncer.

        Args:
            source: Client for the account readings are read from
            destination: Client for the account readings are written to
            interval_minutes: Minutes between daemon cycles
            max_readings: Maximum readings read per cycle
            serial_number: Receiver serial number uploads are attributed to
            ledger: Dedup ledger (a fresh one is created if omitted)

        Raises:
            ValueError: If interval_minutes or max_readings is not positive
        """
        if interval_minutes <= 0:
            raise ValueError(f"Sync interval must be positive, got {interval_minutes}")
        if max_readings <= 0:
            raise ValueError(f"Max readings must be positive, got {max_readings}")

        self.source = source
        self.destination = destination
        self.interval_minutes = interval_minutes
        self.max_readings = max_readings
        self.serial_number = serial_number
        self.ledger = ledger if ledger is not None else DedupLedger()

        self.last_sync_time: datetime | None = None
        self.latest_reading: GlucoseReading | None = None

        self._cycle_lock = asyncio.Lock()
        self._stop_event: asyncio.Event | None = None

    @classmethod
    def from_config(cls, config: dict) -> ShareSyncer:
        """Build a syncer and its two clients from a configuration dictionary."""
        sync_config = config.get("sync", {})
        timeout = sync_config.get("request_timeout", DEFAULT_TIMEOUT)

        source = ShareClient(_credentials(config.get("source", {})), timeout=timeout)
        destination = ShareClient(_credentials(config.get("destination", {})), timeout=timeout)

        return cls(
            source,
            destination,
            interval_minutes=sync_config.get("interval_minutes", DEFAULT_INTERVAL_MINUTES),
            max_readings=sync_config.get("max_readings", DEFAULT_MAX_READINGS),
            serial_number=sync_config.get("serial_number", DEFAULT_SERIAL_NUMBER),
        )

    @property
    def route(self) -> str:
        return f"{self.source.region.upper()} -> {self.destination.region.upper()}"

    @property
    def read_window_minutes(self) -> int:
        return self.interval_minutes * READ_WINDOW_MULTIPLIER

    async def sync(self) -> SyncResult:
        """Perform one sync cycle.

        Never raises: any failure is logged and reported in the result.

        Returns:
            Result with read/write/skip counts and error messages
        """
        async with self._cycle_lock:
            result = SyncResult()

            try:
                logger.info(f"Starting sync {self.route}")
                self.ledger.prune()

                readings = await self.source.read_recent_readings(
                    self.read_window_minutes, self.max_readings
                )
                result.read_count = len(readings)

                if not readings:
                    logger.info("No readings available from source")
                    result.success = True
                    return result

                logger.info(f"Read {len(readings)} readings from source")

                new_readings = self.ledger.filter_new_readings(readings)
                result.skipped_count = len(readings) - len(new_readings)

                if not new_readings:
                    logger.info("All readings already synced")
                    result.success = True
                    return result

                logger.info(f"{len(new_readings)} new readings to sync")

                records = [reading.to_transfer_record() for reading in new_readings]
                await self.destination.write_readings(self.serial_number, records)
                result.write_count = len(records)

                self.ledger.add_many(reading.key for reading in new_readings)
                self.ledger.prune()

                self.last_sync_time = datetime.now()
                self.latest_reading = new_readings[0]
                result.latest = new_readings[0]
                result.success = True

                logger.info(f"Successfully synced {result.write_count} readings")
                logger.info(f"Latest: {result.latest}")

            except Exception as e:
                result.errors.append(str(e))
                logger.error(f"Sync failed: {e}")

            return result

    async def register_target(self) -> bool:
        """Register the receiver on the destination account.

        Returns:
            True if registered, False if registration failed (logged as warning)
        """
        try:
            await self.destination.register_target(self.serial_number)
            logger.info(f"Registered receiver: {self.serial_number}")
            return True
        except Exception as e:
            logger.warning(f"Could not register receiver: {e}")
            return False

    def stop(self) -> None:
        """Ask a running daemon to stop."""
        if self._stop_event is not None:
            self._stop_event.set()

    @property
    def is_running(self) -> bool:
        return self._stop_event is not None and not self._stop_event.is_set()

    @staticmethod
    async def _until_stopped(aw: Awaitable[T], stop_event: asyncio.Event) -> T | None:
        """Await aw unless stop_event is set first, in which case it is cancelled.

        Returns:
            The awaitable's result, or None if it was cancelled by the stop event
        """
        task = asyncio.ensure_future(aw)
        stopper = asyncio.ensure_future(stop_event.wait())

        try:
            await asyncio.wait({task, stopper}, return_when=asyncio.FIRST_COMPLETED)
        except asyncio.CancelledError:
            task.cancel()
            raise
        finally:
            stopper.cancel()

        if task.done():
            return task.result()

        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task
        return None

    async def run_daemon(self, interval_minutes: float | None = None) -> None:
        """Run continuous sync until SIGINT/SIGTERM or stop().

        Registers the receiver once, syncs immediately, then syncs every
        interval. The next interval starts after the previous cycle finishes,
        so cycles never overlap.

        Args:
            interval_minutes: Minutes between sync cycles (defaults to the configured interval)

        Raises:
            ValueError: If the interval is not positive
        """
        interval = interval_minutes if interval_minutes is not None else self.interval_minutes
        if interval <= 0:
            raise ValueError(f"Sync interval must be positive, got {interval}")

        stop_event = self._stop_event = asyncio.Event()

        logger.info(f"Starting daemon (interval: {interval} minutes)")
        logger.info(f"Source: {self.source.region.upper()} -> Destination: {self.destination.region.upper()}")

        loop = asyncio.get_running_loop()

        def handle_signal() -> None:
            logger.info("Shutdown signal received")
            self.stop()

        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, handle_signal)

        try:
            await self._until_stopped(self.register_target(), stop_event)

            while self.is_running:
                result = await self._until_stopped(self.sync(), stop_event)

                if result is not None:
                    logger.info(
                        f"Sync complete: {result.read_count} read, "
                        f"{result.write_count} written, {result.skipped_count} skipped"
                    )

                if not self.is_running:
                    break

                logger.info(f"Sleeping for {interval} minutes...")
                await self._until_stopped(asyncio.sleep(interval * 60), stop_event)

        finally:
            for sig in (signal.SIGINT, signal.SIGTERM):
                loop.remove_signal_handler(sig)

        logger.info("Daemon stopped")

    async def _check_source(self) -> ConnectionStatus:
        status = ConnectionStatus()
        try:
            await self.source.authenticate()
            reading = await self.source.latest_reading()
            status.success = True
            status.latest_value = reading.value if reading else None
            logger.info(f"Source ({self.source.region.upper()}) connection OK")
        except Exception as e:
            status.error = str(e)
            logger.error(f"Source connection failed: {e}")
        return status

    async def _check_destination(self) -> ConnectionStatus:
        status = ConnectionStatus()
        try:
            await self.destination.authenticate()
            status.success = True
            logger.info(f"Destination ({self.destination.region.upper()}) connection OK")
        except Exception as e:
            status.error = str(e)
            logger.error(f"Destination connection failed: {e}")
        return status

    async def test_connections(self) -> ConnectionReport:
        """Authenticate both accounts and read the latest source reading.

        The two accounts are independent, so they are checked concurrently.
        """
        source, destination = await asyncio.gather(self._check_source(), self._check_destination())
        return ConnectionReport(source=source, destination=destination)

    async def verify(self, minutes: int = 60, max_count: int = 10) -> list[GlucoseReading]:
        """Read recent readings back from the destination account."""
        return await self.destination.read_recent_readings(minutes, max_count)

    async def aclose(self) -> None:
        """Close both clients."""
        await self.source.aclose()
        await self.destination.aclose()


def _credentials(section: dict[str, Any]) -> AccountCredentials:
    return AccountCredentials(
        username=section.get("username") or "",
        password=section.get("password") or "",
        region=section.get("region") or "ous",
    )
