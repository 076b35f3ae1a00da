"""Periodic eviction of expired admission records.

The sweep only bounds memory. Decisions are always computed from the stored
timestamps, so a late or skipped sweep never changes an outcome.
"""

import asyncio
import time
from dataclasses import dataclass
from typing import Callable, Optional

from scanner.app.admission.cooldown import CooldownGate
from scanner.app.admission.window import WindowCounter
from scanner.app.core.logging import get_logger

logger = get_logger(__name__)


@dataclass
class SweepResult:
    """Number of records evicted from each store by one sweep."""

    window_records: int = 0
    cooldown_records: int = 0

    @property
    def total(self) -> int:
        return self.window_records + self.cooldown_records


class Reaper:
    """Runs a background task that sweeps both admission stores.

    Usage:
        reaper = Reaper(decider.window_counter, decider.cooldown_gate)
        await reaper.start()
        ...
        await reaper.stop()
    """

    def __init__(
        self,
        window_counter: WindowCounter,
        cooldown_gate: CooldownGate,
        interval: float = 300.0,
        clock: Callable[[], float] = time.time,
    ):
        """Initialize the reaper.

        Args:
            window_counter: Window store to sweep
            cooldown_gate: Cooldown store to sweep
            interval: Seconds between sweeps (default: 300)
            clock: Time source, the same one the decider uses
        """
        self.window_counter = window_counter
        self.cooldown_gate = cooldown_gate
        self.interval = interval
        self.clock = clock
        self._task: Optional[asyncio.Task] = None
        self._stop_event = asyncio.Event()

    @property
    def running(self) -> bool:
        return self._task is not None

    async def sweep(self, now: Optional[float] = None) -> SweepResult:
        """Evict every record whose expiry has passed at now."""
        if now is None:
            now = self.clock()
        result = SweepResult(
            window_records=await self.window_counter.sweep(now),
            cooldown_records=await self.cooldown_gate.sweep(now),
        )
        logger.debug(
            f"Admission sweep evicted {result.window_records} window and "
            f"{result.cooldown_records} cooldown records"
        )
        return result

    async def start(self) -> None:
        """Start the background sweep task."""
        if self._task is not None:
            logger.debug("Reaper already running")
            return

        # Fresh event per run so it belongs to the current event loop
        self._stop_event = asyncio.Event()
        self._task = asyncio.create_task(self._run())
        logger.info(f"Started admission reaper (interval: {self.interval:g}s)")

    async def stop(self) -> None:
        """Stop the background sweep task."""
        if self._task is None:
            return

        self._stop_event.set()

        try:
            await asyncio.wait_for(self._task, timeout=5.0)
        except asyncio.TimeoutError:
            logger.warning("Reaper task did not stop gracefully, cancelling")
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        finally:
            self._task = None
            logger.info("Stopped admission reaper")

    async def _run(self) -> None:
        """Background task that sweeps until stopped."""
        while not self._stop_event.is_set():
            try:
                await self.sweep()
            except Exception as e:
                logger.error(f"Error during admission sweep: {e}")

            try:
                await asyncio.wait_for(
                    self._stop_event.wait(),
                    timeout=self.interval
                )
            except asyncio.TimeoutError:
                # Normal case: interval elapsed, sweep again
                pass
