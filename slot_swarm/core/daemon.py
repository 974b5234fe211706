"""
Daemon loop: heartbeat plus one monitor tick per interval.

The interval adapts to slot depth: ``heal_interval`` while the peer is
above slot 0 (or unregistered) and still compacting, ``check_interval``
once it holds slot 0. Ticks are strictly sequential and each one runs
under a watchdog so a stuck network call cannot stall the loop.
"""
import asyncio
import logging
import signal
from typing import Optional

from .config import SwarmConfig
from .errors import StateStoreError
from .models import TickReport
from .state import StateStore
from ..discovery.monitor import SelfHealMonitor


class DiscoveryDaemon:
    """Schedules monitor ticks for the lifetime of the process"""

    def __init__(self, config: SwarmConfig, monitor: SelfHealMonitor, store: StateStore):
        self.config = config
        self.monitor = monitor
        self.store = store
        self.logger = logging.getLogger(f"DiscoveryDaemon-{config.host_prefix}")
        self.ticks = 0
        self._stop = asyncio.Event()

    def next_interval(self) -> float:
        slot = self.monitor.slot_index
        if slot is None or slot > 0:
            return self.config.heal_interval
        return self.config.check_interval

    def refresh_heartbeat(self) -> None:
        assignment = self.monitor.assignment
        if assignment is None:
            return
        self.monitor.assignment = assignment.heartbeat()
        try:
            self.store.save(self.monitor.assignment)
        except StateStoreError as e:
            self.logger.error(f"Heartbeat not persisted: {e}")

    async def run_tick(self) -> Optional[TickReport]:
        """One heartbeat + monitor tick under the ``tick_timeout`` watchdog"""
        self.ticks += 1
        self.refresh_heartbeat()
        try:
            report = await asyncio.wait_for(self.monitor.tick(), timeout=self.config.tick_timeout)
        except asyncio.TimeoutError:
            self.logger.error(f"Tick {self.ticks} exceeded {self.config.tick_timeout}s; no action this cycle")
            return None

        if report.slot_changed:
            self.logger.info(f"Slot {report.previous_slot} -> {report.slot} ({report.action})")
        return report

    def stop(self) -> None:
        self.logger.info("Daemon shutting down gracefully")
        self._stop.set()

    @property
    def stopping(self) -> bool:
        return self._stop.is_set()

    async def run(self, max_ticks: Optional[int] = None, handle_signals: bool = True) -> None:
        """
        Tick until ``stop()`` is called (or ``max_ticks`` ticks have run).
        """
        self.logger.info("Starting discovery daemon...")
        if handle_signals:
            self._install_signal_handlers()

        while not self._stop.is_set():
            await self.run_tick()
            if max_ticks is not None and self.ticks >= max_ticks:
                break

            interval = self.next_interval()
            self.logger.debug(f"Next check in {interval:.0f}s")
            try:
                await asyncio.wait_for(self._stop.wait(), timeout=interval)
            except asyncio.TimeoutError:
                pass

    def _install_signal_handlers(self) -> None:
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, self.stop)
            except (NotImplementedError, RuntimeError):
                # not supported on this platform or outside the main thread
                pass
