"""
Self-healing monitor.

Each tick either discovers a first slot (when unregistered) or looks below
the current slot for something free or stale and migrates there. The
abandoned record is never deleted; it goes stale and the next peer up the
range takes it over on its own heal cycle.

    SETTLED -> SCANNING_LOWER -> MIGRATING -> SETTLED
                     |               |
                     v               v
                  SETTLED     FAILED_MIGRATION -> SETTLED
"""
import logging
from typing import Optional

from ..core.config import SwarmConfig
from ..core.errors import NoSlotAvailable
from ..core.models import ClaimOutcome, MonitorState, ProbeStatus, SlotAssignment, TickReport
from .registrar import Registrar
from .scanner import SlotScanner


class SelfHealMonitor:
    """
    Drives discovery and downward migration, one tick at a time.

    Ticks must not overlap; the daemon loop runs them strictly in sequence.
    """

    def __init__(self, config: SwarmConfig, scanner: SlotScanner, registrar: Registrar,
                 address_source, assignment: Optional[SlotAssignment] = None):
        self.config = config
        self.scanner = scanner
        self.registrar = registrar
        self.address_source = address_source
        self.assignment = assignment
        self.state = MonitorState.SETTLED
        self.logger = logging.getLogger(f"SelfHealMonitor-{config.host_prefix}")

    @property
    def slot_index(self) -> Optional[int]:
        return self.assignment.slot_index if self.assignment else None

    @property
    def pending_claim(self) -> Optional[str]:
        """Hostname this peer is currently claiming, if any"""
        return self.registrar.pending

    def _transition(self, state: MonitorState) -> None:
        if state is not self.state:
            self.logger.debug(f"{self.state.value} -> {state.value}")
        self.state = state

    async def _current_address(self) -> Optional[str]:
        addresses = await self.address_source.current_addresses()
        if not addresses:
            self.logger.error("Cannot detect public IP address; skipping this tick")
        return addresses.primary

    async def discover(self, address: str, report: TickReport) -> None:
        """
        Claim the lowest usable slot. A lost race restarts the scan (own-slot
        pass from 0, then from the first slot not yet seen occupied), up to
        ``max_claim_attempts`` times.
        """
        for attempt in range(1, self.config.max_claim_attempts + 1):
            candidate = await self.scanner.find_slot(exclude=self.registrar.contested_slots())
            if candidate is None:
                raise NoSlotAvailable(self.config.max_slots)

            if candidate.self_owned:
                self.assignment = self.registrar.adopt(candidate.index, address)
                report.action = "adopted"
                self.scanner.reset()
                return

            outcome = await self.registrar.register(candidate.index, address)
            if outcome is ClaimOutcome.SUCCESS:
                self.assignment = self.registrar.last_claim
                report.action = "registered"
                self.scanner.reset()
                return
            if outcome is ClaimOutcome.PUBLISH_ERROR:
                report.action = "publish_error"
                return
            self.logger.info(f"Race lost on slot {candidate.index} (attempt {attempt}); rescanning")

        report.action = "race_lost"

    async def _verify_current(self, address: str, report: TickReport) -> bool:
        """
        Make sure the record for our slot still points at us. Republishes it
        if our address changed; drops the assignment if another peer took it.
        """
        assignment = self.assignment
        if address != assignment.owner_address:
            self.logger.info(f"Public address changed {assignment.owner_address} -> {address}; republishing")
            outcome = await self.registrar.register(assignment.slot_index, address)
            if outcome is ClaimOutcome.SUCCESS:
                self.assignment = self.registrar.last_claim
                report.action = "republished"
                return True
            if outcome is ClaimOutcome.PUBLISH_ERROR:
                return False
            self.logger.warning(f"Lost {assignment.hostname} while republishing")
            self.assignment = None
            return False

        status = await self.scanner.prober.probe(assignment.hostname)
        if status in (ProbeStatus.OCCUPIED_SELF, ProbeStatus.UNKNOWN):
            return True

        self.logger.warning(f"{assignment.hostname} no longer points at us ({status.value}); rediscovering")
        self.assignment = None
        return False

    async def heal(self, address: str, report: TickReport) -> None:
        current = self.assignment.slot_index
        if current == 0:
            return

        self._transition(MonitorState.SCANNING_LOWER)
        self.logger.info(f"Currently registered as {self.config.peer_host(current)}; checking lower slots")
        candidate = await self.scanner.find_lower_slot(current, exclude=self.registrar.contested_slots())
        if candidate is None:
            self._transition(MonitorState.SETTLED)
            return

        if candidate.self_owned:
            self.assignment = self.registrar.adopt(candidate.index, address)
            report.action = "migrated"
            self._transition(MonitorState.SETTLED)
            return

        self.logger.warning(f"Lower slot {candidate.index} is now available! Migrating...")
        self._transition(MonitorState.MIGRATING)
        outcome = await self.registrar.register(candidate.index, address)

        if outcome is ClaimOutcome.SUCCESS:
            self.assignment = self.registrar.last_claim
            report.action = "migrated"
            self.logger.info(f"✓ Successfully migrated to {self.config.peer_host(candidate.index)}")
        else:
            self._transition(MonitorState.FAILED_MIGRATION)
            report.action = f"migration_{outcome.value}"
            self.logger.error(f"Failed to migrate to {self.config.peer_host(candidate.index)} ({outcome.value})")
        self._transition(MonitorState.SETTLED)

    async def tick(self) -> TickReport:
        """
        Run one monitor cycle. Never raises: any failure is logged and
        treated as "no action this cycle".
        """
        report = TickReport(previous_slot=self.slot_index)
        try:
            address = await self._current_address()
            if address is None:
                return report

            if self.assignment is not None:
                verified = await self._verify_current(address, report)
                if not verified and self.assignment is not None:
                    # republish was rejected; keep the slot and retry next tick
                    return report

            if self.assignment is None:
                self.logger.warning("No current registration found. Running discovery...")
                await self.discover(address, report)
            elif report.action == "none":
                await self.heal(address, report)
        except NoSlotAvailable as e:
            self.logger.warning(f"{e}; staying unregistered until next tick")
            report.action = "no_slot"
            report.error = str(e)
        except Exception as e:
            self.logger.error(f"Error in monitor tick: {e}", exc_info=True)
            report.error = str(e)
        finally:
            self._transition(MonitorState.SETTLED)
            report.slot = self.slot_index
            report.final_state = self.state
        return report
