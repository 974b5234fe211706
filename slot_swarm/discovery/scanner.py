"""
Slot scanning: lowest usable index, walked in strictly increasing order.

Order is never randomized. Independent peers walking the same range see
the same "lowest candidate" as soon as DNS propagation allows, which is
what lets the population compact toward slot 0.
"""
import logging
from dataclasses import dataclass
from typing import Iterable, Optional

from ..core.config import SwarmConfig
from ..core.models import ProbeStatus
from .prober import LivenessProber


@dataclass(frozen=True)
class SlotCandidate:
    index: int
    status: ProbeStatus

    @property
    def self_owned(self) -> bool:
        return self.status is ProbeStatus.OCCUPIED_SELF


class SlotScanner:
    """Finds the lowest slot this peer may hold"""

    LOG_EVERY = 10

    def __init__(self, config: SwarmConfig, prober: LivenessProber):
        self.config = config
        self.prober = prober
        self.logger = logging.getLogger(f"SlotScanner-{config.host_prefix}")
        # discovery progress, kept across ticks so a watchdog cut does not restart at 0
        self.resume_from = 0

    async def find_own_slot(self) -> Optional[int]:
        """Lowest slot whose record already points at us, if any"""
        for index in range(self.config.max_slots):
            if await self.prober.owned_by_self(self.config.hostname(index)):
                self.logger.info(f"Found our existing slot: {self.config.peer_host(index)}")
                return index
        return None

    def reset(self) -> None:
        """Forget discovery progress (after a slot has been claimed)"""
        self.resume_from = 0

    async def _first_available(self, indices: Iterable[int], exclude: Iterable[int],
                               contest_stale: bool, track: bool = False) -> Optional[SlotCandidate]:
        skipped = set(exclude)
        for index in indices:
            if index in skipped:
                self.logger.debug(f"Skipping recently contested slot {index}")
                if track:
                    self.resume_from = index + 1
                continue

            hostname = self.config.hostname(index)
            status = await self.prober.probe(hostname)

            if status is ProbeStatus.OCCUPIED_SELF:
                return SlotCandidate(index, status)
            if status.claimable:
                self.logger.info(f"Found available slot: {hostname}")
                return SlotCandidate(index, status)
            if contest_stale and status.contestable:
                self.logger.info(f"Found stale slot: {hostname}")
                return SlotCandidate(index, status)
            if status is ProbeStatus.UNKNOWN:
                self.logger.warning(f"Slot {index} is indeterminate ({hostname}); treating it as occupied")
            if track:
                self.resume_from = index + 1

            if index and index % self.LOG_EVERY == 0:
                self.logger.info(f"Scanned up to slot {index}...")
        return None

    async def find_slot(self, exclude: Iterable[int] = (), contest_stale: bool = False) -> Optional[SlotCandidate]:
        """
        Lowest slot to hold: our existing slot if we already own one,
        otherwise the first free slot.

        Args:
            exclude: indices to skip (slots recently lost in a race)
            contest_stale: also accept slots whose owner does not answer

        Returns:
            SlotCandidate, or None when the whole range is occupied
        """
        if self.config.max_slots == 0:
            return None

        own = await self.find_own_slot()
        if own is not None:
            return SlotCandidate(own, ProbeStatus.OCCUPIED_SELF)

        start = min(self.resume_from, self.config.max_slots)
        if start:
            self.logger.info(f"Resuming scan at slot {start} (lower slots were occupied last time)")
        else:
            self.logger.info(f"Scanning for available peer slots (0-{self.config.max_slots - 1})...")
        candidate = await self._first_available(
            range(start, self.config.max_slots), exclude, contest_stale, track=True
        )
        if candidate is None:
            self.logger.warning(f"No available slots found in positions {start}-{self.config.max_slots - 1}")
            self.reset()
        return candidate

    async def find_lower_slot(self, current: int, exclude: Iterable[int] = ()) -> Optional[SlotCandidate]:
        """
        Lowest slot below ``current`` that is free, stale or already ours.
        Stale owners are contested here, unlike in ``find_slot``.
        """
        upper = min(current, self.config.max_slots)
        return await self._first_available(range(upper), exclude, contest_stale=True)
