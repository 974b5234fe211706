"""
Optimistic two-phase slot claims.

There is no lock service, so two peers may write the same slot. Each
claimant writes, waits one propagation interval, then reads back: only the
peer whose address is visible keeps the slot. The loser rescans from 0.
"""
import asyncio
import ipaddress
import logging
import time
from typing import Dict, Optional, Set

from ..core.config import SwarmConfig
from ..core.errors import PublishError, ResolutionError, StateStoreError
from ..core.models import ClaimOutcome, SlotAssignment, utc_now
from ..core.state import StateStore
from ..dns.providers import RecordUpdater
from ..dns.resolver import normalize_address, record_type_for


class Registrar:
    """Publishes this peer's address to a slot and confirms the claim"""

    def __init__(self, config: SwarmConfig, updater: RecordUpdater, store: StateStore):
        self.config = config
        self.updater = updater
        self.store = store
        self.logger = logging.getLogger(f"Registrar-{config.host_prefix}")
        self.last_claim: Optional[SlotAssignment] = None
        # hostname being written and confirmed, if a claim is in flight
        self.pending: Optional[str] = None
        self._lost: Dict[int, float] = {}  # slot -> monotonic expiry

    def contested_slots(self) -> Set[int]:
        """Slots recently lost in a race, excluded from scans until ``race_backoff`` passes"""
        now = time.monotonic()
        self._lost = {slot: expiry for slot, expiry in self._lost.items() if expiry > now}
        return set(self._lost)

    def _confirmed(self, visible: Set[str], address: str) -> bool:
        version = ipaddress.ip_address(address).version
        same_family = {a for a in visible if ipaddress.ip_address(a).version == version}
        return same_family == {address}

    async def register(self, slot_index: int, address: str) -> ClaimOutcome:
        """
        Claim ``slot_index`` for ``address``.

        Returns:
            SUCCESS (assignment persisted), RACE_LOST or PUBLISH_ERROR
        """
        address = normalize_address(address)
        hostname = self.config.hostname(slot_index)
        record_type = record_type_for(address)

        self.logger.info(f"Registering as {hostname} ({record_type} {address})...")
        self.pending = hostname
        try:
            visible = await self._write_and_read_back(hostname, record_type, address)
        finally:
            self.pending = None
        if visible is None:
            return ClaimOutcome.PUBLISH_ERROR

        if not self._confirmed(visible, address):
            self._lost[slot_index] = time.monotonic() + self.config.race_backoff
            self.logger.info(
                f"Lost race for {hostname}: visible {sorted(visible) or 'nothing'}, wrote {address}"
            )
            return ClaimOutcome.RACE_LOST

        self._lost.pop(slot_index, None)
        assignment = SlotAssignment(slot_index=slot_index, hostname=hostname, owner_address=address)
        self.last_claim = assignment
        self.persist(assignment)
        self.logger.info(f"✓ Successfully registered as {hostname}")
        return ClaimOutcome.SUCCESS

    async def _write_and_read_back(self, hostname: str, record_type: str, address: str) -> Optional[Set[str]]:
        """Addresses visible after one propagation interval, or None if the write failed"""
        try:
            await self.updater.update(hostname, record_type, address)
        except PublishError as e:
            self.logger.error(f"{e}; will retry next tick")
            return None

        await asyncio.sleep(self.config.propagation_delay)

        try:
            return await self.updater.resolve(hostname)
        except ResolutionError as e:
            self.logger.warning(f"Cannot confirm claim on {hostname}: {e}")
            return set()

    def adopt(self, slot_index: int, address: str) -> SlotAssignment:
        """Take over a slot whose record already points at us, without writing"""
        now = utc_now()
        assignment = SlotAssignment(
            slot_index=slot_index,
            hostname=self.config.hostname(slot_index),
            owner_address=normalize_address(address),
            registered_at=now,
            last_heartbeat=now,
        )
        self.last_claim = assignment
        self.persist(assignment)
        self.logger.info(f"Using our existing slot: {assignment.hostname}")
        return assignment

    def persist(self, assignment: SlotAssignment) -> bool:
        try:
            self.store.save(assignment)
            return True
        except StateStoreError as e:
            self.logger.error(f"{e}; continuing with in-memory state")
            return False
