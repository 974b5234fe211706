"""
Assembly of one swarm peer from its configuration
"""
import logging
from typing import Optional, Sequence

from .core.config import SwarmConfig
from .core.daemon import DiscoveryDaemon
from .core.errors import StateStoreError
from .core.models import SlotAssignment, TickReport
from .core.state import StateStore
from .discovery.monitor import SelfHealMonitor
from .discovery.prober import LivenessProber, ReachabilityStrategy
from .discovery.registrar import Registrar
from .discovery.scanner import SlotScanner
from .dns.providers import RecordUpdater, create_updater
from .dns.resolver import RecordResolver
from .health.server import HealthServer
from .net.addresses import PublicAddressSource, StaticAddressSource


def default_address_source(config: SwarmConfig):
    if config.public_ipv4 or config.public_ipv6:
        return StaticAddressSource(config.public_ipv4, config.public_ipv6)
    return PublicAddressSource(cache_ttl=config.address_cache_ttl)


class SwarmPeer:
    """
    One peer: prober, scanner, registrar, monitor and daemon wired together.

    Collaborators can be injected (tests, simulations); anything omitted is
    built from the configuration.
    """

    def __init__(self, config: SwarmConfig,
                 updater: Optional[RecordUpdater] = None,
                 address_source=None,
                 store: Optional[StateStore] = None,
                 strategies: Optional[Sequence[ReachabilityStrategy]] = None):
        self.config = config
        self.logger = logging.getLogger(f"SwarmPeer-{config.host_prefix}")

        self.updater = updater or create_updater(
            config, RecordResolver(config.nameservers, timeout=config.probe_timeout)
        )
        self.address_source = address_source or default_address_source(config)
        self.store = store or StateStore(config.state_file)

        self.prober = LivenessProber(config, self.updater, self.address_source, strategies)
        self.scanner = SlotScanner(config, self.prober)
        self.registrar = Registrar(config, self.updater, self.store)
        self.monitor = SelfHealMonitor(
            config, self.scanner, self.registrar, self.address_source, self.load_state()
        )
        self.daemon = DiscoveryDaemon(config, self.monitor, self.store)
        self.health: Optional[HealthServer] = None

    def load_state(self) -> Optional[SlotAssignment]:
        try:
            assignment = self.store.load()
        except StateStoreError as e:
            self.logger.error(f"{e}; starting unregistered")
            return None
        if assignment is not None and assignment.hostname != self.config.hostname(assignment.slot_index):
            self.logger.warning(f"Saved slot {assignment.hostname} belongs to another domain; ignoring it")
            return None
        return assignment

    @property
    def assignment(self) -> Optional[SlotAssignment]:
        return self.monitor.assignment

    async def tick(self) -> Optional[TickReport]:
        """One daemon tick (heartbeat + monitor), under the watchdog"""
        return await self.daemon.run_tick()

    async def scan(self, limit: Optional[int] = None):
        """Probe every slot in range; yields (index, hostname, status)"""
        upper = self.config.max_slots if limit is None else min(limit, self.config.max_slots)
        for index in range(upper):
            hostname = self.config.hostname(index)
            yield index, hostname, await self.prober.probe(hostname)

    async def start_health(self, host: str = "0.0.0.0") -> None:
        self.health = HealthServer(self.config, self.monitor, host=host)
        await self.health.start()

    async def run(self, serve_health: bool = True) -> None:
        """Run the daemon loop until a signal stops it"""
        try:
            if serve_health:
                await self.start_health()
            await self.daemon.run()
        finally:
            await self.close()

    async def close(self) -> None:
        if self.health is not None:
            await self.health.stop()
            self.health = None
        await self.updater.close()
