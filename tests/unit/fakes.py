"""
Shared fakes for the slot-swarm tests.

Peers are simulated in-process: a MemoryZone is the shared DNS zone and a
FakeNetwork stands in for the reachability checks, answering the way a
peer's health endpoint would.
"""
import asyncio
from typing import Callable, Dict, Optional, Set

from slot_swarm.core.config import SwarmConfig
from slot_swarm.core.errors import ProbeError, ResolutionError
from slot_swarm.discovery.prober import Reachability, ReachabilityStrategy
from slot_swarm.dns.providers import MemoryZone
from slot_swarm.net.addresses import StaticAddressSource
from slot_swarm.peer import SwarmPeer


def make_config(tmp_path, name: str = "peer", **overrides) -> SwarmConfig:
    """Fast test configuration: no propagation wait, no retry sleeps"""
    values = {
        "domain": "example.com",
        "max_slots": 10,
        "propagation_delay": 0,
        "retry_delay": 0,
        "probe_budget": 2.0,
        "tick_timeout": 5.0,
        "state_file": str(tmp_path / f"{name}.state"),
    }
    values.update(overrides)
    return SwarmConfig(**values)


class FakeNetwork(ReachabilityStrategy):
    """
    Reachability backed by a map of address -> function returning the
    hostname currently held at that address (None while unregistered).
    Addresses missing from the map are dead.
    """

    name = "fake"

    def __init__(self):
        self.hosts: Dict[str, Callable[[], Optional[str]]] = {}
        self.checks = 0

    def serve(self, address: str, holds: Callable[[], Optional[str]]) -> None:
        self.hosts[address] = holds

    def serve_static(self, address: str, hostname: Optional[str]) -> None:
        self.hosts[address] = lambda: hostname

    def depart(self, address: str) -> None:
        self.hosts.pop(address, None)

    async def check(self, hostname: str, address: str) -> Reachability:
        self.checks += 1
        holds = self.hosts.get(address)
        if holds is None:
            return Reachability.DEAD
        if holds() != hostname:
            return Reachability.MOVED
        return Reachability.ALIVE


class UnavailableStrategy(ReachabilityStrategy):
    """A check that can never run from this host"""

    name = "unavailable"

    def __init__(self):
        self.calls = 0

    async def check(self, hostname: str, address: str) -> Reachability:
        self.calls += 1
        raise ProbeError("network unreachable")


class HangingStrategy(ReachabilityStrategy):
    name = "hanging"

    async def check(self, hostname: str, address: str) -> Reachability:
        await asyncio.sleep(60)
        return Reachability.ALIVE


class DeadStrategy(ReachabilityStrategy):
    name = "dead"

    async def check(self, hostname: str, address: str) -> Reachability:
        return Reachability.DEAD


class SlowDeadStrategy(ReachabilityStrategy):
    """A check against a blackholed host: waits out its timeout, then reports dead"""

    name = "slow-dead"

    def __init__(self, delay: float):
        self.delay = delay

    async def check(self, hostname: str, address: str) -> Reachability:
        await asyncio.sleep(self.delay)
        return Reachability.DEAD


class FlakyZone(MemoryZone):
    """MemoryZone whose first ``failures`` lookups raise ResolutionError"""

    def __init__(self, failures: int):
        super().__init__()
        self.failures = failures

    async def resolve(self, hostname: str) -> Set[str]:
        if self.failures > 0:
            self.failures -= 1
            self.reads += 1
            raise ResolutionError(hostname, "SERVFAIL")
        return await super().resolve(hostname)


def build_peer(tmp_path, zone, network: FakeNetwork, address: str, name: str, strategies=None, **overrides):
    """A SwarmPeer on ``address`` whose health answers are served through ``network``"""
    config = make_config(tmp_path, name=name, **overrides)
    peer = SwarmPeer(
        config,
        updater=zone,
        address_source=StaticAddressSource(ipv4=address),
        strategies=strategies if strategies is not None else [network],
    )
    network.serve(address, lambda: peer.assignment.hostname if peer.assignment else None)
    return peer

