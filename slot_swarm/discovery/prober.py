"""
Liveness probing of slot hostnames.

A slot is classified by an ordered fallback chain that stops at the first
conclusive signal:

1. resolve the name; no records means FREE
2. a resolved address is one of ours: OCCUPIED_SELF
3. reachability strategies, in configured order, against every resolved
   address: any live answer is OCCUPIED_OTHER. A peer that answers but
   reports holding a different slot has moved away; its address is not
   asked again
4. records exist but no address is alive: OCCUPIED_STALE
5. no strategy could run at all: UNKNOWN (callers treat it as occupied)
"""
import asyncio
import errno
import logging
from abc import ABC, abstractmethod
from enum import Enum
from typing import Dict, List, Optional, Sequence, Set

import aiohttp

from ..core.config import SwarmConfig
from ..core.errors import ProbeError, ResolutionError
from ..core.models import ProbeStatus
from ..dns.providers import RecordUpdater


# Local-side failures: the check says nothing about the remote host
_LOCAL_NETWORK_ERRNOS = frozenset({errno.ENETUNREACH, errno.EAFNOSUPPORT, errno.EADDRNOTAVAIL})


class Reachability(Enum):
    ALIVE = "alive"
    DEAD = "dead"
    MOVED = "moved"  # answers, but holds another slot


def _raise_if_local(e: OSError, address: str) -> None:
    if e.errno in _LOCAL_NETWORK_ERRNOS:
        raise ProbeError(f"Cannot reach {address} from this host: {e}") from e


def _url_host(address: str) -> str:
    return f"[{address}]" if ":" in address else address


class ReachabilityStrategy(ABC):
    """One way of asking whether the owner of a record is alive"""

    name = "abstract"

    @abstractmethod
    async def check(self, hostname: str, address: str) -> Reachability:
        """
        Raises:
            ProbeError: if the check could not be carried out from this host
        """


class TcpReachability(ReachabilityStrategy):
    """Connects to well-known ports (ssh, http by default)"""

    name = "tcp"

    def __init__(self, ports: Sequence[int], timeout: float = 2.0):
        self.ports = list(ports)
        self.timeout = timeout

    async def check(self, hostname: str, address: str) -> Reachability:
        if not self.ports:
            raise ProbeError("No TCP ports configured")

        for port in self.ports:
            try:
                _, writer = await asyncio.wait_for(
                    asyncio.open_connection(address, port), timeout=self.timeout
                )
            except asyncio.TimeoutError:
                continue
            except OSError as e:
                _raise_if_local(e, address)
                continue
            writer.close()
            try:
                await writer.wait_closed()
            except OSError:
                pass
            return Reachability.ALIVE
        return Reachability.DEAD


class HttpReachability(ReachabilityStrategy):
    """
    Fetches the peer health endpoint. A peer reports the slot it currently
    holds, and any slot it is in the middle of claiming, which tells a live
    owner apart from a peer that has migrated.
    """

    name = "http"

    def __init__(self, port: int, path: str = "/health", timeout: float = 2.0):
        self.port = port
        self.path = path
        self.timeout = timeout

    async def check(self, hostname: str, address: str) -> Reachability:
        url = f"http://{_url_host(address)}:{self.port}{self.path}"
        try:
            async with aiohttp.ClientSession(timeout=aiohttp.ClientTimeout(total=self.timeout)) as session:
                async with session.get(url, headers={"Host": hostname}) as response:
                    if response.status >= 500:
                        return Reachability.DEAD
                    try:
                        payload = await response.json(content_type=None)
                    except ValueError:
                        payload = None
        except aiohttp.ClientConnectorError as e:
            if e.os_error is not None:
                _raise_if_local(e.os_error, address)
            return Reachability.DEAD
        except (aiohttp.ClientError, asyncio.TimeoutError):
            return Reachability.DEAD

        if isinstance(payload, dict) and "status" in payload:
            claiming = str(payload.get("claiming") or "").lower().rstrip(".")
            if claiming == hostname.lower():
                return Reachability.ALIVE
            holds = str(payload.get("domain") or "").lower().rstrip(".")
            if payload.get("status") != "alive" or holds != hostname.lower():
                return Reachability.MOVED
        return Reachability.ALIVE


def build_strategies(config: SwarmConfig) -> List[ReachabilityStrategy]:
    """Reachability strategies in ``probe_strategy_order``"""
    available = {
        "tcp": lambda: TcpReachability(config.tcp_ports, config.probe_timeout),
        "http": lambda: HttpReachability(config.health_port, config.health_path, config.probe_timeout),
    }
    return [available[name]() for name in config.probe_strategy_order]


class LivenessProber:
    """
    Classifies slot hostnames as free, self-owned, owned by a live peer,
    stale or unknown.
    """

    def __init__(self, config: SwarmConfig, updater: RecordUpdater, address_source,
                 strategies: Optional[Sequence[ReachabilityStrategy]] = None):
        self.config = config
        self.updater = updater
        self.address_source = address_source
        self.strategies = list(strategies) if strategies is not None else build_strategies(config)
        self.logger = logging.getLogger(f"LivenessProber-{config.host_prefix}")

    async def lookup(self, hostname: str) -> Set[str]:
        """Resolve with one retry after ``retry_delay``"""
        try:
            return await self.updater.resolve(hostname)
        except ResolutionError as e:
            self.logger.debug(f"{e}; retrying in {self.config.retry_delay}s")
            await asyncio.sleep(self.config.retry_delay)
            return await self.updater.resolve(hostname)

    async def owned_by_self(self, hostname: str) -> bool:
        """True if the record for ``hostname`` points at one of our addresses"""
        try:
            resolved = await self.lookup(hostname)
        except ResolutionError as e:
            self.logger.debug(f"Ownership check skipped: {e}")
            return False
        if not resolved:
            return False
        mine = (await self.address_source.current_addresses()).as_set()
        return bool(resolved & mine)

    async def _check(self, strategy: ReachabilityStrategy, hostname: str, address: str) -> Reachability:
        try:
            return await strategy.check(hostname, address)
        except ProbeError as e:
            self.logger.debug(f"{strategy.name} probe of {hostname} failed: {e}; retrying")
            await asyncio.sleep(self.config.retry_delay)
            return await strategy.check(hostname, address)

    async def _probe(self, hostname: str, progress: Dict[str, object]) -> ProbeStatus:
        try:
            resolved = await self.lookup(hostname)
        except ResolutionError as e:
            self.logger.warning(f"{e}; treating {hostname} as unknown")
            return ProbeStatus.UNKNOWN

        if not resolved:
            return ProbeStatus.FREE
        progress["resolved"] = resolved

        mine = (await self.address_source.current_addresses()).as_set()
        if resolved & mine:
            return ProbeStatus.OCCUPIED_SELF

        ran_any = False
        moved: Set[str] = set()
        for strategy in self.strategies:
            for address in sorted(resolved - moved):
                try:
                    result = await self._check(strategy, hostname, address)
                except ProbeError as e:
                    self.logger.debug(f"{strategy.name} probe unavailable for {address}: {e}")
                    continue
                ran_any = True
                progress["ran"] = True
                if result is Reachability.ALIVE:
                    return ProbeStatus.OCCUPIED_OTHER
                if result is Reachability.MOVED:
                    self.logger.debug(f"{hostname} -> {address} answers for another slot")
                    moved.add(address)

        if not ran_any:
            self.logger.warning(
                f"No reachability method available for {hostname} ({', '.join(sorted(resolved))}); "
                f"treating it as occupied"
            )
            return ProbeStatus.UNKNOWN
        return ProbeStatus.OCCUPIED_STALE

    async def probe(self, hostname: str) -> ProbeStatus:
        """
        Classify one slot hostname, within ``probe_budget`` seconds.

        Returns:
            ProbeStatus for the hostname
        """
        progress: Dict[str, object] = {}
        try:
            status = await asyncio.wait_for(self._probe(hostname, progress), timeout=self.config.probe_budget)
        except asyncio.TimeoutError:
            status = ProbeStatus.OCCUPIED_STALE if progress.get("ran") else ProbeStatus.UNKNOWN
            self.logger.warning(f"Probe of {hostname} exceeded {self.config.probe_budget}s budget ({status.value})")

        self.logger.debug(f"{hostname}: {status.value}")
        return status
