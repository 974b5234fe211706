"""
Discovery of this host's current public addresses
"""
import asyncio
import ipaddress
import logging
import socket
import time
from dataclasses import dataclass
from typing import List, Optional, Sequence, Set

import aiohttp
import psutil


IPV4_ECHO_URLS = ("https://checkip.amazonaws.com", "https://ipv4.icanhazip.com")
IPV6_ECHO_URLS = ("https://ipv6.icanhazip.com",)


@dataclass(frozen=True)
class PublicAddresses:
    ipv4: Optional[str] = None
    ipv6: Optional[str] = None

    def as_set(self) -> Set[str]:
        return {address for address in (self.ipv4, self.ipv6) if address}

    @property
    def primary(self) -> Optional[str]:
        """Address to publish: IPv4 when available"""
        return self.ipv4 or self.ipv6

    def __bool__(self) -> bool:
        return bool(self.ipv4 or self.ipv6)


def _parse(text: str, version: int) -> Optional[str]:
    try:
        address = ipaddress.ip_address(text.strip())
    except ValueError:
        return None
    return address.compressed if address.version == version else None


def get_interface_addresses() -> PublicAddresses:
    """
    Global-scope addresses bound to local interfaces.

    Used when no echo service is reachable; only meaningful for hosts
    that hold a public address directly.
    """
    ipv4 = ipv6 = None
    for interface, addrs in psutil.net_if_addrs().items():
        for addr in addrs:
            if addr.family not in (socket.AF_INET, socket.AF_INET6):
                continue
            try:
                address = ipaddress.ip_address(addr.address.split('%')[0])
            except ValueError:
                continue
            if not address.is_global:
                continue
            if address.version == 4 and ipv4 is None:
                ipv4 = address.compressed
            elif address.version == 6 and ipv6 is None:
                ipv6 = address.compressed
    return PublicAddresses(ipv4=ipv4, ipv6=ipv6)


class PublicAddressSource:
    """
    Reports this host's public IPv4/IPv6 addresses, cached for ``cache_ttl`` seconds.
    """

    def __init__(self, cache_ttl: float = 60.0, timeout: float = 5.0,
                 ipv4_urls: Sequence[str] = IPV4_ECHO_URLS,
                 ipv6_urls: Sequence[str] = IPV6_ECHO_URLS):
        self.cache_ttl = cache_ttl
        self.timeout = timeout
        self.ipv4_urls = list(ipv4_urls)
        self.ipv6_urls = list(ipv6_urls)
        self.logger = logging.getLogger("PublicAddressSource")
        self._cached: Optional[PublicAddresses] = None
        self._cached_at = 0.0

    async def _fetch(self, session: aiohttp.ClientSession, urls: List[str], version: int) -> Optional[str]:
        for url in urls:
            try:
                async with session.get(url) as response:
                    if response.status == 200:
                        address = _parse(await response.text(), version)
                        if address:
                            return address
            except (aiohttp.ClientError, asyncio.TimeoutError) as e:
                self.logger.debug(f"Address lookup via {url} failed: {e}")
        return None

    async def current_addresses(self) -> PublicAddresses:
        """
        Current public addresses of this host.

        Returns:
            PublicAddresses; both fields None when nothing could be determined
        """
        if self._cached is not None and time.monotonic() - self._cached_at < self.cache_ttl:
            return self._cached

        async with aiohttp.ClientSession(timeout=aiohttp.ClientTimeout(total=self.timeout)) as session:
            ipv4, ipv6 = await asyncio.gather(
                self._fetch(session, self.ipv4_urls, 4),
                self._fetch(session, self.ipv6_urls, 6),
            )

        if not ipv4 or not ipv6:
            local = get_interface_addresses()
            ipv4 = ipv4 or local.ipv4
            ipv6 = ipv6 or local.ipv6

        addresses = PublicAddresses(ipv4=ipv4, ipv6=ipv6)
        if addresses:
            self._cached = addresses
            self._cached_at = time.monotonic()
            self.logger.debug(f"Public addresses: IPv4={ipv4} IPv6={ipv6}")
        else:
            self.logger.error("Cannot detect public IP address")
        return addresses


class StaticAddressSource:
    """Fixed addresses, for hosts with a known public IP or for simulations"""

    def __init__(self, ipv4: Optional[str] = None, ipv6: Optional[str] = None):
        self.addresses = PublicAddresses(
            ipv4=_parse(ipv4, 4) if ipv4 else None,
            ipv6=_parse(ipv6, 6) if ipv6 else None,
        )

    async def current_addresses(self) -> PublicAddresses:
        return self.addresses
