"""
Record updaters: the write side of the DNS zone.

Every updater publishes ``<prefix><index>.<domain>`` records through a
provider API and reads them back through public DNS, which is what other
peers see. The zone is treated as an overwrite-only key/value store with
bounded but unspecified propagation delay.
"""
import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional, Set

import aiohttp

from ..core.config import SwarmConfig
from ..core.errors import ConfigError, PublishError
from .resolver import RecordResolver, normalize_address


class RecordUpdater(ABC):
    """Publishes and reads back slot records"""

    name = "abstract"

    @abstractmethod
    async def update(self, hostname: str, record_type: str, address: str) -> None:
        """
        Point ``hostname`` at ``address``, overwriting any existing record of that type.

        Raises:
            PublishError: if the provider rejects the write
        """

    @abstractmethod
    async def resolve(self, hostname: str) -> Set[str]:
        """Addresses currently visible for ``hostname``"""

    async def close(self) -> None:
        pass


class MemoryZone(RecordUpdater):
    """
    In-process zone. Used for dry runs and as the shared medium when
    several peers are simulated inside one test.
    """

    name = "memory"

    def __init__(self):
        self.records: Dict[str, Dict[str, str]] = {}
        self.writes = 0
        self.reads = 0
        self.logger = logging.getLogger("MemoryZone")

    async def update(self, hostname: str, record_type: str, address: str) -> None:
        self.writes += 1
        self.records.setdefault(hostname.lower(), {})[record_type] = normalize_address(address)
        self.logger.info(f"[memory] {hostname} {record_type} -> {address}")

    async def resolve(self, hostname: str) -> Set[str]:
        self.reads += 1
        return set(self.records.get(hostname.lower(), {}).values())

    def remove(self, hostname: str) -> None:
        """Drop a name entirely, as if its record had been deleted at the provider"""
        self.records.pop(hostname.lower(), None)


class HttpRecordUpdater(RecordUpdater):
    """
    Base for providers driven over a REST API. Reads go through public DNS.
    """

    REQUEST_TIMEOUT = 15  # seconds

    def __init__(self, config: SwarmConfig, resolver: RecordResolver):
        self.config = config
        self.provider = config.provider
        self.resolver = resolver
        self.logger = logging.getLogger(f"{type(self).__name__}-{config.domain}")
        self._session: Optional[aiohttp.ClientSession] = None

    def _headers(self) -> Dict[str, str]:
        return {"Content-Type": "application/json"}

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                headers=self._headers(),
                timeout=aiohttp.ClientTimeout(total=self.REQUEST_TIMEOUT),
            )
        return self._session

    def relative_name(self, hostname: str) -> str:
        suffix = f".{self.config.domain}"
        if hostname.endswith(suffix):
            return hostname[:-len(suffix)]
        return hostname

    async def _request(self, method: str, url: str, hostname: str, **kwargs) -> Any:
        session = self._get_session()
        try:
            async with session.request(method, url, **kwargs) as response:
                text = await response.text()
                if response.status >= 400:
                    reason = {401: "unauthorized", 403: "forbidden", 429: "rate limited"}.get(response.status, "rejected")
                    raise PublishError(hostname, f"{reason} ({response.status}): {text[:200]}", status=response.status)
                if not text:
                    return None
                try:
                    return await response.json(content_type=None)
                except ValueError:
                    return text
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise PublishError(hostname, f"{method} {url} failed: {e}") from e

    async def resolve(self, hostname: str) -> Set[str]:
        return await self.resolver.resolve(hostname)

    async def close(self) -> None:
        if self._session is not None and not self._session.closed:
            await self._session.close()


class GoDaddyUpdater(HttpRecordUpdater):
    name = "godaddy"
    API_URL = "https://api.godaddy.com/v1"

    def _headers(self) -> Dict[str, str]:
        headers = super()._headers()
        headers["Authorization"] = f"sso-key {self.provider.key}:{self.provider.secret}"
        return headers

    async def update(self, hostname: str, record_type: str, address: str) -> None:
        url = f"{self.API_URL}/domains/{self.config.domain}/records/{record_type}/{self.relative_name(hostname)}"
        await self._request("PUT", url, hostname, json=[{"data": address, "ttl": self.provider.ttl}])
        self.logger.info(f"Updated {hostname} {record_type} -> {address}")


class CloudflareUpdater(HttpRecordUpdater):
    name = "cloudflare"
    API_URL = "https://api.cloudflare.com/client/v4"

    def _headers(self) -> Dict[str, str]:
        headers = super()._headers()
        if self.provider.email:
            headers["X-Auth-Email"] = self.provider.email
            headers["X-Auth-Key"] = self.provider.key
        else:
            headers["Authorization"] = f"Bearer {self.provider.key}"
        return headers

    def _check(self, hostname: str, payload: Any) -> Any:
        if not isinstance(payload, dict) or not payload.get("success", False):
            errors = payload.get("errors") if isinstance(payload, dict) else payload
            raise PublishError(hostname, f"Cloudflare error: {errors}")
        return payload.get("result")

    async def update(self, hostname: str, record_type: str, address: str) -> None:
        if not self.provider.zone_id:
            raise PublishError(hostname, "Cloudflare zone ID not configured")

        records_url = f"{self.API_URL}/zones/{self.provider.zone_id}/dns_records"
        existing = self._check(hostname, await self._request(
            "GET", records_url, hostname, params={"name": hostname, "type": record_type}
        )) or []

        body = {"type": record_type, "name": hostname, "content": address, "ttl": self.provider.ttl}
        if existing:
            payload = await self._request("PUT", f"{records_url}/{existing[0]['id']}", hostname, json=body)
        else:
            payload = await self._request("POST", records_url, hostname, json=body)
        self._check(hostname, payload)
        self.logger.info(f"Updated {hostname} {record_type} -> {address}")


class DigitalOceanUpdater(HttpRecordUpdater):
    name = "digitalocean"
    API_URL = "https://api.digitalocean.com/v2"

    def _headers(self) -> Dict[str, str]:
        headers = super()._headers()
        headers["Authorization"] = f"Bearer {self.provider.key}"
        return headers

    async def update(self, hostname: str, record_type: str, address: str) -> None:
        records_url = f"{self.API_URL}/domains/{self.config.domain}/records"
        payload = await self._request(
            "GET", records_url, hostname, params={"name": hostname, "type": record_type}
        ) or {}
        existing = payload.get("domain_records", []) if isinstance(payload, dict) else []

        if existing:
            await self._request("PUT", f"{records_url}/{existing[0]['id']}", hostname, json={"data": address})
        else:
            await self._request("POST", records_url, hostname, json={
                "type": record_type,
                "name": self.relative_name(hostname),
                "data": address,
                "ttl": self.provider.ttl,
            })
        self.logger.info(f"Updated {hostname} {record_type} -> {address}")


PROVIDERS = {
    "godaddy": GoDaddyUpdater,
    "cloudflare": CloudflareUpdater,
    "digitalocean": DigitalOceanUpdater,
}


def create_updater(config: SwarmConfig, resolver: RecordResolver) -> RecordUpdater:
    """Build the record updater named by ``config.provider.name``"""
    name = config.provider.name
    if name == "memory":
        return MemoryZone()

    updater_cls = PROVIDERS.get(name)
    if updater_cls is None:
        raise ConfigError(f"DNS provider '{name}' not supported")
    if not config.provider.key:
        raise ConfigError(f"DNS provider '{name}' requires an API key")
    if name == "godaddy" and not config.provider.secret:
        raise ConfigError("GoDaddy requires an API secret")
    if name == "cloudflare" and not config.provider.zone_id:
        raise ConfigError("Cloudflare requires a zone ID")
    return updater_cls(config, resolver)
