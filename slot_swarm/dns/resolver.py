"""
Async A/AAAA resolution for slot hostnames.

Queries go straight to the configured public nameservers through aiodns
(c-ares), bypassing the local stub resolver so a freshly written record is
seen as soon as the provider publishes it.
"""
import asyncio
import ipaddress
import logging
from typing import Iterable, Optional, Set

import aiodns

from ..core.errors import ResolutionError


# Answers that mean "the name has no such record", as opposed to a failed lookup
_EMPTY_ANSWER_CODES = frozenset({aiodns.error.ARES_ENOTFOUND, aiodns.error.ARES_ENODATA})


def normalize_address(address: str) -> str:
    """Canonical text form so IPv6 spellings compare equal"""
    return ipaddress.ip_address(address.strip()).compressed


def record_type_for(address: str) -> str:
    return "AAAA" if ipaddress.ip_address(address).version == 6 else "A"


class RecordResolver:
    """
    Resolves a hostname to the set of addresses in its A and AAAA records.

    Usage:
        resolver = RecordResolver(["8.8.8.8"], timeout=2.0)
        addresses = await resolver.resolve("peer0.example.com")
    """

    def __init__(self, nameservers: Iterable[str] = (), timeout: float = 2.0):
        self.nameservers = list(nameservers)
        self.timeout = timeout
        self.logger = logging.getLogger("RecordResolver")
        self._resolver: Optional[aiodns.DNSResolver] = None

    def _get_resolver(self) -> aiodns.DNSResolver:
        # aiodns binds to the running loop, so create lazily
        if self._resolver is None:
            kwargs = {"timeout": self.timeout, "tries": 1}
            if self.nameservers:
                kwargs["nameservers"] = self.nameservers
            self._resolver = aiodns.DNSResolver(**kwargs)
        return self._resolver

    async def _query(self, hostname: str, record_type: str) -> Set[str]:
        resolver = self._get_resolver()
        try:
            answers = await asyncio.wait_for(
                resolver.query(hostname, record_type),
                timeout=self.timeout + 0.5,
            )
        except asyncio.TimeoutError:
            raise ResolutionError(hostname, f"{record_type} query timed out after {self.timeout}s")
        except aiodns.error.DNSError as e:
            code = e.args[0] if e.args else None
            if code in _EMPTY_ANSWER_CODES:
                return set()
            raise ResolutionError(hostname, f"{record_type} query failed: {e}")

        return {normalize_address(answer.host) for answer in answers}

    async def resolve(self, hostname: str) -> Set[str]:
        """
        Look up every address currently published for ``hostname``.

        Returns:
            Set of addresses; empty when the name has no A or AAAA record

        Raises:
            ResolutionError: if a lookup failed and no address was found
        """
        results = await asyncio.gather(
            self._query(hostname, "A"),
            self._query(hostname, "AAAA"),
            return_exceptions=True,
        )

        addresses: Set[str] = set()
        failure: Optional[Exception] = None
        for result in results:
            if isinstance(result, Exception):
                failure = result
            elif isinstance(result, BaseException):
                raise result
            else:
                addresses |= result

        if failure is not None and not addresses:
            if isinstance(failure, ResolutionError):
                raise failure
            raise ResolutionError(hostname, str(failure)) from failure

        self.logger.debug(f"{hostname} -> {sorted(addresses) or 'no records'}")
        return addresses
