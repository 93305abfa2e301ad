import asyncio
import logging
import socket
from typing import Optional

import aiodns

from ..core.validator import is_ipv4

logger = logging.getLogger(__name__)

# Lookup failures that will not change on retry
PERMANENT_DNS_ERRORS = (aiodns.error.ARES_ENOTFOUND, aiodns.error.ARES_ENODATA)


class HostResolver:
    def __init__(self, timeout: float = 5.0, max_retries: int = 3):
        self.timeout = timeout
        self.max_retries = max_retries
        self._resolver: Optional[aiodns.DNSResolver] = None

    def _get_resolver(self) -> aiodns.DNSResolver:
        # aiodns binds to the running loop, so build it on first use
        if self._resolver is None:
            self._resolver = aiodns.DNSResolver(loop=asyncio.get_running_loop(), timeout=self.timeout)
        return self._resolver

    async def resolve(self, host: str) -> Optional[str]:
        """Resolve hostname to its first IPv4 address with retries"""
        if not host or not host.strip():
            return None
        if is_ipv4(host):
            return host

        resolver = self._get_resolver()
        for attempt in range(self.max_retries):
            try:
                result = await asyncio.wait_for(
                    resolver.getaddrinfo(host, family=socket.AF_INET), timeout=self.timeout
                )
                for node in result.nodes:
                    address = node.addr[0]
                    return address.decode() if isinstance(address, bytes) else address
                return None
            except asyncio.TimeoutError:
                logger.debug(f"DNS resolution timeout for {host} on attempt {attempt + 1}")
            except aiodns.error.DNSError as e:
                logger.debug(f"DNS resolution failed for {host} on attempt {attempt + 1}: {e}")
                if e.args and e.args[0] in PERMANENT_DNS_ERRORS:
                    return None
            if attempt < self.max_retries - 1:
                await asyncio.sleep(0.5)
        return None

    async def close(self):
        """Release the underlying channel; the resolver can be reused afterwards"""
        if self._resolver is not None:
            resolver, self._resolver = self._resolver, None
            await resolver.close()
