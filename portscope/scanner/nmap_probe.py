import asyncio
import importlib.util
import logging
import shutil
from typing import Any, Dict, Optional

from ..core.models import PortOutcome, PortState
from .port_probe import MAX_BANNER_LENGTH, PortProbe

logger = logging.getLogger(__name__)

NMAP_ARGUMENTS = "-sT -Pn -sV --version-intensity 2 --script=banner"

# Seconds nmap needs on top of the connect timeout to start up and fingerprint
NMAP_OVERHEAD = 5


def nmap_timeout_s(timeout_ms: int) -> int:
    """Process timeout handed to python-nmap for one single-port scan"""
    return max(1, -(-timeout_ms // 1000)) + NMAP_OVERHEAD


def nmap_available() -> bool:
    """Check if the nmap executable is on PATH and python-nmap is installed"""
    return shutil.which("nmap") is not None and importlib.util.find_spec("nmap") is not None


class NmapProbe(PortProbe):
    """Probe backed by the nmap binary through python-nmap.

    python-nmap is an optional extra; constructing the probe without it
    raises ImportError so the strategy fails at composition time instead
    of per port.
    """

    name = "nmap"

    def __init__(self, arguments: str = NMAP_ARGUMENTS):
        import nmap
        self._nmap = nmap
        self.arguments = arguments

    def max_duration_ms(self, timeout_ms: int) -> int:
        return nmap_timeout_s(timeout_ms) * 1000

    async def probe(self, host: str, port: int, timeout_ms: int,
                    server_name: Optional[str] = None) -> PortOutcome:
        loop = asyncio.get_running_loop()
        try:
            port_info = await loop.run_in_executor(None, self._run_nmap, host, port, timeout_ms)
        except self._nmap.PortScannerTimeout:
            logger.debug(f"nmap probe of {host}:{port} timed out")
            return self._outcome(port, PortState.FILTERED, "timeout")
        except Exception as e:
            logger.debug(f"nmap probe of {host}:{port} failed: {e}")
            return self._outcome(port, PortState.FILTERED, "error")

        if port_info is None:
            return self._outcome(port, PortState.FILTERED, "timeout")

        state = port_info.get('state', '')
        if state == 'open':
            return self._outcome(port, PortState.OPEN, "connected", banner=self._banner(port_info))
        if state == 'closed':
            return self._outcome(port, PortState.CLOSED, "refused")
        return self._outcome(port, PortState.FILTERED, "timeout")

    def _run_nmap(self, host: str, port: int, timeout_ms: int) -> Optional[Dict[str, Any]]:
        """Scan one port; None when nmap reports nothing for the host."""
        nm = self._nmap.PortScanner()
        arguments = f"{self.arguments} --max-rtt-timeout {timeout_ms}ms"
        nm.scan(host, str(port), arguments=arguments, timeout=nmap_timeout_s(timeout_ms))

        hosts = nm.all_hosts()
        if not hosts:
            logger.debug(f"nmap returned no hosts for {host}")
            return None
        scan_host = hosts[0]
        try:
            return nm[scan_host]['tcp'][port]
        except KeyError:
            logger.debug(f"nmap output has no entry for {host}:{port}")
            return None

    def _banner(self, port_info: Dict[str, Any]) -> Optional[str]:
        script = port_info.get('script') or {}
        banner = script.get('banner')
        if not banner:
            product = port_info.get('product', '')
            version = port_info.get('version', '')
            banner = f"{product} {version}".strip()
        if not banner:
            return None
        banner = " ".join(banner.split())
        if len(banner) > MAX_BANNER_LENGTH:
            return banner[:MAX_BANNER_LENGTH] + "..."
        return banner
