"""
Scanner modules for PortScope: probe strategies, service catalog and scheduler.
"""

from typing import Callable, Dict, Optional

from ..core.scan_config import ScanConfig, get_scan_config
from .host_resolver import HostResolver
from .nmap_probe import NmapProbe, nmap_available
from .port_probe import ConnectProbe, PortProbe
from .scheduler import ScanScheduler

# Probe strategies selectable by name at composition time
_PROBE_REGISTRY: Dict[str, Callable[[ScanConfig], PortProbe]] = {}


def register_probe(name: str, factory: Callable[[ScanConfig], PortProbe]):
    _PROBE_REGISTRY[name] = factory


def get_probe_registry() -> Dict[str, Callable[[ScanConfig], PortProbe]]:
    return _PROBE_REGISTRY


def build_probe(strategy: Optional[str] = None, config: Optional[ScanConfig] = None) -> PortProbe:
    config = config or get_scan_config()
    name = (strategy or config.probe_strategy).lower()
    try:
        factory = _PROBE_REGISTRY[name]
    except KeyError:
        raise ValueError(f"Unknown probe strategy: {name}") from None
    return factory(config)


register_probe('connect', lambda config: ConnectProbe(banner_timeout_ms=config.banner_timeout_ms))
register_probe('nmap', lambda config: NmapProbe())

__all__ = [
    'ConnectProbe',
    'HostResolver',
    'NmapProbe',
    'PortProbe',
    'ScanScheduler',
    'build_probe',
    'get_probe_registry',
    'nmap_available',
    'register_probe',
]
