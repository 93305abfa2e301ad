"""
Request validation: host format, loopback policy, port list and resource
knob clamping. Runs before any network activity.
"""

import ipaddress
import logging
import re
from typing import Any, List, Optional

from .errors import ForbiddenTarget, InvalidHost, MissingPorts
from .models import ScanTarget
from .scan_config import ScanConfig, get_scan_config

logger = logging.getLogger(__name__)

MIN_PORT = 1
MAX_PORT = 65535

IP_PATTERN = re.compile(
    r"^(?:(?:25[0-5]|2[0-4][0-9]|1[0-9][0-9]|[1-9]?[0-9])\.){3}"
    r"(?:25[0-5]|2[0-4][0-9]|1[0-9][0-9]|[1-9]?[0-9])$"
)
DOMAIN_PATTERN = re.compile(
    r"^(?:[a-z0-9](?:[a-z0-9-]{0,61}[a-z0-9])?\.)+[a-z]{2,63}$"
)
PORT_PATTERN = re.compile(r"^[0-9]{1,5}$")


def is_ipv4(host: str) -> bool:
    return bool(IP_PATTERN.match(host))


def is_forbidden_host(host: str) -> bool:
    """Loopback names and addresses, plus the unspecified address."""
    if host == "localhost" or host.endswith(".localhost"):
        return True
    try:
        addr = ipaddress.ip_address(host)
    except ValueError:
        return False
    return addr.is_loopback or addr.is_unspecified


def validate_host(raw_host: Any) -> str:
    if not isinstance(raw_host, str) or not raw_host.strip():
        raise InvalidHost("Host is required")

    host = raw_host.strip().lower()
    if is_forbidden_host(host):
        raise ForbiddenTarget(f"Scanning {host} is not allowed")

    if is_ipv4(host):
        return host
    if len(host) <= 253 and DOMAIN_PATTERN.match(host):
        return host
    raise InvalidHost(f"Invalid IP or domain format: {raw_host!r}")


def _coerce_port(value: Any) -> Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        port = value
    elif isinstance(value, str) and PORT_PATTERN.match(value.strip()):
        port = int(value.strip())
    else:
        return None
    if MIN_PORT <= port <= MAX_PORT:
        return port
    return None


def validate_ports(raw_ports: Any) -> List[int]:
    if not isinstance(raw_ports, (list, tuple)) or not raw_ports:
        raise MissingPorts("A non-empty list of ports is required")

    ports = []
    for value in raw_ports:
        port = _coerce_port(value)
        if port is None:
            logger.warning(f"Dropping invalid port entry: {value!r}")
            continue
        ports.append(port)

    if not ports:
        raise MissingPorts(f"No valid ports in range {MIN_PORT}-{MAX_PORT}")
    return ports


def _coerce_knob(value: Any, default: int) -> int:
    if value is None or isinstance(value, bool):
        return default
    try:
        return int(value)
    except (TypeError, ValueError, OverflowError):
        logger.debug(f"Ignoring non-numeric value {value!r}, using {default}")
        return default


def validate(raw_host: Any,
             raw_ports: Any,
             raw_timeout: Any = None,
             raw_concurrency: Any = None,
             config: Optional[ScanConfig] = None) -> ScanTarget:
    """Turn raw request fields into a ScanTarget or raise a ValidationError.

    Malformed host or port fields are rejected. Resource knobs are clamped
    silently and an oversized port list is truncated; the number of dropped
    ports travels with the target as ``truncated_count``.
    """
    config = config or get_scan_config()

    host = validate_host(raw_host)
    ports = validate_ports(raw_ports)

    truncated = max(0, len(ports) - config.max_ports)
    if truncated:
        logger.info(f"Truncating port list for {host}: {len(ports)} -> {config.max_ports}")
        ports = ports[:config.max_ports]

    requested_timeout = _coerce_knob(raw_timeout, config.default_timeout_ms)
    timeout_ms = config.clamp_timeout(requested_timeout)
    if timeout_ms != requested_timeout:
        logger.debug(f"Clamped timeout {requested_timeout}ms -> {timeout_ms}ms")

    requested_concurrency = _coerce_knob(raw_concurrency, config.default_concurrency)
    max_concurrency = config.clamp_concurrency(requested_concurrency)
    if max_concurrency != requested_concurrency:
        logger.debug(f"Clamped concurrency {requested_concurrency} -> {max_concurrency}")

    return ScanTarget(
        host=host,
        ports=tuple(ports),
        timeout_ms=timeout_ms,
        max_concurrency=max_concurrency,
        truncated_count=truncated,
    )
