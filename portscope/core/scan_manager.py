# core/scan_manager.py

import asyncio
import logging
import time
from typing import Any, Dict, Optional

from .aggregator import aggregate
from .enhanced_logging import log_audit_event
from .errors import ScanInternalError, ValidationError
from .models import ScanReport, utcnow
from .scan_config import ScanConfig, get_scan_config
from .validator import validate
from ..scanner import ScanScheduler, build_probe, get_probe_registry, nmap_available
from ..scanner.port_probe import PortProbe

logger = logging.getLogger(__name__)


class ScanManager:
    """Request-in, report-out entry point used by the HTTP and CLI front ends.

    Holds no state between scans: each call validates, schedules and
    aggregates independently.
    """

    def __init__(self, config: Optional[ScanConfig] = None, probe: Optional[PortProbe] = None):
        self.config = config or get_scan_config()
        self.probe = probe or build_probe(config=self.config)

    async def run(self, host: Any, ports: Any, timeout_ms: Any = None,
                  max_concurrency: Any = None) -> ScanReport:
        """Validate, scan and aggregate. Raises ValidationError or ScanInternalError."""
        try:
            target = validate(host, ports, timeout_ms, max_concurrency, config=self.config)
        except ValidationError as e:
            logger.warning(f"Rejected scan request for {host!r}: {e.kind}: {e.message}")
            log_audit_event('scan_rejected', {'host': host, 'kind': e.kind, 'message': e.message})
            raise

        started_at = utcnow()
        start = time.perf_counter()
        scheduler = ScanScheduler(self.probe, config=self.config)
        try:
            outcomes = await scheduler.scan(target)
        except ValidationError as e:
            logger.warning(f"Rejected scan of {target.host}: {e.kind}: {e.message}")
            log_audit_event('scan_rejected', {'host': target.host, 'kind': e.kind, 'message': e.message})
            raise
        except ScanInternalError:
            log_audit_event('scan_failed', {'host': target.host, 'ports': len(target.ports)})
            raise
        except Exception as e:
            logger.error(f"Scan of {target.host} failed: {e}")
            log_audit_event('scan_failed', {'host': target.host, 'ports': len(target.ports)})
            raise ScanInternalError(f"Scan failed: {e}") from e

        report = aggregate(
            target,
            outcomes,
            strategy=self.probe.name,
            started_at=started_at,
            duration_seconds=time.perf_counter() - start,
        )
        logger.info(
            f"Scan of {report.host} completed: {report.open_count} open, {report.closed_count} closed, "
            f"{report.filtered_count} filtered in {report.duration_seconds:.2f}s"
        )
        log_audit_event('scan_completed', {
            'host': report.host,
            'total': report.total_scanned,
            'open': report.open_count,
            'truncated': report.truncated_count,
            'abandoned': report.abandoned_count,
            'peak_in_flight': scheduler.peak_in_flight,
        })
        return report

    def scan(self, host: Any, ports: Any, timeout_ms: Any = None,
             max_concurrency: Any = None) -> ScanReport:
        """Synchronous wrapper for callers without an event loop"""
        return asyncio.run(self.run(host, ports, timeout_ms, max_concurrency))

    def handle_request(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        """Map a request dict to the response dict of the external contract."""
        if not isinstance(payload, dict):
            payload = {}
        timeout_ms = payload.get('timeoutMillis', payload.get('timeout'))
        max_concurrency = payload.get('maxConcurrency', payload.get('maxConcurrent'))
        report = self.scan(payload.get('host'), payload.get('ports'), timeout_ms, max_concurrency)
        return report.to_response()

    def get_scan_stats(self) -> Dict[str, Any]:
        """Get scan capabilities and limits"""
        return {
            'strategy': self.probe.name,
            'strategies': sorted(get_probe_registry()),
            'nmap_available': nmap_available(),
            'schedule': self.config.schedule,
            'max_ports': self.config.max_ports,
            'max_concurrency': self.config.max_concurrency,
            'timeout_range_ms': [self.config.min_timeout_ms, self.config.max_timeout_ms],
            'default_timeout_ms': self.config.default_timeout_ms,
            'banner_timeout_ms': self.config.banner_timeout_ms,
            'scan_timeout': self.config.scan_timeout,
        }


# Global scan manager instance
_scan_manager: Optional[ScanManager] = None


def get_scan_manager() -> ScanManager:
    """Get or create global scan manager instance"""
    global _scan_manager
    if _scan_manager is None:
        _scan_manager = ScanManager()
    return _scan_manager
