import asyncio
import logging
import math
from typing import Dict, List, Optional

from ..core.errors import ForbiddenTarget, ScanInternalError
from ..core.models import PortOutcome, PortState, ScanTarget
from ..core.scan_config import ScanConfig, get_scan_config
from ..core.validator import is_forbidden_host
from . import service_catalog
from .host_resolver import HostResolver
from .port_probe import PortProbe

logger = logging.getLogger(__name__)


class ScanScheduler:
    """Fans a target's ports out to a bounded pool of concurrent probes.

    Two admission modes are supported. ``window`` (default) admits a new
    probe the moment one settles, so the pool stays saturated. ``batch``
    runs groups of ``max_concurrency`` probes and waits for each whole
    group, pausing ``batch_pause_ms`` between groups.

    A scan-wide deadline bounds the whole run, DNS resolution included.
    Probes still unsettled when it expires are cancelled and reported as
    Filtered with reason ``deadline``. A name that resolves to a forbidden
    address raises ForbiddenTarget before any probe is sent.
    """

    def __init__(self, probe: PortProbe, config: Optional[ScanConfig] = None,
                 resolver: Optional[HostResolver] = None):
        self.probe = probe
        self.config = config or get_scan_config()
        self.resolver = resolver or HostResolver()
        self.in_flight = 0
        self.peak_in_flight = 0

    def scan_budget(self, target: ScanTarget) -> float:
        """Wall-clock seconds allowed for the whole scan."""
        waves = math.ceil(len(target.ports) / target.max_concurrency)
        per_probe_ms = self.probe.max_duration_ms(target.timeout_ms)
        if self.config.schedule == "batch":
            per_probe_ms += self.config.batch_pause_ms
        budget = (waves * per_probe_ms + self.config.deadline_grace_ms) / 1000.0
        return min(budget, float(self.config.scan_timeout))

    async def scan(self, target: ScanTarget) -> List[PortOutcome]:
        """Probe every port of ``target``; one outcome per input port, input order."""
        self.in_flight = 0
        self.peak_in_flight = 0

        loop = asyncio.get_running_loop()
        budget = self.scan_budget(target)
        deadline = loop.time() + budget

        try:
            address = await asyncio.wait_for(self.resolver.resolve(target.host), timeout=budget)
        except asyncio.TimeoutError:
            logger.warning(f"Resolving {target.host} used up the {budget:.1f}s scan budget")
            address = None
        finally:
            await self.resolver.close()
        if address is None:
            logger.warning(f"Could not resolve {target.host}; reporting all ports as filtered")
            return [self._filtered(port, "dns-failure") for port in target.ports]
        if address != target.host:
            logger.info(f"Resolved {target.host} -> {address}")
            if is_forbidden_host(address):
                raise ForbiddenTarget(f"{target.host} resolves to {address}, which is not allowed")

        results: Dict[int, PortOutcome] = {}
        remaining = max(0.0, deadline - loop.time())
        logger.info(
            f"Scanning {target.host} ({len(target.ports)} ports, concurrency={target.max_concurrency}, "
            f"timeout={target.timeout_ms}ms, budget={budget:.1f}s, mode={self.config.schedule})"
        )

        if self.config.schedule == "batch":
            runner = self._run_batches(address, target, results)
        else:
            runner = self._run_window(address, target, results)

        try:
            await asyncio.wait_for(runner, timeout=remaining)
        except asyncio.TimeoutError:
            logger.warning(
                f"Scan of {target.host} hit its {budget:.1f}s deadline with "
                f"{len(target.ports) - len(results)} probes unsettled"
            )
        except ScanInternalError:
            raise
        except Exception as e:
            logger.error(f"Scan of {target.host} aborted: {e}")
            raise ScanInternalError(f"Scan aborted: {e}") from e

        return [
            results[index] if index in results else self._filtered(port, "deadline")
            for index, port in enumerate(target.ports)
        ]

    async def _run_window(self, address: str, target: ScanTarget, results: Dict[int, PortOutcome]) -> None:
        semaphore = asyncio.Semaphore(target.max_concurrency)

        async def admit(index: int, port: int) -> None:
            async with semaphore:
                await self._probe_one(address, target, index, port, results)

        tasks = [asyncio.create_task(admit(i, p)) for i, p in enumerate(target.ports)]
        await self._join(tasks)

    async def _run_batches(self, address: str, target: ScanTarget, results: Dict[int, PortOutcome]) -> None:
        indexed = list(enumerate(target.ports))
        size = target.max_concurrency
        for start in range(0, len(indexed), size):
            batch = indexed[start:start + size]
            tasks = [asyncio.create_task(self._probe_one(address, target, i, p, results)) for i, p in batch]
            await self._join(tasks)
            if start + size < len(indexed) and self.config.batch_pause_ms:
                await asyncio.sleep(self.config.batch_pause_ms / 1000.0)

    async def _join(self, tasks: List[asyncio.Task]) -> None:
        """Wait for every task; cancel the rest if we are cancelled or one fails."""
        try:
            await asyncio.gather(*tasks)
        finally:
            for task in tasks:
                if not task.done():
                    task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)

    async def _probe_one(self, address: str, target: ScanTarget, index: int, port: int,
                         results: Dict[int, PortOutcome]) -> None:
        self.in_flight += 1
        try:
            if self.in_flight > target.max_concurrency:
                raise ScanInternalError("More probes in flight than the concurrency limit allows")
            self.peak_in_flight = max(self.peak_in_flight, self.in_flight)
            outcome = await self.probe.probe(address, port, target.timeout_ms, server_name=target.host)
        finally:
            self.in_flight -= 1

        if not isinstance(outcome, PortOutcome) or outcome.port != port:
            raise ScanInternalError(f"Probe returned an invalid outcome for port {port}: {outcome!r}")
        results[index] = outcome

    def _filtered(self, port: int, reason: str) -> PortOutcome:
        return PortOutcome(
            port=port,
            state=PortState.FILTERED,
            service=service_catalog.lookup(port),
            reason=reason,
        )
