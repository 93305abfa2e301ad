import logging
from collections import defaultdict, deque
from datetime import datetime
from typing import Deque, Dict, Iterable, List, Optional

from .models import PortOutcome, PortState, ScanReport, ScanTarget, utcnow
from ..scanner import service_catalog

logger = logging.getLogger(__name__)


def aggregate(target: ScanTarget,
              outcomes: Iterable[PortOutcome],
              strategy: str = "connect",
              started_at: Optional[datetime] = None,
              duration_seconds: float = 0.0) -> ScanReport:
    """Build the input-ordered report for ``target`` from raw probe outcomes.

    Outcomes may arrive in any order. Duplicate ports in the request are
    matched to outcomes for that port in turn. A requested port with no
    outcome gets a Filtered placeholder; outcomes for ports that were not
    requested are dropped.
    """
    by_port: Dict[int, Deque[PortOutcome]] = defaultdict(deque)
    for outcome in outcomes:
        by_port[outcome.port].append(outcome)

    ordered: List[PortOutcome] = []
    for port in target.ports:
        pending = by_port.get(port)
        if pending:
            ordered.append(pending.popleft())
        else:
            logger.warning(f"No outcome for {target.host}:{port}; recording it as filtered")
            ordered.append(PortOutcome(
                port=port,
                state=PortState.FILTERED,
                service=service_catalog.lookup(port),
                reason="missing",
            ))

    leftovers = sum(len(q) for q in by_port.values())
    if leftovers:
        logger.warning(f"Ignoring {leftovers} outcomes for ports not requested on {target.host}")

    counts = {state: 0 for state in PortState}
    for outcome in ordered:
        counts[outcome.state] += 1

    return ScanReport(
        host=target.host,
        outcomes=ordered,
        open_count=counts[PortState.OPEN],
        closed_count=counts[PortState.CLOSED],
        filtered_count=counts[PortState.FILTERED],
        total_scanned=len(ordered),
        truncated_count=target.truncated_count,
        abandoned_count=sum(1 for o in ordered if o.reason == "deadline"),
        strategy=strategy,
        started_at=started_at or utcnow(),
        duration_seconds=duration_seconds,
    )
