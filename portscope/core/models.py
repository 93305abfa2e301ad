from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, model_validator


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class PortState(str, Enum):
    """Three-valued reachability of a single port."""
    OPEN = "open"
    CLOSED = "closed"
    FILTERED = "filtered"


class ScanTarget(BaseModel):
    """Validated scan request. Built by the validator, never mutated."""
    model_config = ConfigDict(frozen=True)

    host: str
    ports: Tuple[int, ...]
    timeout_ms: int = Field(gt=0)
    max_concurrency: int = Field(gt=0)
    truncated_count: int = Field(default=0, ge=0)


class PortOutcome(BaseModel):
    """Result of probing one port."""
    model_config = ConfigDict(frozen=True)

    port: int
    state: PortState
    service: str
    banner: Optional[str] = None
    observed_at: datetime = Field(default_factory=utcnow)
    # Transport cause behind the state, kept for diagnostics only
    reason: str = "connected"

    def to_response(self) -> Dict[str, Any]:
        data = {
            'port': self.port,
            'state': self.state.value,
            'service': self.service,
            'observedAt': self.observed_at.isoformat(),
        }
        if self.banner:
            data['banner'] = self.banner
        return data


class ScanReport(BaseModel):
    """Aggregated, input-ordered result of one scan."""
    model_config = ConfigDict(frozen=True)

    host: str
    outcomes: List[PortOutcome]
    open_count: int
    closed_count: int
    filtered_count: int
    total_scanned: int
    truncated_count: int = 0
    abandoned_count: int = 0
    strategy: str = "connect"
    started_at: datetime = Field(default_factory=utcnow)
    duration_seconds: float = 0.0

    @model_validator(mode='after')
    def _check_counts(self) -> 'ScanReport':
        if self.total_scanned != len(self.outcomes):
            raise ValueError("total_scanned does not match number of outcomes")
        if self.open_count + self.closed_count + self.filtered_count != self.total_scanned:
            raise ValueError("state counts do not add up to total_scanned")
        return self

    @property
    def open_ports(self) -> List[int]:
        return [o.port for o in self.outcomes if o.state is PortState.OPEN]

    def to_response(self) -> Dict[str, Any]:
        """Render the report using the external camelCase contract."""
        return {
            'host': self.host,
            'outcomes': [o.to_response() for o in self.outcomes],
            'totalScanned': self.total_scanned,
            'openCount': self.open_count,
            'closedCount': self.closed_count,
            'filteredCount': self.filtered_count,
            'truncatedCount': self.truncated_count,
            'abandonedCount': self.abandoned_count,
            'strategy': self.strategy,
            'durationSeconds': round(self.duration_seconds, 3),
        }
