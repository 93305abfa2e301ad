"""
Core modules for PortScope: data model, validation, aggregation and config.
"""

from .models import (
    PortOutcome,
    PortState,
    ScanReport,
    ScanTarget
)
from .errors import (
    ForbiddenTarget,
    InvalidHost,
    MissingPorts,
    ScanError,
    ScanInternalError,
    ValidationError
)
from .validator import validate
from .aggregator import aggregate

__all__ = [
    'PortOutcome',
    'PortState',
    'ScanReport',
    'ScanTarget',
    'ForbiddenTarget',
    'InvalidHost',
    'MissingPorts',
    'ScanError',
    'ScanInternalError',
    'ValidationError',
    'validate',
    'aggregate'
]
