"""
Error taxonomy for scan requests.

Validation errors are raised before any network activity. Per-port
transport failures are never raised; they are folded into PortState.
"""

from typing import Any, Dict


class ScanError(Exception):
    """Base class for errors surfaced to scan callers."""

    kind = "ScanError"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> Dict[str, Any]:
        return {'kind': self.kind, 'message': self.message}


class ValidationError(ScanError):
    """Caller mistake detected before scheduling."""

    kind = "ValidationError"


class InvalidHost(ValidationError):
    kind = "InvalidHost"


class ForbiddenTarget(ValidationError):
    kind = "ForbiddenTarget"


class MissingPorts(ValidationError):
    kind = "MissingPorts"


class ScanInternalError(ScanError):
    """The scan machinery itself failed; the whole scan is aborted."""

    kind = "ScanInternalError"
