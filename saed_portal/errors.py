"""Error taxonomy shared by the portal components."""

from __future__ import annotations

from typing import List, Optional

RELATION_MISSING_CODES = frozenset({"42P01", "PGRST205", "PGRST301"})
_RELATION_MISSING_MARKERS = ("relation", "does not exist", "querying schema")
_NETWORK_MARKERS = ("fetch", "network", "connect", "timed out", "unreachable")


class PortalError(RuntimeError):
    """Base class for portal failures."""


class BackendError(PortalError):
    """Error reported by the hosted backend or the transport in front of it."""

    def __init__(self, message: str, *, code: Optional[str] = None, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.message = message
        self.code = code
        self.status_code = status_code

    @property
    def is_relation_missing(self) -> bool:
        return is_relation_missing(self)

    @property
    def is_network(self) -> bool:
        return is_network_error(self)


class SchemaFault(PortalError):
    """Backend reachable but a required table is missing."""


class ConnectivityFault(PortalError):
    """Backend unreachable."""


class ValidationFault(PortalError):
    """Caller-supplied data rejected before any backend call."""

    def __init__(self, field: str, message: str) -> None:
        super().__init__(message)
        self.field = field
        self.message = message


class MutationFault(PortalError):
    """A multi-write mutation stopped part way through."""

    def __init__(self, message: str, *, completed_writes: Optional[List[str]] = None) -> None:
        super().__init__(message)
        self.message = message
        self.completed_writes = list(completed_writes or [])


class IllegalTransition(PortalError):
    """Requested registration status change is not offered by any action."""


class AuthError(PortalError):
    """Sign-in, sign-up or sign-out rejected by the backend."""


def _error_text(error: BaseException) -> str:
    message = getattr(error, "message", None)
    if not isinstance(message, str):
        message = str(error)
    return message.lower()


def is_relation_missing(error: Optional[BaseException]) -> bool:
    if error is None:
        return False
    if isinstance(error, SchemaFault):
        return True
    code = getattr(error, "code", None)
    if code in RELATION_MISSING_CODES:
        return True
    text = _error_text(error)
    return any(marker in text for marker in _RELATION_MISSING_MARKERS)


def is_network_error(error: Optional[BaseException]) -> bool:
    if error is None:
        return False
    if isinstance(error, ConnectivityFault):
        return True
    if getattr(error, "code", None) == "network":
        return True
    text = _error_text(error)
    return any(marker in text for marker in _NETWORK_MARKERS)


__all__ = [
    "AuthError",
    "BackendError",
    "ConnectivityFault",
    "IllegalTransition",
    "MutationFault",
    "PortalError",
    "RELATION_MISSING_CODES",
    "SchemaFault",
    "ValidationFault",
    "is_network_error",
    "is_relation_missing",
]
