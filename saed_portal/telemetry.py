"""Structured telemetry events for session, directory and mutation activity.

Every event is logged as one ``TELEMETRY {json}`` line on the
``saed_portal.telemetry`` logger and handed to in-process listeners, which is
how the tests observe boot outcomes, reconcile attempts and mutation results.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from threading import RLock
from typing import Any, Callable, Dict, FrozenSet, List, Mapping

logger = logging.getLogger("saed_portal.telemetry")

PORTAL_EVENTS: FrozenSet[str] = frozenset(
    {
        "session_boot",
        "profile_reconciled",
        "directory_refreshed",
        "status_mutation",
        "auth_action",
        "route_resolved",
    }
)

# Chatty events that are logged at DEBUG instead of INFO.
_QUIET_EVENTS: FrozenSet[str] = frozenset({"route_resolved"})


@dataclass(frozen=True)
class TelemetryEvent:
    name: str
    payload: Dict[str, Any]


Listener = Callable[[TelemetryEvent], None]

_listeners: List[Listener] = []
_lock = RLock()


def register_listener(listener: Listener) -> Callable[[], None]:
    """Register an in-process listener and return a callable that removes it."""
    with _lock:
        _listeners.append(listener)

    def _remove() -> None:
        with _lock:
            if listener in _listeners:
                _listeners.remove(listener)

    return _remove


def clear_listeners() -> None:
    with _lock:
        _listeners.clear()


def emit_event(name: str, **fields: Any) -> TelemetryEvent:
    if name not in PORTAL_EVENTS:
        logger.debug("Emitting unregistered telemetry event %s", name)
    event = TelemetryEvent(name=name, payload=_sanitize(fields))

    with _lock:
        listeners = list(_listeners)
    for listener in listeners:
        try:
            listener(event)
        except Exception:  # noqa: BLE001
            logger.exception("Telemetry listener failed for %s", name)

    level = logging.DEBUG if name in _QUIET_EVENTS else logging.INFO
    if logger.isEnabledFor(level):
        logger.log(level, "TELEMETRY %s", json.dumps({"event": name, **event.payload}, default=str))
    return event


def _sanitize(value: Any) -> Any:
    # Payloads must be JSON friendly and detached from live state objects.
    if isinstance(value, Mapping):
        return {str(key): _sanitize(item) for key, item in value.items()}
    if isinstance(value, (list, tuple, set, frozenset)):
        return [_sanitize(item) for item in value]
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, Enum):
        return value.value
    return value


__all__ = [
    "PORTAL_EVENTS",
    "TelemetryEvent",
    "clear_listeners",
    "emit_event",
    "register_listener",
]
