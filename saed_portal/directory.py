"""Process-wide directory of instructors, corpers, staff and admins."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Dict, List, Literal, Optional, Sequence, Tuple, TypeVar

from .errors import is_network_error, is_relation_missing
from .gateway import BackendGateway
from .models import InstructorRecord, ProfileRecord, UserRole, parse_rows
from .sample_data import SampleDirectoryProvider, approved_samples, default_sample_instructors
from .state import AppState
from .telemetry import emit_event

logger = logging.getLogger(__name__)

Collection = Literal["instructors", "corpers", "staff", "admins"]
FaultKind = Literal["schema", "connectivity", "error"]

T = TypeVar("T")

_ROLE_COLLECTIONS: Tuple[Tuple[Collection, UserRole], ...] = (
    ("corpers", "CORPER"),
    ("staff", "STAFF"),
    ("admins", "ADMIN"),
)


@dataclass
class FetchResult:
    records: List = field(default_factory=list)
    fault: Optional[FaultKind] = None


@dataclass
class RefreshReport:
    updated: List[Collection] = field(default_factory=list)
    kept: List[Collection] = field(default_factory=list)
    faults: Dict[Collection, FaultKind] = field(default_factory=dict)


def keep_or_replace(current: Sequence[T], fresh: Sequence[T]) -> List[T]:
    """Replace ``current`` wholesale with ``fresh`` unless the fetch came back empty."""
    if fresh:
        return list(fresh)
    return list(current)


def _classify(exc: Exception) -> FaultKind:
    if is_relation_missing(exc):
        return "schema"
    if is_network_error(exc):
        return "connectivity"
    return "error"


def _dedupe_by_id(records: List[T]) -> List[T]:
    seen: Dict[str, T] = {}
    for record in records:
        seen.setdefault(getattr(record, "id"), record)
    return list(seen.values())


class DirectoryCache:
    """Best-effort loader for the four directory collections held in ``AppState``."""

    def __init__(
        self,
        gateway: BackendGateway,
        state: AppState,
        *,
        sample_provider: SampleDirectoryProvider = default_sample_instructors,
        use_samples: bool = True,
    ) -> None:
        self._gateway = gateway
        self._state = state
        self._sample_provider = sample_provider
        self._use_samples = use_samples

    async def fetch_instructors(self, *, approved_only: bool = False) -> FetchResult:
        filters = {"status": "APPROVED"} if approved_only else None
        try:
            rows = await self._gateway.get_rows("instructors", filters)
        except Exception as exc:  # noqa: BLE001
            fault = _classify(exc)
            logger.warning("Instructor fetch failed (%s): %s", fault, exc)
            return FetchResult(fault=fault)
        return FetchResult(records=_dedupe_by_id(parse_rows(InstructorRecord, rows, label="instructor")))

    async def fetch_users_by_role(self, role: UserRole) -> FetchResult:
        try:
            rows = await self._gateway.get_rows("profiles", {"role": role})
        except Exception as exc:  # noqa: BLE001
            fault = _classify(exc)
            logger.warning("Profile fetch for role %s failed (%s): %s", role, fault, exc)
            return FetchResult(fault=fault)
        return FetchResult(records=_dedupe_by_id(parse_rows(ProfileRecord, rows, label=f"{role} profile")))

    async def refresh(self) -> RefreshReport:
        """Reload all collections concurrently; never raises."""
        report = RefreshReport()
        try:
            results = await asyncio.gather(
                self.fetch_instructors(),
                *(self.fetch_users_by_role(role) for _, role in _ROLE_COLLECTIONS),
            )
        except Exception:  # noqa: BLE001
            logger.exception("Directory refresh failed")
            return report

        names: List[Collection] = ["instructors", *(name for name, _ in _ROLE_COLLECTIONS)]
        for name, result in zip(names, results):
            self._apply(name, result, report)

        emit_event(
            "directory_refreshed",
            updated=list(report.updated),
            kept=list(report.kept),
            faults=dict(report.faults),
        )
        return report

    def _apply(self, name: Collection, result: FetchResult, report: RefreshReport) -> None:
        directory = self._state.directory
        current = getattr(directory, name)
        if result.fault is not None:
            report.faults[name] = result.fault
        if result.records:
            setattr(directory, name, keep_or_replace(current, result.records))
            if name == "instructors":
                directory.instructors_are_sample = False
            report.updated.append(name)
        else:
            report.kept.append(name)

    async def load_public_directory(self) -> None:
        """Populate approved instructors at boot, falling back to the sample set.

        A full list already loaded by ``refresh()`` (every status, for the
        signed-in dashboards) is kept; the directory view filters it.
        """
        directory = self._state.directory
        if directory.instructors and not directory.instructors_are_sample:
            return
        result = await self.fetch_instructors(approved_only=True)
        if result.records:
            directory.instructors = result.records
            directory.instructors_are_sample = False
            return
        if self._use_samples and not directory.instructors:
            logger.info("Public directory unavailable (%s); using sample instructors", result.fault or "empty")
            self.load_samples()

    def load_samples(self) -> None:
        directory = self._state.directory
        directory.instructors = approved_samples(self._sample_provider)
        directory.instructors_are_sample = True

    async def load_admins(self) -> None:
        result = await self.fetch_users_by_role("ADMIN")
        directory = self._state.directory
        directory.admins = keep_or_replace(directory.admins, result.records)


__all__ = ["DirectoryCache", "FetchResult", "RefreshReport", "keep_or_replace"]
