"""Status changes and profile writes, followed by a directory refresh."""

from __future__ import annotations

import logging
from typing import Any, Dict, FrozenSet, List, Mapping, Optional, Tuple

from .directory import DirectoryCache
from .errors import IllegalTransition, MutationFault, is_relation_missing
from .gateway import BackendGateway
from .models import (
    ApprovalStatus,
    InstructorRecord,
    ProfileRecord,
    RegistrationStatus,
    UnifiedUserRecord,
    UserRole,
    instructor_payload,
    merge_user_record,
    normalize_keys,
    profile_payload,
)
from .reconciler import fetch_registrations
from .router import HashRouter
from .state import AppState
from .telemetry import emit_event

logger = logging.getLogger(__name__)

DEMO_NOTICE = "Demo Mode: Simulated Update"

REGISTRATION_TRANSITIONS: FrozenSet[Tuple[RegistrationStatus, RegistrationStatus]] = frozenset(
    {
        ("PENDING", "ACCEPTED"),
        ("PENDING", "REJECTED"),
        ("ACCEPTED", "COMPLETED"),
        # Undo of a completion.
        ("COMPLETED", "ACCEPTED"),
    }
)


def allowed_transitions(current: RegistrationStatus) -> List[RegistrationStatus]:
    return sorted(target for source, target in REGISTRATION_TRANSITIONS if source == current)


def check_transition(current: RegistrationStatus, target: RegistrationStatus) -> None:
    if (current, target) not in REGISTRATION_TRANSITIONS:
        raise IllegalTransition(f"Registration cannot move from {current} to {target}.")


async def sync_user_profile(gateway: BackendGateway, user_id: str, role: UserRole, data: Mapping[str, Any]) -> bool:
    """Upsert the profile row and, for instructors, the extension row.

    Returns ``False`` when the tables are missing (logged, not raised); any
    other backend error propagates.
    """
    try:
        await gateway.upsert_row("profiles", profile_payload(user_id, role, dict(data)))
        if role == "INSTRUCTOR":
            await gateway.upsert_row("instructors", instructor_payload(user_id, dict(data)))
    except Exception as exc:  # noqa: BLE001
        if is_relation_missing(exc):
            logger.warning("Schema missing; profile sync for %s skipped: %s", user_id, exc)
            return False
        logger.error("Profile sync failed for %s: %s", user_id, exc)
        raise
    return True


class StatusMutationGateway:
    """Writes status and profile changes, then refreshes the caches and re-renders."""

    def __init__(self, gateway: BackendGateway, state: AppState, directory: DirectoryCache, router: HashRouter) -> None:
        self._gateway = gateway
        self._state = state
        self._directory = directory
        self._router = router

    def _demo_noop(self) -> bool:
        if self._state.session.is_demo:
            self._state.notify(DEMO_NOTICE)
            return True
        return False

    async def set_registration_status(self, registration_id: str, status: RegistrationStatus) -> bool:
        """Apply a registration transition. Returns ``True`` once the write is durable."""
        if self._demo_noop():
            return False
        current = next((reg for reg in self._state.registrations if reg.id == registration_id), None)
        if current is None:
            raise LookupError(f"Registration '{registration_id}' is not loaded for this session.")
        check_transition(current.status, status)

        try:
            await self._gateway.update_row("registrations", {"id": registration_id}, {"status": status})
        except Exception as exc:  # noqa: BLE001
            if is_relation_missing(exc):
                logger.warning("Registrations table missing; status update for %s not applied", registration_id)
                emit_event("status_mutation", kind="registration", id=registration_id, status=status, outcome="skipped")
                return False
            emit_event("status_mutation", kind="registration", id=registration_id, status=status, outcome="failed")
            self._state.notify(f"Status update failed: {exc}")
            raise MutationFault(f"Status update failed: {exc}") from exc

        emit_event("status_mutation", kind="registration", id=registration_id, status=status, outcome="applied")
        await self._refresh_registrations()
        await self._directory.refresh()
        self._router.render()
        return True

    async def set_user_status(self, role: UserRole, user_id: str, status: ApprovalStatus) -> bool:
        """Approve or reject a user. Instructors are written to both tables; no rollback."""
        if self._demo_noop():
            return False

        completed: List[str] = []
        try:
            await self._gateway.update_row("profiles", {"id": user_id}, {"status": status})
            completed.append("profiles")
            if role == "INSTRUCTOR":
                await self._gateway.update_row("instructors", {"id": user_id}, {"status": status})
                completed.append("instructors")
        except Exception as exc:  # noqa: BLE001
            logger.error("Updating %s %s to %s failed after %s: %s", role, user_id, status, completed or "no writes", exc)
            emit_event(
                "status_mutation",
                kind="user",
                id=user_id,
                role=role,
                status=status,
                outcome="partial" if completed else "failed",
            )
            message = f"Update Failed: {exc}"
            if completed:
                message = f"Update Failed: {role.lower()} record not updated after profile changed ({exc})"
            self._state.notify(message)
            if completed:
                # The profile row did change; show what the server now holds.
                await self._directory.refresh()
                self._router.render()
            raise MutationFault(message, completed_writes=completed) from exc

        emit_event("status_mutation", kind="user", id=user_id, role=role, status=status, outcome="applied")
        self._state.notify("Status updated.")
        await self._directory.refresh()
        self._router.render()
        return True

    async def update_own_profile(self, patch: Mapping[str, Any]) -> bool:
        """Sync edits to the signed-in instructor's own profile."""
        session = self._state.session
        user = session.current_user
        if user is None or session.is_demo:
            self._state.notify(DEMO_NOTICE)
            return False

        merged: Dict[str, Any] = {**user.as_row(), **normalize_keys(dict(patch))}
        try:
            await sync_user_profile(self._gateway, user.id, user.role, merged)
        except Exception as exc:  # noqa: BLE001
            self._state.notify(f"Sync Failed: {exc}")
            raise MutationFault(f"Sync Failed: {exc}", completed_writes=[]) from exc

        profile = ProfileRecord.model_validate({**user.profile.model_dump(), **merged, "role": user.role})
        instructor: Optional[InstructorRecord] = None
        if user.role == "INSTRUCTOR":
            instructor = InstructorRecord.model_validate({**instructor_payload(user.id, merged), **_extension_extras(user)})
        if session.current_user is not None and session.current_user.id == user.id:
            session.set_identity(merge_user_record(profile, instructor))
        self._state.notify("Profile Synced")
        self._router.render()
        return True

    async def _refresh_registrations(self) -> None:
        user = self._state.session.current_user
        if user is None:
            return
        epoch = self._state.session.epoch
        registrations = await fetch_registrations(self._gateway, user.id, user.role)
        if self._state.session.epoch == epoch:
            self._state.registrations = registrations


def _extension_extras(user: UnifiedUserRecord) -> Dict[str, Any]:
    if user.instructor is None:
        return {}
    return {
        "rating": user.instructor.rating,
        "review_count": user.instructor.review_count,
        "verified": user.instructor.verified,
    }


__all__ = [
    "DEMO_NOTICE",
    "REGISTRATION_TRANSITIONS",
    "StatusMutationGateway",
    "allowed_transitions",
    "check_transition",
    "sync_user_profile",
]
