"""Profile reconciliation: resolve a user id into the signed-in identity."""

from __future__ import annotations

import logging
from typing import List, Optional

from pydantic import ValidationError

from .directory import DirectoryCache
from .errors import SchemaFault, is_network_error, is_relation_missing
from .gateway import BackendGateway
from .models import (
    InstructorRecord,
    ProfileRecord,
    Registration,
    UnifiedUserRecord,
    UserRole,
    merge_user_record,
    parse_rows,
)
from .retry import RetryPolicy
from .state import AppState
from .telemetry import emit_event

logger = logging.getLogger(__name__)


async def fetch_registrations(gateway: BackendGateway, user_id: str, role: UserRole) -> List[Registration]:
    """Registrations visible to ``user_id``: their own as corper or as instructor, none otherwise."""
    if not user_id:
        return []
    if role == "CORPER":
        filters = {"corper_id": user_id}
    elif role == "INSTRUCTOR":
        filters = {"instructor_id": user_id}
    else:
        return []
    try:
        rows = await gateway.get_rows("registrations", filters, order="date", descending=True)
    except Exception as exc:  # noqa: BLE001
        logger.warning("Registration fetch failed for %s: %s", user_id, exc)
        return []
    return parse_rows(Registration, rows, label="registration")


class ProfileReconciler:
    """Merge the generic profile with the role extension into ``AppState.session``.

    Never raises: the outcome is either a record, ``None`` with no fault (no
    row appeared within the retry window), or ``None`` with the schema or
    connectivity flag set on the session.
    """

    def __init__(
        self,
        gateway: BackendGateway,
        state: AppState,
        directory: DirectoryCache,
        *,
        retry_policy: Optional[RetryPolicy] = None,
    ) -> None:
        self._gateway = gateway
        self._state = state
        self._directory = directory
        self._retry = retry_policy or RetryPolicy()

    async def _fetch_profile(self, user_id: str) -> Optional[ProfileRecord]:
        try:
            row = await self._gateway.get_row("profiles", {"id": user_id})
        except Exception as exc:  # noqa: BLE001
            if is_relation_missing(exc):
                raise SchemaFault(str(exc)) from exc
            if is_network_error(exc):
                raise
            logger.warning("Profile fetch for %s failed, will retry: %s", user_id, exc)
            return None
        if row is None:
            return None
        profile = ProfileRecord.model_validate(row)
        if profile.id != user_id:
            logger.warning("Backend returned profile %s when asked for %s", profile.id, user_id)
            return None
        return profile

    async def _fetch_instructor(self, user_id: str) -> Optional[InstructorRecord]:
        try:
            row = await self._gateway.get_row("instructors", {"id": user_id})
        except Exception as exc:  # noqa: BLE001
            if is_network_error(exc):
                raise
            logger.warning("Instructor extension fetch failed for %s: %s", user_id, exc)
            return None
        return InstructorRecord.model_validate(row) if row else None

    async def reconcile(self, user_id: str) -> Optional[UnifiedUserRecord]:
        session = self._state.session
        session.is_syncing = True
        session.connectivity_fault = False
        epoch = session.epoch
        attempts = 0
        role: Optional[UserRole] = None
        outcome = "missing"
        try:

            async def _attempt(number: int) -> Optional[ProfileRecord]:
                nonlocal attempts
                attempts = number
                return await self._fetch_profile(user_id)

            result = await self._retry.run(_attempt)
            profile = result.value
            if profile is None:
                logger.info("No profile row for %s after %s attempts", user_id, attempts)
                return None

            role = profile.role
            instructor = await self._fetch_instructor(user_id) if profile.role == "INSTRUCTOR" else None
            user = merge_user_record(profile, instructor)
            if session.epoch != epoch:
                outcome = "superseded"
                logger.info("Dropping reconciled profile for %s; identity changed meanwhile", user_id)
                return None

            session.set_identity(user)
            outcome = "resolved"
            await self._load_dependents(user)
            return user
        except SchemaFault as exc:
            outcome = "schema_fault"
            logger.error("Profile tables missing while reconciling %s: %s", user_id, exc)
            session.mark_schema_fault()
            return None
        except ValidationError as exc:
            outcome = "invalid"
            logger.warning("Profile row for %s could not be parsed: %s", user_id, exc)
            return None
        except Exception as exc:  # noqa: BLE001
            if is_network_error(exc):
                outcome = "connectivity_fault"
                logger.error("Backend unreachable while reconciling %s: %s", user_id, exc)
                session.mark_connectivity_fault()
            else:
                outcome = "error"
                logger.warning("Profile reconciliation failed for %s: %s", user_id, exc)
            return None
        finally:
            session.is_syncing = False
            emit_event("profile_reconciled", user_id=user_id, role=role, attempts=attempts, outcome=outcome)

    async def _load_dependents(self, user: UnifiedUserRecord) -> None:
        # Identity is already committed; these are best-effort.
        epoch = self._state.session.epoch
        try:
            registrations = await fetch_registrations(self._gateway, user.id, user.role)
            if self._state.session.epoch == epoch:
                self._state.registrations = registrations
        except Exception as exc:  # noqa: BLE001
            logger.warning("Registration load failed for %s: %s", user.id, exc)
        try:
            await self._directory.refresh()
        except Exception as exc:  # noqa: BLE001
            logger.warning("Directory refresh after reconcile failed: %s", exc)


__all__ = ["ProfileReconciler", "fetch_registrations"]
