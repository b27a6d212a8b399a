"""Session lifecycle: boot, auth events, user-initiated auth and demo entry."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, Dict, Literal, Mapping, Optional

from .directory import DirectoryCache
from .errors import ValidationFault
from .gateway import AuthEvent, AuthSession, BackendGateway
from .models import InstructorRecord, ProfileRecord, UnifiedUserRecord, UserRole, default_status_for, merge_user_record
from .mutations import sync_user_profile
from .reconciler import ProfileReconciler
from .router import DASHBOARD, HOME, HashRouter
from .state import AppState
from .telemetry import emit_event

logger = logging.getLogger(__name__)

AuthMode = Literal["LOGIN", "SIGNUP"]

DEMO_USER_ID = "demo"
CONFIRMATION_NOTICE = "Verification email sent. Please confirm your email."


def validate_credentials(data: Mapping[str, Any], *, min_password_length: int = 6) -> tuple[str, str]:
    """Return trimmed ``(email, password)`` or raise ``ValidationFault``."""
    email = str(data.get("email") or "").strip()
    password = str(data.get("password") or "").strip()
    if not email or "@" not in email:
        raise ValidationFault("email", "Enter a valid email address.")
    if len(password) < min_password_length:
        raise ValidationFault("password", f"Password must be at least {min_password_length} characters.")
    return email, password


class SessionController:
    def __init__(
        self,
        gateway: BackendGateway,
        state: AppState,
        reconciler: ProfileReconciler,
        directory: DirectoryCache,
        router: HashRouter,
        *,
        min_password_length: int = 6,
    ) -> None:
        self._gateway = gateway
        self._state = state
        self._reconciler = reconciler
        self._directory = directory
        self._router = router
        self._min_password_length = min_password_length
        self._boot_started = False
        self._auth_in_progress = False
        self._inflight: Optional[asyncio.Task[Optional[UnifiedUserRecord]]] = None
        self._inflight_user: Optional[str] = None
        self._unsubscribe: Optional[Callable[[], None]] = None

    @property
    def auth_in_progress(self) -> bool:
        return self._auth_in_progress

    def start(self) -> None:
        """Subscribe to the backend auth event stream."""
        if self._unsubscribe is None:
            self._unsubscribe = self._gateway.subscribe_auth_events(self.handle_auth_event)

    def stop(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    async def _reconcile(self, user_id: str) -> Optional[UnifiedUserRecord]:
        # Single flight per user id: a second caller awaits the running task.
        if self._inflight is not None and not self._inflight.done() and self._inflight_user == user_id:
            return await asyncio.shield(self._inflight)
        task = asyncio.ensure_future(self._reconciler.reconcile(user_id))
        self._inflight, self._inflight_user = task, user_id
        try:
            return await asyncio.shield(task)
        finally:
            if self._inflight is task and task.done():
                self._inflight, self._inflight_user = None, None

    async def boot(self) -> None:
        if self._boot_started:
            return
        self._boot_started = True
        session = self._state.session
        session.is_loading = True
        outcome = "guest"
        try:
            health = await self._gateway.check_health()
            if not health.ok:
                logger.error("Backend unreachable at boot: %s", health.message)
                session.mark_connectivity_fault()
                outcome = "connectivity_fault"
                return

            auth_session = await self._gateway.get_session()
            if auth_session is not None:
                user = await self._reconcile(auth_session.user_id)
                if user is not None:
                    outcome = "authenticated"
                elif session.schema_fault:
                    outcome = "schema_fault"
                elif session.connectivity_fault:
                    outcome = "connectivity_fault"
                else:
                    logger.warning("Session for %s has no resolvable profile; continuing as guest", auth_session.user_id)
                    session.reset_identity()
            else:
                session.reset_identity()

            await self._directory.load_public_directory()
            await self._directory.load_admins()
        except Exception as exc:  # noqa: BLE001
            logger.exception("Boot failed; falling back to demo directory: %s", exc)
            session.is_demo = True
            self._directory.load_samples()
            outcome = "demo_fallback"
        finally:
            session.is_loading = False
            emit_event("session_boot", outcome=outcome)
            self._router.render()

    async def retry(self) -> None:
        """Full reload after a connectivity or schema fault."""
        session = self._state.session
        session.clear_faults()
        session.is_demo = False
        session.reset_identity()
        self._state.registrations = []
        self._boot_started = False
        await self.boot()

    async def handle_auth_event(self, event: AuthEvent, auth_session: Optional[AuthSession]) -> None:
        if event == "SIGNED_OUT":
            self._state.session.reset_identity()
            self._state.registrations = []
            self._router.navigate(HOME)
            return
        if event == "SIGNED_IN" and auth_session is not None:
            if self._auth_in_progress:
                logger.debug("Ignoring SIGNED_IN for %s; auth action in flight", auth_session.user_id)
                return
            current = self._state.session.current_user
            if current is not None and current.id == auth_session.user_id and not self._state.session.is_demo:
                logger.debug("Ignoring SIGNED_IN for %s; identity already resolved", auth_session.user_id)
                return
            await self._reconcile(auth_session.user_id)
            self._router.render()

    async def authenticate(self, data: Mapping[str, Any], mode: AuthMode, role: UserRole) -> Optional[UnifiedUserRecord]:
        """Log in or sign up, then resolve the profile and open the dashboard.

        Validation problems raise ``ValidationFault`` before any backend call.
        Backend failures are posted as a notice and re-raised.
        """
        email, password = validate_credentials(data, min_password_length=self._min_password_length)
        self._auth_in_progress = True
        try:
            if mode == "LOGIN":
                await self._gateway.sign_in(email, password)
            else:
                result = await self._gateway.sign_up(email, password, {"name": data.get("name")})
                if result.user_id:
                    profile_data: Dict[str, Any] = {**dict(data), "email": email, "status": default_status_for(role)}
                    profile_data.pop("password", None)
                    await sync_user_profile(self._gateway, result.user_id, role, profile_data)
                    if result.needs_confirmation:
                        self._state.notify(CONFIRMATION_NOTICE)
                        self._router.navigate(HOME)
                        emit_event("auth_action", mode=mode, role=role, outcome="confirmation_required")
                        return None

            user: Optional[UnifiedUserRecord] = None
            auth_session = await self._gateway.get_session()
            if auth_session is not None:
                user = await self._reconcile(auth_session.user_id)
                self._router.navigate(DASHBOARD)
            emit_event("auth_action", mode=mode, role=role, outcome="success")
            return user
        except Exception as exc:  # noqa: BLE001
            emit_event("auth_action", mode=mode, role=role, outcome="failed")
            self._state.notify(f"Auth Error: {exc or 'Operation failed'}")
            raise
        finally:
            self._auth_in_progress = False

    async def login(self, email: str, password: str, role: UserRole) -> Optional[UnifiedUserRecord]:
        return await self.authenticate({"email": email, "password": password}, "LOGIN", role)

    async def signup(self, data: Mapping[str, Any], role: UserRole) -> Optional[UnifiedUserRecord]:
        return await self.authenticate(data, "SIGNUP", role)

    async def sign_out(self) -> None:
        if self._state.session.is_demo:
            self._state.session.is_demo = False
            self._state.session.reset_identity()
            self._state.registrations = []
            self._router.navigate(HOME)
            return
        await self._gateway.sign_out()

    def enter_demo(self, role: UserRole) -> UnifiedUserRecord:
        """Start a synthetic session; nothing afterwards touches the backend."""
        session = self._state.session
        session.is_demo = True
        session.epoch += 1
        profile = ProfileRecord(id=DEMO_USER_ID, name=f"Demo {role}", role=role, status="APPROVED")
        instructor = None
        if role == "INSTRUCTOR":
            instructor = InstructorRecord(id=DEMO_USER_ID, name=profile.name, status="APPROVED")
        user = merge_user_record(profile, instructor)
        session.set_identity(user)
        session.is_loading = False
        self._state.registrations = []
        emit_event("auth_action", mode="DEMO", role=role, outcome="success")
        self._router.navigate(DASHBOARD)
        return user


__all__ = ["AuthMode", "CONFIRMATION_NOTICE", "DEMO_USER_ID", "SessionController", "validate_credentials"]
