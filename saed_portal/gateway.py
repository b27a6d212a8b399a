"""Hosted backend access: auth sessions, table rows and auth event fan-out."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Awaitable, Callable, Dict, List, Literal, Mapping, Optional, Protocol, Set

import httpx

from .config import Settings
from .errors import AuthError, BackendError, is_relation_missing

logger = logging.getLogger(__name__)

AuthEvent = Literal["SIGNED_IN", "SIGNED_OUT"]
Row = Dict[str, Any]


@dataclass(frozen=True)
class AuthSession:
    user_id: str
    email: Optional[str]
    access_token: str
    refresh_token: Optional[str] = None
    expires_at: Optional[datetime] = None


@dataclass(frozen=True)
class SignUpResult:
    user_id: Optional[str]
    session: Optional[AuthSession]

    @property
    def needs_confirmation(self) -> bool:
        return self.user_id is not None and self.session is None


@dataclass(frozen=True)
class HealthStatus:
    ok: bool
    message: Optional[str] = None


AuthEventHandler = Callable[[AuthEvent, Optional[AuthSession]], Awaitable[None]]


class BackendGateway(Protocol):
    """Contract consumed by the portal core. Implemented over REST below and faked in tests."""

    async def check_health(self) -> HealthStatus: ...

    async def get_session(self) -> Optional[AuthSession]: ...

    async def get_row(self, table: str, filters: Mapping[str, Any]) -> Optional[Row]: ...

    async def get_rows(
        self,
        table: str,
        filters: Optional[Mapping[str, Any]] = None,
        *,
        order: Optional[str] = None,
        descending: bool = False,
    ) -> List[Row]: ...

    async def insert_row(self, table: str, row: Mapping[str, Any]) -> Row: ...

    async def update_row(self, table: str, filters: Mapping[str, Any], patch: Mapping[str, Any]) -> None: ...

    async def upsert_row(self, table: str, row: Mapping[str, Any]) -> None: ...

    def subscribe_auth_events(self, handler: AuthEventHandler) -> Callable[[], None]: ...

    async def sign_in(self, email: str, password: str) -> AuthSession: ...

    async def sign_up(self, email: str, password: str, metadata: Optional[Mapping[str, Any]] = None) -> SignUpResult: ...

    async def sign_out(self) -> None: ...


def _filter_params(filters: Optional[Mapping[str, Any]]) -> Dict[str, str]:
    params: Dict[str, str] = {"select": "*"}
    for column, value in (filters or {}).items():
        params[column] = f"eq.{value}"
    return params


def _backend_error(response: httpx.Response) -> BackendError:
    code: Optional[str] = None
    message = response.text or response.reason_phrase
    try:
        body = response.json()
    except ValueError:
        body = None
    if isinstance(body, dict):
        code = body.get("code") or body.get("error_code") or body.get("error")
        message = (
            body.get("message")
            or body.get("msg")
            or body.get("error_description")
            or body.get("error")
            or message
        )
        if code is not None:
            code = str(code)
    return BackendError(str(message), code=code, status_code=response.status_code)


def _parse_session(payload: Mapping[str, Any]) -> Optional[AuthSession]:
    token = payload.get("access_token")
    user = payload.get("user") or {}
    if not token or not isinstance(user, Mapping) or not user.get("id"):
        return None
    expires_at: Optional[datetime] = None
    expires_in = payload.get("expires_in")
    if isinstance(expires_in, (int, float)):
        expires_at = datetime.now(timezone.utc) + timedelta(seconds=expires_in)
    return AuthSession(
        user_id=str(user["id"]),
        email=user.get("email"),
        access_token=str(token),
        refresh_token=payload.get("refresh_token"),
        expires_at=expires_at,
    )


class RestBackendGateway:
    """PostgREST / GoTrue style client for the hosted backend."""

    def __init__(self, settings: Settings, *, client: Optional[httpx.AsyncClient] = None) -> None:
        self._base_url = settings.backend_url.rstrip("/")
        self._anon_key = settings.backend_anon_key or ""
        self._client = client or httpx.AsyncClient(timeout=settings.backend_timeout_seconds)
        self._owns_client = client is None
        self._session: Optional[AuthSession] = None
        self._handlers: List[AuthEventHandler] = []
        self._pending: Set[asyncio.Task[None]] = set()

    def _headers(self, *, prefer: Optional[str] = None) -> Dict[str, str]:
        token = self._session.access_token if self._session else self._anon_key
        headers = {
            "apikey": self._anon_key,
            "Authorization": f"Bearer {token}",
            "Content-Type": "application/json",
        }
        if prefer:
            headers["Prefer"] = prefer
        return headers

    async def _request(
        self,
        method: str,
        path: str,
        *,
        params: Optional[Mapping[str, str]] = None,
        json: Any = None,
        prefer: Optional[str] = None,
    ) -> httpx.Response:
        url = f"{self._base_url}{path}"
        try:
            response = await self._client.request(
                method,
                url,
                params=params,
                json=json,
                headers=self._headers(prefer=prefer),
            )
        except httpx.TransportError as exc:
            raise BackendError(f"Failed to fetch {path}: {exc}", code="network") from exc
        if response.is_error:
            raise _backend_error(response)
        return response

    async def check_health(self) -> HealthStatus:
        try:
            await self._request("GET", "/rest/v1/profiles", params={"select": "id", "limit": "1"})
        except BackendError as exc:
            if is_relation_missing(exc):
                return HealthStatus(ok=True, message=exc.message)
            return HealthStatus(ok=False, message=exc.message)
        return HealthStatus(ok=True)

    async def get_session(self) -> Optional[AuthSession]:
        return self._session

    async def get_row(self, table: str, filters: Mapping[str, Any]) -> Optional[Row]:
        params = _filter_params(filters)
        params["limit"] = "1"
        response = await self._request("GET", f"/rest/v1/{table}", params=params)
        rows = response.json() or []
        return rows[0] if rows else None

    async def get_rows(
        self,
        table: str,
        filters: Optional[Mapping[str, Any]] = None,
        *,
        order: Optional[str] = None,
        descending: bool = False,
    ) -> List[Row]:
        params = _filter_params(filters)
        if order:
            params["order"] = f"{order}.{'desc' if descending else 'asc'}"
        response = await self._request("GET", f"/rest/v1/{table}", params=params)
        return list(response.json() or [])

    async def insert_row(self, table: str, row: Mapping[str, Any]) -> Row:
        response = await self._request("POST", f"/rest/v1/{table}", json=[dict(row)], prefer="return=representation")
        rows = response.json() or []
        return rows[0] if rows else dict(row)

    async def update_row(self, table: str, filters: Mapping[str, Any], patch: Mapping[str, Any]) -> None:
        params = _filter_params(filters)
        params.pop("select", None)
        await self._request("PATCH", f"/rest/v1/{table}", params=params, json=dict(patch), prefer="return=minimal")

    async def upsert_row(self, table: str, row: Mapping[str, Any]) -> None:
        await self._request(
            "POST",
            f"/rest/v1/{table}",
            json=dict(row),
            prefer="resolution=merge-duplicates,return=minimal",
        )

    def subscribe_auth_events(self, handler: AuthEventHandler) -> Callable[[], None]:
        self._handlers.append(handler)

        def _unsubscribe() -> None:
            if handler in self._handlers:
                self._handlers.remove(handler)

        return _unsubscribe

    def _publish(self, event: AuthEvent, session: Optional[AuthSession]) -> None:
        for handler in list(self._handlers):
            task = asyncio.ensure_future(handler(event, session))
            self._pending.add(task)
            task.add_done_callback(self._on_handler_done)

    def _on_handler_done(self, task: "asyncio.Task[None]") -> None:
        self._pending.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Auth event handler failed: %s", exc)

    async def sign_in(self, email: str, password: str) -> AuthSession:
        try:
            response = await self._request(
                "POST",
                "/auth/v1/token",
                params={"grant_type": "password"},
                json={"email": email, "password": password},
            )
        except BackendError as exc:
            if exc.is_network:
                raise
            raise AuthError(exc.message) from exc
        session = _parse_session(response.json())
        if session is None:
            raise AuthError("Sign-in response did not include a session.")
        self._session = session
        self._publish("SIGNED_IN", session)
        return session

    async def sign_up(self, email: str, password: str, metadata: Optional[Mapping[str, Any]] = None) -> SignUpResult:
        try:
            response = await self._request(
                "POST",
                "/auth/v1/signup",
                json={"email": email, "password": password, "data": dict(metadata or {})},
            )
        except BackendError as exc:
            if exc.is_network:
                raise
            raise AuthError(exc.message) from exc
        payload = response.json() or {}
        session = _parse_session(payload)
        if session is not None:
            self._session = session
            self._publish("SIGNED_IN", session)
            return SignUpResult(user_id=session.user_id, session=session)
        user = payload.get("user") if isinstance(payload.get("user"), Mapping) else payload
        user_id = user.get("id") if isinstance(user, Mapping) else None
        return SignUpResult(user_id=str(user_id) if user_id else None, session=None)

    async def sign_out(self) -> None:
        if self._session is not None:
            try:
                await self._request("POST", "/auth/v1/logout")
            except BackendError as exc:
                logger.warning("Remote sign-out failed, clearing local session anyway: %s", exc)
        self._session = None
        self._publish("SIGNED_OUT", None)

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()


__all__ = [
    "AuthEvent",
    "AuthEventHandler",
    "AuthSession",
    "BackendGateway",
    "HealthStatus",
    "RestBackendGateway",
    "Row",
    "SignUpResult",
]
