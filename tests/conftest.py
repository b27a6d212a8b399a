from __future__ import annotations

import asyncio
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple

import pytest

from saed_portal import telemetry
from saed_portal.config import Settings
from saed_portal.errors import BackendError
from saed_portal.gateway import AuthEventHandler, AuthSession, HealthStatus, SignUpResult
from saed_portal.portal import Portal, create_portal


class FakeGateway:
    """In-memory stand-in for the hosted backend.

    ``failures`` maps ``(operation, table)`` to a list of errors (or ``None``
    for "succeed") consumed one per call; ``pending_profiles`` delays a
    profile row becoming visible by a number of reads.
    """

    def __init__(self) -> None:
        self.tables: Dict[str, Dict[str, Dict[str, Any]]] = {
            "profiles": {},
            "instructors": {},
            "registrations": {},
        }
        self.calls: List[Tuple[str, str, Dict[str, Any]]] = []
        self.failures: Dict[Tuple[str, str], List[Optional[Exception]]] = {}
        self.pending_profiles: Dict[str, int] = {}
        self.health = HealthStatus(ok=True)
        self.session: Optional[AuthSession] = None
        self.handlers: List[AuthEventHandler] = []
        self.signup_returns_session = True
        self.sign_in_error: Optional[Exception] = None
        self.tasks: List["asyncio.Task[None]"] = []

    def seed(self, table: str, *rows: Dict[str, Any]) -> None:
        for row in rows:
            self.tables[table][row["id"]] = dict(row)

    def fail(self, operation: str, table: str, *errors: Optional[Exception]) -> None:
        self.failures.setdefault((operation, table), []).extend(errors)

    def calls_to(self, operation: str, table: Optional[str] = None) -> List[Tuple[str, str, Dict[str, Any]]]:
        return [call for call in self.calls if call[0] == operation and (table is None or call[1] == table)]

    async def _tick(self, operation: str, table: str, detail: Dict[str, Any]) -> None:
        self.calls.append((operation, table, detail))
        await asyncio.sleep(0)
        queue = self.failures.get((operation, table))
        if queue:
            error = queue.pop(0)
            if error is not None:
                raise error

    @staticmethod
    def _matches(row: Mapping[str, Any], filters: Optional[Mapping[str, Any]]) -> bool:
        return all(row.get(key) == value for key, value in (filters or {}).items())

    async def check_health(self) -> HealthStatus:
        self.calls.append(("check_health", "", {}))
        return self.health

    async def get_session(self) -> Optional[AuthSession]:
        self.calls.append(("get_session", "", {}))
        return self.session

    async def get_row(self, table: str, filters: Mapping[str, Any]) -> Optional[Dict[str, Any]]:
        await self._tick("get_row", table, dict(filters))
        if table == "profiles":
            row_id = filters.get("id")
            remaining = self.pending_profiles.get(row_id, 0)
            if remaining > 0:
                self.pending_profiles[row_id] = remaining - 1
                return None
        for row in self.tables[table].values():
            if self._matches(row, filters):
                return dict(row)
        return None

    async def get_rows(
        self,
        table: str,
        filters: Optional[Mapping[str, Any]] = None,
        *,
        order: Optional[str] = None,
        descending: bool = False,
    ) -> List[Dict[str, Any]]:
        await self._tick("get_rows", table, dict(filters or {}))
        rows = [dict(row) for row in self.tables[table].values() if self._matches(row, filters)]
        if order:
            rows.sort(key=lambda row: str(row.get(order)), reverse=descending)
        return rows

    async def insert_row(self, table: str, row: Mapping[str, Any]) -> Dict[str, Any]:
        await self._tick("insert_row", table, dict(row))
        self.tables[table][row["id"]] = dict(row)
        return dict(row)

    async def update_row(self, table: str, filters: Mapping[str, Any], patch: Mapping[str, Any]) -> None:
        await self._tick("update_row", table, {**dict(filters), **dict(patch)})
        for row in self.tables[table].values():
            if self._matches(row, filters):
                row.update(patch)

    async def upsert_row(self, table: str, row: Mapping[str, Any]) -> None:
        await self._tick("upsert_row", table, dict(row))
        existing = self.tables[table].get(row["id"], {})
        self.tables[table][row["id"]] = {**existing, **{k: v for k, v in row.items() if v is not None}}

    def subscribe_auth_events(self, handler: AuthEventHandler) -> Callable[[], None]:
        self.handlers.append(handler)
        return lambda: self.handlers.remove(handler)

    def publish(self, event: str, session: Optional[AuthSession]) -> None:
        for handler in list(self.handlers):
            self.tasks.append(asyncio.ensure_future(handler(event, session)))  # type: ignore[arg-type]

    async def sign_in(self, email: str, password: str) -> AuthSession:
        self.calls.append(("sign_in", "", {"email": email}))
        await asyncio.sleep(0)
        if self.sign_in_error is not None:
            raise self.sign_in_error
        user_id = next(
            (row["id"] for row in self.tables["profiles"].values() if row.get("email") == email),
            f"user-{email}",
        )
        self.session = AuthSession(user_id=user_id, email=email, access_token="token")
        self.publish("SIGNED_IN", self.session)
        return self.session

    async def sign_up(self, email: str, password: str, metadata: Optional[Mapping[str, Any]] = None) -> SignUpResult:
        self.calls.append(("sign_up", "", {"email": email, **dict(metadata or {})}))
        await asyncio.sleep(0)
        user_id = f"user-{email}"
        if not self.signup_returns_session:
            return SignUpResult(user_id=user_id, session=None)
        self.session = AuthSession(user_id=user_id, email=email, access_token="token")
        self.publish("SIGNED_IN", self.session)
        return SignUpResult(user_id=user_id, session=self.session)

    async def sign_out(self) -> None:
        self.calls.append(("sign_out", "", {}))
        self.session = None
        self.publish("SIGNED_OUT", None)

    async def drain(self) -> None:
        while self.tasks:
            await self.tasks.pop(0)


def relation_missing(table: str = "profiles") -> BackendError:
    return BackendError(f'relation "public.{table}" does not exist', code="42P01", status_code=404)


def network_down() -> BackendError:
    return BackendError("TypeError: Failed to fetch", code="network")


class RecordingSleep:
    def __init__(self) -> None:
        self.delays: List[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


@pytest.fixture(autouse=True)
def _reset_telemetry():
    telemetry.clear_listeners()
    yield
    telemetry.clear_listeners()


@pytest.fixture()
def events() -> List[telemetry.TelemetryEvent]:
    collected: List[telemetry.TelemetryEvent] = []
    telemetry.register_listener(collected.append)
    return collected


@pytest.fixture()
def settings() -> Settings:
    return Settings(SAED_BACKEND_URL="http://backend.test", OPENAI_API_KEY=None)  # type: ignore[call-arg]


@pytest.fixture()
def gateway() -> FakeGateway:
    return FakeGateway()


@pytest.fixture()
def sleeper() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture()
def portal(settings: Settings, gateway: FakeGateway, sleeper: RecordingSleep) -> Portal:
    built = create_portal(settings, gateway=gateway, sleep=sleeper)
    built.session.start()
    return built


def profile_row(user_id: str, role: str = "CORPER", status: str = "APPROVED", **extra: Any) -> Dict[str, Any]:
    return {"id": user_id, "name": f"User {user_id}", "email": f"{user_id}@example.com", "role": role, "status": status, **extra}


def instructor_row(user_id: str, status: str = "APPROVED", **extra: Any) -> Dict[str, Any]:
    return {
        "id": user_id,
        "name": f"Instructor {user_id}",
        "email": f"{user_id}@example.com",
        "headline": "Mentor",
        "skills": ["Web Design"],
        "status": status,
        **extra,
    }


def registration_row(reg_id: str, corper_id: str, instructor_id: str, status: str = "PENDING") -> Dict[str, Any]:
    return {
        "id": reg_id,
        "corper_id": corper_id,
        "corper_name": f"Corper {corper_id}",
        "instructor_id": instructor_id,
        "skill_name": "Web Design",
        "status": status,
        "date": "2026-01-15T10:00:00+00:00",
    }
