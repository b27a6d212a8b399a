"""Fragment-based router that turns session state into the view to render."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Mapping, Optional

from .models import UserRole
from .state import AppState
from .telemetry import emit_event

logger = logging.getLogger(__name__)

HOME = "#/home"
DIRECTORY = "#/directory"
DASHBOARD = "#/dashboard"

_REGISTER_ROUTES: Dict[str, UserRole] = {
    "#/register-corper": "CORPER",
    "#/register-instructor": "INSTRUCTOR",
    "#/register-staff": "STAFF",
    "#/register-admin": "ADMIN",
}

_DASHBOARD_VIEWS: Dict[UserRole, str] = {
    "ADMIN": "dashboard-admin",
    "INSTRUCTOR": "dashboard-instructor",
    "CORPER": "dashboard-corper",
    "STAFF": "dashboard-staff",
}


@dataclass(frozen=True)
class Route:
    name: str
    instructor_id: Optional[str] = None
    register_role: Optional[UserRole] = None


@dataclass(frozen=True)
class View:
    name: str
    params: Mapping[str, Any] = field(default_factory=dict)


ViewListener = Callable[[View], None]


def normalize_fragment(fragment: Optional[str]) -> str:
    if not fragment or fragment in ("#", "#/"):
        return HOME
    if not fragment.startswith("#"):
        fragment = f"#{fragment}"
    return fragment


def parse_fragment(fragment: Optional[str]) -> Route:
    normalized = normalize_fragment(fragment)
    if normalized.startswith("#/instructor/"):
        instructor_id = normalized.split("/")[2]
        return Route(name="instructor-detail", instructor_id=instructor_id)
    if normalized in ("#/map", DIRECTORY):
        return Route(name="directory")
    if normalized in _REGISTER_ROUTES:
        return Route(name="register", register_role=_REGISTER_ROUTES[normalized])
    if normalized == DASHBOARD:
        return Route(name="dashboard")
    return Route(name="home")


class HashRouter:
    """Owns the current fragment and the one-shot skill filter handed to the directory."""

    def __init__(self, state: AppState, *, initial_fragment: Optional[str] = None) -> None:
        self._state = state
        self._fragment = normalize_fragment(initial_fragment)
        self._pending_skill: Optional[str] = None
        self._listeners: List[ViewListener] = []
        self.current_view: Optional[View] = None

    @property
    def fragment(self) -> str:
        return self._fragment

    def subscribe(self, listener: ViewListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def navigate(self, fragment: str) -> View:
        self._fragment = normalize_fragment(fragment)
        return self.render()

    def on_fragment_change(self, fragment: Optional[str]) -> View:
        """Entry point for browser back/forward and manual URL edits."""
        return self.navigate(fragment or HOME)

    def select_skill(self, skill: str) -> View:
        self._pending_skill = skill.strip() or None
        return self.navigate(DIRECTORY)

    def render(self) -> View:
        skill_filter, self._pending_skill = self._pending_skill, None
        view = self.resolve(skill_filter=skill_filter)
        self.current_view = view
        emit_event("route_resolved", fragment=self._fragment, view=view.name)
        for listener in list(self._listeners):
            try:
                listener(view)
            except Exception:  # noqa: BLE001
                logger.exception("View listener failed for %s", view.name)
        return view

    def resolve(self, *, skill_filter: Optional[str] = None) -> View:
        session = self._state.session
        if session.is_loading:
            return View("loading")
        if session.schema_fault and not session.is_demo:
            return View("schema-setup", {"demo_role": "ADMIN"})
        if session.connectivity_fault and not session.is_demo:
            return View("offline", {"demo_role": "GUEST"})

        route = parse_fragment(self._fragment)
        directory = self._state.directory
        if route.name == "instructor-detail":
            instructor = directory.find_instructor(route.instructor_id or "")
            if instructor is None:
                return View("not-found", {"instructor_id": route.instructor_id})
            return View("instructor-detail", {"instructor": instructor, "role": session.role})
        if route.name == "directory":
            return View(
                "directory",
                {
                    "instructors": directory.approved_instructors(),
                    "skill_filter": skill_filter or "",
                    "is_sample": directory.instructors_are_sample,
                },
            )
        if route.name == "register":
            role = route.register_role
            params: Dict[str, Any] = {"role": role}
            if role == "ADMIN":
                params["login_only"] = self._state.admin_exists
            return View("register", params)
        if route.name == "dashboard":
            return self._dashboard_view()
        return View("home")

    def _dashboard_view(self) -> View:
        session = self._state.session
        if session.is_syncing:
            return View("dashboard-syncing")
        user = session.current_user
        if session.role == "GUEST" or user is None:
            return View("session-lost")
        if session.role != "ADMIN" and not session.is_demo:
            if user.status == "PENDING":
                return View("dashboard-pending", {"role": session.role})
            if user.status == "REJECTED":
                return View("dashboard-rejected", {"role": session.role})

        directory = self._state.directory
        registrations = list(self._state.registrations)
        params: Dict[str, Any] = {"user": user, "is_demo": session.is_demo}
        if session.role == "ADMIN":
            params.update(
                instructors=list(directory.instructors),
                corpers=list(directory.corpers),
                staff=list(directory.staff),
                admins=list(directory.admins),
            )
        elif session.role == "INSTRUCTOR":
            params.update(registrations=registrations)
        elif session.role == "CORPER":
            params.update(registrations=registrations, instructors=list(directory.instructors))
        elif session.role == "STAFF":
            params.update(registrations=registrations)
        return View(_DASHBOARD_VIEWS[session.role], params)


__all__ = [
    "DASHBOARD",
    "DIRECTORY",
    "HOME",
    "HashRouter",
    "Route",
    "View",
    "normalize_fragment",
    "parse_fragment",
]
