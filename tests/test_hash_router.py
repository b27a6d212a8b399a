from __future__ import annotations

from typing import List

import pytest

from saed_portal.models import InstructorRecord, ProfileRecord, Registration, merge_user_record
from saed_portal.router import HashRouter, View, normalize_fragment, parse_fragment
from saed_portal.state import AppState


@pytest.fixture()
def state() -> AppState:
    app_state = AppState()
    app_state.session.is_loading = False
    app_state.directory.instructors = [
        InstructorRecord(id="inst-1", name="Michael Ade", status="APPROVED"),
        InstructorRecord(id="inst-3", name="Pending Person", status="PENDING"),
    ]
    return app_state


def _sign_in(state: AppState, role: str, status: str = "APPROVED") -> None:
    profile = ProfileRecord(id=f"{role.lower()}-1", role=role, status=status)  # type: ignore[arg-type]
    state.session.set_identity(merge_user_record(profile))


@pytest.mark.parametrize("fragment", [None, "", "#", "#/"])
def test_empty_fragments_mean_home(fragment) -> None:
    assert normalize_fragment(fragment) == "#/home"
    assert parse_fragment(fragment).name == "home"


def test_parse_known_routes() -> None:
    assert parse_fragment("#/map").name == "directory"
    assert parse_fragment("#/directory").name == "directory"
    assert parse_fragment("#/instructor/inst-1").instructor_id == "inst-1"
    assert parse_fragment("#/register-staff").register_role == "STAFF"
    assert parse_fragment("#/dashboard").name == "dashboard"
    assert parse_fragment("#/nowhere").name == "home"


def test_instructor_detail_found(state: AppState) -> None:
    view = HashRouter(state).navigate("#/instructor/inst-1")
    assert view.name == "instructor-detail"
    assert view.params["instructor"].name == "Michael Ade"


def test_instructor_detail_missing_renders_not_found(state: AppState) -> None:
    view = HashRouter(state).navigate("#/instructor/nobody")
    assert view.name == "not-found"
    assert view.params["instructor_id"] == "nobody"


def test_schema_fault_overrides_everything(state: AppState) -> None:
    state.session.schema_fault = True
    state.session.connectivity_fault = True
    router = HashRouter(state)
    for fragment in ("#/home", "#/dashboard", "#/instructor/inst-1", "#/register-admin"):
        assert router.navigate(fragment).name == "schema-setup"


def test_connectivity_fault_overrides_routes(state: AppState) -> None:
    state.session.connectivity_fault = True
    assert HashRouter(state).navigate("#/directory").name == "offline"


def test_demo_mode_lifts_fault_overrides(state: AppState) -> None:
    state.session.schema_fault = True
    state.session.is_demo = True
    assert HashRouter(state).navigate("#/directory").name == "directory"


def test_loading_view_while_booting(state: AppState) -> None:
    state.session.is_loading = True
    assert HashRouter(state).navigate("#/directory").name == "loading"


def test_directory_shows_approved_only(state: AppState) -> None:
    view = HashRouter(state).navigate("#/map")
    assert [record.id for record in view.params["instructors"]] == ["inst-1"]


def test_skill_filter_is_consumed_once(state: AppState) -> None:
    router = HashRouter(state)
    first = router.select_skill("Web Design")
    assert first.name == "directory"
    assert first.params["skill_filter"] == "Web Design"

    router.navigate("#/home")
    again = router.navigate("#/directory")
    assert again.params["skill_filter"] == ""


def test_skill_filter_dropped_when_other_view_renders(state: AppState) -> None:
    state.session.connectivity_fault = True
    router = HashRouter(state)
    assert router.select_skill("Baking").name == "offline"
    state.session.connectivity_fault = False
    assert router.navigate("#/directory").params["skill_filter"] == ""


def test_back_forward_changes_rerender_subscribers(state: AppState) -> None:
    router = HashRouter(state)
    seen: List[View] = []
    unsubscribe = router.subscribe(seen.append)

    router.navigate("#/directory")
    router.on_fragment_change("#/home")
    unsubscribe()
    router.on_fragment_change("#/directory")

    assert [view.name for view in seen] == ["directory", "home"]
    assert router.fragment == "#/directory"


def test_admin_registration_login_only_when_admin_exists(state: AppState) -> None:
    router = HashRouter(state)
    assert router.navigate("#/register-admin").params["login_only"] is False
    state.directory.admins = [ProfileRecord(id="a1", role="ADMIN")]
    assert router.navigate("#/register-admin").params["login_only"] is True


@pytest.mark.parametrize(
    "role, view_name",
    [
        ("ADMIN", "dashboard-admin"),
        ("INSTRUCTOR", "dashboard-instructor"),
        ("CORPER", "dashboard-corper"),
        ("STAFF", "dashboard-staff"),
    ],
)
def test_dashboard_dispatches_on_role(state: AppState, role: str, view_name: str) -> None:
    _sign_in(state, role)
    assert HashRouter(state).navigate("#/dashboard").name == view_name


def test_dashboard_waits_while_syncing(state: AppState) -> None:
    _sign_in(state, "CORPER")
    state.session.is_syncing = True
    assert HashRouter(state).navigate("#/dashboard").name == "dashboard-syncing"


def test_dashboard_for_guest_reports_lost_session(state: AppState) -> None:
    assert HashRouter(state).navigate("#/dashboard").name == "session-lost"


def test_pending_users_get_waiting_view(state: AppState) -> None:
    _sign_in(state, "INSTRUCTOR", status="PENDING")
    view = HashRouter(state).navigate("#/dashboard")
    assert view.name == "dashboard-pending"
    assert view.params["role"] == "INSTRUCTOR"


def test_corper_dashboard_carries_registrations(state: AppState) -> None:
    _sign_in(state, "CORPER")
    state.registrations = [
        Registration(id="r1", corper_id="corper-1", instructor_id="inst-1", skill_name="Web Design"),
    ]
    view = HashRouter(state).navigate("#/dashboard")
    assert [reg.id for reg in view.params["registrations"]] == ["r1"]
    assert len(view.params["instructors"]) == 2
