"""Process-wide application state shared by the portal components."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional

from .models import InstructorRecord, ProfileRecord, Registration, UnifiedUserRecord, UserRole


@dataclass
class Notice:
    message: str
    expires_at: float


@dataclass
class SessionState:
    role: UserRole = "GUEST"
    current_user: Optional[UnifiedUserRecord] = None
    is_loading: bool = True
    is_syncing: bool = False
    connectivity_fault: bool = False
    schema_fault: bool = False
    is_demo: bool = False
    # Bumped whenever the identity is replaced so late results can be dropped.
    epoch: int = 0

    def mark_schema_fault(self) -> None:
        self.schema_fault = True
        self.connectivity_fault = False

    def mark_connectivity_fault(self) -> None:
        if not self.schema_fault:
            self.connectivity_fault = True

    def clear_faults(self) -> None:
        self.schema_fault = False
        self.connectivity_fault = False

    def set_identity(self, user: UnifiedUserRecord) -> None:
        self.current_user = user
        self.role = user.role

    def reset_identity(self) -> None:
        self.role = "GUEST"
        self.current_user = None
        self.epoch += 1


@dataclass
class DirectoryCollections:
    instructors: List[InstructorRecord] = field(default_factory=list)
    corpers: List[ProfileRecord] = field(default_factory=list)
    staff: List[ProfileRecord] = field(default_factory=list)
    admins: List[ProfileRecord] = field(default_factory=list)
    instructors_are_sample: bool = False

    def find_instructor(self, instructor_id: str) -> Optional[InstructorRecord]:
        for instructor in self.instructors:
            if instructor.id == instructor_id:
                return instructor
        return None

    def approved_instructors(self) -> List[InstructorRecord]:
        return [instructor for instructor in self.instructors if instructor.status == "APPROVED"]


class AppState:
    """Single container handed to every component instead of module globals."""

    def __init__(self, *, notice_ttl_seconds: float = 5.0, clock: Callable[[], float] = time.monotonic) -> None:
        self.session = SessionState()
        self.directory = DirectoryCollections()
        self.registrations: List[Registration] = []
        self._notice: Optional[Notice] = None
        self._notice_ttl = notice_ttl_seconds
        self._clock = clock

    @property
    def admin_exists(self) -> bool:
        return len(self.directory.admins) > 0

    def notify(self, message: str) -> None:
        self._notice = Notice(message=message, expires_at=self._clock() + self._notice_ttl)

    @property
    def notice(self) -> Optional[str]:
        if self._notice is None:
            return None
        if self._clock() >= self._notice.expires_at:
            self._notice = None
            return None
        return self._notice.message

    def snapshot(self) -> Dict[str, object]:
        session = self.session
        return {
            "role": session.role,
            "user_id": session.current_user.id if session.current_user else None,
            "is_loading": session.is_loading,
            "is_syncing": session.is_syncing,
            "connectivity_fault": session.connectivity_fault,
            "schema_fault": session.schema_fault,
            "is_demo": session.is_demo,
            "instructors": len(self.directory.instructors),
            "corpers": len(self.directory.corpers),
            "staff": len(self.directory.staff),
            "admins": len(self.directory.admins),
            "registrations": len(self.registrations),
        }


__all__ = ["AppState", "DirectoryCollections", "Notice", "SessionState"]
