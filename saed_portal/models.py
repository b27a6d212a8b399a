"""Portal records and the pure helpers that shape them."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Literal, Mapping, Optional, Type, TypeVar

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

logger = logging.getLogger(__name__)

UserRole = Literal["ADMIN", "INSTRUCTOR", "CORPER", "STAFF", "GUEST"]
ApprovalStatus = Literal["PENDING", "APPROVED", "REJECTED"]
RegistrationStatus = Literal["PENDING", "ACCEPTED", "REJECTED", "COMPLETED"]
Gender = Literal["MALE", "FEMALE"]

DIRECTORY_ROLES: tuple[UserRole, ...] = ("INSTRUCTOR", "CORPER", "STAFF", "ADMIN")

# camelCase keys seen on records that were built client-side before being stored.
_INSTRUCTOR_KEY_ALIASES: Dict[str, str] = {
    "profilePic": "profile_pic",
    "coverImage": "cover_image",
    "phoneNumber": "phone_number",
    "linkedInUrl": "linked_in_url",
    "reviewCount": "review_count",
    "selectedSkills": "skills",
}

_PROFILE_KEY_ALIASES: Dict[str, str] = {
    "securityKey": "security_key",
    "stateCode": "state_code",
    "stateOfService": "state_of_service",
    "createdAt": "created_at",
    "updatedAt": "updated_at",
}


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _apply_aliases(data: Any, aliases: Dict[str, str]) -> Any:
    if not isinstance(data, dict):
        return data
    normalized = dict(data)
    for source, target in aliases.items():
        if source not in normalized:
            continue
        value = normalized.pop(source)
        if normalized.get(target) in (None, ""):
            normalized[target] = value
    return normalized


def _drop_nulls(data: Any) -> Any:
    # Nullable columns fall back to the model defaults.
    if not isinstance(data, dict):
        return data
    return {key: value for key, value in data.items() if value is not None}


class GeoLocation(BaseModel):
    lat: float
    lng: float
    address: str = ""
    state: str = ""
    lga: str = ""


class ProfileRecord(BaseModel):
    """Row of the generic ``profiles`` table shared by every role."""

    model_config = ConfigDict(extra="ignore")

    id: str
    name: str = ""
    email: str = ""
    role: UserRole = "GUEST"
    status: ApprovalStatus = "PENDING"
    security_key: Optional[str] = None
    state_code: Optional[str] = None
    batch: Optional[str] = None
    state_of_service: Optional[str] = None
    department: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @model_validator(mode="before")
    @classmethod
    def _accept_camel_case(cls, data: Any) -> Any:
        return _drop_nulls(_apply_aliases(data, _PROFILE_KEY_ALIASES))


class InstructorRecord(BaseModel):
    """Row of the ``instructors`` extension table."""

    model_config = ConfigDict(extra="ignore")

    id: str
    name: str = ""
    email: str = ""
    headline: str = ""
    about: str = ""
    skills: List[str] = Field(default_factory=list)
    phone_number: Optional[str] = None
    profile_pic: Optional[str] = None
    cover_image: Optional[str] = None
    location: Optional[GeoLocation] = None
    status: ApprovalStatus = "PENDING"
    linked_in_url: Optional[str] = None
    rating: float = 0.0
    review_count: int = 0
    verified: bool = False

    @model_validator(mode="before")
    @classmethod
    def _accept_camel_case(cls, data: Any) -> Any:
        return _drop_nulls(_apply_aliases(data, _INSTRUCTOR_KEY_ALIASES))


class Registration(BaseModel):
    """Enrollment of a corper onto one of an instructor's skills."""

    model_config = ConfigDict(extra="ignore")

    id: str
    corper_id: str
    corper_name: str = ""
    instructor_id: str
    skill_id: Optional[str] = None
    skill_name: str
    status: RegistrationStatus = "PENDING"
    date: datetime = Field(default_factory=_now)
    gender: Optional[Gender] = None

    @model_validator(mode="before")
    @classmethod
    def _drop_null_columns(cls, data: Any) -> Any:
        return _drop_nulls(data)


class UnifiedUserRecord(BaseModel):
    """The signed-in identity: a profile plus, for instructors, the extension row."""

    profile: ProfileRecord
    instructor: Optional[InstructorRecord] = None

    @property
    def id(self) -> str:
        return self.profile.id

    @property
    def role(self) -> UserRole:
        return self.profile.role

    @property
    def name(self) -> str:
        if self.instructor is not None and self.instructor.name:
            return self.instructor.name
        return self.profile.name

    @property
    def email(self) -> str:
        if self.instructor is not None and self.instructor.email:
            return self.instructor.email
        return self.profile.email

    @property
    def status(self) -> ApprovalStatus:
        if self.instructor is not None:
            return self.instructor.status
        return self.profile.status

    def as_row(self) -> Dict[str, Any]:
        """Flatten into one mapping with extension values overriding the profile."""
        row = self.profile.model_dump(mode="json")
        if self.instructor is not None:
            row.update(self.instructor.model_dump(mode="json"))
        return row


def merge_user_record(profile: ProfileRecord, instructor: Optional[InstructorRecord] = None) -> UnifiedUserRecord:
    if instructor is not None and instructor.id != profile.id:
        raise ValueError(f"Instructor record {instructor.id!r} does not belong to profile {profile.id!r}.")
    if profile.role != "INSTRUCTOR":
        instructor = None
    return UnifiedUserRecord(
        profile=profile.model_copy(deep=True),
        instructor=instructor.model_copy(deep=True) if instructor else None,
    )


def normalize_keys(data: Dict[str, Any]) -> Dict[str, Any]:
    """Rewrite camelCase form keys to the snake_case column names."""
    return _apply_aliases(_apply_aliases(data, _PROFILE_KEY_ALIASES), _INSTRUCTOR_KEY_ALIASES)


def default_status_for(role: UserRole) -> ApprovalStatus:
    return "APPROVED" if role == "ADMIN" else "PENDING"


def profile_payload(user_id: str, role: UserRole, data: Dict[str, Any]) -> Dict[str, Any]:
    """Build the ``profiles`` upsert row from form data in either key style."""
    source = _apply_aliases(data, _PROFILE_KEY_ALIASES)
    return {
        "id": user_id,
        "name": source.get("name"),
        "email": source.get("email"),
        "role": role,
        "status": source.get("status") or default_status_for(role),
        "security_key": source.get("security_key"),
        "state_code": source.get("state_code"),
        "batch": source.get("batch"),
        "state_of_service": source.get("state_of_service"),
        "department": source.get("department"),
    }


def instructor_payload(user_id: str, data: Dict[str, Any]) -> Dict[str, Any]:
    """Build the ``instructors`` upsert row from form data in either key style."""
    source = _apply_aliases(data, _INSTRUCTOR_KEY_ALIASES)
    location = source.get("location")
    if isinstance(location, GeoLocation):
        location = location.model_dump(mode="json")
    return {
        "id": user_id,
        "name": source.get("name"),
        "email": source.get("email"),
        "headline": source.get("headline"),
        "about": source.get("about"),
        "skills": list(source.get("skills") or []),
        "phone_number": source.get("phone_number"),
        "profile_pic": source.get("profile_pic"),
        "cover_image": source.get("cover_image"),
        "location": location,
        "status": source.get("status") or "PENDING",
        "linked_in_url": source.get("linked_in_url"),
    }


RecordT = TypeVar("RecordT", bound=BaseModel)


def parse_rows(model: Type[RecordT], rows: Iterable[Mapping[str, Any]], *, label: str) -> List[RecordT]:
    """Validate backend rows one at a time, skipping the ones that do not parse."""
    records: List[RecordT] = []
    for row in rows:
        try:
            records.append(model.model_validate(row))
        except ValidationError as exc:
            row_id = row.get("id") if isinstance(row, Mapping) else None
            logger.warning("Skipping malformed %s row %s: %s", label, row_id, exc)
    return records


__all__ = [
    "ApprovalStatus",
    "DIRECTORY_ROLES",
    "GeoLocation",
    "Gender",
    "InstructorRecord",
    "ProfileRecord",
    "Registration",
    "RegistrationStatus",
    "UnifiedUserRecord",
    "UserRole",
    "default_status_for",
    "instructor_payload",
    "merge_user_record",
    "normalize_keys",
    "parse_rows",
    "profile_payload",
]
