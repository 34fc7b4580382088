"""
Gather schemas for the base system

This module contains schemas for users, the events they
publish and the attendances of users at those events.
"""

import datetime
from typing import List, Optional

import pydantic


Latitude = pydantic.confloat(ge=-90, le=90)
Longitude = pydantic.confloat(ge=-180, le=180)


def naive_utc(value: Optional[datetime.datetime]) -> Optional[datetime.datetime]:
    """
    Convert timezone-aware datetimes to naive UTC, naive datetimes are treated as UTC already
    """

    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(datetime.timezone.utc).replace(tzinfo=None)


class User(pydantic.BaseModel):
    id: pydantic.NonNegativeInt
    name: Optional[pydantic.constr(max_length=255)] = None
    active: bool
    created: pydantic.NonNegativeInt
    modified: pydantic.NonNegativeInt


class UserCreation(pydantic.BaseModel):
    name: Optional[pydantic.constr(min_length=1, max_length=255)] = None


class NewUser(User):
    """
    User model including the auth token, which is only available once after creation
    """

    auth_token: str


class Event(pydantic.BaseModel):
    id: pydantic.NonNegativeInt
    name: pydantic.constr(max_length=255)
    address: Optional[pydantic.constr(max_length=255)] = None
    lat: Latitude
    lon: Longitude
    started_at: datetime.datetime
    ended_at: Optional[datetime.datetime] = None
    owner_id: pydantic.NonNegativeInt
    attendees: List[pydantic.NonNegativeInt]
    created: pydantic.NonNegativeInt
    modified: pydantic.NonNegativeInt


class EventCreation(pydantic.BaseModel):
    name: pydantic.constr(min_length=1, max_length=255)
    address: Optional[pydantic.constr(max_length=255)] = None
    lat: Latitude
    lon: Longitude
    started_at: datetime.datetime
    ended_at: Optional[datetime.datetime] = None

    normalize_times = pydantic.field_validator("started_at", "ended_at")(naive_utc)

    @pydantic.model_validator(mode="after")
    def check_chronology(self) -> "EventCreation":
        if self.ended_at is not None and self.ended_at < self.started_at:
            raise ValueError("An event can't end before it has started")
        return self


class EventPatch(pydantic.BaseModel):
    name: Optional[pydantic.constr(min_length=1, max_length=255)] = None
    address: Optional[pydantic.constr(max_length=255)] = None
    lat: Optional[Latitude] = None
    lon: Optional[Longitude] = None
    started_at: Optional[datetime.datetime] = None
    ended_at: Optional[datetime.datetime] = None

    normalize_times = pydantic.field_validator("started_at", "ended_at")(naive_utc)


class NearbyEvent(pydantic.BaseModel):
    event: Event
    distance: pydantic.NonNegativeFloat


class Attendance(pydantic.BaseModel):
    id: pydantic.NonNegativeInt
    user_id: pydantic.NonNegativeInt
    event_id: pydantic.NonNegativeInt
    created: pydantic.NonNegativeInt


class AttendanceCreation(pydantic.BaseModel):
    event_id: pydantic.NonNegativeInt
