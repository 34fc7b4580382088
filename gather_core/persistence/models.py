"""
Gather core database models
"""

import datetime
from typing import List, Optional

from sqlalchemy import (
    Boolean, DateTime, Float, Integer, String,
    CheckConstraint, Column, FetchedValue, ForeignKey, UniqueConstraint
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from .database import Base
from .. import schemas


def _as_utc(value: Optional[datetime.datetime]) -> Optional[datetime.datetime]:
    if value is None:
        return None
    return value.replace(tzinfo=datetime.timezone.utc)


class User(Base):
    """
    Model representing one end-user of the app, identified by the token on the user's device
    """

    __tablename__ = "users"

    id: int = Column(Integer, nullable=False, primary_key=True, autoincrement=True, unique=True)
    name: str = Column(String(255), nullable=True, unique=True)
    auth_token_digest: str = Column(String(64), nullable=False, unique=True)
    """SHA-256 hex digest of the auth token, the token itself is only known to the client"""
    active: bool = Column(Boolean, nullable=False, default=True)
    """Flag indicating a disabled user whose auth token is not accepted anymore"""
    created: datetime.datetime = Column(DateTime, server_default=func.now())
    modified: datetime.datetime = Column(DateTime, server_onupdate=FetchedValue(), server_default=func.now(), onupdate=func.now())

    events: List["Event"] = relationship("Event", back_populates="owner")
    attendances: List["Attendance"] = relationship("Attendance", cascade="all,delete", back_populates="user")

    @property
    def schema(self) -> schemas.User:
        """
        Pydantic schema representation of the database model that can be sent to clients
        """

        return schemas.User(
            id=self.id,
            name=self.name,
            active=self.active,
            created=int(_as_utc(self.created).timestamp()),
            modified=int(_as_utc(self.modified).timestamp())
        )

    def __repr__(self) -> str:
        return f"User(id={self.id}, name={self.name!r}, active={self.active})"


class Event(Base):
    """
    Model representing an event at a certain place and time, published by one user
    """

    __tablename__ = "events"

    id: int = Column(Integer, nullable=False, primary_key=True, autoincrement=True, unique=True)
    name: str = Column(String(255), nullable=False)
    address: str = Column(String(255), nullable=True)
    lat: float = Column(Float, nullable=False)
    lon: float = Column(Float, nullable=False)
    started_at: datetime.datetime = Column(DateTime, nullable=False)
    """Start of the event in UTC (naive datetime)"""
    ended_at: datetime.datetime = Column(DateTime, nullable=True)
    """Optional end of the event in UTC (naive datetime)"""
    owner_id: int = Column(Integer, ForeignKey("users.id"), nullable=False)
    created: datetime.datetime = Column(DateTime, server_default=func.now())
    modified: datetime.datetime = Column(DateTime, server_onupdate=FetchedValue(), server_default=func.now(), onupdate=func.now())

    owner: User = relationship("User", back_populates="events")
    attendances: List["Attendance"] = relationship("Attendance", cascade="all,delete", back_populates="event")

    __table_args__ = (
        CheckConstraint("lat >= -90 AND lat <= 90"),
        CheckConstraint("lon >= -180 AND lon <= 180"),
        CheckConstraint("ended_at IS NULL OR ended_at >= started_at")
    )

    @property
    def schema(self) -> schemas.Event:
        """
        Pydantic schema representation of the database model that can be sent to clients
        """

        return schemas.Event(
            id=self.id,
            name=self.name,
            address=self.address,
            lat=self.lat,
            lon=self.lon,
            started_at=_as_utc(self.started_at),
            ended_at=_as_utc(self.ended_at),
            owner_id=self.owner_id,
            attendees=sorted(attendance.user_id for attendance in self.attendances),
            created=int(_as_utc(self.created).timestamp()),
            modified=int(_as_utc(self.modified).timestamp())
        )

    def __repr__(self) -> str:
        return f"Event(id={self.id}, name={self.name!r}, owner_id={self.owner_id})"


class Attendance(Base):
    """
    Model representing the association of one user attending one event
    """

    __tablename__ = "attendances"

    id: int = Column(Integer, nullable=False, primary_key=True, autoincrement=True, unique=True)
    user_id: int = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    event_id: int = Column(Integer, ForeignKey("events.id", ondelete="CASCADE"), nullable=False)
    created: datetime.datetime = Column(DateTime, server_default=func.now())

    user: User = relationship("User", back_populates="attendances")
    event: Event = relationship("Event", back_populates="attendances")

    __table_args__ = (
        UniqueConstraint("user_id", "event_id", name="single_attendance_per_event"),
    )

    @property
    def schema(self) -> schemas.Attendance:
        """
        Pydantic schema representation of the database model that can be sent to clients
        """

        return schemas.Attendance(
            id=self.id,
            user_id=self.user_id,
            event_id=self.event_id,
            created=int(_as_utc(self.created).timestamp())
        )

    def __repr__(self) -> str:
        return f"Attendance(id={self.id}, user_id={self.user_id}, event_id={self.event_id})"
