#!/usr/bin/env python3
"""SQLAlchemy ORM models for Accend."""

import datetime
import enum
import uuid
from typing import Optional

from sqlalchemy import Boolean, DateTime, Integer, String, Text, Enum as SAEnum
from sqlalchemy.orm import Mapped, mapped_column

from accend.clock import utcnow
from accend.db import Base


def new_id() -> str:
    return str(uuid.uuid4())


# ---------------------------------------------------------------------------
# Auth models
# ---------------------------------------------------------------------------

class Role(str, enum.Enum):
    developer = "developer"  # Requests resources, books environments
    qa        = "qa"         # Same as developer, different resource visibility
    admin     = "admin"      # Decides requests, sees every booking, manages users

    def permissions(self) -> list[str]:
        """Return the list of permission strings this role grants."""
        base = [
            "read:dashboard",
            "read:resources",
            "write:requests",
            "write:bookings",
        ]
        if self == Role.admin:
            base += [
                "decide:requests",
                "read:all_bookings",
                "read:analytics",
                "write:users",
                "read:users",
            ]
        return base


class User(Base):
    __tablename__ = "users"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    name: Mapped[str] = mapped_column(String(128), nullable=False)
    email: Mapped[str] = mapped_column(String(255), unique=True, index=True, nullable=False)
    hashed_password: Mapped[str] = mapped_column(String(256), nullable=False)
    role: Mapped[Role] = mapped_column(SAEnum(Role), nullable=False, default=Role.developer)
    access_level: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime.datetime] = mapped_column(
        DateTime, nullable=False, default=utcnow
    )
    last_login: Mapped[Optional[datetime.datetime]] = mapped_column(DateTime, nullable=True)
    # Bumped inside every booking mutation for this user; see SqlBookingStore.exclusive
    lock_version: Mapped[int] = mapped_column(Integer, nullable=False, default=0)


# ---------------------------------------------------------------------------
# Environments and bookings
# ---------------------------------------------------------------------------

class Environment(Base):
    """A shared environment; rows are seeded from accend.catalog and never edited."""

    __tablename__ = "environments"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    name: Mapped[str] = mapped_column(String(128), nullable=False)
    access_level_required: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    buffer_minutes: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    lock_version: Mapped[int] = mapped_column(Integer, nullable=False, default=0)


class BookingStatus(str, enum.Enum):
    pending  = "pending"
    approved = "approved"
    active   = "active"
    finished = "finished"
    expired  = "expired"
    released = "released"
    denied   = "denied"


LIVE_BOOKING_STATUSES = (BookingStatus.approved, BookingStatus.active)


class ClosedReason(str, enum.Enum):
    finished = "finished"
    expired  = "expired"
    released = "released"
    denied   = "denied"


class Booking(Base):
    __tablename__ = "bookings"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    env_id: Mapped[str] = mapped_column(String(64), index=True, nullable=False)
    user_id: Mapped[str] = mapped_column(String(36), index=True, nullable=False)
    status: Mapped[BookingStatus] = mapped_column(
        SAEnum(BookingStatus), nullable=False, default=BookingStatus.approved
    )
    justification: Mapped[str] = mapped_column(Text, nullable=False, default="")
    created_at: Mapped[datetime.datetime] = mapped_column(DateTime, nullable=False, default=utcnow)
    started_at: Mapped[Optional[datetime.datetime]] = mapped_column(DateTime, nullable=True)
    ends_at: Mapped[Optional[datetime.datetime]] = mapped_column(DateTime, nullable=True)
    released_at: Mapped[Optional[datetime.datetime]] = mapped_column(DateTime, nullable=True)
    closed_reason: Mapped[Optional[ClosedReason]] = mapped_column(SAEnum(ClosedReason), nullable=True)
    duration_minutes: Mapped[int] = mapped_column(Integer, nullable=False)
    extension_minutes_total: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    def is_live(self, now: datetime.datetime) -> bool:
        if self.status not in LIVE_BOOKING_STATUSES:
            return False
        if self.started_at is None or self.ends_at is None:
            return False
        return self.started_at <= now < self.ends_at


# ---------------------------------------------------------------------------
# Request ledger
# ---------------------------------------------------------------------------

class ResourceType(str, enum.Enum):
    deployment_env_lock       = "deployment_env_lock"
    feature_flag_change       = "feature_flag_change"
    db_readonly               = "db_readonly"
    dwh_dataset_viewer        = "dwh_dataset_viewer"
    cloud_console_role        = "cloud_console_role"
    object_store_write_window = "object_store_write_window"
    k8s_namespace_access      = "k8s_namespace_access"
    secrets_read              = "secrets_read"
    github_repo_permission    = "github_repo_permission"
    cicd_bypass               = "cicd_bypass"
    monitoring_edit           = "monitoring_edit"
    logging_query             = "logging_query"
    test_run_request          = "test_run_request"
    staging_build_request     = "staging_build_request"


class RiskLevel(str, enum.Enum):
    low    = "low"
    medium = "medium"
    high   = "high"


class RequestStatus(str, enum.Enum):
    pending  = "pending"
    approved = "approved"
    denied   = "denied"
    expired  = "expired"


class AccessRequest(Base):
    __tablename__ = "requests"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    user_id: Mapped[str] = mapped_column(String(36), index=True, nullable=False)
    resource_id: Mapped[str] = mapped_column(String(64), nullable=False)
    resource_type: Mapped[ResourceType] = mapped_column(SAEnum(ResourceType), nullable=False)
    status: Mapped[RequestStatus] = mapped_column(
        SAEnum(RequestStatus), nullable=False, default=RequestStatus.pending, index=True
    )
    justification: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime.datetime] = mapped_column(DateTime, nullable=False, default=utcnow)
    duration_hours: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    approved_at: Mapped[Optional[datetime.datetime]] = mapped_column(DateTime, nullable=True)
    expires_at: Mapped[Optional[datetime.datetime]] = mapped_column(DateTime, nullable=True)
    approver_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)
    approver_name: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    decision_note: Mapped[Optional[str]] = mapped_column(String(512), nullable=True)
    booking_id: Mapped[Optional[str]] = mapped_column(String(36), index=True, nullable=True)

    def is_active(self, now: datetime.datetime) -> bool:
        if self.status != RequestStatus.approved:
            return False
        if self.expires_at is None:
            return True
        return self.expires_at > now

    def is_expiring_within(self, now: datetime.datetime, window: datetime.timedelta) -> bool:
        if self.expires_at is None:
            return False
        return now < self.expires_at < now + window
