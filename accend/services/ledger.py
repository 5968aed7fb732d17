#!/usr/bin/env python3
"""Request ledger: access requests, admin decisions and booking mirrors."""

import datetime
import logging
import math
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

from sqlalchemy import String, cast, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from accend import catalog
from accend.errors import Forbidden, RequestNotFound, RequestNotPending, ResourceNotFound
from accend.models import (
    AccessRequest,
    Booking,
    RequestStatus,
    ResourceType,
    Role,
    User,
)

logger = logging.getLogger(__name__)


@dataclass
class RequestFilter:
    statuses: List[RequestStatus] = field(default_factory=list)
    resource_ids: List[str] = field(default_factory=list)
    resource_types: List[ResourceType] = field(default_factory=list)
    start: Optional[datetime.datetime] = None
    end: Optional[datetime.datetime] = None
    q: Optional[str] = None

    def apply(self, stmt):
        if self.statuses:
            stmt = stmt.where(AccessRequest.status.in_(self.statuses))
        if self.resource_ids:
            stmt = stmt.where(AccessRequest.resource_id.in_(self.resource_ids))
        if self.resource_types:
            stmt = stmt.where(AccessRequest.resource_type.in_(self.resource_types))
        if self.start:
            stmt = stmt.where(AccessRequest.created_at >= self.start)
        if self.end:
            stmt = stmt.where(AccessRequest.created_at <= self.end)
        if self.q and self.q.strip():
            needle = f"%{self.q.strip().lower()}%"
            stmt = stmt.where(
                or_(
                    func.lower(AccessRequest.justification).like(needle),
                    func.lower(AccessRequest.resource_id).like(needle),
                    func.lower(cast(AccessRequest.resource_type, String)).like(needle),
                )
            )
        return stmt


# ---------------------------------------------------------------------------
# Self-service
# ---------------------------------------------------------------------------

async def create_request(
    session: AsyncSession,
    user: User,
    resource_id: str,
    justification: str,
    duration_hours: Optional[int],
    now: datetime.datetime,
) -> AccessRequest:
    resource = catalog.get_resource(resource_id)
    if resource is None:
        raise ResourceNotFound()
    if not resource.visible_to(user.role):
        raise Forbidden(f"Role '{user.role.value}' may not request {resource.name}")

    request = AccessRequest(
        user_id=user.id,
        resource_id=resource.id,
        resource_type=resource.type,
        status=RequestStatus.pending,
        justification=justification,
        created_at=now,
        duration_hours=duration_hours,
    )
    session.add(request)
    await session.commit()
    return request


async def list_requests_for(
    session: AsyncSession, user_id: str, flt: Optional[RequestFilter] = None
) -> List[AccessRequest]:
    stmt = select(AccessRequest).where(AccessRequest.user_id == user_id)
    if flt is not None:
        stmt = flt.apply(stmt)
    result = await session.execute(stmt.order_by(AccessRequest.created_at.desc()))
    return list(result.scalars())


# ---------------------------------------------------------------------------
# Admin
# ---------------------------------------------------------------------------

async def list_requests_with_requester(
    session: AsyncSession, status: Optional[RequestStatus] = None
) -> List[Tuple[AccessRequest, Optional[User]]]:
    stmt = (
        select(AccessRequest, User)
        .outerjoin(User, User.id == AccessRequest.user_id)
        .order_by(AccessRequest.created_at.desc())
    )
    if status is not None:
        stmt = stmt.where(AccessRequest.status == status)
    result = await session.execute(stmt)
    return [(row[0], row[1]) for row in result.all()]


async def decide_request(
    session: AsyncSession,
    approver: User,
    request_id: str,
    approve: bool,
    decision_note: Optional[str],
    now: datetime.datetime,
) -> AccessRequest:
    if approver.role != Role.admin:
        raise Forbidden()
    request = await session.get(AccessRequest, request_id)
    if request is None:
        raise RequestNotFound()
    if request.status != RequestStatus.pending:
        raise RequestNotPending(f"Request is already {request.status.value}")

    request.status = RequestStatus.approved if approve else RequestStatus.denied
    request.approver_id = approver.id
    request.approver_name = approver.name
    request.approved_at = now
    request.decision_note = decision_note
    if approve and request.duration_hours and request.duration_hours > 0:
        request.expires_at = request.created_at + datetime.timedelta(hours=request.duration_hours)
    await session.commit()

    logger.info(
        "Request %s %s by %s", request.id, request.status.value, approver.email
    )
    return request


# ---------------------------------------------------------------------------
# Booking mirrors
# ---------------------------------------------------------------------------

def _hours(minutes: int) -> int:
    return math.ceil(minutes / 60)


async def mirror_booking(
    session: AsyncSession, booking: Booking, user: User
) -> AccessRequest:
    """Insert the already-approved ledger row that shows *booking* in request lists.

    Only flushes: callers run it inside the booking's exclusive section.
    """
    is_admin = user.role == Role.admin
    request = AccessRequest(
        user_id=booking.user_id,
        resource_id=catalog.lock_resource_for(booking.env_id),
        resource_type=ResourceType.deployment_env_lock,
        status=RequestStatus.approved,
        justification=booking.justification,
        created_at=booking.created_at,
        duration_hours=_hours(booking.duration_minutes),
        approved_at=booking.created_at,
        expires_at=booking.ends_at,
        approver_id=user.id if is_admin else None,
        approver_name=user.name if is_admin else None,
        booking_id=booking.id,
    )
    session.add(request)
    await session.flush()
    return request


async def sync_booking_mirror(session: AsyncSession, booking: Booking) -> Optional[AccessRequest]:
    result = await session.execute(
        select(AccessRequest).where(AccessRequest.booking_id == booking.id)
    )
    request = result.scalars().first()
    if request is None:
        return None
    request.expires_at = booking.ends_at
    request.duration_hours = _hours(booking.duration_minutes + (booking.extension_minutes_total or 0))
    if booking.released_at is not None:
        request.status = RequestStatus.expired
    await session.flush()
    return request
