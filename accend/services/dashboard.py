#!/usr/bin/env python3
"""Dashboard counters and usage analytics."""

import datetime
from typing import Any, Dict, List

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from accend.models import (
    AccessRequest,
    Booking,
    BookingStatus,
    Environment,
    RequestStatus,
    ResourceType,
)

EXPIRING_WINDOW = datetime.timedelta(days=7)


async def metrics_for_user(session: AsyncSession, user_id: str, now: datetime.datetime) -> Dict[str, int]:
    result = await session.execute(select(AccessRequest).where(AccessRequest.user_id == user_id))
    requests = list(result.scalars())
    active = [r for r in requests if r.is_active(now)]
    return {
        "activeAccesses": len(active),
        "pending": sum(1 for r in requests if r.status == RequestStatus.pending),
        "expiring7d": sum(1 for r in active if r.is_expiring_within(now, EXPIRING_WINDOW)),
        "activeDeploymentLocks": sum(
            1 for r in active if r.resource_type == ResourceType.deployment_env_lock
        ),
    }


async def usage_analytics(session: AsyncSession, now: datetime.datetime) -> Dict[str, Any]:
    envs = list((await session.execute(select(Environment).order_by(Environment.access_level_required))).scalars())
    bookings = list((await session.execute(select(Booking))).scalars())

    per_env: List[Dict[str, Any]] = []
    for env in envs:
        mine = [b for b in bookings if b.env_id == env.id]
        booked = sum(
            (min(b.ends_at, now) - b.started_at).total_seconds()
            for b in mine
            if b.started_at is not None and b.ends_at is not None and b.started_at <= now
        )
        per_env.append({
            "envId": env.id,
            "name": env.name,
            "totalBookings": len(mine),
            "liveNow": sum(1 for b in mine if b.is_live(now)),
            "releasedEarly": sum(1 for b in mine if b.status == BookingStatus.released),
            "bookedMinutes": int(booked // 60),
        })

    rows = await session.execute(
        select(AccessRequest.status, func.count()).group_by(AccessRequest.status)
    )
    by_status = {status.value: 0 for status in RequestStatus}
    for status, count in rows.all():
        by_status[status.value] = count

    return {"environments": per_env, "requestsByStatus": by_status}
