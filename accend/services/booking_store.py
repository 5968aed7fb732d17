#!/usr/bin/env python3
"""Persistence collaborators for the booking allocator.

The allocator only talks to the ``BookingStore`` protocol.  Every
mutation happens inside ``exclusive(env_id, user_id)``, which serialises
writers that touch the same environment or the same user and applies
the whole check-then-write as one unit.
"""

import asyncio
import datetime
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, List, Optional, Protocol

from sqlalchemy import and_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from accend.models import (
    LIVE_BOOKING_STATUSES,
    Booking,
    Environment,
    User,
)


class BookingStore(Protocol):
    async def get_environment(self, env_id: str) -> Optional[Environment]: ...

    async def list_environments(self) -> List[Environment]: ...

    async def get(self, booking_id: str) -> Optional[Booking]: ...

    async def find_live(
        self,
        now: datetime.datetime,
        *,
        env_id: Optional[str] = None,
        user_id: Optional[str] = None,
    ) -> Optional[Booking]: ...

    async def latest_elapsed(self, env_id: str, now: datetime.datetime) -> Optional[Booking]: ...

    async def list(self, *, user_id: Optional[str] = None) -> List[Booking]: ...

    async def insert(self, booking: Booking) -> Booking: ...

    async def update_by_key(self, booking_id: str, patch: Dict[str, Any]) -> Booking: ...

    def exclusive(self, env_id: str, user_id: str) -> Any: ...


# ---------------------------------------------------------------------------
# SQLAlchemy
# ---------------------------------------------------------------------------

def _live_clause(now: datetime.datetime):
    return and_(
        Booking.status.in_(LIVE_BOOKING_STATUSES),
        Booking.started_at.is_not(None),
        Booking.ends_at.is_not(None),
        Booking.started_at <= now,
        Booking.ends_at > now,
    )


class SqlBookingStore:
    """BookingStore backed by an AsyncSession.

    ``exclusive`` bumps ``lock_version`` on the environment row and on the
    user row before anything else runs.  Under read-committed isolation
    those UPDATEs hold row write locks until commit, so a second writer for
    the same environment or user waits and then re-reads committed state.
    SQLite gets the same effect from its single database write lock.
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_environment(self, env_id: str) -> Optional[Environment]:
        return await self.session.get(Environment, env_id)

    async def list_environments(self) -> List[Environment]:
        result = await self.session.execute(select(Environment).order_by(Environment.access_level_required))
        return list(result.scalars())

    async def get(self, booking_id: str) -> Optional[Booking]:
        return await self.session.get(Booking, booking_id, populate_existing=True)

    async def find_live(self, now, *, env_id=None, user_id=None) -> Optional[Booking]:
        stmt = select(Booking).where(_live_clause(now))
        if env_id is not None:
            stmt = stmt.where(Booking.env_id == env_id)
        if user_id is not None:
            stmt = stmt.where(Booking.user_id == user_id)
        stmt = stmt.order_by(Booking.created_at.desc()).execution_options(populate_existing=True)
        result = await self.session.execute(stmt)
        return result.scalars().first()

    async def latest_elapsed(self, env_id: str, now: datetime.datetime) -> Optional[Booking]:
        stmt = (
            select(Booking)
            .where(
                Booking.env_id == env_id,
                Booking.status.in_(LIVE_BOOKING_STATUSES),
                Booking.ends_at.is_not(None),
                Booking.ends_at <= now,
            )
            .order_by(Booking.ends_at.desc())
            .limit(1)
        )
        result = await self.session.execute(stmt)
        return result.scalars().first()

    async def list(self, *, user_id: Optional[str] = None) -> List[Booking]:
        stmt = select(Booking).order_by(Booking.created_at.desc())
        if user_id is not None:
            stmt = stmt.where(Booking.user_id == user_id)
        result = await self.session.execute(stmt)
        return list(result.scalars())

    async def insert(self, booking: Booking) -> Booking:
        self.session.add(booking)
        await self.session.flush()
        return booking

    async def update_by_key(self, booking_id: str, patch: Dict[str, Any]) -> Booking:
        booking = await self.session.get(Booking, booking_id)
        for field, value in patch.items():
            setattr(booking, field, value)
        await self.session.flush()
        return booking

    @asynccontextmanager
    async def exclusive(self, env_id: str, user_id: str) -> AsyncIterator[None]:
        try:
            await self.session.execute(
                update(Environment)
                .where(Environment.id == env_id)
                .values(lock_version=Environment.lock_version + 1)
            )
            await self.session.execute(
                update(User)
                .where(User.id == user_id)
                .values(lock_version=User.lock_version + 1)
            )
            yield
        except BaseException:
            await self.session.rollback()
            raise
        else:
            await self.session.commit()


# ---------------------------------------------------------------------------
# In-memory
# ---------------------------------------------------------------------------

class InMemoryBookingStore:
    """BookingStore over plain dicts, serialised by a single asyncio lock."""

    def __init__(self, environments: List[Environment]):
        self._environments = {e.id: e for e in environments}
        self._bookings: Dict[str, Booking] = {}
        self._lock = asyncio.Lock()

    async def get_environment(self, env_id: str) -> Optional[Environment]:
        return self._environments.get(env_id)

    async def list_environments(self) -> List[Environment]:
        return sorted(self._environments.values(), key=lambda e: e.access_level_required)

    async def get(self, booking_id: str) -> Optional[Booking]:
        return self._bookings.get(booking_id)

    async def find_live(self, now, *, env_id=None, user_id=None) -> Optional[Booking]:
        for booking in self._newest_first():
            if env_id is not None and booking.env_id != env_id:
                continue
            if user_id is not None and booking.user_id != user_id:
                continue
            if booking.is_live(now):
                return booking
        return None

    async def latest_elapsed(self, env_id: str, now: datetime.datetime) -> Optional[Booking]:
        candidates = [
            b for b in self._bookings.values()
            if b.env_id == env_id
            and b.status in LIVE_BOOKING_STATUSES
            and b.ends_at is not None
            and b.ends_at <= now
        ]
        return max(candidates, key=lambda b: b.ends_at, default=None)

    async def list(self, *, user_id: Optional[str] = None) -> List[Booking]:
        return [b for b in self._newest_first() if user_id is None or b.user_id == user_id]

    async def insert(self, booking: Booking) -> Booking:
        self._bookings[booking.id] = booking
        return booking

    async def update_by_key(self, booking_id: str, patch: Dict[str, Any]) -> Booking:
        booking = self._bookings[booking_id]
        for field, value in patch.items():
            setattr(booking, field, value)
        return booking

    @asynccontextmanager
    async def exclusive(self, env_id: str, user_id: str) -> AsyncIterator[None]:
        async with self._lock:
            yield

    def _newest_first(self) -> List[Booking]:
        return sorted(self._bookings.values(), key=lambda b: b.created_at, reverse=True)


