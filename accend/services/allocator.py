#!/usr/bin/env python3
"""Environment booking allocator.

Arbitrates a small fixed set of environments under two rules: at most
one live booking per environment and at most one live booking per user
across all environments.  Liveness is always computed from stored
timestamps against ``now``; nothing sweeps or expires bookings in the
background.
"""

import datetime
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, List, Optional

from accend.clock import utcnow
from accend.errors import (
    BookingNotFound,
    EnvNotFound,
    EnvNotFree,
    ExtensionLimitExceeded,
    Forbidden,
    InsufficientAccess,
    InvalidDuration,
    InvalidExtension,
    NotActive,
    UserAlreadyHasActiveBooking,
)
from accend.models import Booking, BookingStatus, ClosedReason, Environment, new_id
from accend.services.booking_store import BookingStore

logger = logging.getLogger(__name__)

MAX_EXTENSION_MINUTES = 60

# Runs inside the exclusive section, so its writes commit or roll back with the booking
OnSaved = Callable[[Booking], Awaitable[None]]


@dataclass
class EnvironmentAvailability:
    environment: Environment
    is_free_now: bool
    free_at: datetime.datetime
    active_booking: Optional[Booking] = None


class BookingAllocator:
    def __init__(
        self,
        store: BookingStore,
        clock: Callable[[], datetime.datetime] = utcnow,
        max_extension_minutes: int = MAX_EXTENSION_MINUTES,
        max_duration_minutes: Optional[int] = None,
    ):
        self.store = store
        self.clock = clock
        self.max_extension_minutes = max_extension_minutes
        self.max_duration_minutes = max_duration_minutes

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def free_at(self, env_id: str, now: Optional[datetime.datetime] = None) -> datetime.datetime:
        """Earliest instant *env_id* has no live booking, plus its handover buffer."""
        now = now or self.clock()
        env = await self.store.get_environment(env_id)
        if env is None:
            raise EnvNotFound()
        buffer = datetime.timedelta(minutes=env.buffer_minutes or 0)

        live = await self.store.find_live(now, env_id=env_id)
        if live is not None:
            return live.ends_at + buffer

        if buffer:
            # Released bookings hand the environment back immediately
            previous = await self.store.latest_elapsed(env_id, now)
            if previous is not None and previous.ends_at + buffer > now:
                return previous.ends_at + buffer
        return now

    async def availability(self, now: Optional[datetime.datetime] = None) -> List[EnvironmentAvailability]:
        now = now or self.clock()
        out = []
        for env in await self.store.list_environments():
            live = await self.store.find_live(now, env_id=env.id)
            free_at = await self.free_at(env.id, now)
            out.append(
                EnvironmentAvailability(
                    environment=env,
                    is_free_now=live is None and free_at <= now,
                    free_at=free_at,
                    active_booking=live,
                )
            )
        return out

    async def active_booking_for(self, user_id: str) -> Optional[Booking]:
        return await self.store.find_live(self.clock(), user_id=user_id)

    async def bookings_for(self, user_id: str) -> List[Booking]:
        return await self.store.list(user_id=user_id)

    async def all_bookings(self) -> List[Booking]:
        return await self.store.list()

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    async def create_immediate_booking(
        self,
        env_id: str,
        user_id: str,
        duration_minutes: int,
        justification: str,
        *,
        access_level: int,
        is_admin: bool = False,
        on_saved: Optional[OnSaved] = None,
    ) -> Booking:
        if duration_minutes <= 0:
            raise InvalidDuration()
        if self.max_duration_minutes is not None and duration_minutes > self.max_duration_minutes:
            raise InvalidDuration(f"Bookings are limited to {self.max_duration_minutes} minutes")

        env = await self.store.get_environment(env_id)
        if env is None:
            raise EnvNotFound()
        if not is_admin and access_level < env.access_level_required:
            raise InsufficientAccess(
                f"{env.name} requires access level {env.access_level_required}"
            )

        async with self.store.exclusive(env_id, user_id):
            now = self.clock()
            if await self.store.find_live(now, user_id=user_id) is not None:
                raise UserAlreadyHasActiveBooking()

            free_at = await self.free_at(env_id, now)
            if free_at > now:
                raise EnvNotFree(free_at)

            booking = await self.store.insert(
                Booking(
                    id=new_id(),
                    env_id=env_id,
                    user_id=user_id,
                    status=BookingStatus.approved,
                    justification=justification,
                    created_at=now,
                    started_at=now,
                    ends_at=now + datetime.timedelta(minutes=duration_minutes),
                    duration_minutes=duration_minutes,
                    extension_minutes_total=0,
                )
            )
            if on_saved is not None:
                await on_saved(booking)

        logger.info(
            "Booked %s for user %s until %s (booking %s)",
            env_id, user_id, booking.ends_at.isoformat(), booking.id,
        )
        return booking

    async def extend_booking(
        self,
        booking_id: str,
        caller_id: str,
        add_minutes: int,
        *,
        is_admin: bool = False,
        on_saved: Optional[OnSaved] = None,
    ) -> Booking:
        if add_minutes <= 0:
            raise InvalidExtension()
        booking = await self._owned_booking(booking_id, caller_id, is_admin)

        async with self.store.exclusive(booking.env_id, booking.user_id):
            booking = await self.store.get(booking_id)
            now = self.clock()
            if not booking.is_live(now):
                raise NotActive()
            total = (booking.extension_minutes_total or 0) + add_minutes
            if total > self.max_extension_minutes:
                raise ExtensionLimitExceeded(
                    f"Extensions are capped at {self.max_extension_minutes} minutes in total"
                )
            booking = await self.store.update_by_key(
                booking_id,
                {
                    "ends_at": booking.ends_at + datetime.timedelta(minutes=add_minutes),
                    "extension_minutes_total": total,
                },
            )
            if on_saved is not None:
                await on_saved(booking)

        logger.info("Extended booking %s by %d min (total %d)", booking_id, add_minutes, total)
        return booking

    async def release_booking(
        self,
        booking_id: str,
        caller_id: str,
        *,
        is_admin: bool = False,
        on_saved: Optional[OnSaved] = None,
    ) -> Booking:
        booking = await self._owned_booking(booking_id, caller_id, is_admin)

        async with self.store.exclusive(booking.env_id, booking.user_id):
            booking = await self.store.get(booking_id)
            now = self.clock()
            if not booking.is_live(now):
                raise NotActive("Only a live booking can be released")
            booking = await self.store.update_by_key(
                booking_id,
                {
                    "ends_at": now,
                    "status": BookingStatus.released,
                    "released_at": now,
                    "closed_reason": ClosedReason.released,
                },
            )
            if on_saved is not None:
                await on_saved(booking)

        logger.info("Released booking %s on %s", booking_id, booking.env_id)
        return booking

    async def _owned_booking(self, booking_id: str, caller_id: str, is_admin: bool) -> Booking:
        booking = await self.store.get(booking_id)
        if booking is None:
            raise BookingNotFound()
        if not is_admin and booking.user_id != caller_id:
            raise Forbidden()
        return booking
