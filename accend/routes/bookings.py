#!/usr/bin/env python3
"""FastAPI routers for environment availability, bookings and the iCAL export."""

from typing import List, Optional

from fastapi import APIRouter, Depends
from fastapi.responses import PlainTextResponse
from ics import Calendar, Event
from sqlalchemy.ext.asyncio import AsyncSession

from accend.db import get_session
from accend.deps import Allocator, CurrentUser, require_roles
from accend.models import Role
from accend.schemas.bookings import BookingCreate, BookingExtend, BookingOut, EnvironmentOut
from accend.services import ledger

router = APIRouter(prefix="/api/bookings", tags=["bookings"])
environments_router = APIRouter(prefix="/api/environments", tags=["environments"])


# ---------------------------------------------------------------------------
# Environments
# ---------------------------------------------------------------------------

@environments_router.get("/", response_model=List[EnvironmentOut])
async def list_environments(allocator: Allocator, _user: CurrentUser):
    """Every environment with its current free/busy state."""
    return [
        EnvironmentOut(
            id=a.environment.id,
            name=a.environment.name,
            is_free_now=a.is_free_now,
            free_at=a.free_at,
            access_level_required=a.environment.access_level_required,
            buffer_minutes=a.environment.buffer_minutes,
        )
        for a in await allocator.availability()
    ]


# ---------------------------------------------------------------------------
# Bookings
# ---------------------------------------------------------------------------

@router.get("/me/active", response_model=Optional[BookingOut])
async def active_booking_for_caller(allocator: Allocator, user: CurrentUser):
    return await allocator.active_booking_for(user.id)


@router.get("/me", response_model=List[BookingOut])
async def bookings_for_caller(allocator: Allocator, user: CurrentUser):
    return await allocator.bookings_for(user.id)


@router.get("/", response_model=List[BookingOut], dependencies=[Depends(require_roles(Role.admin))])
async def all_bookings(allocator: Allocator):
    return await allocator.all_bookings()


@router.post("/", response_model=BookingOut, status_code=201)
async def create_booking(
    body: BookingCreate,
    allocator: Allocator,
    user: CurrentUser,
    session: AsyncSession = Depends(get_session),
):
    """Book an environment starting now; also files a matching approved request."""
    booking = await allocator.create_immediate_booking(
        body.env_id,
        user.id,
        body.duration_minutes,
        body.justification,
        access_level=user.access_level,
        is_admin=user.role == Role.admin,
        on_saved=lambda b: ledger.mirror_booking(session, b, user),
    )
    return booking


@router.post("/{booking_id}/extend", response_model=BookingOut)
async def extend_booking(
    booking_id: str,
    body: BookingExtend,
    allocator: Allocator,
    user: CurrentUser,
    session: AsyncSession = Depends(get_session),
):
    booking = await allocator.extend_booking(
        booking_id,
        user.id,
        body.add_minutes,
        is_admin=user.role == Role.admin,
        on_saved=lambda b: ledger.sync_booking_mirror(session, b),
    )
    return booking


@router.post("/{booking_id}/release", response_model=BookingOut)
async def release_booking(
    booking_id: str,
    allocator: Allocator,
    user: CurrentUser,
    session: AsyncSession = Depends(get_session),
):
    booking = await allocator.release_booking(
        booking_id,
        user.id,
        is_admin=user.role == Role.admin,
        on_saved=lambda b: ledger.sync_booking_mirror(session, b),
    )
    return booking


# ---------------------------------------------------------------------------
# iCAL export
# ---------------------------------------------------------------------------

@router.get("/export/ical", response_class=PlainTextResponse)
async def export_ical(allocator: Allocator, _user: CurrentUser) -> str:
    """Export the live booking of every environment as an iCAL feed."""
    cal = Calendar()
    for a in await allocator.availability():
        b = a.active_booking
        if b is None:
            continue
        e = Event(
            name=f"[{a.environment.name.upper()}] booked",
            begin=b.started_at,
            end=b.ends_at,
            uid=f"{b.id}@accend",
            description=f"Booking: {b.id}\nUser: {b.user_id}\n{b.justification or ''}",
        )
        cal.events.add(e)
    return cal.serialize()
