import asyncio
import datetime

import pytest

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
from accend.models import BookingStatus, ClosedReason, Environment
from accend.services.allocator import BookingAllocator
from accend.services.booking_store import InMemoryBookingStore
from tests.conftest import T0

pytestmark = pytest.mark.anyio


def minutes(n: int) -> datetime.timedelta:
    return datetime.timedelta(minutes=n)


def _environments(buffer_minutes: int = 0):
    return [
        Environment(id="env_dev", name="Development", access_level_required=1, buffer_minutes=buffer_minutes, lock_version=0),
        Environment(id="env_test", name="Test", access_level_required=2, buffer_minutes=buffer_minutes, lock_version=0),
        Environment(id="env_staging", name="Staging", access_level_required=3, buffer_minutes=buffer_minutes, lock_version=0),
    ]


@pytest.fixture
def allocator(clock):
    return BookingAllocator(InMemoryBookingStore(_environments()), clock=clock)


async def _book(allocator, env_id="env_staging", user_id="u1", duration=60, access_level=5, is_admin=False):
    return await allocator.create_immediate_booking(
        env_id, user_id, duration, "smoke testing", access_level=access_level, is_admin=is_admin
    )


async def test_booking_starts_now_and_blocks_environment(allocator):
    booking = await _book(allocator)

    assert booking.status == BookingStatus.approved
    assert booking.started_at == T0
    assert booking.ends_at == T0 + minutes(60)
    assert booking.extension_minutes_total == 0

    active = await allocator.active_booking_for("u1")
    assert active is not None and active.id == booking.id

    staging = {a.environment.id: a for a in await allocator.availability()}["env_staging"]
    assert staging.is_free_now is False
    assert staging.free_at == T0 + minutes(60)
    assert await allocator.free_at("env_dev") == T0


async def test_extensions_are_capped_cumulatively(allocator, clock):
    booking = await _book(allocator)
    clock.advance(minutes=10)

    booking = await allocator.extend_booking(booking.id, "u1", 30)
    assert booking.ends_at == T0 + minutes(90)
    assert booking.extension_minutes_total == 30

    with pytest.raises(ExtensionLimitExceeded):
        await allocator.extend_booking(booking.id, "u1", 40)
    unchanged = await allocator.active_booking_for("u1")
    assert unchanged.ends_at == T0 + minutes(90)
    assert unchanged.extension_minutes_total == 30

    booking = await allocator.extend_booking(booking.id, "u1", 30)
    assert booking.extension_minutes_total == 60
    assert booking.ends_at == T0 + minutes(120)


async def test_other_user_cannot_book_busy_environment(allocator, clock):
    await _book(allocator)
    clock.advance(minutes=5)

    with pytest.raises(EnvNotFree) as exc:
        await _book(allocator, user_id="u2")
    assert exc.value.free_at == T0 + minutes(60)
    assert len(await allocator.all_bookings()) == 1


async def test_one_live_booking_per_user_across_environments(allocator, clock):
    await _book(allocator)
    clock.advance(minutes=5)

    with pytest.raises(UserAlreadyHasActiveBooking):
        await _book(allocator, env_id="env_test")


async def test_release_frees_environment_and_user(allocator, clock):
    booking = await _book(allocator)
    clock.advance(minutes=20)

    released = await allocator.release_booking(booking.id, "u1")
    assert released.status == BookingStatus.released
    assert released.ends_at == T0 + minutes(20)
    assert released.released_at == T0 + minutes(20)
    assert released.closed_reason == ClosedReason.released

    assert await allocator.free_at("env_staging") == clock()
    assert await allocator.active_booking_for("u1") is None

    other = await _book(allocator, user_id="u2")
    assert other.started_at == T0 + minutes(20)
    again = await _book(allocator, env_id="env_dev", user_id="u1")
    assert again.env_id == "env_dev"


async def test_booking_lapses_without_any_sweep(allocator, clock):
    booking = await _book(allocator, duration=30)
    clock.advance(minutes=30)

    assert await allocator.active_booking_for("u1") is None
    assert await allocator.free_at("env_staging") == clock()
    stored = (await allocator.bookings_for("u1"))[0]
    assert stored.id == booking.id
    assert stored.status == BookingStatus.approved

    with pytest.raises(NotActive):
        await allocator.extend_booking(booking.id, "u1", 10)
    await _book(allocator, user_id="u2")


@pytest.mark.parametrize("duration", [0, -15])
async def test_non_positive_duration_rejected(allocator, duration):
    with pytest.raises(InvalidDuration):
        await _book(allocator, duration=duration)


async def test_duration_above_configured_maximum_rejected(clock):
    allocator = BookingAllocator(InMemoryBookingStore(_environments()), clock=clock, max_duration_minutes=120)
    with pytest.raises(InvalidDuration):
        await _book(allocator, duration=121)
    assert (await _book(allocator, duration=120)).ends_at == T0 + minutes(120)


async def test_unknown_environment(allocator):
    with pytest.raises(EnvNotFound):
        await _book(allocator, env_id="env_prod")


async def test_access_level_gate_and_admin_bypass(allocator):
    with pytest.raises(InsufficientAccess):
        await _book(allocator, access_level=2)
    booking = await _book(allocator, access_level=1, is_admin=True)
    assert booking.env_id == "env_staging"


async def test_extend_validation(allocator):
    booking = await _book(allocator)

    with pytest.raises(InvalidExtension):
        await allocator.extend_booking(booking.id, "u1", 0)
    with pytest.raises(BookingNotFound):
        await allocator.extend_booking("missing", "u1", 10)
    with pytest.raises(Forbidden):
        await allocator.extend_booking(booking.id, "u2", 10)

    extended = await allocator.extend_booking(booking.id, "admin", 15, is_admin=True)
    assert extended.extension_minutes_total == 15


async def test_release_validation(allocator, clock):
    booking = await _book(allocator)

    with pytest.raises(BookingNotFound):
        await allocator.release_booking("missing", "u1")
    with pytest.raises(Forbidden):
        await allocator.release_booking(booking.id, "u2")

    await allocator.release_booking(booking.id, "admin", is_admin=True)
    clock.advance(minutes=1)
    with pytest.raises(NotActive):
        await allocator.release_booking(booking.id, "u1")


async def test_handover_buffer_delays_next_booking(clock):
    allocator = BookingAllocator(InMemoryBookingStore(_environments(buffer_minutes=15)), clock=clock)
    await _book(allocator)
    assert await allocator.free_at("env_staging") == T0 + minutes(75)

    clock.advance(minutes=65)
    with pytest.raises(EnvNotFree) as exc:
        await _book(allocator, user_id="u2")
    assert exc.value.free_at == T0 + minutes(75)

    clock.advance(minutes=10)
    assert (await _book(allocator, user_id="u2")).started_at == T0 + minutes(75)


async def test_released_booking_skips_handover_buffer(clock):
    allocator = BookingAllocator(InMemoryBookingStore(_environments(buffer_minutes=15)), clock=clock)
    booking = await _book(allocator)
    clock.advance(minutes=5)
    await allocator.release_booking(booking.id, "u1")

    assert await allocator.free_at("env_staging") == clock()


async def test_concurrent_bookings_for_same_environment(allocator):
    results = await asyncio.gather(
        *[_book(allocator, user_id=f"u{i}") for i in range(5)],
        return_exceptions=True,
    )
    booked = [r for r in results if not isinstance(r, Exception)]
    rejected = [r for r in results if isinstance(r, EnvNotFree)]
    assert len(booked) == 1
    assert len(rejected) == 4


async def test_concurrent_bookings_for_same_user(allocator):
    results = await asyncio.gather(
        _book(allocator, env_id="env_dev"),
        _book(allocator, env_id="env_test"),
        _book(allocator, env_id="env_staging"),
        return_exceptions=True,
    )
    assert sum(1 for r in results if not isinstance(r, Exception)) == 1
    assert sum(1 for r in results if isinstance(r, UserAlreadyHasActiveBooking)) == 2
