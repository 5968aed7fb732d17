from pydantic import Field

from accend.models import BookingStatus, ClosedReason
from accend.schemas.common import CamelModel, UtcDateTime


class BookingCreate(CamelModel):
    env_id: str
    duration_minutes: int
    justification: str = ""


class BookingExtend(CamelModel):
    add_minutes: int


class BookingOut(CamelModel):
    id: str
    env_id: str
    user_id: str
    status: BookingStatus
    created_at: UtcDateTime
    justification: str
    started_at: UtcDateTime | None = None
    ends_at: UtcDateTime | None = None
    released_at: UtcDateTime | None = None
    closed_reason: ClosedReason | None = None
    duration_minutes: int
    extension_minutes_total: int = Field(default=0)


class EnvironmentOut(CamelModel):
    id: str
    name: str
    is_free_now: bool
    free_at: UtcDateTime | None = None
    access_level_required: int | None = None
    buffer_minutes: int = 0
