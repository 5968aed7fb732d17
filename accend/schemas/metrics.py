from pydantic import Field

from accend.schemas.common import CamelModel


class MetricsMe(CamelModel):
    active_accesses: int
    pending: int
    # to_camel would emit "expiring7D"
    expiring7d: int = Field(alias="expiring7d")
    active_deployment_locks: int


class EnvironmentUsage(CamelModel):
    env_id: str
    name: str
    total_bookings: int
    live_now: int
    released_early: int
    booked_minutes: int


class UsageAnalytics(CamelModel):
    environments: list[EnvironmentUsage]
    requests_by_status: dict[str, int]
