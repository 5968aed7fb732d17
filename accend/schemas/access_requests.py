import datetime

from pydantic import Field

from accend.models import AccessRequest, RequestStatus, ResourceType, RiskLevel, Role
from accend.schemas.common import CamelModel, UtcDateTime


class RequestCreate(CamelModel):
    resource_id: str = Field(min_length=1)
    justification: str = Field(min_length=6)
    duration_hours: int | None = Field(default=None, gt=0)


class RequestDecision(CamelModel):
    approve: bool
    decision_note: str | None = None


class RequestOut(CamelModel):
    id: str
    user_id: str
    resource_id: str
    resource_type: ResourceType
    status: RequestStatus
    justification: str
    created_at: UtcDateTime
    duration_hours: int | None = None
    approved_at: UtcDateTime | None = None
    expires_at: UtcDateTime | None = None
    approver_id: str | None = None
    approver_name: str | None = None
    decision_note: str | None = None
    booking_id: str | None = None
    active: bool = False

    @classmethod
    def from_request(cls, r: AccessRequest, now: datetime.datetime) -> "RequestOut":
        return cls.model_validate(r).model_copy(update={"active": r.is_active(now)})


class AdminRequestOut(CamelModel):
    request: RequestOut
    requester_name: str
    requester_email: str


class ResourceOut(CamelModel):
    id: str
    name: str
    type: ResourceType
    risk_level: RiskLevel
    approver_role: Role
    tags: list[str]
    allowed_requester_roles: list[Role]
    details: dict = Field(default_factory=dict)
