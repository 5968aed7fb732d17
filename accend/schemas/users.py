from pydantic import BaseModel, EmailStr, Field, field_validator

from accend.models import Role, User
from accend.schemas.common import CamelModel, UtcDateTime


class UserOut(CamelModel):
    id: str
    name: str
    email: str
    role: Role
    access_level: int
    is_active: bool
    created_at: UtcDateTime
    last_login: UtcDateTime | None = None
    permissions: list[str]

    @classmethod
    def from_user(cls, u: User) -> "UserOut":
        return cls(
            id=u.id,
            name=u.name,
            email=u.email,
            role=u.role,
            access_level=u.access_level,
            is_active=u.is_active,
            created_at=u.created_at,
            last_login=u.last_login,
            permissions=u.role.permissions(),
        )


class CreateUserRequest(CamelModel):
    name: str
    email: EmailStr
    password: str
    role: Role = Role.developer
    access_level: int = Field(default=1, ge=1, le=5)

    @field_validator("name")
    @classmethod
    def name_nonempty(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("name must not be blank")
        return v

    @field_validator("password")
    @classmethod
    def password_length(cls, v: str) -> str:
        if len(v) < 6:
            raise ValueError("password must be at least 6 characters")
        return v


class UpdateUserRequest(CamelModel):
    role: Role | None = None
    access_level: int | None = Field(default=None, ge=1, le=5)
    is_active: bool | None = None
    password: str | None = None
