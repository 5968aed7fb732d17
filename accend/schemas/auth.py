from pydantic import BaseModel, EmailStr, Field, field_validator

from accend.models import Role
from accend.schemas.common import CamelModel


class SignupRequest(BaseModel):
    name: str
    email: EmailStr
    password: str = Field(min_length=6)
    role: Role = Role.developer

    @field_validator("name")
    @classmethod
    def name_nonempty(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("name must not be blank")
        return v


class LoginRequest(BaseModel):
    email: EmailStr
    password: str = Field(min_length=1)


class RefreshRequest(BaseModel):
    refresh_token: str


class UpdateNameRequest(BaseModel):
    name: str


class PublicUser(CamelModel):
    id: str
    name: str
    email: str
    role: Role
    access_level: int


class AuthPayload(CamelModel):
    user: PublicUser
    access_token: str
    refresh_token: str
    token_type: str = "bearer"


class TokenResponse(BaseModel):
    access_token: str
    refresh_token: str
    token_type: str = "bearer"


class WhoAmIResponse(PublicUser):
    permissions: list[str]
