from pydantic import BaseModel, Field

from app.auth.models import APP_ROLES


class TokenRequest(BaseModel):
    # email or a short login name; both grants share this body
    email: str | None = Field(default=None, max_length=255)
    password: str | None = Field(default=None, max_length=72)
    refresh_token: str | None = None


class UserMetadata(BaseModel):
    display_name: str | None = Field(default=None, max_length=255)
    avatar_url: str | None = Field(default=None, max_length=1024)
    phone: str | None = Field(default=None, max_length=64)
    job_title: str | None = Field(default=None, max_length=255)
    language: str | None = Field(default=None, max_length=16)


class UserUpdateRequest(BaseModel):
    password: str | None = Field(default=None, min_length=6, max_length=72)
    # unknown keys (role, tenant_id, ...) are accepted and ignored
    data: dict | None = None


class SignupData(BaseModel):
    display_name: str | None = Field(default=None, max_length=255)
    role: str = Field(default="viewer", description=" | ".join(APP_ROLES))


class SignupRequest(BaseModel):
    email: str = Field(min_length=1, max_length=255)
    password: str = Field(min_length=6, max_length=72)
    data: SignupData = Field(default_factory=SignupData)
