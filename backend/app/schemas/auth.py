from pydantic import BaseModel, Field, field_validator

from app.schemas.onboarding import RoutingStateOut


def looks_like_email(value: str) -> bool:
    v = value.strip()
    return "@" in v and "." in v.split("@")[-1]


class CredentialsIn(BaseModel):
    email: str = Field(..., min_length=3, max_length=160, examples=["owner@kiraana.app"])
    password: str = Field(..., min_length=8, max_length=128)

    @field_validator("email")
    @classmethod
    def validate_email(cls, value: str) -> str:
        if not looks_like_email(value):
            raise ValueError("Invalid email")
        return value.strip().lower()


class RegisterIn(CredentialsIn):
    pass


class LoginIn(CredentialsIn):
    pass


class TokenOut(BaseModel):
    access_token: str
    refresh_token: str
    token_type: str = "bearer"


class SessionOut(TokenOut):
    onboarding: RoutingStateOut


class RefreshIn(BaseModel):
    refresh_token: str


class LogoutIn(BaseModel):
    refresh_token: str


class SimpleOKOut(BaseModel):
    ok: bool = True
