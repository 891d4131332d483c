from pydantic import Field

from homeledger.schemas.common import CamelModel


class RegisterRequest(CamelModel):
    username: str = Field(..., min_length=1, max_length=64)
    password: str = Field(..., min_length=1)
    display_name: str = Field(..., min_length=1, max_length=120)


class LoginRequest(CamelModel):
    username: str
    password: str


class AuthResponse(CamelModel):
    success: bool = True
    display_name: str


class Me(CamelModel):
    id: int
    username: str
    display_name: str


class SetupStatus(CamelModel):
    needs_setup: bool
    user_count: int
