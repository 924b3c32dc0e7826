from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class TokenRequest(BaseModel):
    """API key plus the email of the owner the tokens are issued for."""

    model_config = ConfigDict(populate_by_name=True)

    api_key: Optional[str] = Field(default=None, alias="apiKey")
    email: str = Field(..., min_length=3, pattern=r"^[^@\s]+@[^@\s]+$")

    @field_validator("email")
    @classmethod
    def _fold_email(cls, value: str) -> str:
        return value.strip().casefold()


class TokenResponse(BaseModel):
    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_in: int
    owner_email: str


class RefreshRequest(BaseModel):
    refresh_token: str = Field(..., min_length=1)


class WhoAmI(BaseModel):
    identity: str
    scheme: str
    owner_id: Optional[int] = None
    owner_name: Optional[str] = None
