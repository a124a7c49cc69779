"""
Credential Domain Models

The OAuth2 credential record for one Mercado Libre account and the token
endpoint's grant response.
"""
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class CredentialRecord(BaseModel):
    """
    Stored OAuth2 credentials for one marketplace account

    Fields:
        account_id: Stable key of the marketplace account
        access_token: Short-lived bearer token
        refresh_token: Long-lived token used to obtain new access tokens
        expires_at: Instant after which access_token must not be used
        updated_at: Instant of the last successful persist
        version: Incremented on every write (compare-and-swap key)
    """

    account_id: str = Field(..., description="Marketplace account key")
    access_token: str = Field(..., description="Bearer access token")
    refresh_token: str = Field(..., description="Refresh token")
    expires_at: datetime = Field(..., description="Absolute expiry (UTC)")
    updated_at: Optional[datetime] = Field(None, description="Last persist (UTC)")
    version: int = Field(0, ge=0, description="Write version")

    @field_validator("expires_at", "updated_at")
    @classmethod
    def ensure_utc(cls, v):
        if v is None:
            return v
        return _as_utc(v)

    def is_usable_at(self, now: datetime, margin: timedelta) -> bool:
        """True while now is earlier than expires_at minus the safety margin"""
        return _as_utc(now) < self.expires_at - margin

    def to_row(self) -> Dict[str, Any]:
        """Serialize for the ml_credentials table"""
        return {
            "account_id": self.account_id,
            "access_token": self.access_token,
            "refresh_token": self.refresh_token,
            "expires_at": self.expires_at.isoformat(),
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
            "version": self.version,
        }


class TokenGrant(BaseModel):
    """Token endpoint response for refresh_token and authorization_code grants"""

    model_config = ConfigDict(extra="allow")

    access_token: str
    refresh_token: Optional[str] = None
    expires_in: int = Field(..., ge=0)
    token_type: Optional[str] = None
    scope: Optional[str] = None
    user_id: Optional[int] = None
