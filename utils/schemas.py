"""
Pydantic schemas for the OAuth connector and the QR message feed.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


_GOOGLE_AUTH_URI = "https://accounts.google.com/o/oauth2/auth"
_GOOGLE_TOKEN_URI = "https://oauth2.googleapis.com/token"


# ═══════════════════════════════════════════════════════════════════════════════
# Client registration — the application's own identity at Google
# ═══════════════════════════════════════════════════════════════════════════════


class ClientRegistration(BaseModel):
    """
    Loaded once from ``credentials.json`` and shared read-only by all users.
    """

    model_config = ConfigDict(frozen=True)

    client_id: str = Field(min_length=1)
    client_secret: str = Field(min_length=1)
    redirect_uris: List[str] = Field(min_length=1)
    auth_uri: str = _GOOGLE_AUTH_URI
    token_uri: str = _GOOGLE_TOKEN_URI

    @property
    def redirect_uri(self) -> str:
        return self.redirect_uris[0]

    @classmethod
    def from_client_config(cls, data: Dict[str, Any]) -> "ClientRegistration":
        """Accept Google's ``{"web": {...}}`` or ``{"installed": {...}}`` layout."""
        if not isinstance(data, dict):
            raise ValueError("expected a JSON object")
        section = data.get("web") or data.get("installed")
        if not isinstance(section, dict):
            raise ValueError("expected a 'web' or 'installed' section")
        return cls.model_validate(section)


# ═══════════════════════════════════════════════════════════════════════════════
# Authorization grant — per-user token material
# ═══════════════════════════════════════════════════════════════════════════════


class AuthorizationGrant(BaseModel):
    access_token: str
    refresh_token: Optional[str] = None
    token_type: str = "Bearer"
    expiry: Optional[datetime] = None
    scopes: List[str] = Field(default_factory=list)

    @model_validator(mode="before")
    @classmethod
    def _accept_google_token_file(cls, data: Any) -> Any:
        """
        Token files written by Google's client libraries use ``expiry_date``
        (epoch milliseconds) and a space-separated ``scope``.
        """
        if not isinstance(data, dict):
            return data
        data = dict(data)
        if data.get("expiry") is None and data.get("expiry_date") is not None:
            data["expiry"] = datetime.fromtimestamp(
                float(data.pop("expiry_date")) / 1000, tz=timezone.utc
            )
        if "scopes" not in data and isinstance(data.get("scope"), str):
            data["scopes"] = data.pop("scope").split()
        return data

    @field_validator("expiry")
    @classmethod
    def _utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        if value is not None and value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value

    @classmethod
    def from_token_response(
        cls,
        data: Dict[str, Any],
        *,
        previous: Optional["AuthorizationGrant"] = None,
        now: Optional[datetime] = None,
    ) -> "AuthorizationGrant":
        """
        Build a grant from a token-endpoint JSON body.

        Google omits ``refresh_token`` on refresh (and sometimes on
        re-consent); the previous one is carried over in that case.
        """
        now = now or datetime.now(timezone.utc)
        expires_in = data.get("expires_in")
        scope = data.get("scope")
        return cls(
            access_token=data["access_token"],
            refresh_token=data.get("refresh_token") or (previous.refresh_token if previous else None),
            token_type=data.get("token_type", "Bearer"),
            expiry=now + timedelta(seconds=int(expires_in)) if expires_in is not None else None,
            scopes=scope.split() if scope else (list(previous.scopes) if previous else []),
        )

    @property
    def has_refresh_token(self) -> bool:
        return bool(self.refresh_token)

    def expires_within(self, seconds: int, now: Optional[datetime] = None) -> bool:
        """True if the access token is expired or will be within ``seconds``."""
        if self.expiry is None:
            return False
        now = now or datetime.now(timezone.utc)
        return self.expiry <= now + timedelta(seconds=seconds)


# ═══════════════════════════════════════════════════════════════════════════════
# QR feed
# ═══════════════════════════════════════════════════════════════════════════════


class MessageRecord(BaseModel):
    """One normalized mail entry for the check-in display."""

    model_config = ConfigDict(populate_by_name=True)

    id: str
    date: str
    place: str
    person: str
    mail: str
    qr_data: str = Field(alias="QR-data")
    subject: str


class ErrorEnvelope(BaseModel):
    message: str
    error: str
    code: str
