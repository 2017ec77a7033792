"""
Error taxonomy for the OAuth connector and the mailbox query.

Every error carries a stable ``code`` (exposed to callers in JSON error
envelopes), a human ``message`` and the HTTP ``status_code`` it maps to.
"""

from __future__ import annotations

from typing import Optional


class GatewayError(Exception):
    """Base class for all errors raised by the connectors package."""

    code: str = "internal_error"
    status_code: int = 500

    def __init__(
        self,
        message: str,
        *,
        error: Optional[BaseException] = None,
        status_code: Optional[int] = None,
    ):
        super().__init__(message)
        self.message = message
        self.error = error
        if status_code is not None:
            self.status_code = status_code

    @property
    def detail(self) -> str:
        """Underlying error text, falling back to the message."""
        return str(self.error) if self.error is not None else self.message

    def to_dict(self) -> dict:
        return {"message": self.message, "error": self.detail, "code": self.code}


class ConfigMissing(GatewayError):
    """credentials.json is missing or malformed.  Fatal at startup."""

    code = "config_missing"


class MissingParameter(GatewayError):
    code = "missing_parameter"
    status_code = 400


class NotAuthorized(GatewayError):
    code = "not_authorized"
    status_code = 400

    def __init__(self, user: str):
        super().__init__(
            f'User "{user}" is not authenticated. '
            f"Please visit /authenticate/{user} first."
        )
        self.user = user


class ExchangeFailed(GatewayError):
    """Google rejected the authorization code (expired, reused, bad redirect)."""

    code = "exchange_failed"


class RefreshFailed(GatewayError):
    code = "refresh_failed"


class UpstreamQueryFailed(GatewayError):
    """The Gmail listing call itself failed."""

    code = "upstream_query_failed"


class PerItemFetchFailed(GatewayError):
    """A single message's metadata fetch failed.  Recovered by dropping it."""

    code = "per_item_fetch_failed"

    def __init__(self, message_id: str, error: BaseException):
        super().__init__(f"Failed to fetch message {message_id}", error=error)
        self.message_id = message_id


# ── Credential store ───────────────────────────────────────────────────


class CredentialStoreError(GatewayError):
    code = "credential_store_error"


class CredentialReadError(CredentialStoreError):
    """The token file exists but could not be read (permissions, I/O)."""

    code = "credential_read_error"


class CredentialDecodeError(CredentialStoreError):
    """The token file was read but is not a valid grant."""

    code = "credential_decode_error"


class CredentialWriteError(CredentialStoreError):
    code = "credential_write_error"
