"""
OAuthClient — one user's Google OAuth2 client.

Wires the shared ClientRegistration to an optional per-user grant and
implements the authorization-code legs:

  • consent URL generation
  • code → token exchange
  • refresh-token → access-token rotation
  • ``google.oauth2.credentials.Credentials`` for the Gmail API client,
    which refresh themselves when used past expiry
"""

from __future__ import annotations

import logging
from datetime import timezone
from typing import Any, Dict, List, Optional
from urllib.parse import urlencode

import httpx
from google.oauth2.credentials import Credentials

from connectors.exceptions import ExchangeFailed, RefreshFailed
from utils.schemas import AuthorizationGrant, ClientRegistration

logger = logging.getLogger(__name__)


class OAuthClient:
    """Authorization client scoped to a single user identity."""

    def __init__(
        self,
        user: str,
        registration: ClientRegistration,
        scopes: List[str],
        grant: Optional[AuthorizationGrant] = None,
        *,
        timeout: float = 15.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.user = user
        self.registration = registration
        self.scopes = list(scopes)
        self._grant = grant
        self._timeout = timeout
        self._transport = transport

    # ── Grant ───────────────────────────────────────────────────────────

    @property
    def grant(self) -> Optional[AuthorizationGrant]:
        return self._grant

    def set_grant(self, grant: AuthorizationGrant) -> None:
        self._grant = grant

    @property
    def has_refresh_token(self) -> bool:
        return self._grant is not None and self._grant.has_refresh_token

    # ── OAuth flow ──────────────────────────────────────────────────────

    def get_auth_url(
        self,
        state: str,
        *,
        access_type: str = "offline",
        prompt: str = "consent",
    ) -> str:
        params = {
            "client_id": self.registration.client_id,
            "redirect_uri": self.registration.redirect_uri,
            "response_type": "code",
            "scope": " ".join(self.scopes),
            "access_type": access_type,      # offline → refresh_token
            "prompt": prompt,                # consent → refresh_token every time
            "include_granted_scopes": "true",
            "state": state,
        }
        return f"{self.registration.auth_uri}?{urlencode(params)}"

    async def exchange_code(self, code: str) -> AuthorizationGrant:
        """
        Exchange an authorization code for tokens.

        The returned grant is NOT installed on the client; callers decide
        when to ``set_grant``.
        """
        try:
            data = await self._post_token({
                "code": code,
                "client_id": self.registration.client_id,
                "client_secret": self.registration.client_secret,
                "redirect_uri": self.registration.redirect_uri,
                "grant_type": "authorization_code",
            })
            return AuthorizationGrant.from_token_response(data, previous=self._grant)
        except (httpx.HTTPError, ValueError, KeyError) as exc:
            logger.error("Code exchange failed for %s: %s", self.user, exc)
            raise ExchangeFailed("Authentication failed.", error=exc)

    async def refresh(self) -> AuthorizationGrant:
        """Rotate the access token in place using the stored refresh token."""
        if not self.has_refresh_token:
            raise RefreshFailed(f"No refresh token for {self.user}")
        try:
            data = await self._post_token({
                "refresh_token": self._grant.refresh_token,
                "client_id": self.registration.client_id,
                "client_secret": self.registration.client_secret,
                "grant_type": "refresh_token",
            })
            grant = AuthorizationGrant.from_token_response(data, previous=self._grant)
        except (httpx.HTTPError, ValueError, KeyError) as exc:
            logger.warning("Token refresh failed for %s: %s", self.user, exc)
            raise RefreshFailed(f"Token refresh failed for {self.user}", error=exc)

        self._grant = grant
        logger.info("Refreshed access token for %s", self.user)
        return grant

    async def _post_token(self, form: Dict[str, str]) -> Dict[str, Any]:
        async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
            resp = await client.post(self.registration.token_uri, data=form)
            if resp.status_code >= 400:
                # Google explains rejections in the body (invalid_grant, …)
                raise httpx.HTTPStatusError(
                    f"{resp.status_code} from token endpoint: {resp.text}",
                    request=resp.request,
                    response=resp,
                )
            return resp.json()

    # ── Google credentials bridge ───────────────────────────────────────

    def credentials(self) -> Credentials:
        """
        Credentials for ``googleapiclient``.  With a refresh token and the
        client identity attached, they refresh themselves on expiry.
        """
        if self._grant is None:
            raise RefreshFailed(f"No grant installed for {self.user}")
        expiry = self._grant.expiry
        if expiry is not None:
            # google-auth compares against naive UTC
            expiry = expiry.astimezone(timezone.utc).replace(tzinfo=None)
        return Credentials(
            token=self._grant.access_token,
            refresh_token=self._grant.refresh_token,
            token_uri=self.registration.token_uri,
            client_id=self.registration.client_id,
            client_secret=self.registration.client_secret,
            scopes=self._grant.scopes or self.scopes,
            expiry=expiry,
        )

    def absorb(self, creds: Credentials) -> bool:
        """
        Copy a token that google-auth rotated during use back into the grant.
        Returns True if the grant changed.
        """
        if self._grant is None or not creds.token or creds.token == self._grant.access_token:
            return False
        expiry = creds.expiry.replace(tzinfo=timezone.utc) if creds.expiry else None
        self._grant = self._grant.model_copy(update={
            "access_token": creds.token,
            "refresh_token": creds.refresh_token or self._grant.refresh_token,
            "expiry": expiry,
        })
        logger.info("Access token for %s rotated during use", self.user)
        return True
