"""
AuthorizationFlow — the three-leg OAuth2 flow per user.

    absent ──begin──▶ pending ──complete──▶ granted ──use──▶ refreshed-in-place

The user identity itself is sent as the OAuth ``state`` and read back on
the callback.  There is no server-side ledger of pending authorizations:
the Google-issued code is the secret, and ``state`` is trusted as-is.
"""

from __future__ import annotations

import logging
from typing import Optional

from google.oauth2.credentials import Credentials

from connectors.client_factory import OAuthClientFactory
from connectors.exceptions import MissingParameter, NotAuthorized
from connectors.oauth_client import OAuthClient
from utils.schemas import AuthorizationGrant

logger = logging.getLogger(__name__)


class AuthorizationFlow:
    def __init__(self, factory: OAuthClientFactory, *, refresh_skew_seconds: int = 60):
        self.factory = factory
        self.store = factory.store
        self.refresh_skew_seconds = refresh_skew_seconds

    async def begin_authorization(self, user: str) -> str:
        """Return the Google consent URL for ``user``."""
        if not user:
            raise MissingParameter("User name must not be empty.")
        client = await self.factory.client_for(user)
        url = client.get_auth_url(state=user)
        logger.info("Authorization started for %s", user)
        return url

    async def complete_authorization(
        self,
        code: Optional[str],
        state: Optional[str],
    ) -> AuthorizationGrant:
        """
        Exchange ``code`` and persist the grant under the literal ``state``.

        Raises
        ------
        MissingParameter
            If either parameter is missing; nothing is read or written.
        ExchangeFailed
            If Google rejects the code.
        """
        if not code or not state:
            raise MissingParameter("Missing code or state param.")

        user = state
        async with self.factory.locked(user):
            client = await self.factory.client_for(user)
            grant = await client.exchange_code(code)
            # on disk first: a failed save must not leave the user looking authorized
            await self.store.asave(user, grant)
            self.factory.install(user, client, grant)

        logger.info("Authentication successful for %s", user)
        return grant

    async def is_authorized(self, user: str) -> bool:
        client = await self.factory.client_for(user)
        return client.has_refresh_token

    async def authorized_client(self, user: str) -> OAuthClient:
        """
        Return a live client for ``user``, refreshing the access token first
        when it is expired or about to be.

        Raises
        ------
        NotAuthorized
            If the user has no durable grant.
        """
        client = await self.factory.client_for(user)
        if not client.has_refresh_token:
            raise NotAuthorized(user)

        if client.grant.expires_within(self.refresh_skew_seconds):
            async with self.factory.locked(user):
                # another request may have refreshed while we waited, on a
                # different client object; the store is the source of truth
                stored = await self.store.aload(user)
                if stored is not None and stored.has_refresh_token \
                        and not stored.expires_within(self.refresh_skew_seconds):
                    self.factory.install(user, client, stored)
                else:
                    grant = await client.refresh()
                    await self.store.asave(user, grant)
                    self.factory.install(user, client, grant)
        return client

    async def sync_after_use(self, user: str, client: OAuthClient, creds: Credentials) -> bool:
        """Persist a token that google-auth rotated while the client was in use."""
        if not client.absorb(creds):
            return False
        await self.store.asave(user, client.grant)
        return True
