"""
OAuthClientFactory — builds per-user OAuth clients.

Every client is keyed strictly by user identity: the cache and the locks
are dicts, never a single shared slot, so one user's tokens can never end
up on another user's client.
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict, List, Optional

import httpx

from connectors.oauth_client import OAuthClient
from connectors.token_store import CredentialStore
from utils.schemas import AuthorizationGrant, ClientRegistration

logger = logging.getLogger(__name__)


class _UserLock:
    """An asyncio.Lock plus the number of tasks holding or waiting on it."""

    __slots__ = ("lock", "users")

    def __init__(self):
        self.lock = asyncio.Lock()
        self.users = 0


class OAuthClientFactory:
    def __init__(
        self,
        registration: ClientRegistration,
        store: CredentialStore,
        scopes: List[str],
        *,
        cache_clients: bool = True,
        timeout: float = 15.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.registration = registration
        self.store = store
        self.scopes = list(scopes)
        self.cache_clients = cache_clients
        self._timeout = timeout
        self._transport = transport
        self._clients: Dict[str, OAuthClient] = {}
        self._locks: Dict[str, _UserLock] = {}

    @asynccontextmanager
    async def locked(self, user: str) -> AsyncIterator[None]:
        """
        Hold the user's lock.  Different users never contend, and the lock
        is dropped once no task holds or waits on it.
        """
        entry = self._locks.get(user)
        if entry is None:
            entry = self._locks[user] = _UserLock()
        entry.users += 1
        try:
            async with entry.lock:
                yield
        finally:
            entry.users -= 1
            if entry.users == 0 and self._locks.get(user) is entry:
                del self._locks[user]

    def locked_users(self) -> List[str]:
        return sorted(self._locks)

    async def client_for(self, user: str) -> OAuthClient:
        """
        Return the user's client, restoring any stored grant into it.

        Always succeeds for a user who never authorized (the client then
        carries only the registration).  Store read / decode errors
        propagate.  No network call.
        """
        self.store.path_for(user)  # rejects an empty identity

        if self.cache_clients:
            cached = self._clients.get(user)
            if cached is not None:
                return cached

        grant = await self.store.aload(user)
        client = OAuthClient(
            user,
            self.registration,
            self.scopes,
            grant,
            timeout=self._timeout,
            transport=self._transport,
        )
        if self.cache_clients and grant is not None:
            # Only cache once a grant exists, so a later exchange by another
            # worker process is still picked up from disk.
            self._clients[user] = client
        logger.debug("OAuth client for %s restored (grant=%s)", user, grant is not None)
        return client

    def install(self, user: str, client: OAuthClient, grant: AuthorizationGrant) -> None:
        """Put a fresh grant on the client and make it the user's cached client."""
        client.set_grant(grant)
        if self.cache_clients:
            self._clients[user] = client

    def evict(self, user: str) -> None:
        self._clients.pop(user, None)

    def cached_users(self) -> List[str]:
        return sorted(self._clients)
