"""
Shared fixtures: a client registration, a tmp-dir token store, a fake
Google token endpoint and a fake Gmail service.
"""

from typing import Any, Dict, List, Optional
from urllib.parse import parse_qs

import httpx
import pytest

from connectors.client_factory import OAuthClientFactory
from connectors.flow import AuthorizationFlow
from connectors.token_store import CredentialStore
from utils.schemas import ClientRegistration

SCOPES = ["https://www.googleapis.com/auth/gmail.readonly"]


class FakeTokenEndpoint:
    """Records token-endpoint form posts and replays queued responses."""

    def __init__(self):
        self.requests: List[Dict[str, str]] = []
        self.responses: List[httpx.Response] = []

    def reply(self, status_code: int = 200, **body: Any) -> None:
        self.responses.append(httpx.Response(status_code, json=body))

    def _handle(self, request: httpx.Request) -> httpx.Response:
        form = {k: v[0] for k, v in parse_qs(request.content.decode()).items()}
        self.requests.append(form)
        if not self.responses:
            return httpx.Response(400, json={"error": "invalid_grant"})
        return self.responses.pop(0)

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self._handle)


class _Call:
    def __init__(self, fn):
        self._fn = fn

    def execute(self):
        return self._fn()


class FakeMessages:
    """Stands in for ``service.users().messages()``."""

    def __init__(self, listing: Optional[Dict] = None, details: Optional[Dict[str, Dict]] = None,
                 fail_ids=(), list_error: Optional[Exception] = None):
        self.listing = listing if listing is not None else {}
        self.details = details or {}
        self.fail_ids = set(fail_ids)
        self.list_error = list_error
        self.list_kwargs: Dict[str, Any] = {}
        self.get_calls: List[Dict[str, Any]] = []

    def list(self, **kwargs):
        self.list_kwargs = kwargs

        def run():
            if self.list_error:
                raise self.list_error
            return self.listing

        return _Call(run)

    def get(self, **kwargs):
        self.get_calls.append(kwargs)

        def run():
            if kwargs["id"] in self.fail_ids:
                raise RuntimeError(f"boom {kwargs['id']}")
            return self.details[kwargs["id"]]

        return _Call(run)


class FakeGmailService:
    def __init__(self, messages: FakeMessages):
        self._messages = messages
        self.credentials = None

    def users(self):
        return self

    def messages(self):
        return self._messages


def message_detail(subject: Optional[str] = None, date: Optional[str] = None) -> Dict:
    headers = []
    if subject is not None:
        headers.append({"name": "Subject", "value": subject})
    if date is not None:
        headers.append({"name": "Date", "value": date})
    return {"payload": {"headers": headers}}


@pytest.fixture
def registration() -> ClientRegistration:
    return ClientRegistration(
        client_id="client-123.apps.googleusercontent.com",
        client_secret="s3cret",
        redirect_uris=["http://localhost:5001/oauth2callback", "http://localhost:5001/callback"],
    )


@pytest.fixture
def store(tmp_path) -> CredentialStore:
    return CredentialStore(tmp_path)


@pytest.fixture
def token_endpoint() -> FakeTokenEndpoint:
    return FakeTokenEndpoint()


@pytest.fixture
def factory(registration, store, token_endpoint) -> OAuthClientFactory:
    return OAuthClientFactory(registration, store, SCOPES, transport=token_endpoint.transport)


@pytest.fixture
def flow(factory) -> AuthorizationFlow:
    return AuthorizationFlow(factory)
