"""
HTTP-level tests for /authenticate, /oauth2callback and /qr.
"""

from datetime import datetime, timedelta, timezone
from urllib.parse import parse_qs, urlparse

import pytest
from fastapi.testclient import TestClient

from api.dependencies import get_flow, get_mailbox
from config.settings import Settings
from connectors.gmail import MailboxQueryService
from main import create_app
from utils.schemas import AuthorizationGrant

from conftest import FakeGmailService, FakeMessages, message_detail


@pytest.fixture
def messages() -> FakeMessages:
    return FakeMessages(listing={})


@pytest.fixture
def client(tmp_path, registration, flow, messages):
    app = create_app(settings=Settings(token_dir=str(tmp_path)), registration=registration)
    mailbox = MailboxQueryService(Settings(), service_builder=lambda creds: FakeGmailService(messages))
    app.dependency_overrides[get_flow] = lambda: flow
    app.dependency_overrides[get_mailbox] = lambda: mailbox
    with TestClient(app) as c:
        yield c


def _authorize(store, user: str) -> None:
    store.save(user, AuthorizationGrant(
        access_token="ya29.a",
        refresh_token="1//r",
        expiry=datetime.now(timezone.utc) + timedelta(hours=1),
    ))


class TestAuthenticate:
    def test_redirects_to_consent(self, client):
        resp = client.get("/authenticate/alice", follow_redirects=False)
        assert resp.status_code == 302
        location = resp.headers["location"]
        assert location.startswith("https://accounts.google.com/o/oauth2/auth?")
        assert parse_qs(urlparse(location).query)["state"] == ["alice"]

    def test_startup_wires_connectors(self, client):
        assert client.app.state.store.token_dir.is_dir()
        assert client.app.state.registration.client_id.startswith("client-123")


class TestCallback:
    def test_success_persists_grant(self, client, store, token_endpoint):
        token_endpoint.reply(access_token="ya29.a", refresh_token="1//r", expires_in=3600)
        resp = client.get("/oauth2callback", params={"code": "4/code", "state": "alice"})
        assert resp.status_code == 200
        assert resp.text == "Authentication successful for alice. Token saved."
        assert store.load("alice").refresh_token == "1//r"

    def test_callback_alias(self, client, store, token_endpoint):
        token_endpoint.reply(access_token="ya29.b", refresh_token="1//b", expires_in=3600)
        resp = client.get("/callback", params={"code": "4/code", "state": "bob"})
        assert resp.status_code == 200
        assert store.exists("bob")

    @pytest.mark.parametrize("params", [{"state": "alice"}, {"code": "4/code"}, {}])
    def test_missing_params(self, client, store, params):
        resp = client.get("/oauth2callback", params=params)
        assert resp.status_code == 400
        assert resp.text == "Missing code or state param."
        assert store.list_users() == []

    def test_rejected_code(self, client, store, token_endpoint):
        token_endpoint.reply(400, error="invalid_grant")
        resp = client.get("/oauth2callback", params={"code": "used", "state": "alice"})
        assert resp.status_code == 500
        assert resp.text == "Authentication failed."
        assert not store.exists("alice")


class TestQr:
    def test_not_authorized(self, client):
        resp = client.get("/qr/stranger")
        assert resp.status_code == 400
        body = resp.json()
        assert body["code"] == "not_authorized"
        assert "/authenticate/stranger" in body["message"]

    def test_empty_feed_is_empty_array(self, client, store):
        _authorize(store, "alice")
        resp = client.get("/qr/alice")
        assert resp.status_code == 200
        assert resp.json() == []

    def test_feed_records(self, client, store, messages):
        _authorize(store, "alice")
        messages.listing = {"messages": [{"id": "m1"}, {"id": "m2"}]}
        messages.details = {
            "m1": message_detail("来社", "Tue, 07 May 2024 10:00:00 +0000"),
            "m2": message_detail("訪問", "Wed, 08 May 2024 10:00:00 +0000"),
        }
        resp = client.get("/qr/alice")
        assert resp.status_code == 200
        body = resp.json()
        assert len(body) == 2
        assert body[0]["person"] == "alice"
        assert body[0]["QR-data"] == "abcdefghijk0123456"
        assert body[0]["place"] == "shibuya-OOOO"
        assert body[1]["mail"].endswith("#inbox/m2")

    def test_listing_failure_is_500_envelope(self, client, store, messages):
        _authorize(store, "alice")
        messages.list_error = RuntimeError("backend down")
        resp = client.get("/qr/alice")
        assert resp.status_code == 500
        body = resp.json()
        assert body["message"] == "Failed to fetch emails"
        assert body["error"] == "backend down"
        assert body["code"] == "upstream_query_failed"

    def test_corrupt_token_file_is_500_not_reauth(self, client, store):
        store.path_for("alice").write_text("{broken")
        resp = client.get("/qr/alice")
        assert resp.status_code == 500
        assert resp.json()["code"] == "credential_decode_error"

    def test_users_do_not_see_each_others_grant(self, client, store, token_endpoint):
        token_endpoint.reply(access_token="ya29.a", refresh_token="1//r", expires_in=3600)
        client.get("/oauth2callback", params={"code": "4/code", "state": "alice"})

        assert client.get("/qr/alice").status_code == 200
        assert client.get("/qr/bob").status_code == 400

    def test_process_time_header(self, client):
        resp = client.get("/qr/stranger")
        assert "x-process-time" in resp.headers
