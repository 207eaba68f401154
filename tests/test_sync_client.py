"""Tests for the authenticated sync client."""
from __future__ import annotations

import re
from unittest.mock import Mock

import pytest
import requests

from mobile.errors import (
    AuthError,
    MalformedResponse,
    NetworkError,
    ServerRejected,
    SyncError,
    Unauthenticated,
)
from mobile.identity import TOKEN_KEY, USER_ID_KEY, IdentityProvider, ServerIdentity, StaticIdentity
from mobile.storage import MemoryStore
from mobile.sync_client import REQUEST_DATE_HEADER, Ack, RemoteSyncClient, request_date

from .conftest import BASE_URL, make_response, record


@pytest.fixture
def login_session() -> Mock:
    session = Mock(spec=requests.Session)
    session.post.return_value = make_response(200, {"status": "success", "user_id": "u-1", "api_key": "key-1"})
    return session


HISTORY = [
    {"latitude": 37.7749, "longitude": -122.4194, "userName": "alice",
     "insertionTimestamp": "2024-06-01 10:00:00", "userId": "user-1"},
    {"latitude": 40.7128, "longitude": -74.0060, "userEmail": "bob@example.com",
     "insertionTimestamp": "2024-06-02 09:30:00"},
]


class TestSubmit:
    def test_posts_record_with_auth_headers(self, client: RemoteSyncClient, http: Mock):
        ack = client.submit(record())

        assert ack == Ack(status_code=201)
        method, url = http.request.call_args.args
        kwargs = http.request.call_args.kwargs
        assert (method, url) == ("POST", f"{BASE_URL}/location")
        assert kwargs["headers"]["Authorization"] == "token-123"
        assert re.fullmatch(r"\d{8}T\d{6}Z", kwargs["headers"][REQUEST_DATE_HEADER])
        assert kwargs["timeout"] == 2.0
        assert kwargs["json"]["userName"] == "alice"
        assert kwargs["json"]["userId"] == "user-1"

    def test_keeps_explicit_user_id(self, client: RemoteSyncClient, http: Mock):
        client.submit(record(user_id="someone-else"))
        assert http.request.call_args.kwargs["json"]["userId"] == "someone-else"

    def test_missing_token_never_hits_network(self, http: Mock):
        c = RemoteSyncClient(BASE_URL, StaticIdentity(None, None), session=http)
        try:
            with pytest.raises(Unauthenticated):
                c.submit(record())
        finally:
            c.close()
        http.request.assert_not_called()

    def test_fetches_token_for_every_call(self, http: Mock):
        identity = Mock(spec=IdentityProvider)
        identity.get_token.side_effect = ["t1", "t2"]
        identity.current_user_id.return_value = "user-1"
        c = RemoteSyncClient(BASE_URL, identity, session=http)
        try:
            c.submit(record())
            c.submit(record())
        finally:
            c.close()
        tokens = [call.kwargs["headers"]["Authorization"] for call in http.request.call_args_list]
        assert tokens == ["t1", "t2"]

    def test_unknown_user_id_is_not_fatal(self, http: Mock):
        identity = Mock(spec=IdentityProvider)
        identity.get_token.return_value = "t1"
        identity.current_user_id.side_effect = AuthError("no user")
        c = RemoteSyncClient(BASE_URL, identity, session=http)
        try:
            assert c.submit(record()).status_code == 201
        finally:
            c.close()
        assert http.request.call_args.kwargs["json"]["userId"] is None

    @pytest.mark.parametrize("status", [401, 403])
    def test_auth_rejection(self, client: RemoteSyncClient, http: Mock, status: int):
        http.request.return_value = make_response(status, {"error": "Invalid token"})
        with pytest.raises(Unauthenticated):
            client.submit(record())

    def test_401_drops_cached_token(self, client: RemoteSyncClient, http: Mock, identity: StaticIdentity):
        http.request.return_value = make_response(401, {"error": "Invalid token"})
        with pytest.raises(Unauthenticated):
            client.submit(record())
        with pytest.raises(AuthError):
            identity.get_token()

    def test_403_keeps_cached_token(self, client: RemoteSyncClient, http: Mock, identity: StaticIdentity):
        http.request.return_value = make_response(403, {"error": "Forbidden"})
        with pytest.raises(Unauthenticated):
            client.submit(record())
        assert identity.get_token() == "token-123"

    def test_stale_token_is_replaced_by_fresh_sign_in(self, http: Mock, login_session: Mock):
        store = MemoryStore({TOKEN_KEY: "stale", USER_ID_KEY: "u-1"})
        ident = ServerIdentity(BASE_URL, "alice", "secret123", store, session=login_session)
        http.request.side_effect = [
            make_response(401, {"error": "Invalid token"}),
            make_response(201, {"status": "success"}),
        ]
        c = RemoteSyncClient(BASE_URL, ident, session=http)
        try:
            with pytest.raises(Unauthenticated):
                c.submit(record())
            assert c.submit(record()) == Ack(status_code=201)
        finally:
            c.close()

        first, second = http.request.call_args_list
        assert first.kwargs["headers"]["Authorization"] == "stale"
        assert second.kwargs["headers"]["Authorization"] == "key-1"
        assert login_session.post.call_count == 1
        assert store.get(TOKEN_KEY) == "key-1"

    @pytest.mark.parametrize("error", [requests.Timeout("slow"), requests.ConnectionError("refused")])
    def test_unreachable_sign_in_is_a_network_error(self, http: Mock, login_session: Mock, error):
        login_session.post.side_effect = error
        ident = ServerIdentity(BASE_URL, "alice", "secret123", MemoryStore(), session=login_session)
        c = RemoteSyncClient(BASE_URL, ident, session=http)
        try:
            with pytest.raises(NetworkError):
                c.submit(record())
            with pytest.raises(NetworkError):
                c.fetch_history()
        finally:
            c.close()
        http.request.assert_not_called()

    def test_server_error_carries_code_and_body(self, client: RemoteSyncClient, http: Mock):
        http.request.return_value = make_response(500, text="boom")
        with pytest.raises(ServerRejected) as excinfo:
            client.submit(record())
        assert excinfo.value.code == 500
        assert excinfo.value.body == "boom"
        assert "500" in str(excinfo.value)

    def test_timeout_is_retryable_network_error(self, client: RemoteSyncClient, http: Mock):
        http.request.side_effect = requests.Timeout("read timed out")
        with pytest.raises(NetworkError) as excinfo:
            client.submit(record())
        assert excinfo.value.retryable is True

    def test_connection_error(self, client: RemoteSyncClient, http: Mock):
        http.request.side_effect = requests.ConnectionError("refused")
        with pytest.raises(NetworkError):
            client.submit(record())

    def test_async_carries_error(self, client: RemoteSyncClient, http: Mock):
        http.request.return_value = make_response(503, text="maintenance")
        future = client.submit_async(record())
        assert isinstance(future.exception(timeout=5), ServerRejected)

    def test_async_success(self, client: RemoteSyncClient):
        assert client.submit_async(record()).result(timeout=5).status_code == 201


class TestFetchHistory:
    def test_parses_records(self, client: RemoteSyncClient, http: Mock):
        http.request.return_value = make_response(200, HISTORY)
        records = client.fetch_history()

        assert [r.owner_identity for r in records] == ["alice", "bob@example.com"]
        method, url = http.request.call_args.args
        assert (method, url) == ("GET", f"{BASE_URL}/location")
        assert http.request.call_args.kwargs["params"] == {"userId": "user-1"}

    def test_owner_filter_is_sent(self, client: RemoteSyncClient, http: Mock):
        http.request.return_value = make_response(200, [])
        assert client.fetch_history("alice") == []
        assert http.request.call_args.kwargs["params"] == {"userId": "user-1", "owner": "alice"}

    def test_invalid_json(self, client: RemoteSyncClient, http: Mock):
        http.request.return_value = make_response(200, text="<html>oops</html>")
        with pytest.raises(MalformedResponse):
            client.fetch_history()

    def test_non_array_body(self, client: RemoteSyncClient, http: Mock):
        http.request.return_value = make_response(200, {"locations": HISTORY})
        with pytest.raises(MalformedResponse):
            client.fetch_history()

    def test_one_bad_entry_fails_the_whole_fetch(self, client: RemoteSyncClient, http: Mock):
        http.request.return_value = make_response(200, HISTORY + [{"latitude": "north"}])
        with pytest.raises(MalformedResponse) as excinfo:
            client.fetch_history()
        assert isinstance(excinfo.value, ServerRejected)
        assert isinstance(excinfo.value, SyncError)

    def test_unauthenticated(self, client: RemoteSyncClient, http: Mock):
        http.request.return_value = make_response(401, {"error": "Invalid token"})
        with pytest.raises(Unauthenticated):
            client.fetch_history()


def test_request_date_format():
    from datetime import datetime, timezone

    assert request_date(datetime(2024, 6, 1, 10, 15, 0, tzinfo=timezone.utc)) == "20240601T101500Z"
