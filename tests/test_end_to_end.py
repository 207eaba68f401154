"""The tracking engine talking to the reference backend over a real requests session."""
from __future__ import annotations

import threading
from urllib.parse import urlsplit

import pytest
import requests
from requests.adapters import BaseAdapter
from requests.structures import CaseInsensitiveDict

from mobile.cache import OfflineCache
from mobile.config import TestingConfig
from mobile.errors import Unauthenticated
from mobile.identity import ServerIdentity, StaticIdentity
from mobile.location import ManualLocationProvider
from mobile.reconciler import HistoryReconciler
from mobile.storage import MemoryStore
from mobile.sync_client import RemoteSyncClient
from mobile.tracker import LocationTracker
from server.app import create_app, db

from .conftest import record, wait_for


BASE_URL = "http://tracker.test/api"


class FlaskAdapter(BaseAdapter):
    """Routes requests made through a ``requests.Session`` to a Flask test client."""

    def __init__(self, app):
        super().__init__()
        self._client = app.test_client()
        self._lock = threading.Lock()

    def send(self, request, **kwargs):
        url = urlsplit(request.url)
        headers = {k: v for k, v in request.headers.items() if k.lower() != "content-length"}
        # one request at a time against the in-memory database
        with self._lock:
            resp = self._client.open(
                url.path,
                method=request.method,
                query_string=url.query,
                headers=headers,
                data=request.body,
            )
        out = requests.Response()
        out.status_code = resp.status_code
        out._content = resp.get_data()
        out.headers = CaseInsensitiveDict(resp.headers)
        out.encoding = "utf-8"
        out.url = request.url
        out.request = request
        return out

    def close(self):
        pass


@pytest.fixture
def app():
    app = create_app("testing")
    with app.app_context():
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def session(app):
    s = requests.Session()
    s.mount("http://tracker.test", FlaskAdapter(app))
    app.test_client().post("/api/register", json={"username": "alice", "password": "secret123"})
    return s


@pytest.fixture
def store():
    return MemoryStore()


@pytest.fixture
def remote(session, store):
    identity = ServerIdentity(BASE_URL, "alice", "secret123", store, session=session)
    c = RemoteSyncClient(BASE_URL, identity, session=session)
    yield c
    c.close()


def test_submit_then_fetch(remote):
    remote.submit(record(owner="grandma", ts="2024-06-01 10:00:00"))
    remote.submit(record(owner="grandma", ts="2024-06-02 10:00:00"))

    history = remote.fetch_history()
    assert [r.inserted_at for r in history] == ["2024-06-02 10:00:00", "2024-06-01 10:00:00"]
    assert all(r.user_id == remote.identity.current_user_id() for r in history)


def test_history_reconciles_into_cache(remote, store):
    remote.submit(record(owner="grandma", ts="2024-06-01 10:00:00"))
    remote.submit(record(owner="kid", ts="2024-06-01 11:00:00"))
    reconciler = HistoryReconciler(remote, OfflineCache(store))

    result = reconciler.load("kid")
    assert result.ok
    assert [r.owner_identity for r in result.records] == ["kid"]

    result = reconciler.load()
    assert len(result.records) == 2
    assert reconciler.load().records == result.records


def test_bad_token_is_unauthenticated(session):
    c = RemoteSyncClient(BASE_URL, StaticIdentity("not-a-token", "u-1"), session=session)
    try:
        with pytest.raises(Unauthenticated):
            c.submit(record())
    finally:
        c.close()


def test_tracking_loop_delivers_to_server(remote, store):
    provider = ManualLocationProvider(fixed_position=(48.8566, 2.3522))
    tracker = LocationTracker(store, remote, provider, cfg=TestingConfig, seconds_per_minute=0.05)
    try:
        tracker.start_tracking("grandma", 1)
        assert wait_for(lambda: len(remote.fetch_history()) >= 2, timeout=5.0)
    finally:
        tracker.scheduler.stop()

    result = tracker.get_history(owner_identity="grandma")
    assert result.ok
    assert {(r.latitude, r.longitude) for r in result.records} == {(48.8566, 2.3522)}
