"""Shared pytest fixtures."""
from __future__ import annotations

import json
import time
from concurrent.futures import Future
from typing import Any, Optional
from unittest.mock import Mock

import pytest
import requests

from mobile.cache import OfflineCache
from mobile.identity import StaticIdentity
from mobile.models import LocationRecord
from mobile.storage import MemoryStore
from mobile.sync_client import RemoteSyncClient


BASE_URL = "http://tracker.test/api"


def make_response(status: int, payload: Any = None, text: Optional[str] = None) -> requests.Response:
    """Build a real ``requests.Response`` with the given body."""
    resp = requests.Response()
    resp.status_code = status
    body = json.dumps(payload) if payload is not None else (text or "")
    resp._content = body.encode("utf-8")
    resp.encoding = "utf-8"
    return resp


def done_future(result: Any = None, error: Optional[BaseException] = None) -> Future:
    f: Future = Future()
    if error is not None:
        f.set_exception(error)
    else:
        f.set_result(result)
    return f


def wait_for(predicate, timeout: float = 2.0) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return predicate()


def record(owner: str = "alice", ts: str = "2024-06-01 10:00:00",
           lat: float = 37.7749, lng: float = -122.4194, user_id: Optional[str] = None) -> LocationRecord:
    return LocationRecord(latitude=lat, longitude=lng, owner_identity=owner, inserted_at=ts, user_id=user_id)


@pytest.fixture
def store() -> MemoryStore:
    return MemoryStore()


@pytest.fixture
def cache(store: MemoryStore) -> OfflineCache:
    return OfflineCache(store)


@pytest.fixture
def identity() -> StaticIdentity:
    return StaticIdentity("token-123", "user-1")


@pytest.fixture
def http() -> Mock:
    session = Mock(spec=requests.Session)
    session.request.return_value = make_response(201, {"status": "success"})
    return session


@pytest.fixture
def client(identity: StaticIdentity, http: Mock):
    c = RemoteSyncClient(BASE_URL, identity, session=http, timeout=2.0)
    yield c
    c.close()
