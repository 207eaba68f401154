"""Authenticated HTTP client for submitting and fetching location records.

Every call fetches a fresh token from the identity provider before the
request is built. Failures are raised as :class:`~mobile.errors.SyncError`
subclasses; nothing here retries.
"""

from __future__ import annotations

import logging
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import requests

from .errors import AuthError, MalformedResponse, NetworkError, ServerRejected, Unauthenticated
from .identity import IdentityProvider
from .models import LocationRecord


logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 15.0
REQUEST_DATE_HEADER = "X-Request-Date"


@dataclass(frozen=True)
class Ack:
    status_code: int
    message: str = "Location sent successfully to API"


def request_date(now: Optional[datetime] = None) -> str:
    """ISO-8601 basic format, e.g. ``20240601T101500Z``."""
    now = now or datetime.now(timezone.utc)
    return now.astimezone(timezone.utc).strftime("%Y%m%dT%H%M%SZ")


class RemoteSyncClient:
    """Talks to ``POST /location`` and ``GET /location``.

    Blocking methods (:meth:`submit`, :meth:`fetch_history`) raise on
    failure. The ``*_async`` variants run them on a worker pool and return a
    :class:`concurrent.futures.Future` carrying the result or the error.
    """

    def __init__(
        self,
        base_url: str,
        identity: IdentityProvider,
        *,
        session: Optional[requests.Session] = None,
        timeout: float = DEFAULT_TIMEOUT,
        executor: Optional[ThreadPoolExecutor] = None,
        max_workers: int = 2,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._identity = identity
        self._session = session or requests.Session()
        self._timeout = timeout
        self._owns_executor = executor is None
        self._executor = executor or ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix="location-sync"
        )

    @property
    def identity(self) -> IdentityProvider:
        return self._identity

    def _auth_headers(self) -> Dict[str, str]:
        try:
            token = self._identity.get_token()
        except AuthError as exc:
            logger.error("Failed to get authentication token: %s", exc)
            raise Unauthenticated(f"Authentication failed: {exc}") from exc
        return {
            "Content-Type": "application/json",
            "Authorization": token,
            REQUEST_DATE_HEADER: request_date(),
        }

    def _user_id(self) -> str:
        try:
            return self._identity.current_user_id()
        except AuthError as exc:
            raise Unauthenticated(f"Authentication failed: {exc}") from exc

    def _send(self, method: str, url: str, **kwargs: Any) -> requests.Response:
        try:
            return self._session.request(method, url, timeout=self._timeout, **kwargs)
        except requests.Timeout as exc:
            raise NetworkError(f"Request timed out after {self._timeout}s") from exc
        except requests.RequestException as exc:
            raise NetworkError(f"Network error: {exc}") from exc

    def _raise_for_status(self, resp: requests.Response) -> None:
        if 200 <= resp.status_code < 300:
            return
        if resp.status_code == 401:
            # Token is stale; the next call signs in again.
            self._identity.invalidate()
        if resp.status_code in (401, 403):
            raise Unauthenticated(f"Request rejected with status {resp.status_code}")
        raise ServerRejected(resp.status_code, resp.text or "")

    def submit(self, record: LocationRecord) -> Ack:
        """Post one record. Raises :class:`SyncError` on failure."""
        headers = self._auth_headers()
        if record.user_id is None:
            try:
                record = record.with_user_id(self._identity.current_user_id())
            except AuthError:
                logger.warning("Could not resolve user id, sending record without it")

        logger.debug(
            "Sending location data - Lat: %s, Lng: %s, Owner: %s",
            record.latitude, record.longitude, record.owner_identity,
        )
        resp = self._send("POST", f"{self._base_url}/location", json=record.to_dict(), headers=headers)
        self._raise_for_status(resp)
        logger.info("Location updated successfully - Status: %s", resp.status_code)
        return Ack(status_code=resp.status_code)

    def fetch_history(self, owner_identity: Optional[str] = None) -> List[LocationRecord]:
        """Fetch every server-side record for the signed-in user.

        ``owner_identity`` narrows the result to one trackie when given. The
        response is parsed all-or-nothing: one bad entry fails the fetch.
        """
        headers = self._auth_headers()
        params = {"userId": self._user_id()}
        if owner_identity:
            params["owner"] = owner_identity

        resp = self._send("GET", f"{self._base_url}/location", params=params, headers=headers)
        self._raise_for_status(resp)
        try:
            payload = resp.json()
        except ValueError as exc:
            raise MalformedResponse(resp.status_code, resp.text or "",
                                    f"Failed to parse location data: {exc}") from exc
        if not isinstance(payload, list):
            raise MalformedResponse(resp.status_code, resp.text or "",
                                    "Failed to parse location data: expected a JSON array")
        try:
            records = [LocationRecord.from_dict(item) for item in payload]
        except ValueError as exc:
            raise MalformedResponse(resp.status_code, resp.text or "",
                                    f"Failed to parse location data: {exc}") from exc
        logger.info("Location history fetched successfully (%s records)", len(records))
        return records

    def submit_async(self, record: LocationRecord) -> "Future[Ack]":
        return self._executor.submit(self.submit, record)

    def fetch_history_async(self, owner_identity: Optional[str] = None) -> "Future[List[LocationRecord]]":
        return self._executor.submit(self.fetch_history, owner_identity)

    def close(self) -> None:
        if self._owns_executor:
            self._executor.shutdown(wait=False)
        self._session.close()
