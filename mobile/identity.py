"""Identity providers supplying bearer tokens to the sync client.

The sync client asks for a token on every request; any caching or refresh
of the session is the provider's business.
"""

from __future__ import annotations

import logging
import threading
from typing import Optional

import requests

from .errors import AuthError, NetworkError
from .storage import KeyValueStore


logger = logging.getLogger(__name__)

TOKEN_KEY = "auth_token"
USER_ID_KEY = "auth_user_id"


class IdentityProvider:
    """Interface for something that can authenticate API calls."""

    def get_token(self) -> str:
        raise NotImplementedError

    def current_user_id(self) -> str:
        raise NotImplementedError

    def invalidate(self) -> None:
        """Forget any cached session so the next call signs in again."""


class StaticIdentity(IdentityProvider):
    """Fixed token and user id, e.g. one issued out of band."""

    def __init__(self, token: Optional[str], user_id: Optional[str]) -> None:
        self._token = token
        self._user_id = user_id

    def get_token(self) -> str:
        if not self._token:
            raise AuthError("User not signed in - please authenticate first")
        return self._token

    def current_user_id(self) -> str:
        if not self._user_id:
            raise AuthError("User not signed in - please authenticate first")
        return self._user_id

    def invalidate(self) -> None:
        self._token = None


class ServerIdentity(IdentityProvider):
    """Signs in against the backend's ``/login`` endpoint with a password.

    The issued token and user id are persisted in the key-value store, so a
    restarted process reuses them until :meth:`invalidate` is called. A
    sign-in request that never reaches the server raises
    :class:`~mobile.errors.NetworkError`, not :class:`AuthError`.
    """

    def __init__(
        self,
        base_url: str,
        username: Optional[str],
        password: Optional[str],
        store: KeyValueStore,
        session: Optional[requests.Session] = None,
        timeout: float = 15.0,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._username = username
        self._password = password
        self._store = store
        self._session = session or requests.Session()
        self._timeout = timeout
        self._lock = threading.Lock()

    def _login(self) -> None:
        if not self._username or not self._password:
            raise AuthError("No credentials configured")
        try:
            resp = self._session.post(
                f"{self._base_url}/login",
                json={"username": self._username, "password": self._password},
                timeout=self._timeout,
            )
        except requests.Timeout as exc:
            raise NetworkError(f"Sign-in timed out after {self._timeout}s") from exc
        except requests.RequestException as exc:
            raise NetworkError(f"Sign-in request failed: {exc}") from exc

        if resp.status_code != 200:
            raise AuthError(f"Sign-in rejected with status {resp.status_code}")
        try:
            data = resp.json()
            token = data["api_key"]
            user_id = data["user_id"]
        except (ValueError, KeyError, TypeError) as exc:
            raise AuthError("Malformed sign-in response") from exc

        self._store.put(TOKEN_KEY, str(token))
        self._store.put(USER_ID_KEY, str(user_id))
        logger.info("Signed in as %s", self._username)

    def _ensure_session(self) -> None:
        with self._lock:
            if not self._store.get(TOKEN_KEY) or not self._store.get(USER_ID_KEY):
                self._login()

    def get_token(self) -> str:
        self._ensure_session()
        token = self._store.get(TOKEN_KEY)
        if not token:
            raise AuthError("User not signed in - please authenticate first")
        return token

    def current_user_id(self) -> str:
        self._ensure_session()
        user_id = self._store.get(USER_ID_KEY)
        if not user_id:
            raise AuthError("User not signed in - please authenticate first")
        return user_id

    def invalidate(self) -> None:
        with self._lock:
            self._store.remove(TOKEN_KEY)
            self._store.remove(USER_ID_KEY)
