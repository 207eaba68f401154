"""Simple string key-value stores backing preferences and the offline cache."""

from __future__ import annotations

import json
import logging
import os
import threading
from typing import Dict, Optional


logger = logging.getLogger(__name__)


class KeyValueStore:
    """Interface for a string key-value store with all-or-nothing writes."""

    def get(self, key: str) -> Optional[str]:
        raise NotImplementedError

    def put(self, key: str, value: str) -> None:
        raise NotImplementedError

    def remove(self, key: str) -> None:
        raise NotImplementedError


class MemoryStore(KeyValueStore):
    """Process-local store, used by tests and the testing config."""

    def __init__(self, initial: Optional[Dict[str, str]] = None) -> None:
        self._data: Dict[str, str] = dict(initial or {})
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[str]:
        with self._lock:
            return self._data.get(key)

    def put(self, key: str, value: str) -> None:
        with self._lock:
            self._data[key] = value

    def remove(self, key: str) -> None:
        with self._lock:
            self._data.pop(key, None)


class JsonFileStore(KeyValueStore):
    """All keys kept in one JSON file, rewritten atomically on every change.

    A missing or unreadable file starts an empty store; the broken file is
    kept next to it with a ``.broken`` suffix.
    """

    def __init__(self, path: str) -> None:
        self._path = path
        self._lock = threading.Lock()
        self._data: Optional[Dict[str, str]] = None

    @property
    def path(self) -> str:
        return self._path

    def _load(self) -> Dict[str, str]:
        if self._data is not None:
            return self._data
        data: Dict[str, str] = {}
        if os.path.exists(self._path):
            try:
                with open(self._path, "r", encoding="utf-8") as f:
                    text = f.read()
                loaded = json.loads(text) if text.strip() else {}
                if not isinstance(loaded, dict):
                    raise ValueError("store root is not an object")
                data = {str(k): str(v) for k, v in loaded.items()}
            except ValueError:  # includes UnicodeDecodeError
                logger.warning("Preference file %s is unreadable, starting empty", self._path)
                os.replace(self._path, self._path + ".broken")
        self._data = data
        return data

    def _flush(self, data: Dict[str, str]) -> None:
        directory = os.path.dirname(self._path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        tmp = self._path + ".tmp"
        with open(tmp, "w", encoding="utf-8") as f:
            json.dump(data, f, ensure_ascii=False, indent=2)
        os.replace(tmp, self._path)

    def get(self, key: str) -> Optional[str]:
        with self._lock:
            return self._load().get(key)

    def put(self, key: str, value: str) -> None:
        with self._lock:
            data = dict(self._load())
            data[key] = value
            self._flush(data)
            self._data = data

    def remove(self, key: str) -> None:
        with self._lock:
            data = self._load()
            if key not in data:
                return
            data = dict(data)
            del data[key]
            self._flush(data)
            self._data = data
