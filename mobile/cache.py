"""Offline cache of location history.

The whole cache is one JSON object stored under a single key:
``{"<owner>_<insertedAt>": {<record wire dict>}, ...}``. Older installs
stored a plain JSON list of records; such blobs are migrated to the keyed
form the first time they are read.
"""

from __future__ import annotations

import json
import logging
import threading
from typing import Dict, Iterable, List, Optional

from .errors import CacheCorrupt
from .models import LocationRecord
from .storage import KeyValueStore


logger = logging.getLogger(__name__)

CACHE_KEY = "cached_locations"


def decode_blob(blob: str) -> Dict[str, LocationRecord]:
    """Parse a stored blob into a keyed mapping.

    Raises:
        CacheCorrupt: If the blob is not JSON or has an unexpected shape.
    """
    try:
        raw = json.loads(blob)
    except ValueError as exc:
        raise CacheCorrupt(f"cache blob is not valid JSON: {exc}") from exc

    if isinstance(raw, list):
        entries = raw
    elif isinstance(raw, dict):
        entries = list(raw.values())
    else:
        raise CacheCorrupt(f"unexpected cache root type {type(raw).__name__}")

    out: Dict[str, LocationRecord] = {}
    skipped = 0
    for entry in entries:
        try:
            record = LocationRecord.from_dict(entry)
        except ValueError:
            skipped += 1
            continue
        out[record.dedup_key] = record
    if skipped:
        logger.warning("Dropped %s unreadable cache entries", skipped)
    return out


def encode_blob(entries: Dict[str, LocationRecord]) -> str:
    return json.dumps({k: r.to_dict() for k, r in entries.items()}, ensure_ascii=False)


class OfflineCache:
    """Deduplicating, last-write-wins store of location records.

    Thread-safe: all reads and mutations go through one lock, and each
    mutation rewrites the full blob.
    """

    def __init__(self, store: KeyValueStore, key: str = CACHE_KEY) -> None:
        self._store = store
        self._key = key
        self._lock = threading.RLock()
        self._entries: Optional[Dict[str, LocationRecord]] = None

    def _ensure_loaded(self) -> Dict[str, LocationRecord]:
        if self._entries is not None:
            return self._entries

        entries: Dict[str, LocationRecord] = {}
        try:
            blob = self._store.get(self._key)
            if blob:
                entries = decode_blob(blob)
                if blob.lstrip().startswith("["):
                    logger.info("Migrating legacy list cache (%s records)", len(entries))
                    self._flush(entries)
        except CacheCorrupt:
            logger.exception("Cached locations are corrupt, starting with an empty cache")
            entries = {}
        except (OSError, ValueError):
            logger.exception("Could not read cached locations")
            entries = {}
        logger.debug("Retrieved %s cached locations", len(entries))
        self._entries = entries
        return entries

    def _flush(self, entries: Dict[str, LocationRecord]) -> None:
        try:
            self._store.put(self._key, encode_blob(entries))
        except OSError:
            logger.exception("Error persisting %s cached locations", len(entries))

    def merge(self, incoming: Optional[Iterable[LocationRecord]]) -> None:
        """Insert or overwrite records keyed by their dedup key."""
        if not incoming:
            return
        records: List[LocationRecord] = list(incoming)
        if not records:
            return
        with self._lock:
            entries = dict(self._ensure_loaded())
            for record in records:
                entries[record.dedup_key] = record
            self._flush(entries)
            self._entries = entries
        logger.debug("Cached %s locations (%s total)", len(records), len(entries))

    def all(self) -> Dict[str, LocationRecord]:
        with self._lock:
            return dict(self._ensure_loaded())

    def clear(self) -> None:
        with self._lock:
            try:
                self._store.remove(self._key)
            except OSError:
                logger.exception("Error clearing cached locations")
            self._entries = {}
        logger.info("Cache cleared")

    def __len__(self) -> int:
        return len(self.all())
