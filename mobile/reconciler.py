"""Merges remote history into the offline cache and prepares it for display."""

from __future__ import annotations

import logging
from concurrent.futures import Future
from dataclasses import dataclass, field
from typing import Iterable, List, Optional

from .cache import OfflineCache
from .errors import SyncError
from .models import LocationRecord
from .sync_client import RemoteSyncClient


logger = logging.getLogger(__name__)


def sort_records(records: Iterable[LocationRecord]) -> List[LocationRecord]:
    """Most recent first, by plain string comparison of ``inserted_at``."""
    return sorted(records, key=lambda r: r.inserted_at or "", reverse=True)


def date_portion(timestamp: Optional[str]) -> Optional[str]:
    """Return the calendar-date part of a timestamp string.

    That is the text before the first space, or the first ten characters when
    there is no space. Returns ``None`` for empty or too short values.
    """
    if not timestamp:
        return None
    if " " in timestamp:
        return timestamp.split(" ", 1)[0] or None
    if len(timestamp) >= 10:
        return timestamp[:10]
    return None


def filter_by_date(records: Iterable[LocationRecord], date: str) -> List[LocationRecord]:
    return [r for r in records if date_portion(r.inserted_at) == date]


@dataclass(frozen=True)
class HistoryResult:
    """What the history screen needs: the rows, plus why a refresh failed."""

    records: List[LocationRecord] = field(default_factory=list)
    error: Optional[SyncError] = None

    @property
    def is_empty(self) -> bool:
        return not self.records

    @property
    def ok(self) -> bool:
        return self.error is None

    def filtered(self, date: Optional[str]) -> "HistoryResult":
        if not date:
            return self
        return HistoryResult(records=filter_by_date(self.records, date), error=self.error)


class HistoryReconciler:
    """Offline-first history: fetch, merge into the cache, read back sorted."""

    def __init__(self, sync_client: RemoteSyncClient, cache: OfflineCache) -> None:
        self._client = sync_client
        self._cache = cache

    def cached(self) -> List[LocationRecord]:
        return sort_records(self._cache.all().values())

    def load(self, owner_identity: Optional[str] = None) -> HistoryResult:
        """Refresh from the server, falling back to the cache on failure."""
        try:
            fetched = self._client.fetch_history(owner_identity)
        except SyncError as exc:
            logger.error("Error fetching location history: %s", exc)
            return HistoryResult(records=self.cached(), error=exc)

        self._cache.merge(fetched)
        records = self.cached()
        logger.info("Loaded %s location records (%s fetched)", len(records), len(fetched))
        return HistoryResult(records=records)

    def load_async(self, owner_identity: Optional[str] = None) -> "Future[HistoryResult]":
        future: "Future[HistoryResult]" = Future()

        def _done(fetch: "Future[List[LocationRecord]]") -> None:
            error = fetch.exception()
            if error is None:
                self._cache.merge(fetch.result())
                future.set_result(HistoryResult(records=self.cached()))
            elif isinstance(error, SyncError):
                logger.error("Error fetching location history: %s", error)
                future.set_result(HistoryResult(records=self.cached(), error=error))
            else:
                future.set_exception(error)

        self._client.fetch_history_async(owner_identity).add_done_callback(_done)
        return future
