"""
Per-client query cache (Layer-2)

Entries are keyed by semantic tuples (see ``query_keys``) and carry their
own staleness window. ``invalidate`` only marks an entry stale; the data
stays available until the next fetch replaces it.
"""

import logging
import threading
import time
from dataclasses import dataclass

from squares.utils.errors import UpstreamError, UpstreamTimeout

logger = logging.getLogger(__name__)


class query_keys:
    """Builders for Layer-2 keys"""

    @staticmethod
    def contest(chain_id, contest_id):
        return ("contest", int(chain_id), str(contest_id))

    @staticmethod
    def game_scores(game_id):
        return ("gameScores", str(game_id))

    @staticmethod
    def game_details(game_id):
        return ("gameDetails", str(game_id))

    @staticmethod
    def boxes_contests(chain_id):
        return ("boxesContests", int(chain_id))

    @staticmethod
    def pickem_contest(contest_id):
        return ("pickemContest", int(contest_id))


@dataclass
class QueryEntry:
    data: object = None
    updated_at: float = None
    is_invalidated: bool = False
    fetch_in_progress: bool = False
    error: Exception = None

    @property
    def has_data(self):
        return self.updated_at is not None

    def is_stale(self, stale_time, now):
        if not self.has_data or self.is_invalidated:
            return True
        return now - self.updated_at >= stale_time


class QueryCache:
    def __init__(self, clock=time.monotonic):
        self._clock = clock
        self._entries = {}
        self._interval_functions = {}
        self._lock = threading.Lock()

    def register_interval(self, resource, interval_fn):
        """Register ``interval_fn(data) -> seconds | None`` for a key's resource name"""
        self._interval_functions[resource] = interval_fn

    def _entry(self, key):
        with self._lock:
            return self._entries.setdefault(key, QueryEntry())

    def get(self, key, default=None):
        entry = self._entries.get(key)
        if entry is None or not entry.has_data:
            return default
        return entry.data

    def get_entry(self, key):
        return self._entries.get(key)

    def set(self, key, data):
        entry = self._entry(key)
        entry.data = data
        entry.updated_at = self._clock()
        entry.is_invalidated = False
        entry.fetch_in_progress = False
        entry.error = None
        return data

    def is_stale(self, key, stale_time=0):
        entry = self._entries.get(key)
        return entry is None or entry.is_stale(stale_time, self._clock())

    def fetch(self, key, fetcher, stale_time=0):
        """Return fresh data for ``key``, calling ``fetcher`` when stale.

        A timed-out fetch keeps the previous data and flags the entry as
        in progress; the next poll retries. Other upstream failures keep the
        previous data when there is some and propagate otherwise.
        """
        entry = self._entry(key)
        if not entry.is_stale(stale_time, self._clock()):
            return entry.data

        entry.fetch_in_progress = True
        try:
            data = fetcher()
        except UpstreamTimeout as e:
            entry.error = e
            logger.warning(f"Fetch timed out for {key}, keeping last good value")
            if not entry.has_data:
                raise
            return entry.data
        except UpstreamError as e:
            entry.fetch_in_progress = False
            entry.error = e
            if not entry.has_data:
                raise
            logger.warning(f"Fetch failed for {key}: {e}, keeping last good value")
            return entry.data

        return self.set(key, data)

    def invalidate(self, key):
        """Mark ``key`` stale so the next fetch goes to the source"""
        entry = self._entries.get(key)
        if entry is not None:
            entry.is_invalidated = True

    def invalidate_prefix(self, prefix):
        count = 0
        for key, entry in list(self._entries.items()):
            if key[: len(prefix)] == tuple(prefix):
                entry.is_invalidated = True
                count += 1
        return count

    def remove(self, key):
        with self._lock:
            self._entries.pop(key, None)

    def clear(self):
        with self._lock:
            self._entries.clear()

    def __len__(self):
        return len(self._entries)

    def poll_interval(self, key, data=None):
        """Seconds until ``key`` should be polled again, None to stop polling.

        ``data`` overrides the cached value, e.g. a fallback served while
        the entry itself is still empty.
        """
        interval_fn = self._interval_functions.get(key[0])
        if interval_fn is None:
            return None
        return interval_fn(self.get(key) if data is None else data)
