"""
Key-addressed cache of fetched record sets.

Data-bound views ask for records by data-source key (normally a URL). The
cache guarantees at most one request in flight per key: a second fetch() for
a key that is already loading waits on the same request instead of issuing
another. Failures are not cached, so the next fetch() retries.

Each entry moves through absent -> pending -> present (or back to absent on
failure). Listeners are notified on both transitions, which is how views
that did not await the fetch learn that data arrived.
"""
import asyncio
from enum import Enum
import functools
import json
import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence
import urllib.error
import urllib.request

from dashstate.config import CacheConfig
from dashstate.errors import FetchError
from dashstate.settings import get_engine_config

logger = logging.getLogger(__name__)

Record = Dict[str, Any]
Fetcher = Callable[[str], Awaitable[List[Record]]]


class EntryState(Enum):
    ABSENT = "absent"
    PENDING = "pending"
    PRESENT = "present"


def extract_records(document: Any, records_path: Sequence[str], key: str) -> List[Record]:
    """Walk records_path into a decoded JSON document and return the record array.

    Raises:
        FetchError: If the path is missing or does not lead to a list of objects.
    """
    node = document
    for part in records_path:
        if not isinstance(node, dict) or part not in node:
            raise FetchError(key, message=f"Response has no '{'.'.join(records_path)}' field")
        node = node[part]
    if not isinstance(node, list) or not all(isinstance(item, dict) for item in node):
        raise FetchError(key, message=f"'{'.'.join(records_path)}' is not an array of records")
    return node


def _http_get(url: str, timeout: Optional[float]) -> bytes:
    """Blocking GET; returns the body of a 200 response."""
    kwargs = {'timeout': timeout} if timeout is not None else {}
    try:
        with urllib.request.urlopen(url, **kwargs) as resp:
            if resp.status != 200:
                raise FetchError(url, status=resp.status)
            return resp.read()
    except urllib.error.HTTPError as e:
        raise FetchError(url, status=e.code) from e
    except urllib.error.URLError as e:
        raise FetchError(url, message=f"Connection failed: {e.reason}") from e


async def fetch_records(
    url: str,
    records_path: Sequence[str] = ("data", "stations"),
    timeout: Optional[float] = None,
) -> List[Record]:
    """Default fetcher: HTTP GET a JSON feed and extract its record array.

    The blocking request runs in a worker thread so the event loop stays free.

    Raises:
        FetchError: On non-200 status, transport failure, invalid JSON or
            a document without the record array.
    """
    body = await asyncio.to_thread(_http_get, url, timeout)
    try:
        document = json.loads(body)
    except ValueError as e:
        raise FetchError(url, message=f"Invalid JSON: {e}") from e
    return extract_records(document, records_path, url)


def _consume_exception(task: 'asyncio.Future') -> None:
    # Failures are reported to awaiting callers; keep asyncio from also
    # logging them as never retrieved when every caller went away.
    if not task.cancelled():
        task.exception()


class DataCache:
    """Record cache with per-key request coalescing.

    Not thread-safe: all calls are expected from the event loop thread.
    Distinct keys never touch each other's entries, so fetches for different
    keys may complete in any order.
    """

    def __init__(self, fetcher: Optional[Fetcher] = None, config: Optional[CacheConfig] = None):
        """
        Args:
            fetcher: Coroutine function key -> records. Defaults to fetch_records
                     using the config's records_path and timeout.
            config: Cache policy; defaults to the active EngineConfig.
        """
        self._config = config if config is not None else get_engine_config().cache
        if fetcher is None:
            fetcher = functools.partial(
                fetch_records,
                records_path=self._config.records_path,
                timeout=self._config.timeout,
            )
        self._fetcher = fetcher
        self._records: Dict[str, List[Record]] = {}  # Insertion order = eviction order
        self._pending: Dict[str, 'asyncio.Future[List[Record]]'] = {}
        self._errors: Dict[str, FetchError] = {}  # Last failure per absent key
        self._change_callbacks: List[Callable[[str], None]] = []

    # ========== LOOKUP ==========

    def state(self, key: str) -> EntryState:
        if key in self._records:
            return EntryState.PRESENT
        if key in self._pending:
            return EntryState.PENDING
        return EntryState.ABSENT

    def is_loading(self, key: str) -> bool:
        return key in self._pending

    def get_records(self, key: str) -> Optional[List[Record]]:
        """Cached records for key, or None if not (yet) present."""
        return self._records.get(key)

    def last_error(self, key: str) -> Optional[FetchError]:
        """Failure of the most recent request for key, cleared once a request succeeds."""
        return self._errors.get(key)

    def keys(self) -> List[str]:
        """Keys with present entries."""
        return list(self._records)

    def available_columns(self, key: str) -> List[str]:
        """Column names of the first cached record (empty if none)."""
        records = self._records.get(key)
        if not records:
            return []
        return list(records[0].keys())

    # ========== FETCHING ==========

    async def fetch(self, key: str) -> List[Record]:
        """Get the records for key, fetching them at most once at a time.

        - present: returned immediately, no I/O
        - pending: waits for the request already in flight
        - absent: starts a request and waits for it

        Raises:
            FetchError: If the request fails; the entry stays absent.
        """
        records = self._records.get(key)
        if records is not None:
            return records

        task = self._pending.get(key)
        if task is None:
            task = asyncio.ensure_future(self._load(key))
            task.add_done_callback(_consume_exception)
            self._pending[key] = task
            logger.debug(f"CACHE: fetching {key}")
            self._notify_change(key)
        else:
            logger.debug(f"CACHE: joining in-flight fetch for {key}")

        # A cancelled caller must not cancel the shared request
        return await asyncio.shield(task)

    def request(self, key: str) -> 'asyncio.Task[Optional[List[Record]]]':
        """Fire-and-forget fetch for view code; failures are logged, not raised.

        Must be called from a running event loop. Observe the result through
        connect_listener() and get_records().
        """
        return asyncio.ensure_future(self._fetch_quietly(key))

    async def _fetch_quietly(self, key: str) -> Optional[List[Record]]:
        try:
            return await self.fetch(key)
        except FetchError as e:
            logger.warning(f"CACHE: {e}")
            return None

    async def _load(self, key: str) -> List[Record]:
        try:
            records = await self._fetcher(key)
        except FetchError as e:
            logger.info(f"CACHE: fetch failed for {key}: {e}")
            self._errors[key] = e
            raise
        except Exception as e:
            logger.info(f"CACHE: fetch failed for {key}: {e}")
            error = FetchError(key, message=str(e) or type(e).__name__)
            self._errors[key] = error
            raise error from e
        else:
            records = list(records)
            self._errors.pop(key, None)
            self._store(key, records)
            logger.debug(f"CACHE: stored {len(records)} records for {key}")
            return records
        finally:
            self._pending.pop(key, None)
            self._notify_change(key)

    def _store(self, key: str, records: List[Record]) -> None:
        self._records[key] = records
        max_entries = self._config.max_entries
        if max_entries is None:
            return
        while len(self._records) > max_entries:
            oldest = next(iter(self._records))
            if oldest == key:
                break
            del self._records[oldest]
            logger.debug(f"CACHE: evicted {oldest} (max_entries={max_entries})")

    def clear(self) -> None:
        """Drop all present entries and recorded failures. In-flight requests are left to finish."""
        keys = list(self._records)
        self._records.clear()
        self._errors.clear()
        for key in keys:
            self._notify_change(key)

    # ========== CHANGE NOTIFICATION ==========

    def connect_listener(self, callback: Callable[[str], None]) -> None:
        """Subscribe to entry state changes; callback receives the key."""
        if callback not in self._change_callbacks:
            self._change_callbacks.append(callback)

    def disconnect_listener(self, callback: Callable[[str], None]) -> None:
        if callback in self._change_callbacks:
            self._change_callbacks.remove(callback)

    def _notify_change(self, key: str) -> None:
        for callback in list(self._change_callbacks):
            try:
                callback(key)
            except Exception as e:
                logger.warning(f"Cache change callback failed: {e}")
