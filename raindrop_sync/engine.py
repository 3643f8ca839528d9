import asyncio
import logging
import time
from typing import Awaitable, List, Optional, Set
from .cache import CacheStore, StorageError
from .clients.base import BookmarkSource
from .config import settings
from .models import Bookmark, CacheSnapshot, MetadataResult, SyncResult, latest_update, merge_bookmarks
from .status import StatusBroadcaster, StatusSink

logger = logging.getLogger(__name__)

FULL = "full"
INCREMENTAL = "incremental"


def _max_watermark(*values: Optional[str]) -> Optional[str]:
    present = [v for v in values if v]
    return max(present) if present else None


class _Flight:
    """The single in-flight sync and the future every waiter shares."""

    def __init__(self, kind: str, future: asyncio.Future):
        self.kind = kind
        self.future = future


class SyncCoordinator:
    """
    Serves bookmarks from the local cache and keeps it in step with the source.

    At most one fetch (full or incremental) runs at a time per instance.
    Callers arriving while one is in flight share its result. The flight is
    registered before the first await and is cleared in the same step that
    resolves its waiters, so no caller can slip between settle and drain.
    """

    def __init__(self, cache: CacheStore, source: BookmarkSource,
                 metadata_check_interval: Optional[float] = None,
                 status: Optional[StatusBroadcaster] = None):
        self.cache = cache
        self.source = source
        self.metadata_check_interval = (
            settings.METADATA_CHECK_INTERVAL_SECONDS
            if metadata_check_interval is None else metadata_check_interval
        )
        self.status = status or StatusBroadcaster()
        self._flight: Optional[_Flight] = None
        self._last_metadata_check: Optional[float] = None
        self._background: Set[asyncio.Task] = set()

    @property
    def syncing(self) -> bool:
        return self._flight is not None

    async def get_bookmarks(self, force_refresh: bool = False,
                            status_sink: Optional[StatusSink] = None) -> SyncResult:
        """
        Bookmarks for one caller. ``status_sink`` receives progress only until
        this call returns; the registered sink is used again afterwards.
        """
        if status_sink is None:
            return await self._get_bookmarks(force_refresh)

        self.status.push(status_sink)
        try:
            return await self._get_bookmarks(force_refresh)
        finally:
            self.status.pop(status_sink)

    async def _get_bookmarks(self, force_refresh: bool) -> SyncResult:
        if force_refresh:
            return await self._full_refresh()

        if self._flight is not None:
            return await self._join(self._flight)

        snapshot = self.cache.read_raw()
        if snapshot is None or not snapshot.bookmarks:
            # Nothing to show yet, caller waits for the full fetch
            return await self._join(self._start(FULL, self._fetch_and_cache()))

        cached_count = len(snapshot.bookmarks)
        logger.info(f"Showing {cached_count} cached bookmarks")
        self.status.emit_count(cached_count)
        self._reconcile(snapshot)
        return SyncResult(bookmarks=snapshot.bookmarks, from_cache=True)

    async def refresh(self, status_sink: Optional[StatusSink] = None) -> SyncResult:
        return await self.get_bookmarks(True, status_sink)

    def clear_cache(self):
        try:
            self.cache.clear()
        except StorageError as e:
            logger.error(f"Failed to clear cache: {e}")
            self.status.emit("Cache clear failed")
            return
        self._last_metadata_check = None
        self.status.emit("Cache cleared")

    def preload(self):
        """Warm the cache without a waiting caller. Must run on the event loop."""
        if self._flight is not None:
            return

        snapshot = self.cache.read_raw()
        if snapshot is None or not snapshot.bookmarks:
            self._start(FULL, self._fetch_and_cache())
        elif not self.cache.is_valid():
            self._start(INCREMENTAL, self._incremental_sync())
        else:
            self._last_metadata_check = time.monotonic()
            self._track(asyncio.create_task(self._check_and_reconcile(snapshot)))

    async def wait_idle(self):
        """Wait for background syncs and metadata checks, including ones they start."""
        while True:
            pending = [t for t in self._background if not t.done()]
            if not pending:
                return
            await asyncio.gather(*pending, return_exceptions=True)

    # Flight management

    def _start(self, kind: str, work: Awaitable[SyncResult]) -> _Flight:
        flight = _Flight(kind, asyncio.get_running_loop().create_future())
        self._flight = flight
        self._track(asyncio.create_task(self._run(flight, work)))
        return flight

    async def _run(self, flight: _Flight, work: Awaitable[SyncResult]):
        try:
            result = await work
        except Exception as e:
            logger.error(f"Error during {flight.kind} sync: {e}", exc_info=True)
            self.status.emit("Sync failed")
            result = SyncResult(error=str(e))

        # Settle and drain in one step
        self._flight = None
        if not flight.future.done():
            flight.future.set_result(result)

    async def _join(self, flight: _Flight) -> SyncResult:
        return await asyncio.shield(flight.future)

    def _track(self, task: asyncio.Task):
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    async def _full_refresh(self) -> SyncResult:
        while True:
            flight = self._flight
            if flight is None:
                return await self._join(self._start(FULL, self._fetch_and_cache()))
            if flight.kind == FULL:
                return await self._join(flight)
            # A background incremental sync is running; queue behind it
            logger.debug("Force refresh waiting for in-flight incremental sync")
            await asyncio.shield(flight.future)

    # Reconciliation

    def _metadata_check_due(self) -> bool:
        if self._last_metadata_check is None:
            return True
        return time.monotonic() - self._last_metadata_check >= self.metadata_check_interval

    def _reconcile(self, snapshot: CacheSnapshot):
        cached_count = len(snapshot.bookmarks)
        if not self.cache.is_valid():
            logger.info("Cache expired, updating incrementally in background")
            self._start(INCREMENTAL, self._incremental_sync())
        elif self._metadata_check_due():
            self._last_metadata_check = time.monotonic()
            self._track(asyncio.create_task(self._check_and_reconcile(snapshot)))
        else:
            self.status.emit("Up to date", count=cached_count)

    @staticmethod
    def _is_stale(snapshot: CacheSnapshot, meta: MetadataResult) -> bool:
        count_changed = meta.count != snapshot.count or meta.count != len(snapshot.bookmarks)
        has_modifications = bool(
            meta.last_update and snapshot.last_updated and meta.last_update > snapshot.last_updated
        )
        return count_changed or has_modifications

    async def _check_and_reconcile(self, snapshot: CacheSnapshot):
        cached_count = len(snapshot.bookmarks)
        meta = await self.source.fetch_metadata()
        if meta.error:
            logger.warning(f"Metadata check failed: {meta.error}")
            self.status.emit("Update check failed", count=cached_count)
            return

        if not self._is_stale(snapshot, meta):
            self.status.emit("Up to date", count=cached_count)
            return

        diff = meta.count - cached_count
        if diff:
            logger.info(f"Detected {abs(diff)} {'new bookmarks' if diff > 0 else 'changes'}, updating...")
        else:
            logger.info("Detected bookmark modifications, updating...")
        self.status.emit("Updating...", count=cached_count)
        if self._flight is None:
            self._start(INCREMENTAL, self._incremental_sync())

    # Fetch paths

    def _persist(self, bookmarks: List[Bookmark], count: int,
                 watermark: Optional[str]) -> Optional[CacheSnapshot]:
        try:
            return self.cache.write(bookmarks, count, watermark)
        except StorageError as e:
            logger.error(f"Cache write failed, serving in-memory result: {e}")
            self.status.emit("Cache write failed")
            return None

    async def _fetch_and_cache(self) -> SyncResult:
        logger.info("Fetching all bookmarks from Raindrop.io...")
        self.status.emit("Fetching all...")
        result = await self.source.fetch_all()

        if result.error:
            logger.error(f"Failed to fetch bookmarks: {result.error}")
            self.status.emit("Fetch failed")
            # Expired or not, an existing snapshot beats nothing
            cached = self.cache.read_raw()
            if cached is not None:
                logger.warning("Using cached bookmarks")
                return SyncResult(bookmarks=cached.bookmarks, error=result.error, from_cache=True)
            return SyncResult(error=result.error)

        previous = self.cache.read_raw()
        # Offset paging can return a record twice if the collection moves underneath
        bookmarks = merge_bookmarks(result.bookmarks, [])
        count = result.count if result.count is not None else len(bookmarks)
        watermark = _max_watermark(previous.last_updated if previous else None, latest_update(bookmarks))
        written = self._persist(bookmarks, count, watermark)
        if written is not None:
            bookmarks = written.bookmarks

        self.status.emit(f"Fetched {len(bookmarks)} bookmarks")
        return SyncResult(bookmarks=bookmarks)

    async def _incremental_sync(self) -> SyncResult:
        snapshot = self.cache.read_raw()
        if snapshot is None or not snapshot.last_updated or not snapshot.bookmarks:
            return await self._fetch_and_cache()

        self.status.emit("Checking for updates...")
        result = await self.source.fetch_since(snapshot.last_updated)
        if result.error:
            logger.warning(f"Update check failed: {result.error}")
            self.status.emit("Update failed")
            return SyncResult(bookmarks=snapshot.bookmarks, error=result.error, from_cache=True)

        updates = result.bookmarks
        if updates:
            merged = merge_bookmarks(snapshot.bookmarks, updates)
            # Deletions are invisible to an incremental fetch, so the server total wins
            count = result.count if result.count is not None else len(merged)
            watermark = _max_watermark(snapshot.last_updated, latest_update(merged))
            written = self._persist(merged, count, watermark)
            bookmarks = written.bookmarks if written is not None else merged
            logger.info(f"Updated {len(updates)} bookmarks")
            self.status.emit(f"Updated +{len(updates)}", count=len(bookmarks))
        else:
            # Rewrite unchanged to restart the expiration window
            count = result.count if result.count is not None else snapshot.count
            written = self._persist(snapshot.bookmarks, count, snapshot.last_updated)
            bookmarks = written.bookmarks if written is not None else snapshot.bookmarks
            self.status.emit("Up to date", count=len(bookmarks))

        return SyncResult(bookmarks=bookmarks)
