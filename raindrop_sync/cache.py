import json
import logging
import os
import time
import fcntl
from pathlib import Path
from typing import List, Optional
from pydantic import ValidationError
from .models import Bookmark, CacheSnapshot, latest_update, merge_bookmarks, utc_now_timestamp
from .config import settings

logger = logging.getLogger(__name__)


class StorageError(Exception):
    """The cache artifact could not be written or deleted."""


class CacheStore:
    def __init__(self, path: Optional[str] = None, expiration_seconds: Optional[int] = None):
        self.path = Path(path or settings.CACHE_PATH).expanduser()
        self.expiration_seconds = (
            settings.CACHE_EXPIRATION_SECONDS if expiration_seconds is None else expiration_seconds
        )

    def is_valid(self) -> bool:
        """True if the artifact exists and is younger than the expiration window."""
        try:
            mtime = self.path.stat().st_mtime
        except OSError:
            return False
        return time.time() - mtime < self.expiration_seconds

    def read(self) -> Optional[CacheSnapshot]:
        if not self.is_valid():
            return None
        return self.read_raw()

    def read_raw(self) -> Optional[CacheSnapshot]:
        """Read the snapshot regardless of age. Corrupt content reads as no cache."""
        try:
            with open(self.path, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except FileNotFoundError:
            return None
        except (OSError, ValueError) as e:
            logger.debug(f"Ignoring unreadable cache at {self.path}: {e}")
            return None

        if not isinstance(data, dict) or "bookmarks" not in data:
            logger.debug(f"Ignoring cache at {self.path}: no bookmarks field")
            return None

        try:
            return CacheSnapshot.model_validate(data)
        except ValidationError as e:
            logger.debug(f"Ignoring malformed cache at {self.path}: {e.error_count()} errors")
            return None

    def write(self, bookmarks: List[Bookmark], count: Optional[int] = None,
              watermark: Optional[str] = None) -> CacheSnapshot:
        """
        Replace the artifact with a new snapshot.

        Records are deduplicated by id (last occurrence wins), get their
        cleaned excerpt derived and are sorted newest first (lastUpdate,
        falling back to created). The watermark defaults to the newest
        lastUpdate among the records.
        """
        prepared = [b.clean() for b in merge_bookmarks(bookmarks, [])]
        prepared.sort(key=lambda b: b.recency, reverse=True)

        snapshot = CacheSnapshot(
            bookmarks=prepared,
            count=len(prepared) if count is None else count,
            timestamp=int(time.time()),
            last_updated=watermark or latest_update(prepared) or utc_now_timestamp(),
        )

        tmp_path = self.path.with_name(self.path.name + '.tmp')
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            # Atomic write pattern with locking
            with open(tmp_path, 'w', encoding='utf-8') as f:
                fcntl.flock(f, fcntl.LOCK_EX)
                try:
                    json.dump(snapshot.to_json(), f)
                    f.flush()
                    os.fsync(f.fileno())
                finally:
                    fcntl.flock(f, fcntl.LOCK_UN)

            os.replace(tmp_path, self.path)
        except OSError as e:
            logger.error(f"Failed to write cache to {self.path}: {e}")
            raise StorageError(f"Failed to write cache to {self.path}: {e}") from e

        logger.debug(f"Wrote {len(prepared)} bookmarks to {self.path}")
        return snapshot

    def clear(self):
        try:
            self.path.unlink()
        except FileNotFoundError:
            return
        except OSError as e:
            raise StorageError(f"Failed to delete cache at {self.path}: {e}") from e
        logger.info(f"Cleared cache at {self.path}")
