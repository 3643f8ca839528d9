import logging
import httpx
from typing import Any, Dict, List, Optional, Tuple
from pydantic import ValidationError
from ..config import settings
from ..models import Bookmark, FetchResult, MetadataResult

logger = logging.getLogger(__name__)

# Collection 0 is "all bookmarks" except trash
ALL_COLLECTIONS = 0


class SourceError(Exception):
    """A page could not be fetched or parsed."""


def parse_item(item: Dict[str, Any]) -> Bookmark:
    collection = item.get("collection")
    if not isinstance(collection, dict):
        collection = {}
    return Bookmark(
        id=item.get("_id"),
        title=item.get("title") or "Untitled",
        url=item.get("link") or "",
        excerpt=item.get("excerpt") or "",
        tags=item.get("tags") or [],
        created=item.get("created"),
        last_update=item.get("lastUpdate"),
        domain=item.get("domain") or "",
        collection=collection.get("title") or "Unsorted",
    )


class RaindropClient:
    def __init__(self, token: Optional[str] = None, base_url: Optional[str] = None,
                 page_size: Optional[int] = None, timeout: Optional[float] = None,
                 transport: Optional[httpx.AsyncBaseTransport] = None):
        self.token = token if token is not None else settings.RAINDROP_TOKEN
        self.page_size = page_size or settings.PAGINATION_SIZE
        self.client = httpx.AsyncClient(
            base_url=(base_url or settings.RAINDROP_BASE_URL).rstrip('/'),
            headers={
                "Authorization": f"Bearer {self.token}",
                "Content-Type": "application/json",
            },
            timeout=timeout or settings.REQUEST_TIMEOUT_SECONDS,
            transport=transport,
        )

    async def aclose(self):
        await self.client.aclose()

    async def _get_page(self, page: int, perpage: int, sort: Optional[str] = None) -> Tuple[List[Bookmark], Optional[int]]:
        params: Dict[str, Any] = {"page": page, "perpage": perpage}
        if sort:
            params["sort"] = sort
        try:
            resp = await self.client.get(f"/raindrops/{ALL_COLLECTIONS}", params=params)
        except httpx.HTTPError as e:
            raise SourceError(f"Request failed: {e}") from e

        if resp.status_code != 200:
            raise SourceError(f"API request failed with status {resp.status_code}")

        try:
            data = resp.json()
            items = data.get("items") or []
            bookmarks = [parse_item(item) for item in items]
            total = data.get("count")
            total = int(total) if total is not None else None
        except (ValueError, AttributeError, TypeError, ValidationError) as e:
            raise SourceError(f"Malformed API response: {e}") from e
        return bookmarks, total

    async def fetch_all(self) -> FetchResult:
        if not self.token:
            return FetchResult(error="No API token")

        bookmarks: List[Bookmark] = []
        total = 0
        page = 0
        try:
            while True:
                items, total = await self._get_page(page, self.page_size)
                if total is None:
                    raise SourceError("Malformed API response: missing count")
                bookmarks.extend(items)
                logger.debug(f"Fetched page {page}: {len(bookmarks)}/{total}")
                if len(bookmarks) >= total:
                    break
                if not items:
                    # Collection shrank while paging; the set is incomplete
                    raise SourceError(f"Page {page} came back empty at {len(bookmarks)}/{total} bookmarks")
                page += 1
        except SourceError as e:
            logger.error(f"Failed to fetch bookmarks (page {page}): {e}")
            return FetchResult(error=str(e))

        logger.info(f"Fetched {len(bookmarks)} bookmarks from Raindrop.io")
        return FetchResult(bookmarks=bookmarks, count=total)

    async def fetch_since(self, watermark: str) -> FetchResult:
        """
        Walk pages newest-modified first, collecting records changed after
        ``watermark``. Stops at the first page whose oldest record is not newer.
        """
        if not self.token:
            return FetchResult(error="No API token")

        updates: List[Bookmark] = []
        total = 0
        page = 0
        try:
            while True:
                items, total = await self._get_page(page, self.page_size, sort="-lastUpdate")
                if not items:
                    break
                updates.extend(b for b in items if b.last_update and b.last_update > watermark)
                oldest = min((b.recency for b in items), default="")
                if oldest <= watermark or (page + 1) * self.page_size >= (total or 0):
                    break
                page += 1
        except SourceError as e:
            logger.error(f"Failed to fetch bookmarks since {watermark}: {e}")
            return FetchResult(error=str(e))

        logger.info(f"Found {len(updates)} bookmarks modified since {watermark}")
        return FetchResult(bookmarks=updates, count=total)

    async def fetch_metadata(self) -> MetadataResult:
        if not self.token:
            return MetadataResult(error="No API token")
        try:
            items, total = await self._get_page(0, 1, sort="-lastUpdate")
            if total is None:
                raise SourceError("Malformed API response: missing count")
        except SourceError as e:
            logger.warning(f"Failed to fetch bookmark metadata: {e}")
            return MetadataResult(error=str(e))
        return MetadataResult(count=total, last_update=items[0].last_update if items else None)
