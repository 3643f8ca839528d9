from typing import Protocol
from ..models import FetchResult, MetadataResult


class BookmarkSource(Protocol):
    """
    Remote bookmark collection consumed by the sync engine.

    Implementations report failures (network, non-2xx status, malformed
    payload) through the ``error`` field of the returned result instead of
    raising.
    """

    async def fetch_all(self) -> FetchResult:
        """Every record in the collection, or an error if any page failed."""
        ...

    async def fetch_since(self, watermark: str) -> FetchResult:
        """Records whose lastUpdate is newer than ``watermark``."""
        ...

    async def fetch_metadata(self) -> MetadataResult:
        """Total count and newest lastUpdate without record bodies."""
        ...
