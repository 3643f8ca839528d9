"""Synthetic bookmark data for local testing and benchmarking without API access."""

import logging
import random
import sys
from datetime import datetime, timedelta, timezone
from typing import List, Optional

from .cache import CacheStore
from .models import Bookmark, CacheSnapshot, format_timestamp

logger = logging.getLogger(__name__)

TITLES = [
    "Python Documentation - Getting Started",
    "asyncio - Asynchronous I/O",
    "Understanding Async Programming",
    "HTTPX - A next-generation HTTP client",
    "Pydantic Models and Validation",
    "FastAPI Tutorial - User Guide",
    "Writing Efficient Python Code",
    "Debugging Techniques for Services",
    "Git Integration Workflows",
    "Terminal Management Tips",
]

DOMAINS = [
    "docs.python.org",
    "github.com",
    "stackoverflow.com",
    "dev.to",
    "medium.com",
    "realpython.com",
]

EXCERPTS = [
    "A comprehensive guide to getting started. Learn the basics\nand advanced features.",
    "Official documentation covering installation, configuration, and usage.",
    "Step-by-step tutorial with practical examples.\r\n\r\nBest practices included.",
    "In-depth article exploring advanced techniques   and performance optimization.",
    "Community discussion about common problems and their solutions.",
]

TAGS = [
    ["python", "development"],
    ["async", "programming"],
    ["documentation", "reference"],
    ["tutorial", "guide"],
    ["tools", "cli"],
]

COLLECTIONS = ["Development", "Learning Resources", "Documentation", "Tutorials", "Unsorted"]


def generate_bookmarks(count: int, now: Optional[datetime] = None, seed: Optional[int] = None) -> List[Bookmark]:
    rng = random.Random(seed)
    now = now or datetime.now(timezone.utc)
    base = now - timedelta(days=30)

    bookmarks = []
    for i in range(1, count + 1):
        created = base + timedelta(seconds=i * 2000)
        last_update = min(created + timedelta(seconds=rng.randint(0, 86400 * 7)), now)
        domain = DOMAINS[(i - 1) % len(DOMAINS)]
        title = TITLES[(i - 1) % len(TITLES)]
        if count > len(TITLES):
            title = f"{title} #{i}"

        bookmarks.append(Bookmark(
            id=str(100000 + i),
            title=title,
            url=f"https://{domain}/article-{i}",
            excerpt=EXCERPTS[(i - 1) % len(EXCERPTS)],
            tags=TAGS[(i - 1) % len(TAGS)],
            created=format_timestamp(created),
            last_update=format_timestamp(last_update),
            domain=domain,
            collection=COLLECTIONS[(i - 1) % len(COLLECTIONS)],
        ))
    return bookmarks


def write_sample_cache(cache: CacheStore, count: int, seed: Optional[int] = None) -> CacheSnapshot:
    return cache.write(generate_bookmarks(count, seed=seed))


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(name)s - %(levelname)s - %(message)s')
    n = int(sys.argv[1]) if len(sys.argv) > 1 else 100
    store = CacheStore()
    snapshot = write_sample_cache(store, n)
    logger.info(f"Generated {len(snapshot.bookmarks)} bookmarks in {store.path}")
    if snapshot.bookmarks:
        logger.info(f"Date range: {snapshot.bookmarks[-1].created} to {snapshot.last_updated}")
