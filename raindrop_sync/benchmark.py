"""
Timing for cache operations.

Runs against an existing cache or against a throwaway one filled with
synthetic bookmarks:

    python -m raindrop_sync.benchmark            # configured cache, read-only
    python -m raindrop_sync.benchmark 1000 20    # 1000 sample bookmarks, 20 runs
"""

import json
import logging
import sys
import tempfile
import time
from pathlib import Path
from typing import Any, Callable, List, Optional
from pydantic import BaseModel, Field

from .cache import CacheStore
from .sample import write_sample_cache

logger = logging.getLogger(__name__)


class Timing(BaseModel):
    name: str
    iterations: int
    avg_ms: float
    min_ms: float
    max_ms: float
    total_ms: float


class BenchmarkReport(BaseModel):
    cache_path: str
    bookmarks: int = 0
    size_bytes: int = 0
    timings: List[Timing] = Field(default_factory=list)

    def timing(self, name: str) -> Optional[Timing]:
        return next((t for t in self.timings if t.name == name), None)


def time_iterations(name: str, fn: Callable[[], Any], iterations: int = 10) -> Timing:
    times = []
    for _ in range(iterations):
        start = time.perf_counter()
        fn()
        times.append((time.perf_counter() - start) * 1000)

    total = sum(times)
    timing = Timing(
        name=name,
        iterations=iterations,
        avg_ms=total / iterations,
        min_ms=min(times),
        max_ms=max(times),
        total_ms=total,
    )
    logger.info(f"[BENCH] {name} ({iterations} iterations): avg {timing.avg_ms:.2f} ms, "
                f"min {timing.min_ms:.2f} ms, max {timing.max_ms:.2f} ms")
    return timing


def measure_size(obj: Any) -> int:
    """Serialized JSON size in bytes."""
    return len(json.dumps(obj).encode("utf-8"))


def run_cache_benchmark(cache: CacheStore, iterations: int = 10, include_write: bool = False) -> BenchmarkReport:
    """
    Time validity check, read and JSON encode of the current snapshot.

    With ``include_write`` the snapshot is also rewritten ``iterations`` times,
    which restarts the cache's expiration window.
    """
    if iterations < 1:
        raise ValueError("iterations must be at least 1")

    report = BenchmarkReport(cache_path=str(cache.path))
    report.timings.append(time_iterations("Check cache validity", cache.is_valid, iterations))

    snapshot = cache.read_raw()
    if snapshot is None:
        logger.info("No cache available")
        return report

    report.bookmarks = len(snapshot.bookmarks)
    report.timings.append(time_iterations("Read cache", cache.read_raw, iterations))

    data = snapshot.to_json()
    report.timings.append(time_iterations("JSON encode", lambda: json.dumps(data), iterations))
    report.size_bytes = measure_size(data)
    logger.info(f"[SIZE] Cache data: {report.size_bytes / 1024:.2f} KB ({report.size_bytes} bytes)")

    if include_write:
        report.timings.append(time_iterations(
            "Write cache",
            lambda: cache.write(snapshot.bookmarks, snapshot.count, snapshot.last_updated),
            iterations,
        ))
    return report


def run_sample_benchmark(count: int, iterations: int = 10) -> BenchmarkReport:
    """Benchmark a temporary cache holding ``count`` synthetic bookmarks."""
    with tempfile.TemporaryDirectory() as tmp:
        cache = CacheStore(str(Path(tmp) / "bookmarks.json"), expiration_seconds=3600)
        write_sample_cache(cache, count, seed=count)
        return run_cache_benchmark(cache, iterations, include_write=True)


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(name)s - %(levelname)s - %(message)s')
    runs = int(sys.argv[2]) if len(sys.argv) > 2 else 10
    if len(sys.argv) > 1:
        result = run_sample_benchmark(int(sys.argv[1]), runs)
    else:
        result = run_cache_benchmark(CacheStore(), runs)
    print(result.model_dump_json(indent=2))
