from fastapi import FastAPI, Depends, HTTPException, Header, Query
from fastapi.responses import PlainTextResponse
from typing import Optional
from .benchmark import run_cache_benchmark
from .engine import SyncCoordinator
from .config import settings
from .models import SyncResult

app = FastAPI(title="Raindrop Bookmark Sync")
coordinator: Optional[SyncCoordinator] = None
last_status: Optional[str] = None

def record_status(message: str):
    """Status sink: remember the latest progress message for /status."""
    global last_status
    last_status = message

def get_token(x_token: Optional[str] = Header(None, alias="X-Token")):
    if settings.HTTP_SERVER_TOKEN and x_token != settings.HTTP_SERVER_TOKEN:
        raise HTTPException(status_code=401, detail="Invalid token")

def get_coordinator() -> SyncCoordinator:
    if not coordinator:
        raise HTTPException(status_code=503, detail="Service starting")
    return coordinator

def _result_body(result: SyncResult) -> dict:
    return {
        "count": len(result.bookmarks),
        "bookmarks": [b.model_dump(by_alias=True) for b in result.bookmarks],
        "error": result.error,
        "from_cache": result.from_cache,
    }

@app.get("/healthz")
def healthz():
    if not coordinator:
        return {"status": "starting"}
    if coordinator.cache.read_raw() is None:
        # No snapshot yet; a first fetch is still pending or failing
        return {"status": "cold", "syncing": coordinator.syncing}
    return {"status": "ok"}

@app.get("/bookmarks", dependencies=[Depends(get_token)])
async def bookmarks(refresh: bool = False):
    result = await get_coordinator().get_bookmarks(refresh)
    return _result_body(result)

@app.post("/refresh", dependencies=[Depends(get_token)])
async def refresh():
    result = await get_coordinator().refresh()
    return _result_body(result)

@app.delete("/cache", dependencies=[Depends(get_token)])
def clear_cache():
    get_coordinator().clear_cache()
    return {"cleared": True}

@app.get("/status", dependencies=[Depends(get_token)])
def status():
    if not coordinator:
        return {"status": "not_ready"}

    snapshot = coordinator.cache.read_raw()
    return {
        "message": last_status,
        "syncing": coordinator.syncing,
        "cache_valid": coordinator.cache.is_valid(),
        "cached_bookmarks": len(snapshot.bookmarks) if snapshot else 0,
        "count": snapshot.count if snapshot else 0,
        "last_updated": snapshot.last_updated if snapshot else None,
        "last_write": snapshot.timestamp if snapshot else None,
        "config": {
            "cache_path": str(coordinator.cache.path),
            "cache_expiration": coordinator.cache.expiration_seconds,
            "metadata_check_interval": coordinator.metadata_check_interval,
        }
    }

@app.get("/benchmark", dependencies=[Depends(get_token)])
def benchmark(iterations: int = Query(10, ge=1, le=100)):
    # Read-only; rewriting would restart the expiration window
    report = run_cache_benchmark(get_coordinator().cache, iterations, include_write=False)
    return report.model_dump()

@app.get("/metrics", response_class=PlainTextResponse)
def metrics():
    # Simple prometheus-style text format
    if not coordinator:
        return ""

    snapshot = coordinator.cache.read_raw()
    lines = [
        f'raindrop_cache_bookmarks {len(snapshot.bookmarks) if snapshot else 0}',
        f'raindrop_cache_count {snapshot.count if snapshot else 0}',
        f'raindrop_cache_last_write_timestamp {snapshot.timestamp if snapshot else 0}',
        f'raindrop_cache_valid {1 if coordinator.cache.is_valid() else 0}',
        f'raindrop_sync_in_flight {1 if coordinator.syncing else 0}'
    ]
    return "\n".join(lines)
