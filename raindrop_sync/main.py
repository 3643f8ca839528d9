import asyncio
import logging
import signal
import sys
import uvicorn

from .config import settings
from .cache import CacheStore
from .clients.raindrop_client import RaindropClient
from .engine import SyncCoordinator
from . import server

# Setup logging
logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
# Silence noisy libraries
logging.getLogger("httpx").setLevel(logging.WARNING)
logging.getLogger("httpcore").setLevel(logging.WARNING)

logger = logging.getLogger("main")

class BookmarkService:
    def __init__(self):
        self.running = True
        self.cache = CacheStore(settings.CACHE_PATH, settings.CACHE_EXPIRATION_SECONDS)
        self.raindrop = RaindropClient()
        self.coordinator = SyncCoordinator(self.cache, self.raindrop)

        # Link coordinator to server module
        server.coordinator = self.coordinator
        self.coordinator.status.register(server.record_status)

    async def preload(self):
        await asyncio.sleep(settings.PRELOAD_DELAY_SECONDS)
        logger.info("Preloading bookmarks")
        self.coordinator.preload()

    async def auto_update_loop(self):
        """Periodic background reconciliation"""
        interval = settings.AUTO_UPDATE_INTERVAL_SECONDS
        logger.info(f"Auto-update every {interval}s")
        while self.running:
            await asyncio.sleep(interval)
            try:
                self.coordinator.preload()
                await self.coordinator.wait_idle()
            except Exception as e:
                logger.error(f"Error in auto-update: {e}", exc_info=True)

    async def start(self):
        if not settings.RAINDROP_TOKEN:
            logger.warning("No RAINDROP_TOKEN configured; only cached bookmarks will be served")

        tasks = []
        if settings.PRELOAD:
            tasks.append(asyncio.create_task(self.preload()))
        if settings.AUTO_UPDATE_INTERVAL_SECONDS > 0:
            tasks.append(asyncio.create_task(self.auto_update_loop()))

        if settings.HTTP_SERVER_ENABLED:
            config = uvicorn.Config(server.app, host=settings.HTTP_SERVER_HOST, port=settings.HTTP_SERVER_PORT, log_level="warning")
            server_task = uvicorn.Server(config).serve()
            tasks.append(asyncio.create_task(server_task))

        try:
            await asyncio.gather(*tasks)
        except asyncio.CancelledError:
            pass
        finally:
            self.running = False
            await self.coordinator.wait_idle()
            await self.raindrop.aclose()

def handle_sigterm(sig, frame):
    logger.info("Received SIGTERM, shutting down...")
    sys.exit(0)

def run():
    signal.signal(signal.SIGTERM, handle_sigterm)
    service = BookmarkService()
    try:
        asyncio.run(service.start())
    except KeyboardInterrupt:
        logger.info("Interrupted by user")

if __name__ == "__main__":
    run()
