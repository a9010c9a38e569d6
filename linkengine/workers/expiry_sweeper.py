"""
Expiry Sweeper Worker

Physically removes links whose expires_at has passed, together with their
codes and click history, and drops their cache entries.

The resolver never relies on this worker: expiry is re-checked live on every
resolution, so a link that is past expires_at but not yet swept is still
answered with "expired".

Usage:
    python -m linkengine.workers.expiry_sweeper
"""

import asyncio
import logging
import signal
import sys
from datetime import datetime
from typing import List, Optional

from linkengine.cache.strategies import CacheStrategy
from linkengine.clock import utcnow
from linkengine.config import settings
from linkengine.database.connection import SessionLocal
from linkengine.services.resolver import cache_key
from linkengine.storage.link_store import LinkStore

logger = logging.getLogger(__name__)


class ExpirySweeper:
    """Periodic TTL sweep over the link store"""

    def __init__(
        self,
        cache: Optional[CacheStrategy] = None,
        db_session_factory=SessionLocal,
        interval: Optional[int] = None
    ):
        self.cache = cache
        self.db_session_factory = db_session_factory
        self.interval = interval if interval is not None else settings.sweep_interval_seconds
        self.running = False
        self.purged_count = 0

    async def sweep_once(self, now: Optional[datetime] = None) -> List[str]:
        """Purge everything expired as of `now`. Returns the freed codes."""
        db = self.db_session_factory()
        try:
            codes = LinkStore(db).purge_expired(now or utcnow())
        finally:
            db.close()

        if self.cache and codes:
            await self.cache.delete(*(cache_key(code) for code in codes))

        self.purged_count += len(codes)
        return codes

    async def start(self):
        """Run until stopped"""
        self.running = True
        logger.info("Expiry sweeper started (interval %ss)", self.interval)

        signal.signal(signal.SIGINT, self._signal_handler)
        signal.signal(signal.SIGTERM, self._signal_handler)

        while self.running:
            try:
                codes = await self.sweep_once()
                if codes:
                    logger.info("Swept %s expired codes", len(codes))
            except asyncio.CancelledError:
                logger.info("Sweeper task cancelled")
                break
            except Exception:
                # The next tick retries; a failed sweep only delays removal.
                logger.exception("Expiry sweep failed")

            await asyncio.sleep(self.interval)

        logger.info("Expiry sweeper stopped")

    def _signal_handler(self, signum, frame):
        logger.info("Received signal %s, shutting down", signum)
        self.stop()

    def stop(self):
        self.running = False


async def main():
    from linkengine.cache.factory import CacheFactory, CacheBackend

    logging.basicConfig(level=settings.log_level)
    logger.info("Environment: %s, cache backend: %s", settings.environment, settings.cache_backend)

    cache = CacheFactory.create(CacheBackend(settings.cache_backend))
    sweeper = ExpirySweeper(cache=cache)

    try:
        await sweeper.start()
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
    except Exception:
        logger.exception("Fatal error")
        sys.exit(1)


if __name__ == "__main__":
    asyncio.run(main())
