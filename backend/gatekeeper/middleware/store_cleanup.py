"""Background sweep of expired keys from in-process key-value stores."""

import asyncio
import logging

from gatekeeper.core.kv_store import purge_memory_stores

logger = logging.getLogger(__name__)

SWEEP_INTERVAL_SECONDS = 300


async def store_cleanup_loop(interval: float = SWEEP_INTERVAL_SECONDS) -> None:
    """Periodically drop expired blacklist entries, counters and cache entries.

    Redis expires keys itself; this only matters for the in-process store.
    """
    while True:
        try:
            await asyncio.sleep(interval)
            removed = await purge_memory_stores()
            if removed > 0:
                logger.debug(f"Store cleanup: removed {removed} expired keys")
        except asyncio.CancelledError:
            break
        except Exception as e:
            logger.warning(f"Store cleanup error: {e}")
