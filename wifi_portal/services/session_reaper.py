"""
Background reaper for expired access windows.

Runs ``SessionRegistry.reap`` on a fixed interval so expired sessions are
removed (in memory and in the durable mirror) without anyone having to
query them.
"""

import asyncio
import logging

from wifi_portal.core.access_window import utcnow
from wifi_portal.services.session_registry import SessionRegistry

logger = logging.getLogger(__name__)

reap_running = False


async def reap_expired_sessions(registry: SessionRegistry):
    global reap_running
    if reap_running:
        logger.warning("[CRON] Previous reap still running, skipping this run")
        return []
    reap_running = True
    start_time = utcnow()
    try:
        expired = await registry.reap()
        if expired:
            elapsed = (utcnow() - start_time).total_seconds()
            logger.info(f"[CRON] Reaped {len(expired)} expired session(s) in {elapsed:.2f}s")
        return expired
    finally:
        reap_running = False


async def session_reaper_loop(registry: SessionRegistry, interval_seconds: float):
    logger.info(f"[CRON] Session reaper started (every {interval_seconds}s)")
    while True:
        try:
            await reap_expired_sessions(registry)
        except Exception as e:
            logger.error(f"[CRON] Session reap failed: {e}")
        await asyncio.sleep(interval_seconds)
