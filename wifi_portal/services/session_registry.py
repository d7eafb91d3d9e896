"""
Session Registry
================

Holds at most one access window per session key (phone number, MAC or a
portal-issued id). A new purchase always replaces the previous window;
remaining time is never carried over.

Expiry is detected lazily when the registry is queried. ``reap`` removes
expired entries in bulk and is driven by the background reaper.

Every write is mirrored to an optional ``WindowStore`` so a restart can
``restore`` unexpired windows. A failing mirror is logged and does not undo
the in-memory change: a paid-for window is never dropped because the
database hiccuped. Writes and their mirroring are serialized, so the store
always ends up holding what memory holds.
"""

from datetime import datetime
from typing import Dict, List, Optional, Tuple
import asyncio
import logging

from wifi_portal.core.access_window import AccessWindow, Clock, ensure_aware, utcnow
from wifi_portal.core.errors import DeserializationError
from wifi_portal.core.window_clock import WindowTicker, SampleCallback
from wifi_portal.services.window_store import WindowStore

logger = logging.getLogger(__name__)


class SessionRegistry:
    def __init__(self, store: Optional[WindowStore] = None, clock: Clock = utcnow, tick_seconds: float = 1.0):
        self._windows: Dict[str, AccessWindow] = {}
        self._tickers: Dict[str, List[WindowTicker]] = {}
        self._lock = asyncio.Lock()
        # Serializes writes end to end so the store sees them in memory order
        self._write_lock = asyncio.Lock()
        self.store = store
        self.clock = clock
        self.tick_seconds = tick_seconds

    def _now(self, now: Optional[datetime]) -> datetime:
        return ensure_aware(now if now is not None else self.clock())

    async def set(self, key: str, window: AccessWindow):
        async with self._write_lock:
            async with self._lock:
                previous = self._windows.get(key)
                self._windows[key] = window
                tickers = self._tickers.pop(key, [])
            await self._stop_tickers(tickers)
            if previous is not None:
                logger.info(f"Session {key}: window for package {previous.package_id} superseded by package {window.package_id}")
            else:
                logger.info(f"Session {key}: window for package {window.package_id} until {window.end_time.isoformat()}")
            await self._mirror_save(key, window)

    async def get(self, key: str) -> Optional[AccessWindow]:
        async with self._lock:
            return self._windows.get(key)

    async def is_active(self, key: str, now: Optional[datetime] = None) -> bool:
        now = self._now(now)
        async with self._lock:
            window = self._windows.get(key)
        return window is not None and now < window.end_time

    async def clear(self, key: str) -> bool:
        async with self._write_lock:
            async with self._lock:
                removed = self._windows.pop(key, None)
                tickers = self._tickers.pop(key, [])
            await self._stop_tickers(tickers)
            if removed is None:
                return False
            logger.info(f"Session {key} cleared")
            await self._mirror_delete([key])
            return True

    async def reap(self, now: Optional[datetime] = None) -> List[str]:
        now = self._now(now)
        tickers: List[WindowTicker] = []
        async with self._write_lock:
            async with self._lock:
                expired = [k for k, w in self._windows.items() if w.end_time <= now]
                for key in expired:
                    del self._windows[key]
                    tickers.extend(self._tickers.pop(key, []))
            await self._stop_tickers(tickers)
            if expired:
                logger.info(f"Reaped {len(expired)} expired session(s)")
                await self._mirror_delete(expired)
        return expired

    async def active_sessions(self, now: Optional[datetime] = None) -> List[Tuple[str, AccessWindow]]:
        now = self._now(now)
        async with self._lock:
            active = [(k, w) for k, w in self._windows.items() if now < w.end_time]
        return sorted(active, key=lambda item: item[1].end_time)

    async def watch(self, key: str, on_sample: SampleCallback) -> Optional[WindowTicker]:
        """Start a countdown ticker for ``key``; it is stopped on clear, supersede or reap."""
        async with self._lock:
            window = self._windows.get(key)
            if window is None:
                return None
            ticker = WindowTicker(window, on_sample, interval=self.tick_seconds, clock=self.clock)
            self._tickers.setdefault(key, []).append(ticker)
            ticker.start()
        return ticker

    async def unwatch(self, key: str, ticker: WindowTicker):
        async with self._lock:
            tickers = self._tickers.get(key, [])
            if ticker in tickers:
                tickers.remove(ticker)
            if not tickers:
                self._tickers.pop(key, None)
        await ticker.stop()

    async def restore(self) -> int:
        """Reload unexpired windows from the store and drop the rest from it."""
        if self.store is None:
            return 0
        payloads = await self.store.load_all()
        now = self._now(None)
        stale: List[str] = []
        restored: Dict[str, AccessWindow] = {}
        for key, payload in payloads.items():
            try:
                window = AccessWindow.from_dict(payload)
            except DeserializationError as e:
                logger.warning(f"Discarding unreadable persisted session {key}: {e}")
                stale.append(key)
                continue
            if window.is_expired(now):
                stale.append(key)
                continue
            restored[key] = window
        async with self._write_lock:
            async with self._lock:
                for key, window in restored.items():
                    self._windows.setdefault(key, window)
            if stale:
                await self._mirror_delete(stale)
        logger.info(f"Restored {len(restored)} session(s), discarded {len(stale)}")
        return len(restored)

    async def shutdown(self):
        async with self._lock:
            tickers = [t for ts in self._tickers.values() for t in ts]
            self._tickers.clear()
        await self._stop_tickers(tickers)

    async def _stop_tickers(self, tickers: List[WindowTicker]):
        for ticker in tickers:
            await ticker.stop()

    async def _mirror_save(self, key: str, window: AccessWindow):
        if self.store is None:
            return
        try:
            await self.store.save(key, window.to_dict())
        except Exception as e:
            logger.error(f"Failed to persist session {key}: {e}")

    async def _mirror_delete(self, keys: List[str]):
        if self.store is None:
            return
        try:
            await self.store.delete_many(keys)
        except Exception as e:
            logger.error(f"Failed to remove persisted session(s) {keys}: {e}")
