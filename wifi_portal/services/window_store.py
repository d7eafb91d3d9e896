"""
Durable mirrors for the session registry.

The registry keeps the authoritative copy in memory; a store only has to
survive restarts. Payloads are the serialized access-window JSON objects
(``{"packageId", "startTime", "endTime"}``) and are handed back untouched,
so parsing and expiry decisions stay with the registry.
"""

from typing import Dict, Iterable
from sqlalchemy import select, delete
from sqlalchemy.dialects import postgresql, sqlite
from wifi_portal.db.models import AccessSession
import logging

logger = logging.getLogger(__name__)


class WindowStore:
    async def save(self, key: str, payload: Dict[str, str]):
        raise NotImplementedError

    async def delete(self, key: str):
        await self.delete_many([key])

    async def delete_many(self, keys: Iterable[str]):
        raise NotImplementedError

    async def load_all(self) -> Dict[str, Dict]:
        raise NotImplementedError


class MemoryWindowStore(WindowStore):
    def __init__(self):
        self.records: Dict[str, Dict] = {}

    async def save(self, key: str, payload: Dict[str, str]):
        self.records[key] = dict(payload)

    async def delete_many(self, keys: Iterable[str]):
        for key in keys:
            self.records.pop(key, None)

    async def load_all(self) -> Dict[str, Dict]:
        return {key: dict(payload) for key, payload in self.records.items()}


class SqlWindowStore(WindowStore):
    def __init__(self, session_factory):
        self._session_factory = session_factory

    async def save(self, key: str, payload: Dict[str, str]):
        values = {
            "package_id": payload.get("packageId"),
            "start_time": payload.get("startTime"),
            "end_time": payload.get("endTime"),
        }
        async with self._session_factory() as db:
            dialect = db.bind.dialect.name
            if dialect in ("sqlite", "postgresql"):
                insert = sqlite.insert if dialect == "sqlite" else postgresql.insert
                stmt = insert(AccessSession).values(session_key=key, **values)
                stmt = stmt.on_conflict_do_update(index_elements=[AccessSession.session_key], set_=values)
                await db.execute(stmt)
            else:
                result = await db.execute(select(AccessSession).where(AccessSession.session_key == key))
                record = result.scalar_one_or_none()
                if record is None:
                    record = AccessSession(session_key=key)
                    db.add(record)
                for field, value in values.items():
                    setattr(record, field, value)
            await db.commit()

    async def delete_many(self, keys: Iterable[str]):
        keys = list(keys)
        if not keys:
            return
        async with self._session_factory() as db:
            result = await db.execute(delete(AccessSession).where(AccessSession.session_key.in_(keys)))
            await db.commit()
            logger.info(f"Removed {result.rowcount} persisted session(s)")

    async def load_all(self) -> Dict[str, Dict]:
        async with self._session_factory() as db:
            result = await db.execute(select(AccessSession))
            return {
                r.session_key: {
                    "packageId": r.package_id,
                    "startTime": r.start_time,
                    "endTime": r.end_time,
                }
                for r in result.scalars().all()
            }
