import os
import tempfile

# Must be set before anything imports wifi_portal.config
_tmp_dir = tempfile.mkdtemp(prefix="wifi_portal_tests_")
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{os.path.join(_tmp_dir, 'portal.db')}"
os.environ["PAYMENT_GATEWAY"] = "simulated"
os.environ["PAYMENT_SIMULATED_DELAY_SECONDS"] = "0"
os.environ["CLOCK_TICK_SECONDS"] = "0.05"
os.environ["SESSION_REAP_INTERVAL_SECONDS"] = "3600"

from datetime import datetime, timedelta, timezone

import pytest

from wifi_portal.db.database import AsyncSessionLocal, create_tables


class FixedClock:
    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs):
        self.now = self.now + timedelta(**kwargs)


@pytest.fixture
def clock():
    return FixedClock(datetime(2024, 1, 15, 10, 0, tzinfo=timezone.utc))


@pytest.fixture
async def db():
    await create_tables()
    async with AsyncSessionLocal() as session:
        yield session
