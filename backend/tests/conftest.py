from __future__ import annotations

import os
import tempfile

# Settings are read at import time; keep the default SQLite file out of /data
os.environ.setdefault("DATA_PATH", tempfile.mkdtemp(prefix="resource-tracker-"))
os.environ.setdefault("TELEGRAM_BOT_TOKEN", "")
os.environ.setdefault("ADMIN_TELEGRAM_IDS", "")

from pathlib import Path
from typing import Any, Optional

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from resource_tracker.database import Base, configure_sqlite
from resource_tracker.services.probe import Outcome, ResourceSnapshot
from resource_tracker.services.resource_manager import ResourceLifecycleManager
from resource_tracker.services.schedule_registry import ScheduleRegistry
from resource_tracker.services.store import ResourceStore
from resource_tracker.utils.retry import RetryPolicy

ADMIN_ID = "900"


class FakeProbe:
    """Returns queued outcomes (or raises queued exceptions) in order."""

    def __init__(self, *results: Any):
        self.results = list(results) or [Outcome(status="success", response="ok", result=True, status_code=200)]
        self.calls: list[ResourceSnapshot] = []

    async def execute(self, resource: ResourceSnapshot) -> Outcome:
        self.calls.append(resource)
        result = self.results.pop(0) if len(self.results) > 1 else self.results[0]
        if isinstance(result, Exception):
            raise result
        return result


class FakeAlerter:
    """Records messages instead of talking to Telegram."""

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.messages: list[str] = []
        self.errors: list[tuple[ResourceSnapshot, str, Optional[int], bool]] = []

    async def notify_all(self, text: str) -> bool:
        if self.fail:
            raise RuntimeError("telegram unreachable")
        self.messages.append(text)
        return True

    async def notify_error(self, resource, error_text, status_code=None, transport_failure=False) -> bool:
        if self.fail:
            raise RuntimeError("telegram unreachable")
        self.errors.append((resource, error_text, status_code, transport_failure))
        return True


@pytest_asyncio.fixture
async def session_factory(tmp_path: Path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")
    configure_sqlite(engine.sync_engine)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    await engine.dispose()


@pytest.fixture
def store(session_factory) -> ResourceStore:
    return ResourceStore(session_factory, policy=RetryPolicy(max_attempts=1))


@pytest.fixture
def registry() -> ScheduleRegistry:
    return ScheduleRegistry()


@pytest.fixture
def probe() -> FakeProbe:
    return FakeProbe()


@pytest.fixture
def alerter() -> FakeAlerter:
    return FakeAlerter()


@pytest.fixture
def manager(store, registry, probe, alerter) -> ResourceLifecycleManager:
    return ResourceLifecycleManager(
        store=store,
        registry=registry,
        probe=probe,
        alerter=alerter,
        admin_ids=[ADMIN_ID],
    )


@pytest.fixture
def site_a() -> dict:
    return {
        "name": "site-a",
        "url": "https://example.com",
        "type": "static",
        "interval": 5,
        "user_id": "100",
    }
