"""Shared fixtures: temporary SQLite store, recording messenger, frozen clock."""

from datetime import datetime, timezone
from typing import Dict, List, Optional, Tuple

import pytest
import pytest_asyncio

from remindbot.channels.base import Messenger
from remindbot.core.lifecycle import ReminderEngine
from remindbot.storage.db_config import init_db
from remindbot.storage.reminder import SqliteReminderStore

# Monday 2030-03-04 10:00 UTC
NOW = datetime(2030, 3, 4, 10, 0, tzinfo=timezone.utc)


class FakeMessenger(Messenger):
    """Records every delivery; can be told to fail or raise for given users."""

    def __init__(self) -> None:
        self.sent: List[Tuple[str, str]] = []
        self.fail_for: set = set()
        self.raise_for: Dict[str, Exception] = {}

    async def deliver(self, user_id: str, text: str) -> bool:
        if user_id in self.raise_for:
            raise self.raise_for[user_id]
        if user_id in self.fail_for:
            return False
        self.sent.append((user_id, text))
        return True

    def texts_for(self, user_id: str) -> List[str]:
        return [text for uid, text in self.sent if uid == user_id]

    @property
    def last_text(self) -> Optional[str]:
        return self.sent[-1][1] if self.sent else None


@pytest.fixture
def now() -> datetime:
    return NOW


@pytest_asyncio.fixture
async def db_conn(tmp_path):
    conn = await init_db(str(tmp_path / "data" / "test.db"))
    yield conn
    await conn.close()


@pytest_asyncio.fixture
async def store(db_conn) -> SqliteReminderStore:
    return SqliteReminderStore(db_conn)


@pytest.fixture
def messenger() -> FakeMessenger:
    return FakeMessenger()


@pytest.fixture
def engine(store, messenger) -> ReminderEngine:
    return ReminderEngine(
        store,
        messenger,
        timezone="UTC",
        locale="en",
        store_timeout=2.0,
        messenger_timeout=2.0,
        clock=lambda: NOW,
    )
