"""全局 pytest 配置 -- 临时 SQLite 数据库、可控时钟、任务构造 fixture"""

from collections.abc import AsyncGenerator, Awaitable, Callable
from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import Any

import aiosqlite
import pytest
import pytest_asyncio
from volunteersync.core.models import Address, TaskStatus, VolunteerTask
from volunteersync.core.store import StoreGroup, create_store_group


class FrozenClock:
    """测试用时钟，调用 advance() 手动推进"""

    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


@pytest.fixture
def clock() -> FrozenClock:
    """固定在 2025-03-01 09:00 UTC 的时钟"""
    return FrozenClock(datetime(2025, 3, 1, 9, 0, tzinfo=UTC))


@pytest_asyncio.fixture
async def tmp_db_path(tmp_path: Path) -> Path:
    """提供临时 SQLite 数据库路径"""
    return tmp_path / "test.db"


@pytest_asyncio.fixture
async def db_conn(tmp_db_path: Path) -> AsyncGenerator[aiosqlite.Connection, None]:
    """提供已初始化的临时 SQLite 数据库连接"""
    from volunteersync.core.store.sqlite_init import init_db

    conn = await aiosqlite.connect(str(tmp_db_path))
    await init_db(conn)
    yield conn
    await conn.close()


@pytest_asyncio.fixture
async def stores(tmp_db_path: Path) -> AsyncGenerator[StoreGroup, None]:
    """提供共享连接的 StoreGroup"""
    group = await create_store_group(str(tmp_db_path))
    yield group
    await group.close()


@pytest.fixture
def make_task(
    stores: StoreGroup, clock: FrozenClock
) -> Callable[..., Awaitable[VolunteerTask]]:
    """直接写入存储层的任务构造器（绕过生命周期校验，用于准备数据）"""
    counter = {"n": 0}

    async def _make(**overrides: Any) -> VolunteerTask:
        counter["n"] += 1
        n = counter["n"]
        now = clock()
        fields: dict[str, Any] = {
            "task_id": f"task-{n:04d}",
            "title": f"Beach cleanup #{n}",
            "description": "Collect litter along the shore",
            "start_date": now + timedelta(days=7),
            "end_date": now + timedelta(days=7, hours=4),
            "location": Address(city="Kigali", country="Rwanda"),
            "max_volunteers": 5,
            "status": TaskStatus.ACTIVE,
            "organization_id": "org-1",
            "created_by_id": "staff-1",
            # 保证 created_at 严格递增，便于断言排序
            "created_at": now + timedelta(seconds=n),
            "updated_at": now,
        }
        fields.update(overrides)
        task = VolunteerTask(**fields)
        async with stores.transaction():
            await stores.task_store.create_task(task)
        return task

    return _make
