"""集成测试共享 fixture"""

from collections.abc import AsyncGenerator
from pathlib import Path

import pytest_asyncio
from volunteersync.core.models import Caller, UserRole
from volunteersync.core.service import VolunteerSyncService
from volunteersync.core.store import StoreGroup, create_store_group


@pytest_asyncio.fixture
async def integration_stores(tmp_path: Path) -> AsyncGenerator[StoreGroup, None]:
    """文件型数据库上的 StoreGroup（与生产启动方式一致）"""
    store_group = await create_store_group(str(tmp_path / "sqlite" / "integration.db"))
    yield store_group
    await store_group.close()


@pytest_asyncio.fixture
async def integration_service(integration_stores: StoreGroup) -> VolunteerSyncService:
    """使用真实时钟与 StoreNotifier 的门面"""
    return VolunteerSyncService(integration_stores)


@pytest_asyncio.fixture
async def organizer() -> Caller:
    return Caller(
        user_id="organizer-1",
        role=UserRole.ORGANIZATION_ADMIN,
        organization_id="green-kigali",
    )
