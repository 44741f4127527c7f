"""VolunteerSync Core Store -- SQLite 持久化实现

提供工厂函数创建共享数据库连接的 Store 实例组。
连接由进程启动方显式创建、显式关闭，不作为全局单例存在。
"""

import asyncio
from contextlib import AbstractAsyncContextManager
from pathlib import Path

import aiosqlite

from .notification_store import SqliteNotificationStore
from .protocols import NotificationStore, RegistrationStore, TaskStore
from .registration_store import SqliteRegistrationStore
from .sqlite_init import init_db
from .task_store import SqliteTaskStore
from .transaction import transaction


class StoreGroup:
    """Store 实例组 -- 共享同一个数据库连接与写锁"""

    def __init__(self, conn: aiosqlite.Connection) -> None:
        self.conn = conn
        self.write_lock = asyncio.Lock()
        self.task_store: TaskStore = SqliteTaskStore(conn)
        self.registration_store: RegistrationStore = SqliteRegistrationStore(conn)
        self.notification_store: NotificationStore = SqliteNotificationStore(conn)

    def transaction(self) -> AbstractAsyncContextManager[aiosqlite.Connection]:
        """开启（或复用）该连接上的事务作用域"""
        return transaction(self.conn, self.write_lock)

    async def close(self) -> None:
        await self.conn.close()


async def create_store_group(db_path: str) -> StoreGroup:
    """创建 Store 实例组

    Args:
        db_path: SQLite 数据库文件路径

    Returns:
        StoreGroup 实例
    """
    # 确保数据库目录存在
    db_dir = Path(db_path).parent
    db_dir.mkdir(parents=True, exist_ok=True)

    conn = await aiosqlite.connect(db_path)
    conn.row_factory = aiosqlite.Row
    await init_db(conn)

    return StoreGroup(conn=conn)


__all__ = [
    "StoreGroup",
    "create_store_group",
    "SqliteTaskStore",
    "SqliteRegistrationStore",
    "SqliteNotificationStore",
    "init_db",
    "transaction",
]
