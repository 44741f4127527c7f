"""事务作用域封装

名额写入与报名写入必须作为一个逻辑单元提交：任意一侧失败时整体回滚，
避免出现"占了名额却没有报名记录"或反之的不一致状态。

一个 aiosqlite 连接就是一个事务上下文，因此同一连接上的事务作用域
由 write_lock 串行化。嵌套进入同一连接的作用域时复用外层事务，
由最外层统一提交或回滚。
"""

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from contextvars import ContextVar

import aiosqlite
import structlog

log = structlog.get_logger()

# 当前协程上下文已持有事务的连接
_active_conn: ContextVar[aiosqlite.Connection | None] = ContextVar(
    "volunteersync_active_conn",
    default=None,
)


@asynccontextmanager
async def transaction(
    conn: aiosqlite.Connection,
    write_lock: asyncio.Lock,
) -> AsyncIterator[aiosqlite.Connection]:
    """在同一事务内执行作用域内的所有读-检查-写操作

    Args:
        conn: 数据库连接（需在同一连接上操作以保证事务性）
        write_lock: 串行化该连接上事务作用域的锁

    Raises:
        作用域内抛出的任何异常（已回滚），包括调用方取消
    """
    if _active_conn.get() is conn:
        yield conn
        return

    async with write_lock:
        token = _active_conn.set(conn)
        try:
            yield conn
        except BaseException as e:
            await conn.rollback()
            log.debug("transaction_rolled_back", error_type=type(e).__name__)
            raise
        else:
            await conn.commit()
        finally:
            _active_conn.reset(token)
