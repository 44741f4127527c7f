"""CLI 入口模块 -- python -m volunteersync.core <command>

支持的命令：
  init-db        创建数据库表结构
  close-expired  将已过结束时间的 Active / Paused 任务推进到 Completed
"""

import asyncio
import sys

import structlog

from .config import get_db_path
from .logging_config import setup_logging

_USAGE = """用法: python -m volunteersync.core <command>
命令:
  init-db        创建数据库表结构
  close-expired  完成所有已过结束时间的任务"""


def main(argv: list[str] | None = None) -> int:
    """CLI 主入口，返回进程退出码"""
    args = sys.argv[1:] if argv is None else argv
    if not args:
        print(_USAGE)
        return 1

    command = args[0]
    setup_logging()

    with structlog.contextvars.bound_contextvars(command=command):
        if command == "init-db":
            asyncio.run(init_database())
        elif command == "close-expired":
            asyncio.run(close_expired())
        else:
            print(f"未知命令: {command}")
            print("可用命令: init-db, close-expired")
            return 1
    return 0


async def init_database() -> None:
    """创建（或确认）数据库表结构"""
    from .store import create_store_group

    db_path = get_db_path()
    print(f"数据库路径: {db_path}")

    store_group = await create_store_group(db_path)
    await store_group.close()
    print("表结构已就绪")


async def close_expired() -> int:
    """执行过期任务关闭，返回完成的任务数"""
    from .lifecycle import TaskLifecycleEngine
    from .store import create_store_group

    db_path = get_db_path()
    print(f"数据库路径: {db_path}")

    store_group = await create_store_group(db_path)
    try:
        completed = await TaskLifecycleEngine(store_group).close_expired()
        print(f"已完成 {len(completed)} 个过期任务")
        return len(completed)
    finally:
        await store_group.close()


if __name__ == "__main__":
    sys.exit(main())
