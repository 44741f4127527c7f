"""配置模块 -- 可通过环境变量覆盖

包含数据库路径、分页/日志设置以及业务常量（留言长度、精选数量、地球半径）。
"""

import os
from pathlib import Path
from typing import Literal

import structlog
from pydantic import BaseModel, Field

log = structlog.get_logger()


def _get_base_dir() -> Path:
    """获取项目 data 基础目录"""
    return Path(os.environ.get("VOLUNTEERSYNC_DATA_DIR", "data"))


def get_db_path() -> str:
    """获取 SQLite 数据库路径"""
    return os.environ.get(
        "VOLUNTEERSYNC_DB_PATH",
        str(_get_base_dir() / "sqlite" / "volunteersync.db"),
    )


# 报名留言最大长度
APPLICATION_MESSAGE_MAX_LENGTH: int = 1000

# 精选任务数量上限
FEATURED_TASKS_LIMIT: int = 10

# 地球平均半径（公里），haversine 使用
EARTH_RADIUS_KM: float = 6371.0

# 日志中的服务名
SERVICE_NAME: str = "volunteersync-core"


class CoreSettings(BaseModel):
    """Core 运行设置 -- 从环境变量加载

    环境变量:
        VOLUNTEERSYNC_DEFAULT_PAGE_SIZE: 默认分页大小（默认 20）
        VOLUNTEERSYNC_MAX_PAGE_SIZE: 分页大小上限（默认 100）
        VOLUNTEERSYNC_LOG_FORMAT: 日志格式 dev/json
        VOLUNTEERSYNC_LOG_LEVEL: 日志级别
    """

    default_page_size: int = Field(default=20, gt=0, description="默认分页大小")
    max_page_size: int = Field(default=100, gt=0, description="分页大小上限")
    log_format: Literal["dev", "json"] = Field(default="dev", description="日志格式")
    log_level: str = Field(default="INFO", description="日志级别")


def _read_int(env_var: str, fallback: int) -> int | None:
    val = os.environ.get(env_var)
    if not val:
        return None
    try:
        return int(val)
    except ValueError:
        log.warning(
            "invalid_int_config",
            env_var=env_var,
            value=val,
            fallback=fallback,
        )
        # 使用默认值，不阻塞启动
        return None


def load_settings() -> CoreSettings:
    """从环境变量加载 CoreSettings

    Returns:
        CoreSettings 实例
    """
    kwargs: dict = {}

    if (val := _read_int("VOLUNTEERSYNC_DEFAULT_PAGE_SIZE", 20)) is not None:
        kwargs["default_page_size"] = val

    if (val := _read_int("VOLUNTEERSYNC_MAX_PAGE_SIZE", 100)) is not None:
        kwargs["max_page_size"] = val

    if val := os.environ.get("VOLUNTEERSYNC_LOG_FORMAT"):
        kwargs["log_format"] = val

    if val := os.environ.get("VOLUNTEERSYNC_LOG_LEVEL"):
        kwargs["log_level"] = val.upper()

    return CoreSettings(**kwargs)
