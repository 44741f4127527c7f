"""Store 共用的 SQL 辅助函数"""

from datetime import datetime

from ..exceptions import ValidationFailedError


def to_db_ts(value: datetime | None) -> str | None:
    """统一以微秒精度的 ISO 字符串落盘，保证字典序即时间序"""
    if value is None:
        return None
    return value.isoformat(timespec="microseconds")


def from_db_ts(value: str | None) -> datetime | None:
    if value is None:
        return None
    return datetime.fromisoformat(value)


def like_pattern(term: str) -> str:
    """构造大小写不敏感子串匹配的 LIKE 模式（% 与 _ 按字面量处理）"""
    escaped = (
        term.casefold()
        .replace("\\", "\\\\")
        .replace("%", "\\%")
        .replace("_", "\\_")
    )
    return f"%{escaped}%"


def check_paging(page: int, page_size: int) -> int:
    """校验分页参数，返回 OFFSET"""
    if page < 1:
        raise ValidationFailedError(f"page must be >= 1, got {page}")
    if page_size < 1:
        raise ValidationFailedError(f"page_size must be > 0, got {page_size}")
    return (page - 1) * page_size


def sql_casefold(value: str | None) -> str | None:
    """注册为 SQL 函数 casefold()，SQLite 内置 lower() 只折叠 ASCII"""
    if value is None:
        return None
    return str(value).casefold()
