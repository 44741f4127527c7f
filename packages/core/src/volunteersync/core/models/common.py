"""跨模块共享的模型：调用方身份、分页结果、操作结果、统计"""

import math
from datetime import UTC, datetime
from typing import Annotated, Generic, TypeVar

from pydantic import AfterValidator, BaseModel, Field

from ..exceptions import ErrorKind
from .enums import UserRole

T = TypeVar("T")


def _as_utc(value: datetime) -> datetime:
    # 无时区的时间一律视为 UTC
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


UtcDatetime = Annotated[datetime, AfterValidator(_as_utc)]


class Caller(BaseModel):
    """调用方身份（由认证层提供，核心层直接信任）"""

    user_id: str = Field(description="用户 ID")
    role: UserRole = Field(default=UserRole.USER, description="角色")
    organization_id: str | None = Field(default=None, description="所属组织 ID")

    @property
    def is_system_admin(self) -> bool:
        return self.role == UserRole.SYSTEM_ADMIN

    def is_staff_of(self, organization_id: str) -> bool:
        """是否为指定组织的工作人员"""
        if self.is_system_admin:
            return True
        return (
            self.role in (UserRole.ORGANIZATION_MEMBER, UserRole.ORGANIZATION_ADMIN)
            and self.organization_id == organization_id
        )


class Page(BaseModel, Generic[T]):
    """分页结果，page 从 1 开始"""

    items: list[T] = Field(default_factory=list)
    total_count: int = Field(default=0, ge=0)
    page: int = Field(ge=1)
    page_size: int = Field(gt=0)

    @property
    def total_pages(self) -> int:
        return math.ceil(self.total_count / self.page_size)


class OperationResult(BaseModel, Generic[T]):
    """操作结果：要么携带 value，要么携带类型化的 error

    API 层据 error 映射为面向用户的响应。
    """

    value: T | None = None
    error: ErrorKind | None = None
    message: str = ""

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, value: T) -> "OperationResult[T]":
        return cls(value=value)

    @classmethod
    def failure(cls, error: ErrorKind, message: str) -> "OperationResult[T]":
        return cls(error=error, message=message)


class DashboardStats(BaseModel):
    """首页统计"""

    total_tasks: int = 0
    active_tasks: int = 0
    completed_tasks: int = 0
    upcoming_tasks: int = 0
    total_registrations: int = 0
    pending_registrations: int = 0
