"""Notification Domain Model -- 报名状态变更后发给志愿者的站内通知"""

from pydantic import BaseModel, Field

from .common import UtcDatetime
from .enums import NotificationType


class Notification(BaseModel):
    """Notification 数据模型"""

    notification_id: str = Field(description="唯一标识，ULID 格式")
    user_id: str = Field(description="接收人 ID")
    title: str = Field(description="标题")
    message: str = Field(default="", description="正文")
    type: NotificationType = Field(default=NotificationType.INFO, description="通知类型")
    is_read: bool = Field(default=False, description="是否已读")
    task_id: str | None = Field(default=None, description="关联任务 ID")
    created_at: UtcDatetime = Field(description="创建时间")
