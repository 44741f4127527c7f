"""TaskRegistration Domain Model

报名是独立聚合，由 user 与 task 共同引用但不归属任一方，
其生命周期只由 Registration Workflow Engine 推进。
"""

from pydantic import BaseModel, Field

from ..config import APPLICATION_MESSAGE_MAX_LENGTH
from .common import UtcDatetime
from .enums import RegistrationStatus, is_active_registration


class TaskRegistration(BaseModel):
    """TaskRegistration 数据模型"""

    registration_id: str = Field(description="唯一标识，ULID 格式")
    user_id: str = Field(description="报名用户 ID")
    task_id: str = Field(description="关联的任务 ID")
    registration_date: UtcDatetime = Field(description="报名时间")
    status: RegistrationStatus = Field(
        default=RegistrationStatus.PENDING,
        description="当前状态",
    )
    application_message: str = Field(
        default="",
        max_length=APPLICATION_MESSAGE_MAX_LENGTH,
        description="申请留言",
    )
    notes: str = Field(default="", description="审核备注（拒绝原因）")
    reviewed_by_id: str | None = Field(default=None, description="审核人 ID")
    reviewed_at: UtcDatetime | None = Field(default=None, description="审核时间")
    completed_at: UtcDatetime | None = Field(default=None, description="完成时间")
    rating: int | None = Field(default=None, ge=1, le=5, description="评分 1-5")
    feedback: str | None = Field(default=None, description="反馈")
    updated_at: UtcDatetime = Field(description="更新时间")

    @property
    def is_active(self) -> bool:
        return is_active_registration(self.status)
