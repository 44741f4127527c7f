"""VolunteerTask Domain Model

任务由所属组织拥有，current_volunteers 只能通过 Task Lifecycle Engine
的名额操作变更，永远处于 [0, max_volunteers] 区间内。
"""

from pydantic import BaseModel, Field, model_validator

from .common import UtcDatetime
from .enums import TaskCategory, TaskStatus


class Address(BaseModel):
    """地址值对象，经纬度可选"""

    street: str = Field(default="", description="街道")
    city: str = Field(default="", description="城市")
    state: str = Field(default="", description="州/省")
    zip_code: str = Field(default="", description="邮编")
    country: str = Field(default="", description="国家")
    latitude: float | None = Field(default=None, ge=-90, le=90, description="纬度")
    longitude: float | None = Field(default=None, ge=-180, le=180, description="经度")

    @property
    def has_coordinates(self) -> bool:
        return self.latitude is not None and self.longitude is not None


class TaskDraft(BaseModel):
    """创建/编辑任务时由调用方提交的字段"""

    title: str = Field(min_length=1, max_length=100, description="任务标题")
    description: str = Field(default="", max_length=2000, description="任务描述")
    start_date: UtcDatetime = Field(description="开始时间")
    end_date: UtcDatetime = Field(description="结束时间")
    location: Address = Field(default_factory=Address, description="任务地点")
    max_volunteers: int = Field(gt=0, description="名额上限")
    category: TaskCategory = Field(default=TaskCategory.OTHER, description="任务分类")
    requirements: list[str] = Field(default_factory=list, description="参与要求")
    skills: list[str] = Field(default_factory=list, description="所需技能")
    tags: list[str] = Field(default_factory=list, description="标签")
    image_urls: list[str] = Field(default_factory=list, description="图片地址")
    is_urgent: bool = Field(default=False, description="是否紧急")
    application_deadline: UtcDatetime | None = Field(default=None, description="报名截止时间")

    @model_validator(mode="after")
    def _check_dates(self) -> "TaskDraft":
        if self.end_date <= self.start_date:
            raise ValueError("end_date must be after start_date")
        return self


class VolunteerTask(TaskDraft):
    """VolunteerTask 数据模型

    version 为乐观并发计数器，每次整行更新后递增。
    """

    task_id: str = Field(description="唯一标识，ULID 格式")
    current_volunteers: int = Field(default=0, ge=0, description="已占用名额")
    status: TaskStatus = Field(default=TaskStatus.DRAFT, description="当前状态")
    organization_id: str = Field(description="所属组织 ID")
    created_by_id: str = Field(description="创建人 ID")
    created_at: UtcDatetime = Field(description="创建时间")
    updated_at: UtcDatetime = Field(description="更新时间")
    version: int = Field(default=1, ge=1, description="乐观并发版本号")

    @model_validator(mode="after")
    def _check_capacity(self) -> "VolunteerTask":
        if self.current_volunteers > self.max_volunteers:
            raise ValueError("current_volunteers cannot exceed max_volunteers")
        return self

    @property
    def free_slots(self) -> int:
        return self.max_volunteers - self.current_volunteers

    @property
    def is_full(self) -> bool:
        return self.current_volunteers >= self.max_volunteers
