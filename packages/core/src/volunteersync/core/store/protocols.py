"""Store Protocol 接口定义

定义 TaskStore、RegistrationStore、NotificationStore 的抽象接口，
使用 Python Protocol 实现结构化子类型（duck typing）。
每个实体各自实现一组能力，不共享基类状态。

写方法不自动提交事务，由调用方（transaction 模块）管理事务边界。
"""

from collections.abc import Callable
from datetime import datetime
from typing import Protocol

from ..models.common import Page
from ..models.enums import RegistrationStatus, TaskCategory, TaskStatus
from ..models.notification import Notification
from ..models.registration import TaskRegistration
from ..models.task import VolunteerTask


class TaskStore(Protocol):
    """VolunteerTask 存储接口"""

    async def get_task(self, task_id: str) -> VolunteerTask | None:
        """根据 task_id 查询任务"""
        ...

    async def create_task(self, task: VolunteerTask) -> None:
        """创建任务记录"""
        ...

    async def update_task(self, task: VolunteerTask) -> VolunteerTask:
        """整行更新（乐观版本校验），返回 version 递增后的任务"""
        ...

    async def delete_task(self, task_id: str) -> bool:
        """删除任务，返回是否删除了记录"""
        ...

    async def list_tasks(self, page: int, page_size: int) -> Page[VolunteerTask]:
        """分页列出任务，按 created_at 倒序"""
        ...

    async def find(
        self, predicate: Callable[[VolunteerTask], bool]
    ) -> list[VolunteerTask]:
        """按谓词筛选任务"""
        ...

    async def list_by_organization(self, organization_id: str) -> list[VolunteerTask]:
        """查询组织下的所有任务"""
        ...

    async def list_by_creator(self, created_by_id: str) -> list[VolunteerTask]:
        """查询创建人的所有任务"""
        ...

    async def list_by_category(self, category: TaskCategory) -> list[VolunteerTask]:
        """按分类查询任务"""
        ...

    async def list_featured(self) -> list[VolunteerTask]:
        """精选任务：紧急 + Active，按创建时间倒序，最多 10 条"""
        ...

    async def search(
        self, term: str, page: int, page_size: int
    ) -> Page[VolunteerTask]:
        """标题/描述/标签的大小写不敏感子串搜索"""
        ...

    async def list_active(self) -> list[VolunteerTask]:
        """Active 任务，按创建时间倒序"""
        ...

    async def list_with_coordinates(self) -> list[VolunteerTask]:
        """带经纬度的任务（地理筛选的候选集）"""
        ...

    async def update_status(
        self,
        task_id: str,
        status: TaskStatus,
        expected_status: TaskStatus,
        updated_at: datetime,
    ) -> bool:
        """条件更新状态，当前状态不等于 expected_status 时返回 False"""
        ...

    async def try_reserve_slot(self, task_id: str, updated_at: datetime) -> bool:
        """原子条件自增：仅当任务 Active 且未满时 +1，返回是否成功"""
        ...

    async def release_slot(self, task_id: str, updated_at: datetime) -> bool:
        """原子自减（下限 0），返回是否实际释放了名额"""
        ...


class RegistrationStore(Protocol):
    """TaskRegistration 存储接口"""

    async def get_registration(self, registration_id: str) -> TaskRegistration | None:
        """根据 registration_id 查询报名"""
        ...

    async def create_registration(self, registration: TaskRegistration) -> None:
        """创建报名记录"""
        ...

    async def update_registration(
        self,
        registration: TaskRegistration,
        expected_status: RegistrationStatus | None = None,
    ) -> bool:
        """整行更新；给出 expected_status 时仅在状态匹配时写入"""
        ...

    async def delete_registration(self, registration_id: str) -> bool:
        """删除报名记录"""
        ...

    async def list_registrations(
        self, page: int, page_size: int
    ) -> Page[TaskRegistration]:
        """分页列出报名，按报名时间倒序"""
        ...

    async def find(
        self, predicate: Callable[[TaskRegistration], bool]
    ) -> list[TaskRegistration]:
        """按谓词筛选报名"""
        ...

    async def list_by_user(self, user_id: str) -> list[TaskRegistration]:
        """查询用户的所有报名"""
        ...

    async def list_by_task(self, task_id: str) -> list[TaskRegistration]:
        """查询任务的所有报名"""
        ...

    async def get_by_user_and_task(
        self, user_id: str, task_id: str
    ) -> TaskRegistration | None:
        """查询 (user, task) 的报名：优先活跃报名，其次最新一条"""
        ...

    async def list_by_status(self, status: RegistrationStatus) -> list[TaskRegistration]:
        """按状态查询报名"""
        ...

    async def exists_active(self, user_id: str, task_id: str) -> bool:
        """(user, task) 是否已存在活跃报名"""
        ...

    async def list_pending_for_organization(
        self, organization_id: str
    ) -> list[TaskRegistration]:
        """组织名下任务的所有待审核报名"""
        ...

    async def count_by_status(self) -> dict[RegistrationStatus, int]:
        """各状态的报名数量"""
        ...


class NotificationStore(Protocol):
    """Notification 存储接口"""

    async def create_notification(self, notification: Notification) -> None:
        """创建通知"""
        ...

    async def list_for_user(
        self, user_id: str, unread_only: bool = False
    ) -> list[Notification]:
        """查询用户的通知，按创建时间倒序"""
        ...

    async def mark_read(self, notification_id: str, user_id: str) -> bool:
        """标记已读，返回是否命中记录"""
        ...
