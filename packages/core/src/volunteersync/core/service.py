"""VolunteerSyncService -- 面向 API 层的结果型门面

每个操作都返回 OperationResult：成功时携带 value，预期内的失败携带
ErrorKind 与面向用户的消息。存储层异常只记录日志，对外给出通用消息。
调用方身份（Caller）由上游认证层提供，此处只做组织归属校验。
"""

from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

import aiosqlite
import structlog
from pydantic import ValidationError

from .config import CoreSettings, load_settings
from .exceptions import (
    ErrorKind,
    ForbiddenError,
    NotFoundError,
    ValidationFailedError,
    VolunteerSyncError,
)
from .geo import within_radius
from .lifecycle import Clock, TaskLifecycleEngine, utc_now
from .models.common import Caller, DashboardStats, OperationResult, Page
from .models.enums import RegistrationStatus, TaskCategory, TaskStatus
from .models.notification import Notification
from .models.registration import TaskRegistration
from .models.task import TaskDraft, VolunteerTask
from .notifications import Notifier, StoreNotifier
from .registration import RegistrationWorkflowEngine
from .store import StoreGroup

log = structlog.get_logger()

T = TypeVar("T")

_STORAGE_FAILURE_MESSAGE = "storage is temporarily unavailable, please retry later"


class VolunteerSyncService:
    """任务与报名的业务门面"""

    def __init__(
        self,
        stores: StoreGroup,
        notifier: Notifier | None = None,
        clock: Clock = utc_now,
        settings: CoreSettings | None = None,
    ) -> None:
        self._stores = stores
        self._clock = clock
        self._settings = settings or load_settings()
        self.lifecycle = TaskLifecycleEngine(stores, clock=clock)
        self.workflow = RegistrationWorkflowEngine(
            stores,
            self.lifecycle,
            notifier=notifier if notifier is not None else StoreNotifier(stores, clock=clock),
            clock=clock,
        )

    # ============================================================
    # 任务
    # ============================================================

    async def create_task(
        self,
        caller: Caller,
        organization_id: str,
        draft: TaskDraft | dict[str, Any],
    ) -> OperationResult[VolunteerTask]:
        async def op() -> VolunteerTask:
            self._require_staff(caller, organization_id)
            return await self.lifecycle.create_task(
                self._as_draft(draft), organization_id, caller.user_id
            )

        return await self._run("create_task", op)

    async def update_task(
        self,
        caller: Caller,
        task_id: str,
        draft: TaskDraft | dict[str, Any],
        expected_version: int,
    ) -> OperationResult[VolunteerTask]:
        async def op() -> VolunteerTask:
            await self._require_task_staff(caller, task_id)
            return await self.lifecycle.update_task(
                task_id, self._as_draft(draft), expected_version
            )

        return await self._run("update_task", op)

    async def delete_task(self, caller: Caller, task_id: str) -> OperationResult[bool]:
        async def op() -> bool:
            await self._require_task_staff(caller, task_id)
            await self.lifecycle.delete_task(task_id)
            return True

        return await self._run("delete_task", op)

    async def publish_task(self, caller: Caller, task_id: str) -> OperationResult[VolunteerTask]:
        return await self._task_action(caller, task_id, "publish_task", self.lifecycle.publish)

    async def pause_task(self, caller: Caller, task_id: str) -> OperationResult[VolunteerTask]:
        return await self._task_action(caller, task_id, "pause_task", self.lifecycle.pause)

    async def resume_task(self, caller: Caller, task_id: str) -> OperationResult[VolunteerTask]:
        return await self._task_action(caller, task_id, "resume_task", self.lifecycle.resume)

    async def complete_task(
        self,
        caller: Caller,
        task_id: str,
        manual: bool = False,
    ) -> OperationResult[VolunteerTask]:
        async def complete(tid: str) -> VolunteerTask:
            return await self.lifecycle.complete(tid, manual=manual)

        return await self._task_action(caller, task_id, "complete_task", complete)

    async def cancel_task(self, caller: Caller, task_id: str) -> OperationResult[VolunteerTask]:
        """取消任务并级联取消报名"""
        return await self._task_action(caller, task_id, "cancel_task", self.workflow.cancel_task)

    async def get_task(self, task_id: str) -> OperationResult[VolunteerTask]:
        return await self._run("get_task", self.lifecycle.get_task, task_id)

    async def list_tasks(
        self,
        page: int = 1,
        page_size: int | None = None,
    ) -> OperationResult[Page[VolunteerTask]]:
        return await self._run(
            "list_tasks",
            self._stores.task_store.list_tasks,
            page,
            self._page_size(page_size),
        )

    async def search_tasks(
        self,
        term: str,
        page: int = 1,
        page_size: int | None = None,
    ) -> OperationResult[Page[VolunteerTask]]:
        return await self._run(
            "search_tasks",
            self._stores.task_store.search,
            term,
            page,
            self._page_size(page_size),
        )

    async def featured_tasks(self) -> OperationResult[list[VolunteerTask]]:
        return await self._run("featured_tasks", self._stores.task_store.list_featured)

    async def active_tasks(self) -> OperationResult[list[VolunteerTask]]:
        return await self._run("active_tasks", self._stores.task_store.list_active)

    async def tasks_by_organization(
        self, organization_id: str
    ) -> OperationResult[list[VolunteerTask]]:
        return await self._run(
            "tasks_by_organization",
            self._stores.task_store.list_by_organization,
            organization_id,
        )

    async def tasks_by_creator(self, created_by_id: str) -> OperationResult[list[VolunteerTask]]:
        return await self._run(
            "tasks_by_creator", self._stores.task_store.list_by_creator, created_by_id
        )

    async def tasks_by_category(
        self, category: TaskCategory | str
    ) -> OperationResult[list[VolunteerTask]]:
        async def op() -> list[VolunteerTask]:
            try:
                parsed = TaskCategory(category)
            except ValueError as e:
                raise ValidationFailedError(f"unknown category: {category}") from e
            return await self._stores.task_store.list_by_category(parsed)

        return await self._run("tasks_by_category", op)

    async def tasks_near(
        self,
        latitude: float,
        longitude: float,
        radius_km: float,
        active_only: bool = True,
    ) -> OperationResult[list[VolunteerTask]]:
        """半径内的任务；默认只返回 Active 任务"""

        async def op() -> list[VolunteerTask]:
            candidates = await self._stores.task_store.list_with_coordinates()
            if active_only:
                candidates = [t for t in candidates if t.status == TaskStatus.ACTIVE]
            return within_radius(candidates, latitude, longitude, radius_km)

        return await self._run("tasks_near", op)

    # ============================================================
    # 报名
    # ============================================================

    async def register(
        self,
        caller: Caller,
        task_id: str,
        message: str = "",
    ) -> OperationResult[TaskRegistration]:
        return await self._run(
            "register", self.workflow.register, task_id, caller.user_id, message
        )

    async def unregister(self, caller: Caller, task_id: str) -> OperationResult[TaskRegistration]:
        return await self._run("unregister", self.workflow.unregister, task_id, caller.user_id)

    async def approve_registration(
        self,
        caller: Caller,
        registration_id: str,
    ) -> OperationResult[TaskRegistration]:
        async def op() -> TaskRegistration:
            await self._require_registration_staff(caller, registration_id)
            return await self.workflow.approve(registration_id, caller.user_id)

        return await self._run("approve_registration", op)

    async def reject_registration(
        self,
        caller: Caller,
        registration_id: str,
        reason: str = "",
    ) -> OperationResult[TaskRegistration]:
        async def op() -> TaskRegistration:
            await self._require_registration_staff(caller, registration_id)
            return await self.workflow.reject(registration_id, caller.user_id, reason)

        return await self._run("reject_registration", op)

    async def complete_registration(
        self,
        caller: Caller,
        registration_id: str,
        rating: int | None = None,
        feedback: str | None = None,
    ) -> OperationResult[TaskRegistration]:
        async def op() -> TaskRegistration:
            await self._require_registration_staff(caller, registration_id)
            return await self.workflow.complete(registration_id, rating, feedback)

        return await self._run("complete_registration", op)

    async def get_registration(
        self, caller: Caller, registration_id: str
    ) -> OperationResult[TaskRegistration]:
        """报名本人或任务所属组织可见"""

        async def op() -> TaskRegistration:
            registration = await self.workflow.get_registration(registration_id)
            if registration.user_id != caller.user_id:
                await self._require_task_staff(caller, registration.task_id)
            return registration

        return await self._run("get_registration", op)

    async def pending_registrations(
        self, caller: Caller, organization_id: str
    ) -> OperationResult[list[TaskRegistration]]:
        async def op() -> list[TaskRegistration]:
            self._require_staff(caller, organization_id)
            return await self.workflow.list_pending(organization_id)

        return await self._run("pending_registrations", op)

    async def my_registrations(self, caller: Caller) -> OperationResult[list[TaskRegistration]]:
        return await self._run("my_registrations", self.workflow.list_for_user, caller.user_id)

    async def task_registrations(
        self, caller: Caller, task_id: str
    ) -> OperationResult[list[TaskRegistration]]:
        async def op() -> list[TaskRegistration]:
            await self._require_task_staff(caller, task_id)
            return await self.workflow.list_for_task(task_id)

        return await self._run("task_registrations", op)

    # ============================================================
    # 通知与统计
    # ============================================================

    async def notifications(
        self,
        caller: Caller,
        unread_only: bool = False,
    ) -> OperationResult[list[Notification]]:
        return await self._run(
            "notifications",
            self._stores.notification_store.list_for_user,
            caller.user_id,
            unread_only,
        )

    async def mark_notification_read(
        self, caller: Caller, notification_id: str
    ) -> OperationResult[bool]:
        async def op() -> bool:
            async with self._stores.transaction():
                marked = await self._stores.notification_store.mark_read(
                    notification_id, caller.user_id
                )
            if not marked:
                raise NotFoundError("notification", notification_id)
            return True

        return await self._run("mark_notification_read", op)

    async def dashboard_stats(self) -> OperationResult[DashboardStats]:
        async def op() -> DashboardStats:
            now = self._clock()
            tasks = await self._stores.task_store.find(lambda t: True)
            by_status = await self._stores.registration_store.count_by_status()
            return DashboardStats(
                total_tasks=len(tasks),
                active_tasks=sum(1 for t in tasks if t.status == TaskStatus.ACTIVE),
                completed_tasks=sum(1 for t in tasks if t.status == TaskStatus.COMPLETED),
                upcoming_tasks=sum(
                    1 for t in tasks if t.status == TaskStatus.ACTIVE and t.start_date > now
                ),
                total_registrations=sum(by_status.values()),
                pending_registrations=by_status.get(RegistrationStatus.PENDING, 0),
            )

        return await self._run("dashboard_stats", op)

    # ============================================================
    # 内部
    # ============================================================

    async def _run(
        self,
        operation: str,
        fn: Callable[..., Awaitable[T]],
        *args: Any,
    ) -> OperationResult[T]:
        """执行操作并将异常转换为类型化结果"""
        try:
            value = await fn(*args)
        except VolunteerSyncError as e:
            log.info(
                "operation_rejected",
                operation=operation,
                error=e.kind.value,
                detail=e.message,
            )
            return OperationResult.failure(e.kind, e.message)
        except ValidationError as e:
            log.info("operation_invalid", operation=operation, errors=e.error_count())
            return OperationResult.failure(ErrorKind.VALIDATION_FAILED, _summarize(e))
        except aiosqlite.Error as e:
            log.error(
                "storage_failure",
                operation=operation,
                error_type=type(e).__name__,
                error=str(e),
            )
            return OperationResult.failure(ErrorKind.INTERNAL, _STORAGE_FAILURE_MESSAGE)
        return OperationResult.success(value)

    async def _task_action(
        self,
        caller: Caller,
        task_id: str,
        operation: str,
        action: Callable[[str], Awaitable[VolunteerTask]],
    ) -> OperationResult[VolunteerTask]:
        async def op() -> VolunteerTask:
            await self._require_task_staff(caller, task_id)
            return await action(task_id)

        return await self._run(operation, op)

    async def _require_task_staff(self, caller: Caller, task_id: str) -> VolunteerTask:
        task = await self.lifecycle.get_task(task_id)
        self._require_staff(caller, task.organization_id)
        return task

    async def _require_registration_staff(
        self, caller: Caller, registration_id: str
    ) -> TaskRegistration:
        registration = await self.workflow.get_registration(registration_id)
        await self._require_task_staff(caller, registration.task_id)
        return registration

    @staticmethod
    def _require_staff(caller: Caller, organization_id: str) -> None:
        if not caller.is_staff_of(organization_id):
            raise ForbiddenError(
                f"user {caller.user_id} cannot manage tasks of organization {organization_id}"
            )

    @staticmethod
    def _as_draft(draft: TaskDraft | dict[str, Any]) -> TaskDraft:
        if isinstance(draft, TaskDraft):
            return draft
        return TaskDraft.model_validate(draft)

    def _page_size(self, page_size: int | None) -> int:
        if page_size is None:
            return self._settings.default_page_size
        return min(page_size, self._settings.max_page_size)


def _summarize(error: ValidationError) -> str:
    """取每个字段错误的首条信息，拼成面向用户的消息"""
    parts = []
    for item in error.errors():
        field = ".".join(str(p) for p in item["loc"]) or "value"
        parts.append(f"{field}: {item['msg']}")
    return "; ".join(parts)
