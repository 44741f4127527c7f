"""Task Lifecycle Engine -- 任务状态机与名额计量

状态机：
    Draft -> Active（发布）
    Active <-> Paused（暂停/恢复）
    Active | Paused -> Completed（结束时间之后，或显式手动关闭）
    Draft | Active | Paused -> Cancelled
Completed 与 Cancelled 为终态。

名额只通过存储层的原子条件 UPDATE 变更，从不在应用层读-改-写。
"""

from collections.abc import Callable
from datetime import UTC, datetime

import aiosqlite
import structlog
from pydantic import ValidationError
from ulid import ULID

from .exceptions import (
    ApplicationClosedError,
    ConcurrencyConflictError,
    InvalidTransitionError,
    NotFoundError,
    TaskFullError,
    TaskNotOpenError,
    ValidationFailedError,
)
from .models.enums import (
    TASK_TERMINAL_STATES,
    RegistrationStatus,
    TaskStatus,
    validate_task_transition,
)
from .models.task import TaskDraft, VolunteerTask
from .store import StoreGroup

log = structlog.get_logger()

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(UTC)


class TaskLifecycleEngine:
    """任务生命周期引擎"""

    def __init__(self, stores: StoreGroup, clock: Clock = utc_now) -> None:
        self._stores = stores
        self._clock = clock

    async def get_task(self, task_id: str) -> VolunteerTask:
        """查询任务，不存在时抛出 NotFoundError"""
        task = await self._stores.task_store.get_task(task_id)
        if task is None:
            raise NotFoundError("task", task_id)
        return task

    async def create_task(
        self,
        draft: TaskDraft,
        organization_id: str,
        created_by_id: str,
    ) -> VolunteerTask:
        """创建任务，新任务总是从 Draft 开始

        Raises:
            ValidationFailedError: 开始时间不在未来，或字段校验失败
        """
        now = self._clock()
        if draft.start_date <= now:
            raise ValidationFailedError("start_date must be in the future")

        try:
            task = VolunteerTask(
                **draft.model_dump(),
                task_id=str(ULID()),
                status=TaskStatus.DRAFT,
                current_volunteers=0,
                organization_id=organization_id,
                created_by_id=created_by_id,
                created_at=now,
                updated_at=now,
            )
        except ValidationError as e:
            raise ValidationFailedError(str(e)) from e

        async with self._stores.transaction():
            await self._stores.task_store.create_task(task)

        log.info(
            "task_created",
            task_id=task.task_id,
            organization_id=organization_id,
            max_volunteers=task.max_volunteers,
        )
        return task

    async def update_task(
        self,
        task_id: str,
        draft: TaskDraft,
        expected_version: int,
    ) -> VolunteerTask:
        """编辑任务的可变字段

        Args:
            task_id: 任务 ID
            draft: 新的字段值
            expected_version: 调用方读取时的版本号

        Raises:
            ConcurrencyConflictError: 版本号不匹配
            ValidationFailedError: 任务已终结，或名额上限低于已占用名额
        """
        async with self._stores.transaction():
            task = await self.get_task(task_id)
            if task.status in TASK_TERMINAL_STATES:
                raise ValidationFailedError(f"task {task_id} is {task.status} and cannot be edited")
            if task.version != expected_version:
                raise ConcurrencyConflictError(
                    f"task {task_id} is at version {task.version}, expected {expected_version}"
                )
            if draft.max_volunteers < task.current_volunteers:
                raise ValidationFailedError(
                    f"max_volunteers cannot be lower than current_volunteers ({task.current_volunteers})"
                )

            try:
                edited = VolunteerTask(
                    **{
                        **task.model_dump(),
                        **draft.model_dump(),
                        "updated_at": self._clock(),
                    }
                )
            except ValidationError as e:
                raise ValidationFailedError(str(e)) from e

            updated = await self._stores.task_store.update_task(edited)

        log.info("task_updated", task_id=task_id, version=updated.version)
        return updated

    async def delete_task(self, task_id: str) -> None:
        """删除任务：仅允许 Draft / Cancelled 且没有占用名额的任务"""
        async with self._stores.transaction():
            task = await self.get_task(task_id)
            if task.status not in (TaskStatus.DRAFT, TaskStatus.CANCELLED):
                raise ValidationFailedError(
                    f"only draft or cancelled tasks can be deleted (status={task.status})"
                )
            registrations = await self._stores.registration_store.list_by_task(task_id)
            if any(
                r.status in (RegistrationStatus.PENDING, RegistrationStatus.APPROVED)
                for r in registrations
            ):
                raise ValidationFailedError(f"task {task_id} still has open registrations")
            await self._stores.task_store.delete_task(task_id)

        log.info("task_deleted", task_id=task_id)

    async def publish(self, task_id: str) -> VolunteerTask:
        """Draft -> Active"""
        return await self.transition(task_id, TaskStatus.ACTIVE, allowed_from={TaskStatus.DRAFT})

    async def pause(self, task_id: str) -> VolunteerTask:
        """Active -> Paused"""
        return await self.transition(task_id, TaskStatus.PAUSED)

    async def resume(self, task_id: str) -> VolunteerTask:
        """Paused -> Active"""
        return await self.transition(task_id, TaskStatus.ACTIVE, allowed_from={TaskStatus.PAUSED})

    async def complete(self, task_id: str, manual: bool = False) -> VolunteerTask:
        """Active | Paused -> Completed

        Args:
            manual: True 表示组织手动关闭，不要求已过结束时间
        """
        return await self.transition(task_id, TaskStatus.COMPLETED, manual=manual)

    async def cancel(self, task_id: str) -> VolunteerTask:
        """非终态 -> Cancelled（不处理报名，级联由 workflow 负责）"""
        return await self.transition(task_id, TaskStatus.CANCELLED)

    async def transition(
        self,
        task_id: str,
        to_status: TaskStatus,
        manual: bool = False,
        allowed_from: set[TaskStatus] | None = None,
    ) -> VolunteerTask:
        """执行状态流转（状态条件写入，防止并发覆盖）

        Raises:
            NotFoundError: 任务不存在
            InvalidTransitionError: 流转不在状态图内，或未到结束时间
            ConcurrencyConflictError: 状态已被并发修改
        """
        async with self._stores.transaction():
            task = await self.get_task(task_id)
            now = self._clock()

            if not validate_task_transition(task.status, to_status) or (
                allowed_from is not None and task.status not in allowed_from
            ):
                raise InvalidTransitionError(task.status, to_status)

            if to_status == TaskStatus.COMPLETED and not manual and now < task.end_date:
                raise InvalidTransitionError(
                    task.status, to_status, reason="task has not reached its end date"
                )

            written = await self._stores.task_store.update_status(
                task_id=task_id,
                status=to_status,
                expected_status=task.status,
                updated_at=now,
            )
            if not written:
                raise ConcurrencyConflictError(
                    f"task {task_id} status changed concurrently (expected {task.status})"
                )

            log.info(
                "task_status_changed",
                task_id=task_id,
                from_status=task.status.value,
                to_status=to_status.value,
            )
            return await self.get_task(task_id)

    async def reserve_slot(self, task_id: str) -> VolunteerTask:
        """占用一个名额（原子条件自增）

        Raises:
            NotFoundError: 任务不存在
            TaskFullError: current_volunteers == max_volunteers
            TaskNotOpenError: 任务不处于 Active
        """
        async with self._stores.transaction():
            reserved = await self._stores.task_store.try_reserve_slot(task_id, self._clock())
            task = await self.get_task(task_id)
            if not reserved:
                if task.is_full:
                    raise TaskFullError(task_id)
                raise TaskNotOpenError(task_id, task.status)

        log.info(
            "slot_reserved",
            task_id=task_id,
            current_volunteers=task.current_volunteers,
            max_volunteers=task.max_volunteers,
        )
        return task

    async def release_slot(self, task_id: str) -> VolunteerTask:
        """释放一个名额，已为 0 时为幂等空操作"""
        async with self._stores.transaction():
            released = await self._stores.task_store.release_slot(task_id, self._clock())
            task = await self.get_task(task_id)

        if released:
            log.info(
                "slot_released",
                task_id=task_id,
                current_volunteers=task.current_volunteers,
            )
        else:
            log.debug("slot_release_noop", task_id=task_id)
        return task

    @staticmethod
    def is_accepting_applications(task: VolunteerTask, now: datetime) -> bool:
        """Active、未满、且未过报名截止时间"""
        return (
            task.status == TaskStatus.ACTIVE
            and task.current_volunteers < task.max_volunteers
            and (task.application_deadline is None or now <= task.application_deadline)
        )

    @staticmethod
    def ensure_accepting_applications(task: VolunteerTask, now: datetime) -> None:
        """报名资格检查，给出具体的拒绝原因

        Raises:
            ApplicationClosedError: 任务不处于 Active，或已过报名截止时间
            TaskFullError: 报名窗口开放但名额已满
        """
        if task.status != TaskStatus.ACTIVE:
            raise ApplicationClosedError(task.task_id, f"task is {task.status}")
        if task.application_deadline is not None and now > task.application_deadline:
            raise ApplicationClosedError(task.task_id, "application deadline has passed")
        if task.is_full:
            raise TaskFullError(task.task_id)

    async def close_expired(self) -> list[VolunteerTask]:
        """将已过结束时间的 Active / Paused 任务推进到 Completed

        Returns:
            本次完成的任务
        """
        now = self._clock()
        candidates = await self._stores.task_store.find(
            lambda t: t.status in (TaskStatus.ACTIVE, TaskStatus.PAUSED) and t.end_date <= now
        )

        completed: list[VolunteerTask] = []
        for task in candidates:
            try:
                completed.append(await self.complete(task.task_id))
            except (ConcurrencyConflictError, InvalidTransitionError, NotFoundError) as e:
                # 期间被其他调用方推进或删除
                log.warning(
                    "close_expired_skipped",
                    task_id=task.task_id,
                    error_type=type(e).__name__,
                )
            except aiosqlite.Error:
                log.error("close_expired_storage_error", task_id=task.task_id)
                raise

        log.info("close_expired_finished", candidates=len(candidates), completed=len(completed))
        return completed
