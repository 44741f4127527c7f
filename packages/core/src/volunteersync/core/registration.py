"""Registration Workflow Engine -- 报名状态机

    Pending -> Approved | Rejected | Cancelled
    Approved -> Completed | Cancelled

Pending 与 Approved 占用任务名额；进入 Rejected / Cancelled 时释放名额，
Completed 保持计数。名额变更与报名写入在同一事务内提交。

通知器在事务提交之后才被 await 调用，看到的是已落盘的状态；
通知失败只记录 notification_failed 日志，不回滚状态变更。
"""

import aiosqlite
import structlog
from ulid import ULID

from .config import APPLICATION_MESSAGE_MAX_LENGTH
from .exceptions import (
    ConcurrencyConflictError,
    DuplicateRegistrationError,
    InvalidTransitionError,
    NotFoundError,
    ValidationFailedError,
)
from .lifecycle import Clock, TaskLifecycleEngine, utc_now
from .models.enums import (
    SLOT_HOLDING_STATES,
    RegistrationStatus,
    validate_registration_transition,
)
from .models.registration import TaskRegistration
from .models.task import VolunteerTask
from .notifications import Notifier, NullNotifier
from .store import StoreGroup

log = structlog.get_logger()


class RegistrationWorkflowEngine:
    """报名工作流引擎"""

    def __init__(
        self,
        stores: StoreGroup,
        lifecycle: TaskLifecycleEngine,
        notifier: Notifier | None = None,
        clock: Clock = utc_now,
    ) -> None:
        self._stores = stores
        self._lifecycle = lifecycle
        self._notifier = notifier or NullNotifier()
        self._clock = clock

    async def register(
        self,
        task_id: str,
        user_id: str,
        message: str = "",
    ) -> TaskRegistration:
        """提交报名，成功后占用一个名额

        检查顺序：留言长度 -> 任务存在 -> 重复报名 -> 报名窗口 -> 名额。

        Raises:
            ValidationFailedError: 留言超过长度上限
            NotFoundError: 任务不存在
            DuplicateRegistrationError: 已有活跃报名
            ApplicationClosedError: 任务未开放或已过报名截止时间
            TaskFullError: 名额已满
        """
        if len(message) > APPLICATION_MESSAGE_MAX_LENGTH:
            raise ValidationFailedError(
                f"application message exceeds {APPLICATION_MESSAGE_MAX_LENGTH} characters"
            )

        async with self._stores.transaction():
            now = self._clock()
            task = await self._lifecycle.get_task(task_id)
            if await self._stores.registration_store.exists_active(user_id, task_id):
                raise DuplicateRegistrationError(user_id, task_id)
            self._lifecycle.ensure_accepting_applications(task, now)

            await self._lifecycle.reserve_slot(task_id)

            registration = TaskRegistration(
                registration_id=str(ULID()),
                user_id=user_id,
                task_id=task_id,
                registration_date=now,
                status=RegistrationStatus.PENDING,
                application_message=message,
                updated_at=now,
            )
            try:
                await self._stores.registration_store.create_registration(registration)
            except aiosqlite.IntegrityError as e:
                if self._is_active_pair_conflict(e):
                    raise DuplicateRegistrationError(user_id, task_id) from e
                raise

        log.info(
            "registration_created",
            registration_id=registration.registration_id,
            task_id=task_id,
            user_id=user_id,
        )
        await self._notify(registration)
        return registration

    async def unregister(self, task_id: str, user_id: str) -> TaskRegistration:
        """志愿者撤回报名（Pending / Approved -> Cancelled），释放名额

        Raises:
            NotFoundError: 没有活跃报名
            InvalidTransitionError: 报名已完成
        """
        async with self._stores.transaction():
            registration = await self._stores.registration_store.get_by_user_and_task(
                user_id, task_id
            )
            if registration is None or not registration.is_active:
                raise NotFoundError("registration", f"{user_id}/{task_id}")

            updated = await self._transition(registration, RegistrationStatus.CANCELLED)
            await self._lifecycle.release_slot(task_id)

        await self._notify(updated)
        return updated

    async def approve(self, registration_id: str, reviewer_id: str) -> TaskRegistration:
        """Pending -> Approved"""
        async with self._stores.transaction():
            registration = await self.get_registration(registration_id)
            updated = await self._transition(
                registration,
                RegistrationStatus.APPROVED,
                reviewed_by_id=reviewer_id,
                reviewed_at=self._clock(),
            )

        await self._notify(updated)
        return updated

    async def reject(
        self,
        registration_id: str,
        reviewer_id: str,
        reason: str = "",
    ) -> TaskRegistration:
        """Pending -> Rejected，原因写入 notes，释放名额"""
        async with self._stores.transaction():
            registration = await self.get_registration(registration_id)
            updated = await self._transition(
                registration,
                RegistrationStatus.REJECTED,
                reviewed_by_id=reviewer_id,
                reviewed_at=self._clock(),
                notes=reason,
            )
            await self._lifecycle.release_slot(registration.task_id)

        await self._notify(updated)
        return updated

    async def complete(
        self,
        registration_id: str,
        rating: int | None = None,
        feedback: str | None = None,
    ) -> TaskRegistration:
        """Approved -> Completed，记录评分与反馈，名额保持占用

        Raises:
            ValidationFailedError: rating 不在 1-5
        """
        if rating is not None and not 1 <= rating <= 5:
            raise ValidationFailedError(f"rating must be between 1 and 5, got {rating}")

        async with self._stores.transaction():
            registration = await self.get_registration(registration_id)
            updated = await self._transition(
                registration,
                RegistrationStatus.COMPLETED,
                completed_at=self._clock(),
                rating=rating,
                feedback=feedback,
            )

        await self._notify(updated)
        return updated

    async def cancel_task(self, task_id: str) -> VolunteerTask:
        """取消任务，并级联取消其所有占用名额的报名（同一事务）"""
        async with self._stores.transaction():
            await self._lifecycle.cancel(task_id)
            cancelled = await self._cancel_slot_holders(task_id)
            task = await self._lifecycle.get_task(task_id)

        for registration in cancelled:
            await self._notify(registration)
        return task

    async def cancel_task_registrations(self, task_id: str) -> list[TaskRegistration]:
        """将任务上所有 Pending / Approved 报名置为 Cancelled 并释放名额"""
        async with self._stores.transaction():
            await self._lifecycle.get_task(task_id)
            cancelled = await self._cancel_slot_holders(task_id)

        for registration in cancelled:
            await self._notify(registration)
        return cancelled

    async def _cancel_slot_holders(self, task_id: str) -> list[TaskRegistration]:
        cancelled: list[TaskRegistration] = []
        for registration in await self._stores.registration_store.list_by_task(task_id):
            if registration.status not in SLOT_HOLDING_STATES:
                continue
            cancelled.append(
                await self._transition(
                    registration,
                    RegistrationStatus.CANCELLED,
                    notes="task cancelled by organizer",
                )
            )
            await self._lifecycle.release_slot(task_id)

        log.info("task_registrations_cancelled", task_id=task_id, count=len(cancelled))
        return cancelled

    async def get_registration(self, registration_id: str) -> TaskRegistration:
        registration = await self._stores.registration_store.get_registration(
            registration_id
        )
        if registration is None:
            raise NotFoundError("registration", registration_id)
        return registration

    async def list_pending(self, organization_id: str) -> list[TaskRegistration]:
        """组织名下所有任务的待审核报名，按报名时间正序"""
        return await self._stores.registration_store.list_pending_for_organization(
            organization_id
        )

    async def list_for_user(self, user_id: str) -> list[TaskRegistration]:
        return await self._stores.registration_store.list_by_user(user_id)

    async def list_for_task(self, task_id: str) -> list[TaskRegistration]:
        await self._lifecycle.get_task(task_id)
        return await self._stores.registration_store.list_by_task(task_id)

    async def _transition(
        self,
        registration: TaskRegistration,
        to_status: RegistrationStatus,
        **changes,
    ) -> TaskRegistration:
        """状态条件写入，须在事务作用域内调用"""
        if not validate_registration_transition(registration.status, to_status):
            raise InvalidTransitionError(registration.status, to_status)

        updated = registration.model_copy(
            update={"status": to_status, "updated_at": self._clock(), **changes}
        )
        written = await self._stores.registration_store.update_registration(
            updated, expected_status=registration.status
        )
        if not written:
            raise ConcurrencyConflictError(
                f"registration {registration.registration_id} changed concurrently"
            )

        log.info(
            "registration_status_changed",
            registration_id=registration.registration_id,
            task_id=registration.task_id,
            from_status=registration.status.value,
            to_status=to_status.value,
        )
        return updated

    async def _notify(self, registration: TaskRegistration) -> None:
        try:
            await self._notifier.registration_changed(registration)
        except Exception as e:
            # 状态变更已提交，通知失败不回滚
            log.warning(
                "notification_failed",
                registration_id=registration.registration_id,
                user_id=registration.user_id,
                error_type=type(e).__name__,
            )

    @staticmethod
    def _is_active_pair_conflict(error: Exception) -> bool:
        if not isinstance(error, aiosqlite.IntegrityError):
            return False
        text = str(error)
        return (
            "idx_registrations_active_pair" in text
            or "task_registrations.user_id, task_registrations.task_id" in text
        )
