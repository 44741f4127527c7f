"""报名状态变更通知

通知在报名事务提交之后发出；通知失败只记录日志，不影响已提交的状态变更。
"""

from typing import Protocol

import structlog
from ulid import ULID

from .lifecycle import Clock, utc_now
from .models.enums import NotificationType, RegistrationStatus
from .models.notification import Notification
from .models.registration import TaskRegistration
from .store import StoreGroup

log = structlog.get_logger()

# 目标状态 -> (类型, 标题, 正文模板)
_MESSAGES: dict[RegistrationStatus, tuple[NotificationType, str, str]] = {
    RegistrationStatus.PENDING: (
        NotificationType.APPLICATION,
        "Application received",
        "Your application for task {task_id} is waiting for review.",
    ),
    RegistrationStatus.APPROVED: (
        NotificationType.SUCCESS,
        "Application approved",
        "Your application for task {task_id} has been approved.",
    ),
    RegistrationStatus.REJECTED: (
        NotificationType.WARNING,
        "Application rejected",
        "Your application for task {task_id} was not accepted. {notes}",
    ),
    RegistrationStatus.COMPLETED: (
        NotificationType.SUCCESS,
        "Thank you for volunteering",
        "Your participation in task {task_id} has been recorded.",
    ),
    RegistrationStatus.CANCELLED: (
        NotificationType.INFO,
        "Registration cancelled",
        "Your registration for task {task_id} has been cancelled. {notes}",
    ),
}


class Notifier(Protocol):
    """报名状态变更的通知出口"""

    async def registration_changed(self, registration: TaskRegistration) -> None:
        """registration 已处于变更后的状态"""
        ...


class NullNotifier:
    """不发送任何通知"""

    async def registration_changed(self, registration: TaskRegistration) -> None:
        return None


class StoreNotifier:
    """将通知写入 notifications 表，供用户拉取"""

    def __init__(self, stores: StoreGroup, clock: Clock = utc_now) -> None:
        self._stores = stores
        self._clock = clock

    async def registration_changed(self, registration: TaskRegistration) -> None:
        notification_type, title, template = _MESSAGES[registration.status]
        notification = Notification(
            notification_id=str(ULID()),
            user_id=registration.user_id,
            title=title,
            message=template.format(
                task_id=registration.task_id,
                notes=registration.notes,
            ).strip(),
            type=notification_type,
            task_id=registration.task_id,
            created_at=self._clock(),
        )
        async with self._stores.transaction():
            await self._stores.notification_store.create_notification(notification)

        log.debug(
            "notification_created",
            notification_id=notification.notification_id,
            user_id=registration.user_id,
            status=registration.status.value,
        )
