"""VolunteerSync Core Domain Models -- 公共类型导出

所有公共模型类型从此入口导入。
"""

from .common import Caller, DashboardStats, OperationResult, Page
from .enums import (
    INACTIVE_REGISTRATION_STATES,
    REGISTRATION_TERMINAL_STATES,
    REGISTRATION_VALID_TRANSITIONS,
    SLOT_HOLDING_STATES,
    TASK_TERMINAL_STATES,
    TASK_VALID_TRANSITIONS,
    NotificationType,
    RegistrationStatus,
    TaskCategory,
    TaskStatus,
    UserRole,
    is_active_registration,
    validate_registration_transition,
    validate_task_transition,
)
from .notification import Notification
from .registration import TaskRegistration
from .task import Address, TaskDraft, VolunteerTask

__all__ = [
    # 枚举
    "TaskStatus",
    "RegistrationStatus",
    "TaskCategory",
    "UserRole",
    "NotificationType",
    # 状态机
    "TASK_VALID_TRANSITIONS",
    "TASK_TERMINAL_STATES",
    "REGISTRATION_VALID_TRANSITIONS",
    "REGISTRATION_TERMINAL_STATES",
    "INACTIVE_REGISTRATION_STATES",
    "SLOT_HOLDING_STATES",
    "validate_task_transition",
    "validate_registration_transition",
    "is_active_registration",
    # Task
    "VolunteerTask",
    "TaskDraft",
    "Address",
    # Registration
    "TaskRegistration",
    # Notification
    "Notification",
    # 共享
    "Caller",
    "Page",
    "OperationResult",
    "DashboardStats",
]
