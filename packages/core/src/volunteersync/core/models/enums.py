"""枚举定义 -- 任务状态机、报名状态机与分类

包含 TaskStatus / RegistrationStatus 两套状态机、TaskCategory、UserRole、
NotificationType 枚举，以及各自的合法流转映射和终态集合。
"""

from enum import StrEnum


class TaskStatus(StrEnum):
    """志愿任务状态机"""

    DRAFT = "Draft"
    ACTIVE = "Active"
    PAUSED = "Paused"

    # 终态
    COMPLETED = "Completed"
    CANCELLED = "Cancelled"


# 任务合法状态流转
TASK_VALID_TRANSITIONS: dict[TaskStatus, set[TaskStatus]] = {
    TaskStatus.DRAFT: {TaskStatus.ACTIVE, TaskStatus.CANCELLED},
    TaskStatus.ACTIVE: {
        TaskStatus.PAUSED,
        TaskStatus.COMPLETED,
        TaskStatus.CANCELLED,
    },
    TaskStatus.PAUSED: {
        TaskStatus.ACTIVE,
        TaskStatus.COMPLETED,
        TaskStatus.CANCELLED,
    },
    # 终态不可再流转
    TaskStatus.COMPLETED: set(),
    TaskStatus.CANCELLED: set(),
}

TASK_TERMINAL_STATES: set[TaskStatus] = {
    TaskStatus.COMPLETED,
    TaskStatus.CANCELLED,
}


class RegistrationStatus(StrEnum):
    """报名状态机"""

    PENDING = "Pending"
    APPROVED = "Approved"

    # 终态
    REJECTED = "Rejected"
    COMPLETED = "Completed"
    CANCELLED = "Cancelled"


# 报名合法状态流转
REGISTRATION_VALID_TRANSITIONS: dict[RegistrationStatus, set[RegistrationStatus]] = {
    RegistrationStatus.PENDING: {
        RegistrationStatus.APPROVED,
        RegistrationStatus.REJECTED,
        RegistrationStatus.CANCELLED,
    },
    RegistrationStatus.APPROVED: {
        RegistrationStatus.COMPLETED,
        RegistrationStatus.CANCELLED,
    },
    RegistrationStatus.REJECTED: set(),
    RegistrationStatus.COMPLETED: set(),
    RegistrationStatus.CANCELLED: set(),
}

REGISTRATION_TERMINAL_STATES: set[RegistrationStatus] = {
    RegistrationStatus.REJECTED,
    RegistrationStatus.COMPLETED,
    RegistrationStatus.CANCELLED,
}

# 同一 (user, task) 至多一条处于这些状态之外的报名
INACTIVE_REGISTRATION_STATES: set[RegistrationStatus] = {
    RegistrationStatus.REJECTED,
    RegistrationStatus.CANCELLED,
}

# 占用名额的报名状态（取消任务时需要释放）
SLOT_HOLDING_STATES: set[RegistrationStatus] = {
    RegistrationStatus.PENDING,
    RegistrationStatus.APPROVED,
}


class TaskCategory(StrEnum):
    """任务分类（封闭枚举）"""

    EDUCATION = "Education"
    HEALTHCARE = "Healthcare"
    ENVIRONMENT = "Environment"
    COMMUNITY_SERVICE = "CommunityService"
    ANIMAL_WELFARE = "AnimalWelfare"
    DISASTER_RELIEF = "DisasterRelief"
    ARTS = "Arts"
    SPORTS = "Sports"
    TECHNOLOGY = "Technology"
    OTHER = "Other"


class UserRole(StrEnum):
    """调用方角色"""

    USER = "User"
    ORGANIZATION_MEMBER = "OrganizationMember"
    ORGANIZATION_ADMIN = "OrganizationAdmin"
    SYSTEM_ADMIN = "SystemAdmin"


class NotificationType(StrEnum):
    """通知类型"""

    INFO = "info"
    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"
    APPLICATION = "application"


def validate_task_transition(from_status: TaskStatus, to_status: TaskStatus) -> bool:
    """验证任务状态流转是否合法

    Args:
        from_status: 当前状态
        to_status: 目标状态

    Returns:
        True 如果流转合法，否则 False
    """
    allowed = TASK_VALID_TRANSITIONS.get(from_status, set())
    return to_status in allowed


def validate_registration_transition(
    from_status: RegistrationStatus,
    to_status: RegistrationStatus,
) -> bool:
    """验证报名状态流转是否合法"""
    allowed = REGISTRATION_VALID_TRANSITIONS.get(from_status, set())
    return to_status in allowed


def is_active_registration(status: RegistrationStatus) -> bool:
    """报名是否处于活跃状态（未取消且未被拒绝）"""
    return status not in INACTIVE_REGISTRATION_STATES
