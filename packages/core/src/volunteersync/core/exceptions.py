"""VolunteerSync Core 异常体系

所有预期内的失败（实体不存在、状态机拒绝、名额/资格校验、唯一性冲突、
字段校验、乐观并发冲突）都继承 VolunteerSyncError，并携带 ErrorKind，
由 service 层转换为类型化的 OperationResult。
"""

from enum import StrEnum


class ErrorKind(StrEnum):
    """可被调用方区分的失败类型"""

    NOT_FOUND = "NOT_FOUND"
    INVALID_TRANSITION = "INVALID_TRANSITION"
    TASK_FULL = "TASK_FULL"
    TASK_NOT_OPEN = "TASK_NOT_OPEN"
    APPLICATION_CLOSED = "APPLICATION_CLOSED"
    DUPLICATE_REGISTRATION = "DUPLICATE_REGISTRATION"
    VALIDATION_FAILED = "VALIDATION_FAILED"
    CONCURRENCY_CONFLICT = "CONCURRENCY_CONFLICT"
    FORBIDDEN = "FORBIDDEN"
    INTERNAL = "INTERNAL"


class VolunteerSyncError(Exception):
    """Core 包基础异常"""

    kind: ErrorKind = ErrorKind.INTERNAL

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class NotFoundError(VolunteerSyncError):
    """实体 ID 无法解析"""

    kind = ErrorKind.NOT_FOUND

    def __init__(self, entity: str, entity_id: str) -> None:
        """
        Args:
            entity: 实体名称（task / registration / notification）
            entity_id: 查询使用的 ID
        """
        super().__init__(f"{entity} not found: {entity_id}")
        self.entity = entity
        self.entity_id = entity_id


class InvalidTransitionError(VolunteerSyncError):
    """状态机拒绝请求的流转"""

    kind = ErrorKind.INVALID_TRANSITION

    def __init__(self, from_status: str, to_status: str, reason: str = "") -> None:
        message = f"cannot transition from {from_status} to {to_status}"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)
        self.from_status = from_status
        self.to_status = to_status


class TaskFullError(VolunteerSyncError):
    """任务名额已满"""

    kind = ErrorKind.TASK_FULL

    def __init__(self, task_id: str) -> None:
        super().__init__(f"task has no free slot: {task_id}")
        self.task_id = task_id


class TaskNotOpenError(VolunteerSyncError):
    """任务不处于 Active 状态，不能占用名额"""

    kind = ErrorKind.TASK_NOT_OPEN

    def __init__(self, task_id: str, status: str) -> None:
        super().__init__(f"task {task_id} is not open (status={status})")
        self.task_id = task_id
        self.status = status


class ApplicationClosedError(VolunteerSyncError):
    """任务当前不接受报名（未发布、已暂停/结束或已过报名截止时间）"""

    kind = ErrorKind.APPLICATION_CLOSED

    def __init__(self, task_id: str, reason: str) -> None:
        super().__init__(f"task {task_id} is not accepting applications: {reason}")
        self.task_id = task_id


class DuplicateRegistrationError(VolunteerSyncError):
    """同一 (user, task) 已存在活跃报名"""

    kind = ErrorKind.DUPLICATE_REGISTRATION

    def __init__(self, user_id: str, task_id: str) -> None:
        super().__init__(f"user {user_id} already registered for task {task_id}")
        self.user_id = user_id
        self.task_id = task_id


class ValidationFailedError(VolunteerSyncError):
    """调用方提交的数据违反字段约束"""

    kind = ErrorKind.VALIDATION_FAILED


class ConcurrencyConflictError(VolunteerSyncError):
    """存储层检测到乐观写冲突（期望的状态/版本已被并发修改）"""

    kind = ErrorKind.CONCURRENCY_CONFLICT


class ForbiddenError(VolunteerSyncError):
    """调用方无权操作该组织的任务"""

    kind = ErrorKind.FORBIDDEN
