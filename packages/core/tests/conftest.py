"""packages/core 测试配置 -- 引擎与门面 fixture"""

import pytest
from volunteersync.core.lifecycle import TaskLifecycleEngine
from volunteersync.core.models import Caller, TaskRegistration, UserRole
from volunteersync.core.registration import RegistrationWorkflowEngine
from volunteersync.core.service import VolunteerSyncService


class RecordingNotifier:
    """记录所有通知调用；fail=True 时每次调用都抛错"""

    def __init__(self, fail: bool = False) -> None:
        self.fail = fail
        self.calls: list[TaskRegistration] = []

    async def registration_changed(self, registration: TaskRegistration) -> None:
        self.calls.append(registration)
        if self.fail:
            raise RuntimeError("notification channel down")


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def lifecycle(stores, clock) -> TaskLifecycleEngine:
    return TaskLifecycleEngine(stores, clock=clock)


@pytest.fixture
def workflow(stores, lifecycle, notifier, clock) -> RegistrationWorkflowEngine:
    return RegistrationWorkflowEngine(stores, lifecycle, notifier=notifier, clock=clock)


@pytest.fixture
def service(stores, clock) -> VolunteerSyncService:
    """使用 StoreNotifier 的门面"""
    return VolunteerSyncService(stores, clock=clock)


@pytest.fixture
def staff() -> Caller:
    return Caller(
        user_id="staff-1",
        role=UserRole.ORGANIZATION_ADMIN,
        organization_id="org-1",
    )


@pytest.fixture
def volunteer() -> Caller:
    return Caller(user_id="volunteer-1")
