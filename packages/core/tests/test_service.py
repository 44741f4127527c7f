"""VolunteerSyncService 单元测试

测试内容：
1. 异常到 OperationResult 的映射
2. 组织归属校验
3. 发现类查询（搜索、附近、精选、分类）
4. 通知与统计
"""

from datetime import timedelta

import aiosqlite
import pytest
from volunteersync.core.config import CoreSettings
from volunteersync.core.exceptions import ErrorKind
from volunteersync.core.models import (
    Address,
    Caller,
    NotificationType,
    RegistrationStatus,
    TaskStatus,
    UserRole,
)
from volunteersync.core.service import VolunteerSyncService


def _draft_dict(clock, **overrides) -> dict:
    fields = {
        "title": "Soup kitchen",
        "description": "Serve dinner",
        "start_date": (clock() + timedelta(days=2)).isoformat(),
        "end_date": (clock() + timedelta(days=2, hours=3)).isoformat(),
        "max_volunteers": 3,
        "category": "CommunityService",
    }
    fields.update(overrides)
    return fields


class TestResultMapping:
    """异常映射"""

    async def test_success(self, service, make_task):
        task = await make_task()
        result = await service.get_task(task.task_id)
        assert result.ok
        assert result.value.task_id == task.task_id

    async def test_not_found(self, service):
        result = await service.get_task("nope")
        assert result.ok is False
        assert result.error == ErrorKind.NOT_FOUND
        assert "nope" in result.message

    async def test_domain_errors(self, service, make_task, volunteer):
        task = await make_task(max_volunteers=1)
        assert (await service.register(volunteer, task.task_id)).ok
        again = await service.register(volunteer, task.task_id)
        assert again.error == ErrorKind.DUPLICATE_REGISTRATION

        other = Caller(user_id="volunteer-2")
        full = await service.register(other, task.task_id)
        assert full.error == ErrorKind.TASK_FULL

    async def test_application_closed(self, service, make_task, volunteer):
        task = await make_task(status=TaskStatus.PAUSED)
        result = await service.register(volunteer, task.task_id)
        assert result.error == ErrorKind.APPLICATION_CLOSED

    async def test_pydantic_validation(self, service, staff, clock):
        result = await service.create_task(staff, "org-1", _draft_dict(clock, max_volunteers=0))
        assert result.error == ErrorKind.VALIDATION_FAILED
        assert "max_volunteers" in result.message

    async def test_storage_error_is_internal(self, service, stores, make_task, monkeypatch):
        """存储层异常只给出通用消息"""
        task = await make_task()

        async def broken_get(task_id):
            raise aiosqlite.OperationalError("database is locked: /secret/path.db")

        monkeypatch.setattr(stores.task_store, "get_task", broken_get)
        result = await service.get_task(task.task_id)
        assert result.error == ErrorKind.INTERNAL
        assert "/secret/path.db" not in result.message

    async def test_unexpected_errors_propagate(self, service, stores, monkeypatch):
        async def broken_featured():
            raise RuntimeError("bug")

        monkeypatch.setattr(stores.task_store, "list_featured", broken_featured)
        with pytest.raises(RuntimeError):
            await service.featured_tasks()


class TestAuthorization:
    """组织归属"""

    async def test_staff_manage_own_tasks(self, service, staff, clock):
        created = await service.create_task(staff, "org-1", _draft_dict(clock))
        assert created.ok
        task = created.value
        assert task.created_by_id == staff.user_id
        assert task.status == TaskStatus.DRAFT

        published = await service.publish_task(staff, task.task_id)
        assert published.value.status == TaskStatus.ACTIVE
        assert (await service.pause_task(staff, task.task_id)).value.status == TaskStatus.PAUSED
        assert (await service.resume_task(staff, task.task_id)).value.status == TaskStatus.ACTIVE
        completed = await service.complete_task(staff, task.task_id, manual=True)
        assert completed.value.status == TaskStatus.COMPLETED

    async def test_other_org_forbidden(self, service, make_task):
        task = await make_task(organization_id="org-1")
        outsider = Caller(
            user_id="staff-9", role=UserRole.ORGANIZATION_ADMIN, organization_id="org-9"
        )
        result = await service.pause_task(outsider, task.task_id)
        assert result.error == ErrorKind.FORBIDDEN
        assert (await service.get_task(task.task_id)).value.status == TaskStatus.ACTIVE

    async def test_volunteer_cannot_create(self, service, volunteer, clock):
        result = await service.create_task(volunteer, "org-1", _draft_dict(clock))
        assert result.error == ErrorKind.FORBIDDEN

    async def test_system_admin_can_cancel(self, service, make_task):
        task = await make_task(organization_id="org-7")
        admin = Caller(user_id="root", role=UserRole.SYSTEM_ADMIN)
        result = await service.cancel_task(admin, task.task_id)
        assert result.value.status == TaskStatus.CANCELLED

    async def test_review_requires_staff(self, service, make_task, volunteer, staff):
        task = await make_task()
        registration = (await service.register(volunteer, task.task_id)).value
        denied = await service.approve_registration(volunteer, registration.registration_id)
        assert denied.error == ErrorKind.FORBIDDEN
        approved = await service.approve_registration(staff, registration.registration_id)
        assert approved.value.status == RegistrationStatus.APPROVED
        assert approved.value.reviewed_by_id == staff.user_id

    async def test_registration_visible_to_owner_and_staff(
        self, service, make_task, volunteer, staff
    ):
        task = await make_task()
        registration = (await service.register(volunteer, task.task_id)).value
        assert (await service.get_registration(volunteer, registration.registration_id)).ok
        assert (await service.get_registration(staff, registration.registration_id)).ok
        stranger = Caller(user_id="someone-else")
        result = await service.get_registration(stranger, registration.registration_id)
        assert result.error == ErrorKind.FORBIDDEN

    async def test_pending_registrations_scoped(self, service, make_task, volunteer, staff):
        task = await make_task()
        await service.register(volunteer, task.task_id)
        assert len((await service.pending_registrations(staff, "org-1")).value) == 1
        denied = await service.pending_registrations(staff, "org-2")
        assert denied.error == ErrorKind.FORBIDDEN

    async def test_update_and_delete(self, service, staff, clock):
        task = (await service.create_task(staff, "org-1", _draft_dict(clock))).value
        updated = await service.update_task(
            staff, task.task_id, _draft_dict(clock, title="Soup kitchen (evening)"), task.version
        )
        assert updated.value.title == "Soup kitchen (evening)"
        stale = await service.update_task(staff, task.task_id, _draft_dict(clock), task.version)
        assert stale.error == ErrorKind.CONCURRENCY_CONFLICT

        assert (await service.delete_task(staff, task.task_id)).value is True
        assert (await service.get_task(task.task_id)).error == ErrorKind.NOT_FOUND


class TestDiscovery:
    """发现类查询"""

    async def test_search_and_paging(self, stores, clock, make_task):
        service = VolunteerSyncService(
            stores, clock=clock, settings=CoreSettings(default_page_size=2, max_page_size=3)
        )
        for i in range(4):
            await make_task(title=f"Garden day {i}")
        page = (await service.search_tasks("garden")).value
        assert page.total_count == 4
        assert page.page_size == 2
        clamped = (await service.list_tasks(page=1, page_size=50)).value
        assert clamped.page_size == 3

    async def test_bad_page(self, service):
        result = await service.list_tasks(page=0)
        assert result.error == ErrorKind.VALIDATION_FAILED

    async def test_tasks_near(self, service, make_task):
        near = await make_task(location=Address(latitude=-1.9536, longitude=30.0906))
        await make_task(
            status=TaskStatus.PAUSED,
            location=Address(latitude=-1.9536, longitude=30.0906),
        )
        await make_task(location=Address(latitude=-2.6, longitude=29.7))
        await make_task()

        result = await service.tasks_near(-1.9441, 30.0619, 5.0)
        assert [t.task_id for t in result.value] == [near.task_id]
        everything = await service.tasks_near(-1.9441, 30.0619, 5.0, active_only=False)
        assert len(everything.value) == 2

    async def test_negative_radius(self, service):
        result = await service.tasks_near(0.0, 0.0, -5.0)
        assert result.error == ErrorKind.VALIDATION_FAILED

    async def test_by_category(self, service, make_task):
        await make_task(category="Education")
        assert len((await service.tasks_by_category("Education")).value) == 1
        unknown = await service.tasks_by_category("Gardening")
        assert unknown.error == ErrorKind.VALIDATION_FAILED

    async def test_featured_and_active(self, service, make_task):
        urgent = await make_task(is_urgent=True)
        await make_task(status=TaskStatus.DRAFT, is_urgent=True)
        assert [t.task_id for t in (await service.featured_tasks()).value] == [urgent.task_id]
        assert len((await service.active_tasks()).value) == 1

    async def test_by_organization_and_creator(self, service, make_task):
        await make_task(organization_id="org-a", created_by_id="staff-a")
        await make_task(organization_id="org-b", created_by_id="staff-a")
        assert len((await service.tasks_by_organization("org-a")).value) == 1
        assert len((await service.tasks_by_creator("staff-a")).value) == 2


class TestNotificationsAndStats:
    """通知与统计"""

    async def test_store_notifier_writes_notifications(
        self, service, make_task, volunteer, staff
    ):
        task = await make_task()
        registration = (await service.register(volunteer, task.task_id, "Count me in")).value
        await service.reject_registration(staff, registration.registration_id, "Team is full")

        notifications = (await service.notifications(volunteer)).value
        assert {n.type for n in notifications} == {
            NotificationType.APPLICATION,
            NotificationType.WARNING,
        }
        rejected = next(n for n in notifications if n.type == NotificationType.WARNING)
        assert "Team is full" in rejected.message
        assert rejected.task_id == task.task_id

    async def test_mark_read(self, service, make_task, volunteer):
        task = await make_task()
        await service.register(volunteer, task.task_id)
        notification = (await service.notifications(volunteer)).value[0]

        stranger = Caller(user_id="someone-else")
        denied = await service.mark_notification_read(stranger, notification.notification_id)
        assert denied.error == ErrorKind.NOT_FOUND

        assert (await service.mark_notification_read(volunteer, notification.notification_id)).ok
        assert (await service.notifications(volunteer, unread_only=True)).value == []

    async def test_cancel_task_notifies_volunteers(self, service, make_task, volunteer, staff):
        task = await make_task()
        await service.register(volunteer, task.task_id)
        await service.cancel_task(staff, task.task_id)
        messages = (await service.notifications(volunteer)).value
        assert any(n.title == "Registration cancelled" for n in messages)

    async def test_my_and_task_registrations(self, service, make_task, volunteer, staff):
        task = await make_task()
        await service.register(volunteer, task.task_id)
        assert len((await service.my_registrations(volunteer)).value) == 1
        assert len((await service.task_registrations(staff, task.task_id)).value) == 1
        denied = await service.task_registrations(volunteer, task.task_id)
        assert denied.error == ErrorKind.FORBIDDEN

    async def test_unregister_and_complete(self, service, make_task, volunteer, staff):
        task = await make_task()
        registration = (await service.register(volunteer, task.task_id)).value
        await service.approve_registration(staff, registration.registration_id)
        done = await service.complete_registration(
            staff, registration.registration_id, rating=9
        )
        assert done.error == ErrorKind.VALIDATION_FAILED
        done = await service.complete_registration(staff, registration.registration_id, rating=4)
        assert done.value.status == RegistrationStatus.COMPLETED

        nothing = await service.unregister(volunteer, task.task_id)
        assert nothing.error == ErrorKind.INVALID_TRANSITION

    async def test_dashboard_stats(self, service, make_task, volunteer, clock):
        upcoming = await make_task()
        await make_task(status=TaskStatus.COMPLETED)
        await make_task(status=TaskStatus.DRAFT)
        await make_task(
            start_date=clock() - timedelta(hours=1),
            end_date=clock() + timedelta(hours=1),
        )
        await service.register(volunteer, upcoming.task_id)
        await service.register(Caller(user_id="volunteer-2"), upcoming.task_id)

        stats = (await service.dashboard_stats()).value
        assert stats.total_tasks == 4
        assert stats.active_tasks == 2
        assert stats.completed_tasks == 1
        assert stats.upcoming_tasks == 1
        assert stats.total_registrations == 2
        assert stats.pending_registrations == 2
