"""SC-2 持久性集成测试

进程重启后任务、报名与名额计数完整。
"""

from datetime import UTC, datetime, timedelta
from pathlib import Path

from volunteersync.core.models import Caller, RegistrationStatus, TaskStatus, UserRole
from volunteersync.core.service import VolunteerSyncService
from volunteersync.core.store import create_store_group


class TestSC2Durability:
    """SC-2: 进程重启后数据完整"""

    async def test_state_survives_restart(self, tmp_path: Path):
        """报名 -> 关闭连接 -> 重新打开 -> 数据完整"""
        db_path = str(tmp_path / "durable.db")
        organizer = Caller(
            user_id="organizer-1",
            role=UserRole.ORGANIZATION_MEMBER,
            organization_id="org-1",
        )
        start = datetime.now(UTC) + timedelta(days=2)

        # 第一次启动：创建任务并报名
        sg1 = await create_store_group(db_path)
        try:
            service = VolunteerSyncService(sg1)
            task = (
                await service.create_task(
                    organizer,
                    "org-1",
                    {
                        "title": "Library reading hour",
                        "start_date": start,
                        "end_date": start + timedelta(hours=2),
                        "max_volunteers": 4,
                    },
                )
            ).value
            await service.publish_task(organizer, task.task_id)
            registration = (await service.register(Caller(user_id="v1"), task.task_id)).value
        finally:
            # 关闭连接（模拟进程退出）
            await sg1.close()

        # 第二次启动：数据完整
        sg2 = await create_store_group(db_path)
        try:
            restored = await sg2.task_store.get_task(task.task_id)
            assert restored.status == TaskStatus.ACTIVE
            assert restored.current_volunteers == 1
            assert restored.start_date == start

            stored = await sg2.registration_store.get_registration(registration.registration_id)
            assert stored.status == RegistrationStatus.PENDING
            assert stored.user_id == "v1"
        finally:
            await sg2.close()

    async def test_reopen_is_idempotent(self, tmp_path: Path):
        """重复初始化表结构不丢数据"""
        db_path = str(tmp_path / "again.db")
        for _ in range(3):
            sg = await create_store_group(db_path)
            await sg.close()
        sg = await create_store_group(db_path)
        try:
            assert (await sg.task_store.list_tasks(page=1, page_size=10)).total_count == 0
        finally:
            await sg.close()
