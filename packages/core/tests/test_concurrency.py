"""并发与事务一致性测试

测试内容：
1. 并发报名不会超额占用名额
2. 同一用户并发报名只成功一次
3. 报名写入失败时名额占用一并回滚（含调用方取消）
4. 嵌套事务作用域复用外层事务
"""

import asyncio

import pytest
from volunteersync.core.exceptions import DuplicateRegistrationError, TaskFullError
from volunteersync.core.models import RegistrationStatus


class TestNoOversubscription:
    """并发报名"""

    async def test_race_for_last_slots(self, workflow, stores, make_task):
        """5 人争抢 2 个名额：恰好 2 人成功，其余 TaskFull"""
        task = await make_task(max_volunteers=2)
        results = await asyncio.gather(
            *(workflow.register(task.task_id, f"u{i}") for i in range(5)),
            return_exceptions=True,
        )

        succeeded = [r for r in results if not isinstance(r, BaseException)]
        failed = [r for r in results if isinstance(r, BaseException)]
        assert len(succeeded) == 2
        assert len(failed) == 3
        assert all(isinstance(e, TaskFullError) for e in failed)

        stored = await stores.task_store.get_task(task.task_id)
        assert stored.current_volunteers == 2
        registrations = await stores.registration_store.list_by_task(task.task_id)
        assert len(registrations) == 2

    async def test_same_user_races_itself(self, workflow, stores, make_task):
        task = await make_task(max_volunteers=10)
        results = await asyncio.gather(
            *(workflow.register(task.task_id, "u1") for _ in range(4)),
            return_exceptions=True,
        )
        failed = [r for r in results if isinstance(r, BaseException)]
        assert len(failed) == 3
        assert all(isinstance(e, DuplicateRegistrationError) for e in failed)
        assert (await stores.task_store.get_task(task.task_id)).current_volunteers == 1

    async def test_race_between_register_and_reject(self, workflow, stores, make_task):
        """reject 释放的名额可被并发报名立即使用，计数始终一致"""
        task = await make_task(max_volunteers=1)
        first = await workflow.register(task.task_id, "u1")
        results = await asyncio.gather(
            workflow.reject(first.registration_id, "staff-1"),
            workflow.register(task.task_id, "u2"),
            return_exceptions=True,
        )
        stored = await stores.task_store.get_task(task.task_id)
        active = await stores.registration_store.find(
            lambda r: r.task_id == task.task_id
            and r.status in (RegistrationStatus.PENDING, RegistrationStatus.APPROVED)
        )
        assert stored.current_volunteers == len(active)
        assert not isinstance(results[0], BaseException)


class TestRollback:
    """成对写入的原子性"""

    async def test_registration_write_failure_rolls_back_slot(
        self, workflow, stores, make_task, monkeypatch
    ):
        task = await make_task(max_volunteers=3)

        async def broken_insert(registration):
            raise RuntimeError("disk on fire")

        monkeypatch.setattr(stores.registration_store, "create_registration", broken_insert)
        with pytest.raises(RuntimeError):
            await workflow.register(task.task_id, "u1")

        assert (await stores.task_store.get_task(task.task_id)).current_volunteers == 0
        assert await stores.registration_store.list_by_task(task.task_id) == []

    async def test_release_failure_rolls_back_reject(
        self, workflow, stores, make_task, monkeypatch
    ):
        task = await make_task()
        registration = await workflow.register(task.task_id, "u1")

        async def broken_release(task_id, updated_at):
            raise RuntimeError("lost connection")

        monkeypatch.setattr(stores.task_store, "release_slot", broken_release)
        with pytest.raises(RuntimeError):
            await workflow.reject(registration.registration_id, "staff-1")

        stored = await stores.registration_store.get_registration(registration.registration_id)
        assert stored.status == RegistrationStatus.PENDING
        assert (await stores.task_store.get_task(task.task_id)).current_volunteers == 1

    async def test_cancelled_caller_rolls_back(self, workflow, stores, make_task, monkeypatch):
        """调用方在事务中途被取消时，已占用的名额回滚"""
        task = await make_task()
        entered = asyncio.Event()

        async def slow_insert(registration):
            entered.set()
            await asyncio.sleep(3600)

        monkeypatch.setattr(stores.registration_store, "create_registration", slow_insert)
        pending = asyncio.create_task(workflow.register(task.task_id, "u1"))
        await entered.wait()
        pending.cancel()
        with pytest.raises(asyncio.CancelledError):
            await pending

        assert (await stores.task_store.get_task(task.task_id)).current_volunteers == 0
        # 锁已释放，后续事务可以继续
        monkeypatch.undo()
        await workflow.register(task.task_id, "u1")
        assert (await stores.task_store.get_task(task.task_id)).current_volunteers == 1


class TestNestedTransaction:
    """嵌套事务作用域"""

    async def test_inner_scope_joins_outer(self, stores, make_task, clock):
        task = await make_task()
        with pytest.raises(RuntimeError):
            async with stores.transaction():
                async with stores.transaction():
                    await stores.task_store.try_reserve_slot(task.task_id, clock())
                # 内层退出时不提交
                raise RuntimeError("abort outer")
        assert (await stores.task_store.get_task(task.task_id)).current_volunteers == 0

    async def test_outer_commit_includes_inner_writes(self, stores, make_task, clock):
        task = await make_task()
        async with stores.transaction():
            async with stores.transaction():
                await stores.task_store.try_reserve_slot(task.task_id, clock())
            await stores.task_store.try_reserve_slot(task.task_id, clock())
        assert (await stores.task_store.get_task(task.task_id)).current_volunteers == 2
