"""RegistrationStore SQLite 实现

活跃报名唯一性由 idx_registrations_active_pair 部分唯一索引兜底，
重复写入会抛出 aiosqlite.IntegrityError，由 workflow 层转换。
"""

from collections.abc import Callable

import aiosqlite

from ..models.common import Page
from ..models.enums import RegistrationStatus
from ..models.registration import TaskRegistration
from ._sql import check_paging, from_db_ts, to_db_ts

_REGISTRATION_COLUMNS = """
    r.registration_id, r.user_id, r.task_id, r.registration_date, r.status,
    r.application_message, r.notes, r.reviewed_by_id, r.reviewed_at,
    r.completed_at, r.rating, r.feedback, r.updated_at
"""

_SELECT_REGISTRATIONS = f"SELECT {_REGISTRATION_COLUMNS} FROM task_registrations AS r"

# 活跃报名排在前面，其次按报名时间倒序
_ACTIVE_FIRST = """
    ORDER BY CASE WHEN r.status IN ('Cancelled', 'Rejected') THEN 1 ELSE 0 END,
             r.registration_date DESC
"""


class SqliteRegistrationStore:
    """RegistrationStore 的 SQLite 实现"""

    def __init__(self, conn: aiosqlite.Connection) -> None:
        self._conn = conn

    async def get_registration(self, registration_id: str) -> TaskRegistration | None:
        """根据 registration_id 查询报名"""
        cursor = await self._conn.execute(
            f"{_SELECT_REGISTRATIONS} WHERE r.registration_id = ?",
            (registration_id,),
        )
        row = await cursor.fetchone()
        if row is None:
            return None
        return self._row_to_registration(row)

    async def create_registration(self, registration: TaskRegistration) -> None:
        """创建报名记录

        注意：此方法不自动提交事务，需由调用方管理事务。
        """
        await self._conn.execute(
            """
            INSERT INTO task_registrations (
                registration_id, user_id, task_id, registration_date, status,
                application_message, notes, reviewed_by_id, reviewed_at,
                completed_at, rating, feedback, updated_at
            )
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                registration.registration_id,
                registration.user_id,
                registration.task_id,
                to_db_ts(registration.registration_date),
                registration.status.value,
                registration.application_message,
                registration.notes,
                registration.reviewed_by_id,
                to_db_ts(registration.reviewed_at),
                to_db_ts(registration.completed_at),
                registration.rating,
                registration.feedback,
                to_db_ts(registration.updated_at),
            ),
        )

    async def update_registration(
        self,
        registration: TaskRegistration,
        expected_status: RegistrationStatus | None = None,
    ) -> bool:
        """整行更新；给出 expected_status 时仅在当前状态匹配时写入

        Returns:
            True 如果写入了记录
        """
        sql = """
            UPDATE task_registrations
            SET status = ?, application_message = ?, notes = ?,
                reviewed_by_id = ?, reviewed_at = ?, completed_at = ?,
                rating = ?, feedback = ?, updated_at = ?
            WHERE registration_id = ?
        """
        params: tuple = (
            registration.status.value,
            registration.application_message,
            registration.notes,
            registration.reviewed_by_id,
            to_db_ts(registration.reviewed_at),
            to_db_ts(registration.completed_at),
            registration.rating,
            registration.feedback,
            to_db_ts(registration.updated_at),
            registration.registration_id,
        )
        if expected_status is not None:
            sql += " AND status = ?"
            params = (*params, expected_status.value)

        cursor = await self._conn.execute(sql, params)
        return cursor.rowcount == 1

    async def delete_registration(self, registration_id: str) -> bool:
        cursor = await self._conn.execute(
            "DELETE FROM task_registrations WHERE registration_id = ?",
            (registration_id,),
        )
        return cursor.rowcount > 0

    async def list_registrations(
        self, page: int, page_size: int
    ) -> Page[TaskRegistration]:
        """分页列出报名，按报名时间倒序"""
        offset = check_paging(page, page_size)
        cursor = await self._conn.execute("SELECT COUNT(*) FROM task_registrations")
        row = await cursor.fetchone()
        total = row[0] if row else 0

        items = await self._fetch_all(
            f"{_SELECT_REGISTRATIONS} ORDER BY r.registration_date DESC LIMIT ? OFFSET ?",
            (page_size, offset),
        )
        return Page[TaskRegistration](
            items=items,
            total_count=total,
            page=page,
            page_size=page_size,
        )

    async def find(
        self, predicate: Callable[[TaskRegistration], bool]
    ) -> list[TaskRegistration]:
        """按谓词筛选报名（全表扫描）"""
        registrations = await self._fetch_all(_SELECT_REGISTRATIONS)
        return [r for r in registrations if predicate(r)]

    async def list_by_user(self, user_id: str) -> list[TaskRegistration]:
        return await self._fetch_all(
            f"{_SELECT_REGISTRATIONS} WHERE r.user_id = ? ORDER BY r.registration_date DESC",
            (user_id,),
        )

    async def list_by_task(self, task_id: str) -> list[TaskRegistration]:
        return await self._fetch_all(
            f"{_SELECT_REGISTRATIONS} WHERE r.task_id = ? ORDER BY r.registration_date ASC",
            (task_id,),
        )

    async def get_by_user_and_task(
        self, user_id: str, task_id: str
    ) -> TaskRegistration | None:
        """查询 (user, task) 的报名：优先活跃报名，其次最新一条"""
        cursor = await self._conn.execute(
            f"""
            {_SELECT_REGISTRATIONS}
            WHERE r.user_id = ? AND r.task_id = ?
            {_ACTIVE_FIRST}
            LIMIT 1
            """,
            (user_id, task_id),
        )
        row = await cursor.fetchone()
        if row is None:
            return None
        return self._row_to_registration(row)

    async def list_by_status(self, status: RegistrationStatus) -> list[TaskRegistration]:
        return await self._fetch_all(
            f"{_SELECT_REGISTRATIONS} WHERE r.status = ? ORDER BY r.registration_date ASC",
            (status.value,),
        )

    async def exists_active(self, user_id: str, task_id: str) -> bool:
        """(user, task) 是否已存在活跃报名"""
        cursor = await self._conn.execute(
            """
            SELECT 1 FROM task_registrations
            WHERE user_id = ? AND task_id = ?
              AND status NOT IN ('Cancelled', 'Rejected')
            LIMIT 1
            """,
            (user_id, task_id),
        )
        return await cursor.fetchone() is not None

    async def list_pending_for_organization(
        self, organization_id: str
    ) -> list[TaskRegistration]:
        """组织名下任务的所有待审核报名，先到先审"""
        return await self._fetch_all(
            f"""
            {_SELECT_REGISTRATIONS}
            JOIN volunteer_tasks AS t ON t.task_id = r.task_id
            WHERE t.organization_id = ? AND r.status = ?
            ORDER BY r.registration_date ASC
            """,
            (organization_id, RegistrationStatus.PENDING.value),
        )

    async def count_by_status(self) -> dict[RegistrationStatus, int]:
        """各状态的报名数量（统计用）"""
        cursor = await self._conn.execute(
            "SELECT status, COUNT(*) FROM task_registrations GROUP BY status"
        )
        rows = await cursor.fetchall()
        return {RegistrationStatus(row[0]): row[1] for row in rows}

    async def _fetch_all(self, sql: str, params: tuple = ()) -> list[TaskRegistration]:
        cursor = await self._conn.execute(sql, params)
        rows = await cursor.fetchall()
        return [self._row_to_registration(row) for row in rows]

    @staticmethod
    def _row_to_registration(row: aiosqlite.Row) -> TaskRegistration:
        """将数据库行转换为 TaskRegistration 模型"""
        return TaskRegistration(
            registration_id=row[0],
            user_id=row[1],
            task_id=row[2],
            registration_date=from_db_ts(row[3]),
            status=row[4],
            application_message=row[5],
            notes=row[6],
            reviewed_by_id=row[7],
            reviewed_at=from_db_ts(row[8]),
            completed_at=from_db_ts(row[9]),
            rating=row[10],
            feedback=row[11],
            updated_at=from_db_ts(row[12]),
        )
