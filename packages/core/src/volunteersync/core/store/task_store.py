"""TaskStore SQLite 实现

名额变更只通过单条条件 UPDATE 完成（读-改-写在数据库内原子执行），
整行编辑不触碰 status / current_volunteers 两列。
此处仅提供数据库操作，不自动提交事务。
"""

import json
from collections.abc import Callable
from datetime import datetime

import aiosqlite

from ..config import FEATURED_TASKS_LIMIT
from ..exceptions import ConcurrencyConflictError
from ..models.common import Page
from ..models.enums import TaskCategory, TaskStatus
from ..models.task import Address, VolunteerTask
from ._sql import check_paging, from_db_ts, like_pattern, to_db_ts

_TASK_COLUMNS = """
    task_id, title, description, start_date, end_date, location,
    latitude, longitude, max_volunteers, current_volunteers, status, category,
    requirements, skills, tags, image_urls, is_urgent, application_deadline,
    organization_id, created_by_id, created_at, updated_at, version
"""

_SELECT_TASKS = f"SELECT {_TASK_COLUMNS} FROM volunteer_tasks"

_SEARCH_WHERE = """
    WHERE casefold(title) LIKE ? ESCAPE '\\'
       OR casefold(description) LIKE ? ESCAPE '\\'
       OR EXISTS (
           SELECT 1 FROM json_each(volunteer_tasks.tags) AS tag
           WHERE casefold(tag.value) LIKE ? ESCAPE '\\'
       )
"""


class SqliteTaskStore:
    """TaskStore 的 SQLite 实现"""

    def __init__(self, conn: aiosqlite.Connection) -> None:
        self._conn = conn

    async def get_task(self, task_id: str) -> VolunteerTask | None:
        """根据 task_id 查询任务"""
        cursor = await self._conn.execute(
            f"{_SELECT_TASKS} WHERE task_id = ?",
            (task_id,),
        )
        row = await cursor.fetchone()
        if row is None:
            return None
        return self._row_to_task(row)

    async def create_task(self, task: VolunteerTask) -> None:
        """创建任务记录"""
        await self._conn.execute(
            f"""
            INSERT INTO volunteer_tasks ({_TASK_COLUMNS})
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                task.task_id,
                task.title,
                task.description,
                to_db_ts(task.start_date),
                to_db_ts(task.end_date),
                task.location.model_dump_json(),
                task.location.latitude,
                task.location.longitude,
                task.max_volunteers,
                task.current_volunteers,
                task.status.value,
                task.category.value,
                json.dumps(task.requirements, ensure_ascii=False),
                json.dumps(task.skills, ensure_ascii=False),
                json.dumps(task.tags, ensure_ascii=False),
                json.dumps(task.image_urls, ensure_ascii=False),
                int(task.is_urgent),
                to_db_ts(task.application_deadline),
                task.organization_id,
                task.created_by_id,
                to_db_ts(task.created_at),
                to_db_ts(task.updated_at),
                task.version,
            ),
        )

    async def update_task(self, task: VolunteerTask) -> VolunteerTask:
        """整行编辑（乐观版本校验）

        status 与 current_volunteers 由专用方法维护，此处不写入。

        Raises:
            ConcurrencyConflictError: 版本号已被并发修改
        """
        cursor = await self._conn.execute(
            """
            UPDATE volunteer_tasks
            SET title = ?, description = ?, start_date = ?, end_date = ?,
                location = ?, latitude = ?, longitude = ?, max_volunteers = ?,
                category = ?, requirements = ?, skills = ?, tags = ?,
                image_urls = ?, is_urgent = ?, application_deadline = ?,
                updated_at = ?, version = version + 1
            WHERE task_id = ? AND version = ?
            """,
            (
                task.title,
                task.description,
                to_db_ts(task.start_date),
                to_db_ts(task.end_date),
                task.location.model_dump_json(),
                task.location.latitude,
                task.location.longitude,
                task.max_volunteers,
                task.category.value,
                json.dumps(task.requirements, ensure_ascii=False),
                json.dumps(task.skills, ensure_ascii=False),
                json.dumps(task.tags, ensure_ascii=False),
                json.dumps(task.image_urls, ensure_ascii=False),
                int(task.is_urgent),
                to_db_ts(task.application_deadline),
                to_db_ts(task.updated_at),
                task.task_id,
                task.version,
            ),
        )
        if cursor.rowcount != 1:
            raise ConcurrencyConflictError(
                f"task {task.task_id} was modified concurrently (version={task.version})"
            )
        updated = await self.get_task(task.task_id)
        if updated is None:
            raise ConcurrencyConflictError(f"task {task.task_id} was deleted concurrently")
        return updated

    async def delete_task(self, task_id: str) -> bool:
        """删除任务（关联报名随外键级联删除）"""
        cursor = await self._conn.execute(
            "DELETE FROM volunteer_tasks WHERE task_id = ?",
            (task_id,),
        )
        return cursor.rowcount > 0

    async def list_tasks(self, page: int, page_size: int) -> Page[VolunteerTask]:
        """分页列出任务，按 created_at 倒序"""
        offset = check_paging(page, page_size)
        cursor = await self._conn.execute("SELECT COUNT(*) FROM volunteer_tasks")
        row = await cursor.fetchone()
        total = row[0] if row else 0

        cursor = await self._conn.execute(
            f"{_SELECT_TASKS} ORDER BY created_at DESC LIMIT ? OFFSET ?",
            (page_size, offset),
        )
        rows = await cursor.fetchall()
        return Page[VolunteerTask](
            items=[self._row_to_task(r) for r in rows],
            total_count=total,
            page=page,
            page_size=page_size,
        )

    async def find(
        self, predicate: Callable[[VolunteerTask], bool]
    ) -> list[VolunteerTask]:
        """按谓词筛选任务（全表扫描）"""
        return [task for task in await self._fetch_all(_SELECT_TASKS) if predicate(task)]

    async def list_by_organization(self, organization_id: str) -> list[VolunteerTask]:
        return await self._fetch_all(
            f"{_SELECT_TASKS} WHERE organization_id = ? ORDER BY created_at DESC",
            (organization_id,),
        )

    async def list_by_creator(self, created_by_id: str) -> list[VolunteerTask]:
        return await self._fetch_all(
            f"{_SELECT_TASKS} WHERE created_by_id = ? ORDER BY created_at DESC",
            (created_by_id,),
        )

    async def list_by_category(self, category: TaskCategory) -> list[VolunteerTask]:
        return await self._fetch_all(
            f"{_SELECT_TASKS} WHERE category = ? ORDER BY created_at DESC",
            (category.value,),
        )

    async def list_featured(self) -> list[VolunteerTask]:
        """精选任务：紧急 + Active，按创建时间倒序，最多 FEATURED_TASKS_LIMIT 条"""
        return await self._fetch_all(
            f"""
            {_SELECT_TASKS}
            WHERE is_urgent = 1 AND status = ?
            ORDER BY created_at DESC
            LIMIT ?
            """,
            (TaskStatus.ACTIVE.value, FEATURED_TASKS_LIMIT),
        )

    async def search(
        self, term: str, page: int, page_size: int
    ) -> Page[VolunteerTask]:
        """标题/描述/标签的大小写不敏感子串搜索，按创建时间倒序分页"""
        offset = check_paging(page, page_size)
        pattern = like_pattern(term)
        params = (pattern, pattern, pattern)

        cursor = await self._conn.execute(
            f"SELECT COUNT(*) FROM volunteer_tasks {_SEARCH_WHERE}",
            params,
        )
        row = await cursor.fetchone()
        total = row[0] if row else 0

        items = await self._fetch_all(
            f"{_SELECT_TASKS} {_SEARCH_WHERE} ORDER BY created_at DESC LIMIT ? OFFSET ?",
            (*params, page_size, offset),
        )
        return Page[VolunteerTask](
            items=items,
            total_count=total,
            page=page,
            page_size=page_size,
        )

    async def list_active(self) -> list[VolunteerTask]:
        """Active 任务，按创建时间倒序"""
        return await self._fetch_all(
            f"{_SELECT_TASKS} WHERE status = ? ORDER BY created_at DESC",
            (TaskStatus.ACTIVE.value,),
        )

    async def list_with_coordinates(self) -> list[VolunteerTask]:
        """带经纬度的任务（地理筛选的候选集）"""
        return await self._fetch_all(
            f"""
            {_SELECT_TASKS}
            WHERE latitude IS NOT NULL AND longitude IS NOT NULL
            ORDER BY created_at DESC
            """
        )

    async def update_status(
        self,
        task_id: str,
        status: TaskStatus,
        expected_status: TaskStatus,
        updated_at: datetime,
    ) -> bool:
        """条件更新状态：当前状态不等于 expected_status 时不写入并返回 False"""
        cursor = await self._conn.execute(
            """
            UPDATE volunteer_tasks
            SET status = ?, updated_at = ?
            WHERE task_id = ? AND status = ?
            """,
            (status.value, to_db_ts(updated_at), task_id, expected_status.value),
        )
        return cursor.rowcount == 1

    async def try_reserve_slot(self, task_id: str, updated_at: datetime) -> bool:
        """原子条件自增：仅当任务 Active 且 current < max 时 +1"""
        cursor = await self._conn.execute(
            """
            UPDATE volunteer_tasks
            SET current_volunteers = current_volunteers + 1, updated_at = ?
            WHERE task_id = ?
              AND status = ?
              AND current_volunteers < max_volunteers
            """,
            (to_db_ts(updated_at), task_id, TaskStatus.ACTIVE.value),
        )
        return cursor.rowcount == 1

    async def release_slot(self, task_id: str, updated_at: datetime) -> bool:
        """原子自减，已为 0 时不做任何修改"""
        cursor = await self._conn.execute(
            """
            UPDATE volunteer_tasks
            SET current_volunteers = current_volunteers - 1, updated_at = ?
            WHERE task_id = ? AND current_volunteers > 0
            """,
            (to_db_ts(updated_at), task_id),
        )
        return cursor.rowcount == 1

    async def _fetch_all(self, sql: str, params: tuple = ()) -> list[VolunteerTask]:
        cursor = await self._conn.execute(sql, params)
        rows = await cursor.fetchall()
        return [self._row_to_task(row) for row in rows]

    @staticmethod
    def _row_to_task(row: aiosqlite.Row) -> VolunteerTask:
        """将数据库行转换为 VolunteerTask 模型"""
        return VolunteerTask(
            task_id=row[0],
            title=row[1],
            description=row[2],
            start_date=from_db_ts(row[3]),
            end_date=from_db_ts(row[4]),
            location=Address.model_validate_json(row[5]),  # location 列
            max_volunteers=row[8],
            current_volunteers=row[9],
            status=row[10],
            category=row[11],
            requirements=json.loads(row[12]),
            skills=json.loads(row[13]),
            tags=json.loads(row[14]),
            image_urls=json.loads(row[15]),
            is_urgent=bool(row[16]),
            application_deadline=from_db_ts(row[17]),
            organization_id=row[18],
            created_by_id=row[19],
            created_at=from_db_ts(row[20]),
            updated_at=from_db_ts(row[21]),
            version=row[22],
        )
