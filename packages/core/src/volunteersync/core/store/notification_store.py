"""NotificationStore SQLite 实现"""

import aiosqlite

from ..models.notification import Notification
from ._sql import from_db_ts, to_db_ts


class SqliteNotificationStore:
    """NotificationStore 的 SQLite 实现"""

    def __init__(self, conn: aiosqlite.Connection) -> None:
        self._conn = conn

    async def create_notification(self, notification: Notification) -> None:
        await self._conn.execute(
            """
            INSERT INTO notifications (notification_id, user_id, title, message,
                                       type, is_read, task_id, created_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                notification.notification_id,
                notification.user_id,
                notification.title,
                notification.message,
                notification.type.value,
                int(notification.is_read),
                notification.task_id,
                to_db_ts(notification.created_at),
            ),
        )

    async def list_for_user(
        self, user_id: str, unread_only: bool = False
    ) -> list[Notification]:
        """查询用户的通知，按创建时间倒序"""
        sql = (
            "SELECT notification_id, user_id, title, message, type, is_read, "
            "task_id, created_at FROM notifications WHERE user_id = ?"
        )
        if unread_only:
            sql += " AND is_read = 0"
        sql += " ORDER BY created_at DESC"

        cursor = await self._conn.execute(sql, (user_id,))
        rows = await cursor.fetchall()
        return [
            Notification(
                notification_id=row[0],
                user_id=row[1],
                title=row[2],
                message=row[3],
                type=row[4],
                is_read=bool(row[5]),
                task_id=row[6],
                created_at=from_db_ts(row[7]),
            )
            for row in rows
        ]

    async def mark_read(self, notification_id: str, user_id: str) -> bool:
        """标记已读（只能标记自己的通知）"""
        cursor = await self._conn.execute(
            """
            UPDATE notifications SET is_read = 1
            WHERE notification_id = ? AND user_id = ?
            """,
            (notification_id, user_id),
        )
        return cursor.rowcount == 1
