"""SQLite 数据库初始化

PRAGMA 配置 + SQL 函数注册 + 三张表 DDL + 索引创建。
名额不变量（0 <= current <= max）和活跃报名唯一性都在表结构层面兜底。
使用 aiosqlite 异步操作。
"""

import aiosqlite

from ._sql import sql_casefold

# volunteer_tasks 表 DDL
_TASKS_DDL = """
CREATE TABLE IF NOT EXISTS volunteer_tasks (
    task_id              TEXT PRIMARY KEY,
    title                TEXT NOT NULL,
    description          TEXT NOT NULL DEFAULT '',
    start_date           TEXT NOT NULL,
    end_date             TEXT NOT NULL,
    location             TEXT NOT NULL DEFAULT '{}',
    latitude             REAL,
    longitude            REAL,
    max_volunteers       INTEGER NOT NULL,
    current_volunteers   INTEGER NOT NULL DEFAULT 0,
    status               TEXT NOT NULL DEFAULT 'Draft',
    category             TEXT NOT NULL DEFAULT 'Other',
    requirements         TEXT NOT NULL DEFAULT '[]',
    skills               TEXT NOT NULL DEFAULT '[]',
    tags                 TEXT NOT NULL DEFAULT '[]',
    image_urls           TEXT NOT NULL DEFAULT '[]',
    is_urgent            INTEGER NOT NULL DEFAULT 0,
    application_deadline TEXT,
    organization_id      TEXT NOT NULL,
    created_by_id        TEXT NOT NULL,
    created_at           TEXT NOT NULL,
    updated_at           TEXT NOT NULL,
    version              INTEGER NOT NULL DEFAULT 1,

    CHECK (max_volunteers > 0),
    CHECK (current_volunteers >= 0 AND current_volunteers <= max_volunteers)
);
"""

_TASKS_INDEXES = [
    "CREATE INDEX IF NOT EXISTS idx_tasks_status ON volunteer_tasks(status);",
    "CREATE INDEX IF NOT EXISTS idx_tasks_organization ON volunteer_tasks(organization_id);",
    "CREATE INDEX IF NOT EXISTS idx_tasks_category ON volunteer_tasks(category);",
    "CREATE INDEX IF NOT EXISTS idx_tasks_created_at ON volunteer_tasks(created_at DESC);",
]

# task_registrations 表 DDL
_REGISTRATIONS_DDL = """
CREATE TABLE IF NOT EXISTS task_registrations (
    registration_id     TEXT PRIMARY KEY,
    user_id             TEXT NOT NULL,
    task_id             TEXT NOT NULL,
    registration_date   TEXT NOT NULL,
    status              TEXT NOT NULL DEFAULT 'Pending',
    application_message TEXT NOT NULL DEFAULT '',
    notes               TEXT NOT NULL DEFAULT '',
    reviewed_by_id      TEXT,
    reviewed_at         TEXT,
    completed_at        TEXT,
    rating              INTEGER,
    feedback            TEXT,
    updated_at          TEXT NOT NULL,

    FOREIGN KEY (task_id) REFERENCES volunteer_tasks(task_id) ON DELETE CASCADE,
    CHECK (rating IS NULL OR (rating >= 1 AND rating <= 5))
);
"""

_REGISTRATIONS_INDEXES = [
    "CREATE INDEX IF NOT EXISTS idx_registrations_user ON task_registrations(user_id);",
    "CREATE INDEX IF NOT EXISTS idx_registrations_task ON task_registrations(task_id);",
    "CREATE INDEX IF NOT EXISTS idx_registrations_status ON task_registrations(status);",
    # 活跃报名唯一约束（Cancelled / Rejected 不参与）
    (
        "CREATE UNIQUE INDEX IF NOT EXISTS idx_registrations_active_pair "
        "ON task_registrations(user_id, task_id) "
        "WHERE status NOT IN ('Cancelled', 'Rejected');"
    ),
]

# notifications 表 DDL
_NOTIFICATIONS_DDL = """
CREATE TABLE IF NOT EXISTS notifications (
    notification_id TEXT PRIMARY KEY,
    user_id         TEXT NOT NULL,
    title           TEXT NOT NULL,
    message         TEXT NOT NULL DEFAULT '',
    type            TEXT NOT NULL DEFAULT 'info',
    is_read         INTEGER NOT NULL DEFAULT 0,
    task_id         TEXT,
    created_at      TEXT NOT NULL
);
"""

_NOTIFICATIONS_INDEXES = [
    "CREATE INDEX IF NOT EXISTS idx_notifications_user ON notifications(user_id, created_at DESC);",
]


async def init_db(conn: aiosqlite.Connection) -> None:
    """初始化数据库：设置 PRAGMA + 创建表 + 创建索引

    Args:
        conn: aiosqlite 数据库连接
    """
    # 设置 PRAGMA
    await conn.execute("PRAGMA journal_mode = WAL;")
    await conn.execute("PRAGMA foreign_keys = ON;")
    await conn.execute("PRAGMA busy_timeout = 5000;")

    # 搜索用的 Unicode 大小写折叠（每个连接都需注册）
    await conn.create_function("casefold", 1, sql_casefold, deterministic=True)

    # 创建表
    await conn.execute(_TASKS_DDL)
    await conn.execute(_REGISTRATIONS_DDL)
    await conn.execute(_NOTIFICATIONS_DDL)

    # 创建索引
    for idx_sql in _TASKS_INDEXES + _REGISTRATIONS_INDEXES + _NOTIFICATIONS_INDEXES:
        await conn.execute(idx_sql)

    await conn.commit()
