"""SQLite schema management (code-first approach)."""

import logging

import aiosqlite


logger = logging.getLogger(__name__)


# Central list of all collections in the schema
COLLECTIONS = [
    "members",
    "tasks",
    "task_assignments",
    "task_completions",
    "points_transactions",
]

_TIMESTAMPS = """
    created TEXT,
    updated TEXT"""

_SCHEMAS: dict[str, str] = {
    "members": f"""
CREATE TABLE IF NOT EXISTS members (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    family_id TEXT NOT NULL,
    name TEXT NOT NULL,
    role TEXT NOT NULL CHECK (role IN ('admin', 'member', 'child')),
    points_balance INTEGER NOT NULL DEFAULT 0,{_TIMESTAMPS}
)""",
    # recurrence holds the JSON-encoded policy; the recurring_* columns are
    # read only for rows written before it existed
    "tasks": f"""
CREATE TABLE IF NOT EXISTS tasks (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    family_id TEXT NOT NULL,
    title TEXT NOT NULL,
    description TEXT NOT NULL DEFAULT '',
    points INTEGER NOT NULL DEFAULT 0,
    estimated_minutes INTEGER,
    recurrence TEXT,
    recurring_type TEXT,
    recurring_days TEXT,
    flexible_interval INTEGER,
    is_active INTEGER NOT NULL DEFAULT 1,
    created_by TEXT,
    created_at TEXT,{_TIMESTAMPS}
)""",
    "task_assignments": f"""
CREATE TABLE IF NOT EXISTS task_assignments (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    task_id TEXT NOT NULL,
    assigned_to TEXT NOT NULL,
    assigned_by TEXT,
    due_date TEXT,
    is_completed INTEGER NOT NULL DEFAULT 0,{_TIMESTAMPS}
)""",
    "task_completions": f"""
CREATE TABLE IF NOT EXISTS task_completions (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    task_id TEXT NOT NULL,
    assignment_id TEXT,
    completed_by TEXT NOT NULL,
    completed_at TEXT NOT NULL,
    time_spent_minutes INTEGER,
    comment TEXT,
    points_awarded INTEGER NOT NULL DEFAULT 0,
    bonus_points INTEGER NOT NULL DEFAULT 0,
    verification_status TEXT NOT NULL DEFAULT 'none_required'
        CHECK (verification_status IN ('none_required', 'pending', 'approved', 'rejected')),
    verified_by TEXT,
    verified_at TEXT,
    rejection_reason TEXT,{_TIMESTAMPS}
)""",
    "points_transactions": f"""
CREATE TABLE IF NOT EXISTS points_transactions (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    member_id TEXT NOT NULL,
    points INTEGER NOT NULL,
    bonus_points INTEGER NOT NULL DEFAULT 0,
    transaction_type TEXT NOT NULL CHECK (transaction_type IN ('earned', 'spent', 'adjustment')),
    description TEXT NOT NULL DEFAULT '',
    completion_id TEXT,
    created_at TEXT,{_TIMESTAMPS}
)""",
}

_INDEXES = [
    "CREATE INDEX IF NOT EXISTS idx_tasks_family ON tasks (family_id)",
    "CREATE INDEX IF NOT EXISTS idx_completions_task ON task_completions (task_id)",
    "CREATE INDEX IF NOT EXISTS idx_completions_member ON task_completions (completed_by)",
    "CREATE INDEX IF NOT EXISTS idx_assignments_member ON task_assignments (assigned_to)",
    "CREATE INDEX IF NOT EXISTS idx_transactions_completion ON points_transactions (completion_id)",
]


def get_collection_schema(collection_name: str) -> str:
    """Return the CREATE TABLE statement for a collection."""
    if collection_name not in _SCHEMAS:
        msg = f"Unknown collection: {collection_name}"
        raise ValueError(msg)
    return _SCHEMAS[collection_name]


async def init_db(conn: aiosqlite.Connection) -> None:
    """Create every collection and index that does not exist yet."""
    for collection in COLLECTIONS:
        await conn.execute(get_collection_schema(collection))
        logger.debug("Ensured collection exists", extra={"collection": collection})

    for index in _INDEXES:
        await conn.execute(index)

    await conn.commit()
    logger.info("Schema initialized", extra={"collections": len(COLLECTIONS)})
