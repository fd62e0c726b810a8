"""SQLite store client with CRUD operations and change subscriptions."""

import asyncio
import inspect
import json
import logging
import re
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import date, datetime
from enum import StrEnum
from pathlib import Path
from typing import Any, Protocol

import aiosqlite

from fantastic_task.core.config import constants, settings


logger = logging.getLogger(__name__)


class DatabaseError(RuntimeError):
    """Raised when the backing store fails to complete an operation."""


class RecordNotFoundError(DatabaseError):
    """Raised when a record does not exist in the requested collection."""


class ChangeAction(StrEnum):
    """Kind of write that produced a change event."""

    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


@dataclass(frozen=True)
class ChangeEvent:
    """A single write to a collection, delivered to subscribers after commit."""

    collection: str
    action: ChangeAction
    record_id: str


ChangeCallback = Callable[[ChangeEvent], Awaitable[None] | None]


class ChangeNotifier:
    """Fan-out of change events to per-collection subscribers.

    Subscribers only learn that something changed; they are expected to
    re-fetch whatever they display. Concurrent writers are not ordered, the
    last write to reach the store wins.
    """

    def __init__(self) -> None:
        self._listeners: dict[str, list[ChangeCallback]] = {}

    def subscribe(self, collection: str, callback: ChangeCallback) -> Callable[[], None]:
        """Register a callback and return a function that removes it."""
        listeners = self._listeners.setdefault(collection, [])
        listeners.append(callback)

        def unsubscribe() -> None:
            if callback in listeners:
                listeners.remove(callback)

        return unsubscribe

    async def notify(self, event: ChangeEvent) -> None:
        """Deliver an event to every subscriber of its collection."""
        for callback in list(self._listeners.get(event.collection, [])):
            try:
                result = callback(event)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.exception(
                    "Change subscriber failed",
                    extra={"collection": event.collection, "action": event.action, "record_id": event.record_id},
                )


class Store(Protocol):
    """Async record store consumed by the task engine services."""

    async def create_record(self, *, collection: str, data: dict[str, Any]) -> dict[str, Any]: ...

    async def get_record(self, *, collection: str, record_id: str) -> dict[str, Any]: ...

    async def update_record(self, *, collection: str, record_id: str, data: dict[str, Any]) -> dict[str, Any]: ...

    async def delete_record(self, *, collection: str, record_id: str) -> None: ...

    async def list_records(
        self,
        *,
        collection: str,
        page: int = 1,
        per_page: int = 50,
        filter_query: str = "",
        sort: str = "",
    ) -> list[dict[str, Any]]: ...

    async def get_first_record(self, *, collection: str, filter_query: str) -> dict[str, Any] | None: ...

    async def increment_field(
        self,
        *,
        collection: str,
        record_id: str,
        field: str,
        delta: int,
        minimum: int | None = None,
    ) -> dict[str, Any]: ...

    def subscribe(self, collection: str, callback: ChangeCallback) -> Callable[[], None]: ...


_IDENTIFIER = re.compile(r"^[a-zA-Z_][a-zA-Z0-9_]*$")


def _validate_identifier(name: str, kind: str = "collection") -> None:
    """Validate that a collection or column name contains only alphanumeric characters and underscores."""
    if not _IDENTIFIER.match(name):
        msg = f"Invalid {kind} name: {name}. Only alphanumeric characters and underscores are allowed."
        raise ValueError(msg)


def sanitize_param(value: str | int | float | bool | None) -> str:
    """Escape a value for safe embedding in filter queries via json.dumps."""
    return json.dumps(str(value))[1:-1]


async def list_all_records(
    db: Store,
    *,
    collection: str,
    filter_query: str = "",
    sort: str = "",
) -> list[dict[str, Any]]:
    """List every record matching the filter, reading page by page until the collection is exhausted."""
    records: list[dict[str, Any]] = []
    page = 1
    while True:
        batch = await db.list_records(
            collection=collection,
            filter_query=filter_query,
            sort=sort,
            per_page=constants.LIST_PAGE_SIZE,
            page=page,
        )
        records.extend(batch)
        # Stop if we got fewer than a full page (no more results)
        if len(batch) < constants.LIST_PAGE_SIZE:
            break
        page += 1
    return records


def _serialize_value(value: Any) -> Any:
    """Convert Python values to something SQLite can bind."""
    if isinstance(value, datetime | date):
        return value.isoformat()
    if isinstance(value, StrEnum):
        return str(value)
    if isinstance(value, dict | list):
        return json.dumps(value)
    return value


def _convert_record_ids(record: dict[str, Any]) -> dict[str, Any]:
    """Convert the integer primary key to a string so all record ids share one type."""
    converted = record.copy()
    if isinstance(converted.get("id"), int):
        converted["id"] = str(converted["id"])
    return converted


def _now_iso() -> str:
    return datetime.now().isoformat()


def get_db_path(db_path: str | None = None) -> Path:
    """Get the resolved SQLite database file path."""
    path_str = db_path or settings.sqlite_db_path
    return Path(path_str).resolve()


def _parse_value(value: str, *, is_like: bool = False) -> str | int | float | bool | None:
    """Parse a string value to the appropriate Python type for SQLite."""
    if is_like:
        escaped = value.replace("%", r"\%").replace("_", r"\_")
        return f"%{escaped}%"

    if value.isdigit():
        return int(value)
    if value.replace(".", "", 1).isdigit():
        return float(value)

    if value.lower() == "true":
        return True
    if value.lower() == "false":
        return False

    return value


def _get_sql_operator(op: str) -> str:
    """Map filter operator to SQL operator."""
    op_map = {
        "=": "=",
        "!=": "!=",
        ">": ">",
        "<": "<",
        ">=": ">=",
        "<=": "<=",
        "~": "LIKE",
    }
    sql_op = op_map.get(op)
    if not sql_op:
        msg = f"Unsupported operator: {op}"
        raise ValueError(msg)
    return sql_op


def _parse_single_comparison(comparison: str) -> tuple[str, str | int | float | None]:
    """Parse a single comparison expression into a SQL condition and parameter."""
    match = re.match(
        r"""(\w+)\s*(!=|>=|<=|=|>|<|~)\s*(['"])([^'"]*)\3""",
        comparison,
    )
    if not match:
        msg = f"Invalid filter syntax: {comparison}"
        raise ValueError(msg)

    field = match.group(1)
    op = match.group(2)
    raw_value = match.group(4)

    sql_op = _get_sql_operator(op)
    is_like = sql_op == "LIKE"
    value = _parse_value(raw_value, is_like=is_like)

    if is_like:
        return f"{field} LIKE ? ESCAPE '\\'", value
    return f"{field} {sql_op} ?", value


def _parse_or_group(or_group: str) -> tuple[str, list[str | int | float | None]]:
    """Parse a parenthesized OR group into a SQL condition and parameters."""
    inner = or_group[1:-1]
    or_parts = [p.strip() for p in inner.split("||")]
    or_conditions = []
    or_params = []

    for part in or_parts:
        cond, value = _parse_single_comparison(part)
        or_conditions.append(cond)
        or_params.append(value)

    return f"({' OR '.join(or_conditions)})", or_params


def _split_and_conditions(filter_query: str) -> list[str]:
    """Split filter query by && while preserving parenthesized groups."""
    parts = []
    current = ""
    paren_depth = 0

    for char in filter_query:
        if char == "(":
            paren_depth += 1
        elif char == ")":
            paren_depth -= 1

        current += char

        if paren_depth == 0 and current.endswith("&&"):
            parts.append(current[:-2].strip())
            current = ""

    if current.strip():
        parts.append(current.strip())

    return parts


def parse_filter(filter_query: str) -> tuple[str, list[str | int | float | None]]:
    """Parse filter syntax into a SQL WHERE clause and parameter list."""
    if not filter_query:
        return "", []

    conditions = []
    params = []

    for raw_part in _split_and_conditions(filter_query):
        part = raw_part.strip()

        if part.startswith("(") and part.endswith(")"):
            cond, cond_params = _parse_or_group(part)
            conditions.append(cond)
            params.extend(cond_params)
        else:
            cond, value = _parse_single_comparison(part)
            conditions.append(cond)
            params.append(value)

    return " AND ".join(conditions), params


def normalize_sort(sort: str) -> str:
    """Translate "-field" / "+field" shorthand into "field DESC" / "field ASC"."""
    sort = sort.strip()
    if sort.startswith("-"):
        return f"{sort[1:]} DESC"
    if sort.startswith("+"):
        return f"{sort[1:]} ASC"
    return sort


class DatabaseClient:
    """SQLite-backed implementation of the store protocol.

    One client owns one connection; construct it once per application and pass
    it to whatever composes the services.
    """

    def __init__(self, *, db_path: str | None = None) -> None:
        self._path = get_db_path(db_path)
        self._conn: aiosqlite.Connection | None = None
        self._lock = asyncio.Lock()
        self._notifier = ChangeNotifier()

    @property
    def path(self) -> Path:
        return self._path

    async def connect(self) -> aiosqlite.Connection:
        """Open the connection if it is not open yet."""
        if self._conn is not None:
            return self._conn

        async with self._lock:
            if self._conn is not None:
                return self._conn

            self._path.parent.mkdir(parents=True, exist_ok=True)
            conn = await aiosqlite.connect(str(self._path))
            await conn.execute("PRAGMA foreign_keys = ON")
            await conn.execute("PRAGMA journal_mode = WAL")
            self._conn = conn

            logger.info("Created new SQLite connection", extra={"db_path": str(self._path)})
            return conn

    async def close(self) -> None:
        """Close the connection if open."""
        if self._conn is None:
            return

        async with self._lock:
            if self._conn is not None:
                await self._conn.close()
                self._conn = None
                logger.info("Closed SQLite connection", extra={"db_path": str(self._path)})

    async def init_db(self) -> None:
        """Create all tables that do not exist yet."""
        from fantastic_task.core.schema import init_db

        conn = await self.connect()
        await init_db(conn)

    def subscribe(self, collection: str, callback: ChangeCallback) -> Callable[[], None]:
        """Register a change callback for a collection."""
        _validate_identifier(collection)
        return self._notifier.subscribe(collection, callback)

    async def create_record(self, *, collection: str, data: dict[str, Any]) -> dict[str, Any]:
        """Insert a new record and return it with its assigned id."""
        try:
            _validate_identifier(collection)
            conn = await self.connect()

            now = _now_iso()
            payload = {"created": now, "updated": now, **data}
            columns = list(payload.keys())
            for column in columns:
                _validate_identifier(column, "column")

            columns_str = ", ".join(columns)
            placeholders_str = ", ".join("?" for _ in columns)
            values = [_serialize_value(payload[key]) for key in columns]

            query = f"INSERT INTO {collection} ({columns_str}) VALUES ({placeholders_str})"  # noqa: S608 - identifiers are validated
            cursor = await conn.execute(query, values)
            await conn.commit()
            record_id = str(cursor.lastrowid)
        except Exception as e:
            if isinstance(e, aiosqlite.OperationalError) and "no such table" in str(e):
                logger.error("Table not found", extra={"collection": collection})
                msg = f"Table '{collection}' does not exist. Call init_db() first."
                raise DatabaseError(msg) from e
            logger.error("create_record_failed", extra={"collection": collection, "error": str(e)})
            msg = f"Failed to create record in {collection}: {e}"
            raise DatabaseError(msg) from e

        result = await self.get_record(collection=collection, record_id=record_id)
        logger.info("Created record", extra={"collection": collection, "record_id": record_id})
        await self._notifier.notify(ChangeEvent(collection, ChangeAction.CREATE, record_id))
        return result

    async def get_record(self, *, collection: str, record_id: str) -> dict[str, Any]:
        """Fetch a single record by ID, raising RecordNotFoundError if not found."""
        _validate_identifier(collection)
        try:
            conn = await self.connect()

            query = f"SELECT * FROM {collection} WHERE id = ?"  # noqa: S608 - collection is validated
            cursor = await conn.execute(query, (int(record_id),))
            row = await cursor.fetchone()
            if row is None:
                msg = f"Record not found in {collection}: {record_id}"
                raise RecordNotFoundError(msg)

            columns = [description[0] for description in cursor.description]
            return _convert_record_ids(dict(zip(columns, row, strict=True)))
        except RecordNotFoundError:
            raise
        except ValueError as e:
            msg = f"Record not found in {collection}: {record_id}"
            raise RecordNotFoundError(msg) from e
        except Exception as e:
            logger.error("get_record_failed", extra={"collection": collection, "record_id": record_id, "error": str(e)})
            msg = f"Failed to get record from {collection}: {e}"
            raise DatabaseError(msg) from e

    async def update_record(self, *, collection: str, record_id: str, data: dict[str, Any]) -> dict[str, Any]:
        """Update a record by ID and return the updated record."""
        if not data:
            msg = "Empty update payload"
            raise ValueError(msg)

        # Existence check first so a missing record is reported as such
        await self.get_record(collection=collection, record_id=record_id)

        try:
            conn = await self.connect()
            payload = {**data, "updated": _now_iso()}
            for column in payload:
                _validate_identifier(column, "column")

            set_clause = ", ".join(f"{key} = ?" for key in payload)
            values = [_serialize_value(val) for val in payload.values()]
            values.append(int(record_id))

            query = f"UPDATE {collection} SET {set_clause} WHERE id = ?"  # noqa: S608 - identifiers are validated
            await conn.execute(query, values)
            await conn.commit()
        except Exception as e:
            logger.error(
                "update_record_failed", extra={"collection": collection, "record_id": record_id, "error": str(e)}
            )
            msg = f"Failed to update record in {collection}: {e}"
            raise DatabaseError(msg) from e

        logger.info("Updated record", extra={"collection": collection, "record_id": record_id})
        result = await self.get_record(collection=collection, record_id=record_id)
        await self._notifier.notify(ChangeEvent(collection, ChangeAction.UPDATE, record_id))
        return result

    async def increment_field(
        self,
        *,
        collection: str,
        record_id: str,
        field: str,
        delta: int,
        minimum: int | None = None,
    ) -> dict[str, Any]:
        """Atomically add delta to a numeric column, optionally clamping the result at minimum."""
        _validate_identifier(collection)
        _validate_identifier(field, "column")

        try:
            conn = await self.connect()
            if minimum is None:
                query = f"UPDATE {collection} SET {field} = COALESCE({field}, 0) + ?, updated = ? WHERE id = ?"  # noqa: S608
                params: list[Any] = [delta, _now_iso(), int(record_id)]
            else:
                query = f"UPDATE {collection} SET {field} = MAX(?, COALESCE({field}, 0) + ?), updated = ? WHERE id = ?"  # noqa: S608
                params = [minimum, delta, _now_iso(), int(record_id)]

            cursor = await conn.execute(query, params)
            await conn.commit()
        except ValueError as e:
            msg = f"Record not found in {collection}: {record_id}"
            raise RecordNotFoundError(msg) from e
        except Exception as e:
            logger.error(
                "increment_field_failed",
                extra={"collection": collection, "record_id": record_id, "field": field, "error": str(e)},
            )
            msg = f"Failed to increment {field} in {collection}: {e}"
            raise DatabaseError(msg) from e

        if cursor.rowcount == 0:
            msg = f"Record not found in {collection}: {record_id}"
            raise RecordNotFoundError(msg)

        logger.info(
            "Incremented field", extra={"collection": collection, "record_id": record_id, "field": field, "delta": delta}
        )
        result = await self.get_record(collection=collection, record_id=record_id)
        await self._notifier.notify(ChangeEvent(collection, ChangeAction.UPDATE, record_id))
        return result

    async def delete_record(self, *, collection: str, record_id: str) -> None:
        """Delete a record by ID, raising RecordNotFoundError if not found."""
        _validate_identifier(collection)
        try:
            conn = await self.connect()

            query = f"DELETE FROM {collection} WHERE id = ?"  # noqa: S608 - collection is validated
            cursor = await conn.execute(query, (int(record_id),))
            await conn.commit()
        except ValueError as e:
            msg = f"Record not found in {collection}: {record_id}"
            raise RecordNotFoundError(msg) from e
        except Exception as e:
            logger.error(
                "delete_record_failed", extra={"collection": collection, "record_id": record_id, "error": str(e)}
            )
            msg = f"Failed to delete record from {collection}: {e}"
            raise DatabaseError(msg) from e

        if cursor.rowcount == 0:
            msg = f"Record not found in {collection}: {record_id}"
            raise RecordNotFoundError(msg)

        logger.info("Deleted record", extra={"collection": collection, "record_id": record_id})
        await self._notifier.notify(ChangeEvent(collection, ChangeAction.DELETE, record_id))

    async def list_records(
        self,
        *,
        collection: str,
        page: int = 1,
        per_page: int = 50,
        filter_query: str = "",
        sort: str = "",
    ) -> list[dict[str, Any]]:
        """List records with optional filtering, sorting, and pagination."""
        try:
            _validate_identifier(collection)
            conn = await self.connect()

            where_clause = ""
            params: list[Any] = []
            if filter_query:
                where_clause, params = parse_filter(filter_query)
                where_clause = f"WHERE {where_clause}"

            # Only allow: column_name [ASC|DESC]
            safe_sort = "id ASC"
            if sort:
                normalized = normalize_sort(sort)
                if re.match(r"^[A-Za-z_][A-Za-z0-9_]*\s*(ASC|DESC)?$", normalized, re.IGNORECASE):
                    safe_sort = f"{normalized}, id ASC"
                else:
                    logger.warning("Invalid sort parameter, using default", extra={"sort": sort})

            offset = (page - 1) * per_page
            query = f"SELECT * FROM {collection} {where_clause} ORDER BY {safe_sort} LIMIT ? OFFSET ?"  # noqa: S608 - collection is validated
            params.extend([per_page, offset])

            cursor = await conn.execute(query, params)
            rows = await cursor.fetchall()

            columns = [description[0] for description in cursor.description]
            records = [_convert_record_ids(dict(zip(columns, row, strict=True))) for row in rows]
        except Exception as e:
            logger.error("list_records_failed", extra={"collection": collection, "error": str(e)})
            msg = f"Failed to list records from {collection}: {e}"
            raise DatabaseError(msg) from e

        logger.debug("Listed records", extra={"collection": collection, "count": len(records)})
        return records

    async def get_first_record(self, *, collection: str, filter_query: str) -> dict[str, Any] | None:
        """Return the first record matching the filter, or None."""
        records = await self.list_records(collection=collection, filter_query=filter_query, per_page=1)
        return records[0] if records else None
