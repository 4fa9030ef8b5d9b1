"""
Remote table boundary.

Every store talks to the hosted database through one of two interchangeable
backends with the same contract:

    RestRemote   - PostgREST over HTTP (hosted service)
    SQLiteRemote - the same tables in a local SQLite file

Tables: users, habits, tasks, daily_notes, history. Filters are exact-match
(``eq``) plus optional lower bounds (``gte``); results are ordered by
``created_at`` ascending unless told otherwise.
"""
import logging
import os
import sqlite3
import uuid
from pathlib import Path
from typing import List, Optional, Dict, Any, Union

import requests

from .schema import utc_now

logger = logging.getLogger(__name__)

# PostgREST: "JSON object requested, multiple (or no) rows returned"
NO_ROWS_CODE = "PGRST116"

Row = Dict[str, Any]

TABLE_COLUMNS = {
    "users": ["id", "email", "preferred_language", "theme", "created_at"],
    "habits": [
        "id", "user_id", "title", "description", "time_of_day", "date",
        "status", "is_default", "created_at", "updated_at",
    ],
    "tasks": [
        "id", "user_id", "title", "description", "date", "scheduled_time",
        "status", "created_at", "updated_at",
    ],
    "daily_notes": ["id", "user_id", "date", "note_content", "created_at", "updated_at"],
    "history": ["id", "user_id", "habit_id", "date", "status", "created_at"],
}

_BOOL_COLUMNS = {"is_default"}


class RemoteError(Exception):
    """Network failure or store-side rejection of a remote call."""

    def __init__(self, message: str, code: Optional[str] = None, status: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.code = code
        self.status = status


class NoRowsError(RemoteError):
    """A single-row lookup or by-id write matched nothing."""

    def __init__(self, message: str = "No matching row", code: str = NO_ROWS_CODE,
                 status: Optional[int] = 406):
        super().__init__(message, code=code, status=status)


class RemoteStore:
    """
    Contract shared by the backends.

    select(table, eq, gte, order, ascending) -> rows
    select_one(table, eq)                    -> row, or NoRowsError
    insert(table, row_or_rows)               -> inserted rows
    update(table, row_id, values)            -> updated row, or NoRowsError
    delete(table, row_id)                    -> number of rows removed
    """

    def select(self, table: str, eq: Optional[Row] = None, gte: Optional[Row] = None,
               order: str = "created_at", ascending: bool = True) -> List[Row]:
        raise NotImplementedError

    def select_one(self, table: str, eq: Row) -> Row:
        raise NotImplementedError

    def insert(self, table: str, rows: Union[Row, List[Row]]) -> List[Row]:
        raise NotImplementedError

    def update(self, table: str, row_id: str, values: Row) -> Row:
        raise NotImplementedError

    def delete(self, table: str, row_id: str) -> int:
        raise NotImplementedError


def _check_table(table: str) -> List[str]:
    if table not in TABLE_COLUMNS:
        raise RemoteError(f'relation "{table}" does not exist', code="42P01")
    return TABLE_COLUMNS[table]


def _check_columns(table: str, names) -> None:
    columns = _check_table(table)
    for name in names:
        if name not in columns:
            raise RemoteError(
                f"Could not find the '{name}' column of '{table}'", code="PGRST204"
            )


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# SQLite backend
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


def _connect(db_path: str) -> sqlite3.Connection:
    """Open a connection with WAL mode and dict-like rows."""
    conn = sqlite3.connect(db_path)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA journal_mode = WAL")
    return conn


class SQLiteRemote(RemoteStore):
    """SQLite-backed rendition of the hosted tables."""

    def __init__(self, db_path: str = None):
        """Initialize store and create tables if needed."""
        if db_path is None:
            db_path = os.environ.get("LIFEREBOOT_DB") or str(
                Path.home() / ".local" / "share" / "lifereboot" / "remote.db"
            )
        self.db_path = db_path
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        self._init_schema()

    def _init_schema(self):
        """Create tables if they don't exist."""
        with _connect(self.db_path) as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS users (
                    id TEXT PRIMARY KEY,
                    email TEXT NOT NULL DEFAULT '',
                    preferred_language TEXT DEFAULT 'en',
                    theme TEXT DEFAULT 'system',
                    created_at TEXT NOT NULL
                )
            """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS habits (
                    id TEXT PRIMARY KEY,
                    user_id TEXT NOT NULL,
                    title TEXT NOT NULL,
                    description TEXT,
                    time_of_day TEXT NOT NULL DEFAULT 'morning',
                    date TEXT NOT NULL,
                    status TEXT NOT NULL DEFAULT 'pending',
                    is_default INTEGER DEFAULT 0,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )
            """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS tasks (
                    id TEXT PRIMARY KEY,
                    user_id TEXT NOT NULL,
                    title TEXT NOT NULL,
                    description TEXT,
                    date TEXT NOT NULL,
                    scheduled_time TEXT,
                    status TEXT NOT NULL DEFAULT 'todo',
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )
            """)
            # No UNIQUE(user_id, date): one note per day is kept by the caller
            conn.execute("""
                CREATE TABLE IF NOT EXISTS daily_notes (
                    id TEXT PRIMARY KEY,
                    user_id TEXT NOT NULL,
                    date TEXT NOT NULL,
                    note_content TEXT,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )
            """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS history (
                    id TEXT PRIMARY KEY,
                    user_id TEXT NOT NULL,
                    habit_id TEXT NOT NULL,
                    date TEXT NOT NULL,
                    status TEXT NOT NULL,
                    created_at TEXT NOT NULL
                )
            """)
            conn.execute("CREATE INDEX IF NOT EXISTS idx_habits_user_date ON habits(user_id, date)")
            conn.execute("CREATE INDEX IF NOT EXISTS idx_tasks_user_date ON tasks(user_id, date)")
            conn.execute("CREATE INDEX IF NOT EXISTS idx_notes_user_date ON daily_notes(user_id, date)")
            conn.execute("CREATE INDEX IF NOT EXISTS idx_history_user ON history(user_id, date)")
            conn.commit()

    def _where(self, table: str, eq: Optional[Row], gte: Optional[Row]):
        clauses, params = [], []
        for ops, filters in (("=", eq or {}), (">=", gte or {})):
            _check_columns(table, filters.keys())
            for col, value in filters.items():
                clauses.append(f"{col} {ops} ?")
                params.append(self._to_db(col, value))
        sql = (" WHERE " + " AND ".join(clauses)) if clauses else ""
        return sql, params

    @staticmethod
    def _to_db(col: str, value):
        if col in _BOOL_COLUMNS:
            return 1 if value else 0
        return value

    @staticmethod
    def _row_to_dict(row: sqlite3.Row) -> Row:
        data = dict(row)
        for col in _BOOL_COLUMNS:
            if col in data:
                data[col] = bool(data[col])
        return data

    def select(self, table: str, eq: Optional[Row] = None, gte: Optional[Row] = None,
               order: str = "created_at", ascending: bool = True) -> List[Row]:
        _check_columns(table, [order])
        where, params = self._where(table, eq, gte)
        direction = "ASC" if ascending else "DESC"
        try:
            with _connect(self.db_path) as conn:
                rows = conn.execute(
                    f"SELECT * FROM {table}{where} ORDER BY {order} {direction}, rowid {direction}",
                    params,
                ).fetchall()
        except sqlite3.Error as e:
            raise RemoteError(f"select from {table} failed: {e}")
        return [self._row_to_dict(r) for r in rows]

    def select_one(self, table: str, eq: Row) -> Row:
        rows = self.select(table, eq=eq)
        if not rows:
            raise NoRowsError("The result contains 0 rows")
        if len(rows) > 1:
            raise RemoteError(
                f"The result contains {len(rows)} rows", code=NO_ROWS_CODE, status=406
            )
        return rows[0]

    def insert(self, table: str, rows: Union[Row, List[Row]]) -> List[Row]:
        columns = _check_table(table)
        if isinstance(rows, dict):
            rows = [rows]
        prepared = []
        for row in rows:
            _check_columns(table, row.keys())
            now = utc_now()
            data = dict(row)
            data.setdefault("id", str(uuid.uuid4()))
            data.setdefault("created_at", now)
            if "updated_at" in columns:
                data.setdefault("updated_at", now)
            prepared.append(data)

        try:
            with _connect(self.db_path) as conn:
                for data in prepared:
                    cols = list(data.keys())
                    conn.execute(
                        f"INSERT INTO {table} ({', '.join(cols)}) "
                        f"VALUES ({', '.join('?' for _ in cols)})",
                        [self._to_db(c, data[c]) for c in cols],
                    )
                conn.commit()
                ids = [d["id"] for d in prepared]
                found = conn.execute(
                    f"SELECT * FROM {table} WHERE id IN ({', '.join('?' for _ in ids)}) ORDER BY rowid",
                    ids,
                ).fetchall()
        except sqlite3.Error as e:
            raise RemoteError(f"insert into {table} failed: {e}")
        return [self._row_to_dict(r) for r in found]

    def update(self, table: str, row_id: str, values: Row) -> Row:
        columns = _check_table(table)
        _check_columns(table, values.keys())
        data = {k: v for k, v in values.items() if k != "id"}
        if "updated_at" in columns:
            data["updated_at"] = utc_now()
        if not data:
            return self.select_one(table, {"id": row_id})
        assignments = ", ".join(f"{col} = ?" for col in data)
        try:
            with _connect(self.db_path) as conn:
                cur = conn.execute(
                    f"UPDATE {table} SET {assignments} WHERE id = ?",
                    [self._to_db(c, v) for c, v in data.items()] + [row_id],
                )
                conn.commit()
                if cur.rowcount == 0:
                    raise NoRowsError("The result contains 0 rows")
                row = conn.execute(f"SELECT * FROM {table} WHERE id = ?", (row_id,)).fetchone()
        except sqlite3.Error as e:
            raise RemoteError(f"update of {table} failed: {e}")
        return self._row_to_dict(row)

    def delete(self, table: str, row_id: str) -> int:
        _check_table(table)
        try:
            with _connect(self.db_path) as conn:
                cur = conn.execute(f"DELETE FROM {table} WHERE id = ?", (row_id,))
                conn.commit()
                return cur.rowcount
        except sqlite3.Error as e:
            raise RemoteError(f"delete from {table} failed: {e}")


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# PostgREST backend
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


class RestRemote(RemoteStore):
    """PostgREST tables at ``<url>/rest/v1/<table>``."""

    OBJECT_MEDIA_TYPE = "application/vnd.pgrst.object+json"

    def __init__(self, url: str, api_key: str, timeout: float = 10.0,
                 session: Optional[requests.Session] = None):
        self.base_url = url.rstrip("/") + "/rest/v1"
        self.timeout = timeout
        self.http = session or requests.Session()
        self.http.headers.update({
            "apikey": api_key,
            "Authorization": f"Bearer {api_key}",
            "Content-Type": "application/json",
        })

    def _request(self, method: str, table: str, params=None, json=None,
                 headers: Optional[Dict[str, str]] = None):
        _check_table(table)
        try:
            resp = self.http.request(
                method,
                f"{self.base_url}/{table}",
                params=params,
                json=json,
                headers=headers,
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            raise RemoteError(f"Network error talking to {table}: {e}")

        if resp.status_code >= 400:
            self._raise_for(resp)
        if not resp.content:
            return []
        return resp.json()

    @staticmethod
    def _raise_for(resp) -> None:
        try:
            body = resp.json() or {}
        except ValueError:
            body = {}
        code = body.get("code")
        message = body.get("message") or resp.text or f"HTTP {resp.status_code}"
        details = body.get("details") or ""
        if code == NO_ROWS_CODE and "0 rows" in details:
            raise NoRowsError(message, code=code, status=resp.status_code)
        raise RemoteError(message, code=code, status=resp.status_code)

    @staticmethod
    def _filters(eq: Optional[Row], gte: Optional[Row]) -> List[tuple]:
        params = []
        for col, value in (eq or {}).items():
            if isinstance(value, bool):
                value = str(value).lower()
            params.append((col, f"eq.{value}"))
        for col, value in (gte or {}).items():
            params.append((col, f"gte.{value}"))
        return params

    def select(self, table: str, eq: Optional[Row] = None, gte: Optional[Row] = None,
               order: str = "created_at", ascending: bool = True) -> List[Row]:
        params = [("select", "*")] + self._filters(eq, gte)
        params.append(("order", f"{order}.{'asc' if ascending else 'desc'}"))
        return self._request("GET", table, params=params)

    def select_one(self, table: str, eq: Row) -> Row:
        params = [("select", "*")] + self._filters(eq, None)
        return self._request("GET", table, params=params,
                             headers={"Accept": self.OBJECT_MEDIA_TYPE})

    def insert(self, table: str, rows: Union[Row, List[Row]]) -> List[Row]:
        if isinstance(rows, dict):
            rows = [rows]
        return self._request("POST", table, json=rows,
                             headers={"Prefer": "return=representation"})

    def update(self, table: str, row_id: str, values: Row) -> Row:
        return self._request(
            "PATCH", table,
            params=[("id", f"eq.{row_id}")],
            json=values,
            headers={"Prefer": "return=representation", "Accept": self.OBJECT_MEDIA_TYPE},
        )

    def delete(self, table: str, row_id: str) -> int:
        deleted = self._request("DELETE", table, params=[("id", f"eq.{row_id}")],
                                headers={"Prefer": "return=representation"})
        return len(deleted or [])


def connect_remote(cfg) -> RemoteStore:
    """Build the one remote handle for this process from config."""
    if cfg.remote_backend == "rest":
        from .config import ConfigError

        api_key = os.environ.get(cfg.remote_key_env, "")
        if not cfg.remote_url or not api_key:
            raise ConfigError(
                f"REST backend needs remote_url and the {cfg.remote_key_env} "
                f"environment variable"
            )
        logger.info(f"Remote backend: PostgREST at {cfg.remote_url}")
        return RestRemote(cfg.remote_url, api_key, timeout=cfg.request_timeout)

    logger.info(f"Remote backend: SQLite at {cfg.sqlite_path}")
    return SQLiteRemote(cfg.sqlite_path)
