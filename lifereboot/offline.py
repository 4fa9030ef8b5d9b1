"""
Online/offline mode and the durable mutation outbox.

- Online: store actions write to the remote tables directly.
- Offline: store actions patch their working set and append the write to the
  outbox (a local SQLite log). Switching back online replays the outbox;
  several updates of the same row are merged field by field, later values
  winning.
"""
import json
import logging
import threading
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import List, Optional, Dict, Any

from .remote import RemoteStore, RemoteError, NoRowsError, _connect
from .schema import utc_now

logger = logging.getLogger(__name__)


class OfflineError(Exception):
    """Raised when an action needs the remote service while offline."""
    pass


class ConnectivityMode(Enum):
    ONLINE = "online"
    OFFLINE = "offline"

    @classmethod
    def from_str(cls, value: str) -> "ConnectivityMode":
        try:
            return cls(value.strip().lower())
        except (ValueError, AttributeError):
            raise ValueError(f"Invalid mode: {value}")


@dataclass
class Mutation:
    """One queued remote write."""
    table: str
    op: str                      # "update" | "insert" | "upsert_note"
    entity_id: str               # row id, or the note's date for upsert_note
    payload: Dict[str, Any]
    user_id: str
    id: Optional[int] = None
    queued_at: str = field(default_factory=utc_now)

    @property
    def key(self) -> tuple:
        return (self.table, self.op, self.user_id, self.entity_id)


@dataclass
class ReplayResult:
    applied: int = 0
    dropped: int = 0
    remaining: int = 0
    by_user: Dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {"applied": self.applied, "dropped": self.dropped, "remaining": self.remaining}


class Outbox:
    """SQLite-backed log of writes made while offline."""

    OPS = ("update", "insert", "upsert_note")

    def __init__(self, db_path: str):
        self.db_path = db_path
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        self._replay_lock = threading.Lock()
        with _connect(self.db_path) as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS pending_mutations (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    user_id TEXT NOT NULL,
                    table_name TEXT NOT NULL,
                    op TEXT NOT NULL,
                    entity_id TEXT NOT NULL,
                    payload TEXT NOT NULL,  -- JSON object
                    queued_at TEXT NOT NULL
                )
            """)
            conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_pending_user ON pending_mutations(user_id, id)"
            )
            conn.commit()

    def enqueue(self, mutation: Mutation) -> int:
        if mutation.op not in self.OPS:
            raise ValueError(f"Invalid op: {mutation.op}")
        with _connect(self.db_path) as conn:
            cursor = conn.execute(
                """
                INSERT INTO pending_mutations
                (user_id, table_name, op, entity_id, payload, queued_at)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (mutation.user_id, mutation.table, mutation.op, mutation.entity_id,
                 json.dumps(mutation.payload), mutation.queued_at),
            )
            conn.commit()
            mutation.id = cursor.lastrowid
        logger.info(f"Queued offline {mutation.op} on {mutation.table}/{mutation.entity_id}")
        return mutation.id

    def pending(self, user_id: Optional[str] = None) -> List[Mutation]:
        """Queued mutations, oldest first."""
        with _connect(self.db_path) as conn:
            if user_id:
                rows = conn.execute(
                    "SELECT * FROM pending_mutations WHERE user_id = ? ORDER BY id ASC",
                    (user_id,),
                ).fetchall()
            else:
                rows = conn.execute(
                    "SELECT * FROM pending_mutations ORDER BY id ASC"
                ).fetchall()
        return [
            Mutation(
                id=r["id"],
                user_id=r["user_id"],
                table=r["table_name"],
                op=r["op"],
                entity_id=r["entity_id"],
                payload=json.loads(r["payload"]),
                queued_at=r["queued_at"],
            )
            for r in rows
        ]

    def count(self, user_id: Optional[str] = None) -> int:
        return len(self.pending(user_id))

    def remove(self, ids: List[int]) -> None:
        if not ids:
            return
        with _connect(self.db_path) as conn:
            conn.execute(
                f"DELETE FROM pending_mutations WHERE id IN ({', '.join('?' for _ in ids)})",
                ids,
            )
            conn.commit()

    @staticmethod
    def _plan(mutations: List[Mutation]) -> List[tuple]:
        """
        Collapse the log into the writes to send.

        Updates and note upserts of the same row are merged into the last
        occurrence; inserts are kept as-is. Returns (mutation, merged_payload, ids).
        """
        merged: Dict[tuple, Dict[str, Any]] = {}
        ids: Dict[tuple, List[int]] = {}
        last: Dict[tuple, int] = {}
        for m in mutations:
            if m.op == "insert":
                continue
            merged.setdefault(m.key, {}).update(m.payload)
            ids.setdefault(m.key, []).append(m.id)
            last[m.key] = m.id

        plan = []
        for m in mutations:
            if m.op == "insert":
                plan.append((m, m.payload, [m.id]))
            elif last[m.key] == m.id:
                plan.append((m, merged[m.key], ids[m.key]))
        return plan

    def replay(self, remote: RemoteStore, user_id: Optional[str] = None) -> ReplayResult:
        """
        Send queued writes to the remote tables.

        A write whose target row is gone is dropped. Any other remote failure
        stops the replay; the rest stays queued for the next reconnect.
        """
        from .notes import upsert_note_row

        result = ReplayResult()
        if not self._replay_lock.acquire(blocking=False):
            result.remaining = self.count(user_id)
            return result
        try:
            plan = self._plan(self.pending(user_id))
            for index, (m, payload, ids) in enumerate(plan):
                try:
                    if m.op == "update":
                        remote.update(m.table, m.entity_id, payload)
                    elif m.op == "insert":
                        remote.insert(m.table, payload)
                    else:
                        upsert_note_row(remote, m.user_id, m.entity_id, payload.get("note_content", ""))
                except NoRowsError:
                    logger.warning(f"Dropping offline {m.op} on {m.table}/{m.entity_id}: row no longer exists")
                    self.remove(ids)
                    result.dropped += 1
                    continue
                except RemoteError as e:
                    logger.error(f"Replay stopped at {m.table}/{m.entity_id}: {e}")
                    result.remaining = sum(len(p[2]) for p in plan[index:])
                    break
                self.remove(ids)
                result.applied += 1
                result.by_user[m.user_id] = result.by_user.get(m.user_id, 0) + 1
        finally:
            self._replay_lock.release()
        return result


class Connectivity:
    """Online/offline switch, persisted in the local state database."""

    def __init__(self, db_path: str, remote: RemoteStore, outbox: Optional[Outbox] = None,
                 events=None):
        self.db_path = db_path
        self.remote = remote
        self.outbox = outbox or Outbox(db_path)
        self.events = events
        with _connect(self.db_path) as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS system_state (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )
            """)
            conn.commit()

    @staticmethod
    def _key(user_id: Optional[str]) -> str:
        return f"mode:{user_id}" if user_id else "mode"

    def _stored_mode(self, key: str) -> ConnectivityMode:
        with _connect(self.db_path) as conn:
            row = conn.execute(
                "SELECT value FROM system_state WHERE key=? LIMIT 1", (key,)
            ).fetchone()
        return ConnectivityMode(row["value"]) if row else ConnectivityMode.ONLINE

    @property
    def mode(self) -> ConnectivityMode:
        """Server-wide mode from the system_state table, default online."""
        return self._stored_mode(self._key(None))

    def mode_for(self, user_id: Optional[str] = None) -> ConnectivityMode:
        """
        Effective mode for one user: offline when either the server-wide
        switch or the user's own switch is offline.
        """
        if self.mode == ConnectivityMode.OFFLINE or not user_id:
            return self.mode
        return self._stored_mode(self._key(user_id))

    def is_online(self, user_id: Optional[str] = None) -> bool:
        return self.mode_for(user_id) == ConnectivityMode.ONLINE

    def require_online(self, action: str, user_id: Optional[str] = None) -> None:
        if not self.is_online(user_id):
            raise OfflineError(f"Cannot {action} while offline")

    def set_mode(self, mode: ConnectivityMode, reason: str = "",
                 user_id: Optional[str] = None) -> dict:
        """
        Switch the server-wide mode, or one user's mode when ``user_id`` is
        given. Going online replays the affected outbox entries, unless the
        user is still held offline by the server-wide switch.
        """
        key = self._key(user_id)
        previous = self._stored_mode(key)
        now = utc_now()
        with _connect(self.db_path) as conn:
            conn.execute("""
                INSERT INTO system_state (key, value, updated_at)
                VALUES (?, ?, ?)
                ON CONFLICT(key) DO UPDATE SET value=excluded.value, updated_at=excluded.updated_at
            """, (key, mode.value, now))
            conn.commit()

        scope = f"user {user_id}" if user_id else "server"
        result = {"mode": self.mode_for(user_id).value, "changed_at": now}
        if previous != mode:
            logger.info(f"Switching {scope} from {previous.value} to {mode.value}: {reason}")
        if mode == ConnectivityMode.ONLINE and self.is_online(user_id):
            replay = self._replay(user_id)
            result["replay"] = replay.to_dict()
            if self.events:
                for replayed_user, count in replay.by_user.items():
                    self.events.emit("outbox_replayed", user_id=replayed_user, count=count)
        return result

    def _replay(self, user_id: Optional[str]) -> ReplayResult:
        """Replay one user's outbox, or every user not held offline by their own switch."""
        if user_id:
            return self.outbox.replay(self.remote, user_id)
        result = ReplayResult()
        for queued_user in sorted({m.user_id for m in self.outbox.pending()}):
            if not self.is_online(queued_user):
                result.remaining += self.outbox.count(queued_user)
                continue
            part = self.outbox.replay(self.remote, queued_user)
            result.applied += part.applied
            result.dropped += part.dropped
            result.remaining += part.remaining
            result.by_user.update(part.by_user)
        return result

    def go_offline(self, reason: str = "", user_id: Optional[str] = None) -> dict:
        return self.set_mode(ConnectivityMode.OFFLINE, reason, user_id)

    def go_online(self, reason: str = "", user_id: Optional[str] = None) -> dict:
        return self.set_mode(ConnectivityMode.ONLINE, reason, user_id)

    def queue(self, mutation: Mutation) -> int:
        """Record an offline write and tell the user it is pending."""
        mutation_id = self.outbox.enqueue(mutation)
        if self.events:
            self.events.emit("queued_offline", user_id=mutation.user_id)
        return mutation_id
