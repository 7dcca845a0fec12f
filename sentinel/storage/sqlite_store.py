from __future__ import annotations

import sqlite3
import threading
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any

import structlog

from sentinel.models import PingResult, TransportErrorKind, ensure_utc
from sentinel.storage.base import OutOfOrderPingError, PingStore, PingStoreError, order_after


logger = structlog.get_logger(__name__)

SCHEMA_VERSION = 1

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def _to_us(ts: datetime) -> int:
    delta = ensure_utc(ts) - _EPOCH
    return (delta.days * 86_400 + delta.seconds) * 1_000_000 + delta.microseconds


def _from_us(us: int) -> datetime:
    return _EPOCH + timedelta(microseconds=int(us))


def _connect(path: str) -> sqlite3.Connection:
    p = str(path or "").strip()
    if not p:
        raise ValueError("Missing db_path")
    if p != ":memory:":
        Path(p).parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(p, timeout=30, isolation_level=None, check_same_thread=False)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA busy_timeout = 5000;")
    # Best-effort: WAL improves concurrency for a single-host service.
    try:
        conn.execute("PRAGMA journal_mode = WAL;")
    except sqlite3.DatabaseError:
        pass
    return conn


def _ensure_schema_conn(conn: sqlite3.Connection) -> None:
    conn.execute("CREATE TABLE IF NOT EXISTS schema_meta (k TEXT PRIMARY KEY, v TEXT NOT NULL);")
    row = conn.execute("SELECT v FROM schema_meta WHERE k='version'").fetchone()
    cur = int(row["v"]) if row and row["v"] else 0
    if cur >= SCHEMA_VERSION:
        return
    if cur == 0:
        _apply_v1(conn)
        conn.execute("INSERT OR REPLACE INTO schema_meta (k, v) VALUES ('version', ?)", (str(SCHEMA_VERSION),))
        return
    raise RuntimeError(f"Unsupported schema version upgrade path cur={cur} target={SCHEMA_VERSION}")


def _apply_v1(conn: sqlite3.Connection) -> None:
    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS ping_results (
          id INTEGER PRIMARY KEY AUTOINCREMENT,
          monitor_id TEXT NOT NULL,
          ts_us INTEGER NOT NULL,
          status_code INTEGER NOT NULL,
          response_time_ms REAL NOT NULL,
          success INTEGER NOT NULL,
          error_kind TEXT
        );
        """
    )
    conn.execute("CREATE INDEX IF NOT EXISTS idx_ping_results_monitor_ts ON ping_results (monitor_id, ts_us DESC);")
    conn.execute("CREATE INDEX IF NOT EXISTS idx_ping_results_ts ON ping_results (ts_us DESC);")


def _row_to_result(row: sqlite3.Row) -> PingResult:
    kind = row["error_kind"]
    return PingResult(
        monitor_id=str(row["monitor_id"]),
        timestamp=_from_us(int(row["ts_us"])),
        status_code=int(row["status_code"]),
        response_time_ms=float(row["response_time_ms"]),
        success=bool(row["success"]),
        error_kind=TransportErrorKind(kind) if kind else None,
    )


_SELECT = "SELECT monitor_id, ts_us, status_code, response_time_ms, success, error_kind FROM ping_results"


class SqlitePingStore(PingStore):
    """Durable store backed by a single SQLite file."""

    def __init__(self, db_path: str):
        self.db_path = db_path
        self._lock = threading.RLock()
        try:
            self._conn = _connect(db_path)
            _ensure_schema_conn(self._conn)
        except sqlite3.Error as e:
            raise PingStoreError(f"cannot open ping store at {db_path}: {e}") from e
        logger.info("Ping store opened", db_path=db_path)

    def close(self) -> None:
        with self._lock:
            self._conn.close()

    def _execute(self, sql: str, params: tuple[Any, ...] = ()) -> list[sqlite3.Row]:
        with self._lock:
            try:
                return self._conn.execute(sql, params).fetchall()
            except sqlite3.Error as e:
                raise PingStoreError(str(e)) from e

    def _latest_locked(self, monitor_id: str) -> PingResult | None:
        row = self._conn.execute(
            f"{_SELECT} WHERE monitor_id=? ORDER BY ts_us DESC, id DESC LIMIT 1",
            (monitor_id,),
        ).fetchone()
        return _row_to_result(row) if row else None

    def _insert_locked(self, result: PingResult) -> None:
        self._conn.execute(
            "INSERT INTO ping_results (monitor_id, ts_us, status_code, response_time_ms, success, error_kind) "
            "VALUES (?, ?, ?, ?, ?, ?)",
            (
                result.monitor_id,
                _to_us(result.timestamp),
                int(result.status_code),
                float(result.response_time_ms),
                1 if result.success else 0,
                result.error_kind.value if result.error_kind else None,
            ),
        )

    def _in_transaction(self, fn):
        with self._lock:
            try:
                self._conn.execute("BEGIN IMMEDIATE;")
            except sqlite3.Error as e:
                raise PingStoreError(str(e)) from e
            try:
                out = fn()
                self._conn.execute("COMMIT;")
                return out
            except Exception as e:
                self._conn.execute("ROLLBACK;")
                if isinstance(e, sqlite3.Error):
                    raise PingStoreError(str(e)) from e
                raise

    def append(self, result: PingResult) -> None:
        def _do() -> None:
            prior = self._latest_locked(result.monitor_id)
            if prior is not None and result.timestamp < prior.timestamp:
                raise OutOfOrderPingError(
                    f"ping for {result.monitor_id} at {result.timestamp.isoformat()} "
                    f"is older than {prior.timestamp.isoformat()}"
                )
            self._insert_locked(result)

        self._in_transaction(_do)

    def record(self, result: PingResult) -> tuple[PingResult | None, PingResult]:
        def _do() -> tuple[PingResult | None, PingResult]:
            prior = self._latest_locked(result.monitor_id)
            stored = order_after(prior, result)
            self._insert_locked(stored)
            return prior, stored

        return self._in_transaction(_do)

    def most_recent(self, monitor_id: str) -> PingResult | None:
        rows = self._execute(
            f"{_SELECT} WHERE monitor_id=? ORDER BY ts_us DESC, id DESC LIMIT 1",
            (monitor_id,),
        )
        return _row_to_result(rows[0]) if rows else None

    def query(
        self,
        monitor_id: str,
        *,
        since: datetime | None = None,
        until: datetime | None = None,
        limit: int | None = 100,
        descending: bool = True,
    ) -> list[PingResult]:
        clauses = ["monitor_id=?"]
        params: list[Any] = [monitor_id]
        if since is not None:
            clauses.append("ts_us >= ?")
            params.append(_to_us(since))
        if until is not None:
            clauses.append("ts_us <= ?")
            params.append(_to_us(until))
        direction = "DESC" if descending else "ASC"
        sql = f"{_SELECT} WHERE {' AND '.join(clauses)} ORDER BY ts_us {direction}, id {direction}"
        if limit is not None:
            sql += " LIMIT ?"
            params.append(max(0, int(limit)))
        return [_row_to_result(r) for r in self._execute(sql, tuple(params))]

    def recent_across_all_monitors(self, since: datetime, *, limit: int | None = None) -> list[PingResult]:
        sql = f"{_SELECT} WHERE ts_us >= ? ORDER BY ts_us DESC, id DESC"
        params: list[Any] = [_to_us(since)]
        if limit is not None:
            sql += " LIMIT ?"
            params.append(max(0, int(limit)))
        return [_row_to_result(r) for r in self._execute(sql, tuple(params))]
