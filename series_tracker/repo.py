# series_tracker/repo.py
import os
import re
import sqlite3
import threading
from contextlib import contextmanager
from dataclasses import replace
from typing import Dict, List, Optional, Tuple

import psycopg2
import psycopg2.extras
from psycopg2 import pool as pg_pool

from series_tracker.models import Series, now_iso

# --- Exceptions ---
class RepoError(Exception):
    """Store failure; the message is the driver's error text."""
    pass

# integer input accepted by PostgreSQL: ASCII digits, optional sign, surrounding blanks
_ID_PATTERN = re.compile(r"[ \t\n\r\f\v]*[+-]?[0-9]+[ \t\n\r\f\v]*")
# `id` is SERIAL, a 4-byte integer
_ID_MIN, _ID_MAX = -2**31, 2**31 - 1

def _coerce_id(series_id) -> int:
    """Read an id the way PostgreSQL reads an INTEGER, raising RepoError with its message."""
    if isinstance(series_id, int) and not isinstance(series_id, bool):
        value = series_id
    elif isinstance(series_id, str) and _ID_PATTERN.fullmatch(series_id):
        value = int(series_id)
    else:
        raise RepoError(f'invalid input syntax for type integer: "{series_id}"')
    if not _ID_MIN <= value <= _ID_MAX:
        raise RepoError(f'value "{series_id}" is out of range for type integer')
    return value

# --- PostgreSQL repo (production) ---
POSTGRES_SCHEMA = """
CREATE TABLE IF NOT EXISTS series (
    id SERIAL PRIMARY KEY,
    title VARCHAR(255) NOT NULL,
    description TEXT,
    status VARCHAR(50) DEFAULT 'pending',
    current_episode INTEGER DEFAULT 0,
    total_episodes INTEGER,
    score INTEGER DEFAULT 0,
    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
);
"""

class PostgresRepo:
    """
    Series store backed by PostgreSQL through a psycopg2 ThreadedConnectionPool.
    The pool opens `minconn` connections on construction, so an unreachable
    server raises RepoError right away.
    """

    def __init__(self, host: str, port: int, user: str, password: str, dbname: str,
                 minconn: int = 1, maxconn: int = 10, connect_timeout: int = 5):
        self.dsn_info = {"host": host, "port": port, "user": user, "dbname": dbname}
        # ThreadedConnectionPool raises when exhausted; callers wait here instead
        self._slots = threading.BoundedSemaphore(maxconn)
        try:
            self._pool = pg_pool.ThreadedConnectionPool(
                minconn, maxconn,
                host=host, port=port, user=user, password=password, dbname=dbname,
                sslmode="disable", connect_timeout=connect_timeout,
            )
        except psycopg2.Error as e:
            raise RepoError(str(e).strip()) from e

    @contextmanager
    def conn(self):
        self._slots.acquire()
        try:
            try:
                con = self._pool.getconn()
            except psycopg2.Error as e:
                raise RepoError(str(e).strip()) from e
            try:
                yield con
                con.commit()
            except Exception as e:
                if not con.closed:
                    con.rollback()
                if isinstance(e, psycopg2.Error):
                    raise RepoError(str(e).strip()) from e
                raise
            finally:
                self._pool.putconn(con, close=bool(con.closed))
        finally:
            self._slots.release()

    @contextmanager
    def cursor(self):
        with self.conn() as c:
            with c.cursor(cursor_factory=psycopg2.extras.RealDictCursor) as cur:
                yield cur

    def close(self) -> None:
        self._pool.closeall()

    def ensure_schema(self) -> None:
        with self.cursor() as cur:
            cur.execute(POSTGRES_SCHEMA)

    def list_series(self) -> List[Series]:
        with self.cursor() as cur:
            cur.execute("SELECT * FROM series")
            return [Series.from_row(r) for r in cur.fetchall()]

    def get_series(self, series_id) -> Optional[Series]:
        with self.cursor() as cur:
            cur.execute("SELECT * FROM series WHERE id = %s", (series_id,))
            r = cur.fetchone()
            return Series.from_row(r) if r else None

    def create_series(self, s: Series) -> Series:
        with self.cursor() as cur:
            cur.execute(
                "INSERT INTO series (title, description, status, current_episode, total_episodes, score) "
                "VALUES (%s, %s, %s, %s, %s, %s) RETURNING id",
                (s.title, s.description, s.status, s.current_episode, s.total_episodes, s.score))
            s.id = cur.fetchone()["id"]
            return s

    def series_exists(self, series_id) -> bool:
        with self.cursor() as cur:
            cur.execute("SELECT EXISTS(SELECT 1 FROM series WHERE id = %s) AS present", (series_id,))
            return bool(cur.fetchone()["present"])

    def update_series(self, s: Series) -> None:
        with self.cursor() as cur:
            cur.execute(
                "UPDATE series SET title = %s, description = %s, status = %s, "
                "current_episode = %s, total_episodes = %s, score = %s WHERE id = %s",
                (s.title, s.description, s.status, s.current_episode, s.total_episodes, s.score, s.id))

    def delete_series(self, series_id) -> int:
        with self.cursor() as cur:
            cur.execute("DELETE FROM series WHERE id = %s", (series_id,))
            return cur.rowcount

    def update_status(self, series_id, status: str) -> int:
        with self.cursor() as cur:
            cur.execute("UPDATE series SET status = %s WHERE id = %s", (status, series_id))
            return cur.rowcount

    def get_episode_progress(self, series_id) -> Optional[Tuple[int, int]]:
        with self.cursor() as cur:
            cur.execute("SELECT current_episode, total_episodes FROM series WHERE id = %s", (series_id,))
            r = cur.fetchone()
            return (r["current_episode"] or 0, r["total_episodes"] or 0) if r else None

    def increment_episode(self, series_id) -> int:
        with self.cursor() as cur:
            cur.execute("UPDATE series SET current_episode = current_episode + 1 WHERE id = %s", (series_id,))
            return cur.rowcount

    def adjust_score(self, series_id, delta: int) -> int:
        with self.cursor() as cur:
            cur.execute("UPDATE series SET score = score + %s WHERE id = %s", (delta, series_id))
            return cur.rowcount

# --- SQLite repo (embedded, file-backed) ---
SQLITE_SCHEMA = """
CREATE TABLE IF NOT EXISTS series (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    title TEXT NOT NULL,
    description TEXT,
    status TEXT DEFAULT 'pending',
    current_episode INTEGER DEFAULT 0,
    total_episodes INTEGER,
    score INTEGER DEFAULT 0,
    created_at TEXT DEFAULT CURRENT_TIMESTAMP,
    updated_at TEXT DEFAULT CURRENT_TIMESTAMP
);
"""

class SqliteRepo:
    """
    Series store in a local SQLite file, used by the test suite to run the
    service against a real SQL engine. run.py never builds it; production
    goes through PostgresRepo, whose statements are written separately.
    """

    def __init__(self, db_path: str):
        self.db_path = db_path
        if os.path.dirname(db_path):
            os.makedirs(os.path.dirname(db_path), exist_ok=True)

    @contextmanager
    def conn(self):
        con = sqlite3.connect(self.db_path)
        con.row_factory = sqlite3.Row
        try:
            yield con
            con.commit()
        except sqlite3.Error as e:
            con.rollback()
            raise RepoError(str(e)) from e
        finally:
            con.close()

    def close(self) -> None:
        pass

    def ensure_schema(self) -> None:
        with self.conn() as c:
            c.executescript(SQLITE_SCHEMA)

    def list_series(self) -> List[Series]:
        with self.conn() as c:
            rows = c.execute("SELECT * FROM series").fetchall()
            return [Series.from_row(r) for r in rows]

    def get_series(self, series_id) -> Optional[Series]:
        sid = _coerce_id(series_id)
        with self.conn() as c:
            r = c.execute("SELECT * FROM series WHERE id = ?", (sid,)).fetchone()
            return Series.from_row(r) if r else None

    def create_series(self, s: Series) -> Series:
        with self.conn() as c:
            cur = c.execute(
                "INSERT INTO series (title, description, status, current_episode, total_episodes, score) "
                "VALUES (?, ?, ?, ?, ?, ?)",
                (s.title, s.description, s.status, s.current_episode, s.total_episodes, s.score))
            s.id = cur.lastrowid
            return s

    def series_exists(self, series_id) -> bool:
        sid = _coerce_id(series_id)
        with self.conn() as c:
            r = c.execute("SELECT EXISTS(SELECT 1 FROM series WHERE id = ?)", (sid,)).fetchone()
            return bool(r[0])

    def update_series(self, s: Series) -> None:
        sid = _coerce_id(s.id)
        with self.conn() as c:
            c.execute(
                "UPDATE series SET title=?, description=?, status=?, current_episode=?, total_episodes=?, score=? "
                "WHERE id=?",
                (s.title, s.description, s.status, s.current_episode, s.total_episodes, s.score, sid))

    def delete_series(self, series_id) -> int:
        sid = _coerce_id(series_id)
        with self.conn() as c:
            return c.execute("DELETE FROM series WHERE id = ?", (sid,)).rowcount

    def update_status(self, series_id, status: str) -> int:
        sid = _coerce_id(series_id)
        with self.conn() as c:
            return c.execute("UPDATE series SET status = ? WHERE id = ?", (status, sid)).rowcount

    def get_episode_progress(self, series_id) -> Optional[Tuple[int, int]]:
        sid = _coerce_id(series_id)
        with self.conn() as c:
            r = c.execute("SELECT current_episode, total_episodes FROM series WHERE id = ?", (sid,)).fetchone()
            return (r["current_episode"] or 0, r["total_episodes"] or 0) if r else None

    def increment_episode(self, series_id) -> int:
        sid = _coerce_id(series_id)
        with self.conn() as c:
            return c.execute("UPDATE series SET current_episode = current_episode + 1 WHERE id = ?",
                             (sid,)).rowcount

    def adjust_score(self, series_id, delta: int) -> int:
        sid = _coerce_id(series_id)
        with self.conn() as c:
            return c.execute("UPDATE series SET score = score + ? WHERE id = ?", (delta, sid)).rowcount

# --- In-memory repo (simple, used for unit tests) ---
class InMemoryRepo:
    def __init__(self):
        self._series: Dict[int, Series] = {}
        self._next = 1

    def close(self): pass
    def ensure_schema(self): pass

    def list_series(self): return [replace(s) for s in self._series.values()]

    def get_series(self, series_id):
        s = self._series.get(_coerce_id(series_id))
        return replace(s) if s else None

    def create_series(self, s: Series) -> Series:
        s.id = self._next
        self._next += 1
        stamp = now_iso()
        self._series[s.id] = replace(s, created_at=stamp, updated_at=stamp)
        return s

    def series_exists(self, series_id): return _coerce_id(series_id) in self._series

    def update_series(self, s: Series):
        current = self._series.get(_coerce_id(s.id))
        if current:
            self._series[current.id] = replace(s, id=current.id, created_at=current.created_at,
                                               updated_at=current.updated_at)

    def delete_series(self, series_id):
        return 1 if self._series.pop(_coerce_id(series_id), None) else 0

    def update_status(self, series_id, status: str):
        s = self._series.get(_coerce_id(series_id))
        if not s:
            return 0
        s.status = status
        return 1

    def get_episode_progress(self, series_id):
        s = self._series.get(_coerce_id(series_id))
        return (s.current_episode, s.total_episodes) if s else None

    def increment_episode(self, series_id):
        s = self._series.get(_coerce_id(series_id))
        if not s:
            return 0
        s.current_episode += 1
        return 1

    def adjust_score(self, series_id, delta: int):
        s = self._series.get(_coerce_id(series_id))
        if not s:
            return 0
        s.score += delta
        return 1
