import threading
from types import SimpleNamespace

import psycopg2
import psycopg2.extensions
import psycopg2.extras
import pytest

from series_tracker import repo as repo_module
from series_tracker.models import Series
from series_tracker.repo import PostgresRepo, RepoError

class FakeCursor:
    def __init__(self, conn):
        self.conn = conn
        self.rowcount = -1

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False

    def execute(self, sql, params=None):
        self.conn.statements.append((" ".join(sql.split()), params))
        if self.conn.fail_with is not None:
            raise self.conn.fail_with
        self.rowcount = self.conn.rowcount

    def fetchone(self):
        return self.conn.rows[0] if self.conn.rows else None

    def fetchall(self):
        return list(self.conn.rows)

class FakeConnection:
    def __init__(self):
        self.statements = []
        self.rows = []
        self.rowcount = 0
        self.fail_with = None
        self.closed = 0
        self.commits = 0
        self.rollbacks = 0

    def cursor(self, cursor_factory=None):
        assert cursor_factory is psycopg2.extras.RealDictCursor
        return FakeCursor(self)

    def commit(self):
        self.commits += 1

    def rollback(self):
        self.rollbacks += 1

class FakePool:
    instances = []

    def __init__(self, minconn, maxconn, **kwargs):
        self.minconn, self.maxconn, self.kwargs = minconn, maxconn, kwargs
        self.connection = FakeConnection()
        self.returned = 0
        self.closed_all = False
        FakePool.instances.append(self)

    def getconn(self):
        return self.connection

    def putconn(self, conn, close=False):
        self.returned += 1

    def closeall(self):
        self.closed_all = True

@pytest.fixture
def pg(monkeypatch):
    FakePool.instances = []
    monkeypatch.setattr(repo_module.pg_pool, "ThreadedConnectionPool", FakePool)
    return PostgresRepo(host="db", port=5432, user="user", password="password", dbname="seriesdb")

@pytest.fixture
def pool(pg):
    return FakePool.instances[0]

def row(**overrides):
    base = {"id": 1, "title": "Foo", "description": None, "status": "pending", "current_episode": 0,
            "total_episodes": 12, "score": 0, "created_at": None, "updated_at": None}
    base.update(overrides)
    return base

def test_pool_built_from_connection_settings(pool):
    assert (pool.minconn, pool.maxconn) == (1, 10)
    assert pool.kwargs == {"host": "db", "port": 5432, "user": "user", "password": "password",
                           "dbname": "seriesdb", "sslmode": "disable", "connect_timeout": 5}

def test_unreachable_server_is_repo_error(monkeypatch):
    def refuse(*args, **kwargs):
        raise psycopg2.OperationalError("could not translate host name \"db\" to address\n")
    monkeypatch.setattr(repo_module.pg_pool, "ThreadedConnectionPool", refuse)
    with pytest.raises(RepoError, match='could not translate host name "db" to address$'):
        PostgresRepo(host="db", port=5432, user="u", password="p", dbname="d")

def test_ensure_schema_creates_series_table(pg, pool):
    pg.ensure_schema()
    sql, _ = pool.connection.statements[0]
    assert sql.startswith("CREATE TABLE IF NOT EXISTS series (")
    assert pool.connection.commits == 1
    assert pool.returned == 1

def test_create_uses_returning_id(pg, pool):
    pool.connection.rows = [{"id": 41}]
    s = pg.create_series(Series(id=None, title="Foo", total_episodes=12))
    assert s.id == 41
    sql, params = pool.connection.statements[0]
    assert sql.endswith("RETURNING id")
    assert params == ("Foo", "", "pending", 0, 12, 0)

def test_get_and_list_map_rows(pg, pool):
    pool.connection.rows = [row(), row(id=2, title="Bar", score=-3)]
    assert [s.title for s in pg.list_series()] == ["Foo", "Bar"]
    got = pg.get_series("1")
    assert got.description == ""
    assert pool.connection.statements[-1] == ("SELECT * FROM series WHERE id = %s", ("1",))

def test_get_missing_returns_none(pg, pool):
    assert pg.get_series(5) is None
    assert pg.get_episode_progress(5) is None

def test_exists(pg, pool):
    pool.connection.rows = [{"present": True}]
    assert pg.series_exists(1) is True
    pool.connection.rows = [{"present": False}]
    assert pg.series_exists(2) is False

def test_progress_treats_null_total_as_zero(pg, pool):
    pool.connection.rows = [{"current_episode": 0, "total_episodes": None}]
    assert pg.get_episode_progress(1) == (0, 0)

def test_mutations_report_rowcount(pg, pool):
    pool.connection.rowcount = 1
    assert pg.delete_series(1) == 1
    assert pg.update_status(1, "watching") == 1
    assert pg.increment_episode(1) == 1
    assert pg.adjust_score(1, -1) == 1
    sqls = [s for s, _ in pool.connection.statements]
    assert "UPDATE series SET current_episode = current_episode + 1 WHERE id = %s" in sqls
    assert pool.connection.statements[-1] == ("UPDATE series SET score = score + %s WHERE id = %s", (-1, 1))

def test_update_writes_every_mutable_field(pg, pool):
    pg.update_series(Series(id="3", title="T", description="d", status="x",
                            current_episode=1, total_episodes=2, score=3))
    _, params = pool.connection.statements[0]
    assert params == ("T", "d", "x", 1, 2, 3, "3")

def test_driver_error_rolls_back_and_is_wrapped(pg, pool):
    pool.connection.fail_with = psycopg2.DataError('invalid input syntax for type integer: "abc"\n')
    with pytest.raises(RepoError) as excinfo:
        pg.get_series("abc")
    assert str(excinfo.value) == 'invalid input syntax for type integer: "abc"'
    assert pool.connection.rollbacks == 1
    assert pool.connection.commits == 0
    assert pool.returned == 1

def test_close_releases_pool(pg, pool):
    pg.close()
    assert pool.closed_all is True

class PooledConnection(FakeConnection):
    """Connection shape the real ThreadedConnectionPool checks on putconn."""
    def __init__(self):
        super().__init__()
        self.info = SimpleNamespace(transaction_status=psycopg2.extensions.TRANSACTION_STATUS_IDLE)

    def close(self):
        self.closed = 1

def test_busy_pool_makes_callers_wait(monkeypatch):
    monkeypatch.setattr(psycopg2, "connect", lambda *args, **kwargs: PooledConnection())
    pg = PostgresRepo(host="db", port=5432, user="u", password="p", dbname="d", maxconn=2)
    holding = threading.Barrier(3)
    release = threading.Event()

    def hold():
        with pg.conn():
            holding.wait(5)
            release.wait(5)

    holders = [threading.Thread(target=hold) for _ in range(2)]
    for t in holders:
        t.start()
    holding.wait(5)

    outcome = []

    def late_caller():
        try:
            with pg.conn():
                outcome.append("ok")
        except RepoError as e:
            outcome.append(str(e))

    late = threading.Thread(target=late_caller)
    late.start()
    late.join(0.2)
    # every connection is checked out: the third caller waits instead of failing
    assert late.is_alive()
    assert outcome == []

    release.set()
    late.join(5)
    for t in holders:
        t.join(5)
    assert outcome == ["ok"]
    pg.close()
