from __future__ import annotations

import threading

from sqlalchemy import bindparam, select
from sqlalchemy.dialects import postgresql, sqlite

from cqrs_ddd_capabilities import RenderedStatement, render
from cqrs_ddd_capabilities.locking import ReadWriteLock
from cqrs_ddd_capabilities.render import RenderCache, cache_key


def test_render_uses_dialect(users):
    stmt = select(users.c.id).where(users.c.age >= bindparam("min_age", value=18))

    pg = render(stmt, postgresql.dialect())
    lite = render(stmt, sqlite.dialect())

    assert isinstance(pg, RenderedStatement)
    assert "%(min_age)s" in pg.sql
    assert "?" in lite.sql
    assert pg.params == {"min_age": 18}
    assert str(pg) == pg.sql


def test_cache_key():
    assert cache_key("query", "adults") == "query:adults"


def test_render_cache():
    cache = RenderCache()
    cache.put("query:a", "SELECT 1")

    assert "query:a" in cache
    assert cache.get("query:a") == "SELECT 1"
    assert cache.get("query:b") is None
    assert cache.invalidate("query:a") is True
    assert cache.invalidate("query:a") is False
    assert len(cache) == 0

    cache.put("x", "y")
    cache.clear()
    assert "x" not in cache


def test_readers_share_writers_exclude():
    lock = ReadWriteLock()
    state = {"readers": 0, "max_readers": 0, "writer_saw_readers": False}
    guard = threading.Lock()
    both_reading = threading.Barrier(2)

    def reader() -> None:
        with lock.read_locked():
            with guard:
                state["readers"] += 1
                state["max_readers"] = max(state["max_readers"], state["readers"])
            both_reading.wait(timeout=5)
            with guard:
                state["readers"] -= 1

    def writer() -> None:
        with lock.write_locked(), guard:
            state["writer_saw_readers"] = state["readers"] > 0

    readers = [threading.Thread(target=reader) for _ in range(2)]
    for t in readers:
        t.start()
    for t in readers:
        t.join()
    w = threading.Thread(target=writer)
    w.start()
    w.join()

    assert state["max_readers"] == 2
    assert not state["writer_saw_readers"]
