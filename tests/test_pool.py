import threading

import pytest

from gateway.pool import ConnectionPool


class RecordingEngine:
    def __init__(self):
        self.created = []

    def connect(self, catalog, schema):
        handle = object()
        self.created.append((catalog, schema))
        return handle


class TestAcquire:
    def test_reuses_handle_per_key(self):
        engine = RecordingEngine()
        pool = ConnectionPool(engine, max_size=2)
        first = pool.acquire("memory", "main")
        assert pool.acquire("memory", "main") is first
        assert engine.created == [("memory", "main")]
        assert "memory.main" in pool

    def test_over_capacity_served_unpooled(self):
        engine = RecordingEngine()
        pool = ConnectionPool(engine, max_size=1)
        pool.acquire("a", "x")
        extra = pool.acquire("b", "y")
        assert extra is not pool.acquire("b", "y")
        assert len(pool) == 1
        assert pool.keys() == ["a.x"]
        assert "b.y" not in pool

    def test_concurrent_acquire_creates_one_handle(self):
        engine = RecordingEngine()
        pool = ConnectionPool(engine, max_size=4)
        handles = []

        def worker():
            handles.append(pool.acquire("memory", "main"))

        threads = [threading.Thread(target=worker) for _ in range(16)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert len(engine.created) == 1
        assert all(h is handles[0] for h in handles)

    def test_invalid_size(self):
        with pytest.raises(ValueError):
            ConnectionPool(RecordingEngine(), max_size=0)


class TestRealHandles:
    def test_handle_bound_to_schema(self, gateway):
        handle = gateway.pool.acquire("memory", "sales")
        result = handle.execute("SELECT name FROM brands ORDER BY name")
        assert result.rows == [("Acme",), ("Globex",)]
