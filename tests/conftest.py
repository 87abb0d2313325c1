import pytest

from config import CacheConfig, EngineConfig
from gateway.gateway import ExecutionGateway


def make_gateway(catalogs=("memory.main", "memory.sales"), chunk_size=10000, **cache_overrides):
    engine_config = EngineConfig(
        db_path=":memory:",
        catalogs=list(catalogs),
        memory_limit="512MB",
        threads=2,
        chunk_size=chunk_size,
        query_timeout=30.0,
        connection_pool_size=4,
    )
    return ExecutionGateway(engine_config, CacheConfig(**cache_overrides))


def seed(gateway):
    root = gateway.engine.root
    root.execute("CREATE SCHEMA IF NOT EXISTS sales")
    root.execute("CREATE TABLE main.orders (order_date DATE, amount DOUBLE, region VARCHAR)")
    root.execute(
        "INSERT INTO main.orders VALUES "
        "('2025-01-01', 10, 'north'), ('2025-01-02', 20, 'south'), ('2025-01-03', 30, 'north')"
    )
    root.execute("CREATE TABLE sales.brands (name VARCHAR)")
    root.execute("INSERT INTO sales.brands VALUES ('Acme'), ('Globex')")


@pytest.fixture
def gateway():
    gw = make_gateway()
    seed(gw)
    yield gw
    gw.close()
