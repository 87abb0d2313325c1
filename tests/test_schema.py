import json

import pytest

from conftest import make_gateway, seed
from gateway.access import AccessConfigStore
from gateway.schema import SchemaCatalog


@pytest.fixture
def catalog(gateway):
    return SchemaCatalog(gateway)


class TestDiscovery:
    def test_lists_tables_of_every_target(self, catalog):
        names = [ref.full_name for ref in catalog.list_tables()]
        assert names == ["memory.main.orders", "memory.sales.brands"]

    def test_failing_target_skipped(self):
        gw = make_gateway(catalogs=("memory.main", "missing.nowhere"))
        try:
            seed(gw)
            tables = SchemaCatalog(gw).list_tables()
            assert [ref.full_name for ref in tables] == ["memory.main.orders"]
        finally:
            gw.close()

    def test_describe_table(self, catalog):
        columns = catalog.describe_table("memory", "main", "orders")
        assert [(c.column, c.type) for c in columns] == [
            ("order_date", "DATE"),
            ("amount", "DOUBLE"),
            ("region", "VARCHAR"),
        ]


class TestFullSchema:
    def test_cached_until_refresh(self, catalog, gateway):
        first = catalog.full_schema()
        assert set(first) == {"memory.main.orders", "memory.sales.brands"}
        gateway.engine.root.execute("CREATE TABLE main.returns (id INTEGER)")
        assert catalog.full_schema() is first

        refreshed = catalog.refresh()
        assert "memory.main.returns" in refreshed

    def test_prompt_marks_disabled_tables(self, gateway, tmp_path):
        access_file = tmp_path / "tableAccess.json"
        access_file.write_text(json.dumps({
            "memory.sales": {"brands": {"enabled": False}},
            "memory.main": {"orders": {"enabled": True, "description": "Daily orders"}},
        }))
        access = AccessConfigStore(str(access_file))
        access.reload()
        catalog = SchemaCatalog(gateway, access)
        catalog.full_schema()

        prompt = catalog.format_for_prompt()
        assert "[ACCESSIBLE] memory.main.orders - Daily orders" in prompt
        assert "  - amount: DOUBLE" in prompt
        assert "[NO ACCESS] memory.sales.brands" in prompt
        assert "  - name: VARCHAR" not in prompt

    def test_prompt_before_load(self, catalog):
        assert catalog.format_for_prompt() == "Schema not loaded yet."
