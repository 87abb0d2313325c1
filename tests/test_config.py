import pytest

from config import Config, parse_attachments, parse_catalogs


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ("NLQ_CONFIG_FILE", "NLQ_DB_PATH", "NLQ_CATALOGS", "NLQ_ATTACH", "NLQ_CACHE_TTL", "PORT"):
        monkeypatch.delenv(name, raising=False)


class TestParsing:
    def test_catalogs(self):
        assert parse_catalogs(" memory.main, lake.sales ,") == ["memory.main", "lake.sales"]

    def test_catalog_needs_schema(self):
        with pytest.raises(ValueError):
            parse_catalogs("memory")

    def test_attachments(self):
        assert parse_attachments("lake=/data/lake.duckdb, crm=crm.db") == {"lake": "/data/lake.duckdb", "crm": "crm.db"}

    def test_attachment_needs_path(self):
        with pytest.raises(ValueError):
            parse_attachments("lake=")


class TestConfig:
    def test_environment_overrides(self, monkeypatch):
        monkeypatch.setenv("NLQ_CATALOGS", "memory.main,memory.sales")
        monkeypatch.setenv("NLQ_CACHE_TTL", "60")
        monkeypatch.setenv("PORT", "8080")
        cfg = Config(auto_configure=False)
        assert cfg.engine.catalogs == ["memory.main", "memory.sales"]
        assert cfg.cache.cache_ttl == 60
        assert cfg.server.port == 8080

    def test_file_settings_loaded(self, tmp_path):
        path = str(tmp_path / "settings.json")
        original = Config(auto_configure=False)
        original.engine.connection_pool_size = 3
        original.server.brand_query = "SELECT 1"
        original.save_to_file(path)

        loaded = Config(config_file=path, auto_configure=False)
        assert loaded.engine.connection_pool_size == 3
        assert loaded.server.brand_query == "SELECT 1"

    def test_validate(self, tmp_path):
        cfg = Config(auto_configure=False)
        cfg.model.model_path = str(tmp_path / "missing.gguf")
        assert cfg.validate() is True

        cfg.engine.catalogs = []
        assert cfg.validate() is False

    def test_validate_missing_attachment(self, tmp_path):
        cfg = Config(auto_configure=False)
        cfg.engine.attachments = {"lake": str(tmp_path / "lake.duckdb")}
        assert cfg.validate() is False
