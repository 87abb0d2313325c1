"""
Configuration management for the NLQ gateway.
Handles engine targets, caching, model and logging settings.
"""

import os
import json
import logging
from dataclasses import dataclass, field, asdict
from typing import Optional, Dict, Any, List
import psutil


logger = logging.getLogger(__name__)


@dataclass
class EngineConfig:
    """Query engine settings. The primary database path is the engine endpoint."""
    db_path: str = ":memory:"
    catalogs: List[str] = field(default_factory=lambda: ["memory.main"])
    attachments: Dict[str, str] = field(default_factory=dict)
    memory_limit: str = "2GB"
    threads: int = 4
    chunk_size: int = 10000
    query_timeout: float = 120.0  # seconds
    connection_pool_size: int = 10


@dataclass
class ModelConfig:
    """LLM model configuration settings."""
    model_path: str = "models/sqlcoder-7b.Q5_K_M.gguf"
    n_ctx: int = 8192
    n_threads: int = 6
    n_gpu_layers: int = 20
    temperature: float = 0.1
    max_tokens: int = 2000
    explain_temperature: float = 0.3
    explain_max_tokens: int = 500
    forecast_temperature: float = 0.2
    forecast_max_tokens: int = 4000
    verbose: bool = False


@dataclass
class CacheConfig:
    """Result caching configuration settings."""
    enable_result_cache: bool = True
    cache_ttl: int = 300  # 5 minutes
    max_cache_size: int = 1000
    cache_dir: str = "cache"


@dataclass
class LoggingConfig:
    """Logging configuration settings."""
    level: str = "INFO"
    format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    file_path: str = "logs/gateway.log"
    max_file_size: int = 10 * 1024 * 1024  # 10MB
    backup_count: int = 5
    enable_performance_logging: bool = True


@dataclass
class ServerConfig:
    """HTTP server and chat settings."""
    host: str = "0.0.0.0"
    port: int = 3000
    max_history_messages: int = 20
    default_forecast_period: int = 30
    table_access_path: str = "tableAccess.json"
    knowledge_base_path: str = "knowledgebase.json"
    access_reload_interval: int = 30  # seconds, 0 disables the watcher
    brand_query: str = ""


def parse_catalogs(value: str) -> List[str]:
    """Parse a comma separated "catalog.schema" list, skipping blanks."""
    targets = []
    for item in value.split(","):
        item = item.strip()
        if not item:
            continue
        if item.count(".") != 1:
            raise ValueError(f"Catalog target must look like catalog.schema: {item!r}")
        targets.append(item)
    return targets


def parse_attachments(value: str) -> Dict[str, str]:
    """Parse "name=path,name2=path2" into an attachment mapping."""
    attachments = {}
    for item in value.split(","):
        item = item.strip()
        if not item:
            continue
        name, sep, path = item.partition("=")
        if not sep or not name.strip() or not path.strip():
            raise ValueError(f"Attachment must look like name=path: {item!r}")
        attachments[name.strip()] = path.strip()
    return attachments


class Config:
    """Main configuration class that manages all settings."""

    SECTIONS = ("engine", "model", "cache", "logging", "server")

    def __init__(self, config_file: Optional[str] = None, auto_configure: bool = True):
        self.engine = EngineConfig()
        self.model = ModelConfig()
        self.cache = CacheConfig()
        self.logging = LoggingConfig()
        self.server = ServerConfig()

        # Auto-detect system resources and adjust settings
        if auto_configure:
            self._auto_configure_resources()

        # Load from config file if provided
        config_file = config_file or os.getenv("NLQ_CONFIG_FILE")
        if config_file and os.path.exists(config_file):
            self.load_from_file(config_file)

        # Override with environment variables
        self._load_from_env()

    def _auto_configure_resources(self):
        """Auto-configure engine settings based on available system resources."""
        memory_gb = psutil.virtual_memory().total / (1024**3)
        cpu_count = psutil.cpu_count() or 1

        if memory_gb < 8:
            self.engine.memory_limit = "1GB"
            self.engine.chunk_size = 5000
        elif memory_gb >= 16:
            self.engine.memory_limit = "4GB"
            self.engine.chunk_size = 20000

        self.engine.threads = min(cpu_count, 8)
        self.model.n_threads = max(1, min(cpu_count - 1, 8))

        logger.debug(f"Auto-configured for {memory_gb:.1f}GB RAM, {cpu_count} CPUs")

    def _load_from_env(self):
        """Load configuration from environment variables."""
        # Engine settings
        if os.getenv("NLQ_DB_PATH"):
            self.engine.db_path = os.getenv("NLQ_DB_PATH")
        if os.getenv("NLQ_CATALOGS"):
            self.engine.catalogs = parse_catalogs(os.getenv("NLQ_CATALOGS"))
        if os.getenv("NLQ_ATTACH"):
            self.engine.attachments = parse_attachments(os.getenv("NLQ_ATTACH"))
        if os.getenv("NLQ_QUERY_TIMEOUT"):
            self.engine.query_timeout = float(os.getenv("NLQ_QUERY_TIMEOUT"))
        if os.getenv("NLQ_POOL_SIZE"):
            self.engine.connection_pool_size = int(os.getenv("NLQ_POOL_SIZE"))
        if os.getenv("DB_MEMORY_LIMIT"):
            self.engine.memory_limit = os.getenv("DB_MEMORY_LIMIT")

        # Cache settings
        if os.getenv("NLQ_CACHE_TTL"):
            self.cache.cache_ttl = int(os.getenv("NLQ_CACHE_TTL"))
        if os.getenv("NLQ_CACHE_SIZE"):
            self.cache.max_cache_size = int(os.getenv("NLQ_CACHE_SIZE"))

        # Model settings
        if os.getenv("MODEL_PATH"):
            self.model.model_path = os.getenv("MODEL_PATH")
        if os.getenv("MODEL_N_CTX"):
            self.model.n_ctx = int(os.getenv("MODEL_N_CTX"))
        if os.getenv("MODEL_N_GPU_LAYERS"):
            self.model.n_gpu_layers = int(os.getenv("MODEL_N_GPU_LAYERS"))

        # Server settings
        if os.getenv("PORT"):
            self.server.port = int(os.getenv("PORT"))
        if os.getenv("NLQ_BRAND_QUERY"):
            self.server.brand_query = os.getenv("NLQ_BRAND_QUERY")

        # Logging settings
        if os.getenv("LOG_LEVEL"):
            self.logging.level = os.getenv("LOG_LEVEL")

    def load_from_file(self, config_file: str):
        """Load configuration from JSON file."""
        try:
            with open(config_file, 'r') as f:
                config_data = json.load(f)
        except (OSError, ValueError) as e:
            logger.warning(f"Could not load config file {config_file}: {e}")
            return

        for section_name in self.SECTIONS:
            section = getattr(self, section_name)
            for key, value in config_data.get(section_name, {}).items():
                if hasattr(section, key):
                    setattr(section, key, value)
                else:
                    logger.warning(f"Ignoring unknown setting {section_name}.{key}")

    def save_to_file(self, config_file: str):
        """Save current configuration to JSON file."""
        config_data = {name: asdict(getattr(self, name)) for name in self.SECTIONS}

        directory = os.path.dirname(config_file)
        if directory:
            os.makedirs(directory, exist_ok=True)
        with open(config_file, 'w') as f:
            json.dump(config_data, f, indent=2)

    def validate(self) -> bool:
        """Validate configuration settings."""
        errors = []

        if not self.engine.catalogs:
            errors.append("At least one catalog.schema target is required")
        for target in self.engine.catalogs:
            if target.count(".") != 1:
                errors.append(f"Invalid catalog target: {target}")
        for name, path in self.engine.attachments.items():
            if not os.path.exists(path):
                errors.append(f"Attached database not found for catalog {name}: {path}")

        if self.engine.connection_pool_size < 1:
            errors.append("connection_pool_size must be at least 1")
        if self.cache.max_cache_size < 1:
            errors.append("max_cache_size must be at least 1")
        if self.engine.query_timeout <= 0:
            errors.append("query_timeout must be positive")

        # The model is optional at runtime; chat falls back to an error intent
        if not os.path.exists(self.model.model_path):
            logger.warning(f"Model file not found: {self.model.model_path}. Chat requests will fail.")

        if errors:
            logger.error("Configuration validation errors:")
            for error in errors:
                logger.error(f"  - {error}")
            return False

        return True


# Global configuration instance
config = Config()
