import logging
import threading
from typing import Any, Dict, List, Optional

from config import CacheConfig, EngineConfig
from gateway.cache import QueryCache
from gateway.db import QueryEngine
from gateway.errors import EngineError, RejectedStatement
from gateway.memory import MemoryMonitor
from gateway.pool import ConnectionPool
from gateway.types import CatalogTarget, PerformanceMetrics, ResultSet
from gateway.validator import StatementValidator

logger = logging.getLogger(__name__)


class ExecutionGateway:
    """
    Read-only front door to the query engine.

    Every statement is validated, looked up in the result cache and, on a
    miss, executed on a pooled connection for the resolved catalog/schema.
    The cache and pool are owned by the gateway; build one gateway per
    process and pass it to whatever needs to run SQL.
    """

    def __init__(self, engine_config: EngineConfig, cache_config: CacheConfig,
                 engine: Optional[QueryEngine] = None,
                 validator: Optional[StatementValidator] = None,
                 pool: Optional[ConnectionPool] = None,
                 cache: Optional[QueryCache] = None,
                 monitor: Optional[MemoryMonitor] = None):
        self._config = engine_config
        self.targets: List[CatalogTarget] = [CatalogTarget.parse(t) for t in engine_config.catalogs]
        if not self.targets:
            raise ValueError("At least one catalog.schema target must be configured")

        self.engine = engine or QueryEngine(engine_config)
        self.validator = validator or StatementValidator()
        self.pool = pool or ConnectionPool(self.engine, max_size=engine_config.connection_pool_size)
        self.cache = cache or QueryCache(
            max_size=cache_config.max_cache_size,
            default_ttl=cache_config.cache_ttl,
            enabled=cache_config.enable_result_cache,
        )
        self.monitor = monitor or MemoryMonitor()
        self.metrics = PerformanceMetrics()
        self._metrics_lock = threading.Lock()

    @property
    def default_target(self) -> CatalogTarget:
        return self.targets[0]

    def resolve_target(self, target: Optional[CatalogTarget] = None) -> CatalogTarget:
        if target is None:
            return self.default_target
        if target not in self.targets:
            raise EngineError(f"Catalog {target.key} is not configured")
        return target

    def execute(self, sql: str, use_cache: bool = True, target: Optional[CatalogTarget] = None,
                timeout: Optional[float] = None) -> ResultSet:
        """
        Validate and run a statement.

        Args:
            sql: Statement to run, usually produced by the language model
            use_cache: Consult and populate the result cache
            target: Configured catalog/schema to run against, defaults to the first
            timeout: Seconds before the engine call is interrupted

        Returns:
            ResultSet tagged with from_cache

        Raises:
            RejectedStatement: the statement is not read-only
            EngineError: the engine call failed or timed out
        """
        try:
            self.validator.ensure_read_only(sql)
        except RejectedStatement:
            with self._metrics_lock:
                self.metrics.rejected += 1
            raise

        resolved = self.resolve_target(target)
        # Default-target results are keyed by SQL alone; other targets are scoped
        scope = None if resolved == self.default_target else resolved.key

        if use_cache:
            cached = self.cache.lookup(sql, scope)
            if cached is not None:
                with self._metrics_lock:
                    self.metrics.cache_hits += 1
                return cached

        handle = self.pool.acquire(resolved.catalog, resolved.schema)
        timeout = timeout if timeout is not None else self._config.query_timeout

        try:
            with self.monitor.monitor_operation(f"Query on {resolved.key}") as stats:
                result = handle.execute(sql, timeout=timeout)
        except EngineError as e:
            with self._metrics_lock:
                self.metrics.errors += 1
            logger.error(f"Query failed on {resolved.key}: {e}")
            raise

        result.execution_time = stats.duration
        logger.info(f"Query executed in {stats.duration * 1000:.0f}ms, {result.row_count} rows")
        with self._metrics_lock:
            self.metrics.query_count += 1
            self.metrics.total_execution_time += stats.duration
            self.metrics.slowest_query_time = max(self.metrics.slowest_query_time, stats.duration)
            self.metrics.memory_peak_mb = self.monitor.peak_usage

        if use_cache:
            self.cache.store(sql, result, scope=scope)
        return result

    # ---------------- Administration -----------------
    def cache_stats(self) -> Dict[str, Any]:
        return self.cache.stats()

    def clear_cache(self) -> None:
        self.cache.invalidate_all()

    def performance_report(self) -> Dict[str, Any]:
        with self._metrics_lock:
            m = self.metrics
            avg = m.total_execution_time / m.query_count if m.query_count else 0.0
            report = {
                "queries_executed": m.query_count,
                "average_execution_time": round(avg, 4),
                "slowest_query_time": round(m.slowest_query_time, 4),
                "engine_errors": m.errors,
                "rejected_statements": m.rejected,
                "cache_hits": m.cache_hits,
                "memory_peak_mb": round(m.memory_peak_mb, 1),
            }
        report["pooled_connections"] = self.pool.keys()
        report["cache"] = self.cache.stats()
        return report

    def close(self) -> None:
        self.engine.close()
