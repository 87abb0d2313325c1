import re
import logging
import threading
from typing import Optional

import duckdb

from config import EngineConfig
from gateway.errors import EngineError
from gateway.types import ResultSet


logger = logging.getLogger(__name__)

INTERRUPT_RETRY_INTERVAL = 0.05
_PLAIN_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


def quote_identifier(name: str) -> str:
	if _PLAIN_IDENTIFIER.match(name):
		return name
	return '"' + name.replace('"', '""') + '"'


def quote_literal(value: str) -> str:
	return "'" + value.replace("'", "''") + "'"


class ConnectionHandle:
	"""Dispatcher bound to one catalog/schema.

	Every call runs on its own cursor of the shared engine connection, so a
	handle can be used from several request threads at once.
	"""

	def __init__(self, root: duckdb.DuckDBPyConnection, catalog: str, schema: str, chunk_size: int = 10000):
		self._root = root
		self.catalog = catalog
		self.schema = schema
		self.chunk_size = max(1, chunk_size)

	@property
	def target(self) -> str:
		return f"{quote_identifier(self.catalog)}.{quote_identifier(self.schema)}"

	def execute(self, sql: str, timeout: Optional[float] = None) -> ResultSet:
		"""Run sql against the bound catalog/schema, collecting every page."""
		try:
			cursor = self._root.cursor()
		except duckdb.Error as e:
			raise EngineError(f"Could not open cursor for {self.catalog}.{self.schema}: {e}") from e

		finished = threading.Event()
		timed_out = threading.Event()

		def _watchdog():
			if finished.wait(timeout):
				return
			timed_out.set()
			# An interrupt that lands before the statement starts is lost; repeat until done
			while not finished.is_set():
				try:
					cursor.interrupt()
				except duckdb.Error:
					return
				finished.wait(INTERRUPT_RETRY_INTERVAL)

		try:
			cursor.execute(f"USE {self.target}")
			if timeout:
				threading.Thread(target=_watchdog, name="query-timeout", daemon=True).start()
			cursor.execute(sql)

			columns = []
			rows = []
			if cursor.description:
				columns = [col[0] for col in cursor.description]
				while True:
					page = cursor.fetchmany(self.chunk_size)
					if not page:
						break
					rows.extend(tuple(row) for row in page)
			return ResultSet(columns=columns, rows=rows)
		except duckdb.Error as e:
			if timed_out.is_set():
				raise EngineError(f"Query timed out after {timeout:g}s") from e
			raise EngineError(str(e)) from e
		finally:
			finished.set()
			cursor.close()

	def __repr__(self) -> str:
		return f"ConnectionHandle({self.catalog}.{self.schema})"


class QueryEngine:
	"""Owns the process-wide engine connection and attached catalogs."""

	def __init__(self, engine_config: EngineConfig):
		self._config = engine_config
		self.root = self._init_connection()

	def _init_connection(self) -> duckdb.DuckDBPyConnection:
		"""Initialize the engine connection with proper settings."""
		cfg = self._config
		try:
			conn = duckdb.connect(cfg.db_path)
			conn.execute(f"SET memory_limit='{cfg.memory_limit}'")
			conn.execute(f"SET threads={int(cfg.threads)}")
			conn.execute("SET enable_progress_bar=false")
			for name, path in cfg.attachments.items():
				conn.execute(f"ATTACH {quote_literal(path)} AS {quote_identifier(name)} (READ_ONLY)")
				logger.info(f"Attached catalog {name} from {path}")
		except duckdb.Error as e:
			logger.error(f"Failed to initialize query engine: {e}", exc_info=True)
			raise EngineError(f"Failed to initialize query engine: {e}") from e
		return conn

	def connect(self, catalog: str, schema: str) -> ConnectionHandle:
		return ConnectionHandle(self.root, catalog, schema, chunk_size=self._config.chunk_size)

	def close(self) -> None:
		try:
			self.root.close()
		except duckdb.Error as e:
			logger.warning(f"Error closing engine connection: {e}")
