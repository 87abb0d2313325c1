import logging
import threading
from typing import Dict, List

from gateway.db import ConnectionHandle, QueryEngine


logger = logging.getLogger(__name__)


class ConnectionPool:
	"""One reusable handle per catalog/schema, bounded by max_size.

	Keys beyond capacity get a fresh handle on every call and are never
	admitted. Handles stay for the lifetime of the pool.
	"""

	def __init__(self, engine: QueryEngine, max_size: int = 10):
		if max_size < 1:
			raise ValueError("max_size must be at least 1")
		self._engine = engine
		self.max_size = max_size
		self._handles: Dict[str, ConnectionHandle] = {}
		self._lock = threading.Lock()

	@staticmethod
	def pool_key(catalog: str, schema: str) -> str:
		return f"{catalog}.{schema}"

	def acquire(self, catalog: str, schema: str) -> ConnectionHandle:
		key = self.pool_key(catalog, schema)
		with self._lock:
			handle = self._handles.get(key)
			if handle is not None:
				logger.debug(f"Reusing pooled connection for {key}")
				return handle

			logger.info(f"Creating new connection for {key}")
			handle = self._engine.connect(catalog, schema)
			if len(self._handles) < self.max_size:
				self._handles[key] = handle
			else:
				logger.warning(f"Connection pool full ({self.max_size}), serving {key} unpooled")
			return handle

	def keys(self) -> List[str]:
		with self._lock:
			return list(self._handles)

	def __contains__(self, key: str) -> bool:
		with self._lock:
			return key in self._handles

	def __len__(self) -> int:
		with self._lock:
			return len(self._handles)
