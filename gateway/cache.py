import time
import hashlib
import logging
import threading
from collections import deque
from dataclasses import dataclass
from typing import Callable, Deque, Dict, Optional, Union

from gateway.types import ResultSet


logger = logging.getLogger(__name__)


@dataclass
class CacheEntry:
	value: ResultSet
	created_at: float
	expires_at: float


class QueryCache:
	"""Bounded FIFO result cache keyed by normalized SQL.

	Eviction follows insertion order only; reads never promote an entry,
	so a hot key can be evicted before colder ones. Expiry is checked on
	read, an expired entry keeps its slot until read or evicted.
	"""

	def __init__(self, max_size: int = 1000, default_ttl: float = 300, enabled: bool = True,
				 clock: Callable[[], float] = time.time):
		if max_size < 1:
			raise ValueError("max_size must be at least 1")
		self.max_size = max_size
		self.default_ttl = default_ttl
		self.enabled = enabled
		self._clock = clock
		self._entries: Dict[str, CacheEntry] = {}
		self._order: Deque[str] = deque()
		self._lock = threading.Lock()
		self.cache_stats = {"hits": 0, "misses": 0}

	@staticmethod
	def fingerprint(sql: str, scope: Optional[str] = None) -> str:
		"""Generate the cache key for a statement, optionally scoped to a target."""
		text = sql.strip().lower()
		if scope:
			text = f"{scope.lower()}\n{text}"
		return hashlib.sha256(text.encode("utf-8")).hexdigest()

	def lookup(self, sql: str, scope: Optional[str] = None) -> Optional[ResultSet]:
		"""Get a cached result, or None on miss or expiry."""
		if not self.enabled:
			return None
		key = self.fingerprint(sql, scope)
		with self._lock:
			entry = self._entries.get(key)
			if entry is None:
				self.cache_stats["misses"] += 1
				return None
			if self._clock() >= entry.expires_at:
				self._remove(key)
				self.cache_stats["misses"] += 1
				return None
			self.cache_stats["hits"] += 1
		logger.debug(f"Cache HIT for query ({key[:8]}...)")
		return entry.value.copy(from_cache=True)

	def store(self, sql: str, value: ResultSet, ttl: Optional[float] = None, scope: Optional[str] = None):
		"""Cache a query result."""
		if not self.enabled:
			return
		ttl = self.default_ttl if ttl is None else ttl
		key = self.fingerprint(sql, scope)
		now = self._clock()
		entry = CacheEntry(value=value.copy(from_cache=False), created_at=now, expires_at=now + ttl)
		with self._lock:
			if key in self._entries:
				self._remove(key)
			while len(self._entries) >= self.max_size:
				oldest = self._order.popleft()
				del self._entries[oldest]
				logger.debug(f"Evicted oldest cache entry ({oldest[:8]}...)")
			self._entries[key] = entry
			self._order.append(key)
		logger.debug(f"Cached query result ({key[:8]}...), TTL: {ttl}s")

	def _remove(self, key: str):
		del self._entries[key]
		self._order.remove(key)

	def invalidate_all(self):
		with self._lock:
			self._entries.clear()
			self._order.clear()
		logger.info("Query cache cleared")

	def stats(self) -> Dict[str, Union[int, str]]:
		with self._lock:
			hits = self.cache_stats["hits"]
			misses = self.cache_stats["misses"]
			size = len(self._entries)
		total = hits + misses
		hit_rate = f"{hits / total * 100:.2f}%" if total else "0%"
		return {
			"size": size,
			"max_size": self.max_size,
			"hits": hits,
			"misses": misses,
			"hit_rate": hit_rate,
		}

	def __len__(self) -> int:
		with self._lock:
			return len(self._entries)

	def __contains__(self, sql: str) -> bool:
		key = self.fingerprint(sql)
		with self._lock:
			entry = self._entries.get(key)
			return entry is not None and self._clock() < entry.expires_at
