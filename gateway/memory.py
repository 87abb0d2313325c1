import time
import logging
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Generator

import psutil


logger = logging.getLogger(__name__)


@dataclass
class OperationStats:
	duration: float = 0.0
	memory_delta_mb: float = 0.0


class MemoryMonitor:
	def __init__(self, enable_logging: bool = True):
		self.peak_usage = 0.0
		self.current_usage = 0.0
		self.enable_logging = enable_logging

	def get_memory_usage(self) -> float:
		usage_mb = psutil.Process().memory_info().rss / 1024 / 1024
		self.current_usage = usage_mb
		self.peak_usage = max(self.peak_usage, usage_mb)
		return usage_mb

	@contextmanager
	def monitor_operation(self, operation_name: str) -> Generator[OperationStats, None, None]:
		"""Time a block and record its memory delta, even when it raises."""
		stats = OperationStats()
		start_memory = self.get_memory_usage()
		start_time = time.perf_counter()
		try:
			yield stats
		finally:
			stats.duration = time.perf_counter() - start_time
			stats.memory_delta_mb = self.get_memory_usage() - start_memory
			if self.enable_logging:
				logger.info(f"{operation_name} - Duration: {stats.duration * 1000:.0f}ms, "
							f"Memory delta: {stats.memory_delta_mb:.1f}MB, Peak: {self.peak_usage:.1f}MB")
