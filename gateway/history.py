import os
import json
import time
import threading
from typing import Any, Dict, List, Optional


class ConversationStore:
	"""Per-session chat messages, trimmed to the most recent max_messages."""

	def __init__(self, max_messages: int = 20):
		self.max_messages = max_messages
		self._sessions: Dict[str, List[Dict[str, str]]] = {}
		self._lock = threading.Lock()

	def get(self, session_id: str) -> List[Dict[str, str]]:
		with self._lock:
			return list(self._sessions.get(session_id, []))

	def append(self, session_id: str, role: str, content: str) -> None:
		with self._lock:
			messages = self._sessions.setdefault(session_id, [])
			messages.append({"role": role, "content": content})
			if len(messages) > self.max_messages:
				del messages[:-self.max_messages]

	def clear(self, session_id: str) -> bool:
		with self._lock:
			return self._sessions.pop(session_id, None) is not None

	def __len__(self) -> int:
		with self._lock:
			return len(self._sessions)


class HistoryManager:
	"""Lightweight thread-safe audit log writing one JSONL entry per chat turn."""

	def __init__(self, history_dir: Optional[str] = None):
		self.history_dir = history_dir
		if history_dir:
			os.makedirs(history_dir, exist_ok=True)
		self._lock = threading.Lock()

	def _file_path(self) -> str:
		date_str = time.strftime("%Y-%m-%d")
		return os.path.join(self.history_dir, f"history_{date_str}.jsonl")

	def record(self, **entry: Any) -> None:
		if not self.history_dir:
			return
		data = {
			"timestamp": time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime()),
			**entry,
		}
		line = json.dumps(data, ensure_ascii=False, default=str)
		with self._lock:
			with open(self._file_path(), "a", encoding="utf-8") as f:
				f.write(line + "\n")
