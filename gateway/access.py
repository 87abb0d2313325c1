import os
import json
import time
import logging
import threading
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Dict, Mapping, Optional

logger = logging.getLogger(__name__)


def _freeze(value: Any) -> Any:
    if isinstance(value, dict):
        return MappingProxyType({k: _freeze(v) for k, v in value.items()})
    if isinstance(value, list):
        return tuple(_freeze(v) for v in value)
    return value


@dataclass(frozen=True)
class AccessSnapshot:
    """
    Immutable view of the table-access and knowledge-base files.

    table_access maps "catalog.schema" -> table name -> settings, where a
    table is enabled unless its settings say {"enabled": false}.
    """
    version: int = 0
    table_access: Mapping[str, Mapping[str, Any]] = field(default_factory=lambda: MappingProxyType({}))
    knowledge_base: Optional[Mapping[str, Any]] = None
    loaded_at: float = 0.0

    def table_settings(self, catalog_schema: str, table: str) -> Mapping[str, Any]:
        return self.table_access.get(catalog_schema, {}).get(table) or {}

    def is_enabled(self, catalog_schema: str, table: str) -> bool:
        return self.table_settings(catalog_schema, table).get("enabled", True) is not False

    def description(self, catalog_schema: str, table: str) -> str:
        return self.table_settings(catalog_schema, table).get("description", "")

    def knowledge_base_for_prompt(self, max_known_values: int = 5) -> str:
        """Render knowledge-base tables, known values and query patterns."""
        kb = self.knowledge_base
        if not kb:
            return ""

        lines = ["=== KNOWLEDGE BASE ==="]
        for catalog_schema, catalog_info in kb.get("catalogs", {}).items():
            lines.append(f"\n### Catalog: {catalog_schema}")
            for table, table_info in catalog_info.get("tables", {}).items():
                if not self.is_enabled(catalog_schema, table):
                    lines.append(f"[NO ACCESS] {catalog_schema}.{table}")
                    continue
                description = self.description(catalog_schema, table) or table_info.get("description", "")
                lines.append(f"[ACCESSIBLE] {catalog_schema}.{table}" + (f" - {description}" if description else ""))
                for column, column_info in table_info.get("columns", {}).items():
                    entry = f"  - {column} ({column_info.get('type', 'unknown')})"
                    known = list(column_info.get("knownValues", ()))[:max_known_values]
                    if known:
                        entry += f" [Values: {', '.join(str(v) for v in known)}...]"
                    lines.append(entry)

        patterns = kb.get("commonPatterns", {})
        if patterns:
            lines.append("\n## COMMON QUERY PATTERNS:")
            for pattern in patterns.values():
                lines.append(f"- {pattern.get('description', '')}:\n  {pattern.get('pattern', '')}")

        lines.append("\n=== END KNOWLEDGE BASE ===")
        return "\n".join(lines)


class AccessConfigStore:
    """Holds the current AccessSnapshot; reloads swap the reference atomically."""

    def __init__(self, table_access_path: Optional[str] = None, knowledge_base_path: Optional[str] = None):
        self.table_access_path = table_access_path
        self.knowledge_base_path = knowledge_base_path
        self._lock = threading.Lock()
        self._snapshot = AccessSnapshot()
        self._mtimes: Dict[str, float] = {}

    def current(self) -> AccessSnapshot:
        return self._snapshot

    def _read_json(self, path: Optional[str], label: str) -> Optional[Dict[str, Any]]:
        if not path:
            return None
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except FileNotFoundError:
            logger.warning(f"{label} not found at {path}")
            return None
        except (OSError, ValueError) as e:
            logger.warning(f"Could not load {label} from {path}: {e}")
            return None
        if not isinstance(data, dict):
            logger.warning(f"{label} at {path} is not a JSON object, ignoring")
            return None
        return data

    def _current_mtimes(self) -> Dict[str, float]:
        mtimes = {}
        for path in (self.table_access_path, self.knowledge_base_path):
            if path and os.path.exists(path):
                mtimes[path] = os.path.getmtime(path)
        return mtimes

    def reload(self) -> AccessSnapshot:
        """Read both files and publish a new snapshot."""
        with self._lock:
            mtimes = self._current_mtimes()
            table_access = self._read_json(self.table_access_path, "Table access config") or {}
            knowledge_base = self._read_json(self.knowledge_base_path, "Knowledge base")
            snapshot = AccessSnapshot(
                version=self._snapshot.version + 1,
                table_access=_freeze(table_access),
                knowledge_base=_freeze(knowledge_base) if knowledge_base is not None else None,
                loaded_at=time.time(),
            )
            self._mtimes = mtimes
            self._snapshot = snapshot
        logger.info(f"Access configuration loaded (version {snapshot.version})")
        return snapshot

    def reload_if_changed(self) -> bool:
        if self._current_mtimes() == self._mtimes:
            return False
        self.reload()
        return True


class AccessConfigWatcher:
    """Background thread polling the access files for changes."""

    def __init__(self, store: AccessConfigStore, interval: float = 30.0):
        self.store = store
        self.interval = interval
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def start(self) -> None:
        if self._thread is not None and self._thread.is_alive():
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._run, name="access-config-watcher", daemon=True)
        self._thread.start()

    def _run(self) -> None:
        while not self._stop.wait(self.interval):
            try:
                self.store.reload_if_changed()
            except OSError as e:
                logger.warning(f"Access config watcher failed to stat files: {e}")

    def stop(self) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout=self.interval + 1)
