import logging
import threading
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from gateway.access import AccessConfigStore
from gateway.db import quote_identifier, quote_literal
from gateway.errors import GatewayError
from gateway.gateway import ExecutionGateway
from gateway.types import CatalogTarget

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TableRef:
    table: str
    catalog: str
    schema: str

    @property
    def catalog_schema(self) -> str:
        return f"{self.catalog}.{self.schema}"

    @property
    def full_name(self) -> str:
        return f"{self.catalog}.{self.schema}.{self.table}"

    def to_dict(self) -> Dict[str, str]:
        return {"table": self.table, "catalog": self.catalog, "schema": self.schema, "full_name": self.full_name}


@dataclass(frozen=True)
class ColumnInfo:
    column: str
    type: str
    extra: str = ""
    comment: str = ""

    def to_dict(self) -> Dict[str, str]:
        return {"column": self.column, "type": self.type, "extra": self.extra, "comment": self.comment}


@dataclass
class TableSchema:
    ref: TableRef
    columns: List[ColumnInfo] = field(default_factory=list)


class SchemaCatalog:
    """Table discovery across every configured catalog/schema."""

    def __init__(self, gateway: ExecutionGateway, access: Optional[AccessConfigStore] = None):
        self.gateway = gateway
        self.access = access or AccessConfigStore()
        self._schema_cache: Optional[Dict[str, TableSchema]] = None
        self._lock = threading.Lock()

    def list_tables_in(self, catalog: str, schema: str, use_cache: bool = True) -> List[TableRef]:
        sql = (
            "SELECT table_name FROM information_schema.tables "
            f"WHERE table_catalog = {quote_literal(catalog)} AND table_schema = {quote_literal(schema)} "
            "ORDER BY table_name"
        )
        result = self.gateway.execute(sql, use_cache=use_cache, target=CatalogTarget(catalog, schema))
        return [TableRef(table=row[0], catalog=catalog, schema=schema) for row in result.rows]

    def list_tables(self, use_cache: bool = True) -> List[TableRef]:
        """Tables of every target; a failing target is logged and skipped."""
        tables: List[TableRef] = []
        for target in self.gateway.targets:
            try:
                tables.extend(self.list_tables_in(target.catalog, target.schema, use_cache))
            except GatewayError as e:
                logger.error(f"Error getting tables from {target.key}: {e}")
        return tables

    def describe_table(self, catalog: str, schema: str, table: str, use_cache: bool = True) -> List[ColumnInfo]:
        name = ".".join(quote_identifier(part) for part in (catalog, schema, table))
        result = self.gateway.execute(f"DESCRIBE {name}", use_cache=use_cache)
        columns = []
        for row in result.rows:
            extra = row[5] if len(row) > 5 and row[5] is not None else ""
            columns.append(ColumnInfo(column=row[0], type=str(row[1]), extra=str(extra)))
        return columns

    def full_schema(self, use_cache: bool = True) -> Dict[str, TableSchema]:
        with self._lock:
            if self._schema_cache is not None:
                return self._schema_cache

            schema: Dict[str, TableSchema] = {}
            for ref in self.list_tables(use_cache):
                try:
                    columns = self.describe_table(ref.catalog, ref.schema, ref.table, use_cache)
                except GatewayError as e:
                    logger.error(f"Error getting schema for {ref.full_name}: {e}")
                    columns = []
                schema[ref.full_name] = TableSchema(ref=ref, columns=columns)

            self._schema_cache = schema
            logger.info(f"Loaded schema for {len(schema)} tables")
            return schema

    def refresh(self) -> Dict[str, TableSchema]:
        """Drop the cached schema, re-read access files and rebuild."""
        with self._lock:
            self._schema_cache = None
        self.access.reload()
        return self.full_schema(use_cache=False)

    def format_for_prompt(self) -> str:
        if self._schema_cache is None:
            return "Schema not loaded yet."

        snapshot = self.access.current()
        by_catalog: Dict[str, List[TableSchema]] = {}
        for info in self._schema_cache.values():
            by_catalog.setdefault(info.ref.catalog_schema, []).append(info)

        lines = ["Available Catalogs and Tables:"]
        for catalog_schema, tables in by_catalog.items():
            lines.append(f"\n## Catalog: {catalog_schema}")
            for info in tables:
                enabled = snapshot.is_enabled(catalog_schema, info.ref.table)
                marker = "[ACCESSIBLE]" if enabled else "[NO ACCESS]"
                description = snapshot.description(catalog_schema, info.ref.table)
                header = f"\n### {marker} {info.ref.full_name}"
                lines.append(f"{header} - {description}" if description else header)
                if not enabled:
                    continue
                if not info.columns:
                    lines.append("  (unable to retrieve columns)")
                for col in info.columns:
                    lines.append(f"  - {col.column}: {col.type}" + (f" -- {col.comment}" if col.comment else ""))

        lines.append("\nIMPORTANT: Always use fully qualified table names (catalog.schema.table) in queries.")
        lines.append("Tables from different catalogs can be JOINed together in the same query.")
        lines.append("ONLY query tables marked [ACCESSIBLE].")
        return "\n".join(lines)
