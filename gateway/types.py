import math
from dataclasses import dataclass, replace
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

import pandas as pd


FORECAST_COLUMN = "Forecast"


class CellKind(Enum):
	"""Minimal tag for an opaque result cell."""
	NULL = "null"
	NUMBER = "number"
	STRING = "string"


def cell_kind(value: Any) -> CellKind:
	if value is None:
		return CellKind.NULL
	if isinstance(value, float) and math.isnan(value):
		return CellKind.NULL
	if isinstance(value, bool):
		return CellKind.STRING
	if isinstance(value, (int, float, Decimal)):
		return CellKind.NUMBER
	return CellKind.STRING


def as_number(value: Any) -> Optional[float]:
	"""Return the cell as a float, parsing numeric strings, or None."""
	kind = cell_kind(value)
	if kind is CellKind.NUMBER:
		return float(value)
	if kind is CellKind.NULL or not isinstance(value, str):
		return None
	try:
		number = float(value.strip())
	except ValueError:
		return None
	return None if math.isnan(number) else number


def json_safe(value: Any) -> Any:
	"""Convert engine scalars into JSON serialisable values."""
	if cell_kind(value) is CellKind.NULL:
		return None
	if isinstance(value, float) and math.isinf(value):
		return None
	if isinstance(value, Decimal):
		return float(value)
	if isinstance(value, (datetime, date)):
		return value.isoformat()
	if isinstance(value, (bytes, bytearray)):
		return value.hex()
	if isinstance(value, (str, int, float, bool)):
		return value
	return str(value)


@dataclass
class ResultSet:
	columns: List[str]
	rows: List[Tuple[Any, ...]]
	from_cache: bool = False
	execution_time: float = 0.0

	@property
	def row_count(self) -> int:
		return len(self.rows)

	def copy(self, **changes: Any) -> "ResultSet":
		return replace(self, columns=list(self.columns), rows=list(self.rows), **changes)

	def to_dict(self) -> Dict[str, Any]:
		return {
			"columns": list(self.columns),
			"rows": [[json_safe(v) for v in row] for row in self.rows],
			"row_count": self.row_count,
			"from_cache": self.from_cache,
		}


@dataclass(frozen=True)
class ForecastPoint:
	date: date
	value: float

	@classmethod
	def from_dict(cls, data: Dict[str, Any]) -> "ForecastPoint":
		raw_date = data.get("date")
		value = as_number(data.get("value"))
		if raw_date is None or value is None:
			raise ValueError(f"Invalid forecast point: {data!r}")
		when = pd.Timestamp(raw_date)
		if pd.isna(when):
			raise ValueError(f"Invalid forecast date: {raw_date!r}")
		return cls(date=when.date(), value=value)


@dataclass(frozen=True)
class CatalogTarget:
	catalog: str
	schema: str

	@classmethod
	def parse(cls, text: str) -> "CatalogTarget":
		catalog, _, schema = text.strip().partition(".")
		if not catalog or not schema:
			raise ValueError(f"Catalog target must look like catalog.schema: {text!r}")
		return cls(catalog, schema)

	@property
	def key(self) -> str:
		return f"{self.catalog}.{self.schema}"


@dataclass
class PerformanceMetrics:
	query_count: int = 0
	total_execution_time: float = 0.0
	errors: int = 0
	rejected: int = 0
	cache_hits: int = 0
	memory_peak_mb: float = 0.0
	slowest_query_time: float = 0.0
