from .types import ResultSet, ForecastPoint, CatalogTarget, PerformanceMetrics
from .errors import GatewayError, RejectedStatement, EngineError, ForecastError, UnidentifiableColumns, InsufficientData
from .validator import StatementValidator
from .cache import QueryCache
from .pool import ConnectionPool
from .gateway import ExecutionGateway
from .forecast import ForecastMerger

__all__ = [
	"ResultSet",
	"ForecastPoint",
	"CatalogTarget",
	"PerformanceMetrics",
	"GatewayError",
	"RejectedStatement",
	"EngineError",
	"ForecastError",
	"UnidentifiableColumns",
	"InsufficientData",
	"StatementValidator",
	"QueryCache",
	"ConnectionPool",
	"ExecutionGateway",
	"ForecastMerger",
]
