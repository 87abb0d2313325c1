class GatewayError(Exception):
	"""Base class for request-scoped gateway failures."""


class RejectedStatement(GatewayError, ValueError):
	"""The statement failed read-only validation."""

	def __init__(self, reason: str):
		super().__init__(reason)
		self.reason = reason


class EngineError(GatewayError, RuntimeError):
	"""The query engine failed: connection, engine-side error or timeout."""


class ForecastError(GatewayError, ValueError):
	"""A forecast precondition was not met."""


class UnidentifiableColumns(ForecastError):
	"""No usable date/value column pair in the historical result."""


class InsufficientData(ForecastError):
	"""Too few usable points to fit a trend."""
