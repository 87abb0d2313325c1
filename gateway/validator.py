import re
import logging
from dataclasses import dataclass
from typing import Optional

from gateway.errors import RejectedStatement


logger = logging.getLogger(__name__)

WRITE_VERBS = ("insert", "update", "delete", "drop", "create", "alter", "truncate", "grant", "revoke", "merge")
READ_VERBS = ("select", "with", "show", "describe", "explain")

WRITE_FORBIDDEN = "write operation forbidden"
NOT_PERMITTED = "statement type not permitted"

_WRITE_RE = re.compile(r"^\s*(?:%s)\b" % "|".join(WRITE_VERBS), re.IGNORECASE)
_READ_RE = re.compile(r"^\s*(?:%s)\b" % "|".join(READ_VERBS), re.IGNORECASE)


@dataclass
class SQLValidationResult:
	"""Result of SQL validation."""
	is_valid: bool
	error_message: Optional[str] = None


class StatementValidator:
	"""Allow/deny list on the leading keyword of a statement.

	Only the first keyword is inspected. Writes hidden behind a permitted
	leading keyword (engine-specific procedure calls and the like) are not
	detected.
	"""

	def validate(self, sql: str) -> SQLValidationResult:
		if not isinstance(sql, str):
			return SQLValidationResult(False, NOT_PERMITTED)
		if _WRITE_RE.match(sql):
			return SQLValidationResult(False, WRITE_FORBIDDEN)
		if not _READ_RE.match(sql):
			return SQLValidationResult(False, NOT_PERMITTED)
		return SQLValidationResult(True)

	def ensure_read_only(self, sql: str) -> None:
		result = self.validate(sql)
		if not result.is_valid:
			logger.warning(f"Rejected statement ({result.error_message}): {str(sql)[:80]}")
			raise RejectedStatement(result.error_message)
