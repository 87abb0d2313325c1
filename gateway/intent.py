import re
import json
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from gateway.types import ForecastPoint

logger = logging.getLogger(__name__)

_FENCED_JSON = re.compile(r"```json\n?([\s\S]*?)\n?```")
_FENCED_ANY = re.compile(r"```([\s\S]*?)```")


class IntentType(Enum):
    QUERY = "query"
    FORECAST = "forecast"
    TEXT = "text"
    ERROR = "error"


@dataclass
class Intent:
    """What the language model decided to do with a chat message."""
    type: IntentType
    sql: Optional[str] = None
    explanation: str = ""
    message: str = ""
    forecast_period: Optional[int] = None

    @property
    def runs_query(self) -> bool:
        return self.type in (IntentType.QUERY, IntentType.FORECAST) and bool(self.sql)


@dataclass
class ForecastResponse:
    predictions: List[ForecastPoint] = field(default_factory=list)
    analysis: str = ""
    summary: str = ""


def extract_json_block(text: str) -> str:
    """Pull the JSON object out of a model reply."""
    match = _FENCED_JSON.search(text) or _FENCED_ANY.search(text)
    if match:
        return match.group(1).strip()
    first, last = text.find("{"), text.rfind("}")
    if first != -1 and last > first:
        return text[first:last + 1]
    return text.strip()


def _parse_period(value: Any) -> Optional[int]:
    if value is None:
        return None
    try:
        period = int(float(value))
    except (TypeError, ValueError):
        return None
    return period if period > 0 else None


def parse_intent(text: str) -> Intent:
    """Turn a model reply into an Intent; unparseable replies become text."""
    try:
        data = json.loads(extract_json_block(text))
    except ValueError:
        logger.warning("Failed to parse JSON from model response, treating as text")
        return Intent(IntentType.TEXT, message=text.strip())
    if not isinstance(data, dict):
        return Intent(IntentType.TEXT, message=text.strip())

    try:
        kind = IntentType(str(data.get("type", "")).lower())
    except ValueError:
        return Intent(IntentType.ERROR, message=f"Unknown response type: {data.get('type')!r}")

    if kind in (IntentType.QUERY, IntentType.FORECAST):
        sql = (data.get("sql") or "").strip().rstrip(";").strip()
        if not sql:
            return Intent(IntentType.ERROR, message="The model did not return a SQL statement")
        return Intent(
            kind,
            sql=sql,
            explanation=data.get("explanation", ""),
            forecast_period=_parse_period(data.get("forecast_period")) if kind is IntentType.FORECAST else None,
        )
    return Intent(kind, message=str(data.get("message", "")))


def parse_forecast(text: str) -> Optional[ForecastResponse]:
    """Parse a forecast reply; points that do not parse are skipped."""
    try:
        data = json.loads(extract_json_block(text))
    except ValueError as e:
        logger.warning(f"Failed to parse forecast response: {e}")
        return None
    if not isinstance(data, dict):
        return None

    predictions = []
    for item in data.get("predictions") or []:
        if not isinstance(item, dict):
            continue
        try:
            predictions.append(ForecastPoint.from_dict(item))
        except ValueError as e:
            logger.debug(f"Skipping forecast point: {e}")
    return ForecastResponse(
        predictions=predictions,
        analysis=str(data.get("analysis", "")),
        summary=str(data.get("summary", "")),
    )


def intent_to_dict(intent: Intent) -> Dict[str, Any]:
    data: Dict[str, Any] = {"type": intent.type.value}
    if intent.sql:
        data["sql"] = intent.sql
    if intent.explanation:
        data["explanation"] = intent.explanation
    if intent.message:
        data["message"] = intent.message
    if intent.forecast_period:
        data["forecast_period"] = intent.forecast_period
    return data
