import logging
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Callable, List, Optional, Sequence, Tuple

import numpy as np
import pandas as pd

from gateway.errors import ForecastError, InsufficientData, UnidentifiableColumns
from gateway.types import FORECAST_COLUMN, CellKind, ForecastPoint, ResultSet, as_number, cell_kind

logger = logging.getLogger(__name__)

DATE_TOKENS = ("date", "time", "day", "month")

# Called with (historical, horizon); returns points or None when unavailable
Predictor = Callable[[ResultSet, int], Optional[Sequence[ForecastPoint]]]


@dataclass(frozen=True)
class ColumnRoles:
    date_index: int
    value_index: int


@dataclass(frozen=True)
class LinearTrend:
    """Least squares line over time measured in days since origin."""
    slope: float
    intercept: float
    interval: float
    origin: pd.Timestamp

    def value_at(self, x: float) -> float:
        return self.slope * x + self.intercept


@dataclass
class ForecastOutcome:
    success: bool
    result: ResultSet
    predictions: List[ForecastPoint]
    source: str = ""
    error: Optional[str] = None


def _to_timestamp(value: Any) -> Optional[pd.Timestamp]:
    if cell_kind(value) is CellKind.NULL or value == "":
        return None
    ts = pd.to_datetime(value, errors="coerce")
    if ts is None or pd.isna(ts):
        return None
    if ts.tzinfo is not None:
        ts = ts.tz_convert("UTC").tz_localize(None)
    return ts


def _date_key(value: Any) -> str:
    """Calendar-date identity used to detect duplicate dates."""
    ts = _to_timestamp(value)
    if ts is None:
        return str(value)
    return ts.date().isoformat()


def _has_value(value: Any) -> bool:
    return cell_kind(value) is not CellKind.NULL and value != ""


class ForecastMerger:
    """Splices predicted points into a historical result grid."""

    def identify_columns(self, historical: ResultSet) -> ColumnRoles:
        if historical.row_count < 2:
            raise UnidentifiableColumns("At least 2 historical rows are needed to forecast")

        date_index = next(
            (i for i, name in enumerate(historical.columns)
             if any(token in name.lower() for token in DATE_TOKENS)),
            None,
        )
        if date_index is None:
            raise UnidentifiableColumns("Cannot identify a date column for forecasting")

        first_row = historical.rows[0]
        value_index = next(
            (i for i in range(len(historical.columns))
             if i != date_index and as_number(first_row[i]) is not None),
            None,
        )
        if value_index is None:
            raise UnidentifiableColumns("Cannot identify a numeric value column for forecasting")

        return ColumnRoles(date_index, value_index)

    def merge(self, historical: ResultSet, predictions: Sequence[ForecastPoint]) -> ResultSet:
        roles = self.identify_columns(historical)
        width = len(historical.columns) + 1

        kept = [row for row in historical.rows
                if _has_value(row[roles.date_index]) and as_number(row[roles.value_index]) is not None]
        rows = [tuple(row) + (None,) for row in kept]

        # Connect the forecast line to the last actual value
        if rows:
            last = rows[-1]
            rows[-1] = last[:-1] + (as_number(last[roles.value_index]),)

        seen = {_date_key(row[roles.date_index]) for row in kept}
        keep_date_objects = bool(kept) and isinstance(kept[0][roles.date_index], (date, datetime))
        for point in predictions:
            key = point.date.isoformat()
            if key in seen:
                continue
            seen.add(key)
            new_row = [None] * width
            new_row[roles.date_index] = point.date if keep_date_objects else key
            new_row[-1] = point.value
            rows.append(tuple(new_row))

        dropped = historical.row_count - len(kept)
        if dropped:
            logger.debug(f"Dropped {dropped} incomplete historical rows before merging")

        return ResultSet(
            columns=list(historical.columns) + [FORECAST_COLUMN],
            rows=rows,
            from_cache=historical.from_cache,
            execution_time=historical.execution_time,
        )

    def _usable_points(self, historical: ResultSet) -> List[Tuple[pd.Timestamp, float]]:
        roles = self.identify_columns(historical)
        points = []
        for row in historical.rows:
            ts = _to_timestamp(row[roles.date_index])
            value = as_number(row[roles.value_index])
            if ts is not None and value is not None:
                points.append((ts, value))
        points.sort(key=lambda p: p[0])
        return points

    def fit_trend(self, points: Sequence[Tuple[pd.Timestamp, float]]) -> LinearTrend:
        if len(points) < 2:
            raise InsufficientData(f"Need at least 2 usable points, got {len(points)}")

        origin = points[0][0]
        day = pd.Timedelta(days=1)
        x = np.array([(ts - origin) / day for ts, _ in points], dtype=float)
        y = np.array([value for _, value in points], dtype=float)

        x_mean = x.mean()
        sxx = float(((x - x_mean) ** 2).sum())
        if sxx == 0:
            raise InsufficientData("All points share the same timestamp")
        slope = float(((x - x_mean) * (y - y.mean())).sum()) / sxx
        intercept = float(y.mean()) - slope * x_mean
        interval = float(x[-1] - x[0]) / (len(x) - 1)
        return LinearTrend(slope=slope, intercept=intercept, interval=interval, origin=origin)

    def forecast_linear(self, historical: ResultSet, horizon: int) -> List[ForecastPoint]:
        points = self._usable_points(historical)
        trend = self.fit_trend(points)
        if horizon <= 0:
            return []

        last_x = (points[-1][0] - trend.origin) / pd.Timedelta(days=1)
        predictions = []
        for step in range(1, horizon + 1):
            x = last_x + step * trend.interval
            when = trend.origin + pd.to_timedelta(x, unit="D")
            predictions.append(ForecastPoint(date=when.date(), value=trend.value_at(x)))
        return predictions

    def augment(self, historical: ResultSet, horizon: int,
                predictor: Optional[Predictor] = None) -> ForecastOutcome:
        """
        Extend a historical result with a Forecast column.

        Uses the predictor's points when it returns any, otherwise the
        linear trend; at most horizon points are merged. Precondition
        failures come back as an unsuccessful outcome carrying the untouched
        historical result.
        """
        try:
            predictions: List[ForecastPoint] = []
            source = "linear"
            if predictor is not None:
                predictions = list(predictor(historical, horizon) or [])[:max(horizon, 0)]
                if predictions:
                    source = "model"
            if not predictions:
                predictions = self.forecast_linear(historical, horizon)
            merged = self.merge(historical, predictions)
        except ForecastError as e:
            logger.warning(f"Forecast unavailable: {e}")
            return ForecastOutcome(success=False, result=historical, predictions=[], error=str(e))

        logger.info(f"Forecast merged: {len(predictions)} {source} points, {merged.row_count} rows")
        return ForecastOutcome(success=True, result=merged, predictions=predictions, source=source)
