from datetime import date

import pytest

from gateway.errors import InsufficientData, UnidentifiableColumns
from gateway.forecast import ForecastMerger
from gateway.types import FORECAST_COLUMN, ForecastPoint, ResultSet


@pytest.fixture
def merger():
    return ForecastMerger()


def history(rows, columns=("date", "sales")):
    return ResultSet(columns=list(columns), rows=list(rows))


class TestIdentifyColumns:
    def test_first_date_like_and_first_numeric(self, merger):
        result = history([("x", "2025-01-01", "n/a", 5), ("y", "2025-01-02", "n/a", 6)],
                         columns=("brand", "Order_Month", "note", "units"))
        roles = merger.identify_columns(result)
        assert (roles.date_index, roles.value_index) == (1, 3)

    def test_numeric_strings_count_as_values(self, merger):
        roles = merger.identify_columns(history([("2025-01-01", "12.5"), ("2025-01-02", "13")]))
        assert roles.value_index == 1

    def test_needs_two_rows(self, merger):
        with pytest.raises(UnidentifiableColumns):
            merger.identify_columns(history([("2025-01-01", 1)]))

    def test_needs_date_column(self, merger):
        with pytest.raises(UnidentifiableColumns):
            merger.identify_columns(history([("a", 1), ("b", 2)], columns=("brand", "sales")))

    def test_needs_value_column(self, merger):
        with pytest.raises(UnidentifiableColumns):
            merger.identify_columns(history([("2025-01-01", "a"), ("2025-01-02", "b")]))


class TestMerge:
    def test_overlapping_prediction_keeps_history(self, merger):
        historical = history([("2025-01-01", 100), ("2025-01-02", 110)])
        predictions = [ForecastPoint(date(2025, 1, 2), 999.0), ForecastPoint(date(2025, 1, 3), 120.0)]

        merged = merger.merge(historical, predictions)

        assert merged.columns == ["date", "sales", FORECAST_COLUMN]
        assert merged.rows == [
            ("2025-01-01", 100, None),
            ("2025-01-02", 110, 110.0),
            ("2025-01-03", None, 120.0),
        ]

    def test_incomplete_rows_dropped(self, merger):
        historical = history([("2025-01-01", 100), (None, 5), ("2025-01-02", None), ("2025-01-03", 130)])
        merged = merger.merge(historical, [])
        assert [row[0] for row in merged.rows] == ["2025-01-01", "2025-01-03"]
        assert merged.rows[-1][-1] == 130.0

    def test_date_objects_stay_dates(self, merger):
        historical = history([(date(2025, 1, 1), 1), (date(2025, 1, 2), 2)])
        merged = merger.merge(historical, [ForecastPoint(date(2025, 1, 3), 3.0)])
        assert merged.rows[-1] == (date(2025, 1, 3), None, 3.0)

    def test_duplicate_predictions_collapse(self, merger):
        historical = history([("2025-01-01", 1), ("2025-01-02", 2)])
        merged = merger.merge(historical, [ForecastPoint(date(2025, 1, 3), 3.0), ForecastPoint(date(2025, 1, 3), 4.0)])
        assert merged.row_count == 3
        assert merged.rows[-1][-1] == 3.0

    def test_non_numeric_values_dropped(self, merger):
        historical = history([("2025-01-01", 100), ("2025-01-02", 110), ("2025-01-03", "n/a"), ("2025-01-04", "")])
        merged = merger.merge(historical, [ForecastPoint(date(2025, 1, 5), 120.0)])
        assert merged.rows == [
            ("2025-01-01", 100, None),
            ("2025-01-02", 110, 110.0),
            ("2025-01-05", None, 120.0),
        ]


class TestLinear:
    def test_equal_spacing(self, merger):
        historical = history([("2025-01-01", 10), ("2025-01-02", 20), ("2025-01-03", 30)])

        points = merger._usable_points(historical)
        trend = merger.fit_trend(points)
        predictions = merger.forecast_linear(historical, 2)

        assert trend.slope == pytest.approx(10.0)
        assert trend.intercept == pytest.approx(10.0)
        assert [p.date for p in predictions] == [date(2025, 1, 4), date(2025, 1, 5)]
        assert [p.value for p in predictions] == pytest.approx([40.0, 50.0])

    def test_weekly_spacing_continues_interval(self, merger):
        historical = history([("2025-01-01", 1), ("2025-01-08", 2), ("2025-01-15", 3)])
        predictions = merger.forecast_linear(historical, 1)
        assert predictions[0].date == date(2025, 1, 22)
        assert predictions[0].value == pytest.approx(4.0)

    def test_unsorted_input(self, merger):
        historical = history([("2025-01-03", 30), ("2025-01-01", 10), ("2025-01-02", 20)])
        assert merger.forecast_linear(historical, 1)[0].value == pytest.approx(40.0)

    def test_zero_horizon(self, merger):
        historical = history([("2025-01-01", 10), ("2025-01-02", 20)])
        assert merger.forecast_linear(historical, 0) == []

    def test_same_timestamp_is_insufficient(self, merger):
        historical = history([("2025-01-01", 10), ("2025-01-01", 20)])
        with pytest.raises(InsufficientData):
            merger.forecast_linear(historical, 3)

    def test_one_usable_point_is_insufficient(self, merger):
        historical = history([("2025-01-01", 10), ("not a date", 20)])
        with pytest.raises(InsufficientData):
            merger.forecast_linear(historical, 3)


class TestAugment:
    def test_linear_fallback(self, merger):
        historical = history([("2025-01-01", 10), ("2025-01-02", 20), ("2025-01-03", 30)])
        outcome = merger.augment(historical, 2, predictor=lambda result, horizon: None)
        assert outcome.success
        assert outcome.source == "linear"
        assert outcome.result.row_count == 5
        assert outcome.result.rows[-1][-1] == pytest.approx(50.0)

    def test_predictor_points_used(self, merger):
        historical = history([("2025-01-01", 10), ("2025-01-02", 20)])
        calls = []

        def predictor(result, horizon):
            calls.append(horizon)
            return [ForecastPoint(date(2025, 1, 3), 7.0)]

        outcome = merger.augment(historical, 4, predictor)
        assert calls == [4]
        assert outcome.source == "model"
        assert outcome.result.rows[-1] == ("2025-01-03", None, 7.0)

    def test_failure_returns_history(self, merger):
        historical = history([("a", 1), ("b", 2)], columns=("brand", "sales"))
        outcome = merger.augment(historical, 3)
        assert not outcome.success
        assert outcome.result is historical
        assert "date column" in outcome.error

    def test_predictor_points_capped_at_horizon(self, merger):
        historical = history([("2025-01-01", 10), ("2025-01-02", 20)])

        def predictor(result, horizon):
            return [ForecastPoint(date(2025, 1, 3 + i), float(i)) for i in range(5)]

        outcome = merger.augment(historical, 2, predictor)
        assert len(outcome.predictions) == 2
        assert outcome.result.row_count <= historical.row_count + 2
        assert [row[0] for row in outcome.result.rows[2:]] == ["2025-01-03", "2025-01-04"]
