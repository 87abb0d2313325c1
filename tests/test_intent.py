import json
from datetime import date

from gateway.intent import Intent, IntentType, extract_json_block, intent_to_dict, parse_forecast, parse_intent


class TestExtractJson:
    def test_fenced_json(self):
        text = 'Here you go:\n```json\n{"type": "text", "message": "hi"}\n```'
        assert json.loads(extract_json_block(text)) == {"type": "text", "message": "hi"}

    def test_bare_object_in_prose(self):
        assert extract_json_block('Sure! {"a": 1} done') == '{"a": 1}'


class TestParseIntent:
    def test_query(self):
        intent = parse_intent('{"type": "query", "sql": "SELECT 1;", "explanation": "one"}')
        assert intent.type is IntentType.QUERY
        assert intent.sql == "SELECT 1"
        assert intent.explanation == "one"
        assert intent.runs_query

    def test_forecast_period_string(self):
        intent = parse_intent('{"type": "forecast", "sql": "SELECT d, v FROM t", "forecast_period": "14"}')
        assert intent.type is IntentType.FORECAST
        assert intent.forecast_period == 14

    def test_forecast_period_invalid(self):
        intent = parse_intent('{"type": "forecast", "sql": "SELECT d, v FROM t", "forecast_period": "soon"}')
        assert intent.forecast_period is None

    def test_query_without_sql_is_error(self):
        intent = parse_intent('{"type": "query", "sql": "  "}')
        assert intent.type is IntentType.ERROR
        assert not intent.runs_query

    def test_unknown_type_is_error(self):
        assert parse_intent('{"type": "chart"}').type is IntentType.ERROR

    def test_plain_text_reply(self):
        intent = parse_intent("I can only help with sales data.")
        assert intent.type is IntentType.TEXT
        assert intent.message == "I can only help with sales data."

    def test_to_dict(self):
        intent = Intent(IntentType.FORECAST, sql="SELECT 1", forecast_period=7)
        assert intent_to_dict(intent) == {"type": "forecast", "sql": "SELECT 1", "forecast_period": 7}


class TestParseForecast:
    def test_bad_points_skipped(self):
        reply = json.dumps({
            "analysis": "rising",
            "predictions": [
                {"date": "2025-02-01", "value": 10},
                {"date": "not a date", "value": 11},
                {"date": "2025-02-03"},
                {"date": "2025-02-04", "value": "12.5"},
            ],
            "summary": "up",
        })
        response = parse_forecast(reply)
        assert [(p.date, p.value) for p in response.predictions] == [
            (date(2025, 2, 1), 10.0),
            (date(2025, 2, 4), 12.5),
        ]
        assert response.analysis == "rising"
        assert response.summary == "up"

    def test_unparseable(self):
        assert parse_forecast("no json here") is None
