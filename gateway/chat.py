import json
import logging
from typing import Any, Dict, List, Optional

from gateway.errors import GatewayError
from gateway.forecast import ForecastMerger, ForecastOutcome
from gateway.gateway import ExecutionGateway
from gateway.history import ConversationStore, HistoryManager
from gateway.intent import ForecastResponse, Intent, IntentType, intent_to_dict
from gateway.schema import SchemaCatalog
from gateway.types import ForecastPoint, ResultSet

logger = logging.getLogger(__name__)


class ChatService:
    """
    One chat turn: model intent -> gateway -> optional forecast -> explanation.

    The model's SQL is never trusted; it goes through the gateway's
    validator like any other statement.
    """

    def __init__(self, gateway: ExecutionGateway, schema_catalog: SchemaCatalog, llm,
                 conversations: Optional[ConversationStore] = None,
                 history: Optional[HistoryManager] = None,
                 merger: Optional[ForecastMerger] = None,
                 default_forecast_period: int = 30):
        self.gateway = gateway
        self.schema_catalog = schema_catalog
        self.llm = llm
        self.conversations = conversations or ConversationStore()
        self.history = history or HistoryManager()
        self.merger = merger or ForecastMerger()
        self.default_forecast_period = default_forecast_period

    def system_prompt(self, brand: Optional[str] = None) -> str:
        self.schema_catalog.full_schema()
        snapshot = self.schema_catalog.access.current()
        return self.llm.build_system_prompt(
            [target.key for target in self.gateway.targets],
            self.schema_catalog.format_for_prompt(),
            snapshot.knowledge_base_for_prompt(),
            brand,
        )

    def chat(self, message: str, session_id: str = "default", brand: Optional[str] = None) -> Dict[str, Any]:
        history = self.conversations.get(session_id)
        intent = self.llm.generate_intent(message, history, self.system_prompt(brand))
        self.conversations.append(session_id, "user", message)

        if intent.runs_query:
            response = self._run_query(message, intent)
        elif intent.type in (IntentType.ERROR, IntentType.QUERY, IntentType.FORECAST):
            response = {"success": False, "type": "error", "message": intent.message or "No SQL was generated"}
        else:
            response = {"success": True, "type": "text", "message": intent.message}

        if response["type"] == "query_result":
            summary = json.dumps({**intent_to_dict(intent), "row_count": response["row_count"]})
        elif response["type"] == "query_error":
            summary = f"Query failed: {response['error']}"
        else:
            summary = response.get("message", "")
        self.conversations.append(session_id, "assistant", summary)

        self.history.record(
            session_id=session_id,
            message=message,
            intent=intent.type.value,
            sql=intent.sql,
            success=response["success"],
            row_count=response.get("row_count"),
            from_cache=response.get("from_cache"),
        )
        return response

    def _run_query(self, message: str, intent: Intent) -> Dict[str, Any]:
        try:
            result = self.gateway.execute(intent.sql)
        except GatewayError as e:
            logger.warning(f"Chat query failed: {e}")
            return {"success": False, "type": "query_error", "sql": intent.sql, "error": str(e)}

        response: Dict[str, Any] = {
            "success": True,
            "type": "query_result",
            "sql": intent.sql,
            "query_explanation": intent.explanation,
            "from_cache": result.from_cache,
            "is_forecast": intent.type is IntentType.FORECAST,
        }

        display = result
        if intent.type is IntentType.FORECAST:
            periods = intent.forecast_period or self.default_forecast_period
            outcome, model_response = self._forecast(message, result, periods)
            display = outcome.result
            response["forecast"] = {
                "success": outcome.success,
                "source": outcome.source,
                "periods": periods,
                "error": outcome.error,
                "analysis": model_response.analysis if model_response else "",
                "summary": model_response.summary if model_response else "",
            }

        table = display.to_dict()
        response.update(columns=table["columns"], rows=table["rows"], row_count=table["row_count"])
        response["result_explanation"] = self.llm.explain_results(message, intent.sql, display)
        return response

    def _forecast(self, message: str, historical: ResultSet, periods: int):
        responses: List[ForecastResponse] = []

        def predictor(result: ResultSet, horizon: int) -> Optional[List[ForecastPoint]]:
            roles = self.merger.identify_columns(result)
            response = self.llm.generate_forecast(message, result, horizon, roles.date_index, roles.value_index)
            if response is None:
                return None
            responses.append(response)
            return response.predictions

        outcome: ForecastOutcome = self.merger.augment(historical, periods, predictor)
        model_response = responses[0] if responses and outcome.source == "model" else None
        return outcome, model_response

    def clear_history(self, session_id: str) -> bool:
        return self.conversations.clear(session_id)
