import os
import json
import logging
from datetime import date
from typing import Optional, Dict, List, Sequence

from llama_cpp import Llama

from config import ModelConfig
from gateway.intent import ForecastResponse, Intent, IntentType, parse_forecast, parse_intent
from gateway.types import ResultSet, as_number, json_safe

logger = logging.getLogger(__name__)

HISTORY_WINDOW = 10
FORECAST_CONTEXT_ROWS = 50


class LLMManager:
    """
    Language-model side of the chat: SQL/forecast intent generation,
    result explanation and model-based forecasting, on a local llama.cpp model.

    Features:
    - Model loading with explicit readiness reporting
    - JSON intent replies parsed into typed Intents
    - Forecast predictions usable as an external predictor for ForecastMerger
    """

    def __init__(self, model_config: ModelConfig):
        self._model_config = model_config
        self.llm: Optional[Llama] = None
        self.model_loaded = False
        self._load_model()

    def _load_model(self) -> None:
        """Load the chat model; a missing file leaves the manager not ready."""
        path = self._model_config.model_path
        if not os.path.exists(path):
            logger.error(f"Model file not found: {path}")
            return
        try:
            self.llm = Llama(
                model_path=path,
                n_ctx=self._model_config.n_ctx,
                n_threads=self._model_config.n_threads,
                n_gpu_layers=self._model_config.n_gpu_layers,
                verbose=self._model_config.verbose,
            )
            self.model_loaded = True
            logger.info(f"Loaded model {path}")
        except (OSError, ValueError) as e:
            logger.error(f"Failed to load model: {e}")

    def is_ready(self) -> bool:
        return self.model_loaded and self.llm is not None

    def _complete(self, messages: List[Dict[str, str]], temperature: float, max_tokens: int) -> str:
        output = self.llm.create_chat_completion(
            messages=messages,
            temperature=temperature,
            max_tokens=max_tokens,
        )
        return output["choices"][0]["message"]["content"] or ""

    # ---------------- Intent generation -----------------
    def build_system_prompt(self, catalogs: Sequence[str], schema_context: str,
                            knowledge_base: str = "", brand: Optional[str] = None) -> str:
        today = date.today().isoformat()
        brand_context = ""
        if brand:
            brand_context = (
                f"\n\nBRAND FILTERING ENFORCED: the user selected the brand \"{brand}\".\n"
                f"- Every query MUST be limited to \"{brand}\" with a WHERE clause or a JOIN to the brand table.\n"
                f"- \"All categories/products\" means all of them for \"{brand}\" only."
            )

        return (
            "You are a SQL expert assistant that helps users query a DuckDB database.\n"
            f"You have READ-ONLY access to these catalogs: {', '.join(catalogs)}\n"
            f"CURRENT DATE: {today}{brand_context}\n\n"
            "RULES:\n"
            "1. NEVER generate INSERT, UPDATE, DELETE, DROP, CREATE, ALTER, TRUNCATE or any write operation.\n"
            "2. ALWAYS use fully qualified table names: catalog.schema.table_name.\n"
            "3. ONLY use tables marked [ACCESSIBLE]. Never invent table names.\n"
            "4. Use LIMIT 100 by default unless the user asks for all data.\n"
            "5. Use LOWER() for case-insensitive string comparisons.\n"
            "6. When the user asks for data over time, aggregate by date: one row per date.\n"
            f"7. Dates before {today} are historical: query them. For dates after {today} use type \"forecast\".\n"
            "8. Only answer questions about the data. Politely decline anything else.\n\n"
            f"DATABASE SCHEMA:\n{schema_context}\n\n{knowledge_base}\n\n"
            "RESPOND WITH ONLY ONE JSON OBJECT:\n"
            "- Query: {\"type\": \"query\", \"sql\": \"...\", \"explanation\": \"...\"}\n"
            "- Forecast: {\"type\": \"forecast\", \"sql\": \"SQL FETCHING HISTORICAL DATA\", \"explanation\": \"...\", "
            "\"forecast_period\": \"30\"}\n"
            "- Text: {\"type\": \"text\", \"message\": \"...\"}\n"
            "- Error: {\"type\": \"error\", \"message\": \"...\"}\n"
            "No markdown and no extra text."
        )

    def generate_intent(self, message: str, history: Sequence[Dict[str, str]], system_prompt: str) -> Intent:
        """
        Ask the model what to do with a chat message.

        Args:
            message: The user's question
            history: Prior conversation messages ({"role", "content"})
            system_prompt: Output of build_system_prompt

        Returns:
            Parsed Intent; model failures come back as an error intent
        """
        if not self.is_ready():
            return Intent(IntentType.ERROR, message="Language model is not loaded")

        messages = [{"role": "system", "content": system_prompt}]
        messages.extend(history[-HISTORY_WINDOW:])
        messages.append({"role": "user", "content": message})
        try:
            content = self._complete(messages, self._model_config.temperature, self._model_config.max_tokens)
        except (RuntimeError, ValueError, KeyError) as e:
            logger.error(f"LLM generation error: {e}")
            return Intent(IntentType.ERROR, message=f"Failed to generate response: {e}")
        return parse_intent(content)

    # ---------------- Explanation -----------------
    def explain_results(self, question: str, sql: str, result: ResultSet) -> str:
        fallback = f"Query returned {result.row_count} rows."
        if not self.is_ready():
            return fallback

        sample = [[json_safe(v) for v in row] for row in result.rows[:5]]
        prompt = (
            f"The user asked: \"{question}\"\n\n"
            f"The following SQL query was executed:\n{sql}\n\n"
            f"The query returned {result.row_count} rows with columns: {', '.join(result.columns)}\n\n"
            + (f"Sample data (first 5 rows):\n{json.dumps(sample, indent=2)}\n\n" if sample else "No data was returned.\n\n")
            + "Please provide a brief, helpful summary of these results in 1-3 sentences."
        )
        messages = [
            {"role": "system", "content": "You are a helpful data analyst. Provide clear, concise summaries of query results."},
            {"role": "user", "content": prompt},
        ]
        try:
            return self._complete(messages, self._model_config.explain_temperature,
                                  self._model_config.explain_max_tokens).strip() or fallback
        except (RuntimeError, ValueError, KeyError) as e:
            logger.warning(f"Summarization failed: {e}")
            return fallback

    # ---------------- Forecasting -----------------
    def generate_forecast(self, question: str, historical: ResultSet, periods: int,
                          date_index: int, value_index: int) -> Optional[ForecastResponse]:
        """Model-based forecast of the next periods; None when unavailable."""
        if not self.is_ready():
            return None

        points = []
        for row in historical.rows[-FORECAST_CONTEXT_ROWS:]:
            value = as_number(row[value_index])
            if row[date_index] is not None and value is not None:
                points.append({"date": json_safe(row[date_index]), "value": value})

        prompt = (
            f"The user asked: \"{question}\"\n\n"
            f"Here is the historical data (last {len(points)} data points):\n{json.dumps(points, indent=2)}\n\n"
            "Based on this data:\n"
            "1. Analyze the trend (increasing, decreasing, seasonal patterns, etc.)\n"
            f"2. Predict the next {periods} data points\n"
            "3. Summarize your prediction\n\n"
            "RESPOND WITH ONLY VALID JSON in this exact format:\n"
            "{\"analysis\": \"...\", \"predictions\": [{\"date\": \"YYYY-MM-DD\", \"value\": 0.0}], \"summary\": \"...\"}"
        )
        messages = [
            {"role": "system", "content": "You are an expert data analyst and forecaster. Respond ONLY with valid JSON."},
            {"role": "user", "content": prompt},
        ]
        try:
            content = self._complete(messages, self._model_config.forecast_temperature,
                                     self._model_config.forecast_max_tokens)
        except (RuntimeError, ValueError, KeyError) as e:
            logger.error(f"Error generating forecast: {e}")
            return None
        return parse_forecast(content)
