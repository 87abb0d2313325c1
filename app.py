from flask import Flask, request, jsonify
from flask_cors import CORS
import os
import sys
import time
import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

from config import config
from gateway.access import AccessConfigStore, AccessConfigWatcher
from gateway.chat import ChatService
from gateway.errors import EngineError, GatewayError, RejectedStatement
from gateway.gateway import ExecutionGateway
from gateway.history import ConversationStore, HistoryManager
from gateway.memory import MemoryMonitor
from gateway.schema import SchemaCatalog

app = Flask(__name__)
CORS(app)

# Configure logging
def setup_logging():
    """Setup rotating log file plus console output."""
    log_file = Path(config.logging.file_path)
    log_file.parent.mkdir(parents=True, exist_ok=True)

    logging.basicConfig(
        level=getattr(logging, config.logging.level.upper(), logging.INFO),
        format=config.logging.format,
        handlers=[
            RotatingFileHandler(
                log_file,
                maxBytes=config.logging.max_file_size,
                backupCount=config.logging.backup_count,
                encoding='utf-8',
            ),
            logging.StreamHandler(sys.stdout),
        ]
    )

    return logging.getLogger(__name__)

# Setup logging
logger = setup_logging()

# Global chat service instance
chat_service: Optional[ChatService] = None
access_watcher: Optional[AccessConfigWatcher] = None

def build_chat_service() -> ChatService:
    """Wire gateway, schema catalog and model from the process configuration."""
    global access_watcher
    from gateway.llm_manager import LLMManager

    gateway = ExecutionGateway(config.engine, config.cache,
                               monitor=MemoryMonitor(config.logging.enable_performance_logging))
    access = AccessConfigStore(config.server.table_access_path, config.server.knowledge_base_path)
    access.reload()
    if config.server.access_reload_interval > 0:
        access_watcher = AccessConfigWatcher(access, interval=config.server.access_reload_interval)
        access_watcher.start()

    return ChatService(
        gateway,
        SchemaCatalog(gateway, access),
        LLMManager(config.model),
        conversations=ConversationStore(config.server.max_history_messages),
        history=HistoryManager(os.path.join(config.cache.cache_dir, "history")),
        default_forecast_period=config.server.default_forecast_period,
    )

def get_chat_service() -> ChatService:
    """Get or initialize the chat service."""
    global chat_service
    if chat_service is None:
        chat_service = build_chat_service()
    return chat_service

def error_response(error: Exception):
    if isinstance(error, RejectedStatement):
        status = 403
    elif isinstance(error, (ValueError, LookupError)) and not isinstance(error, GatewayError):
        status = 400
    else:
        status = 500
    return jsonify({'success': False, 'error': str(error)}), status

@app.route('/health', methods=['GET'])
def health_check():
    """Health check endpoint for monitoring."""
    return jsonify({
        'status': 'ok',
        'timestamp': time.strftime('%Y-%m-%dT%H:%M:%S')
    })

@app.route('/api/chat', methods=['POST'])
def chat():
    """Answer one chat message."""
    data = request.get_json(silent=True) or {}
    message = data.get('message')
    session_id = data.get('sessionId') or data.get('session_id') or 'default'
    brand = data.get('brand')

    if not message or not isinstance(message, str):
        return jsonify({'success': False, 'error': 'Message is required'}), 400

    logger.info(f"Chat message received ({session_id}): {message[:100]}")
    try:
        response = get_chat_service().chat(message, session_id=session_id, brand=brand)
    except Exception as e:
        logger.error(f"Chat error: {e}", exc_info=True)
        return jsonify({'success': False, 'type': 'error', 'error': str(e)}), 500
    return jsonify(response)

@app.route('/api/tables', methods=['GET'])
def get_tables():
    """List tables of every configured catalog."""
    try:
        tables = get_chat_service().schema_catalog.list_tables()
    except Exception as e:
        logger.error(f"Get tables error: {e}")
        return error_response(e)
    return jsonify({'success': True, 'tables': [t.to_dict() for t in tables]})

@app.route('/api/brands', methods=['GET'])
def get_brands():
    """Distinct brand names for the brand filter."""
    if not config.server.brand_query:
        return jsonify({'success': True, 'brands': []})
    try:
        result = get_chat_service().gateway.execute(config.server.brand_query)
    except Exception as e:
        logger.error(f"Get brands error: {e}")
        return error_response(e)
    return jsonify({'success': True, 'brands': [row[0] for row in result.rows]})

@app.route('/api/schema/<table_name>', methods=['GET'])
def get_table_schema(table_name):
    """Columns of one catalog.schema.table."""
    parts = table_name.split('.')
    if len(parts) != 3 or not all(parts):
        return jsonify({
            'success': False,
            'error': 'Table name should be in format: catalog.schema.table'
        }), 400

    catalog, schema, table = parts
    try:
        columns = get_chat_service().schema_catalog.describe_table(catalog, schema, table)
    except Exception as e:
        logger.error(f"Get schema error: {e}")
        return error_response(e)
    return jsonify({'success': True, 'table': table_name, 'columns': [c.to_dict() for c in columns]})

@app.route('/api/refresh-schema', methods=['POST'])
def refresh_schema():
    """Drop the cached schema and rebuild it."""
    try:
        schema = get_chat_service().schema_catalog.refresh()
    except Exception as e:
        logger.error(f"Refresh schema error: {e}")
        return error_response(e)
    return jsonify({'success': True, 'message': 'Schema cache refreshed', 'tables': len(schema)})

@app.route('/api/cache/stats', methods=['GET'])
def cache_stats():
    """Result cache statistics."""
    stats = get_chat_service().gateway.cache_stats()
    return jsonify({'success': True, **stats})

@app.route('/api/cache/clear', methods=['POST'])
def clear_cache():
    """Invalidate every cached query result."""
    get_chat_service().gateway.clear_cache()
    return jsonify({'success': True, 'message': 'Query cache cleared'})

@app.route('/api/performance', methods=['GET'])
def performance():
    """Gateway execution metrics."""
    return jsonify({'success': True, **get_chat_service().gateway.performance_report()})

@app.route('/api/clear-history', methods=['POST'])
def clear_history():
    """Clear one session's conversation history."""
    data = request.get_json(silent=True) or {}
    session_id = data.get('sessionId') or data.get('session_id') or 'default'
    get_chat_service().clear_history(session_id)
    return jsonify({'success': True, 'message': 'Conversation history cleared'})

if __name__ == '__main__':
    logger.info("🚀 Starting NLQ gateway")
    if not config.validate():
        sys.exit(1)
    service = get_chat_service()
    try:
        tables = service.schema_catalog.full_schema()
        logger.info(f"✅ Loaded schema for {len(tables)} tables")
    except EngineError as e:
        logger.warning(f"⚠️ Could not load schema at startup: {e}")
    app.run(host=config.server.host, port=config.server.port, threaded=True, use_reloader=False)
