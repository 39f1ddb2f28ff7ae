"""
App package initialization
Builds the Flask record service
"""
import os
import time

from flask import Flask, g, request

import config
from database import RecordDatabase
from logging_config import api_logger, get_client_ip, setup_logging


def create_app(db_path=None, configure_logging=True):
    """Factory function for the record service application"""
    app = Flask(__name__)

    app.config['MAX_CONTENT_LENGTH'] = config.MAX_CONTENT_LENGTH
    app.config['SERVER_PORT'] = config.SERVER_PORT
    app.config['DB_PATH'] = str(db_path or config.SERVER_DB_PATH)

    if configure_logging:
        setup_logging(app, log_level=config.LOG_LEVEL, log_dir=config.LOG_DIR)

    app.logger.info(f"[STARTUP] Working directory: {os.getcwd()}")
    app.logger.info(f"[STARTUP] Database path: {app.config['DB_PATH']}")

    app.extensions['record_db'] = RecordDatabase(app.config['DB_PATH'])

    @app.before_request
    def _log_request():
        g.request_started = time.perf_counter()
        payload = request.get_json(silent=True) if request.is_json else None
        table = payload.get('table') if isinstance(payload, dict) else None
        api_logger.log_request(request.method, request.path, table=table, ip_address=get_client_ip(request))

    @app.after_request
    def _log_response(response):
        started = g.pop('request_started', None)
        duration = time.perf_counter() - started if started is not None else None
        api_logger.log_response(request.path, response.status_code, duration)
        return response

    from app.routes import register_blueprints
    register_blueprints(app)

    return app
