"""Flask application factory for the Eskimo sync service."""
import os
import time
import logging

import redis
from flask import Flask, jsonify
from flask_cors import CORS
from flask_jwt_extended import JWTManager

from eskimo_sync import __version__
from eskimo_sync import database
from eskimo_sync.config import config, EskimoSettings
from eskimo_sync.eskimo_api import eskimo_bp
from eskimo_sync.logging_config import get_channel_logger, setup_app_logging

logger = logging.getLogger(__name__)


def _connect_redis(app):
    """Redis backs the token cache and sync lock; optional in development."""
    try:
        client = redis.from_url(app.config['REDIS_URL'])
        client.ping()
        return client
    except redis.exceptions.RedisError as e:
        app.logger.warning(f"Redis not available, using in-process token cache and no sync lock: {e}")
        return None


def create_app(config_name=None):
    """Create and configure the Flask application."""
    config_name = config_name or os.getenv('FLASK_ENV', 'development')

    app = Flask(__name__)
    app.config.from_object(config[config_name])
    app.config['ESKIMO_SETTINGS'] = EskimoSettings.from_config(config[config_name])

    if not app.config.get('TESTING'):
        setup_app_logging(app, app.config['LOG_PATH'])
        app.extensions['eskimo_rest_log'] = get_channel_logger('rest', app.config['LOG_PATH'])

    CORS(app,
         origins=app.config['CORS_ORIGINS'],
         supports_credentials=True,
         allow_headers=["Content-Type", "Authorization"],
         methods=["GET", "OPTIONS"])

    JWTManager(app)

    app.extensions['eskimo_redis'] = _connect_redis(app)

    create_tables = config_name != 'production'
    database.init_database(app.config['DATABASE_URL'], create_tables=create_tables)

    app.register_blueprint(eskimo_bp)

    @app.route("/health", methods=["GET"])
    def health_check():
        """Health check endpoint for load balancers."""
        health_status = {
            "status": "healthy",
            "timestamp": time.time(),
            "version": __version__,
            "services": {}
        }

        db_health = database.db_manager.health_check()
        health_status["services"]["database"] = db_health["status"]

        redis_client = app.extensions.get('eskimo_redis')
        if redis_client is None:
            health_status["services"]["redis"] = "unavailable"
        else:
            try:
                redis_client.ping()
                health_status["services"]["redis"] = "healthy"
            except redis.exceptions.RedisError as e:
                health_status["services"]["redis"] = f"unhealthy: {str(e)}"

        if db_health["status"] != "healthy":
            health_status["status"] = "unhealthy"
            return jsonify(health_status), 503
        return jsonify(health_status), 200

    app.logger.info(f"Eskimo sync service started ({config_name})")
    return app


if __name__ == '__main__':
    create_app().run(host='0.0.0.0', port=int(os.getenv('PORT', '5000')))
