"""Logging configuration for the sync service."""
import logging
import logging.handlers
import os
from datetime import datetime
from pythonjsonlogger import jsonlogger

# Log channels used by the sync layers
CHANNELS = ('rest', 'cron', 'cart')


class CustomJsonFormatter(jsonlogger.JsonFormatter):
    """Custom JSON formatter for structured logging."""

    def add_fields(self, log_record, record, message_dict):
        super(CustomJsonFormatter, self).add_fields(log_record, record, message_dict)
        log_record['timestamp'] = datetime.utcnow().isoformat()
        log_record['level'] = record.levelname
        log_record['logger'] = record.name
        log_record['module'] = record.module
        log_record['function'] = record.funcName
        log_record['line'] = record.lineno


def _rotating_handler(path, level, formatter):
    handler = logging.handlers.RotatingFileHandler(
        path,
        maxBytes=10485760,  # 10MB
        backupCount=10
    )
    handler.setLevel(level)
    handler.setFormatter(formatter)
    return handler


def setup_app_logging(app, log_path):
    """Setup application-wide logging."""
    os.makedirs(log_path, exist_ok=True)

    # Remove default handlers
    app.logger.handlers = []

    text_formatter = logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    console_handler = logging.StreamHandler()
    console_handler.setLevel(logging.INFO)
    console_handler.setFormatter(text_formatter)

    app.logger.addHandler(console_handler)
    app.logger.addHandler(_rotating_handler(os.path.join(log_path, 'app.log'), logging.INFO, text_formatter))
    app.logger.addHandler(_rotating_handler(os.path.join(log_path, 'app.json.log'), logging.INFO, CustomJsonFormatter()))
    app.logger.addHandler(_rotating_handler(os.path.join(log_path, 'errors.log'), logging.ERROR, text_formatter))

    app.logger.setLevel(logging.INFO)

    # Engine modules log under the package logger
    package_logger = logging.getLogger('eskimo_sync')
    package_logger.setLevel(logging.INFO)
    for handler in app.logger.handlers:
        if handler not in package_logger.handlers:
            package_logger.addHandler(handler)

    app.logger.info('Application logging configured')


def get_channel_logger(channel, log_path):
    """Get a logger writing JSON lines to ``<channel>.log``."""
    if channel not in CHANNELS:
        raise ValueError(f"Unknown log channel: {channel}")

    logger = logging.getLogger(f'eskimo.{channel}')
    logger.setLevel(logging.DEBUG)

    log_file = os.path.join(log_path, f'{channel}.log')
    if not any(getattr(h, 'baseFilename', None) == os.path.abspath(log_file) for h in logger.handlers):
        os.makedirs(log_path, exist_ok=True)
        logger.addHandler(_rotating_handler(log_file, logging.DEBUG, CustomJsonFormatter()))

    return logger
