"""
Centralized Logging Configuration for the dispute portal adapters

Everything is driven by environment variables so the API server, the CLI and
the test webhook sender log the same way:

    LOG_LEVEL              INFO
    LOG_TO_FILE            true
    LOG_TO_CONSOLE         false
    LOG_FILE_PATH          logs/dispute_portals.log
    LOG_FILE_MAX_SIZE      10485760
    LOG_FILE_BACKUP_COUNT  5
    LOG_FORMAT             %(asctime)s - %(name)s - %(levelname)s - %(message)s
    LOG_LIBRARY_LEVEL      WARNING
"""
import os
import logging
import logging.handlers
from pathlib import Path
from typing import List, Optional

from utils.redaction import redact_sensitive

ROOT_LOGGER_NAME = 'disputeportals'
DEFAULT_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'

# Third-party loggers that are chatty at INFO
NOISY_LOGGERS = ('urllib3', 'botocore', 'boto3', 's3transfer')


class SecretMaskingFilter(logging.Filter):
    """Masks credential-looking keys in dict arguments passed to %-style log calls"""

    def filter(self, record: logging.LogRecord) -> bool:
        if isinstance(record.args, dict):
            record.args = redact_sensitive(record.args)
        elif isinstance(record.args, tuple):
            record.args = tuple(
                redact_sensitive(arg) if isinstance(arg, (dict, list)) else arg
                for arg in record.args
            )
        return True


def _env_flag(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in ('1', 'true', 'yes')


def _configure_handler(handler: logging.Handler, formatter: logging.Formatter,
                       level: str) -> logging.Handler:
    handler.setFormatter(formatter)
    handler.setLevel(level)
    handler.addFilter(SecretMaskingFilter())
    return handler


def _file_handler(log_path: Path) -> logging.Handler:
    log_path.parent.mkdir(parents=True, exist_ok=True)
    return logging.handlers.RotatingFileHandler(
        log_path,
        maxBytes=int(os.getenv('LOG_FILE_MAX_SIZE', '10485760')),
        backupCount=int(os.getenv('LOG_FILE_BACKUP_COUNT', '5'))
    )


def setup_logging() -> logging.Logger:
    """
    Setup centralized logging configuration from environment variables.
    Falls back to a console handler when both outputs are switched off.
    """
    log_level = os.getenv('LOG_LEVEL', 'INFO').upper()
    log_to_file = _env_flag('LOG_TO_FILE', 'true')
    log_to_console = _env_flag('LOG_TO_CONSOLE', 'false')
    library_level = os.getenv('LOG_LIBRARY_LEVEL', 'WARNING').upper()
    formatter = logging.Formatter(os.getenv('LOG_FORMAT', DEFAULT_FORMAT))

    log_path: Optional[Path] = None
    handlers: List[logging.Handler] = []

    if log_to_file:
        log_path = Path(os.getenv('LOG_FILE_PATH', 'logs/dispute_portals.log'))
        handlers.append(_configure_handler(_file_handler(log_path), formatter, log_level))

    if log_to_console or not handlers:
        handlers.append(_configure_handler(logging.StreamHandler(), formatter, log_level))

    logging.basicConfig(level=log_level, handlers=handlers, force=True)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(library_level)

    logger = logging.getLogger(ROOT_LOGGER_NAME)
    logger.info(f"Centralized logging configured (level={log_level}, "
                f"console={'on' if log_to_console else 'off'})")
    if log_path is not None:
        logger.info(f"File logging enabled: {log_path}")

    return logger


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger under the package namespace, e.g. ``disputeportals.adapters.verifi``
    """
    return logging.getLogger(f'{ROOT_LOGGER_NAME}.{name}')


def console_print(message: str, level: str = 'INFO'):
    """
    Print essential messages to console
    """
    level = level.upper()
    if level not in ('ERROR', 'WARNING', 'SUCCESS'):
        level = 'INFO'
    print(f"{level}: {message}")


_root_logger = None


def init_logging():
    """Initialize logging configuration once"""
    global _root_logger
    if _root_logger is None:
        _root_logger = setup_logging()
    return _root_logger
