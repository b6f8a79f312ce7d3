"""
Logging setup for the raffle bot
Root logger to stdout, optional rotating file, chatty library loggers toned down
"""

import logging
import os
import sys
from logging.handlers import RotatingFileHandler

CONSOLE_FORMAT = logging.Formatter('[%(asctime)s] %(levelname)-8s %(name)s: %(message)s', datefmt='%H:%M:%S')
FILE_FORMAT = logging.Formatter(
    '[%(asctime)s] %(levelname)-8s [%(name)s.%(funcName)s:%(lineno)d] %(message)s',
    datefmt='%Y-%m-%d %H:%M:%S'
)

# discord.py logs every gateway event at INFO
NOISY_LOGGERS = {
    'discord.gateway': logging.WARNING,
    'discord.client': logging.WARNING,
    'sqlalchemy.engine': logging.WARNING,
    'aiohttp.access': logging.WARNING,
}

LOG_FILE_MAX_BYTES = 5 * 1024 * 1024
LOG_FILE_BACKUPS = 3


def _file_handler(log_file, level):
    folder = os.path.dirname(log_file)
    if folder:
        os.makedirs(folder, exist_ok=True)
    handler = RotatingFileHandler(
        log_file,
        maxBytes=LOG_FILE_MAX_BYTES,
        backupCount=LOG_FILE_BACKUPS,
        encoding='utf-8'
    )
    handler.setLevel(level)
    handler.setFormatter(FILE_FORMAT)
    return handler


def setup_logging(app_name=None, log_level=None, log_file=None):
    """
    Configure console (and optionally file) logging for the bot

    Args:
        app_name: Logger to configure (None = root, which also receives
                  discord.py, SQLAlchemy and aiohttp records)
        log_level: Level name such as "DEBUG" (None = LOG_LEVEL env var)
        log_file: Path for a rotating log file (None = console only)

    Returns:
        logging.Logger: The configured logger
    """
    level_name = str(log_level or os.getenv('LOG_LEVEL', 'INFO')).upper()
    level = getattr(logging, level_name, logging.INFO)

    logger = logging.getLogger(app_name)
    logger.setLevel(level)
    logger.handlers.clear()

    console = logging.StreamHandler(sys.stdout)
    console.setLevel(level)
    console.setFormatter(CONSOLE_FORMAT)
    logger.addHandler(console)

    if log_file:
        try:
            logger.addHandler(_file_handler(log_file, level))
            logger.info(f"📝 Writing logs to {log_file}")
        except OSError as e:
            logger.error(f"❌ Could not open log file {log_file}: {e}")

    if app_name:
        logger.propagate = False
    else:
        for name, noisy_level in NOISY_LOGGERS.items():
            # Still show library debug output when the bot itself runs at DEBUG
            logging.getLogger(name).setLevel(level if level == logging.DEBUG else noisy_level)

    return logger


def log_error(logger, error, context=None):
    """Log an exception with traceback, prefixed by what was being attempted"""
    message = f"{context}: {error}" if context else str(error)
    logger.error(f"❌ {message}", exc_info=error)
