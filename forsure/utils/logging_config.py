import sys

from loguru import logger

from config.settings import LOG_DIR, LOG_FILE
from forsure.utils.logging_utils import add_env_sinks, resolve_log_level


def configure_logger(log_file: str = LOG_FILE, level: str | None = None):
    """
    Configure loguru logger for the entire project.
    """
    level = resolve_log_level(level)
    LOG_DIR.mkdir(parents=True, exist_ok=True)

    # Remove default handler to avoid duplicate logs
    logger.remove()

    logger.add(
        sys.stderr,
        format="<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | <cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>",
        level=level,
    )

    logger.add(
        LOG_DIR / log_file,
        rotation="10 MB",
        retention="10 days",
        level=level,
        format="{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {name}:{function}:{line} | {extra} - {message}",
        backtrace=True,
        diagnose=False,
    )

    add_env_sinks()


_configured = False


def setup_default_logging():
    global _configured
    if not _configured:
        configure_logger()
        _configured = True
