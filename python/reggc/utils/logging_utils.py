import logging
from typing import Optional


def setup_logging(level: int = logging.INFO, fmt: Optional[str] = None) -> None:
    """Configure root logging once. Subsequent calls only adjust the level.
    If fmt is not provided, a sensible default is used.
    """
    root = logging.getLogger()
    if root.handlers:
        # Already configured; keep handlers, honour an explicit level change
        if level != logging.INFO:
            root.setLevel(level)
        return
    format_str = fmt or '%(asctime)s - %(levelname)s - %(name)s - %(message)s'
    logging.basicConfig(level=level, format=format_str)


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """Return a module/logger by name, after ensuring logging is configured."""
    setup_logging()
    return logging.getLogger(name) if name else logging.getLogger(__name__)


def parse_log_level(value: str) -> int:
    """Translate a level name such as "debug" into a logging constant."""
    level = logging.getLevelName(value.upper())
    if not isinstance(level, int):
        raise ValueError(f"Unknown log level: {value}")
    return level


def log_exception(logger: logging.Logger, message: str = "An error occurred", exc_info: Exception = None) -> None:
    """Log message at error level with the exception type, text and traceback.

    Without exc_info the exception currently being handled is used.
    """
    if exc_info is None:
        logger.exception(message)
        return
    logger.error("%s (%s: %s)", message, type(exc_info).__name__, exc_info,
                 exc_info=(type(exc_info), exc_info, exc_info.__traceback__))
