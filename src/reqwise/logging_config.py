import logging
import sys
from typing import Optional

DEFAULT_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

# Hop tracing and redirect warnings come from the http subpackage
TRANSPORT_LOGGER = "reqwise.http"


def setup_logging(
    level: str = "INFO",
    log_file: Optional[str] = None,
    format_string: Optional[str] = None,
    force: bool = False,
    transport_level: Optional[str] = None,
) -> logging.Logger:
    """
    Set up logging for reqwise.

    Hop-by-hop request tracing is emitted at DEBUG, redirect-limit
    exhaustion at WARNING. Both come from the "reqwise.http" logger, which
    can be given its own level to trace hops without debug output from the
    rest of the package.

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_file: Optional file path for logging output
        format_string: Optional custom format string for log messages
        force: If True, reconfigure even if handlers exist
        transport_level: Level for the "reqwise.http" logger; inherits
            ``level`` when None

    Returns:
        The configured "reqwise" logger
    """
    if format_string is None:
        format_string = DEFAULT_FORMAT

    numeric_level = getattr(logging, level.upper(), logging.INFO)
    logger = logging.getLogger("reqwise")
    logger.setLevel(numeric_level)

    transport_logger = logging.getLogger(TRANSPORT_LOGGER)
    handler_level = numeric_level
    if transport_level is not None:
        transport_numeric = getattr(logging, transport_level.upper(), numeric_level)
        transport_logger.setLevel(transport_numeric)
        handler_level = min(numeric_level, transport_numeric)
    else:
        transport_logger.setLevel(logging.NOTSET)

    if force or not logger.handlers:
        logger.handlers.clear()

        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setFormatter(logging.Formatter(format_string))
        logger.addHandler(console_handler)

        if log_file:
            file_handler = logging.FileHandler(log_file)
            file_handler.setFormatter(logging.Formatter(format_string))
            logger.addHandler(file_handler)

    for handler in logger.handlers:
        handler.setLevel(handler_level)

    # Library output must not leak into the application's root handlers twice
    logger.propagate = False

    return logger
