"""
Logging helpers for the ecosystem regression matrix framework.
"""

import logging
import sys
from pathlib import Path
from typing import Optional

from ..config.schema import LoggingConfig

STRUCTURED_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
TEXT_FORMAT = '%(levelname)s: %(message)s'


def configure_logging(config: LoggingConfig, logger_name: str = "ecosystem_matrix") -> logging.Logger:
    """
    Install handlers on the framework's root logger.

    Calling this twice replaces the handlers installed by the first call.

    Args:
        config: Logging configuration
        logger_name: Logger to configure

    Returns:
        The configured logger
    """
    logger = logging.getLogger(logger_name)
    logger.setLevel(getattr(logging, config.level))

    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    fmt = logging.Formatter(STRUCTURED_FORMAT if config.format == "structured" else TEXT_FORMAT)

    if config.stdout:
        stream_handler = logging.StreamHandler(sys.stdout)
        stream_handler.setFormatter(fmt)
        logger.addHandler(stream_handler)

    if config.file_path:
        Path(config.file_path).parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(config.file_path, encoding='utf-8')
        file_handler.setFormatter(fmt)
        logger.addHandler(file_handler)

    return logger


def report_error(error: BaseException, logger: Optional[logging.Logger] = None) -> None:
    """
    Log an error together with its chain of causes.

    Used where a failure must be reported but must not stop the caller.
    """
    logger = logger or logging.getLogger(__name__)
    logger.error(f"error: {error}")
    cause = error.__cause__ or error.__context__
    while cause is not None:
        logger.error(f"caused by: {cause}")
        cause = cause.__cause__ or cause.__context__
