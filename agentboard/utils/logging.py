"""Loguru configuration for agentboard.

Library modules log through `from loguru import logger` directly; this
module only decides where those records go. Call `setup_logging()` once
at process start (the FastAPI app does it in its lifespan hook).
"""

import sys

from loguru import logger

LOG_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | "
    "<level>{level: <8}</level> | "
    "dispatch_id={extra[dispatch_id]} | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> | "
    "<level>{message}</level>"
)


def setup_logging(level: str = "INFO", log_file: str | None = None) -> None:
    """Configure loguru sinks.

    Args:
        level: minimum level for the console sink
        log_file: optional path for a rotating file sink
    """
    logger.configure(extra={"dispatch_id": "-"})
    logger.remove()

    logger.add(sys.stderr, format=LOG_FORMAT, level=level.upper(), colorize=True)

    if log_file:
        try:
            logger.add(
                log_file,
                rotation="50 MB",
                retention="14 days",
                format=(
                    "{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | dispatch_id={extra[dispatch_id]} | "
                    "{name}:{function}:{line} | {message}"
                ),
                level=level.upper(),
            )
        except (PermissionError, OSError):
            # console output only
            logger.warning(f"cannot open log file {log_file}, logging to console only")

    logger.debug("logging configured")
