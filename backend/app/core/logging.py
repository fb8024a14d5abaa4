import sys
from pathlib import Path

from loguru import logger

from app.core.config import LoggingSettings, settings


def setup_logging(config: LoggingSettings = None):
    config = config or settings.logging
    logger.remove()

    # Console Handler
    logger.add(
        sys.stderr,
        format=config.format,
        level=config.level,
        colorize=True,
    )

    if config.file_enabled:
        log_path = Path(config.file_path)
        log_path.parent.mkdir(parents=True, exist_ok=True)

        # File Handler (JSON for structured logging)
        logger.add(
            str(log_path.with_suffix(".json")),
            rotation=config.file_rotation,
            retention=config.file_retention,
            compression="zip",
            serialize=True,
            level=config.level,
        )

        # Error File Handler
        logger.add(
            str(log_path.with_name("error.log")),
            rotation=config.file_rotation,
            retention=config.file_retention,
            level="ERROR",
            backtrace=True,
            diagnose=False,
        )

    logger.info("Logging initialized")
