"""loguru setup for ani-harvest.

Two sinks, both driven by ``settings.logging``:
- stderr, WARNING by default so JSON on stdout stays clean
- a rotating file under get_data_path(), always at DEBUG, which is where
  breaker transitions and per-attempt failures end up during bulk jobs

Modules call get_logger(__name__) at import time; the first call
configures the sinks.
"""

import sys

from loguru import logger as _base_logger

from models.config import LoggingSettings, get_data_path

LOG_FILE_NAME = "ani-harvest.log"
CONSOLE_FORMAT = (
    "<level>{level: <8}</level> | <cyan>{name}</cyan>:<cyan>{function}</cyan> - "
    "<level>{message}</level>"
)
FILE_FORMAT = "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level: <8} | {name}:{function}:{line} - {message}"

_initialized = False


def configure_logging(
    debug: bool = False,
    force: bool = False,
    log_settings: LoggingSettings | None = None,
) -> None:
    """Install the stderr and file sinks.

    Args:
        debug: Lower the stderr sink to DEBUG (CLI --debug)
        force: Replace sinks installed by an earlier call
        log_settings: Defaults to settings.logging
    """
    global _initialized

    if _initialized and not force:
        return

    if log_settings is None:
        from models.config import settings

        log_settings = settings.logging

    _base_logger.remove()
    _base_logger.add(
        sys.stderr,
        format=CONSOLE_FORMAT,
        level="DEBUG" if debug else log_settings.console_level,
    )

    if log_settings.file_enabled:
        log_dir = get_data_path()
        log_dir.mkdir(parents=True, exist_ok=True)
        _base_logger.add(
            log_dir / LOG_FILE_NAME,
            format=FILE_FORMAT,
            level=log_settings.file_level,
            rotation=log_settings.rotation,
            retention=log_settings.retention,
            compression="zip",
        )

    _initialized = True


def get_logger(name: str):
    """Logger bound to ``name``; configures logging on first use."""
    if not _initialized:
        configure_logging()
    return _base_logger.bind(name=name)
