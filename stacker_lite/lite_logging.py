"""
Central logging configuration for stacker_lite.

Keeps engine diagnostics (per-task degradations, rollover summaries) visible
while holding the chatty parts of the engine at INFO unless debugging.
"""

import logging
import os
from typing import Optional

_VALID_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR")


def configure_lite_logging(debug_mode: bool = False, force_debug: Optional[bool] = None) -> None:
    """
    Configure logging levels for stacker_lite.

    Debug mode can be overridden via environment variable for troubleshooting.

    Args:
        debug_mode: Whether to enable debug logging for stacker_lite modules
        force_debug: Override debug mode setting (None to use env var detection)

    Environment Variables:
        STACKER_DEBUG: Set to '1', 'true', 'yes' to force debug logging
        STACKER_LOG_LEVEL: Override root log level (DEBUG, INFO, WARNING, ERROR)
    """
    env_debug = os.getenv("STACKER_DEBUG", "").lower() in ("1", "true", "yes")
    env_log_level = os.getenv("STACKER_LOG_LEVEL", "").upper()

    if force_debug is not None:
        final_debug = force_debug
    elif env_debug:
        final_debug = True
    else:
        final_debug = debug_mode

    root_level = logging.DEBUG if final_debug else logging.INFO
    if env_log_level in _VALID_LEVELS:
        root_level = getattr(logging, env_log_level)

    # Don't use basicConfig(force=True): keep the colorized handler from __init__
    root_logger = logging.getLogger()
    root_logger.setLevel(root_level)
    if not root_logger.handlers:
        handler = logging.StreamHandler()
        handler.setLevel(root_level)
        handler.setFormatter(logging.Formatter("[%(asctime)s] %(levelname)s - %(name)s - %(message)s"))
        root_logger.addHandler(handler)

    # Expansion and projection log per call; only useful when debugging
    stacker_level = logging.DEBUG if final_debug else logging.INFO
    logger_config: dict[str, int] = {
        "stacker_lite": stacker_level,
        "stacker_lite.lite_rrule_expander": stacker_level if final_debug else logging.WARNING,
        "stacker_lite.lite_projector": stacker_level if final_debug else logging.WARNING,
        "stacker_lite.lite_sanitizer": stacker_level,
        "stacker_lite.lite_rollover": stacker_level,
        "stacker_lite.lite_store": stacker_level,
        "stacker_lite.lite_service": stacker_level,
    }
    for logger_name, level in logger_config.items():
        logging.getLogger(logger_name).setLevel(level)

    logging.getLogger(__name__).debug(
        "Logging configured: root=%s, stacker_lite=%s",
        logging.getLevelName(root_level),
        logging.getLevelName(stacker_level),
    )


def get_logging_status() -> dict[str, str]:
    """
    Get current logging configuration status.

    Returns:
        Dictionary mapping logger names to their current levels
    """
    status = {"root": logging.getLevelName(logging.getLogger().level)}
    for logger_name in ("stacker_lite", "stacker_lite.lite_rrule_expander", "stacker_lite.lite_rollover"):
        status[logger_name] = logging.getLevelName(logging.getLogger(logger_name).level)
    return status
