"""
Logging configuration for memo_mirror.

Sets up loguru sinks (stderr and a rotating log file) and provides
helpers to keep credentials out of log output.
"""

import os
import sys
from pathlib import Path
from typing import Optional, Union

from loguru import logger

from .config import get_cli_log_file_path, get_cli_setting


LOG_LEVEL_ENV_VAR = "MEMO_MIRROR_LOG_LEVEL"

# Characters of a token left visible when it has to be logged
TOKEN_VISIBLE_CHARS = 4


def mask_token(token: Optional[str]) -> str:
    """
    Mask an authorization token for logging.

    Args:
        token: Raw token, with or without the "Bearer " prefix

    Returns:
        The token with everything but its last few characters replaced
    """
    if not token:
        return "<none>"
    raw = token[len("Bearer "):] if token.startswith("Bearer ") else token
    if len(raw) <= TOKEN_VISIBLE_CHARS:
        return "***"
    return f"***{raw[-TOKEN_VISIBLE_CHARS:]}"


def configure_logging(level: Optional[str] = None,
                      log_file: Union[str, Path, None] = None,
                      console: bool = True) -> None:
    """
    Configure loguru sinks for the application.

    This should be called once at startup. Level resolution order is the
    explicit argument, then MEMO_MIRROR_LOG_LEVEL, then [general].log_level.
    """
    resolved_level = (level
                      or os.environ.get(LOG_LEVEL_ENV_VAR)
                      or get_cli_setting("general", "log_level", "INFO")).upper()

    logger.remove()  # Remove default handler
    if console:
        logger.add(
            sink=sys.stderr,
            level=resolved_level,
            colorize=True
        )

    file_sink = Path(log_file) if log_file else get_cli_log_file_path()
    logger.add(
        sink=str(file_sink),
        level=resolved_level,
        rotation=get_cli_setting("logging", "rotation", "10 MB"),
        retention=get_cli_setting("logging", "retention", "14 days"),
        enqueue=True
    )

    logger.info(f"Logging configured: level={resolved_level}, file={file_sink}")
