"""Centralized logging service using loguru."""

import logging
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

from loguru import logger

from practice_research.config import settings

NOISY_LOGGERS = (
    "httpx",
    "httpcore",
    "hpack",
    "asyncio",
)


def configure_logging(level: Optional[str] = None, log_dir: Optional[str] = None) -> None:
    """Install the console sink and, when a log dir is set, a rotating file sink."""
    logger.remove()
    logger.add(
        sys.stderr,
        format="<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | <cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>",
        level=(level or settings.app_log_level).upper(),
        colorize=True,
    )

    target_dir = log_dir if log_dir is not None else settings.log_dir
    if target_dir:
        path = Path(target_dir).expanduser()
        path.mkdir(parents=True, exist_ok=True)
        logger.add(
            path / "practice_{time:YYYY-MM-DD}.log",
            format="{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {name}:{function}:{line} - {message}",
            level="DEBUG",
            rotation="00:00",
            retention="7 days",
            compression="zip",
        )

    # Reduce noise from network libraries
    for logger_name in NOISY_LOGGERS:
        logging.getLogger(logger_name).setLevel(settings.noisy_log_level.upper())


def log_stage(
    stage: str,
    status: str,
    data: Optional[dict[str, Any]] = None,
) -> None:
    """Log a pipeline stage transition."""
    stage_data = {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "stage": stage,
        "status": status,
        "data": data,
    }
    if status == "failed":
        logger.error(f"PRACTICE_STAGE_FAILED: {stage_data}")
    else:
        logger.info(f"PRACTICE_STAGE: {stage_data}")


def log_provider_call(
    provider: str,
    query: str,
    status: str,
    rows: int = 0,
    attempts: int = 1,
    from_cache: bool = False,
    error: Optional[str] = None,
) -> None:
    """Log one provider request."""
    call_data = {
        "provider": provider,
        "query": query,
        "status": status,
        "rows": rows,
        "attempts": attempts,
        "from_cache": from_cache,
        "error": error,
    }
    if error:
        logger.warning(f"PROVIDER_CALL_FAILED: {call_data}")
    else:
        logger.debug(f"PROVIDER_CALL: {call_data}")


def log_event(
    event_type: str,
    message: str,
    **kwargs,
) -> None:
    """Log a generic event."""
    event_data = {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "event_type": event_type,
        "message": message,
        **kwargs,
    }
    logger.info(f"EVENT: {event_data}")
