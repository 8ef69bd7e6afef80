"""Centralized logging service using loguru.

Importing this module configures the sinks once for the process.
"""

import logging
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

from loguru import logger

from research_engine.config import settings

logger.remove()

logger.add(
    sys.stderr,
    format="<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | <cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>",
    level=settings.app_log_level.upper(),
    colorize=True,
)

if settings.log_to_file:
    LOG_DIR = Path(settings.log_dir)
    LOG_DIR.mkdir(parents=True, exist_ok=True)
    logger.add(
        LOG_DIR / "research_engine_{time:YYYY-MM-DD}.log",
        format="{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {name}:{function}:{line} - {message}",
        level="DEBUG",
        rotation="00:00",  # New file at midnight
        retention="7 days",
        compression="zip",
    )

# HTTP clients log every request at INFO
for logger_name in ("httpx", "httpcore", "openai._base_client", "asyncio"):
    logging.getLogger(logger_name).setLevel(settings.noisy_log_level.upper())


def _record(**fields: Any) -> dict[str, Any]:
    return {"timestamp": datetime.now(timezone.utc).isoformat(), **fields}


def log_llm_call(
    model: str,
    caller: str,
    input_tokens: int = 0,
    output_tokens: int = 0,
    duration_ms: int = 0,
    status: str = "success",
    error: Optional[str] = None,
) -> None:
    """Log one completion request, tagged with the agent that made it."""
    call_data = _record(
        model=model,
        caller=caller,
        input_tokens=input_tokens,
        output_tokens=output_tokens,
        duration_ms=duration_ms,
        status=status,
        error=error,
    )
    if error:
        logger.error(f"LLM_CALL_FAILED: {call_data}")
    else:
        logger.info(f"LLM_CALL: {call_data}")


def log_research_step(
    session_id: str,
    phase: str,
    status: str,
    round_number: Optional[int] = None,
) -> None:
    """Log a phase transition of a research session."""
    step_data = _record(session_id=session_id, phase=phase, status=status)
    if round_number is not None:
        step_data["round"] = round_number
    logger.debug(f"RESEARCH_STEP: {step_data}")


def log_provider_call(
    provider: str,
    query: str,
    status: str,
    result_count: int = 0,
    duration_ms: int = 0,
    error: Optional[str] = None,
) -> None:
    call_data = _record(
        provider=provider,
        query=query[:120],
        status=status,
        result_count=result_count,
        duration_ms=duration_ms,
        error=error,
    )
    if error:
        logger.warning(f"PROVIDER_CALL_FAILED: {call_data}")
    else:
        logger.info(f"PROVIDER_CALL: {call_data}")
