"""Structured logging setup.

structlog over the standard library, rendered either as JSON or as
coloured console output.
"""

import logging
import sys
from typing import Any

import structlog
from structlog.types import Processor

from gated_trading.config import LogFormat, get_settings


def setup_logging() -> None:
    """Configure structlog from the process settings."""
    settings = get_settings()

    log_level = getattr(logging, settings.log_level)
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=log_level,
    )

    shared_processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]

    if settings.log_format == LogFormat.JSON:
        processors: list[Processor] = [
            *shared_processors,
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ]
    else:
        processors = [
            *shared_processors,
            structlog.dev.ConsoleRenderer(colors=True),
        ]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """Return a structured logger.

    Args:
        name: Logger name. Defaults to the calling module.

    Returns:
        Bound structlog logger.
    """
    return structlog.get_logger(name)


def log_trade_signal(
    logger: structlog.stdlib.BoundLogger,
    *,
    instrument: str,
    direction: str,
    strength: int,
    **kwargs: Any,
) -> None:
    """Log an aggregated signal verdict."""
    logger.info(
        "trade_signal",
        instrument=instrument,
        direction=direction,
        strength=strength,
        **kwargs,
    )


def log_order_intent(
    logger: structlog.stdlib.BoundLogger,
    *,
    instrument: str,
    intent: str,
    quantity: float | None = None,
    stop: float | None = None,
    target: float | None = None,
    status: str = "emitted",
    **kwargs: Any,
) -> None:
    """Log an order intent handed to the execution gateway."""
    logger.info(
        "order_intent",
        instrument=instrument,
        intent=intent,
        quantity=quantity,
        stop=stop,
        target=target,
        status=status,
        **kwargs,
    )


def log_sizing_rejected(
    logger: structlog.stdlib.BoundLogger,
    *,
    instrument: str,
    gate: str,
    **kwargs: Any,
) -> None:
    """Log a sizing gate that zeroed the position size."""
    logger.warning(
        "sizing_rejected",
        instrument=instrument,
        gate=gate,
        **kwargs,
    )


def log_risk_event(
    logger: structlog.stdlib.BoundLogger,
    *,
    event_type: str,
    action: str,
    **kwargs: Any,
) -> None:
    """Log a risk control event."""
    logger.warning(
        "risk_event",
        event_type=event_type,
        action=action,
        **kwargs,
    )
