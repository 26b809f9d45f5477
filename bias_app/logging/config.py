"""
Centralized logging configuration for the bias aggregation engine.

This module provides standardized logging configuration using structlog
for all components. All logging throughout the system should use this
configuration to ensure consistent formatting and structured logging.
"""
import logging
import sys
from typing import Any, Optional

import structlog
from structlog.types import FilteringBoundLogger


def configure_logging(
    level: str = "INFO",
    format_json: bool = False,
    include_timestamp: bool = True,
    include_caller: bool = False,
    extra_processors: Optional[list] = None
) -> None:
    """
    Configure structlog for the entire application.

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        format_json: If True, output JSON format; otherwise human-readable
        include_timestamp: Include timestamp in log output
        include_caller: Include caller information (filename, line number)
        extra_processors: Additional structlog processors to include
    """
    log_level = getattr(logging, level.upper())

    # structlog renders; stdlib only routes
    logging.basicConfig(
        level=log_level,
        stream=sys.stdout,
        format="%(message)s"
    )

    processors = [
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]

    if include_timestamp:
        processors.append(structlog.processors.TimeStamper(fmt="iso"))

    if include_caller:
        processors.append(structlog.processors.CallsiteParameterAdder(
            parameters=[structlog.processors.CallsiteParameter.FILENAME,
                        structlog.processors.CallsiteParameter.LINENO]
        ))

    if extra_processors:
        processors.extend(extra_processors)

    if format_json:
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=True))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str) -> FilteringBoundLogger:
    """
    Get a configured structlog logger instance.

    Args:
        name: Logger name (typically __name__)

    Returns:
        Configured structlog logger instance
    """
    return structlog.get_logger(name)


def get_aggregation_logger(name: str) -> FilteringBoundLogger:
    """
    Get a logger bound for snapshot aggregation audit records.

    Args:
        name: Logger name (typically __name__)

    Returns:
        Configured structlog logger for the aggregation subsystem
    """
    return get_logger(name).bind(
        subsystem="aggregation",
        audit_trail=True
    )


def get_scheduler_logger(name: str) -> FilteringBoundLogger:
    """
    Get a logger bound for aggregation pass and event status records.

    Args:
        name: Logger name (typically __name__)

    Returns:
        Configured structlog logger for the scheduler subsystem
    """
    return get_logger(name).bind(
        subsystem="scheduler",
        audit_trail=True
    )


def log_fold_result(
    logger: FilteringBoundLogger,
    symbol: str,
    version_id: str,
    previous_version_id: Optional[str],
    leaf_key: str,
    score: Any,
    percentage: Any,
    direction: str,
    context: Optional[dict[str, Any]] = None
) -> None:
    """
    Log the outcome of folding one event into a snapshot.

    Args:
        logger: Structlog logger instance
        symbol: Symbol whose snapshot was rebuilt
        version_id: Newly minted snapshot version
        previous_version_id: Version the fold started from, if any
        leaf_key: Composite key of the sub-category that was updated
        score: Root score after the fold
        percentage: Root percentage after the fold
        direction: Root direction after the fold
        context: Additional context data
    """
    bound_logger = logger.bind(
        symbol=symbol,
        version_id=version_id,
        previous_version_id=previous_version_id,
        leaf_key=leaf_key,
        score=str(score),
        percentage=str(percentage),
        direction=direction,
        audit_event="snapshot_fold"
    )

    if context:
        bound_logger = bound_logger.bind(context=context)

    bound_logger.info("Snapshot folded")


def log_status_change(
    logger: FilteringBoundLogger,
    event_id: Optional[int],
    from_status: str,
    to_status: str,
    reason: str,
    context: Optional[dict[str, Any]] = None
) -> None:
    """
    Log a processing-status change of a scored event.

    Args:
        logger: Structlog logger instance
        event_id: Store id of the event
        from_status: Previous processing status
        to_status: New processing status
        reason: What caused the change
        context: Additional context data
    """
    bound_logger = logger.bind(
        event_id=event_id,
        from_status=from_status,
        to_status=to_status,
        reason=reason,
        audit_event="event_status_change"
    )

    if context:
        bound_logger = bound_logger.bind(context=context)

    if to_status == "FAILED":
        bound_logger.warning("Event status changed")
    else:
        bound_logger.info("Event status changed")
