"""
Structured Logging & Observability
Production-grade logging that's both human-readable and machine-parseable.
"""
import sys
from loguru import logger
from venuebot.config import get_settings
from venuebot.utils.log_sanitizer import sanitize_for_log, stack_trace_for_log


def configure_logging():
    """
    Configure loguru for production observability.

    In development: Human-readable colorized output
    In production: Structured JSON logs for ingestion (ELK, Datadog, etc.)
    """
    settings = get_settings()

    # Remove default handler
    logger.remove()

    # Development mode: Beautiful console output
    if not settings.enable_structured_logging:
        logger.add(
            sys.stderr,
            format=(
                "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | "
                "<level>{level: <8}</level> | "
                "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> | "
                "{message}"
            ),
            level=settings.log_level,
            colorize=True,
        )
    # Production mode: JSON structured logs
    else:
        logger.add(
            sys.stderr,
            format="{message}",
            level=settings.log_level,
            serialize=True,  # Output as JSON
        )

    logger.info(f"Logging configured: level={settings.log_level}, structured={settings.enable_structured_logging}")


def log_exception_debug(error: BaseException, message: str) -> None:
    """
    Log a redacted stack trace at DEBUG level.

    Tracebacks can include request URLs that embed the bot token, so they
    never reach the log sink unredacted and never above DEBUG.
    """
    logger.debug(
        "{}: {}",
        sanitize_for_log(message, max_len=500),
        stack_trace_for_log(error),
    )


def log_queue_transition(
    queue: str,
    entry_id: str,
    status: str,
    attempts: int,
    **context
):
    """
    Structured logging for queue state transitions.

    Args:
        queue: Queue name ("inbound" or "outbox")
        entry_id: Queue entry id
        status: Status the entry moved to
        attempts: Attempt count at the time of the transition
        **context: Additional context (chat_id, method, update_id, error, ...)

    Example:
        >>> log_queue_transition(
        ...     queue="outbox",
        ...     entry_id="65f0...",
        ...     status="RETRY",
        ...     attempts=2,
        ...     chat_id=42,
        ...     error_code=429
        ... )
    """
    log_data = {
        "event_type": "queue_transition",
        "queue": queue,
        "entry_id": entry_id,
        "status": status,
        "attempts": attempts,
    }
    log_data.update(context)

    level = "WARNING" if status in ("RETRY", "FAILED") else "DEBUG"
    logger.bind(**log_data).log(level, f"{queue} entry {entry_id} -> {status} (attempt {attempts})")
