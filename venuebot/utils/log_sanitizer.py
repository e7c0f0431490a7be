"""
Log Sanitization
Keeps bot tokens and control characters out of logs and persisted errors.
"""
import re
import traceback
from typing import Any, Mapping, Optional

CONTROL_CHARS_PATTERN = re.compile(r"[\r\n\t]")

# Bare token: "<bot id>:<secret>"
TOKEN_PATTERN = re.compile(r"(?<![A-Za-z0-9_-])\d{5,}:[A-Za-z0-9_-]{10,}(?![A-Za-z0-9_-])")

# Token embedded in an API URL path: ".../bot<id>:<secret>/sendMessage"
BOT_URL_TOKEN_PATTERN = re.compile(r"(?i)bot\d{5,}:[A-Za-z0-9_-]{10,}")

MAX_STORED_ERROR_LENGTH = 500


def redact_tokens(text: str) -> str:
    """Replace anything that looks like a Telegram bot token."""
    text = TOKEN_PATTERN.sub("<bot_token_redacted>", text)
    return BOT_URL_TOKEN_PATTERN.sub("bot<redacted>", text)


def sanitize_for_log(text: Optional[str], max_len: int = 200) -> str:
    """
    Normalize an untrusted string for a single log line.

    Args:
        text: Raw text (exception message, API description, ...)
        max_len: Maximum length of the result

    Returns:
        Redacted, single-line, truncated text ("" for None)
    """
    normalized = CONTROL_CHARS_PATTERN.sub(" ", text or "")
    return redact_tokens(normalized).strip()[:max_len]


def sanitize_error(text: Optional[str]) -> str:
    """Sanitize a failure reason before it is persisted as last_error."""
    return sanitize_for_log(text or "unknown error", max_len=MAX_STORED_ERROR_LENGTH)


def describe_exception(error: BaseException) -> str:
    """Exception message, falling back to the class name when empty."""
    return sanitize_for_log(str(error) or type(error).__name__)


def stack_trace_for_log(error: BaseException, max_len: int = 8000) -> str:
    """Formatted traceback with tokens redacted."""
    formatted = "".join(traceback.format_exception(type(error), error, error.__traceback__))
    return redact_tokens(formatted)[:max_len]


def summarize_keys_for_log(
    obj: Mapping[str, Any],
    max_keys: int = 20,
    max_key_len: int = 40,
    max_total_len: int = 200,
) -> str:
    """
    Bounded summary of a JSON object's keys for debug logging.

    Each key is sanitized before it is truncated, so a token that starts
    near the cut-off point is still recognised and redacted.
    """
    parts: list[str] = []
    length = 0
    sample_len = min(max_key_len + 120, 512)

    for key in list(obj.keys())[:max_keys]:
        safe_key = sanitize_for_log(str(key)[:sample_len], max_len=sample_len)[:max_key_len]
        if not safe_key:
            continue
        separator = 1 if parts else 0
        available = max_total_len - length - separator
        if available <= 0:
            break
        parts.append(safe_key[:available])
        length += separator + len(parts[-1])

    summary = ",".join(parts)
    remaining = len(obj) - len(parts)
    if remaining > 0 and len(summary) < max_total_len:
        summary += f"...(+{remaining} more)"[: max_total_len - len(summary)]

    return sanitize_for_log(summary, max_len=max_total_len)
