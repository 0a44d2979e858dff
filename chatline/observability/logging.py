"""Structured logging for Chatline using structlog.

Events render as JSON lines in production and as console lines in
development. The identifiers of the running chat are bound once with
bind_chat_context and then ride along on every event until the chat ends.

With redaction on, visitor identity and contact credentials never reach
the output: fields are masked by name at any depth, pydantic models are
dumped and masked the same way, and free text is scrubbed of email
addresses and phone numbers. Chat message bodies are free text too.
"""

import logging
import re
import sys
from collections.abc import Mapping
from typing import TYPE_CHECKING, Any, cast

import structlog
from pydantic import BaseModel
from structlog.types import EventDict, Processor, WrappedLogger

if TYPE_CHECKING:
    from chatline.config.models.observability import LoggingConfig

REDACTED = "[REDACTED]"

# Masked wherever they appear; matched case-insensitively
SENSITIVE_FIELDS: frozenset[str] = frozenset({
    # visitor identity
    "email",
    "visitor_email",
    "visitor_name",
    "display_name",
    "phone",
    # contact credentials
    "connection_token",
    "participant_token",
    "token",
    "access_token",
    "refresh_token",
    "authorization",
    "password",
    "secret",
})

_TEXT_SCRUBBERS: tuple[tuple[re.Pattern[str], str], ...] = (
    (re.compile(r"[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}"), "[EMAIL]"),
    (re.compile(r"\+?[\d\s\-\(\)]{10,}"), "[PHONE]"),
)

# Keys bound for the lifetime of one chat run
CHAT_CONTEXT_KEYS: tuple[str, ...] = ("session_id", "participant_id")


def scrub_text(text: str) -> str:
    for pattern, replacement in _TEXT_SCRUBBERS:
        text = pattern.sub(replacement, text)
    return text


def redact_value(value: Any, key: str | None = None) -> Any:
    """Mask one logged value, recursing into containers and models."""
    if key is not None and key.lower() in SENSITIVE_FIELDS:
        return REDACTED
    if isinstance(value, str):
        return scrub_text(value)
    if isinstance(value, BaseModel):
        return redact_value(value.model_dump(mode="json"), key)
    if isinstance(value, Mapping):
        return {k: redact_value(v, str(k)) for k, v in value.items()}
    if isinstance(value, list | tuple | set | frozenset):
        return [redact_value(item) for item in value]
    return value


def redact_pii(
    _logger: WrappedLogger,
    _method_name: str,
    event_dict: EventDict,
) -> EventDict:
    """structlog processor applying redact_value to every field."""
    return cast(EventDict, redact_value(event_dict))


def build_processors(config: "LoggingConfig") -> list[Processor]:
    processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
    ]
    # Before the timestamp: ISO dates look like phone numbers to the scrubber
    if config.redact_pii:
        processors.append(redact_pii)
    processors.append(structlog.processors.TimeStamper(fmt="iso"))
    if config.format == "json":
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty()))
    return processors


def setup_logging(config: "LoggingConfig | None" = None) -> None:
    """Configure structlog from the observability logging section.

    Args:
        config: Level, format and redaction switch; defaults when omitted
    """
    if config is None:
        # chatline.config imports this module
        from chatline.config.models.observability import LoggingConfig

        config = LoggingConfig()

    structlog.configure(
        processors=build_processors(config),
        wrapper_class=structlog.make_filtering_bound_logger(
            logging.getLevelNamesMapping()[config.level]
        ),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(sys.stderr),
        cache_logger_on_first_use=True,
    )


def bind_chat_context(**identifiers: str | None) -> None:
    """Attach chat identifiers to every later event in this context.

    Only CHAT_CONTEXT_KEYS are accepted; None values are skipped.
    """
    unknown = set(identifiers) - set(CHAT_CONTEXT_KEYS)
    if unknown:
        raise ValueError(f"Not chat context keys: {sorted(unknown)}")
    structlog.contextvars.bind_contextvars(
        **{key: value for key, value in identifiers.items() if value is not None}
    )


def clear_chat_context() -> None:
    structlog.contextvars.unbind_contextvars(*CHAT_CONTEXT_KEYS)


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Logger for a module; pass __name__."""
    return cast(structlog.stdlib.BoundLogger, structlog.get_logger(name))
