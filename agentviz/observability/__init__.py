"""Observability helpers."""

from agentviz.observability.otel import (
    initialize,
    shutdown,
    start_span,
    record_refresh,
    record_parser_failure,
    record_source_failure,
    record_token_usage,
)

__all__ = [
    "initialize",
    "shutdown",
    "start_span",
    "record_refresh",
    "record_parser_failure",
    "record_source_failure",
    "record_token_usage",
]
