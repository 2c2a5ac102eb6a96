"""Optional Logfire tracing.

When ENABLE_LOGFIRE is set, each job run is wrapped in a Logfire span and
every OpenAI-compatible generation call is instrumented. When it is not, the
helpers here are no-ops and only log the duration of each operation.

Usage:
    >>> setup_tracing(enabled=True, token=config.logfire_token)
    >>> with trace_operation("keeper_run", {"categories": 6}) as attrs:
    ...     stats = await keeper.run()
    ...     attrs["aborted"] = len(stats.aborted)
"""

import logging
import time
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Iterator

import logfire

logger = logging.getLogger(__name__)

SERVICE_NAME = "quickbrew"


@dataclass
class TracingContext:
    """Tracing state for the process."""

    enabled: bool = False
    service_name: str = SERVICE_NAME
    configured: bool = False


_context = TracingContext()


def setup_tracing(enabled: bool = False, token: str = "", service_name: str = SERVICE_NAME) -> TracingContext:
    """Configure Logfire and instrument the OpenAI client library.

    A configuration failure disables tracing and is logged; it never stops
    the pipeline.
    """
    _context.enabled = enabled
    _context.service_name = service_name
    if not enabled:
        logger.debug("Tracing disabled")
        return _context

    try:
        logfire.configure(
            service_name=service_name,
            token=token or None,
            send_to_logfire="if-token-present",
            console=False,
        )
        logfire.instrument_openai()
    except Exception as e:
        logger.error("Logfire setup failed, tracing disabled | error=%s", e)
        _context.enabled = False
        return _context

    _context.configured = True
    logger.info("Logfire tracing enabled | service=%s", service_name)
    return _context


@contextmanager
def trace_operation(name: str, attributes: dict[str, Any] | None = None) -> Iterator[dict[str, Any]]:
    """Span around an operation.

    Yields a dict; keys added to it are attached to the span on exit.
    """
    started = time.monotonic()
    result_attrs: dict[str, Any] = {}
    try:
        if _context.enabled and _context.configured:
            with logfire.span(name, **(attributes or {})) as span:
                yield result_attrs
                for key, value in result_attrs.items():
                    span.set_attribute(key, value)
        else:
            yield result_attrs
    finally:
        logger.debug("Operation finished | name=%s duration=%.2fs", name, time.monotonic() - started)
