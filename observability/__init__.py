"""Logging and tracing for QuickBrew jobs.

setup_logging / start_run:
    Console + rotating file logging with a per-run id on every record.

setup_tracing / trace_operation:
    Optional Logfire spans and OpenAI instrumentation (ENABLE_LOGFIRE=true).
"""

from observability.logging import setup_logging, start_run, clear_run
from observability.tracing import setup_tracing, trace_operation, TracingContext

__all__ = [
    "setup_logging",
    "start_run",
    "clear_run",
    "setup_tracing",
    "trace_operation",
    "TracingContext",
]
