"""Error taxonomy for the ingestion, summarization and keeper stages.

Every failure that crosses a stage boundary is raised as a subclass of
PipelineError so callers can decide what a failure aborts:

    ProviderError      news source network/HTTP failure; skip the category
    ConfigError        missing credential; skip the dependent capability
    ParseError         generation output is not JSON; terminal for the article
    SchemaError        JSON fails structural/length rules; terminal for the article
    UpstreamCallError  generative call failed; carries an ErrorKind tag
    TransientCallError rate-limit or timeout flavour of UpstreamCallError
    PersistenceError   store read/write failure; aborts the enclosing unit

The ErrorKind tag is assigned once, where the upstream error is first observed.
The retry primitive dispatches on the tag and never re-reads message text.
"""

from enum import Enum


class ErrorKind(str, Enum):
    """Retry classification attached to upstream call errors."""

    RATE_LIMIT = "rate_limit"
    TIMEOUT = "timeout"
    OTHER = "other"

    @property
    def is_transient(self) -> bool:
        return self in (ErrorKind.RATE_LIMIT, ErrorKind.TIMEOUT)


class PipelineError(Exception):
    """Base class for all pipeline errors."""


class ProviderError(PipelineError):
    """News provider request failed (network, timeout or non-200 status)."""

    def __init__(self, message: str, status: int | None = None):
        super().__init__(message)
        self.status = status


class ConfigError(PipelineError):
    """A required credential or setting is missing."""


class ParseError(PipelineError):
    """Generated output could not be parsed as JSON."""


class SchemaError(PipelineError):
    """Generated JSON does not satisfy the summary schema."""


class UpstreamCallError(PipelineError):
    """A call to the generative provider failed.

    Attributes:
        kind: Retry classification assigned at the call boundary
        retry_after: Seconds the upstream asked us to wait, if it said so
    """

    def __init__(
        self,
        message: str,
        kind: ErrorKind = ErrorKind.OTHER,
        retry_after: float | None = None,
    ):
        super().__init__(message)
        self.kind = kind
        self.retry_after = retry_after


class TransientCallError(UpstreamCallError):
    """Rate-limit or timeout failure, eligible for backoff retries."""

    def __init__(
        self,
        message: str,
        kind: ErrorKind = ErrorKind.RATE_LIMIT,
        retry_after: float | None = None,
    ):
        if not kind.is_transient:
            raise ValueError(f"TransientCallError requires a transient kind, got {kind.value}")
        super().__init__(message, kind=kind, retry_after=retry_after)


class PersistenceError(PipelineError):
    """Store read or write failed."""


def error_kind(exc: BaseException) -> ErrorKind:
    """Return the retry classification of an exception (untagged = OTHER)."""
    return getattr(exc, "kind", ErrorKind.OTHER)
