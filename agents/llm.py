"""OpenAI-compatible chat client used for JSON-mode generation.

The generative provider (Groq by default) speaks the OpenAI chat completions
API, so the official AsyncOpenAI client is pointed at its base URL. The SDK's
own retries are disabled; retries are owned by the caller (see retry.py).

This is the boundary where upstream failures are first observed, so this is
where each one receives its ErrorKind tag:

    429 / RateLimitError         -> TransientCallError(RATE_LIMIT, retry_after)
    APITimeoutError, 408, 504    -> TransientCallError(TIMEOUT)
    anything else from the SDK   -> UpstreamCallError(OTHER)
"""

import asyncio
import logging
import re

import openai
from openai import AsyncOpenAI

from errors import ErrorKind, TransientCallError, UpstreamCallError

logger = logging.getLogger(__name__)

# Groq phrases rate-limit hints as "Please try again in 7.66s" or "in 1m2.5s"
_RETRY_IN_PATTERN = re.compile(r"try again in (?:(\d+)m)?([0-9.]+)s", re.IGNORECASE)

_TIMEOUT_STATUSES = frozenset({408, 504})


def parse_retry_after(message: str, header: str | None = None) -> float | None:
    """Extract a retry-after hint in seconds.

    The Retry-After header wins when it is a plain number; otherwise the
    error message is searched for a "try again in ...s" phrase.
    """
    if header:
        try:
            return float(header)
        except ValueError:
            pass
    match = _RETRY_IN_PATTERN.search(message or "")
    if not match:
        return None
    minutes = int(match.group(1)) if match.group(1) else 0
    return minutes * 60 + float(match.group(2))


def _header(exc: openai.APIStatusError, name: str) -> str | None:
    response = getattr(exc, "response", None)
    if response is None:
        return None
    return response.headers.get(name)


def classify_error(exc: Exception) -> UpstreamCallError:
    """Wrap an SDK exception into a tagged pipeline error."""
    if isinstance(exc, openai.RateLimitError):
        return TransientCallError(
            str(exc),
            kind=ErrorKind.RATE_LIMIT,
            retry_after=parse_retry_after(str(exc), _header(exc, "retry-after")),
        )
    if isinstance(exc, (openai.APITimeoutError, asyncio.TimeoutError)):
        return TransientCallError(str(exc) or "generation timed out", kind=ErrorKind.TIMEOUT)
    if isinstance(exc, openai.APIStatusError):
        if exc.status_code == 429:
            return TransientCallError(
                str(exc),
                kind=ErrorKind.RATE_LIMIT,
                retry_after=parse_retry_after(str(exc), _header(exc, "retry-after")),
            )
        if exc.status_code in _TIMEOUT_STATUSES:
            return TransientCallError(str(exc), kind=ErrorKind.TIMEOUT)
    return UpstreamCallError(f"{type(exc).__name__}: {exc}", kind=ErrorKind.OTHER)


class ChatJSONClient:
    """Chat completions in JSON-object mode.

    Example:
        >>> client = ChatJSONClient(api_key="...", model="llama-3.1-8b-instant")
        >>> raw = await client.complete_json(system_prompt, user_prompt)
        >>> json.loads(raw)["bullets"]
    """

    def __init__(
        self,
        api_key: str,
        model: str,
        base_url: str | None = None,
        timeout: float = 20.0,
        max_tokens: int = 450,
        temperature: float = 0.2,
    ):
        self.model = model
        self.max_tokens = max_tokens
        self.temperature = temperature
        self._client = AsyncOpenAI(
            api_key=api_key,
            base_url=base_url,
            timeout=timeout,
            max_retries=0,
        )

    async def complete_json(self, system: str, user: str) -> str:
        """Run one JSON-mode completion and return the raw message content.

        Raises:
            TransientCallError: Rate limit or timeout
            UpstreamCallError: Any other provider failure
        """
        try:
            resp = await self._client.chat.completions.create(
                model=self.model,
                temperature=self.temperature,
                max_tokens=self.max_tokens,
                response_format={"type": "json_object"},
                messages=[
                    {"role": "system", "content": system},
                    {"role": "user", "content": user},
                ],
            )
        except (openai.OpenAIError, asyncio.TimeoutError) as e:
            raise classify_error(e) from e

        usage = getattr(resp, "usage", None)
        if usage is not None:
            logger.debug(
                "Completion done | model=%s input_tokens=%s output_tokens=%s",
                self.model, usage.prompt_tokens, usage.completion_tokens,
            )
        if not resp.choices:
            return "{}"
        return resp.choices[0].message.content or "{}"

    async def close(self) -> None:
        await self._client.close()
