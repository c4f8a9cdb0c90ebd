"""
HTTP Transport - pooled, keep-alive fetching with bounded retries.

Handles:
- One aiohttp session per process with a per-origin keep-alive pool
- Retries (tenacity) on transient statuses and connection errors with
  jittered exponential backoff
- SSRF validation of the initial URL and of every redirect hop
- Response body size cap; an oversized body is a FetchError, not a
  truncated payload

The transport never touches storage. Exhausted retries return the last
response (for retryable statuses) or raise the last error; callers decide
what a failure means.
"""

import asyncio
import logging
import random
from dataclasses import dataclass, field
from typing import Awaitable, Callable
from urllib.parse import urljoin

import aiohttp
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception,
    retry_if_result,
    stop_after_attempt,
)

from .exceptions import FetchError
from .url_validator import validate_url

logger = logging.getLogger(__name__)

RETRY_STATUSES = frozenset({408, 429, 500, 502, 503, 504})
REDIRECT_STATUSES = frozenset({301, 302, 303, 307, 308})
MAX_REDIRECTS = 5
MAX_BODY_BYTES = 10 * 1024 * 1024


@dataclass(frozen=True)
class RetryPolicy:
    """Retry tuning. Delays are in milliseconds."""
    retries: int = 2
    base_delay_ms: int = 300
    max_delay_ms: int = 2000
    retry_statuses: frozenset[int] = RETRY_STATUSES
    jitter_min: float = 0.8
    jitter_max: float = 1.2


def backoff_delay_ms(
    attempt: int,
    policy: RetryPolicy,
    rng: Callable[[], float] = random.random,
) -> float:
    """
    Delay before retry number `attempt` (0-based).

    min(max_delay, base_delay * 2^attempt) scaled by a jitter factor drawn
    uniformly from [jitter_min, jitter_max].
    """
    capped = min(policy.max_delay_ms, policy.base_delay_ms * (2 ** attempt))
    jitter = policy.jitter_min + (policy.jitter_max - policy.jitter_min) * rng()
    return capped * jitter


def is_retryable_error(err: BaseException) -> bool:
    """Timeouts, resets, refused/DNS-failed connections and aborted reads."""
    return isinstance(err, (
        asyncio.TimeoutError,
        aiohttp.ServerTimeoutError,
        aiohttp.ClientConnectionError,
        aiohttp.ClientPayloadError,
        ConnectionResetError,
    ))


def log_retry(state: RetryCallState):
    outcome = state.outcome
    if outcome.failed:
        reason = type(outcome.exception()).__name__
    else:
        reason = f"HTTP {outcome.result().status}"
    logger.debug(
        f"Retrying {state.args[0]} after {reason} in {state.next_action.sleep * 1000:.0f}ms"
    )


async def read_body(content: aiohttp.StreamReader, limit: int) -> bytes:
    """Read a whole response body; FetchError once it grows past limit bytes."""
    chunks: list[bytes] = []
    size = 0
    async for chunk in content.iter_chunked(64 * 1024):
        size += len(chunk)
        if size > limit:
            raise FetchError(f"Response too large (over {limit} bytes)")
        chunks.append(chunk)
    return b"".join(chunks)


@dataclass
class FetchResponse:
    """A fully read HTTP response."""
    url: str
    status: int
    headers: dict[str, str] = field(default_factory=dict)
    body: bytes = b""

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300

    @property
    def not_modified(self) -> bool:
        return self.status == 304

    def header(self, name: str) -> str | None:
        return self.headers.get(name.lower())

    @property
    def content_type(self) -> str:
        return (self.header("content-type") or "").split(";")[0].strip().lower()

    def text(self) -> str:
        """Decode the body using the declared charset, falling back to UTF-8."""
        charset = "utf-8"
        for part in (self.header("content-type") or "").split(";")[1:]:
            key, _, value = part.strip().partition("=")
            if key.lower() == "charset" and value:
                charset = value.strip("\"'")
        try:
            return self.body.decode(charset, errors="replace")
        except LookupError:
            return self.body.decode("utf-8", errors="replace")


class HttpTransport:
    """Shared HTTP client used for feeds, article pages and assets."""

    def __init__(
        self,
        policy: RetryPolicy | None = None,
        timeout: float = 30,
        pool_limit: int = 50,
        pool_limit_per_host: int = 10,
        keepalive_seconds: float = 60,
        user_agent: str = "FeedSync/1.0",
        resolve_dns: bool = True,
        max_body_bytes: int = MAX_BODY_BYTES,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        rng: Callable[[], float] = random.random,
    ):
        self.policy = policy or RetryPolicy()
        self.timeout = timeout
        self.pool_limit = pool_limit
        self.pool_limit_per_host = pool_limit_per_host
        self.keepalive_seconds = keepalive_seconds
        self.user_agent = user_agent
        self.resolve_dns = resolve_dns
        self.max_body_bytes = max_body_bytes
        self._sleep = sleep
        self._rng = rng
        self._session: aiohttp.ClientSession | None = None

    def _get_session(self) -> aiohttp.ClientSession:
        """Create the pooled session on first use (needs a running loop)."""
        if self._session is None or self._session.closed:
            connector = aiohttp.TCPConnector(
                limit=self.pool_limit,
                limit_per_host=self.pool_limit_per_host,
                keepalive_timeout=self.keepalive_seconds,
                ttl_dns_cache=300,
            )
            self._session = aiohttp.ClientSession(
                connector=connector,
                headers={"User-Agent": self.user_agent},
            )
        return self._session

    async def close(self):
        if self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None

    async def fetch(
        self,
        url: str,
        headers: dict[str, str] | None = None,
        timeout: float | None = None,
        retries: int | None = None,
    ) -> FetchResponse:
        """
        GET a URL, retrying transient failures.

        Args:
            url: Absolute http(s) URL
            headers: Extra request headers (e.g. conditional validators)
            timeout: Per-attempt timeout in seconds, defaults to the transport's
            retries: Override the policy's retry count

        Returns:
            FetchResponse, possibly with a retryable status if retries ran out

        Raises:
            SSRFError: URL or a redirect target is not allowed
            aiohttp.ClientError / asyncio.TimeoutError: last transport error
        """
        max_retries = self.policy.retries if retries is None else retries
        retrying = AsyncRetrying(
            retry=(
                retry_if_exception(is_retryable_error)
                | retry_if_result(lambda r: r.status in self.policy.retry_statuses)
            ),
            stop=stop_after_attempt(max_retries + 1),
            wait=self._backoff,
            sleep=self._sleep,
            before_sleep=log_retry,
            # Exhausted: hand back the last response, or re-raise the last error
            retry_error_callback=lambda state: state.outcome.result(),
        )
        return await retrying(self._send, url, headers or {}, timeout or self.timeout)

    def _backoff(self, state: RetryCallState) -> float:
        """Seconds to wait before the next attempt."""
        return backoff_delay_ms(state.attempt_number - 1, self.policy, self._rng) / 1000

    async def _send(self, url: str, headers: dict[str, str], timeout: float) -> FetchResponse:
        """One attempt: follow redirects by hand so each hop is validated."""
        session = self._get_session()
        client_timeout = aiohttp.ClientTimeout(total=timeout)
        current = url
        for _ in range(MAX_REDIRECTS + 1):
            await asyncio.to_thread(validate_url, current, self.resolve_dns)
            async with session.get(
                current,
                headers=headers,
                timeout=client_timeout,
                allow_redirects=False,
            ) as resp:
                location = resp.headers.get("Location")
                if resp.status in REDIRECT_STATUSES and location:
                    current = urljoin(current, location)
                    continue
                declared = resp.content_length
                if declared is not None and declared > self.max_body_bytes:
                    raise FetchError(f"Response too large ({declared} bytes) from {current}")
                body = await read_body(resp.content, self.max_body_bytes)
                return FetchResponse(
                    url=current,
                    status=resp.status,
                    headers={k.lower(): v for k, v in resp.headers.items()},
                    body=body,
                )
        raise FetchError(f"Too many redirects fetching {url}")
