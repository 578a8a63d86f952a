"""
Rate-limit aware client for the GitHub REST API.

Every outbound call goes through RateLimitedClient.get(). Two independent retry
policies are driven by the signals GitHub attaches to throttled responses:

- Primary rate limit (quota exhausted, X-RateLimit-Remaining: 0): the call is
  retried while fewer than 2 retries have been made, waiting until
  X-RateLimit-Reset.
- Secondary rate limit (abuse/burst detection, Retry-After or a "secondary rate
  limit" message): the call is retried while fewer than 1 retry has been made,
  waiting Retry-After seconds (60 when absent).

Both policies share one retry counter per call and are driven by tenacity.
Anything else that is not a 2xx response propagates immediately as RemoteError.
"""

import asyncio
import logging
import math
import time
from collections.abc import Awaitable, Callable
from enum import Enum
from typing import Any

import httpx
from tenacity import AsyncRetrying, RetryCallState, retry_if_exception

logger = logging.getLogger(__name__)

PRIMARY_RETRY_LIMIT = 2
SECONDARY_RETRY_LIMIT = 1
# Used when a secondary limit response carries no Retry-After header
DEFAULT_SECONDARY_WAIT = 60
RATE_LIMIT_STATUSES = {403, 429}


class RateLimitSignal(str, Enum):
    """Kind of throttling reported by the server."""

    PRIMARY = "primary"
    SECONDARY = "secondary"


class RemoteError(Exception):
    """A failed call to the remote API.

    Rate-limited failures carry the signal kind and the server-suggested wait.
    """

    def __init__(
        self,
        status: int | None,
        message: str,
        signal: RateLimitSignal | None = None,
        retry_after: float | None = None,
    ):
        super().__init__(message)
        self.status = status
        self.message = message
        self.signal = signal
        self.retry_after = retry_after

    def __repr__(self) -> str:
        return f"RemoteError(status={self.status!r}, message={self.message!r})"


def _response_message(response: httpx.Response) -> str:
    try:
        payload = response.json()
    except ValueError:
        payload = None
    if isinstance(payload, dict) and payload.get("message"):
        return str(payload["message"])
    return response.reason_phrase or f"HTTP {response.status_code}"


def classify_rate_limit(response: httpx.Response) -> RateLimitSignal | None:
    """
    Decide whether a response is a rate-limit signal.

    Args:
        response: A non-successful HTTP response.

    Returns:
        The signal kind, or None for ordinary failures.
    """
    if response.status_code not in RATE_LIMIT_STATUSES:
        return None

    if response.headers.get("x-ratelimit-remaining") == "0":
        return RateLimitSignal.PRIMARY

    if "retry-after" in response.headers:
        return RateLimitSignal.SECONDARY

    if "secondary rate limit" in _response_message(response).lower():
        return RateLimitSignal.SECONDARY

    return None


def _parse_seconds(value: str | None) -> float | None:
    if value is None:
        return None
    try:
        return float(value)
    except ValueError:
        return None


def retry_delay(
    response: httpx.Response,
    signal: RateLimitSignal,
    now: float | None = None,
) -> int:
    """
    Compute the server-suggested wait before resubmitting a throttled call.

    Args:
        response: The throttled response.
        signal: Which rate limit was hit.
        now: Current epoch seconds (defaults to time.time()).

    Returns:
        Whole seconds to wait, never negative.
    """
    retry_after = _parse_seconds(response.headers.get("retry-after"))

    if signal is RateLimitSignal.PRIMARY:
        reset = _parse_seconds(response.headers.get("x-ratelimit-reset"))
        if reset is not None:
            current = time.time() if now is None else now
            return max(0, math.ceil(reset - current))
        if retry_after is not None:
            return max(0, math.ceil(retry_after))
        return DEFAULT_SECONDARY_WAIT

    if retry_after is not None:
        return max(0, math.ceil(retry_after))
    return DEFAULT_SECONDARY_WAIT


def _rate_limit_signal(exception: BaseException) -> RateLimitSignal | None:
    if isinstance(exception, RemoteError):
        return exception.signal
    return None


def _is_rate_limited(exception: BaseException) -> bool:
    return _rate_limit_signal(exception) is not None


def _retries_exhausted(retry_state: RetryCallState) -> bool:
    """Stop once the shared per-call retry counter reaches the signal's limit."""
    signal = _rate_limit_signal(retry_state.outcome.exception())
    limit = (
        PRIMARY_RETRY_LIMIT
        if signal is RateLimitSignal.PRIMARY
        else SECONDARY_RETRY_LIMIT
    )
    return retry_state.attempt_number - 1 >= limit


def _suggested_wait(retry_state: RetryCallState) -> float:
    return retry_state.outcome.exception().retry_after or 0


def _log_retry(retry_state: RetryCallState) -> None:
    logger.info("Retrying after %s seconds", _suggested_wait(retry_state))


class RateLimitedClient:
    """Authenticated GitHub REST client with rate-limit retries.

    One instance is built per batch invocation and shared read-only by all
    pipelines in that batch.
    """

    def __init__(
        self,
        token: str,
        http_client: httpx.AsyncClient,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        if not token:
            raise ValueError("GitHub token is required")
        self._token = token
        self._http_client = http_client
        self._sleep = sleep

    def __repr__(self) -> str:
        # Never expose the token.
        return f"RateLimitedClient(base_url={str(self._http_client.base_url)!r})"

    async def __aenter__(self) -> "RateLimitedClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        """Close the underlying HTTP client."""
        await self._http_client.aclose()

    async def get(self, path: str, params: dict[str, Any] | None = None) -> Any:
        """
        Issue a GET request and return the decoded JSON payload.

        Args:
            path: API path relative to the base URL (e.g. "/orgs/acme/repos").
            params: Query parameters.

        Returns:
            Decoded JSON body.

        Raises:
            RemoteError: On transport failures, non-2xx responses, and rate
                limits that exhausted their retries.
        """
        retrying = AsyncRetrying(
            sleep=self._sleep,
            stop=_retries_exhausted,
            wait=_suggested_wait,
            retry=retry_if_exception(_is_rate_limited),
            before_sleep=_log_retry,
            reraise=True,
        )
        return await retrying(self._get_once, path, params)

    async def _get_once(self, path: str, params: dict[str, Any] | None) -> Any:
        headers = {"Authorization": f"Bearer {self._token}"}
        try:
            response = await self._http_client.get(path, params=params, headers=headers)
        except httpx.HTTPError as e:
            raise RemoteError(None, f"Request to {path} failed: {e}") from e

        if response.is_success:
            try:
                return response.json()
            except ValueError as e:
                raise RemoteError(
                    response.status_code,
                    f"Invalid JSON response from {path}",
                ) from e

        signal = classify_rate_limit(response)
        if signal is RateLimitSignal.PRIMARY:
            logger.warning("Rate limit hit for GET %s", path)
        elif signal is RateLimitSignal.SECONDARY:
            logger.warning("Secondary rate limit hit for GET %s", path)

        raise RemoteError(
            response.status_code,
            _response_message(response),
            signal=signal,
            retry_after=retry_delay(response, signal) if signal else None,
        )
