"""Retry and token-refresh wrapper for Google Tasks API calls."""

import asyncio
from typing import Awaitable, Callable, Optional, Protocol

import httpx

from logger import logger
from utils.log_sanitizer import sanitize_for_log
from .. import config
from ..errors import ApiError, NotFoundError, RateLimitError, TokenExpiredError

RequestFactory = Callable[[str], Awaitable[httpx.Response]]


class AccessTokenProvider(Protocol):
    async def get_access_token(self) -> str: ...

    async def refresh_access_token(self) -> None: ...


def parse_error_message(response: httpx.Response) -> str:
    """Extract the human-readable error from a Google error body.

    Handles both the REST format (``{"error": {"message": ...}}``) and the
    OAuth format (``{"error": "invalid_grant", "error_description": ...}``).
    Falls back to the raw body.
    """
    try:
        data = response.json()
    except ValueError:
        return response.text or response.reason_phrase

    if isinstance(data, dict):
        error = data.get("error")
        if isinstance(error, dict) and error.get("message"):
            return str(error["message"])
        if isinstance(error, str):
            description = data.get("error_description")
            return f"{error}: {description}" if description else error

    return response.text


def build_api_error(response: httpx.Response) -> ApiError:
    """Map a non-2xx response onto the error taxonomy."""
    status = response.status_code
    reason = response.reason_phrase
    message = parse_error_message(response)

    if status == 404:
        return NotFoundError(status, reason, message)
    if status == 429:
        return RateLimitError(status, reason, message, retry_after=retry_after_seconds(response))
    return ApiError(status, reason, message)


def retry_after_seconds(response: httpx.Response) -> Optional[float]:
    """Numeric Retry-After header in seconds, if present."""
    value = response.headers.get("Retry-After")
    if value is None:
        return None
    try:
        return max(float(value), 0.0)
    except ValueError:
        return None


async def execute_with_retry(
    request: RequestFactory,
    tokens: AccessTokenProvider,
    max_retries: int = config.MAX_RETRIES,
    base_delay: float = config.BASE_RETRY_DELAY,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> httpx.Response:
    """Run ``request(access_token)`` with backoff and token refresh.

    Makes at most ``max_retries + 1`` attempts:

    - 401: refreshes the token once and repeats the attempt with the new
      token (the repeat is not counted); refresh errors propagate and a
      second 401 raises TokenExpiredError
    - 404: raised immediately
    - 429: waits ``Retry-After`` seconds, else ``base_delay * 2**attempt``
    - other non-2xx and transport errors: exponential backoff

    Returns the first 2xx response. When the attempts run out, the last
    error is re-raised unchanged.
    """
    if max_retries < 0:
        raise ValueError(f"max_retries must be >= 0, got {max_retries}")

    last_error: Exception
    refreshed = False
    attempt = 0

    while True:
        access_token = await tokens.get_access_token()

        try:
            response = await request(access_token)
        except httpx.TransportError as e:
            last_error = e
            delay = base_delay * 2 ** attempt
            logger.warning(f"Google Tasks request failed ({type(e).__name__}: {e}), attempt {attempt + 1}/{max_retries + 1}")
        else:
            if response.is_success:
                return response

            if response.status_code == 401:
                if refreshed:
                    raise TokenExpiredError("Access token rejected after refresh")
                logger.info("Google Tasks returned 401, refreshing access token")
                refreshed = True
                await tokens.refresh_access_token()
                continue

            error = build_api_error(response)
            if isinstance(error, NotFoundError):
                raise error

            last_error = error
            if isinstance(error, RateLimitError) and error.retry_after is not None:
                delay = error.retry_after
            else:
                delay = base_delay * 2 ** attempt
            logger.warning(
                f"Google Tasks returned {error.status} {error.reason}: {sanitize_for_log(error.message)}, "
                f"attempt {attempt + 1}/{max_retries + 1}"
            )

        attempt += 1
        if attempt > max_retries:
            raise last_error

        logger.info(f"Retrying Google Tasks request in {delay:.1f}s")
        await sleep(delay)
