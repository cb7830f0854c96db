"""Rate limiting and retry policy for platform API calls."""

import asyncio
import random
import time
from email.utils import parsedate_to_datetime
from typing import Mapping, Optional

from loguru import logger


RETRYABLE_STATUS_CODES = {429, 503}
RATE_LIMIT_LOW_WATER = 10
RATE_LIMIT_LOW_RATIO = 0.1


class RateLimiter:
    """Token bucket rate limiter for API requests."""

    def __init__(self, requests_per_second: float = 10.0):
        """Initialize rate limiter.

        Args:
            requests_per_second: Maximum requests per second allowed
        """
        self.requests_per_second = requests_per_second
        self.tokens = requests_per_second
        self.last_update = time.time()
        self._lock = asyncio.Lock()

    def _refill(self) -> None:
        now = time.time()
        elapsed = now - self.last_update
        self.tokens = min(
            self.requests_per_second,
            self.tokens + elapsed * self.requests_per_second,
        )
        self.last_update = now

    async def acquire(self) -> None:
        """Acquire a token for making a request (async version).

        Blocks until a token is available.
        """
        async with self._lock:
            self._refill()

            if self.tokens >= 1:
                self.tokens -= 1
                return

            sleep_time = (1 - self.tokens) / self.requests_per_second
            await asyncio.sleep(sleep_time)
            self.tokens = 0

    def acquire_sync(self) -> None:
        """Acquire a token for making a request (synchronous version)."""
        self._refill()

        if self.tokens >= 1:
            self.tokens -= 1
            return

        sleep_time = (1 - self.tokens) / self.requests_per_second
        time.sleep(sleep_time)
        self.tokens = 0


def _header(headers: Mapping[str, str], name: str) -> Optional[str]:
    """Case-insensitive header lookup."""
    lowered = name.lower()
    for key, value in headers.items():
        if key.lower() == lowered:
            return value
    return None


class RetryPolicy:
    """Decides whether a response is retried and how long to wait.

    Backoff is chosen from the response signal, in priority order: the
    rate-limit reset timestamp, a ``Retry-After`` header, then exponential
    backoff with jitter.
    """

    def __init__(self, max_retries: int = 5, platform: str = 'api'):
        """Initialize retry policy.

        Args:
            max_retries: Retries after the first attempt
            platform: Label used in log messages
        """
        self.max_retries = max_retries
        self.platform = platform
        self.logger = logger.bind(component='RetryPolicy', platform=platform)

    def should_retry(
        self, status_code: int, headers: Mapping[str, str], body: str = ''
    ) -> bool:
        """Check whether a response status warrants another attempt."""
        if status_code in RETRYABLE_STATUS_CODES or status_code >= 500:
            return True
        if status_code == 403:
            return self.is_rate_limited(headers, body)
        return False

    @staticmethod
    def is_rate_limited(headers: Mapping[str, str], body: str = '') -> bool:
        """Check whether a 403 response was caused by rate limiting."""
        if _header(headers, 'X-RateLimit-Remaining') == '0':
            return True
        if _header(headers, 'Retry-After') is not None:
            return True
        return 'rate limit' in (body or '').lower()

    def compute_backoff(
        self,
        attempt: int,
        headers: Optional[Mapping[str, str]] = None,
        now: Optional[float] = None,
    ) -> float:
        """Compute the wait in seconds before retry number ``attempt``.

        Args:
            attempt: 1-based retry attempt
            headers: Response headers of the failed attempt
            now: Current epoch seconds (defaults to ``time.time()``)

        Returns:
            Seconds to wait
        """
        headers = headers or {}
        now = time.time() if now is None else now

        reset = _header(headers, 'X-RateLimit-Reset')
        if reset is not None:
            try:
                reset_at = float(reset)
            except ValueError:
                reset_at = None
            if reset_at is not None:
                delay = reset_at - now
                wait = delay + 1 if delay > 0 else 2.0
                self.logger.warning(
                    f'{self.platform} rate limit exceeded. Retrying in {wait:.1f} '
                    f'seconds (attempt {attempt}/{self.max_retries})'
                )
                return wait

        retry_after = _header(headers, 'Retry-After')
        if retry_after is not None:
            wait = self._parse_retry_after(retry_after, now)
            if wait is not None:
                self.logger.warning(
                    f'{self.platform} request throttled. Retrying in {wait:.1f} '
                    f'seconds (attempt {attempt}/{self.max_retries})'
                )
                return wait

        wait = 2**attempt + random.uniform(0, 1)
        self.logger.warning(
            f'{self.platform} request failed. Retrying in {wait:.1f} seconds '
            f'(attempt {attempt}/{self.max_retries})'
        )
        return wait

    @staticmethod
    def _parse_retry_after(value: str, now: float) -> Optional[float]:
        """Parse a Retry-After header given as delta-seconds or an HTTP date."""
        value = value.strip()
        if value.isdigit():
            return float(value)
        try:
            retry_at = parsedate_to_datetime(value)
        except (TypeError, ValueError):
            return None
        if retry_at is None:
            return None
        return max(retry_at.timestamp() - now, 0.0)

    def inspect_quota(self, headers: Mapping[str, str]) -> Optional[int]:
        """Log quota headers and warn when remaining quota runs low.

        Returns:
            Remaining request count, if the response carries one
        """
        remaining = _header(headers, 'X-RateLimit-Remaining')
        limit = _header(headers, 'X-RateLimit-Limit')
        if remaining is None or limit is None:
            return None

        try:
            remaining_count = int(remaining)
            limit_count = int(limit)
        except ValueError:
            return None

        resource = _header(headers, 'X-RateLimit-Resource') or 'core'
        self.logger.debug(
            f'{self.platform} rate limit ({resource}): '
            f'{remaining_count}/{limit_count} remaining'
        )

        if (
            remaining_count <= RATE_LIMIT_LOW_WATER
            or remaining_count < limit_count * RATE_LIMIT_LOW_RATIO
        ):
            self.logger.warning(
                f'{self.platform} rate limit is getting low: {remaining_count} '
                f'requests remaining for {resource} operations'
            )
        return remaining_count
