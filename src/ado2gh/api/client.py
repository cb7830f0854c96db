"""Rate-limit aware HTTP client shared by the platform adapters."""

import asyncio
import json
import time
from typing import (
    Any,
    AsyncIterator,
    Callable,
    Collection,
    Dict,
    List,
    Optional,
    Sequence,
    Tuple,
)
from urllib.parse import urljoin

import aiohttp
import requests
from loguru import logger
from pydantic import BaseModel

from .exceptions import (
    APIAuthenticationError,
    APIError,
    APINotFoundError,
    APIPermissionError,
    APIRetryExhaustedError,
    APIValidationError,
    PaginationError,
)
from .rate_limiter import RateLimiter, RetryPolicy


USER_AGENT = 'ado2gh-migrate/0.1.0'
CONTINUATION_HEADER = 'x-ms-continuationtoken'


class APIResponse(BaseModel):
    """Standard API response wrapper."""

    status_code: int
    data: Any
    headers: Dict[str, str]
    success: bool
    found: bool = True


SessionFactory = Callable[[], aiohttp.ClientSession]


class PlatformClient:
    """HTTP client with platform-aware retry and backoff.

    Every outbound call goes through the same retry loop: transient
    responses (429, rate-limited 403, 5xx) and network errors are retried
    with the backoff chosen by :class:`RetryPolicy`; exhausting the retries
    raises :class:`APIRetryExhaustedError`. A 404 on ``GET`` is returned as
    an absent response instead of raised, which is what existence checks
    rely on.
    """

    platform = 'api'
    graphql_endpoint = 'graphql'

    def __init__(
        self,
        base_url: str,
        headers: Optional[Dict[str, str]] = None,
        timeout: int = 30,
        max_retries: int = 5,
        rate_limit_per_second: Optional[float] = None,
        default_params: Optional[Dict[str, Any]] = None,
        session_factory: Optional[SessionFactory] = None,
    ):
        """Initialize platform client.

        Args:
            base_url: API root URL
            headers: Headers sent with every request (authentication included)
            timeout: Request timeout in seconds
            max_retries: Retries after the first attempt
            rate_limit_per_second: Optional client-side request pacing
            default_params: Query parameters added to every request
            session_factory: Creates the aiohttp session used for async calls
        """
        self.base_url = base_url.rstrip('/')
        self.timeout = timeout
        self.default_params = dict(default_params or {})
        self.headers = {
            'Content-Type': 'application/json',
            'User-Agent': USER_AGENT,
        }
        self.headers.update(headers or {})

        self.retry_policy = RetryPolicy(max_retries=max_retries, platform=self.platform)
        self.rate_limiter = (
            RateLimiter(rate_limit_per_second) if rate_limit_per_second else None
        )

        self.session = requests.Session()
        self.session.headers.update(self.headers)

        self._session_factory = session_factory or self._default_session_factory
        self._async_session: Optional[aiohttp.ClientSession] = None

        self.logger = logger.bind(component=self.__class__.__name__)

    @property
    def max_retries(self) -> int:
        return self.retry_policy.max_retries

    def _default_session_factory(self) -> aiohttp.ClientSession:
        return aiohttp.ClientSession(
            headers=self.headers,
            timeout=aiohttp.ClientTimeout(total=self.timeout),
        )

    def _build_url(self, endpoint: str) -> str:
        """Build full API URL from endpoint.

        Args:
            endpoint: API endpoint path

        Returns:
            Full API URL
        """
        if endpoint.startswith(('http://', 'https://')):
            return endpoint
        return urljoin(self.base_url + '/', endpoint.lstrip('/'))

    def _merge_params(self, params: Optional[Dict[str, Any]]) -> Dict[str, Any]:
        merged = dict(self.default_params)
        merged.update(params or {})
        return merged

    @staticmethod
    def _parse_body(text: str) -> Any:
        if not text:
            return None
        try:
            return json.loads(text)
        except (ValueError, json.JSONDecodeError):
            return text

    def _handle_response(
        self,
        method: str,
        status_code: int,
        headers: Dict[str, str],
        text: str,
        expected_statuses: Collection[int] = (),
    ) -> APIResponse:
        """Convert a raw response into an :class:`APIResponse` or raise.

        Args:
            method: HTTP method of the request
            status_code: Response status
            headers: Response headers
            text: Response body
            expected_statuses: Non-2xx statuses the caller interprets itself

        Returns:
            Standardized API response

        Raises:
            APIError: For error statuses the caller did not expect
        """
        data = self._parse_body(text)
        success = 200 <= status_code < 300

        if success or status_code in expected_statuses:
            return APIResponse(
                status_code=status_code, data=data, headers=headers, success=success
            )

        if status_code == 404:
            if method.upper() == 'GET':
                return APIResponse(
                    status_code=404,
                    data=None,
                    headers=headers,
                    success=False,
                    found=False,
                )
            raise APINotFoundError('Resource not found', status_code=404)

        message = f'HTTP {status_code}'
        if isinstance(data, dict):
            message = data.get('message') or data.get('error') or message
        elif data:
            message = f'HTTP {status_code}: {data}'
        response_data = data if isinstance(data, dict) else None

        if status_code == 401:
            raise APIAuthenticationError(
                'Authentication failed', status_code=401, response_data=response_data
            )
        if status_code == 403:
            raise APIPermissionError(
                f'Permission denied: {message}',
                status_code=403,
                response_data=response_data,
            )
        if status_code == 422:
            raise APIValidationError(
                f'Validation failed: {message}',
                status_code=422,
                response_data=response_data,
            )
        raise APIError(
            f'API request failed: {message}',
            status_code=status_code,
            response_data=response_data,
        )

    async def _send_async(
        self,
        method: str,
        url: str,
        params: Optional[Dict[str, Any]] = None,
        data: Optional[Any] = None,
    ) -> Tuple[int, Dict[str, str], str]:
        """Send one request and return status, headers and body text."""
        if self._async_session is None or self._async_session.closed:
            self._async_session = self._session_factory()

        async with self._async_session.request(
            method=method, url=url, params=params, json=data
        ) as response:
            text = await response.text()
            return response.status, dict(response.headers), text

    async def request_async(
        self,
        method: str,
        endpoint: str,
        params: Optional[Dict[str, Any]] = None,
        data: Optional[Any] = None,
        expected_statuses: Collection[int] = (),
    ) -> APIResponse:
        """Make an asynchronous API request with retries.

        Args:
            method: HTTP method
            endpoint: API endpoint
            params: Query parameters
            data: JSON request body
            expected_statuses: Non-2xx statuses returned instead of raised

        Returns:
            API response

        Raises:
            APIRetryExhaustedError: If transient failures outlast the retries
            APIError: For non-retryable error statuses
        """
        url = self._build_url(endpoint)
        merged_params = self._merge_params(params)
        attempt = 0

        while True:
            if self.rate_limiter:
                await self.rate_limiter.acquire()

            self.logger.debug(f'{method} {url}')
            try:
                status, headers, text = await self._send_async(
                    method, url, params=merged_params, data=data
                )
            except (aiohttp.ClientError, asyncio.TimeoutError) as e:
                attempt += 1
                if attempt > self.max_retries:
                    raise APIRetryExhaustedError(
                        f'Network error after {attempt} attempts: {e}',
                        attempts=attempt,
                    )
                self.logger.warning(f'Network error during {method} {url}: {e}')
                await asyncio.sleep(self.retry_policy.compute_backoff(attempt))
                continue

            self.retry_policy.inspect_quota(headers)

            if status not in expected_statuses and self.retry_policy.should_retry(
                status, headers, text
            ):
                attempt += 1
                if attempt > self.max_retries:
                    raise APIRetryExhaustedError(
                        f'{method} {endpoint} failed with HTTP {status} '
                        f'after {attempt} attempts',
                        attempts=attempt,
                        status_code=status,
                    )
                if text:
                    self.logger.debug(f'Error response body: {text[:500]}')
                await asyncio.sleep(self.retry_policy.compute_backoff(attempt, headers))
                continue

            return self._handle_response(
                method, status, headers, text, expected_statuses
            )

    async def get_async(
        self, endpoint: str, params: Optional[Dict[str, Any]] = None, **kwargs
    ) -> APIResponse:
        """Make asynchronous GET request."""
        return await self.request_async('GET', endpoint, params=params, **kwargs)

    async def post_async(
        self, endpoint: str, data: Optional[Any] = None, **kwargs
    ) -> APIResponse:
        """Make asynchronous POST request."""
        return await self.request_async('POST', endpoint, data=data, **kwargs)

    async def put_async(
        self, endpoint: str, data: Optional[Any] = None, **kwargs
    ) -> APIResponse:
        """Make asynchronous PUT request."""
        return await self.request_async('PUT', endpoint, data=data, **kwargs)

    async def patch_async(
        self, endpoint: str, data: Optional[Any] = None, **kwargs
    ) -> APIResponse:
        """Make asynchronous PATCH request."""
        return await self.request_async('PATCH', endpoint, data=data, **kwargs)

    async def iter_continuation_pages(
        self,
        endpoint: str,
        params: Optional[Dict[str, Any]] = None,
        items_key: str = 'value',
    ) -> AsyncIterator[List[Any]]:
        """Yield pages of a collection that uses a continuation-token header.

        The server signals the next page through the continuation header; the
        walk stops when the header is absent. A failed page aborts the whole
        walk.
        """
        page_params = dict(params or {})
        while True:
            response = await self.get_async(endpoint, params=page_params)
            if not response.success or not isinstance(response.data, dict):
                raise PaginationError(
                    f'Failed to read page of {endpoint}',
                    status_code=response.status_code,
                )
            items = response.data.get(items_key)
            if items is None:
                raise PaginationError(f'Malformed page of {endpoint}: no {items_key}')
            yield items

            token = None
            for key, value in response.headers.items():
                if key.lower() == CONTINUATION_HEADER:
                    token = value
            if not token:
                return
            page_params['continuationToken'] = token

    async def iter_graphql_pages(
        self,
        query: str,
        connection_path: Sequence[str],
        variables: Optional[Dict[str, Any]] = None,
        allow_missing: bool = False,
    ) -> AsyncIterator[List[Any]]:
        """Yield the edges of a cursor-paginated GraphQL connection page by page.

        The query must declare an ``$after: String`` variable and select
        ``pageInfo { hasNextPage endCursor }`` and ``edges`` on the
        connection found at ``connection_path`` under ``data``.

        Args:
            query: GraphQL query text
            connection_path: Keys leading from ``data`` to the connection
            variables: Query variables besides the cursor
            allow_missing: Treat a null object on the path as an empty result

        Raises:
            PaginationError: If a page carries errors or lacks the connection
        """
        cursor = None
        page_number = 0
        while True:
            page_variables = dict(variables or {})
            page_variables['after'] = cursor
            response = await self.post_async(
                self.graphql_endpoint,
                data={'query': query, 'variables': page_variables},
            )
            page_number += 1
            payload = response.data
            if not response.success or not isinstance(payload, dict):
                raise PaginationError(
                    f'GraphQL page {page_number} failed',
                    status_code=response.status_code,
                )
            if payload.get('errors'):
                messages = '; '.join(
                    str(error.get('message', error)) for error in payload['errors']
                )
                raise PaginationError(
                    f'GraphQL page {page_number} returned errors: {messages}',
                    response_data=payload,
                )

            connection = payload.get('data')
            for key in connection_path:
                if not isinstance(connection, dict):
                    connection = None
                    break
                connection = connection.get(key)
            if connection is None:
                if allow_missing and page_number == 1:
                    return
                raise PaginationError(
                    f"GraphQL page {page_number} has no {'.'.join(connection_path)}",
                    response_data=payload,
                )

            yield connection.get('edges') or []

            page_info = connection.get('pageInfo') or {}
            if not page_info.get('hasNextPage'):
                return
            cursor = page_info.get('endCursor')
            if not cursor:
                raise PaginationError(
                    f'GraphQL page {page_number} signals a next page without a cursor'
                )

    async def collect_pages(self, pages: AsyncIterator[List[Any]]) -> List[Any]:
        """Concatenate the pages of a paginated walk in order."""
        items: List[Any] = []
        async for page in pages:
            items.extend(page)
        return items

    def get(
        self, endpoint: str, params: Optional[Dict[str, Any]] = None, **kwargs
    ) -> APIResponse:
        """Make synchronous GET request with the same retry policy.

        Args:
            endpoint: API endpoint
            params: Query parameters
            **kwargs: Additional request arguments

        Returns:
            API response
        """
        url = self._build_url(endpoint)
        merged_params = self._merge_params(params)
        attempt = 0

        while True:
            if self.rate_limiter:
                self.rate_limiter.acquire_sync()
            try:
                response = self.session.get(
                    url, params=merged_params, timeout=self.timeout, **kwargs
                )
            except requests.RequestException as e:
                attempt += 1
                if attempt > self.max_retries:
                    raise APIRetryExhaustedError(
                        f'Network error after {attempt} attempts: {e}',
                        attempts=attempt,
                    )
                self.logger.warning(f'Network error during GET {url}: {e}')
                time.sleep(self.retry_policy.compute_backoff(attempt))
                continue

            headers = dict(response.headers)
            self.retry_policy.inspect_quota(headers)
            if self.retry_policy.should_retry(
                response.status_code, headers, response.text
            ):
                attempt += 1
                if attempt > self.max_retries:
                    raise APIRetryExhaustedError(
                        f'GET {endpoint} failed with HTTP {response.status_code} '
                        f'after {attempt} attempts',
                        attempts=attempt,
                        status_code=response.status_code,
                    )
                time.sleep(self.retry_policy.compute_backoff(attempt, headers))
                continue

            return self._handle_response(
                'GET', response.status_code, headers, response.text
            )

    def close(self):
        """Close the synchronous client session."""
        self.session.close()

    async def aclose(self):
        """Close both client sessions."""
        if self._async_session is not None and not self._async_session.closed:
            await self._async_session.close()
        self.close()
        self.logger.debug('Client sessions closed')

    def __enter__(self):
        """Context manager entry."""
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit."""
        self.close()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.aclose()
