"""Tests for the rate-limit aware platform client."""

import json

import aiohttp
import pytest
from unittest.mock import AsyncMock, Mock, patch

from ado2gh.api.client import APIResponse, PlatformClient
from ado2gh.api.exceptions import (
    APIAuthenticationError,
    APIError,
    APINotFoundError,
    APIPermissionError,
    APIRetryExhaustedError,
    APIValidationError,
    PaginationError,
)


def ok(data=None, headers=None):
    """Build a raw ``(status, headers, text)`` response for ``_send_async``."""
    return 200, headers or {}, json.dumps(data) if data is not None else ''


class TestAPIResponse:
    """Test API response model."""

    def test_api_response_creation(self):
        """Test API response creation."""
        response = APIResponse(
            status_code=200,
            data={'id': 1, 'name': 'test'},
            headers={'Content-Type': 'application/json'},
            success=True,
        )

        assert response.status_code == 200
        assert response.data == {'id': 1, 'name': 'test'}
        assert response.success is True
        assert response.found is True


class TestPlatformClient:
    """Test the shared retry loop and response mapping."""

    def setup_method(self):
        """Set up test fixtures."""
        self.client = PlatformClient(
            'https://api.example.com/',
            headers={'Authorization': 'token test-token'},
            max_retries=3,
            default_params={'api-version': '7.1'},
        )
        # Retries must not actually wait.
        self.backoff = patch.object(
            self.client.retry_policy, 'compute_backoff', return_value=0
        )
        self.backoff_mock = self.backoff.start()

    def teardown_method(self):
        self.backoff.stop()
        self.client.close()

    def test_client_initialization(self):
        """Test client initialization."""
        assert self.client.base_url == 'https://api.example.com'
        assert self.client.max_retries == 3
        assert self.client.session.headers['Authorization'] == 'token test-token'
        assert self.client.rate_limiter is None

    def test_build_url(self):
        """Test URL building."""
        assert self.client._build_url('repos') == 'https://api.example.com/repos'
        assert self.client._build_url('/repos') == 'https://api.example.com/repos'
        assert (
            self.client._build_url('https://other.example.com/x')
            == 'https://other.example.com/x'
        )

    def test_merge_params_keeps_defaults(self):
        merged = self.client._merge_params({'$top': 100})
        assert merged == {'api-version': '7.1', '$top': 100}

    @pytest.mark.asyncio
    async def test_request_success(self):
        """Test a successful request is returned without retrying."""
        send = AsyncMock(return_value=ok({'id': 1}))
        with patch.object(self.client, '_send_async', send):
            response = await self.client.get_async('repos/1')

        assert response.success is True
        assert response.data == {'id': 1}
        send.assert_awaited_once()
        assert send.await_args.kwargs['params'] == {'api-version': '7.1'}

    @pytest.mark.asyncio
    @pytest.mark.parametrize('status', [429, 500, 502, 503])
    async def test_transient_status_is_retried(self, status):
        send = AsyncMock(side_effect=[(status, {}, ''), ok({'id': 1})])
        with patch.object(self.client, '_send_async', send):
            response = await self.client.get_async('repos/1')

        assert response.data == {'id': 1}
        assert send.await_count == 2
        self.backoff_mock.assert_called_once_with(1, {})

    @pytest.mark.asyncio
    async def test_rate_limited_forbidden_is_retried(self):
        headers = {'X-RateLimit-Remaining': '0', 'X-RateLimit-Reset': '1005'}
        send = AsyncMock(side_effect=[(403, headers, ''), ok({'id': 1})])
        with patch.object(self.client, '_send_async', send):
            response = await self.client.get_async('repos/1')

        assert response.success is True
        self.backoff_mock.assert_called_once_with(1, headers)

    @pytest.mark.asyncio
    async def test_plain_forbidden_raises_permission_error(self):
        send = AsyncMock(return_value=(403, {}, '{"message": "Must be an owner"}'))
        with patch.object(self.client, '_send_async', send):
            with pytest.raises(APIPermissionError) as exc_info:
                await self.client.get_async('orgs/acme')

        assert 'Must be an owner' in str(exc_info.value)
        send.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_retries_exhausted(self):
        send = AsyncMock(return_value=(503, {}, 'unavailable'))
        with patch.object(self.client, '_send_async', send):
            with pytest.raises(APIRetryExhaustedError) as exc_info:
                await self.client.get_async('repos/1')

        # One initial attempt plus three retries.
        assert send.await_count == 4
        assert exc_info.value.status_code == 503
        assert exc_info.value.attempts == 4

    @pytest.mark.asyncio
    async def test_network_error_is_retried(self):
        send = AsyncMock(
            side_effect=[aiohttp.ClientConnectionError('reset'), ok({'id': 1})]
        )
        with patch.object(self.client, '_send_async', send):
            response = await self.client.get_async('repos/1')

        assert response.data == {'id': 1}
        assert send.await_count == 2

    @pytest.mark.asyncio
    async def test_get_not_found_is_absent(self):
        send = AsyncMock(return_value=(404, {}, '{"message": "Not Found"}'))
        with patch.object(self.client, '_send_async', send):
            response = await self.client.get_async('repos/missing')

        assert response.found is False
        assert response.success is False
        assert response.data is None

    @pytest.mark.asyncio
    async def test_write_not_found_raises(self):
        send = AsyncMock(return_value=(404, {}, ''))
        with patch.object(self.client, '_send_async', send):
            with pytest.raises(APINotFoundError):
                await self.client.put_async('teams/x/repos/y', data={})

    @pytest.mark.asyncio
    async def test_expected_status_is_returned(self):
        send = AsyncMock(return_value=(409, {}, '{"message": "Git Repository is empty."}'))
        with patch.object(self.client, '_send_async', send):
            response = await self.client.get_async(
                'repos/x/commits', expected_statuses=(409,)
            )

        assert response.status_code == 409
        assert response.success is False

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        'status,error',
        [
            (401, APIAuthenticationError),
            (422, APIValidationError),
            (400, APIError),
        ],
    )
    async def test_error_status_mapping(self, status, error):
        send = AsyncMock(return_value=(status, {}, '{"message": "bad"}'))
        with patch.object(self.client, '_send_async', send):
            with pytest.raises(error) as exc_info:
                await self.client.post_async('repos', data={'name': 'x'})

        assert exc_info.value.status_code == status

    def test_sync_get_retries(self):
        """Test the synchronous path follows the same retry policy."""
        busy = Mock(status_code=503, headers={}, text='')
        done = Mock(status_code=200, headers={}, text='{"login": "octocat"}')
        with patch.object(self.client.session, 'get', side_effect=[busy, done]) as get:
            with patch('ado2gh.api.client.time.sleep') as sleep:
                response = self.client.get('user')

        assert response.data == {'login': 'octocat'}
        assert get.call_count == 2
        sleep.assert_called_once_with(0)


class TestContinuationPagination:
    """Test continuation-token pagination."""

    def setup_method(self):
        self.client = PlatformClient('https://dev.azure.com/org', max_retries=0)

    def teardown_method(self):
        self.client.close()

    @pytest.mark.asyncio
    async def test_follows_continuation_header(self):
        send = AsyncMock(
            side_effect=[
                ok({'value': [1, 2]}, {'x-ms-continuationtoken': 'abc'}),
                ok({'value': [3]}),
            ]
        )
        with patch.object(self.client, '_send_async', send):
            items = await self.client.collect_pages(
                self.client.iter_continuation_pages('_apis/projects')
            )

        assert items == [1, 2, 3]
        assert send.await_args_list[1].kwargs['params'] == {'continuationToken': 'abc'}

    @pytest.mark.asyncio
    async def test_malformed_page_aborts(self):
        send = AsyncMock(
            side_effect=[
                ok({'value': [1]}, {'x-ms-continuationtoken': 'abc'}),
                ok({'count': 0}),
            ]
        )
        with patch.object(self.client, '_send_async', send):
            with pytest.raises(PaginationError):
                await self.client.collect_pages(
                    self.client.iter_continuation_pages('_apis/projects')
                )


class TestGraphQLPagination:
    """Test cursor pagination over GraphQL connections."""

    PATH = ('organization', 'membersWithRole')

    def setup_method(self):
        self.client = PlatformClient('https://api.github.com', max_retries=0)

    def teardown_method(self):
        self.client.close()

    @staticmethod
    def page(edges, has_next, cursor=None):
        return ok(
            {
                'data': {
                    'organization': {
                        'membersWithRole': {
                            'pageInfo': {'hasNextPage': has_next, 'endCursor': cursor},
                            'edges': edges,
                        }
                    }
                }
            }
        )

    @pytest.mark.asyncio
    async def test_pages_are_concatenated_in_order(self):
        send = AsyncMock(
            side_effect=[
                self.page(['a', 'b'], True, 'c1'),
                self.page(['c'], True, 'c2'),
                self.page(['d'], False),
            ]
        )
        with patch.object(self.client, '_send_async', send):
            edges = await self.client.collect_pages(
                self.client.iter_graphql_pages('query', self.PATH, {'org': 'acme'})
            )

        assert edges == ['a', 'b', 'c', 'd']
        cursors = [call.kwargs['data']['variables']['after'] for call in send.await_args_list]
        assert cursors == [None, 'c1', 'c2']
        assert send.await_args_list[0].kwargs['data']['variables']['org'] == 'acme'

    @pytest.mark.asyncio
    async def test_page_with_errors_aborts(self):
        send = AsyncMock(
            side_effect=[
                self.page(['a'], True, 'c1'),
                ok({'errors': [{'message': 'Something went wrong'}]}),
            ]
        )
        with patch.object(self.client, '_send_async', send):
            with pytest.raises(PaginationError) as exc_info:
                await self.client.collect_pages(
                    self.client.iter_graphql_pages('query', self.PATH)
                )

        assert 'Something went wrong' in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_missing_connection_aborts(self):
        send = AsyncMock(return_value=ok({'data': {'organization': None}}))
        with patch.object(self.client, '_send_async', send):
            with pytest.raises(PaginationError):
                await self.client.collect_pages(
                    self.client.iter_graphql_pages('query', self.PATH)
                )

    @pytest.mark.asyncio
    async def test_missing_connection_allowed_on_first_page(self):
        send = AsyncMock(return_value=ok({'data': {'organization': None}}))
        with patch.object(self.client, '_send_async', send):
            edges = await self.client.collect_pages(
                self.client.iter_graphql_pages('query', self.PATH, allow_missing=True)
            )

        assert edges == []

    @pytest.mark.asyncio
    async def test_next_page_without_cursor_aborts(self):
        send = AsyncMock(return_value=self.page(['a'], True, None))
        with patch.object(self.client, '_send_async', send):
            with pytest.raises(PaginationError):
                await self.client.collect_pages(
                    self.client.iter_graphql_pages('query', self.PATH)
                )
