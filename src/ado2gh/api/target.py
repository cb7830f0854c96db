"""GitHub adapter: organization repositories, teams and memberships."""

from typing import Any, Dict, List, Optional
from urllib.parse import quote

from .client import PlatformClient
from .exceptions import APIError, APINotFoundError
from ..models.results import OperationOutcome, OperationResult
from ..models.user import SamlIdentity, TargetUser


VALID_PERMISSIONS = ('pull', 'push', 'admin', 'maintain', 'triage')
VALID_MEMBER_ROLES = ('member', 'maintainer')
GRAPHQL_PAGE_SIZE = 100

ORG_MEMBERS_QUERY = """
query($org: String!, $first: Int!, $after: String) {
  organization(login: $org) {
    membersWithRole(first: $first, after: $after) {
      pageInfo { hasNextPage endCursor }
      edges {
        role
        node { id login name email }
      }
    }
  }
}
"""

SAML_IDENTITIES_QUERY = """
query($org: String!, $first: Int!, $after: String) {
  organization(login: $org) {
    samlIdentityProvider {
      externalIdentities(first: $first, after: $after) {
        pageInfo { hasNextPage endCursor }
        edges {
          node {
            user { login name email }
            samlIdentity { nameId }
          }
        }
      }
    }
  }
}
"""


def graphql_url_for(api_url: str) -> str:
    """GraphQL endpoint for a REST root (``/api/v3`` servers use ``/api/graphql``)."""
    api_url = api_url.rstrip('/')
    if api_url.endswith('/api/v3'):
        return api_url[: -len('/v3')] + '/graphql'
    return f'{api_url}/graphql'


class TargetClient(PlatformClient):
    """Typed operations over the GitHub REST and GraphQL APIs.

    Write operations return :class:`OperationResult` values; an entity that
    already exists is reported as ``ALREADY_EXISTS`` rather than raised.
    """

    platform = 'GitHub'

    def __init__(
        self,
        organization: str,
        token: str,
        api_url: str = 'https://api.github.com',
        max_retries: int = 5,
        default_member_role: str = 'member',
        **kwargs,
    ):
        """Initialize the target client.

        Args:
            organization: Target organization login
            token: Personal access token
            api_url: REST API root
            max_retries: Retries after the first attempt
            default_member_role: Role given to migrated team members
            **kwargs: Passed to :class:`PlatformClient`
        """
        self.organization = organization
        self.default_member_role = default_member_role
        self.graphql_endpoint = graphql_url_for(api_url)
        super().__init__(
            base_url=api_url,
            headers={
                'Authorization': f'Bearer {token}',
                'Accept': 'application/vnd.github+json',
                'X-GitHub-Api-Version': '2022-11-28',
            },
            max_retries=max_retries,
            **kwargs,
        )

    def _repo_path(self, repo_name: str) -> str:
        return f'repos/{self.organization}/{quote(repo_name, safe="")}'

    def _team_path(self, team_slug: str) -> str:
        return f'orgs/{self.organization}/teams/{quote(team_slug, safe="")}'

    # Organization

    async def validate_organization_access(self) -> bool:
        """Check that the organization exists and is visible to the token."""
        try:
            response = await self.get_async(f'orgs/{self.organization}')
        except APIError as e:
            self.logger.error(f'Cannot access organization {self.organization}: {e}')
            return False
        if not response.found:
            self.logger.error(f'Organization {self.organization} not found')
        return response.success

    # Repositories

    async def get_repository(self, repo_name: str) -> Optional[Dict[str, Any]]:
        response = await self.get_async(self._repo_path(repo_name))
        return response.data if response.found else None

    async def is_repository_empty(self, repo_name: str) -> bool:
        """Check whether a repository has no branches.

        GitHub answers 409 for a repository without any commits.
        """
        response = await self.get_async(
            f'{self._repo_path(repo_name)}/branches',
            params={'per_page': 1},
            expected_statuses=(409,),
        )
        if response.status_code == 409 or not response.found:
            return True
        return not response.data

    async def get_default_branch(self, repo_name: str) -> Optional[str]:
        repository = await self.get_repository(repo_name)
        if repository is None:
            return None
        return repository.get('default_branch')

    async def create_repository(
        self,
        repo_name: str,
        description: Optional[str] = None,
        private: bool = True,
    ) -> OperationResult:
        """Create an uninitialized organization repository.

        Args:
            repo_name: Repository name
            description: Repository description
            private: Create as private

        Returns:
            ``CREATED``, ``ALREADY_EXISTS`` or ``FAILED``
        """
        payload = {
            'name': repo_name,
            'description': description,
            'private': private,
            'auto_init': False,
        }
        response = await self.post_async(
            f'orgs/{self.organization}/repos', data=payload, expected_statuses=(422,)
        )
        if response.success:
            self.logger.info(f'Created repository {self.organization}/{repo_name}')
            return OperationResult(outcome=OperationOutcome.CREATED, data=response.data)

        existing = await self.get_repository(repo_name)
        if existing is not None:
            self.logger.warning(f'Repository {repo_name} already exists')
            return OperationResult(
                outcome=OperationOutcome.ALREADY_EXISTS, data=existing
            )
        return OperationResult(
            outcome=OperationOutcome.FAILED,
            error=f'Failed to create repository {repo_name}: '
            f'{self._error_message(response.data)}',
        )

    async def set_default_branch(
        self, repo_name: str, branch_name: str
    ) -> OperationResult:
        """Set the default branch after checking the branch exists."""
        branch = await self.get_async(
            f'{self._repo_path(repo_name)}/branches/{quote(branch_name, safe="")}'
        )
        if not branch.found:
            return OperationResult(
                outcome=OperationOutcome.NOT_FOUND,
                error=f"Branch '{branch_name}' does not exist in repository "
                f'{repo_name}',
            )

        response = await self.patch_async(
            self._repo_path(repo_name), data={'default_branch': branch_name}
        )
        self.logger.info(f'Set default branch of {repo_name} to {branch_name}')
        return OperationResult(outcome=OperationOutcome.UPDATED, data=response.data)

    # Teams

    async def get_team(self, team_slug: str) -> Optional[Dict[str, Any]]:
        response = await self.get_async(self._team_path(team_slug))
        return response.data if response.found else None

    async def create_team(
        self, team_name: str, description: Optional[str] = None
    ) -> OperationResult:
        """Create a closed team unless it already exists."""
        existing = await self.get_team(team_name)
        if existing is not None:
            self.logger.warning(f'Team {team_name} already exists')
            return OperationResult(
                outcome=OperationOutcome.ALREADY_EXISTS, data=existing
            )

        payload = {'name': team_name, 'description': description, 'privacy': 'closed'}
        response = await self.post_async(
            f'orgs/{self.organization}/teams', data=payload, expected_statuses=(422,)
        )
        if response.success:
            self.logger.info(f'Created team {team_name}')
            return OperationResult(outcome=OperationOutcome.CREATED, data=response.data)

        existing = await self.get_team(team_name)
        if existing is not None:
            return OperationResult(
                outcome=OperationOutcome.ALREADY_EXISTS, data=existing
            )
        return OperationResult(
            outcome=OperationOutcome.FAILED,
            error=f'Failed to create team {team_name}: '
            f'{self._error_message(response.data)}',
        )

    async def set_team_repository_permission(
        self, team_slug: str, repo_name: str, permission: str = 'push'
    ) -> OperationResult:
        """Grant a team access to a repository.

        Args:
            team_slug: Team slug
            repo_name: Repository name
            permission: One of ``pull``, ``push``, ``admin``, ``maintain``, ``triage``
        """
        if permission not in VALID_PERMISSIONS:
            return OperationResult(
                outcome=OperationOutcome.FAILED,
                error=f"Invalid permission '{permission}'. Valid values: "
                f"{', '.join(VALID_PERMISSIONS)}",
            )
        try:
            await self.put_async(
                f'{self._team_path(team_slug)}/repos/{self.organization}/'
                f'{quote(repo_name, safe="")}',
                data={'permission': permission},
            )
        except APINotFoundError:
            return OperationResult(
                outcome=OperationOutcome.NOT_FOUND,
                error=f'Team {team_slug} or repository {repo_name} not found',
            )
        self.logger.info(
            f'Granted {permission} on {repo_name} to team {team_slug}'
        )
        return OperationResult(outcome=OperationOutcome.UPDATED)

    # Memberships

    async def get_team_membership_state(
        self, team_slug: str, username: str
    ) -> Optional[str]:
        """Read a user's team membership state (``active``, ``pending``) or None."""
        response = await self.get_async(
            f'{self._team_path(team_slug)}/memberships/{quote(username, safe="")}'
        )
        if not response.found or not isinstance(response.data, dict):
            return None
        return response.data.get('state')

    async def add_team_member(
        self, team_slug: str, username: str, role: Optional[str] = None
    ) -> OperationResult:
        """Add or update a team membership.

        Args:
            team_slug: Team slug
            username: Target login
            role: ``member`` or ``maintainer``; defaults to the configured role
        """
        role = role or self.default_member_role
        if role not in VALID_MEMBER_ROLES:
            return OperationResult(
                outcome=OperationOutcome.FAILED, error=f"Invalid team role '{role}'"
            )
        try:
            response = await self.put_async(
                f'{self._team_path(team_slug)}/memberships/{quote(username, safe="")}',
                data={'role': role},
                expected_statuses=(422,),
            )
        except APINotFoundError:
            return OperationResult(
                outcome=OperationOutcome.NOT_FOUND,
                error=f'User {username} or team {team_slug} not found',
            )
        if not response.success:
            return OperationResult(
                outcome=OperationOutcome.FAILED,
                error=f'Failed to add {username} to team {team_slug}: '
                f'{self._error_message(response.data)}',
            )
        self.logger.debug(f'Added {username} to team {team_slug} as {role}')
        return OperationResult(outcome=OperationOutcome.UPDATED, data=response.data)

    async def set_team_maintainer(
        self, team_slug: str, username: str
    ) -> OperationResult:
        return await self.add_team_member(team_slug, username, role='maintainer')

    # Organization identities

    async def list_org_members(self) -> List[TargetUser]:
        """List every organization member with its role."""
        edges = await self.collect_pages(
            self.iter_graphql_pages(
                ORG_MEMBERS_QUERY,
                connection_path=('organization', 'membersWithRole'),
                variables={'org': self.organization, 'first': GRAPHQL_PAGE_SIZE},
            )
        )
        members = []
        for edge in edges:
            node = edge.get('node') or {}
            if not node.get('login'):
                continue
            members.append(
                TargetUser(
                    id=node.get('id'),
                    login=node['login'],
                    name=node.get('name'),
                    email=node.get('email') or None,
                    role=edge.get('role'),
                )
            )
        self.logger.info(f'Found {len(members)} members in {self.organization}')
        return members

    async def list_saml_identities(self) -> List[SamlIdentity]:
        """List SAML identities; empty when the organization has no SSO."""
        edges = await self.collect_pages(
            self.iter_graphql_pages(
                SAML_IDENTITIES_QUERY,
                connection_path=(
                    'organization',
                    'samlIdentityProvider',
                    'externalIdentities',
                ),
                variables={'org': self.organization, 'first': GRAPHQL_PAGE_SIZE},
                allow_missing=True,
            )
        )
        identities = []
        for edge in edges:
            node = edge.get('node') or {}
            user = node.get('user') or {}
            name_id = (node.get('samlIdentity') or {}).get('nameId')
            if not user.get('login') or not name_id:
                continue
            identities.append(
                SamlIdentity(
                    login=user['login'],
                    name=user.get('name'),
                    email=user.get('email') or None,
                    name_id=name_id,
                )
            )
        return identities

    @staticmethod
    def _error_message(data: Any) -> str:
        if isinstance(data, dict):
            message = data.get('message', '')
            errors = data.get('errors') or []
            details = '; '.join(
                str(error.get('message', error)) if isinstance(error, dict) else str(error)
                for error in errors
            )
            return f'{message} ({details})' if details else message
        return str(data or 'unknown error')

    def test_connection(self) -> bool:
        """Test the token against the authenticated-user endpoint.

        Returns:
            True if connection successful, False otherwise
        """
        try:
            response = self.get('user')
            return response.success
        except APIError as e:
            self.logger.error(f'Connection test failed: {e}')
            return False
