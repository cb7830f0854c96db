"""Azure DevOps adapter: read access to projects, repositories and teams."""

import base64
from typing import Dict, Iterable, List, Optional
from urllib.parse import quote

from .client import PlatformClient
from .exceptions import APIError, APIPermissionError
from ..models.project import Project
from ..models.repository import Branch, Repository, RepositoryKind
from ..models.team import Team, TeamMember


API_VERSIONS = {
    'cloud': '7.1',
    '2022': '7.0',
    '2020': '6.0',
    '2019': '5.1',
}
DEFAULT_API_VERSION = API_VERSIONS['cloud']


def api_version_for(version: Optional[str]) -> str:
    """Map a server version label to the REST api-version it supports."""
    if not version:
        return DEFAULT_API_VERSION
    return API_VERSIONS.get(str(version).strip().lower(), DEFAULT_API_VERSION)


def _segment(value: str) -> str:
    return quote(value, safe='')


def is_permission_denied(error: APIError) -> bool:
    """Whether an error is an access denial rather than a transient failure."""
    if isinstance(error, APIPermissionError):
        return True
    return 'VS403403' in f'{error} {error.response_data or ""}'


class SourceClient(PlatformClient):
    """Typed read operations over the Azure DevOps REST API."""

    platform = 'Azure DevOps'

    def __init__(
        self,
        organization: str,
        pat: str,
        base_url: str = 'https://dev.azure.com',
        version: Optional[str] = 'cloud',
        max_retries: int = 3,
        **kwargs,
    ):
        """Initialize the source client.

        Args:
            organization: Azure DevOps organization (or collection) name
            pat: Personal access token
            base_url: Service or server root URL
            version: ``cloud`` or an on-premises server year
            max_retries: Retries after the first attempt
            **kwargs: Passed to :class:`PlatformClient`
        """
        self.organization = organization
        self.org_url = f"{base_url.rstrip('/')}/{organization}"
        credentials = base64.b64encode(f':{pat}'.encode('ascii')).decode('ascii')

        super().__init__(
            base_url=self.org_url,
            headers={
                'Authorization': f'Basic {credentials}',
                'Accept': 'application/json',
            },
            max_retries=max_retries,
            default_params={'api-version': api_version_for(version)},
            **kwargs,
        )

    async def list_projects(self) -> List[Project]:
        """List every project of the organization."""
        raw_projects = await self.collect_pages(
            self.iter_continuation_pages('_apis/projects', params={'$top': 100})
        )
        projects = [self._to_project(raw) for raw in raw_projects]
        self.logger.info(f'Found {len(projects)} projects in {self.organization}')
        return projects

    async def get_project(
        self,
        name: str,
        include_repos: bool = False,
        include_teams: bool = False,
        include_members: bool = False,
    ) -> Optional[Project]:
        """Get one project, optionally with its repositories and teams.

        Args:
            name: Project name
            include_repos: Load repositories with branch statistics
            include_teams: Load teams
            include_members: Load the members of each team

        Returns:
            Project, or None if it does not exist
        """
        response = await self.get_async(f'_apis/projects/{_segment(name)}')
        if not response.found or not isinstance(response.data, dict):
            self.logger.warning(f"Project '{name}' not found")
            return None

        project = self._to_project(response.data)
        if include_repos:
            project.repositories = await self.get_repositories(project.name)
        if include_teams:
            project.teams = await self.get_teams(project.name, include_members)
        return project

    def _to_project(self, raw: Dict) -> Project:
        name = raw.get('name', '')
        return Project(
            id=str(raw.get('id', '')),
            name=name,
            description=raw.get('description'),
            url=f'{self.org_url}/{quote(name)}',
            state=raw.get('state'),
            visibility=raw.get('visibility'),
            source_organization=self.organization,
        )

    async def get_repositories(self, project_name: str) -> List[Repository]:
        """List the Git repositories of a project plus its TFVC tree, if any."""
        response = await self.get_async(
            f'{_segment(project_name)}/_apis/git/repositories'
        )
        raw_repos = (response.data or {}).get('value', []) if response.found else []

        repositories = []
        for raw in raw_repos:
            name = raw.get('name')
            if not name:
                continue
            source_error = None
            try:
                branches = await self.get_branches(project_name, name)
            except APIError as e:
                self.logger.error(f'Failed to get branches for {name}: {e}')
                branches = []
                source_error = f'Failed to read branches: {e}'
            default = next((b.name for b in branches if b.is_base_version), None)
            if default is None and raw.get('defaultBranch'):
                default = raw['defaultBranch'].replace('refs/heads/', '')

            repositories.append(
                Repository(
                    id=str(raw.get('id', name)),
                    name=name,
                    url=f'{self.org_url}/{quote(project_name)}/_git/{quote(name)}',
                    project_name=project_name,
                    kind=RepositoryKind.GIT,
                    default_branch=default,
                    branches=[b.name for b in branches],
                    branch_count=len(branches),
                    size=raw.get('size'),
                    source_error=source_error,
                )
            )

        tfvc = await self._probe_tfvc(project_name)
        if tfvc is not None:
            repositories.append(tfvc)

        self.logger.info(
            f'Found {len(repositories)} repositories in project {project_name}'
        )
        return repositories

    async def get_branches(self, project_name: str, repo_name: str) -> List[Branch]:
        """Get branch statistics of a Git repository.

        A repository the credential may not read yields an empty list; any
        other failure propagates.
        """
        try:
            response = await self.get_async(
                f'{_segment(project_name)}/_apis/git/repositories/'
                f'{_segment(repo_name)}/stats/branches'
            )
        except APIError as e:
            if not is_permission_denied(e):
                raise
            self.logger.warning(f'No access to branches of {repo_name}: {e}')
            return []
        if not response.found:
            return []

        return [
            Branch(
                name=raw['name'].replace('refs/heads/', ''),
                ahead_count=raw.get('aheadCount', 0),
                behind_count=raw.get('behindCount', 0),
                is_base_version=bool(raw.get('isBaseVersion')),
            )
            for raw in (response.data or {}).get('value', [])
            if raw.get('name')
        ]

    async def _probe_tfvc(self, project_name: str) -> Optional[Repository]:
        """Detect a TFVC tree under the project root path."""
        try:
            response = await self.get_async(
                f'{_segment(project_name)}/_apis/tfvc/items',
                params={'scopePath': f'$/{project_name}'},
            )
        except APIError as e:
            if not is_permission_denied(e):
                raise
            self.logger.debug(f'No access to TFVC items of {project_name}: {e}')
            return None
        if not response.found or not (response.data or {}).get('value'):
            return None

        self.logger.info(f'Found TFVC repository in project {project_name}')
        source_error = None
        try:
            branches = await self.get_tfvc_branches(project_name)
        except APIError as e:
            self.logger.error(f'Failed to get TFVC branches for {project_name}: {e}')
            branches = []
            source_error = f'Failed to read TFVC branches: {e}'
        return Repository(
            id=f'tfvc_{project_name}',
            name=project_name,
            url=f'{self.org_url}/{quote(project_name)}',
            project_name=project_name,
            kind=RepositoryKind.TFVC,
            default_branch=branches[0] if branches else None,
            branches=branches,
            branch_count=len(branches),
            size=0,
            source_error=source_error,
        )

    async def get_tfvc_branches(self, project_name: str) -> List[str]:
        """List TFVC branch paths under ``$/<project>``, root branch first."""
        prefix = f'$/{project_name}'.lower()
        params = {'includeParent': 'true', 'includeChildren': 'true'}
        try:
            response = await self.get_async(
                f'{_segment(project_name)}/_apis/tfvc/branches', params=params
            )
        except APIError as e:
            if not is_permission_denied(e):
                raise
            self.logger.warning(f'No access to TFVC branches of {project_name}: {e}')
            return []

        paths = []
        for raw in (response.data or {}).get('value', []) if response.found else []:
            path = raw.get('path')
            if path and path.lower().startswith(prefix) and path not in paths:
                paths.append(path)
            for child in raw.get('children') or []:
                child_path = child.get('path')
                if child_path and child_path not in paths:
                    paths.append(child_path)
        return paths

    async def get_teams(
        self, project_name: str, include_members: bool = False
    ) -> List[Team]:
        """List the teams of a project."""
        raw_teams = await self.collect_pages(
            self.iter_continuation_pages(
                f'_apis/projects/{_segment(project_name)}/teams'
            )
        )

        teams = []
        for raw in raw_teams:
            name = raw.get('name')
            if not name or not name.strip():
                continue
            team = Team(
                id=str(raw.get('id', name)),
                name=name,
                description=raw.get('description'),
                url=f'{self.org_url}/{quote(project_name)}/_settings/teams',
            )
            if include_members:
                team.members = await self.get_team_members(project_name, name)
            teams.append(team)

        if teams:
            self.logger.info(f'Found {len(teams)} teams in project {project_name}')
        else:
            self.logger.warning(f'No teams found in project {project_name}')
        return teams

    async def get_team_members(
        self, project_name: str, team_name: str
    ) -> List[TeamMember]:
        """List the members of a team in source order."""
        raw_members = await self.collect_pages(
            self.iter_continuation_pages(
                f'_apis/projects/{_segment(project_name)}/teams/'
                f'{_segment(team_name)}/members'
            )
        )

        members = []
        for raw in raw_members:
            identity = raw.get('identity') or {}
            unique_name = identity.get('uniqueName')
            if not unique_name:
                continue
            members.append(
                TeamMember(
                    id=str(identity.get('id', '')),
                    unique_name=unique_name,
                    display_name=identity.get('displayName', ''),
                    email=unique_name if '@' in unique_name else None,
                    is_group=bool(identity.get('isContainer')),
                    is_team_admin=bool(raw.get('isTeamAdmin')),
                )
            )
        self.logger.debug(f'Found {len(members)} members in team {team_name}')
        return members

    async def extract_users(
        self, project_names: Optional[Iterable[str]] = None
    ) -> List[TeamMember]:
        """Collect distinct team members across projects.

        Args:
            project_names: Projects to scan; all projects when empty

        Returns:
            Members ordered by unique name
        """
        names = [name for name in (project_names or []) if name]
        if not names:
            names = [project.name for project in await self.list_projects()]

        users: Dict[str, TeamMember] = {}
        for project_name in names:
            for team in await self.get_teams(project_name, include_members=True):
                for member in team.members:
                    users.setdefault(member.unique_name.lower(), member)

        self.logger.info(f'Found {len(users)} unique users across {len(names)} projects')
        return [users[key] for key in sorted(users)]

    def test_connection(self) -> bool:
        """Test connection to the Azure DevOps organization.

        Returns:
            True if connection successful, False otherwise
        """
        try:
            response = self.get('_apis/projects', params={'$top': 1})
            return response.success
        except APIError as e:
            self.logger.error(f'Connection test failed: {e}')
            return False
