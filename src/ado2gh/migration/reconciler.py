"""Assessment of migration state from live source and target queries."""

from typing import List, Optional, Sequence

from loguru import logger

from ..api.exceptions import APIError
from ..api.source import SourceClient
from ..api.target import TargetClient
from ..exceptions import NameResolutionError
from ..models.project import Project
from ..models.repository import Repository, RepositoryKind
from ..models.status import MigrationStatus
from ..models.team import Team, TeamMember
from ..models.user import IdentityMapping
from ..utils.naming import NameResolver


NO_BRANCHES_ERROR = 'No branches to migrate'
USER_NOT_MAPPED_ERROR = 'User not found in mapping file'
GROUP_SKIPPED_ERROR = 'Groups are not migrated'


def branch_mismatch_error(source_branch: str, target_branch: str) -> str:
    return (
        f"Default branch mismatch: source '{source_branch}' vs target "
        f"'{target_branch}'"
    )


class EntityReconciler:
    """Derives the status of every repository, team and member.

    Status is recomputed from scratch on every pass; nothing is read from a
    previous run. Running the assessment twice without migrating in between
    yields the same tree.
    """

    def __init__(
        self,
        source: SourceClient,
        target: TargetClient,
        resolver: NameResolver,
        mapping: Optional[IdentityMapping] = None,
        include_teams: bool = True,
    ):
        """Initialize the reconciler.

        Args:
            source: Source platform adapter
            target: Target platform adapter
            resolver: Target name resolver
            mapping: Identity mapping used for team members
            include_teams: Assess teams as well as repositories
        """
        self.source = source
        self.target = target
        self.resolver = resolver
        self.mapping = mapping
        self.include_teams = include_teams
        self.logger = logger.bind(component='EntityReconciler')

    async def assess(
        self, project_names: Optional[Sequence[str]] = None
    ) -> List[Project]:
        """Build the status tree for the given projects (all when empty)."""
        names = [name for name in (project_names or []) if name]
        if not names:
            names = [project.name for project in await self.source.list_projects()]

        projects = []
        for name in names:
            try:
                project = await self.source.get_project(
                    name,
                    include_repos=True,
                    include_teams=self.include_teams,
                    include_members=self.include_teams,
                )
            except APIError as e:
                self.logger.error(f"Failed to read project '{name}': {e}")
                continue
            if project is None:
                continue

            await self.reconcile_project(project)
            projects.append(project)

        self.logger.info(f'Assessed {len(projects)} projects')
        return projects

    async def reconcile_project(self, project: Project) -> Project:
        """Resolve names and assess every repository and team of a project."""
        self.logger.info(f'Assessing project: {project.name}')
        project.target_organization = self.target.organization

        repositories = []
        for repository in project.repositories:
            try:
                repository.target_name = self.resolver.resolve_repository_name(
                    project.name, repository.name
                )
            except NameResolutionError as e:
                self.logger.warning(f'Skipping repository {repository.name}: {e}')
                continue
            await self.reconcile_repository(repository)
            repositories.append(repository)
        project.repositories = repositories

        teams = []
        for team in project.teams:
            try:
                team.target_name = self.resolver.resolve_team_name(
                    project.name, team.name
                )
            except NameResolutionError as e:
                self.logger.warning(f'Skipping team {team.name}: {e}')
                continue
            await self.reconcile_team(team)
            teams.append(team)
        project.teams = teams

        project.recompute_status()
        return project

    async def reconcile_repository(self, repository: Repository) -> MigrationStatus:
        """Assess one repository whose target name is already resolved."""
        repository.error = None
        repository.target_url = None
        name = repository.target_name

        if repository.source_error:
            repository.status = MigrationStatus.FAILED
            repository.error = repository.source_error
            return repository.status

        try:
            existing = await self.target.get_repository(name)
            if existing is not None:
                repository.target_exists = True
                repository.target_url = existing.get('html_url')
                repository.target_empty = await self.target.is_repository_empty(name)
        except APIError as e:
            repository.status = MigrationStatus.FAILED
            repository.error = str(e)
            return repository.status

        if existing is None:
            repository.target_exists = False
            repository.target_empty = True
            if repository.kind == RepositoryKind.GIT and repository.branch_count == 0:
                repository.status = MigrationStatus.SKIPPED
                repository.error = NO_BRANCHES_ERROR
            else:
                repository.status = MigrationStatus.PENDING
        elif repository.target_empty:
            repository.status = MigrationStatus.PARTIALLY_COMPLETED
        else:
            target_branch = existing.get('default_branch')
            if self.default_branch_matches(repository, target_branch):
                repository.status = MigrationStatus.COMPLETED
            else:
                repository.status = MigrationStatus.PARTIALLY_COMPLETED
                repository.error = branch_mismatch_error(
                    repository.default_branch, target_branch
                )

        self.logger.debug(f'{repository.name}: {repository.status.value}')
        return repository.status

    @staticmethod
    def default_branch_matches(
        repository: Repository, target_branch: Optional[str]
    ) -> bool:
        # TFVC branch paths have no git branch name to compare against.
        if repository.kind == RepositoryKind.TFVC or not repository.default_branch:
            return True
        return repository.default_branch == target_branch

    async def reconcile_team(self, team: Team) -> MigrationStatus:
        """Assess one team whose target name is already resolved."""
        team.error = None
        team.target_url = None

        try:
            existing = await self.target.get_team(team.target_name)
        except APIError as e:
            team.status = MigrationStatus.FAILED
            team.error = str(e)
            return team.status

        if existing is None:
            for member in team.members:
                self._prepare_member(member)
            team.status = (
                MigrationStatus.PENDING if team.members else MigrationStatus.SKIPPED
            )
            return team.status

        team.target_url = existing.get('html_url')
        team.status = MigrationStatus.PARTIALLY_COMPLETED
        for member in team.members:
            await self._assess_member(team.target_name, member)

        if all(
            member.status in (MigrationStatus.COMPLETED, MigrationStatus.SKIPPED)
            for member in team.members
        ):
            team.status = MigrationStatus.COMPLETED
        return team.status

    def _prepare_member(self, member: TeamMember) -> None:
        member.error = None
        if member.is_group:
            member.status = MigrationStatus.SKIPPED
            member.error = GROUP_SKIPPED_ERROR
            return
        member.target_username = self.lookup(member.unique_name)
        member.status = MigrationStatus.PENDING

    async def _assess_member(self, team_slug: str, member: TeamMember) -> None:
        self._prepare_member(member)
        if member.is_group:
            return
        if not member.target_username:
            member.status = MigrationStatus.FAILED
            member.error = USER_NOT_MAPPED_ERROR
            return

        try:
            state = await self.target.get_team_membership_state(
                team_slug, member.target_username
            )
        except APIError as e:
            member.status = MigrationStatus.FAILED
            member.error = str(e)
            return

        if state == 'active':
            member.status = MigrationStatus.COMPLETED
        elif state == 'pending':
            member.status = MigrationStatus.PENDING
        else:
            member.status = MigrationStatus.FAILED
            member.error = (
                f'{member.target_username} is not a member of team {team_slug}'
            )

    def lookup(self, unique_name: str) -> Optional[str]:
        if self.mapping is None:
            return None
        return self.mapping.lookup(unique_name)
