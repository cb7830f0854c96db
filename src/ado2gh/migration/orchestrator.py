"""Migration orchestrator: creation, transfer, team wiring and status rollup."""

import asyncio
from datetime import datetime
from typing import Dict, List, Optional

from loguru import logger
from pydantic import BaseModel, Field

from .reconciler import USER_NOT_MAPPED_ERROR, branch_mismatch_error
from ..api.exceptions import APIError
from ..api.target import TargetClient
from ..git.transfer import ContentTransferer
from ..models.project import Project
from ..models.repository import Repository, RepositoryKind
from ..models.results import OperationOutcome
from ..models.status import TERMINAL_STATUSES, MigrationStatus, aggregate_status
from ..models.team import Team, TeamMember
from ..models.user import IdentityMapping
from ..utils.report import summarize


GRANTABLE_STATUSES = (MigrationStatus.COMPLETED, MigrationStatus.PARTIALLY_COMPLETED)


class MigrationPlan(BaseModel):
    """Migration execution settings."""

    migrate_teams: bool = Field(default=True, description='Migrate teams')
    max_concurrent_transfers: int = Field(
        default=4, description='Concurrent repository transfers per project'
    )
    member_batch_size: int = Field(
        default=10, description='Concurrent team members to process'
    )
    team_repository_permission: str = Field(
        default='push', description='Permission granted to migrated teams'
    )
    default_branch_retries: int = Field(
        default=3, description='Attempts for default branch correction'
    )
    default_branch_retry_delay_seconds: float = Field(
        default=5, description='Delay between default branch attempts'
    )


class MigrationSummary(BaseModel):
    """Summary of a migration run."""

    status: MigrationStatus = Field(..., description='Run-level aggregate status')
    total_projects: int = Field(..., description='Projects processed')
    counts: Dict[str, Dict[str, int]] = Field(
        default_factory=dict, description='Entity counts by type and status'
    )

    # Timing
    started_at: datetime = Field(..., description='Migration start time')
    completed_at: Optional[datetime] = Field(
        default=None, description='Migration completion time'
    )

    class Config:
        """Pydantic configuration."""

        json_encoders = {datetime: lambda v: v.isoformat() if v else None}


class MigrationOrchestrator:
    """Replays unfinished entities of an assessed tree against the target.

    The tree is mutated in place. Repository transfers of a project run
    concurrently up to ``max_concurrent_transfers``; its teams are handled
    once every repository is terminal; the default branch pass runs after
    all projects.
    """

    def __init__(
        self,
        target: TargetClient,
        transferer: ContentTransferer,
        mapping: Optional[IdentityMapping] = None,
        plan: Optional[MigrationPlan] = None,
    ):
        """Initialize migration orchestrator.

        Args:
            target: Target platform adapter
            transferer: Content transferer
            mapping: Identity mapping for team members
            plan: Execution settings
        """
        self.target = target
        self.transferer = transferer
        self.mapping = mapping
        self.plan = plan or MigrationPlan()
        self.logger = logger.bind(component='MigrationOrchestrator')

    async def execute(self, projects: List[Project]) -> MigrationSummary:
        """Migrate every project of an assessed tree.

        Args:
            projects: Assessed projects

        Returns:
            Migration summary
        """
        self.logger.info(f'Starting migration of {len(projects)} projects')
        started_at = datetime.now()

        for project in projects:
            await self.migrate_project(project)

        await self.reconcile_default_branches(projects)

        for project in projects:
            project.recompute_status()

        summary = MigrationSummary(
            status=aggregate_status(project.status for project in projects),
            total_projects=len(projects),
            counts=summarize(projects),
            started_at=started_at,
            completed_at=datetime.now(),
        )
        self.logger.info(f'Migration finished with status {summary.status.value}')
        return summary

    async def migrate_project(self, project: Project) -> MigrationStatus:
        """Migrate the unfinished repositories, then teams, of one project."""
        self.logger.info(f'Migrating project: {project.name}')

        # Repositories whose source metadata failed to load keep their assessed error.
        repositories = [
            repo
            for repo in project.repositories
            if repo.status not in TERMINAL_STATUSES and not repo.source_error
        ]
        semaphore = asyncio.Semaphore(self.plan.max_concurrent_transfers)

        async def process_repository(repository):
            async with semaphore:
                await self.migrate_repository(project, repository)

        results = await asyncio.gather(
            *[process_repository(repo) for repo in repositories],
            return_exceptions=True,
        )
        for repository, result in zip(repositories, results):
            if isinstance(result, Exception):
                self.logger.error(f'Repository {repository.name} failed: {result}')
                repository.status = MigrationStatus.FAILED
                repository.error = str(result)

        if self.plan.migrate_teams:
            for team in project.teams:
                if team.status in TERMINAL_STATUSES:
                    continue
                try:
                    await self.migrate_team(project, team)
                except APIError as e:
                    self.logger.error(f'Team {team.name} failed: {e}')
                    team.status = MigrationStatus.FAILED
                    team.error = str(e)

        return project.recompute_status()

    async def migrate_repository(
        self, project: Project, repository: Repository
    ) -> MigrationStatus:
        """Ensure the target repository exists and transfer its content."""
        previous_status = repository.status
        repository.status = MigrationStatus.IN_PROGRESS

        try:
            created = await self.target.create_repository(
                repository.target_name,
                description=f'Migrated from Azure DevOps: {project.name}/{repository.name}',
            )
        except APIError as e:
            repository.status = MigrationStatus.FAILED
            repository.error = str(e)
            return repository.status

        if not created.ok:
            repository.status = MigrationStatus.FAILED
            repository.error = created.error
            return repository.status

        if isinstance(created.data, dict) and created.data.get('html_url'):
            repository.target_url = created.data['html_url']

        # Existing content is left alone; the default branch pass fixes it.
        if (
            created.outcome == OperationOutcome.ALREADY_EXISTS
            and repository.target_exists
            and not repository.target_empty
        ):
            repository.status = previous_status
            return repository.status

        result = await self.transferer.transfer(repository)
        repository.status = result.status
        repository.error = result.error
        return repository.status

    async def migrate_team(self, project: Project, team: Team) -> MigrationStatus:
        """Ensure the team exists, migrate its members and grant repository access."""
        team.status = MigrationStatus.IN_PROGRESS

        created = await self.target.create_team(
            team.target_name, description=team.description
        )
        if not created.ok:
            team.status = MigrationStatus.FAILED
            team.error = created.error
            return team.status
        if isinstance(created.data, dict) and created.data.get('html_url'):
            team.target_url = created.data['html_url']

        members = [m for m in team.members if m.status not in TERMINAL_STATUSES]
        settled_admins = [
            m
            for m in team.members
            if m.status == MigrationStatus.COMPLETED
            and m.is_team_admin
            and m.target_username
        ]
        batch_size = self.plan.member_batch_size
        for start in range(0, len(members), batch_size):
            batch = members[start : start + batch_size]
            await asyncio.gather(
                *[self.migrate_member(team.target_name, member) for member in batch]
            )
        for admin in settled_admins:
            await self.promote_admin(team.target_name, admin)

        team.status = aggregate_status(member.status for member in team.members)
        team.error = None

        grant_errors = await self.grant_repository_access(project, team)
        if grant_errors:
            team.error = '; '.join(grant_errors)
            if team.status == MigrationStatus.COMPLETED:
                team.status = MigrationStatus.PARTIALLY_COMPLETED

        self.logger.info(f'Team {team.target_name}: {team.status.value}')
        return team.status

    async def migrate_member(self, team_slug: str, member: TeamMember) -> MigrationStatus:
        """Add one member to a team; failures stay local to the member."""
        member.error = None
        if member.is_group:
            member.status = MigrationStatus.SKIPPED
            return member.status

        username = member.target_username
        if not username and self.mapping is not None:
            username = self.mapping.lookup(member.unique_name)
        if not username:
            member.status = MigrationStatus.FAILED
            member.error = USER_NOT_MAPPED_ERROR
            return member.status
        member.target_username = username
        member.status = MigrationStatus.IN_PROGRESS

        try:
            added = await self.target.add_team_member(team_slug, username)
            if added.ok and member.is_team_admin:
                added = await self.target.set_team_maintainer(team_slug, username)
            if not added.ok:
                member.status = MigrationStatus.FAILED
                member.error = added.error
                return member.status

            state = await self.target.get_team_membership_state(team_slug, username)
        except APIError as e:
            member.status = MigrationStatus.FAILED
            member.error = str(e)
            return member.status

        if state == 'active':
            member.status = MigrationStatus.COMPLETED
        elif state == 'pending':
            member.status = MigrationStatus.PENDING
        else:
            member.status = MigrationStatus.FAILED
            member.error = f'Membership of {username} in {team_slug} is {state}'
        return member.status

    async def promote_admin(self, team_slug: str, member: TeamMember) -> MigrationStatus:
        """Make an already active source team admin a maintainer of the team."""
        try:
            promoted = await self.target.set_team_maintainer(
                team_slug, member.target_username
            )
        except APIError as e:
            member.status = MigrationStatus.FAILED
            member.error = str(e)
            return member.status

        if not promoted.ok:
            member.status = MigrationStatus.FAILED
            member.error = promoted.error
        return member.status

    async def grant_repository_access(self, project: Project, team: Team) -> List[str]:
        """Grant the team access to every transferred repository of the project.

        Returns:
            Error messages of the grants that failed
        """
        errors = []
        permission = self.plan.team_repository_permission
        for repository in project.repositories:
            if repository.status not in GRANTABLE_STATUSES:
                continue
            try:
                granted = await self.target.set_team_repository_permission(
                    team.target_name, repository.target_name, permission
                )
            except APIError as e:
                errors.append(f'{repository.target_name}: {e}')
                continue
            if not granted.ok:
                errors.append(f'{repository.target_name}: {granted.error}')
        return errors

    async def reconcile_default_branches(self, projects: List[Project]) -> None:
        """Align target default branches with their source after all transfers."""
        for project in projects:
            for repository in project.repositories:
                if (
                    repository.kind == RepositoryKind.TFVC
                    or not repository.default_branch
                    or repository.status not in GRANTABLE_STATUSES
                ):
                    continue
                await self._reconcile_default_branch(repository)

    async def _reconcile_default_branch(self, repository: Repository) -> None:
        source_branch = repository.default_branch
        current = None
        last_error = None

        for attempt in range(1, self.plan.default_branch_retries + 1):
            try:
                current = await self.target.get_default_branch(repository.target_name)
                if current == source_branch:
                    self._mark_branch_aligned(repository)
                    return

                updated = await self.target.set_default_branch(
                    repository.target_name, source_branch
                )
                if updated.ok:
                    current = source_branch
                    self._mark_branch_aligned(repository)
                    return
                last_error = updated.error
            except APIError as e:
                last_error = str(e)

            self.logger.warning(
                f'Default branch of {repository.target_name} not aligned '
                f'(attempt {attempt}/{self.plan.default_branch_retries}): {last_error}'
            )
            if attempt < self.plan.default_branch_retries:
                await asyncio.sleep(self.plan.default_branch_retry_delay_seconds)

        repository.status = MigrationStatus.PARTIALLY_COMPLETED
        repository.error = branch_mismatch_error(source_branch, current)
        if last_error:
            repository.error += f' ({last_error})'

    @staticmethod
    def _mark_branch_aligned(repository: Repository) -> None:
        if repository.error and repository.error.startswith('Default branch mismatch'):
            repository.error = None
            if repository.status == MigrationStatus.PARTIALLY_COMPLETED:
                repository.status = MigrationStatus.COMPLETED
