"""Migration engine - main entry point for migration operations."""

from typing import Callable, List, Optional

from loguru import logger
from pydantic import BaseModel, Field

from ..api.factory import ClientFactory
from ..api.source import SourceClient
from ..api.target import TargetClient
from ..config.config import Config
from ..git.transfer import ContentTransferer
from ..models.project import Project
from ..models.user import IdentityMapping
from ..utils.naming import NameResolver
from .orchestrator import MigrationOrchestrator, MigrationPlan, MigrationSummary
from .reconciler import EntityReconciler


ConfirmCallback = Callable[[List[Project]], bool]


class MigrationRun(BaseModel):
    """Result of a migrate invocation."""

    assessment: List[Project] = Field(
        default_factory=list, description='Tree assessed before migrating'
    )
    summary: Optional[MigrationSummary] = Field(
        default=None, description='Summary, absent when nothing ran'
    )
    final: List[Project] = Field(
        default_factory=list, description='Tree re-assessed after migrating'
    )
    confirmed: bool = Field(default=True, description='Migration was confirmed')
    dry_run: bool = Field(default=False, description='Migration was a dry run')


class MigrationEngine:
    """Main migration engine that coordinates the entire migration process."""

    def __init__(
        self,
        config: Config,
        source_client: Optional[SourceClient] = None,
        target_client: Optional[TargetClient] = None,
        transferer: Optional[ContentTransferer] = None,
    ):
        """Initialize migration engine.

        Args:
            config: Migration configuration
            source_client: Source adapter (built from config by default)
            target_client: Target adapter (built from config by default)
            transferer: Content transferer (built from config by default)

        Raises:
            ConfigurationError: If required settings are missing
        """
        config.validate_required()
        self.config = config
        self.logger = logger.bind(component='MigrationEngine')

        self.source_client = source_client or ClientFactory.create_source_client(
            config.source
        )
        self.target_client = target_client or ClientFactory.create_target_client(
            config.target
        )

        migration = config.migration
        self.mapping = None
        if migration.users_mapping_file:
            self.mapping = IdentityMapping.from_csv(migration.users_mapping_file)
            self.logger.info(f'Loaded {len(self.mapping)} user mappings')

        self.resolver = NameResolver(
            org_name=config.target.organization,
            repo_pattern=migration.repo_name_pattern,
            team_pattern=migration.team_name_pattern,
        )
        self.reconciler = EntityReconciler(
            self.source_client,
            self.target_client,
            self.resolver,
            mapping=self.mapping,
            include_teams=migration.migrate_teams,
        )
        self.transferer = transferer or ContentTransferer(
            target_organization=config.target.organization,
            target_token=config.target.token,
            source_pat=config.source.pat,
            git_host=config.target.git_host,
            working_dir=config.git.working_dir,
            timeout=config.git.timeout,
            probe_timeout=config.git.probe_timeout,
            push_retries=migration.push_retries,
            retry_delay_seconds=migration.retry_delay_seconds,
            disable_ssl_verify=config.git.disable_ssl_verify,
            use_pat_for_clone=config.git.use_pat_for_clone,
            cleanup_temp=config.git.cleanup_temp,
        )
        self.orchestrator = MigrationOrchestrator(
            self.target_client,
            self.transferer,
            mapping=self.mapping,
            plan=self._create_plan(),
        )

    def _create_plan(self) -> MigrationPlan:
        """Create migration plan from configuration.

        Returns:
            Migration plan
        """
        migration = self.config.migration
        return MigrationPlan(
            migrate_teams=migration.migrate_teams,
            max_concurrent_transfers=migration.max_concurrent_transfers,
            member_batch_size=migration.member_batch_size,
            team_repository_permission=migration.team_repository_permission,
            default_branch_retries=migration.default_branch_retries,
            default_branch_retry_delay_seconds=migration.default_branch_retry_delay_seconds,
        )

    async def assess(self) -> List[Project]:
        """Assess the configured projects against the target organization.

        Raises:
            ConnectionError: If the target organization is not accessible
        """
        await self._check_target_access()
        return await self.reconciler.assess(self.config.source.projects)

    async def migrate(
        self,
        confirm: Optional[ConfirmCallback] = None,
        dry_run: bool = False,
    ) -> MigrationRun:
        """Assess, migrate unfinished entities and re-assess.

        Args:
            confirm: Called with the assessment; migration runs only if it
                returns True. Skipped when confirmation is disabled.
            dry_run: Stop after the assessment

        Returns:
            Migration run with both assessments and the summary
        """
        self.logger.info('Starting Azure DevOps to GitHub migration')
        projects = await self.assess()
        run = MigrationRun(assessment=projects, dry_run=dry_run)

        if dry_run:
            self.logger.info('Dry run: no changes made')
            return run
        if not projects:
            self.logger.warning('No projects found to migrate')
            return run

        if confirm is not None and not self.config.migration.skip_confirmation:
            if not confirm(projects):
                self.logger.info('Migration cancelled')
                run.confirmed = False
                return run

        run.summary = await self.orchestrator.execute(projects)

        # Final report reflects live state, not the in-memory tree.
        run.final = await self.reconciler.assess(
            [project.name for project in projects]
        )
        self.logger.info('Migration completed')
        return run

    async def _check_target_access(self) -> None:
        if not await self.target_client.validate_organization_access():
            raise ConnectionError(
                f'Cannot access GitHub organization {self.target_client.organization}'
            )

    def test_connectivity(self) -> bool:
        """Test connectivity to both platforms."""
        self.logger.info('Testing connectivity to Azure DevOps and GitHub')
        source_ok = self.source_client.test_connection()
        target_ok = self.target_client.test_connection()
        if source_ok and target_ok:
            self.logger.info('Connectivity tests passed')
        return source_ok and target_ok

    async def close(self) -> None:
        """Close both clients."""
        await self.source_client.aclose()
        await self.target_client.aclose()
