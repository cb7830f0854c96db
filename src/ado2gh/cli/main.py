"""Main CLI entry point for the Azure DevOps to GitHub migration tool."""

import sys
import asyncio
from datetime import datetime
from typing import List, Optional
from pathlib import Path

import click
from rich.console import Console
from rich.panel import Panel
from rich.progress import Progress, SpinnerColumn, TextColumn
from rich.table import Table

from .. import __version__
from ..api.factory import ClientFactory
from ..config.config import Config
from ..exceptions import ConfigurationError
from ..migration.engine import MigrationEngine, MigrationRun
from ..models.project import Project
from ..models.status import MigrationStatus
from ..models.user import build_user_mapping, write_mapping_csv
from ..utils.logging import setup_logging
from ..utils.report import STATUS_LABELS, generate_markdown_report

console = Console()

STATUS_STYLES = {
    MigrationStatus.PENDING: 'white',
    MigrationStatus.IN_PROGRESS: 'blue',
    MigrationStatus.COMPLETED: 'green',
    MigrationStatus.FAILED: 'red',
    MigrationStatus.PARTIALLY_COMPLETED: 'yellow',
    MigrationStatus.SKIPPED: 'dim',
}


@click.group()
@click.version_option(version=__version__, prog_name='ado2gh')
@click.option(
    '--config',
    '-c',
    type=click.Path(exists=True),
    help='Path to configuration file',
)
@click.option(
    '--verbose',
    '-v',
    is_flag=True,
    help='Enable verbose logging',
)
@click.pass_context
def cli(ctx: click.Context, config: Optional[str], verbose: bool) -> None:
    """Azure DevOps to GitHub migration tool - migrate repositories, teams and memberships."""
    ctx.ensure_object(dict)

    # Store config path and verbose flag
    if config:
        ctx.obj['config_path'] = config
    ctx.obj['verbose'] = verbose

    # Setup basic logging first (will be enhanced later with config)
    log_level = 'DEBUG' if verbose else 'INFO'
    setup_logging(log_level)


@cli.command()
@click.option(
    '--output',
    '-o',
    default='config.yaml',
    help='Output configuration file path',
)
@click.pass_context
def init(ctx: click.Context, output: str) -> None:
    """Initialize a new configuration file."""
    console.print(
        Panel.fit(
            '[bold green]ado2gh[/bold green]\nInitializing configuration...',
            border_style='green',
        )
    )

    try:
        Config.create_template(output)

        console.print(f'[green]✓[/green] Configuration template created at: {output}')
        console.print(
            f'[yellow]Please edit {output} with your Azure DevOps and GitHub details[/yellow]'
        )

    except OSError as e:
        console.print(f'[red]✗[/red] Failed to create configuration: {e}')
        sys.exit(1)


@cli.command()
@click.pass_context
def assess(ctx: click.Context) -> None:
    """Assess what is already migrated without changing anything."""
    console.print(
        Panel.fit(
            '[bold cyan]ado2gh[/bold cyan]\nAssessing migration state...',
            border_style='cyan',
        )
    )

    try:
        config = _load_config(ctx)
        _setup_logging_with_config(ctx, config)

        projects = asyncio.run(_run_assessment(config))
        _display_projects(projects)

    except Exception as e:
        console.print(f'[red]✗[/red] Assessment failed: {e}')
        if ctx.obj.get('verbose'):
            console.print_exception()
        sys.exit(1)


@cli.command()
@click.option(
    '--dry-run',
    is_flag=True,
    help='Assess only, without making changes',
)
@click.option(
    '--yes',
    '-y',
    is_flag=True,
    help='Do not ask for confirmation',
)
@click.option(
    '--report',
    'report_path',
    default=None,
    help='Markdown report path (default: <timestamp>_migration_report.md)',
)
@click.pass_context
def migrate(
    ctx: click.Context, dry_run: bool, yes: bool, report_path: Optional[str]
) -> None:
    """Start the migration process."""
    console.print(
        Panel.fit(
            '[bold blue]ado2gh[/bold blue]\nStarting migration process...',
            border_style='blue',
        )
    )

    if dry_run:
        console.print(
            '[yellow]Running in dry-run mode - no changes will be made[/yellow]'
        )

    try:
        # Load configuration
        config = _load_config(ctx)

        # Setup logging with config file settings
        _setup_logging_with_config(ctx, config)

        if yes:
            config.migration.skip_confirmation = True

        run = asyncio.run(_run_migration(config, dry_run))

    except Exception as e:
        console.print(f'[red]✗[/red] Migration failed: {e}')
        if ctx.obj.get('verbose'):
            console.print_exception()
        sys.exit(1)

    if dry_run:
        _display_projects(run.assessment)
        return
    if not run.confirmed:
        console.print('[yellow]Migration cancelled[/yellow]')
        return
    if run.summary is None:
        console.print('[yellow]Nothing to migrate[/yellow]')
        return

    projects = run.final or run.assessment
    report_file = report_path or (
        f'{datetime.now():%Y%m%d%H%M}_migration_report.md'
    )
    generate_markdown_report(projects, output_path=report_file)

    _display_migration_summary(run)
    console.print(f'\n[blue]Report:[/blue] {report_file}')

    if run.summary.status == MigrationStatus.FAILED:
        sys.exit(1)


@cli.command()
@click.pass_context
def validate(ctx: click.Context) -> None:
    """Validate configuration and connectivity to both platforms."""
    console.print(
        Panel.fit(
            '[bold cyan]ado2gh[/bold cyan]\nValidating configuration...',
            border_style='cyan',
        )
    )

    try:
        # Load configuration
        config = _load_config(ctx)
        config.validate_required()
        console.print('[green]✓[/green] Configuration validation completed')

        engine = MigrationEngine(config)
        try:
            if not engine.test_connectivity():
                raise ConnectionError('Cannot connect to Azure DevOps or GitHub')
            asyncio.run(_check_organization(engine))
        finally:
            engine.source_client.close()
            engine.target_client.close()

        console.print('[green]✓[/green] Connectivity validation passed')

    except ConfigurationError as e:
        console.print(f'[red]✗[/red] Validation failed: {e}')
        for item in e.missing:
            console.print(f'  • {item}')
        sys.exit(1)
    except Exception as e:
        console.print(f'[red]✗[/red] Validation failed: {e}')
        if ctx.obj.get('verbose'):
            console.print_exception()
        sys.exit(1)


@cli.command()
@click.pass_context
def status(ctx: click.Context) -> None:
    """Show the migration configuration."""
    console.print(
        Panel.fit(
            '[bold magenta]ado2gh[/bold magenta]\nMigration Status',
            border_style='magenta',
        )
    )

    try:
        # Load configuration
        config = _load_config(ctx)

        # Setup logging with config file settings
        _setup_logging_with_config(ctx, config)

        # Create status table
        table = Table(title='Migration Configuration')
        table.add_column('Setting', style='cyan')
        table.add_column('Value', style='green')

        table.add_row(
            'Azure DevOps', f'{config.source.base_url}/{config.source.organization}'
        )
        table.add_row('Projects', ', '.join(config.source.projects) or 'all')
        table.add_row('GitHub Organization', str(config.target.organization))
        table.add_row('Repository Pattern', config.migration.repo_name_pattern)
        table.add_row('Team Pattern', config.migration.team_name_pattern)
        table.add_row('Migrate Teams', '✓' if config.migration.migrate_teams else '✗')
        table.add_row(
            'Users Mapping File', config.migration.users_mapping_file or '-'
        )
        table.add_row(
            'Concurrent Transfers', str(config.migration.max_concurrent_transfers)
        )
        table.add_row('Team Permission', config.migration.team_repository_permission)

        console.print(table)

    except Exception as e:
        console.print(f'[red]✗[/red] Failed to load status: {e}')
        if ctx.obj.get('verbose'):
            console.print_exception()
        sys.exit(1)


@cli.command('users-mapping')
@click.option(
    '--output',
    '-o',
    default=None,
    help='Output CSV path (default: <timestamp>_user_mapping.csv)',
)
@click.pass_context
def users_mapping(ctx: click.Context, output: Optional[str]) -> None:
    """Generate a user mapping CSV by matching source users to organization members."""
    try:
        config = _load_config(ctx)
        _setup_logging_with_config(ctx, config)

        output = output or f'{datetime.now():%Y%m%d%H%M}_user_mapping.csv'
        count = asyncio.run(_generate_user_mapping(config, output))

        console.print(
            f'[green]✓[/green] Wrote {count} user mappings to: {output}'
        )

    except Exception as e:
        console.print(f'[red]✗[/red] User mapping failed: {e}')
        if ctx.obj.get('verbose'):
            console.print_exception()
        sys.exit(1)


def _load_config(ctx: click.Context) -> Config:
    """Load configuration from file or environment."""
    config_path = ctx.obj.get('config_path')

    if config_path:
        if not Path(config_path).exists():
            raise FileNotFoundError(f'Configuration file not found: {config_path}')
        return Config.from_file(config_path)
    else:
        # Try to load from default locations
        default_paths = ['config.yaml', 'config.yml', '.ado2gh.yaml']
        for path in default_paths:
            if Path(path).exists():
                return Config.from_file(path)

        # Fall back to environment variables
        return Config.from_env()


def _setup_logging_with_config(ctx: click.Context, config: Config) -> None:
    """Setup logging with configuration from config file."""
    verbose = ctx.obj.get('verbose', False)

    # Use config logging settings, but allow verbose flag to override level
    log_level = 'DEBUG' if verbose else config.logging.level

    setup_logging(
        level=log_level,
        log_file=config.logging.file,
        log_format=None,
    )


async def _check_organization(engine: MigrationEngine) -> None:
    try:
        if not await engine.target_client.validate_organization_access():
            raise ConnectionError(
                f'Cannot access GitHub organization {engine.target_client.organization}'
            )
    finally:
        await engine.close()


async def _run_assessment(config: Config) -> List[Project]:
    engine = MigrationEngine(config)
    try:
        with Progress(
            SpinnerColumn(),
            TextColumn('[progress.description]{task.description}'),
            console=console,
            transient=True,
        ) as progress:
            progress.add_task('[cyan]Assessing projects...', total=None)
            return await engine.assess()
    finally:
        await engine.close()


async def _run_migration(config: Config, dry_run: bool = False) -> MigrationRun:
    """Run the migration with a spinner, pausing it for the confirmation prompt."""
    engine = MigrationEngine(config)
    progress = Progress(
        SpinnerColumn(),
        TextColumn('[progress.description]{task.description}'),
        console=console,
        transient=True,
    )

    def confirm(projects: List[Project]) -> bool:
        progress.stop()
        _display_projects(projects)
        answer = click.confirm('Proceed with the migration?', default=False)
        progress.start()
        return answer

    try:
        with progress:
            progress.add_task(
                f'{"[yellow]Dry run" if dry_run else "[blue]Migration"} in progress...',
                total=None,
            )
            return await engine.migrate(confirm=confirm, dry_run=dry_run)
    finally:
        await engine.close()


async def _generate_user_mapping(config: Config, output: str) -> int:
    source = ClientFactory.create_source_client(config.source)
    target = ClientFactory.create_target_client(config.target)
    try:
        source_users = await source.extract_users(config.source.projects)
        members = await target.list_org_members()
        identities = await target.list_saml_identities()
    finally:
        await source.aclose()
        await target.aclose()

    entries = build_user_mapping(source_users, members, identities)
    write_mapping_csv(output, entries, include_saml=bool(identities))
    return len(entries)


def _status_text(status: MigrationStatus) -> str:
    style = STATUS_STYLES[status]
    return f'[{style}]{STATUS_LABELS[status]}[/{style}]'


def _display_projects(projects: List[Project]) -> None:
    """Display the status tree, one table per project."""
    if not projects:
        console.print('[yellow]No projects found[/yellow]')
        return

    for project in projects:
        table = Table(title=f'{project.name} ({_status_text(project.status)})')
        table.add_column('Type', style='cyan')
        table.add_column('Source')
        table.add_column('Target', style='blue')
        table.add_column('Status')
        table.add_column('Details', style='dim')

        for repository in project.repositories:
            table.add_row(
                repository.kind.value.upper(),
                repository.name,
                repository.target_name or '-',
                _status_text(repository.status),
                repository.error or '',
            )
        for team in project.teams:
            members = len(team.members)
            details = team.error or f'{members} members'
            table.add_row(
                'Team',
                team.name,
                team.target_name or '-',
                _status_text(team.status),
                details,
            )
        console.print(table)


def _display_migration_summary(run: MigrationRun) -> None:
    """Display migration summary results."""
    summary = run.summary

    # Create summary table
    table = Table(title='Migration Summary')
    table.add_column('Entity Type', style='cyan')
    table.add_column('Completed', style='green')
    table.add_column('Partial', style='yellow')
    table.add_column('Failed', style='red')
    table.add_column('Skipped', style='dim')
    table.add_column('Pending', style='white')

    for entity_type, counts in summary.counts.items():
        table.add_row(
            entity_type.title(),
            str(counts.get(MigrationStatus.COMPLETED.value, 0)),
            str(counts.get(MigrationStatus.PARTIALLY_COMPLETED.value, 0)),
            str(counts.get(MigrationStatus.FAILED.value, 0)),
            str(counts.get(MigrationStatus.SKIPPED.value, 0)),
            str(counts.get(MigrationStatus.PENDING.value, 0)),
        )

    console.print(table)
    console.print(f'\n[blue]Run status:[/blue] {_status_text(summary.status)}')

    if summary.completed_at:
        duration = summary.completed_at - summary.started_at
        console.print(f'[blue]Migration Duration:[/blue] {duration}')

    # Display errors from the final tree
    errors = []
    for project in run.final or run.assessment:
        for repository in project.repositories:
            if repository.status == MigrationStatus.FAILED:
                errors.append(f'{project.name}/{repository.name}: {repository.error}')
        for team in project.teams:
            if team.status == MigrationStatus.FAILED:
                errors.append(f'{project.name}/{team.name}: {team.error}')

    if errors:
        console.print(f'\n[red]Errors ({len(errors)}):[/red]')
        for error in errors[:5]:  # Show first 5 errors
            console.print(f'  • {error}')
        if len(errors) > 5:
            console.print(f'  ... and {len(errors) - 5} more errors')


def main() -> None:
    """Main entry point for the CLI application."""
    try:
        cli()
    except KeyboardInterrupt:
        console.print('\n[red]Migration interrupted by user[/red]')
        sys.exit(1)


if __name__ == '__main__':
    main()
