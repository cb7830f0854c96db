"""Tests for CLI interface."""

from datetime import datetime

import pytest
import yaml
from click.testing import CliRunner
from unittest.mock import AsyncMock, Mock, patch

from ado2gh.cli.main import cli
from ado2gh.migration.engine import MigrationRun
from ado2gh.migration.orchestrator import MigrationSummary
from ado2gh.models.project import Project
from ado2gh.models.repository import Repository
from ado2gh.models.status import MigrationStatus
from ado2gh.models.team import TeamMember
from ado2gh.models.user import TargetUser
from ado2gh.utils.report import summarize


@pytest.fixture
def config_file(tmp_path):
    path = tmp_path / 'config.yaml'
    path.write_text(
        yaml.dump(
            {
                'source': {'organization': 'contoso', 'pat': 'pat'},
                'target': {'organization': 'acme', 'token': 'token'},
                'migration': {'migrate_teams': False},
            }
        )
    )
    return str(path)


def make_engine(run=None):
    engine = Mock()
    engine.migrate = AsyncMock(return_value=run)
    engine.assess = AsyncMock(return_value=run.assessment if run else [])
    engine.close = AsyncMock()
    engine.test_connectivity = Mock(return_value=True)
    engine.target_client.validate_organization_access = AsyncMock(return_value=True)
    return engine


def make_run(status=MigrationStatus.COMPLETED):
    project = Project(
        id='p1',
        name='Sales',
        repositories=[
            Repository(id='r1', name='web', target_name='web', status=status)
        ],
    )
    project.recompute_status()
    summary = MigrationSummary(
        status=project.status,
        total_projects=1,
        counts=summarize([project]),
        started_at=datetime(2024, 1, 1, 12, 0),
        completed_at=datetime(2024, 1, 1, 12, 5),
    )
    return MigrationRun(assessment=[project], summary=summary, final=[project])


class TestCLI:
    """Test CLI commands."""

    def setup_method(self):
        """Set up test fixtures."""
        self.runner = CliRunner()

    def test_cli_help(self):
        """Test CLI help command."""
        result = self.runner.invoke(cli, ['--help'])

        assert result.exit_code == 0
        for command in ('init', 'assess', 'migrate', 'validate', 'status', 'users-mapping'):
            assert command in result.output

    def test_cli_version(self):
        """Test CLI version command."""
        result = self.runner.invoke(cli, ['--version'])

        assert result.exit_code == 0
        assert '0.1.0' in result.output

    def test_init_command(self, tmp_path):
        """Test init command."""
        config_path = str(tmp_path / 'test_config.yaml')

        result = self.runner.invoke(cli, ['init', '--output', config_path])

        assert result.exit_code == 0
        assert 'Configuration template created' in result.output
        with open(config_path, 'r') as f:
            content = f.read()
        assert 'source:' in content
        assert 'target:' in content
        assert 'migration:' in content

    def test_status_command(self, config_file):
        result = self.runner.invoke(cli, ['--config', config_file, 'status'])

        assert result.exit_code == 0
        assert 'acme' in result.output

    def test_validate_missing_configuration(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        for name in ('ADO_ORG', 'ADO_PAT', 'GH_ORG', 'GH_TOKEN'):
            monkeypatch.delenv(name, raising=False)

        result = self.runner.invoke(cli, ['validate'])

        assert result.exit_code == 1
        assert 'Validation failed' in result.output

    def test_validate_command(self, config_file):
        engine = make_engine()
        with patch('ado2gh.cli.main.MigrationEngine', return_value=engine):
            result = self.runner.invoke(cli, ['--config', config_file, 'validate'])

        assert result.exit_code == 0
        assert 'Connectivity validation passed' in result.output
        engine.close.assert_awaited_once()

    def test_validate_connectivity_failure(self, config_file):
        engine = make_engine()
        engine.test_connectivity = Mock(return_value=False)
        with patch('ado2gh.cli.main.MigrationEngine', return_value=engine):
            result = self.runner.invoke(cli, ['--config', config_file, 'validate'])

        assert result.exit_code == 1

    def test_assess_command(self, config_file):
        engine = make_engine(make_run())
        with patch('ado2gh.cli.main.MigrationEngine', return_value=engine):
            result = self.runner.invoke(cli, ['--config', config_file, 'assess'])

        assert result.exit_code == 0
        assert 'Sales' in result.output
        engine.close.assert_awaited_once()

    def test_migrate_writes_report(self, config_file, tmp_path):
        report = tmp_path / 'report.md'
        engine = make_engine(make_run())
        with patch('ado2gh.cli.main.MigrationEngine', return_value=engine):
            result = self.runner.invoke(
                cli,
                ['--config', config_file, 'migrate', '--yes', '--report', str(report)],
            )

        assert result.exit_code == 0
        assert 'Migration Summary' in result.output
        assert report.exists()
        assert '## Project: Sales' in report.read_text(encoding='utf-8')

    def test_migrate_failed_run_exits_nonzero(self, config_file, tmp_path):
        engine = make_engine(make_run(MigrationStatus.FAILED))
        with patch('ado2gh.cli.main.MigrationEngine', return_value=engine):
            result = self.runner.invoke(
                cli,
                [
                    '--config',
                    config_file,
                    'migrate',
                    '--yes',
                    '--report',
                    str(tmp_path / 'report.md'),
                ],
            )

        assert result.exit_code == 1
        assert 'Errors' in result.output

    def test_migrate_dry_run(self, config_file):
        run = make_run()
        run.dry_run = True
        run.summary = None
        engine = make_engine(run)
        with patch('ado2gh.cli.main.MigrationEngine', return_value=engine):
            result = self.runner.invoke(
                cli, ['--config', config_file, 'migrate', '--dry-run']
            )

        assert result.exit_code == 0
        assert 'dry-run mode' in result.output
        engine.migrate.assert_awaited_once()
        assert engine.migrate.await_args.kwargs['dry_run'] is True

    def test_migrate_cancelled(self, config_file):
        run = MigrationRun(confirmed=False)
        engine = make_engine(run)
        with patch('ado2gh.cli.main.MigrationEngine', return_value=engine):
            result = self.runner.invoke(cli, ['--config', config_file, 'migrate'])

        assert result.exit_code == 0
        assert 'Migration cancelled' in result.output

    def test_users_mapping_command(self, config_file, tmp_path):
        source = Mock()
        source.extract_users = AsyncMock(
            return_value=[TeamMember(unique_name='alice@co.com', display_name='Alice')]
        )
        source.aclose = AsyncMock()
        target = Mock()
        target.list_org_members = AsyncMock(
            return_value=[TargetUser(login='alice-gh', email='alice@co.com')]
        )
        target.list_saml_identities = AsyncMock(return_value=[])
        target.aclose = AsyncMock()
        output = tmp_path / 'mapping.csv'

        with patch('ado2gh.cli.main.ClientFactory') as factory:
            factory.create_source_client.return_value = source
            factory.create_target_client.return_value = target
            result = self.runner.invoke(
                cli,
                ['--config', config_file, 'users-mapping', '--output', str(output)],
            )

        assert result.exit_code == 0
        assert 'Wrote 1 user mappings' in result.output
        assert 'alice-gh' in output.read_text(encoding='utf-8')
        source.aclose.assert_awaited_once()
        target.aclose.assert_awaited_once()
