"""Tests for report generation."""

from ado2gh.models.project import Project
from ado2gh.models.repository import Repository
from ado2gh.models.status import MigrationStatus
from ado2gh.models.team import Team, TeamMember
from ado2gh.utils.report import format_size, generate_markdown_report, summarize


def make_tree():
    project = Project(
        id='p1',
        name='Sales',
        target_organization='acme',
        repositories=[
            Repository(
                id='r1',
                name='web',
                target_name='sales-web',
                target_url='https://github.com/acme/sales-web',
                status=MigrationStatus.COMPLETED,
                size=2048,
            ),
            Repository(
                id='r2',
                name='api',
                target_name='sales-api',
                status=MigrationStatus.FAILED,
                error='Git push failed after 3 attempts',
            ),
        ],
        teams=[
            Team(
                id='t1',
                name='Core',
                target_name='core',
                status=MigrationStatus.FAILED,
                members=[
                    TeamMember(
                        unique_name='alice@co.com',
                        status=MigrationStatus.FAILED,
                        error='User not found in mapping file',
                    )
                ],
            )
        ],
    )
    project.recompute_status()
    return [project]


class TestSummarize:
    """Test status counting."""

    def test_counts_every_entity(self):
        counts = summarize(make_tree())

        assert counts['projects'][MigrationStatus.FAILED.value] == 1
        assert counts['repositories'][MigrationStatus.COMPLETED.value] == 1
        assert counts['repositories'][MigrationStatus.FAILED.value] == 1
        assert counts['teams'][MigrationStatus.FAILED.value] == 1
        assert counts['members'][MigrationStatus.FAILED.value] == 1
        assert counts['members'][MigrationStatus.SKIPPED.value] == 0

    def test_empty_tree(self):
        counts = summarize([])

        assert all(value == 0 for by_status in counts.values() for value in by_status.values())


class TestMarkdownReport:
    """Test Markdown rendering."""

    def test_report_content(self, tmp_path):
        path = tmp_path / 'reports' / 'report.md'

        report = generate_markdown_report(make_tree(), output_path=path)

        assert path.read_text(encoding='utf-8') == report
        assert '## Project: Sales' in report
        assert '[sales-web](https://github.com/acme/sales-web)' in report
        assert 'Git push failed after 3 attempts' in report
        assert 'alice@co.com -> -: Failed (User not found in mapping file)' in report

    def test_report_without_path(self):
        report = generate_markdown_report([])

        assert report.startswith('# Azure DevOps to GitHub Migration Report')

    def test_format_size(self):
        assert format_size(None) == '0 B'
        assert format_size(2048) == '2 KB'
