"""Markdown rendering and counting of a migration status tree."""

from datetime import datetime
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Union

from ..models.project import Project
from ..models.status import MigrationStatus


STATUS_LABELS = {
    MigrationStatus.PENDING: 'Pending',
    MigrationStatus.IN_PROGRESS: 'In progress',
    MigrationStatus.COMPLETED: 'Completed',
    MigrationStatus.FAILED: 'Failed',
    MigrationStatus.PARTIALLY_COMPLETED: 'Partially completed',
    MigrationStatus.SKIPPED: 'Skipped',
}


def format_size(size: Optional[int]) -> str:
    """Format a byte count with a binary unit."""
    value = float(size or 0)
    for unit in ('B', 'KB', 'MB', 'GB'):
        if value < 1024:
            return f'{value:.4g} {unit}'
        value /= 1024
    return f'{value:.4g} TB'


def summarize(projects: Iterable[Project]) -> Dict[str, Dict[str, int]]:
    """Count entities per type and status.

    Args:
        projects: Status tree

    Returns:
        ``{entity_type: {status: count}}`` for projects, repositories, teams
        and members; every status key is present
    """
    counts = {
        entity: {status.value: 0 for status in MigrationStatus}
        for entity in ('projects', 'repositories', 'teams', 'members')
    }
    for project in projects:
        counts['projects'][project.status.value] += 1
        for repository in project.repositories:
            counts['repositories'][repository.status.value] += 1
        for team in project.teams:
            counts['teams'][team.status.value] += 1
            for member in team.members:
                counts['members'][member.status.value] += 1
    return counts


def _link(text: str, url: Optional[str]) -> str:
    return f'[{text}]({url})' if url else text


def generate_markdown_report(
    projects: List[Project],
    output_path: Optional[Union[str, Path]] = None,
    title: str = 'Azure DevOps to GitHub Migration Report',
) -> str:
    """Render the status tree as Markdown, optionally writing it to a file.

    Args:
        projects: Status tree
        output_path: File to write the report to
        title: Report title

    Returns:
        Markdown text
    """
    lines = [f'# {title}', '', f"Generated: {datetime.now():%Y-%m-%d %H:%M:%S}", '']

    counts = summarize(projects)
    header = ' | '.join(STATUS_LABELS[status] for status in MigrationStatus)
    lines.extend(['## Summary', '', f'| Entity | {header} |'])
    lines.append('|---|' + '---|' * len(MigrationStatus))
    for entity, by_status in counts.items():
        row = ' | '.join(str(by_status[status.value]) for status in MigrationStatus)
        lines.append(f'| {entity.capitalize()} | {row} |')
    lines.append('')

    for project in projects:
        lines.extend([f'## Project: {_link(project.name, project.url)}', ''])
        lines.append(f'- **Status**: {STATUS_LABELS[project.status]}')
        lines.append(f'- **Target organization**: {project.target_organization}')
        lines.append(f'- **Repositories**: {len(project.repositories)}')
        lines.append(f'- **Teams**: {len(project.teams)}')
        lines.append('')

        if project.repositories:
            lines.extend(['### Repositories', ''])
            for repository in project.repositories:
                target = _link(repository.target_name or '-', repository.target_url)
                lines.append(f'- **{repository.name}** -> {target}')
                lines.append(f'  - **Type**: {repository.kind.value.upper()}')
                lines.append(f'  - **Size**: {format_size(repository.size)}')
                lines.append(
                    f"  - **Default branch**: {repository.default_branch or 'N/A'}"
                )
                lines.append(f'  - **Status**: {STATUS_LABELS[repository.status]}')
                if repository.error:
                    lines.append(f'  - **Error**: {repository.error}')
            lines.append('')

        if project.teams:
            lines.extend(['### Teams', ''])
            for team in project.teams:
                target = _link(team.target_name or '-', team.target_url)
                lines.append(f'- **{team.name}** -> {target}')
                lines.append(f'  - **Status**: {STATUS_LABELS[team.status]}')
                if team.error:
                    lines.append(f'  - **Error**: {team.error}')
                for member in team.members:
                    target_user = member.target_username or '-'
                    entry = (
                        f'  - {member.unique_name} -> {target_user}: '
                        f'{STATUS_LABELS[member.status]}'
                    )
                    if member.error:
                        entry += f' ({member.error})'
                    lines.append(entry)
            lines.append('')

    report = '\n'.join(lines)
    if output_path:
        path = Path(output_path)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(report, encoding='utf-8')
    return report
