"""Target resource name generation."""

import re
from typing import Optional

from loguru import logger

from ..exceptions import NameResolutionError


MAX_NAME_LENGTH = 100
NAME_PATTERN = re.compile(r'^[a-z0-9]([a-z0-9-]*[a-z0-9])?$')

_INVALID_CHARS = re.compile(r'[^a-z0-9-]')
_HYPHEN_RUNS = re.compile(r'-+')


def normalize(name: Optional[str], max_length: int = MAX_NAME_LENGTH) -> str:
    """Normalize a name to the character set accepted for repositories and teams.

    Args:
        name: Raw name
        max_length: Maximum length of the result

    Returns:
        Normalized name, possibly empty
    """
    if not name:
        return ''

    normalized = name.lower().replace(' ', '-').replace('_', '-')
    normalized = _INVALID_CHARS.sub('', normalized)
    normalized = _HYPHEN_RUNS.sub('-', normalized).strip('-')
    return normalized[:max_length].rstrip('-')


def is_valid_name(name: str) -> bool:
    return bool(NAME_PATTERN.match(name)) and len(name) <= MAX_NAME_LENGTH


class NameResolver:
    """Resolves target names from configurable patterns.

    Patterns may reference ``{orgName}``, ``{projectName}``, ``{repoName}``
    and ``{teamName}``.
    """

    def __init__(
        self,
        org_name: str = '',
        repo_pattern: str = '{repoName}',
        team_pattern: str = '{teamName}',
    ):
        self.org_name = org_name
        self.repo_pattern = repo_pattern
        self.team_pattern = team_pattern
        self.logger = logger.bind(component='NameResolver')

    def resolve_repository_name(self, project_name: str, repo_name: str) -> str:
        """Resolve the target repository name.

        An empty pattern falls back to ``{projectName}-{repoName}``, or the
        bare project name when the repository is named after its project.

        Raises:
            NameResolutionError: If the name normalizes to nothing
        """
        pattern = self.repo_pattern
        if not pattern:
            if repo_name.lower() == project_name.lower():
                pattern = '{projectName}'
            else:
                pattern = '{projectName}-{repoName}'
        return self._resolve(pattern, project_name, repo_name=repo_name)

    def resolve_team_name(self, project_name: str, team_name: str) -> str:
        """Resolve the target team name.

        Raises:
            NameResolutionError: If the name normalizes to nothing
        """
        pattern = self.team_pattern or '{teamName}'
        return self._resolve(pattern, project_name, team_name=team_name)

    def _resolve(
        self,
        pattern: str,
        project_name: str,
        repo_name: str = '',
        team_name: str = '',
    ) -> str:
        name = (
            pattern.replace('{orgName}', self.org_name)
            .replace('{projectName}', project_name)
            .replace('{repoName}', repo_name)
            .replace('{teamName}', team_name)
        )
        name = self._collapse_repeated_project(name, project_name)

        resolved = normalize(name)
        if not is_valid_name(resolved):
            raise NameResolutionError(
                f"Target name could not be generated from pattern '{pattern}' "
                f"for '{repo_name or team_name}' in project '{project_name}'"
            )
        self.logger.debug(f'Resolved {pattern!r} -> {resolved}')
        return resolved

    @staticmethod
    def _collapse_repeated_project(name: str, project_name: str) -> str:
        """Collapse every ``{project}-{project}`` run in ``name`` to one ``{project}``.

        Matches are case-insensitive and must not sit inside a longer word, so
        ``Proj-Projector`` is left alone.
        """
        if not project_name:
            return name
        escaped = re.escape(project_name)
        doubled = re.compile(
            rf'(?<![A-Za-z0-9]){escaped}-{escaped}(?![A-Za-z0-9])', re.IGNORECASE
        )
        while True:
            collapsed = doubled.sub(lambda _: project_name, name)
            if collapsed == name:
                return name
            name = collapsed
