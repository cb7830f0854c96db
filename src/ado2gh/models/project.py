"""Project entity models."""

from typing import List, Optional

from pydantic import BaseModel, Field

from .repository import Repository
from .status import MigrationStatus, aggregate_status
from .team import Team


class Project(BaseModel):
    """Source project, owner of the repositories and teams migrated together."""

    id: str = Field(..., description='Source project ID')
    name: str = Field(..., description='Project name')
    description: Optional[str] = Field(default=None, description='Description')
    url: Optional[str] = Field(default=None, description='Source project URL')
    state: Optional[str] = Field(default=None, description='Source project state')
    visibility: Optional[str] = Field(default=None, description='Visibility')

    source_organization: str = Field(default='', description='Source organization')
    target_organization: str = Field(default='', description='Target organization')

    repositories: List[Repository] = Field(default_factory=list)
    teams: List[Team] = Field(default_factory=list)
    status: MigrationStatus = Field(
        default=MigrationStatus.PENDING, description='Aggregate migration status'
    )

    def recompute_status(self) -> MigrationStatus:
        """Recompute the aggregate status from repositories and teams."""
        children = [repo.status for repo in self.repositories]
        children.extend(team.status for team in self.teams)
        self.status = aggregate_status(children)
        return self.status
