"""Repository entity models."""

from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field

from .status import MigrationStatus


class RepositoryKind(str, Enum):
    """Version-control system of a source repository."""

    GIT = 'git'
    TFVC = 'tfvc'


class Branch(BaseModel):
    """Source branch statistics."""

    name: str = Field(..., description='Branch name without refs/heads/')
    ahead_count: int = Field(default=0, description='Commits ahead of base')
    behind_count: int = Field(default=0, description='Commits behind base')
    is_base_version: bool = Field(default=False, description='Is the default branch')


class Repository(BaseModel):
    """Source repository with its migration state."""

    id: str = Field(..., description='Source repository ID')
    name: str = Field(..., description='Repository name')
    url: str = Field(default='', description='Source clone URL')
    project_name: str = Field(default='', description='Owning source project')
    kind: RepositoryKind = Field(
        default=RepositoryKind.GIT, description='Repository kind'
    )

    # Branch information
    default_branch: Optional[str] = Field(
        default=None, description='Default branch name'
    )
    branches: List[str] = Field(default_factory=list, description='Branch names')
    branch_count: int = Field(default=0, description='Number of branches')
    size: Optional[int] = Field(default=None, description='Repository size in bytes')

    # Target side
    target_name: Optional[str] = Field(default=None, description='Target repo name')
    target_url: Optional[str] = Field(default=None, description='Target repo URL')
    target_exists: bool = Field(default=False, description='Target repo exists')
    target_empty: bool = Field(default=True, description='Target repo has no content')
    status: MigrationStatus = Field(
        default=MigrationStatus.PENDING, description='Migration status'
    )
    error: Optional[str] = Field(default=None, description='Error message')
    source_error: Optional[str] = Field(
        default=None, description='Source metadata could not be read'
    )

    @property
    def is_tfvc(self) -> bool:
        return self.kind == RepositoryKind.TFVC
