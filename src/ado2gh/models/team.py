"""Team entity models."""

from typing import List, Optional

from pydantic import BaseModel, Field

from .status import MigrationStatus


class TeamMember(BaseModel):
    """Source team member with its migration state."""

    id: str = Field(default='', description='Source identity ID')
    unique_name: str = Field(..., description='Source login or email')
    display_name: str = Field(default='', description='Display name')
    email: Optional[str] = Field(default=None, description='Email address')
    is_group: bool = Field(default=False, description='Member is a group')
    is_team_admin: bool = Field(default=False, description='Source team admin')

    target_username: Optional[str] = Field(
        default=None, description='Mapped target username'
    )
    status: MigrationStatus = Field(
        default=MigrationStatus.PENDING, description='Migration status'
    )
    error: Optional[str] = Field(default=None, description='Error message')


class Team(BaseModel):
    """Source team with its migration state."""

    id: str = Field(..., description='Source team ID')
    name: str = Field(..., description='Team name')
    description: Optional[str] = Field(default=None, description='Team description')
    url: Optional[str] = Field(default=None, description='Source team URL')
    members: List[TeamMember] = Field(
        default_factory=list, description='Team members in source order'
    )

    target_name: Optional[str] = Field(default=None, description='Target team slug')
    target_url: Optional[str] = Field(default=None, description='Target team URL')
    status: MigrationStatus = Field(
        default=MigrationStatus.PENDING, description='Migration status'
    )
    error: Optional[str] = Field(default=None, description='Error message')
