"""Data models for migration entities."""

from .status import MigrationStatus, TERMINAL_STATUSES, aggregate_status
from .results import OperationOutcome, OperationResult, TransferResult
from .repository import Branch, Repository, RepositoryKind
from .team import Team, TeamMember
from .project import Project
from .user import (
    IdentityMapping,
    MappingEntry,
    SamlIdentity,
    TargetUser,
    build_user_mapping,
    write_mapping_csv,
)

__all__ = [
    'MigrationStatus',
    'TERMINAL_STATUSES',
    'aggregate_status',
    'OperationOutcome',
    'OperationResult',
    'TransferResult',
    'Branch',
    'Repository',
    'RepositoryKind',
    'Team',
    'TeamMember',
    'Project',
    'IdentityMapping',
    'MappingEntry',
    'SamlIdentity',
    'TargetUser',
    'build_user_mapping',
    'write_mapping_csv',
]
