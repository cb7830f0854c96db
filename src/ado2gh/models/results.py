"""Result values returned by adapters and the content transferer."""

from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field

from .status import MigrationStatus


class OperationOutcome(str, Enum):
    """Kind of result produced by a target-platform write."""

    CREATED = 'created'
    ALREADY_EXISTS = 'already_exists'
    UPDATED = 'updated'
    NOT_FOUND = 'not_found'
    FAILED = 'failed'


class OperationResult(BaseModel):
    """Outcome of an adapter operation."""

    outcome: OperationOutcome = Field(..., description='Operation outcome')
    data: Optional[Any] = Field(default=None, description='Response payload')
    error: Optional[str] = Field(default=None, description='Error message')

    @property
    def ok(self) -> bool:
        """Whether the target is now in the requested state."""
        return self.outcome in (
            OperationOutcome.CREATED,
            OperationOutcome.ALREADY_EXISTS,
            OperationOutcome.UPDATED,
        )


class TransferResult(BaseModel):
    """Outcome of a content transfer."""

    status: MigrationStatus = Field(..., description='Transfer status')
    error: Optional[str] = Field(default=None, description='Error message')
    attempts: int = Field(default=0, description='Push attempts made')

    @classmethod
    def completed(cls, attempts: int = 1) -> 'TransferResult':
        return cls(status=MigrationStatus.COMPLETED, attempts=attempts)

    @classmethod
    def failed(cls, error: str, attempts: int = 0) -> 'TransferResult':
        return cls(status=MigrationStatus.FAILED, error=error, attempts=attempts)

    @classmethod
    def skipped(cls, reason: Optional[str] = None) -> 'TransferResult':
        return cls(status=MigrationStatus.SKIPPED, error=reason)
