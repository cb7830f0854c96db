"""Migration status values and the aggregate rule."""

from enum import Enum
from typing import Iterable


class MigrationStatus(str, Enum):
    """Migration status enumeration."""

    PENDING = 'pending'
    IN_PROGRESS = 'in_progress'
    COMPLETED = 'completed'
    FAILED = 'failed'
    PARTIALLY_COMPLETED = 'partially_completed'
    SKIPPED = 'skipped'


# Never revisited by the transfer phase within a run.
TERMINAL_STATUSES = frozenset({MigrationStatus.COMPLETED, MigrationStatus.SKIPPED})


def aggregate_status(statuses: Iterable[MigrationStatus]) -> MigrationStatus:
    """Derive a parent status from the statuses of its children.

    A parent without children is ``SKIPPED``.

    Args:
        statuses: Child statuses

    Returns:
        Aggregate status
    """
    statuses = list(statuses)
    if not statuses:
        return MigrationStatus.SKIPPED

    all_done = all(status in TERMINAL_STATUSES for status in statuses)
    any_completed = MigrationStatus.COMPLETED in statuses
    any_failed = MigrationStatus.FAILED in statuses

    if any_failed and all_done:
        return MigrationStatus.PARTIALLY_COMPLETED
    if any_failed:
        return MigrationStatus.FAILED
    if all_done and any_completed:
        return MigrationStatus.COMPLETED
    if all_done:
        return MigrationStatus.SKIPPED
    return MigrationStatus.PARTIALLY_COMPLETED
