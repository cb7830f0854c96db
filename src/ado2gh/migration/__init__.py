"""Migration assessment and execution."""

from .engine import MigrationEngine, MigrationRun
from .orchestrator import MigrationOrchestrator, MigrationPlan, MigrationSummary
from .reconciler import EntityReconciler

__all__ = [
    'MigrationEngine',
    'MigrationRun',
    'MigrationOrchestrator',
    'MigrationPlan',
    'MigrationSummary',
    'EntityReconciler',
]
