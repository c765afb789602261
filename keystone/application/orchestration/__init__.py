"""
Application Orchestration Package

Architectural Intent:
- Contains workflow orchestration components
- DAG-based step scheduling, bounded-concurrency sync and atomic rollback
"""

from keystone.application.orchestration.scheduler import StepScheduler
from keystone.application.orchestration.rollback import (
    RollbackCoordinator,
    RollbackReport,
)
from keystone.application.orchestration.synchronizer import (
    SyncOutcome,
    SyncTask,
    run_all,
    tasks_from,
)

__all__ = [
    "StepScheduler",
    "RollbackCoordinator",
    "RollbackReport",
    "SyncOutcome",
    "SyncTask",
    "run_all",
    "tasks_from",
]
