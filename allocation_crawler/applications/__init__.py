"""Application Coordination Module"""

from .coordinator import ApplicationCoordinator
from .models import (
    ACTIVE_RUN_STATUSES,
    TERMINAL_RUN_STATUSES,
    CreateRunOutcome,
    CreateRunResult,
    JobRun,
    RunArtifacts,
    RunStatus,
    merge_artifacts,
)
from .reconciler import LockReconciler, ReconcileReport

__all__ = [
    "ACTIVE_RUN_STATUSES",
    "TERMINAL_RUN_STATUSES",
    "ApplicationCoordinator",
    "CreateRunOutcome",
    "CreateRunResult",
    "JobRun",
    "LockReconciler",
    "ReconcileReport",
    "RunArtifacts",
    "RunStatus",
    "merge_artifacts",
]
