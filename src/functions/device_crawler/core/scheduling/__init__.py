"""Recurring jobs, runtime state and the per-device task supervisor."""

from .cancellation import CancellationToken
from .job_scheduler import JobHandle, JobScheduler
from .state_table import StripedStateTable
from .supervisor import TaskRuntimeState, TaskStatus, TaskSupervisor

__all__ = [
    "CancellationToken",
    "JobHandle",
    "JobScheduler",
    "StripedStateTable",
    "TaskRuntimeState",
    "TaskStatus",
    "TaskSupervisor",
]
