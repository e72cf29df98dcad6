"""
Scheduled job services.

This package contains the job lifecycle around the slot scheduler:
- lifecycle.py: Create, extend and cancel jobs
- query.py: Running/historical job listing with role-based visibility
- task_results.py: Executor-facing claim, result and deferral operations
- recipients.py: Recipient payload validation and snapshotting
"""

from .lifecycle import ScheduleOutcome, cancel_job, create_or_extend_job
from .query import list_running_jobs
from .task_results import claim_next_due_task, defer_task, record_task_result

__all__ = [
    'ScheduleOutcome', 'cancel_job', 'create_or_extend_job', 'list_running_jobs',
    'claim_next_due_task', 'defer_task', 'record_task_result'
]
