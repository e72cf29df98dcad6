"""
Executor-facing job store operations.

This module contains functionality for:
- Claiming the next due task so that no two executors run it
- Recording a task's execution result and updating the job statistics
- Deferring a claimed task for a later retry

A job that was cancelled while its task was running is not an error here:
writes against a missing job are dropped.
"""

import logging
from datetime import datetime, timedelta
from typing import Any, Dict, Optional
from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from src.extensions import db
from src.models import AccountJobRef, ScheduledJob, ScheduledTask, TaskResult
from src.services.caching import signal_schedule_change
from src.utils.error_handling import PersistenceError

logger = logging.getLogger(__name__)

# How many due tasks to try before giving up on a contended claim
CLAIM_BATCH_SIZE = 10


def claim_next_due_task(now: Optional[datetime] = None) -> Optional[Dict[str, Any]]:
    """
    Claim the earliest task due within the lookahead window.

    Returns:
        Dict with the task, its job settings and the recipient, or None
    """
    now = now or datetime.utcnow()
    lookahead = current_app.config.get('DUE_TASK_LOOKAHEAD_SECONDS', 60)
    horizon = now + timedelta(seconds=lookahead)

    try:
        candidates = (
            ScheduledTask.query
            .filter(ScheduledTask.completed.is_(False), ScheduledTask.scheduled_for <= horizon)
            .order_by(ScheduledTask.scheduled_for.asc(), ScheduledTask.position.asc())
            .limit(CLAIM_BATCH_SIZE)
            .all()
        )

        for candidate in candidates:
            claimed = (
                ScheduledTask.query
                .filter_by(id=candidate.id, completed=False)
                .update({'completed': True}, synchronize_session=False)
            )
            db.session.commit()
            if not claimed:
                logger.debug(f"Task {candidate.id} was claimed by another executor")
                continue

            task = db.session.get(ScheduledTask, candidate.id)
            job = task.job
            logger.info(f"Claimed task {task.id} of job {job.id} scheduled for {task.scheduled_for.isoformat()}")
            signal_schedule_change()
            return {
                'task': task.to_dict(),
                'job': {
                    'id': job.id,
                    'name': job.name,
                    'action_type': job.action_type,
                    'account_ref': job.account_ref,
                    'account_kind': job.account_kind,
                    'message_template': job.message_template,
                    'created_by': job.created_by
                }
            }
    except SQLAlchemyError as e:
        db.session.rollback()
        logger.error(f"Database error while claiming a due task: {str(e)}")
        raise PersistenceError("Could not claim a due task")

    return None


def record_task_result(
    job_id: str,
    task_id: str,
    success: bool,
    message: Optional[str] = None,
    error_code: Optional[int] = None,
    error_message: Optional[str] = None
) -> Optional[TaskResult]:
    """
    Store a task's outcome and count it against the job.

    Returns:
        The TaskResult, or None when the job or task no longer exists or the
        task already has a result
    """
    job = db.session.get(ScheduledJob, job_id)
    if job is None:
        logger.info(f"Result for task {task_id} dropped: job {job_id} no longer exists")
        return None

    task = ScheduledTask.query.filter_by(id=task_id, job_id=job_id).first()
    if task is None:
        logger.info(f"Result dropped: task {task_id} not found in job {job_id}")
        return None

    try:
        result = TaskResult(
            job_id=job_id,
            task_id=task_id,
            action_type=job.action_type,
            status=bool(success),
            message=message,
            error_code=error_code,
            error_message=error_message
        )
        db.session.add(result)
        db.session.flush()

        # Only the first result of a task counts
        recorded = ScheduledTask.query.filter_by(id=task_id, job_id=job_id, result_id=None).update(
            {'result_id': result.id, 'completed': True}, synchronize_session=False
        )
        if not recorded:
            db.session.rollback()
            logger.info(f"Result dropped: task {task_id} of job {job_id} already has a result")
            return None

        counter = ScheduledJob.completed_count if success else ScheduledJob.failed_count
        ScheduledJob.query.filter_by(id=job_id).update(
            {counter: counter + 1}, synchronize_session=False
        )
        db.session.commit()

        job = db.session.get(ScheduledJob, job_id)
        if job is not None and not job.in_flight:
            AccountJobRef.query.filter_by(account_ref=job.account_ref, job_id=job_id).delete(
                synchronize_session=False
            )
            db.session.commit()
            logger.info(f"Job {job_id} finished: {job.statistics}")
    except SQLAlchemyError as e:
        db.session.rollback()
        logger.error(f"Database error while recording result of task {task_id}: {str(e)}")
        raise PersistenceError("Could not record the task result")

    signal_schedule_change()
    return result


def defer_task(job_id: str, task_id: str, delay_seconds: int, now: Optional[datetime] = None) -> Optional[ScheduledTask]:
    """
    Re-open a claimed task ``delay_seconds`` from now.

    Missing jobs and tasks that already have a result are ignored.
    """
    now = now or datetime.utcnow()
    if db.session.get(ScheduledJob, job_id) is None:
        logger.info(f"Deferral of task {task_id} dropped: job {job_id} no longer exists")
        return None

    try:
        updated = (
            ScheduledTask.query
            .filter_by(id=task_id, job_id=job_id, result_id=None)
            .update(
                {'completed': False, 'scheduled_for': now + timedelta(seconds=max(0, int(delay_seconds)))},
                synchronize_session=False
            )
        )
        db.session.commit()
    except SQLAlchemyError as e:
        db.session.rollback()
        logger.error(f"Database error while deferring task {task_id}: {str(e)}")
        raise PersistenceError("Could not defer the task")

    if not updated:
        logger.info(f"Deferral dropped: task {task_id} of job {job_id} is missing or already finished")
        return None
    logger.info(f"Deferred task {task_id} of job {job_id} by {delay_seconds}s")
    signal_schedule_change()
    return db.session.get(ScheduledTask, task_id)
