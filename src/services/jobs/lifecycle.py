"""
Job lifecycle: create, extend and cancel scheduled jobs.

This module contains functionality for:
- Validating schedule requests
- Merging new recipients into a running identity lookup job
- Creating new jobs and writing the quota window back to legacy accounts
- Cancelling jobs
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Optional
from flask import current_app
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm.exc import StaleDataError

from src.extensions import db
from src.models import AccountJobRef, ScheduledJob, User
from src.models.scheduled_job import (
    ACTION_ADD_FRIEND,
    ACTION_LOOKUP_IDENTITY,
    ACTION_SEND_MESSAGE,
    ACTION_TYPES
)
from src.services.caching import signal_schedule_change
from src.services.scheduler.accounts import AccountQuota, resolve_account_quota
from src.services.scheduler.quota_window import get_timezone
from src.services.scheduler.slot_scheduler import schedule_recipients
from src.utils.error_handling import (
    ConcurrencyConflict,
    JobNotFound,
    PermissionDenied,
    PersistenceError,
    SchedulingError,
    ValidationError
)
from .recipients import load_recipient_snapshots, parse_recipients

logger = logging.getLogger(__name__)

# Only identity lookups are appended to a running job
MERGEABLE_ACTIONS = frozenset({ACTION_LOOKUP_IDENTITY})

# Actions whose job keeps the message template
TEMPLATE_ACTIONS = frozenset({ACTION_SEND_MESSAGE, ACTION_ADD_FRIEND})


@dataclass
class ScheduleOutcome:
    job: Optional[ScheduledJob]
    message: str
    added: int = 0
    duplicates: int = 0
    missing_identity: int = 0
    merged: bool = False

    @property
    def mutated(self):
        return self.added > 0


def _utcnow() -> datetime:
    return datetime.utcnow()


def ensure_can_schedule(actor: Optional[User]):
    if actor is None or not actor.can_schedule:
        raise PermissionDenied("You are not allowed to manage schedules")


def clamp_actions_per_hour(value: Any) -> int:
    """Coerce the requested rate to an int in [1, MAX_ACTIONS_PER_HOUR]."""
    default = current_app.config.get('DEFAULT_ACTIONS_PER_HOUR', 30)
    maximum = current_app.config.get('MAX_ACTIONS_PER_HOUR', 30)
    try:
        requested = int(float(value))
    except (TypeError, ValueError, OverflowError):
        requested = 0
    if requested == 0:
        requested = default
    return max(1, min(requested, maximum))


def _default_job_name(now: datetime) -> str:
    return f"Schedule {now.strftime('%d/%m/%Y')}"


def _format_duration(duration: timedelta) -> str:
    total_minutes = max(0, int(duration.total_seconds() // 60))
    return f"{total_minutes // 60} hours {total_minutes % 60} minutes"


def _missing_identity_note(count: int, action_type: str) -> str:
    # Identity lookups exist to find the missing handle
    if count == 0 or action_type == ACTION_LOOKUP_IDENTITY:
        return ''
    return f" {count} recipient(s) have no identity handle yet and will be reported at run time."


def _find_in_flight_job(account_ref: str, action_type: str) -> Optional[ScheduledJob]:
    return (
        ScheduledJob.query
        .filter(
            ScheduledJob.account_ref == account_ref,
            ScheduledJob.action_type == action_type,
            ScheduledJob.in_flight_clause()
        )
        .order_by(ScheduledJob.created_at.desc(), ScheduledJob.id.desc())
        .with_for_update()
        .first()
    )


def _extend_job(job, snapshots, quota: AccountQuota, actions_per_hour, tz, now) -> ScheduleOutcome:
    existing_phones = {task.recipient_phone for task in job.tasks if task.recipient_phone}
    fresh = [r for r in snapshots if not (r.phone and r.phone in existing_phones)]
    duplicates = len(snapshots) - len(fresh)

    if not fresh:
        logger.info(f"All {len(snapshots)} recipients already scheduled in job {job.id}")
        return ScheduleOutcome(
            job=job,
            message=f"All {len(snapshots)} recipients are already in the running schedule. Nothing to add.",
            duplicates=duplicates,
            merged=True
        )

    result = schedule_recipients(
        fresh,
        quota.ceiling,
        quota.current_window(now),
        actions_per_hour,
        job.action_type,
        start_time=job.estimated_completion_time,
        now=now,
        tz=tz
    )
    job.append_slots(result.slots)
    job.estimated_completion_time = result.estimated_completion
    quota.apply_usage(result.window)
    db.session.commit()

    message = f'Appended to running schedule "{job.name}": {len(fresh)} added'
    if duplicates:
        message += f", {duplicates} duplicate{'s' if duplicates != 1 else ''} skipped"
    message += '.'

    logger.info(f"Extended job {job.id} with {len(fresh)} tasks ({duplicates} duplicates skipped)")
    return ScheduleOutcome(job=job, message=message, added=len(fresh), duplicates=duplicates, merged=True)


def _create_job(actor, snapshots, quota: AccountQuota, action_type, actions_per_hour,
                job_name, message_template, tz, now) -> ScheduleOutcome:
    result = schedule_recipients(
        snapshots,
        quota.ceiling,
        quota.current_window(now),
        actions_per_hour,
        action_type,
        now=now,
        tz=tz
    )

    job = ScheduledJob(
        name=job_name or _default_job_name(now),
        action_type=action_type,
        account_ref=quota.account_ref,
        account_kind=quota.kind,
        actions_per_hour=actions_per_hour,
        message_template=message_template if action_type in TEMPLATE_ACTIONS else None,
        total_count=0,
        completed_count=0,
        failed_count=0,
        created_by=actor.id,
        created_at=now,
        estimated_completion_time=result.estimated_completion,
        is_manual_action=True
    )
    job.append_slots(result.slots)
    db.session.add(job)
    db.session.flush()

    db.session.add(AccountJobRef(account_ref=quota.account_ref, job_id=job.id))
    quota.apply_usage(result.window)
    db.session.commit()

    missing = sum(1 for r in snapshots if not r.external_id)
    message = (
        f'Created schedule "{job.name}" for {len(snapshots)} recipients. '
        f"Estimated completion in {_format_duration(result.estimated_completion - now)}."
    )
    message += _missing_identity_note(missing, action_type)

    logger.info(f"Created job {job.id} ({action_type}) with {len(snapshots)} tasks on account {quota.account_ref}")
    return ScheduleOutcome(job=job, message=message, added=len(snapshots), missing_identity=missing)


def _schedule_once(actor, account_ref, action_type, recipients, actions_per_hour,
                   job_name, message_template, now) -> ScheduleOutcome:
    now = now or _utcnow()
    tz = get_timezone(current_app.config.get('SCHEDULE_TIMEZONE', 'UTC'))

    quota = resolve_account_quota(account_ref, lock=True)
    ceiling = quota.ceiling
    if ceiling.per_hour < 1 or ceiling.per_day < 1:
        raise ValidationError("The selected account has no sending quota configured")

    snapshots = load_recipient_snapshots(recipients, quota.account_ref)

    if action_type in MERGEABLE_ACTIONS:
        existing = _find_in_flight_job(quota.account_ref, action_type)
        if existing is not None:
            return _extend_job(existing, snapshots, quota, actions_per_hour, tz, now)

    return _create_job(
        actor, snapshots, quota, action_type, actions_per_hour,
        job_name, message_template, tz, now
    )


def create_or_extend_job(
    actor: User,
    account_ref: str,
    action_type: str,
    recipients: Any,
    actions_per_hour: Any = None,
    job_name: Optional[str] = None,
    message_template: Optional[str] = None,
    now: Optional[datetime] = None
) -> ScheduleOutcome:
    """
    Schedule recipients on an account, appending to a running lookup job when possible.

    Args:
        actor: Authenticated user submitting the batch
        account_ref: Sending account id
        action_type: One of ACTION_TYPES
        recipients: Recipient list (or its JSON string)
        actions_per_hour: Requested cadence, clamped to [1, MAX_ACTIONS_PER_HOUR]
        job_name: Optional name for a new job
        message_template: Kept for sendMessage and addFriend jobs
        now: Current naive UTC time

    Returns:
        ScheduleOutcome describing the created or extended job

    Raises:
        PermissionDenied, ValidationError, AccountNotFound, PersistenceError,
        ConcurrencyConflict
    """
    ensure_can_schedule(actor)
    if action_type not in ACTION_TYPES:
        raise ValidationError(f"Unknown action type: {action_type}")
    if not account_ref:
        raise ValidationError("No sending account selected")
    parsed = parse_recipients(recipients)
    rate = clamp_actions_per_hour(actions_per_hour)

    attempts = max(1, current_app.config.get('QUOTA_WRITE_RETRIES', 3))
    for attempt in range(1, attempts + 1):
        try:
            outcome = _schedule_once(
                actor, account_ref, action_type, parsed, rate,
                job_name, message_template, now
            )
            break
        except StaleDataError:
            db.session.rollback()
            logger.warning(f"Concurrent update on account {account_ref}, retrying ({attempt}/{attempts})")
        except SchedulingError:
            db.session.rollback()
            raise
        except SQLAlchemyError as e:
            db.session.rollback()
            logger.error(f"Database error while scheduling on account {account_ref}: {str(e)}")
            raise PersistenceError("Could not save the schedule, please try again later")
    else:
        raise ConcurrencyConflict(
            "The account was updated by another request at the same time, please retry"
        )

    if outcome.mutated:
        signal_schedule_change()
    return outcome


def cancel_job(actor: User, job_id: str) -> str:
    """
    Delete a job with all its tasks and drop it from the account's action list.

    Returns:
        Confirmation message
    """
    ensure_can_schedule(actor)
    if not job_id:
        raise ValidationError("Missing schedule id")

    job = db.session.get(ScheduledJob, job_id)
    if job is None:
        raise JobNotFound(f"Schedule {job_id} not found")

    job_name = job.name
    try:
        AccountJobRef.query.filter_by(account_ref=job.account_ref, job_id=job.id).delete(
            synchronize_session=False
        )
        db.session.delete(job)
        db.session.commit()
    except StaleDataError:
        db.session.rollback()
        raise ConcurrencyConflict("The schedule changed while cancelling, please retry")
    except SQLAlchemyError as e:
        db.session.rollback()
        logger.error(f"Database error while cancelling job {job_id}: {str(e)}")
        raise PersistenceError("Could not cancel the schedule, please try again later")

    logger.info(f"Cancelled job {job_id} ({job_name})")
    signal_schedule_change()
    return f'Cancelled schedule "{job_name}".'
