"""
Read side of scheduled jobs, with role-based visibility.
"""

import logging
from typing import Any, Dict, List, Optional
from flask import current_app
from sqlalchemy.orm import joinedload, selectinload

from src.models import AccountPermission, ScheduledJob, ScheduledTask, User
from src.services.caching import RUNNING_SCHEDULES_TAG, get_cache_service
from src.services.scheduler.accounts import account_display_fields
from .lifecycle import ensure_can_schedule

logger = logging.getLogger(__name__)


def permitted_account_refs(actor: User) -> Optional[List[str]]:
    """Accounts a restricted actor may see, or None when the actor sees everything."""
    if not actor.is_restricted:
        return None
    return [p.account_ref for p in AccountPermission.query.filter_by(user_id=actor.id).all()]


def _load_running_jobs(actor: User, limit: int) -> List[Dict[str, Any]]:
    query = ScheduledJob.query
    account_refs = permitted_account_refs(actor)
    if account_refs is not None:
        if not account_refs:
            return []
        query = query.filter(ScheduledJob.account_ref.in_(account_refs))

    jobs = (
        query
        .options(
            selectinload(ScheduledJob.tasks).joinedload(ScheduledTask.result),
            joinedload(ScheduledJob.creator)
        )
        .order_by(ScheduledJob.created_at.desc(), ScheduledJob.id.desc())
        .limit(limit)
        .all()
    )

    accounts = account_display_fields(job.account_ref for job in jobs)
    payload = []
    for job in jobs:
        data = job.to_dict(include_tasks=True)
        data['account'] = accounts.get(job.account_ref, {'id': job.account_ref, 'kind': job.account_kind})
        data['creator'] = {
            'id': job.created_by,
            'name': job.creator.name if job.creator else None
        }
        payload.append(data)
    return payload


def list_running_jobs(actor: User) -> List[Dict[str, Any]]:
    """
    Most recent jobs visible to ``actor``, newest first.

    Served through the running-schedules cache tag, keyed per actor.
    """
    ensure_can_schedule(actor)
    limit = current_app.config.get('RUNNING_JOBS_LIMIT', 50)
    ttl = current_app.config.get('RUNNING_SCHEDULES_CACHE_TTL', 300)
    return get_cache_service().remember(
        RUNNING_SCHEDULES_TAG,
        actor.id,
        ttl,
        lambda: _load_running_jobs(actor, limit)
    )
