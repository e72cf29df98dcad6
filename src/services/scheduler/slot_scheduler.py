"""
Slot assignment for a batch of recipients.

Every recipient gets a concrete execution time on a fixed cadence derived from
the requested actions per hour, shifted by a small random jitter so that the
actions do not look machine-timed. Quota-gated actions first skip ahead to the
next hour or day in which the sending account still has quota left.
"""

import logging
import random
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, List, Optional, Sequence
import pytz

from src.models.scheduled_job import ACTION_SEND_MESSAGE
from .quota_window import HOUR, QuotaCeiling, QuotaWindow, next_legal_slot, record_usage

logger = logging.getLogger(__name__)

# Fraction of the base interval spanned by the jitter (+/- 15%)
JITTER_RATIO = 0.3

# Messaging quota is not tracked locally for these actions
QUOTA_EXEMPT_ACTIONS = frozenset({ACTION_SEND_MESSAGE})


@dataclass(frozen=True)
class Recipient:
    """Snapshot of a target person at scheduling time."""
    name: str = ''
    phone: str = ''
    external_id: str = ''
    kind: Optional[str] = None
    id: Optional[str] = None


@dataclass(frozen=True)
class ScheduledSlot:
    recipient: Recipient
    scheduled_for: datetime


@dataclass(frozen=True)
class ScheduleResult:
    slots: List[ScheduledSlot]
    estimated_completion: datetime
    window: QuotaWindow


def is_quota_gated(action_type: str) -> bool:
    return action_type not in QUOTA_EXEMPT_ACTIONS


def schedule_recipients(
    recipients: Sequence[Recipient],
    ceiling: QuotaCeiling,
    window: QuotaWindow,
    actions_per_hour: int,
    action_type: str,
    start_time: Optional[datetime] = None,
    now: Optional[datetime] = None,
    tz=pytz.UTC,
    random_source: Callable[[], float] = random.random
) -> ScheduleResult:
    """
    Assign an execution time to every recipient, in input order.

    Args:
        recipients: Non-empty ordered recipients
        ceiling: The account's hourly and daily limits
        window: The account's usage window before this batch
        actions_per_hour: Cadence, already clamped by the caller
        action_type: One of the job action types
        start_time: First slot; defaults to max(now, window.hour_start)
        now: Current naive UTC time
        tz: Timezone delimiting the daily window
        random_source: Returns floats in [0, 1) for the jitter

    Returns:
        ScheduleResult with the slots, the final unjittered cursor and the
        usage window after the batch
    """
    if not recipients:
        raise ValueError("Cannot schedule an empty recipient list")
    if actions_per_hour <= 0:
        raise ValueError("actions_per_hour must be positive")

    now = now or datetime.utcnow()
    base_interval = HOUR / actions_per_hour
    current_time = start_time if start_time is not None else max(now, window.hour_start)
    gated = is_quota_gated(action_type)

    slots = []
    for recipient in recipients:
        if gated:
            current_time, window = next_legal_slot(window, ceiling, current_time, tz)

        jitter = base_interval * ((random_source() - 0.5) * JITTER_RATIO)
        slots.append(ScheduledSlot(recipient=recipient, scheduled_for=current_time + jitter))

        if gated:
            window = record_usage(window)
        # The cursor never absorbs the jitter
        current_time = current_time + base_interval

    logger.debug(
        f"Scheduled {len(slots)} {action_type} slots at {actions_per_hour}/h, "
        f"estimated completion {current_time.isoformat()}"
    )
    return ScheduleResult(slots=slots, estimated_completion=current_time, window=window)
