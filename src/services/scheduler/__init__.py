"""
Scheduler services package.

This package contains the rate-limited scheduling engine:
- quota_window.py: Rolling hourly/daily quota windows
- accounts.py: Legacy and unlimited sending-account quota variants
- slot_scheduler.py: Per-recipient execution time assignment
"""

from .quota_window import QuotaCeiling, QuotaWindow, next_legal_slot, roll_window
from .accounts import AccountQuota, LegacyAccountQuota, UnlimitedAccountQuota, resolve_account_quota
from .slot_scheduler import Recipient, ScheduledSlot, ScheduleResult, schedule_recipients

__all__ = [
    'QuotaCeiling', 'QuotaWindow', 'next_legal_slot', 'roll_window',
    'AccountQuota', 'LegacyAccountQuota', 'UnlimitedAccountQuota', 'resolve_account_quota',
    'Recipient', 'ScheduledSlot', 'ScheduleResult', 'schedule_recipients'
]
