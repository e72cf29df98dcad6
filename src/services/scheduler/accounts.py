"""
Sending-account quota variants.

A job's account is either a legacy messaging account, which stores its own
rolling quota counters, or a session account, which stores none and is
scheduled as if unlimited. Both are wrapped in an AccountQuota exposing the
same capability so the lifecycle code never branches on the account shape.
"""

import logging
from datetime import datetime
from typing import Dict, Iterable, Optional
from flask import current_app

from src.models import MessagingAccount, SessionAccount
from src.utils.error_handling import AccountNotFound, ValidationError
from .quota_window import QuotaCeiling, QuotaWindow

logger = logging.getLogger(__name__)

KIND_LEGACY = 'legacy'
KIND_SESSION = 'session'

DEFAULT_UNLIMITED_CEILING = 1_000_000_000


class AccountQuota:
    """Common quota capability of a sending account."""

    kind = None

    def __init__(self, account):
        self.account = account

    @property
    def account_ref(self) -> str:
        return str(self.account.id)

    @property
    def ceiling(self) -> QuotaCeiling:
        raise NotImplementedError

    def current_window(self, now: datetime) -> QuotaWindow:
        raise NotImplementedError

    def apply_usage(self, window: QuotaWindow) -> None:
        """Store the window left behind by a scheduling pass."""
        raise NotImplementedError

    def display_fields(self) -> Dict[str, Optional[str]]:
        raise NotImplementedError


class LegacyAccountQuota(AccountQuota):
    kind = KIND_LEGACY

    @property
    def ceiling(self) -> QuotaCeiling:
        return QuotaCeiling(
            per_hour=self.account.rate_limit_per_hour or 0,
            per_day=self.account.rate_limit_per_day or 0
        )

    def current_window(self, now: datetime) -> QuotaWindow:
        return QuotaWindow(
            hour_start=self.account.rate_limit_hour_start or now,
            day_start=self.account.rate_limit_day_start or now,
            used_this_hour=self.account.actions_used_this_hour or 0,
            used_this_day=self.account.actions_used_this_day or 0
        )

    def apply_usage(self, window: QuotaWindow) -> None:
        # The version check on MessagingAccount happens at flush
        for field, value in window.as_account_fields().items():
            setattr(self.account, field, value)

    def display_fields(self):
        return {
            'id': self.account_ref,
            'kind': self.kind,
            'name': self.account.name,
            'avatar': self.account.avatar
        }


class UnlimitedAccountQuota(AccountQuota):
    kind = KIND_SESSION

    @property
    def ceiling(self) -> QuotaCeiling:
        limit = current_app.config.get('UNLIMITED_QUOTA_CEILING', DEFAULT_UNLIMITED_CEILING)
        return QuotaCeiling(per_hour=limit, per_day=limit)

    def current_window(self, now: datetime) -> QuotaWindow:
        return QuotaWindow(hour_start=now, day_start=now)

    def apply_usage(self, window: QuotaWindow) -> None:
        logger.debug(f"Session account {self.account_ref} keeps no quota state, skipping write-back")

    def display_fields(self):
        return {
            'id': self.account_ref,
            'kind': self.kind,
            'name': self.account.display_name,
            'avatar': self.account.avatar
        }


def resolve_account_quota(account_ref: str, lock: bool = False) -> AccountQuota:
    """
    Load the sending account behind ``account_ref``.

    Args:
        account_ref: Id of a messaging account or id/account key of a session account
        lock: Read the legacy account row FOR UPDATE

    Returns:
        LegacyAccountQuota or UnlimitedAccountQuota

    Raises:
        ValidationError: If no account reference was given
        AccountNotFound: If neither account model matches
    """
    if not account_ref:
        raise ValidationError("No sending account selected")

    query = MessagingAccount.query.filter_by(id=account_ref)
    if lock:
        query = query.with_for_update()
    legacy = query.first()
    if legacy is not None:
        return LegacyAccountQuota(legacy)

    session_account = SessionAccount.query.filter(
        (SessionAccount.id == account_ref) | (SessionAccount.account_key == account_ref)
    ).first()
    if session_account is not None:
        return UnlimitedAccountQuota(session_account)

    raise AccountNotFound(f"Sending account {account_ref} not found")


def account_display_fields(account_refs: Iterable[str]) -> Dict[str, Dict[str, Optional[str]]]:
    """Batch-resolve display fields for the accounts behind a set of job refs."""
    refs = {ref for ref in account_refs if ref}
    if not refs:
        return {}

    fields = {}
    for account in MessagingAccount.query.filter(MessagingAccount.id.in_(refs)).all():
        fields[str(account.id)] = LegacyAccountQuota(account).display_fields()
    for account in SessionAccount.query.filter(SessionAccount.id.in_(refs)).all():
        fields[str(account.id)] = UnlimitedAccountQuota(account).display_fields()
    return fields
