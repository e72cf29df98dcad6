"""
Tests for creating, extending and cancelling scheduled jobs.
"""

import pytest
from datetime import timedelta
from unittest.mock import patch
from sqlalchemy.orm.exc import StaleDataError

from src.extensions import db
from src.models import AccountJobRef, MessagingAccount, ScheduledJob, ScheduledTask
from src.models.scheduled_job import (
    ACTION_ADD_FRIEND,
    ACTION_LOOKUP_IDENTITY,
    ACTION_SEND_MESSAGE
)
from src.services.jobs.lifecycle import (
    ScheduleOutcome,
    cancel_job,
    clamp_actions_per_hour,
    create_or_extend_job
)
from src.utils.error_handling import (
    AccountNotFound,
    ConcurrencyConflict,
    JobNotFound,
    PermissionDenied,
    ValidationError
)


def _ids(customers):
    return [{'id': c.id} for c in customers]


class TestClampActionsPerHour:
    """Test coercion of the requested cadence."""

    @pytest.mark.parametrize('value, expected', [
        (None, 30),
        (0, 30),
        ('abc', 30),
        ('10', 10),
        (12.7, 12),
        (500, 30),
        (-5, 1),
        (float('inf'), 30),
        ('Infinity', 30),
        ('1e999', 30),
        (float('nan'), 30)
    ])
    def test_clamp(self, app, value, expected):
        assert clamp_actions_per_hour(value) == expected


class TestCreateJob:
    """Test creating new jobs."""

    def test_create_on_legacy_account(self, admin_user, legacy_account, customers, now):
        outcome = create_or_extend_job(
            admin_user, legacy_account.id, ACTION_LOOKUP_IDENTITY, _ids(customers), now=now
        )

        job = outcome.job
        assert outcome.added == 3
        assert not outcome.merged
        assert job.total_count == len(job.tasks) == 3
        assert job.account_kind == 'legacy'
        assert job.created_by == admin_user.id
        assert job.name == 'Schedule 01/01/2024'
        assert job.estimated_completion_time == now + timedelta(minutes=6)
        assert outcome.message.startswith('Created schedule "Schedule 01/01/2024" for 3 recipients.')
        assert 'Estimated completion in 0 hours 6 minutes' in outcome.message

    def test_tasks_snapshot_customer_records(self, admin_user, legacy_account, customers, now):
        outcome = create_or_extend_job(
            admin_user, legacy_account.id, ACTION_ADD_FRIEND,
            [{'id': customers[0].id, 'name': 'Submitted name'}, {'phone': '0987654321', 'name': 'Walk-in'}],
            now=now
        )

        first, second = outcome.job.tasks
        assert first.position == 0
        assert first.recipient_name == 'Customer 1'
        assert first.recipient_phone == '0900000001'
        assert first.recipient_external_id == 'external-1'
        assert second.position == 1
        assert second.recipient_name == 'Walk-in'
        assert second.recipient_external_id == ''

    def test_missing_identity_is_reported(self, admin_user, legacy_account, customers, now):
        outcome = create_or_extend_job(
            admin_user, legacy_account.id, ACTION_ADD_FRIEND, _ids(customers), now=now
        )

        assert outcome.missing_identity == 1
        assert '1 recipient(s) have no identity handle yet' in outcome.message

    def test_quota_written_back_to_legacy_account(self, admin_user, legacy_account, customers, now):
        create_or_extend_job(admin_user, legacy_account.id, ACTION_LOOKUP_IDENTITY, _ids(customers), now=now)

        account = db.session.get(MessagingAccount, legacy_account.id)
        assert account.actions_used_this_hour == 3
        assert account.actions_used_this_day == 3
        assert account.rate_limit_hour_start == now
        assert account.version == 2

    def test_send_message_does_not_consume_quota(self, admin_user, legacy_account, customers, now):
        outcome = create_or_extend_job(
            admin_user, legacy_account.id, ACTION_SEND_MESSAGE, _ids(customers),
            message_template='Hello {name}', now=now
        )

        account = db.session.get(MessagingAccount, legacy_account.id)
        assert account.actions_used_this_hour == 0
        assert outcome.job.message_template == 'Hello {name}'

    def test_template_dropped_for_lookups(self, admin_user, legacy_account, customers, now):
        outcome = create_or_extend_job(
            admin_user, legacy_account.id, ACTION_LOOKUP_IDENTITY, _ids(customers),
            message_template='Hello', now=now
        )
        assert outcome.job.message_template is None

    def test_hourly_ceiling_spreads_tasks(self, admin_user, legacy_account, customers, now):
        legacy_account.rate_limit_per_hour = 2
        db.session.commit()

        outcome = create_or_extend_job(
            admin_user, legacy_account.id, ACTION_LOOKUP_IDENTITY, _ids(customers), now=now
        )

        last = outcome.job.tasks[-1]
        # Jitter is at most 18 seconds at 30 actions per hour
        assert last.scheduled_for >= now + timedelta(hours=1) - timedelta(seconds=18)

    def test_session_account_is_unlimited(self, admin_user, session_account, customers, now):
        outcome = create_or_extend_job(
            admin_user, session_account.account_key, ACTION_LOOKUP_IDENTITY,
            _ids(customers) * 2, actions_per_hour=30, now=now
        )

        job = outcome.job
        assert job.account_kind == 'session'
        assert job.account_ref == session_account.id
        assert job.total_count == 6
        assert job.estimated_completion_time == now + timedelta(minutes=12)
        assert AccountJobRef.job_ids_for(session_account.id) == [job.id]

    def test_account_back_reference_created(self, admin_user, legacy_account, customers, now):
        outcome = create_or_extend_job(admin_user, legacy_account.id, ACTION_ADD_FRIEND, _ids(customers), now=now)
        assert AccountJobRef.job_ids_for(legacy_account.id) == [outcome.job.id]

    def test_non_mergeable_actions_create_new_jobs(self, admin_user, legacy_account, customers, now):
        first = create_or_extend_job(admin_user, legacy_account.id, ACTION_ADD_FRIEND, _ids(customers), now=now)
        second = create_or_extend_job(admin_user, legacy_account.id, ACTION_ADD_FRIEND, _ids(customers), now=now)

        assert first.job.id != second.job.id
        assert ScheduledJob.query.count() == 2

    def test_recipients_as_json_string(self, admin_user, legacy_account, now):
        outcome = create_or_extend_job(
            admin_user, legacy_account.id, ACTION_LOOKUP_IDENTITY,
            '[{"phone": "0911000001"}, {"phone": "0911000002"}]', now=now
        )
        assert outcome.job.total_count == 2


class TestExtendJob:
    """Test appending to a running identity lookup job."""

    def test_duplicates_are_skipped(self, admin_user, legacy_account, customers, now):
        first = create_or_extend_job(
            admin_user, legacy_account.id, ACTION_LOOKUP_IDENTITY, _ids(customers[:1]), now=now
        )
        job_id = first.job.id

        outcome = create_or_extend_job(
            admin_user, legacy_account.id, ACTION_LOOKUP_IDENTITY, _ids(customers),
            now=now + timedelta(minutes=1)
        )

        assert outcome.merged
        assert outcome.job.id == job_id
        assert outcome.added == 2
        assert outcome.duplicates == 1
        assert '2 added, 1 duplicate skipped' in outcome.message
        job = db.session.get(ScheduledJob, job_id)
        assert job.total_count == len(job.tasks) == 3
        assert [task.position for task in job.tasks] == [0, 1, 2]
        assert ScheduledJob.query.count() == 1

    def test_appended_tasks_start_after_previous_completion(self, admin_user, legacy_account, customers, now):
        first = create_or_extend_job(
            admin_user, legacy_account.id, ACTION_LOOKUP_IDENTITY, _ids(customers[:1]), now=now
        )
        previous_completion = first.job.estimated_completion_time

        outcome = create_or_extend_job(
            admin_user, legacy_account.id, ACTION_LOOKUP_IDENTITY, _ids(customers[1:]), now=now
        )

        appended = outcome.job.tasks[1:]
        assert all(t.scheduled_for >= previous_completion - timedelta(seconds=18) for t in appended)
        assert outcome.job.estimated_completion_time == previous_completion + timedelta(minutes=4)

    def test_all_duplicates_adds_nothing(self, admin_user, legacy_account, customers, now):
        create_or_extend_job(admin_user, legacy_account.id, ACTION_LOOKUP_IDENTITY, _ids(customers), now=now)

        with patch('src.services.jobs.lifecycle.signal_schedule_change') as signal:
            outcome = create_or_extend_job(
                admin_user, legacy_account.id, ACTION_LOOKUP_IDENTITY, _ids(customers), now=now
            )

        assert outcome.added == 0
        assert outcome.duplicates == 3
        assert 'Nothing to add' in outcome.message
        assert outcome.job.total_count == 3
        signal.assert_not_called()

    def test_finished_job_is_not_extended(self, admin_user, legacy_account, customers, now):
        first = create_or_extend_job(
            admin_user, legacy_account.id, ACTION_LOOKUP_IDENTITY, _ids(customers[:1]), now=now
        )
        ScheduledJob.query.filter_by(id=first.job.id).update({'completed_count': 1})
        db.session.commit()

        outcome = create_or_extend_job(
            admin_user, legacy_account.id, ACTION_LOOKUP_IDENTITY, _ids(customers[:1]), now=now
        )

        assert not outcome.merged
        assert outcome.job.id != first.job.id


class TestRejectedRequests:
    """Test validation and permission failures."""

    def test_role_required(self, viewer_user, legacy_account, customers):
        with pytest.raises(PermissionDenied):
            create_or_extend_job(viewer_user, legacy_account.id, ACTION_ADD_FRIEND, _ids(customers))

    def test_unknown_action(self, admin_user, legacy_account, customers):
        with pytest.raises(ValidationError):
            create_or_extend_job(admin_user, legacy_account.id, 'poke', _ids(customers))

    def test_missing_account(self, admin_user, customers):
        with pytest.raises(ValidationError):
            create_or_extend_job(admin_user, '', ACTION_ADD_FRIEND, _ids(customers))

    def test_unknown_account(self, admin_user, customers):
        with pytest.raises(AccountNotFound):
            create_or_extend_job(admin_user, 'no-such-account', ACTION_ADD_FRIEND, _ids(customers))

    @pytest.mark.parametrize('recipients', [[], None, 'not json', [{'name': 'No id or phone'}], ['0900000001']])
    def test_invalid_recipients(self, admin_user, legacy_account, recipients):
        with pytest.raises(ValidationError):
            create_or_extend_job(admin_user, legacy_account.id, ACTION_ADD_FRIEND, recipients)

    def test_zero_quota_account(self, admin_user, legacy_account, customers):
        legacy_account.rate_limit_per_day = 0
        db.session.commit()

        with pytest.raises(ValidationError):
            create_or_extend_job(admin_user, legacy_account.id, ACTION_ADD_FRIEND, _ids(customers))
        assert ScheduledJob.query.count() == 0


class TestConcurrency:
    """Test retries on concurrent quota writes."""

    def test_retries_then_conflicts(self, app, admin_user, legacy_account, customers):
        with patch('src.services.jobs.lifecycle._schedule_once', side_effect=StaleDataError('stale')) as attempt:
            with pytest.raises(ConcurrencyConflict):
                create_or_extend_job(admin_user, legacy_account.id, ACTION_ADD_FRIEND, _ids(customers))

        assert attempt.call_count == app.config['QUOTA_WRITE_RETRIES']

    def test_retry_succeeds(self, admin_user, legacy_account, customers):
        outcome = ScheduleOutcome(job=None, message='ok')
        with patch('src.services.jobs.lifecycle._schedule_once',
                   side_effect=[StaleDataError('stale'), outcome]) as attempt:
            result = create_or_extend_job(admin_user, legacy_account.id, ACTION_ADD_FRIEND, _ids(customers))

        assert result is outcome
        assert attempt.call_count == 2


class TestInvalidation:
    """Test the cache invalidation signal."""

    def test_signal_after_create(self, admin_user, legacy_account, customers, now):
        with patch('src.services.jobs.lifecycle.signal_schedule_change') as signal:
            create_or_extend_job(admin_user, legacy_account.id, ACTION_ADD_FRIEND, _ids(customers), now=now)
        signal.assert_called_once()

    def test_invalidation_failure_does_not_fail_create(self, admin_user, legacy_account, customers, now):
        with patch('src.services.caching.get_cache_service', side_effect=RuntimeError('redis down')):
            outcome = create_or_extend_job(
                admin_user, legacy_account.id, ACTION_ADD_FRIEND, _ids(customers), now=now
            )
        assert outcome.job.total_count == 3


class TestCancelJob:
    """Test cancelling jobs."""

    def test_cancel_removes_job_tasks_and_reference(self, admin_user, legacy_account, customers, now):
        outcome = create_or_extend_job(admin_user, legacy_account.id, ACTION_ADD_FRIEND, _ids(customers), now=now)
        job_id = outcome.job.id

        with patch('src.services.jobs.lifecycle.signal_schedule_change') as signal:
            message = cancel_job(admin_user, job_id)

        assert message == 'Cancelled schedule "Schedule 01/01/2024".'
        assert db.session.get(ScheduledJob, job_id) is None
        assert ScheduledTask.query.filter_by(job_id=job_id).count() == 0
        assert job_id not in AccountJobRef.job_ids_for(legacy_account.id)
        signal.assert_called_once()

    def test_cancel_unknown_job(self, admin_user):
        with pytest.raises(JobNotFound):
            cancel_job(admin_user, 'missing-job')

    def test_cancel_requires_id(self, admin_user):
        with pytest.raises(ValidationError):
            cancel_job(admin_user, '')

    def test_cancel_requires_role(self, viewer_user):
        with pytest.raises(PermissionDenied):
            cancel_job(viewer_user, 'any-job')
