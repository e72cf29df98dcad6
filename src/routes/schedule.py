"""
Schedule endpoints.

This module contains functionality for:
- Creating or extending schedules
- Cancelling schedules
- Listing running schedules
- Claiming due tasks and recording their results (task executor)
"""

import logging
from flask import Blueprint, request, jsonify
from flask_jwt_extended import jwt_required, get_jwt_identity

from src.extensions import db
from src.models import User
from src.services.jobs import (
    cancel_job,
    claim_next_due_task,
    create_or_extend_job,
    defer_task,
    list_running_jobs,
    record_task_result
)
from src.services.jobs.lifecycle import ensure_can_schedule
from src.utils.error_handling import (
    handle_exception,
    handle_unauthorized_error,
    handle_validation_error,
    validate_required_fields
)

logger = logging.getLogger(__name__)

schedule_bp = Blueprint('schedule', __name__)


def _current_actor():
    user_id = get_jwt_identity()
    return db.session.get(User, user_id) if user_id else None


@schedule_bp.route('/schedules', methods=['POST'])
@jwt_required()
def create_schedule():
    """Create a schedule, or append to the running identity lookup schedule."""
    try:
        actor = _current_actor()
        if actor is None:
            return handle_unauthorized_error("Session is no longer valid, please log in again")

        data = request.get_json(silent=True) or {}
        error = validate_required_fields(data, ['action_type', 'account_id', 'recipients'])
        if error:
            return error

        outcome = create_or_extend_job(
            actor,
            data['account_id'],
            data['action_type'],
            data['recipients'],
            actions_per_hour=data.get('actions_per_hour'),
            job_name=data.get('job_name'),
            message_template=data.get('message_template')
        )

        return jsonify({
            'success': True,
            'message': outcome.message,
            'merged': outcome.merged,
            'added': outcome.added,
            'duplicates': outcome.duplicates,
            'job': outcome.job.to_dict() if outcome.job is not None else None
        }), 201 if outcome.added and not outcome.merged else 200

    except Exception as e:
        logger.error(f"Error creating schedule: {str(e)}")
        return handle_exception(e, "schedule creation")


@schedule_bp.route('/schedules/<job_id>', methods=['DELETE'])
@jwt_required()
def delete_schedule(job_id):
    """Cancel a schedule and all of its pending tasks."""
    try:
        actor = _current_actor()
        if actor is None:
            return handle_unauthorized_error("Session is no longer valid, please log in again")

        message = cancel_job(actor, job_id)
        return jsonify({'success': True, 'message': message}), 200

    except Exception as e:
        return handle_exception(e, "schedule cancellation")


@schedule_bp.route('/schedules/running', methods=['GET'])
@jwt_required()
def get_running_schedules():
    """List the most recent schedules visible to the caller."""
    try:
        actor = _current_actor()
        if actor is None:
            return handle_unauthorized_error("Session is no longer valid, please log in again")

        jobs = list_running_jobs(actor)
        return jsonify({'success': True, 'jobs': jobs}), 200

    except Exception as e:
        logger.error(f"Error getting running schedules: {str(e)}")
        return handle_exception(e, "schedule listing")


@schedule_bp.route('/schedules/tasks/claim', methods=['POST'])
@jwt_required()
def claim_task():
    """Claim the next due task for execution."""
    try:
        ensure_can_schedule(_current_actor())
        claimed = claim_next_due_task()
        if claimed is None:
            return jsonify({'success': True, 'message': 'No due tasks to process.', 'count': 0}), 200
        return jsonify({'success': True, 'count': 1, **claimed}), 200

    except Exception as e:
        return handle_exception(e, "task claim")


@schedule_bp.route('/schedules/<job_id>/tasks/<task_id>/result', methods=['POST'])
@jwt_required()
def post_task_result(job_id, task_id):
    """Record the outcome of an executed task."""
    try:
        ensure_can_schedule(_current_actor())
        data = request.get_json(silent=True) or {}
        if 'success' not in data:
            return handle_validation_error("Field 'success' is required")

        result = record_task_result(
            job_id,
            task_id,
            bool(data['success']),
            message=data.get('message'),
            error_code=data.get('error_code'),
            error_message=data.get('error_message')
        )
        if result is None:
            return jsonify({'success': True, 'message': 'Result ignored: the schedule no longer exists or the task already has a result.'}), 200
        return jsonify({'success': True, 'result': result.to_dict()}), 201

    except Exception as e:
        return handle_exception(e, "task result recording")


@schedule_bp.route('/schedules/<job_id>/tasks/<task_id>/defer', methods=['POST'])
@jwt_required()
def post_task_deferral(job_id, task_id):
    """Put a claimed task back on the schedule after a delay."""
    try:
        ensure_can_schedule(_current_actor())
        data = request.get_json(silent=True) or {}
        try:
            delay_seconds = int(data.get('delay_seconds', 300))
        except (TypeError, ValueError):
            return handle_validation_error("delay_seconds must be an integer")

        task = defer_task(job_id, task_id, delay_seconds)
        if task is None:
            return jsonify({'success': True, 'message': 'Deferral ignored: the schedule no longer exists or the task already has a result.'}), 200
        return jsonify({'success': True, 'task': task.to_dict()}), 200

    except Exception as e:
        return handle_exception(e, "task deferral")
