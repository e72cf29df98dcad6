"""
Standardized Error Handling Utilities

This module provides the scheduling exception hierarchy, consistent error
response formats and error handling functions across all API endpoints.
"""

import logging
from datetime import datetime
from typing import Dict, Any, Optional
from flask import jsonify
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from werkzeug.exceptions import HTTPException

logger = logging.getLogger(__name__)

# Standard error codes
ERROR_CODES = {
    # Client errors (4xx)
    'VALIDATION_ERROR': 'VALIDATION_ERROR',
    'NOT_FOUND': 'NOT_FOUND',
    'CONFLICT': 'CONFLICT',
    'UNAUTHORIZED': 'UNAUTHORIZED',
    'FORBIDDEN': 'FORBIDDEN',
    'BAD_REQUEST': 'BAD_REQUEST',

    # Server errors (5xx)
    'INTERNAL_ERROR': 'INTERNAL_ERROR',
    'SERVICE_UNAVAILABLE': 'SERVICE_UNAVAILABLE',
    'DATABASE_ERROR': 'DATABASE_ERROR',

    # Business logic errors
    'ACCOUNT_NOT_FOUND': 'ACCOUNT_NOT_FOUND',
    'JOB_NOT_FOUND': 'JOB_NOT_FOUND',
    'CONCURRENT_UPDATE': 'CONCURRENT_UPDATE'
}

# HTTP status code mapping
STATUS_CODES = {
    'VALIDATION_ERROR': 400,
    'NOT_FOUND': 404,
    'CONFLICT': 409,
    'UNAUTHORIZED': 401,
    'FORBIDDEN': 403,
    'BAD_REQUEST': 400,
    'INTERNAL_ERROR': 500,
    'SERVICE_UNAVAILABLE': 503,
    'DATABASE_ERROR': 500,
    'ACCOUNT_NOT_FOUND': 404,
    'JOB_NOT_FOUND': 404,
    'CONCURRENT_UPDATE': 409
}


class SchedulingError(Exception):
    """Base class for errors returned to the caller as a failure result."""
    code = 'INTERNAL_ERROR'

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details


class ValidationError(SchedulingError):
    code = 'VALIDATION_ERROR'


class PermissionDenied(SchedulingError):
    code = 'FORBIDDEN'


class AccountNotFound(SchedulingError):
    code = 'ACCOUNT_NOT_FOUND'


class JobNotFound(SchedulingError):
    code = 'JOB_NOT_FOUND'


class PersistenceError(SchedulingError):
    code = 'DATABASE_ERROR'


class ConcurrencyConflict(PersistenceError):
    """Raised when a per-account write kept losing the optimistic version check."""
    code = 'CONCURRENT_UPDATE'


def create_error_response(
    code: str,
    message: str,
    details: Optional[Dict[str, Any]] = None,
    status_code: Optional[int] = None
) -> tuple:
    """
    Create a standardized error response.

    Args:
        code: Error code from ERROR_CODES
        message: Human-readable error message
        details: Additional error details (optional)
        status_code: HTTP status code (optional, defaults to code mapping)

    Returns:
        Tuple of (json_response, status_code)
    """
    if code not in ERROR_CODES:
        logger.warning(f"Unknown error code used: {code}, defaulting to INTERNAL_ERROR")
        code = 'INTERNAL_ERROR'

    http_status = status_code or STATUS_CODES.get(code, 500)

    error_response = {
        'success': False,
        'error': {
            'code': code,
            'message': message,
            'timestamp': datetime.utcnow().isoformat()
        }
    }

    if details:
        error_response['error']['details'] = details

    return jsonify(error_response), http_status

def handle_validation_error(message: str, details: Optional[Dict[str, Any]] = None) -> tuple:
    """Handle validation errors (400)."""
    return create_error_response('VALIDATION_ERROR', message, details)

def handle_not_found_error(resource: str, resource_id: Optional[str] = None) -> tuple:
    """Handle not found errors (404)."""
    message = f"{resource} not found"
    if resource_id:
        message += f" with id: {resource_id}"
    return create_error_response('NOT_FOUND', message)

def handle_unauthorized_error(message: str = "Authentication required") -> tuple:
    """Handle unauthorized errors (401)."""
    return create_error_response('UNAUTHORIZED', message)

def handle_database_error(error: Exception, operation: str = "database operation") -> tuple:
    """Handle database errors (500)."""
    logger.error(f"Database error during {operation}: {str(error)}")

    if isinstance(error, IntegrityError):
        return create_error_response('CONFLICT', f"Database constraint violation during {operation}")
    elif isinstance(error, SQLAlchemyError):
        return create_error_response('DATABASE_ERROR', f"Database error during {operation}")
    else:
        return create_error_response('DATABASE_ERROR', f"Unexpected database error during {operation}")

def handle_internal_error(error: Exception, operation: str = "operation") -> tuple:
    """Handle internal server errors (500)."""
    logger.error(f"Internal error during {operation}: {str(error)}")
    return create_error_response('INTERNAL_ERROR', f"An unexpected error occurred during {operation}")

def handle_scheduling_error(error: SchedulingError) -> tuple:
    """Turn a SchedulingError into its standardized failure response."""
    if isinstance(error, PersistenceError):
        logger.error(f"Persistence failure: {error.message}")
    return create_error_response(error.code, error.message, error.details)

def handle_exception(error: Exception, operation: str = "operation") -> tuple:
    """
    Generic exception handler that categorizes errors and returns appropriate responses.

    Args:
        error: The exception that occurred
        operation: Description of the operation being performed

    Returns:
        Tuple of (json_response, status_code)
    """
    if isinstance(error, SchedulingError):
        return handle_scheduling_error(error)
    elif isinstance(error, HTTPException):
        return create_error_response('BAD_REQUEST', error.description, status_code=error.code)
    elif isinstance(error, SQLAlchemyError):
        return handle_database_error(error, operation)
    elif isinstance(error, ValueError):
        return handle_validation_error(str(error))
    elif isinstance(error, KeyError):
        return handle_validation_error(f"Missing required field: {str(error)}")
    elif isinstance(error, TypeError):
        return handle_validation_error(f"Invalid data type: {str(error)}")
    else:
        return handle_internal_error(error, operation)

def validate_required_fields(data: Dict[str, Any], required_fields: list) -> Optional[tuple]:
    """
    Validate that required fields are present in request data.

    Args:
        data: Request data dictionary
        required_fields: List of required field names

    Returns:
        Error response tuple if validation fails, None if validation passes
    """
    missing_fields = [field for field in required_fields if field not in data or data[field] is None]

    if missing_fields:
        details = {
            'missing_fields': missing_fields,
            'required_fields': required_fields
        }
        return handle_validation_error(
            f"Missing required fields: {', '.join(missing_fields)}",
            details
        )

    return None
