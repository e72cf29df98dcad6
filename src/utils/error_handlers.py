"""
Global Error Handlers for Flask Application

Routes convert their own failures; these handlers give unknown URLs, wrong
methods and anything that escapes a route the same error envelope.
"""

import logging
from werkzeug.exceptions import HTTPException
from .error_handling import (
    SchedulingError,
    create_error_response,
    handle_exception,
    handle_not_found_error,
    handle_scheduling_error
)

logger = logging.getLogger(__name__)

def register_error_handlers(app):
    """Register global error handlers for the Flask application."""

    @app.errorhandler(404)
    def not_found_error(error):
        return handle_not_found_error("Resource")

    @app.errorhandler(405)
    def method_not_allowed_error(error):
        allowed = ', '.join(sorted(error.valid_methods or []))
        return create_error_response(
            'BAD_REQUEST',
            f"Method not allowed for this endpoint (allowed: {allowed})",
            status_code=405
        )

    @app.errorhandler(HTTPException)
    def http_error(error):
        return create_error_response(
            'BAD_REQUEST',
            error.description or "HTTP error occurred",
            status_code=error.code
        )

    @app.errorhandler(SchedulingError)
    def scheduling_error(error):
        """Handle scheduling errors that escaped a route."""
        return handle_scheduling_error(error)

    @app.errorhandler(Exception)
    def generic_error(error):
        logger.error(f"Unhandled error: {str(error)}")
        return handle_exception(error, "request processing")
