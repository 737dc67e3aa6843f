# marketingpro/error_handlers.py
import logging
import traceback

from flask import jsonify, request

from marketingpro.errors import BillingError, RateLimitExceeded

logger = logging.getLogger(__name__)


def _error_response(error, message, status_code):
    return jsonify({
        "error": error,
        "message": message,
        "path": request.path
    }), status_code


def register_error_handlers(app):
    """Register all error handlers for the application"""

    @app.errorhandler(400)
    def bad_request(e):
        logger.warning(f"Bad request: {str(e)} - Path: {request.path}")
        return _error_response(
            "Bad request",
            "The request could not be understood or was missing required parameters.",
            400,
        )

    @app.errorhandler(404)
    def not_found(e):
        logger.info(f"Not found: {request.path}")
        return _error_response(
            "Not found",
            "The requested resource was not found on the server.",
            404,
        )

    @app.errorhandler(405)
    def method_not_allowed(e):
        logger.warning(f"Method not allowed: {request.method} {request.path}")
        return _error_response(
            "Method not allowed",
            f"The {request.method} method is not supported for this endpoint.",
            405,
        )

    @app.errorhandler(500)
    def server_error(e):
        logger.error(f"Server error: {str(e)} - Path: {request.path}")
        if app.config.get("DEBUG", False):
            logger.error(f"Traceback: {traceback.format_exc()}")
        return _error_response(
            "Server error",
            "An internal server error occurred. Please try again later.",
            500,
        )

    @app.errorhandler(BillingError)
    def handle_billing_error(error):
        if error.status_code >= 500:
            logger.error(f"{error.__class__.__name__}: {error.message} - Path: {request.path}")
        else:
            logger.warning(f"{error.__class__.__name__}: {error.message} - Path: {request.path}")

        response = jsonify({
            "error": error.__class__.__name__,
            "message": error.message,
            "path": request.path,
            **(error.payload or {})
        })
        response.status_code = error.status_code
        if isinstance(error, RateLimitExceeded):
            response.headers["Retry-After"] = str(error.retry_after)
        return response
