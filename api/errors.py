from flask import jsonify, current_app
from werkzeug.exceptions import HTTPException
from marshmallow import ValidationError
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
import logging

from utils.exceptions import AuthError, ConfigurationError, DuplicateEmail

logger = logging.getLogger(__name__)

HTTP_CODES = {
    400: "BAD_REQUEST",
    401: "UNAUTHORIZED",
    403: "FORBIDDEN",
    404: "NOT_FOUND",
    405: "METHOD_NOT_ALLOWED",
    409: "CONFLICT",
    415: "UNSUPPORTED_MEDIA_TYPE",
    422: "VALIDATION_ERROR",
}


def error_response(error: str, message: str, status: int, details: dict | None = None):
    payload = {"error": error, "message": message, "status": status}
    if details:
        payload["details"] = details
    return jsonify(payload), status


def _debug_details(err: Exception):
    if current_app and current_app.debug:
        return {"type": err.__class__.__name__, "message": str(err)}
    return None


def register_error_handlers(app):
    # Expected authentication outcomes: never logged as errors
    @app.errorhandler(AuthError)
    def handle_auth_error(err: AuthError):
        logger.debug("auth failure %s: %s", err.code, err.message)
        return error_response(err.code, err.message, err.status)

    # Marshmallow validation errors map to 422
    @app.errorhandler(ValidationError)
    def handle_validation_error(err: ValidationError):
        return error_response("VALIDATION_ERROR", "Invalid input", 422, details=err.messages)

    # Unique email raced past the pre-check
    @app.errorhandler(IntegrityError)
    def handle_integrity_error(err: IntegrityError):
        message = str(getattr(err, "orig", err)).lower()
        if "unique" in message and "email" in message:
            dup = DuplicateEmail()
            return error_response(dup.code, dup.message, dup.status)
        logger.exception("Integrity error", exc_info=err)
        return error_response("CONFLICT", "Integrity error.", 409, details=_debug_details(err))

    # Store unreachable or misbehaving
    @app.errorhandler(SQLAlchemyError)
    def handle_storage_error(err: SQLAlchemyError):
        logger.exception("Storage failure", exc_info=err)
        return error_response("INTERNAL_ERROR", "An unexpected error occurred", 500, details=_debug_details(err))

    # Missing signing secret and friends
    @app.errorhandler(ConfigurationError)
    def handle_configuration_error(err: ConfigurationError):
        logger.exception("Configuration error", exc_info=err)
        return error_response("INTERNAL_ERROR", "An unexpected error occurred", 500, details=_debug_details(err))

    # Werkzeug HTTPExceptions map to their status codes
    @app.errorhandler(HTTPException)
    def handle_http_exception(err: HTTPException):
        status = err.code or 400
        return error_response(HTTP_CODES.get(status, "HTTP_ERROR"), err.description, status)

    # 500 Internal Error (catch-all)
    @app.errorhandler(Exception)
    def internal_error(err: Exception):
        logger.exception("Unhandled exception", exc_info=err)
        return error_response("INTERNAL_ERROR", "An unexpected error occurred", 500, details=_debug_details(err))
