# Overview: Maps service-layer errors to JSON error responses.

from flask import current_app, jsonify, request

from ..services.concurrency import StorageError
from ..services.inventory_service import InsufficientStockError
from ..services.permission_service import AuthorizationError
from ..validation import ConflictError, NotFoundError, ValidationError

# Errors every route translates; anything else is a 500
DOMAIN_ERRORS = (ValidationError, NotFoundError, ConflictError, AuthorizationError, StorageError)


def json_body() -> dict:
    """The request JSON object; a missing body counts as {}."""
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")
    return data


def error_response(exc: Exception):
    """
    Status codes:
        400 ValidationError
        403 AuthorizationError
        404 NotFoundError
        409 ConflictError (InsufficientStockError adds available/requested)
        500 StorageError (details only in the log)
    """
    if isinstance(exc, InsufficientStockError):
        return jsonify({
            "error": str(exc),
            "code": "insufficient_stock",
            "available": exc.available,
            "requested": exc.requested,
        }), 409
    if isinstance(exc, ConflictError):
        return jsonify({"error": str(exc), "code": "conflict"}), 409
    if isinstance(exc, NotFoundError):
        return jsonify({"error": str(exc), "code": "not_found"}), 404
    if isinstance(exc, ValidationError):
        return jsonify({"error": str(exc), "code": "validation_error"}), 400
    if isinstance(exc, AuthorizationError):
        return jsonify({
            "error": "Permission denied",
            "code": "forbidden",
            "message": str(exc),
            "required_permission": exc.permission_code,
        }), 403
    if isinstance(exc, StorageError):
        return jsonify({"error": "Storage failure, nothing was recorded", "code": "storage_error"}), 500

    current_app.logger.exception("Unhandled error")
    return jsonify({"error": "Internal server error"}), 500


def internal_error(message: str):
    current_app.logger.exception(message)
    return jsonify({"error": "Internal server error"}), 500
