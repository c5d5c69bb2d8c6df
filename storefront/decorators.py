# Overview: Route decorators mapping domain errors to JSON responses.

from functools import wraps

from flask import current_app, jsonify

from .extensions import db
from .validation import ConflictError, NotFoundError, ValidationError


def error_response(message: str, status: int):
    return jsonify({"success": False, "error": message}), status


def api_errors(f):
    """
    Translate service-layer exceptions into `{success: false, error}` responses.

    - ValidationError (incl. OrderError, InventoryError, PricingError) -> 400
    - NotFoundError -> 404
    - ConflictError (incl. OrderNumberExhaustedError) -> 409
    - anything else -> 500, logged with traceback

    The session is rolled back on every error so a failed unit of work never
    leaks into the next request.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        try:
            return f(*args, **kwargs)
        except ValidationError as e:
            db.session.rollback()
            return error_response(str(e), 400)
        except NotFoundError as e:
            db.session.rollback()
            return error_response(str(e.args[0]) if e.args else "Not found", 404)
        except ConflictError as e:
            db.session.rollback()
            return error_response(str(e), 409)
        except Exception as e:
            db.session.rollback()
            current_app.logger.exception("Unhandled error in %s", f.__name__)
            if current_app.config.get("EXPOSE_ERROR_DETAILS", True):
                return error_response(str(e) or e.__class__.__name__, 500)
            return error_response("Internal server error", 500)

    return decorated_function
