# Overview: Request decorators for API routes.

from functools import wraps

from flask import current_app, request

from .errors import PackLoopError, ValidationError
from .extensions import db


def json_errors(f):
    """
    Translate domain errors into JSON error responses.

    - PackLoopError subclasses: {"error": message}, exc.status_code
    - anything else: logged with traceback, rolled back, generic 500

    Services already roll back their own unit of work; the rollback here
    covers failures raised outside one (e.g. while serializing).
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        try:
            return f(*args, **kwargs)
        except PackLoopError as e:
            return {"error": str(e)}, e.status_code
        except Exception:
            db.session.rollback()
            current_app.logger.exception("Unhandled error on %s %s", request.method, request.path)
            return {"error": "Internal server error"}, 500

    return decorated_function


def json_body() -> dict:
    """Request JSON object, or ValidationError if the body is not one."""
    payload = request.get_json(silent=True)
    if payload is None:
        return {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")
    return payload
