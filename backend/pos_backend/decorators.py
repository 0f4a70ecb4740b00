# Overview: Request decorators for API routes.

from functools import wraps

from flask import current_app, jsonify

from .validation import DomainError


def api_errors(action: str):
    """
    Map service exceptions to JSON responses.

    - DomainError subclasses -> {"error", "details"?} with their http_status
    - anything else is logged with a traceback and answered with a generic 500

    `action` completes the log line: "Failed to <action>".
    """
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            try:
                return f(*args, **kwargs)
            except DomainError as e:
                if e.http_status >= 500:
                    current_app.logger.error("Failed to %s: %s", action, e.message)
                return jsonify(e.to_dict()), e.http_status
            except Exception:
                current_app.logger.exception("Failed to %s", action)
                return jsonify({"error": "Internal server error"}), 500
        return decorated_function
    return decorator
