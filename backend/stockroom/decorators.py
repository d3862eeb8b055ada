# Overview: Request decorators for API routes.

from functools import wraps
from flask import request, jsonify, g, current_app

from .errors import InsufficientStockError, InvalidStateTransitionError, NotFoundError
from .validation import ConflictError, ValidationError


ACTOR_HEADER = "X-User-Id"


def with_actor(f):
    """
    Establish the acting user for the request.

    Identity is verified upstream; this layer only carries the id so it can be
    stamped on ledger rows (user_id) and returns (processed_by).
    Sets g.user_id (None when the header is absent).
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        user_id = (request.headers.get(ACTOR_HEADER) or "").strip()
        g.user_id = user_id or None
        return f(*args, **kwargs)

    return decorated_function


def handle_domain_errors(action: str):
    """
    Translate service errors into JSON error responses.

    - ValidationError -> 400
    - NotFoundError -> 404
    - ConflictError, InsufficientStockError, InvalidStateTransitionError -> 409
    - anything else -> 500, logged with the failed action
    """
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            try:
                return f(*args, **kwargs)
            except ValidationError as e:
                return jsonify({"error": str(e)}), 400
            except NotFoundError as e:
                return jsonify({"error": str(e)}), 404
            except (ConflictError, InsufficientStockError, InvalidStateTransitionError) as e:
                return jsonify({"error": str(e)}), 409
            except Exception:
                current_app.logger.exception("Failed to %s", action)
                return jsonify({"error": "Internal server error"}), 500

        return decorated_function

    return decorator
