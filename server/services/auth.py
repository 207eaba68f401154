"""Token authentication for the location API.

Every protected request must carry the user's API token in ``Authorization``
(optionally prefixed with ``Bearer``) and a request timestamp in
``X-Request-Date``.
"""

from functools import wraps
from typing import Any, Callable, Optional, Tuple, TypeVar, cast

from flask import current_app, g, jsonify, request

from ..app import db
from ..models import User

F = TypeVar("F", bound=Callable[..., Any])

REQUEST_DATE_HEADER = "X-Request-Date"


def _extract_token() -> Optional[str]:
    value = (request.headers.get("Authorization") or "").strip()
    if value.lower().startswith("bearer "):
        value = value[7:].strip()
    return value or None


def require_token(func: F) -> F:
    """Decorator to enforce token authentication on API endpoints."""

    @wraps(func)
    def wrapper(*args: Tuple[Any, ...], **kwargs: Any):  # type: ignore[misc]
        token = _extract_token()
        if not token:
            return jsonify({"error": "Missing Authorization header"}), 401
        if not request.headers.get(REQUEST_DATE_HEADER):
            return jsonify({"error": f"Missing {REQUEST_DATE_HEADER} header"}), 401

        user = db.session.query(User).filter_by(api_key=token).first()
        if not user or not user.is_active:
            current_app.logger.info("Rejected request with unknown token on %s", request.path)
            return jsonify({"error": "Invalid token"}), 401

        g.current_user = user
        return func(*args, **kwargs)

    return cast(F, wrapper)
