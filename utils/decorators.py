from __future__ import annotations
from functools import wraps
import logging

from flask import request, g, abort
from utils.security import TokenError, verify_access_token

logger = logging.getLogger(__name__)


def bearer_token() -> str | None:
    auth = request.headers.get("Authorization", "")
    if not auth.startswith("Bearer "):
        return None
    token = auth.split(" ", 1)[1].strip()
    return token or None


def jwt_required():
    """
    Identify the caller from the bearer access token.
    Any failure (missing, malformed, expired, revoked) is a plain 401.
    """
    def decorator(fn):
        @wraps(fn)
        def wrapper(*args, **kwargs):
            token = bearer_token()
            if not token:
                abort(401, description="Missing or invalid Authorization header")
            try:
                identity = verify_access_token(token)
            except TokenError as e:
                logger.info("Rejected access token: %s", e)
                abort(401, description="Invalid or expired token")

            g.identity = identity
            g.current_user_id = identity.user_id
            g.current_token = token
            return fn(*args, **kwargs)

        return wrapper

    return decorator
