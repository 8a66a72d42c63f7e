"""Liveness plus a shallow check of the two stores the service depends on."""
import logging
import os

from flask import Blueprint, current_app
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from models import storage

logger = logging.getLogger(__name__)

bp = Blueprint("health", __name__)

API_VERSION = "1.0.0"


def _database_ok() -> bool:
    try:
        storage.get_session().execute(text("SELECT 1"))
    except SQLAlchemyError:
        logger.exception("Health check: database unreachable")
        return False
    return True


def _upload_dir_ok() -> bool:
    root = current_app.config["UPLOAD_DIR"]
    # created lazily on first upload, so absent is fine as long as it can be made
    target = root if os.path.isdir(root) else os.path.dirname(os.path.abspath(root))
    return os.access(target, os.W_OK)


@bp.get("/health")
def health():
    """
    Health check
    ---
    tags:
      - Health
    responses:
      200:
        description: Database and upload directory usable
      503:
        description: A dependency is unavailable
        schema:
          type: object
          properties:
            status:
              type: string
              example: degraded
            checks:
              type: object
    """
    checks = {"database": _database_ok(), "upload_dir": _upload_dir_ok()}
    healthy = all(checks.values())
    body = {
        "status": "ok" if healthy else "degraded",
        "version": API_VERSION,
        "checks": checks,
    }
    return body, 200 if healthy else 503
