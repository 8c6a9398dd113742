import logging

from flask import Blueprint, current_app
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

bp = Blueprint("health", __name__)

logger = logging.getLogger(__name__)

VERSION = "1.0.0"


@bp.get("/health")
def health():
    """
    Liveness/readiness: the process is up and the session store answers.
    ---
    tags:
      - Health
    responses:
      200:
        description: API and store are up
        schema:
          type: object
          properties:
            status: { type: string, example: ok }
            store: { type: string, example: ok }
            version: { type: string, example: 1.0.0 }
      503:
        description: Store unreachable
    """
    storage = current_app.extensions["storage"]
    try:
        storage.get_session().execute(text("SELECT 1"))
    except SQLAlchemyError:
        logger.exception("health check: store unreachable")
        storage.rollback()
        return {"status": "degraded", "store": "unreachable", "version": VERSION}, 503
    return {"status": "ok", "store": "ok", "version": VERSION}, 200
