import logging

from fastapi import APIRouter
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from pontocarro.api.deps import DbSession


logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])


@router.get("/health")
def health_check(db: DbSession):
    """
    Health check endpoint that verifies API and database status.

    Returns:
        dict: status, api and database state
    """
    health_status = {
        "status": "healthy",
        "api": "online",
        "database": "online",
    }

    try:
        db.execute(text("SELECT 1"))
    except SQLAlchemyError as exc:
        logger.warning("Health check could not reach the database: %s", exc)
        health_status["database"] = "offline"
        health_status["status"] = "unhealthy"

    return health_status
