from fastapi import APIRouter, Depends
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from payrecon.config import settings
from payrecon.deps import get_db
from payrecon.logging_config import get_logger

router = APIRouter()
logger = get_logger(__name__)


@router.get("")
def health(db: Session = Depends(get_db)):
    """Liveness plus a database round-trip."""
    database = "ok"
    try:
        db.execute(text("SELECT 1"))
    except SQLAlchemyError as e:
        logger.error("health_db_failed", error=str(e))
        database = "unavailable"

    return {
        "status": "ok" if database == "ok" else "degraded",
        "app": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "environment": settings.ENVIRONMENT,
        "provider": settings.GATEWAY_PROVIDER,
        "database": database,
    }
