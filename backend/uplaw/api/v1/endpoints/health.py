"""
Readiness check – verify database and document storage connectivity.
"""
from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from uplaw.api.v1.deps import get_storage
from uplaw.core.logger import logger
from uplaw.db.database import get_db

router = APIRouter()


def _check_database(db: Session) -> tuple[str, str]:
    """Returns (status, detail). Status is 'ok' or 'error'."""
    try:
        db.execute(text("SELECT 1"))
        return "ok", "Database reachable"
    except SQLAlchemyError as e:
        return "error", f"Database: {str(e)}"


@router.get("/ready")
def readiness(db: Session = Depends(get_db), storage=Depends(get_storage)):
    db_status, db_detail = _check_database(db)
    s3_status, s3_detail = storage.health_check()

    checks = {
        "database": {"status": db_status, "detail": db_detail},
        "storage": {"status": s3_status, "detail": s3_detail},
    }
    healthy = db_status == "ok" and s3_status == "ok"
    if not healthy:
        logger.warning(f"Readiness check failed: {checks}")

    return JSONResponse(
        status_code=200 if healthy else 503,
        content={"status": "ready" if healthy else "degraded", "checks": checks},
    )
