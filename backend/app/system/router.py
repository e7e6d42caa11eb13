import logging
import time

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.config import settings
from app.db.session import get_db

logger = logging.getLogger(__name__)

STARTED_AT = time.monotonic()
MODE = "on-premise"

router = APIRouter()


def uptime_seconds() -> int:
    return round(time.monotonic() - STARTED_AT)


def database_reachable(db: Session) -> bool:
    try:
        db.execute(text("SELECT 1"))
    except SQLAlchemyError as e:
        logger.warning("Database check failed: %s", type(e).__name__)
        return False
    return True


def system_status(db: Session) -> dict:
    reachable = database_reachable(db)
    return {
        "status": "healthy" if reachable else "degraded",
        "uptime_seconds": uptime_seconds(),
        "mode": MODE,
        "version": settings.APP_VERSION,
        "database": "connected" if reachable else "unreachable",
    }


@router.get("/healthz")
def healthz(db: Session = Depends(get_db)):
    body = {"version": settings.APP_VERSION, "mode": MODE, "uptime_seconds": uptime_seconds()}
    if not database_reachable(db):
        return JSONResponse(status_code=503, content={"status": "degraded", "database": "unreachable", **body})
    return {"status": "ok", "database": "connected", **body}
