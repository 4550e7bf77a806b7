"""Health check endpoint with database connectivity and hierarchy cache status."""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from orgguard.core.config import settings
from orgguard.core.database import check_db_connected, get_db
from orgguard.schemas.health import HealthResponse

router = APIRouter()


@router.get("/", response_model=HealthResponse)
def get_health(db: Session = Depends(get_db)) -> HealthResponse:
    """
    Return service health status and database connectivity.
    Access checks fail closed while the database is disconnected.
    """
    db_status = "connected" if check_db_connected(db) else "disconnected"

    return HealthResponse(
        status="ok",
        environment=settings.APP_ENV,
        database=db_status,
        hierarchy_cache="enabled" if settings.HIERARCHY_CACHE_TTL_SEC > 0 else "disabled",
    )
