"""
Health check endpoint.
"""
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_db, ping_db
from app.models.schemas import HealthCheckResponse
from app.utils.helpers import utc_now

router = APIRouter()


@router.get("/", response_model=HealthCheckResponse)
async def health_check(db: AsyncSession = Depends(get_db)):
    """Report whether the database answers; "degraded" when it does not."""
    db_ok = await ping_db(db)
    return HealthCheckResponse(
        status="healthy" if db_ok else "degraded",
        database="ok" if db_ok else "error",
        timestamp=utc_now(),
    )
