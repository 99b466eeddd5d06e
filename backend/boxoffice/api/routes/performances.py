"""
Performance catalogue endpoints (admin).
"""

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from boxoffice.db.session import get_db
from boxoffice.schemas.performance import PerformanceCreate, PerformanceResponse, SessionCreate, SessionResponse
from boxoffice.services.performance_service import create_performance, create_session, get_performance
from boxoffice.services.cache_service import invalidate_session_cache

router = APIRouter(prefix="/performances", tags=["Performances"])


@router.post("/", response_model=PerformanceResponse, status_code=status.HTTP_201_CREATED)
async def create_performance_endpoint(
    performance_data: PerformanceCreate,
    db: AsyncSession = Depends(get_db),
):
    return await create_performance(db, performance_data)


@router.get("/{performance_id}", response_model=PerformanceResponse)
async def get_performance_endpoint(
    performance_id: int,
    db: AsyncSession = Depends(get_db),
):
    return await get_performance(db, performance_id)


@router.post("/{performance_id}/sessions", response_model=SessionResponse, status_code=status.HTTP_201_CREATED)
async def create_session_endpoint(
    performance_id: int,
    session_data: SessionCreate,
    db: AsyncSession = Depends(get_db),
):
    """Add a show to a performance. Seats start unsold."""
    session = await create_session(db, performance_id, session_data)
    await invalidate_session_cache()
    return SessionResponse.from_session(session)
