"""
Session endpoints. The on-sale listing is cached in Redis.
"""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from boxoffice.db.session import get_db
from boxoffice.schemas.performance import SessionResponse, SessionUpdate
from boxoffice.services.performance_service import get_session, list_on_sale_sessions, update_session
from boxoffice.services.cache_service import get_cached_on_sale, set_cached_on_sale, invalidate_session_cache
from boxoffice.core.logging import get_logger

logger = get_logger(__name__)
router = APIRouter(prefix="/sessions", tags=["Sessions"])


@router.get("/", response_model=list[SessionResponse])
async def list_on_sale_endpoint(db: AsyncSession = Depends(get_db)):
    """
    Sessions currently on sale (or sold out), soonest first.
    Display only: availability may lag the ledger by the cache TTL at most.
    """
    cached = await get_cached_on_sale()
    if cached is not None:
        logger.info("on_sale_cache_hit")
        return [SessionResponse(**item) for item in cached]

    sessions = [SessionResponse.from_session(s) for s in await list_on_sale_sessions(db)]
    await set_cached_on_sale([s.model_dump(mode="json") for s in sessions])
    return sessions


@router.get("/{session_id}", response_model=SessionResponse)
async def get_session_endpoint(session_id: int, db: AsyncSession = Depends(get_db)):
    """Single session with live availability. Not cached."""
    return SessionResponse.from_session(await get_session(db, session_id))


@router.patch("/{session_id}", response_model=SessionResponse)
async def update_session_endpoint(
    session_id: int,
    session_data: SessionUpdate,
    db: AsyncSession = Depends(get_db),
):
    """Edit sale window, venue, status or capacities. Capacity never drops below sold."""
    session = await update_session(db, session_id, session_data)
    await invalidate_session_cache()
    return SessionResponse.from_session(session)
