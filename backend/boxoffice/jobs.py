"""
Scheduled jobs. Run from cron or a scheduler:

    python -m boxoffice.jobs

The expiry sweep is also exposed as POST /api/v1/orders/expire-stale.
"""

import asyncio
from datetime import datetime
from typing import Optional

from boxoffice.core.logging import get_logger, setup_logging
from boxoffice.db.session import engine
from boxoffice.services import order_service
from boxoffice.services.cache_service import close_redis, invalidate_session_cache

logger = get_logger(__name__)


async def run_expiry_sweep(now: Optional[datetime] = None) -> list[int]:
    """Expire PENDING orders past their hold. Returns the ids that moved to EXPIRED."""
    expired = await order_service.expire_stale_orders(now)
    if expired:
        await invalidate_session_cache()
    logger.info("expiry_sweep_finished", expired=len(expired))
    return expired


async def main() -> None:
    setup_logging()
    try:
        await run_expiry_sweep()
    finally:
        await close_redis()
        await engine.dispose()


if __name__ == "__main__":
    asyncio.run(main())
