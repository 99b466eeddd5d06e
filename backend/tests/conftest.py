"""
Pytest fixtures: a file-backed SQLite database rebuilt per test, an HTTP
client over the ASGI app, and a seeded on-sale session.

Environment is set before boxoffice is imported so get_settings() picks
up the test database and Redis stays off.
"""

import os
import tempfile
from datetime import datetime, timezone, timedelta
from typing import AsyncGenerator

_DB_DIR = tempfile.mkdtemp(prefix="boxoffice-tests-")
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{os.path.join(_DB_DIR, 'boxoffice.db')}"
os.environ["REDIS_ENABLED"] = "false"
os.environ["ENVIRONMENT"] = "test"

import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from httpx import AsyncClient, ASGITransport  # noqa: E402

from boxoffice.main import app  # noqa: E402
from boxoffice.db.base import Base  # noqa: E402
from boxoffice.db.session import engine, session_scope  # noqa: E402
from boxoffice.domain.states import SaleStatus  # noqa: E402
from boxoffice.models import ExchangeCode  # noqa: E402
from boxoffice.schemas.performance import PerformanceCreate, SessionCreate  # noqa: E402
from boxoffice.services import order_service, performance_service  # noqa: E402


@pytest.fixture
def buyer() -> order_service.CustomerInfo:
    return order_service.CustomerInfo(name="Hanako Yamada", email="hanako@tickets.co.jp", phone="090-0000-0000")


@pytest_asyncio.fixture(scope="function")
async def database() -> AsyncGenerator[None, None]:
    """Create tables, run the test, then drop them."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)

    yield

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest_asyncio.fixture
async def tx(database):
    """Run a service call in its own committed transaction: await tx(fn, *args)."""

    async def run(fn, *args, **kwargs):
        async with session_scope() as db:
            return await fn(db, *args, **kwargs)

    return run


@pytest_asyncio.fixture(scope="function")
async def client(database) -> AsyncGenerator[AsyncClient, None]:
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest_asyncio.fixture
async def make_session(tx):
    """Factory for an on-sale session. Capacities default to general=10, reserved=5, vip1=2."""

    async def create(
        general=10,
        reserved=5,
        vip1=2,
        vip2=0,
        general_price=4000,
        sale_status=SaleStatus.ON_SALE,
        **session_fields,
    ):
        performance = await tx(
            performance_service.create_performance,
            PerformanceCreate(
                title="Kabuki Night",
                volume="vol.2",
                general_price=general_price,
                reserved_price=6000,
                vip1_price=10000,
                vip2_price=None,
            ),
        )
        session = await tx(
            performance_service.create_session,
            performance.id,
            SessionCreate(
                starts_at=datetime.now(timezone.utc) + timedelta(days=14),
                venue_name="Minami-za",
                sale_status=sale_status,
                general_capacity=general,
                reserved_capacity=reserved,
                vip1_capacity=vip1,
                vip2_capacity=vip2,
                **session_fields,
            ),
        )
        return session.id

    return create


@pytest_asyncio.fixture
async def session_id(make_session) -> int:
    return await make_session()


@pytest_asyncio.fixture
async def exchange_codes(tx, session_id) -> list[str]:
    """Three unused codes for the seeded session."""

    async def add(db, codes):
        db.add_all([ExchangeCode(code=code, performer_name="Ichikawa", session_id=session_id) for code in codes])

    codes = ["VOL2-AAAAA", "VOL2-BBBBB", "VOL2-CCCCC"]
    await tx(add, codes)
    return codes


@pytest_asyncio.fixture
async def pending_order(tx, session_id, buyer):
    return await tx(order_service.create_order, session_id, {"GENERAL": 1}, buyer)


@pytest_asyncio.fixture
async def paid_order(tx, session_id, buyer):
    order = await tx(order_service.create_order, session_id, {"GENERAL": 2, "RESERVED": 1}, buyer)
    return await tx(order_service.confirm_payment, order.id)
