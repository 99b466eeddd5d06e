"""
Exchange code registry.

A code is redeemed with a single guarded UPDATE (WHERE is_used = false), so
two checkouts presenting the same code at the same moment cannot both bind
it: one UPDATE matches the row, the other matches nothing and is told the
code is already used. Redemption happens inside the checkout transaction,
so a checkout that later fails (sold out, payment start error) rolls the
redemption back with everything else.
"""

import re
import secrets
import string
from dataclasses import dataclass
from typing import Iterable, Optional

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from boxoffice.core.config import get_settings
from boxoffice.core.errors import (
    CodeAlreadyUsedError,
    CodeGenerationError,
    CodeNotFoundError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
)
from boxoffice.core.logging import get_logger
from boxoffice.core.metrics import record_redemption
from boxoffice.db.base import utcnow
from boxoffice.domain.states import OrderStatus
from boxoffice.models.exchange_code import ExchangeCode
from boxoffice.models.order import Order
from boxoffice.models.performance import PerformanceSession

logger = get_logger(__name__)
settings = get_settings()

CODE_ALPHABET = string.ascii_uppercase + string.digits
_WHITESPACE = re.compile(r"\s+")


@dataclass(frozen=True)
class CodeCheck:
    code: str
    valid: bool
    already_used: bool
    performer_name: Optional[str] = None


def normalize_code(raw: str) -> str:
    return _WHITESPACE.sub("", raw or "").upper()


def normalize_performer_name(raw: Optional[str]) -> Optional[str]:
    """Collapse whitespace so "Ichikawa  Danjuro " and "Ichikawa Danjuro" tag the same performer."""
    name = _WHITESPACE.sub(" ", raw or "").strip()
    return name or None


async def validate_batch(db: AsyncSession, codes: Iterable[str]) -> list[CodeCheck]:
    """Read-only bulk lookup for pre-checkout feedback. Order of input is kept."""
    normalized = [normalize_code(code) for code in codes]
    wanted = {code for code in normalized if code}
    found: dict[str, ExchangeCode] = {}
    if wanted:
        result = await db.execute(select(ExchangeCode).where(ExchangeCode.code.in_(wanted)))
        found = {row.code: row for row in result.scalars().all()}

    checks = []
    for code in normalized:
        row = found.get(code)
        checks.append(
            CodeCheck(
                code=code,
                valid=row is not None,
                already_used=bool(row and row.is_used),
                performer_name=row.performer_name if row else None,
            )
        )
    return checks


async def redeem(db: AsyncSession, code: str, order_id: int) -> ExchangeCode:
    """Bind an unused code to an order. Exactly one concurrent caller wins."""
    canonical = normalize_code(code)
    result = await db.execute(
        update(ExchangeCode)
        .where(ExchangeCode.code == canonical, ExchangeCode.is_used.is_(False))
        .values(is_used=True, order_id=order_id, used_at=utcnow())
        .execution_options(synchronize_session=False)
    )

    if result.rowcount == 0:
        exists = await db.scalar(select(ExchangeCode.id).where(ExchangeCode.code == canonical))
        if exists is None:
            record_redemption("not_found")
            logger.warning("exchange_code_not_found", code=canonical, order_id=order_id)
            raise CodeNotFoundError(canonical)
        record_redemption("already_used")
        logger.warning("exchange_code_already_used", code=canonical, order_id=order_id)
        raise CodeAlreadyUsedError(canonical)

    record_redemption("redeemed")
    logger.info("exchange_code_redeemed", code=canonical, order_id=order_id)
    return await _get_code(db, canonical)


async def bind_to_order(db: AsyncSession, order_id: int) -> int:
    """
    Make sure every code redeemed for an order is marked used.

    Codes are already bound at checkout; this is the confirmation step run
    with the PAID transition and is a no-op for codes in their final state.
    """
    result = await db.execute(
        update(ExchangeCode)
        .where(ExchangeCode.order_id == order_id, ExchangeCode.is_used.is_(False))
        .values(is_used=True, used_at=utcnow())
        .execution_options(synchronize_session=False)
    )
    return result.rowcount


def _random_code(volume: Optional[str]) -> str:
    suffix = "".join(secrets.choice(CODE_ALPHABET) for _ in range(settings.EXCHANGE_CODE_LENGTH))
    prefix = normalize_code((volume or "").replace(".", ""))
    return f"{prefix}-{suffix}" if prefix else suffix


async def _code_exists(db: AsyncSession, code: str) -> bool:
    return await db.scalar(select(ExchangeCode.id).where(ExchangeCode.code == code)) is not None


async def generate_unique_code(
    db: AsyncSession,
    volume: Optional[str],
    taken: Optional[set[str]] = None,
    max_attempts: Optional[int] = None,
) -> str:
    """Draw random codes until one is free. Fails loudly when the budget runs out."""
    taken = taken if taken is not None else set()
    attempts = max_attempts or settings.EXCHANGE_CODE_MAX_ATTEMPTS
    for attempt in range(1, attempts + 1):
        candidate = _random_code(volume)
        if candidate in taken or await _code_exists(db, candidate):
            logger.debug("exchange_code_collision", attempt=attempt)
            continue
        return candidate
    logger.error("exchange_code_generation_exhausted", volume=volume, attempts=attempts)
    raise CodeGenerationError(
        f"Could not generate a unique exchange code after {attempts} attempts",
        attempts=attempts,
    )


async def create_code(
    db: AsyncSession,
    code: Optional[str] = None,
    performer_name: Optional[str] = None,
    session_id: Optional[int] = None,
    volume: Optional[str] = None,
) -> ExchangeCode:
    """Register a single code, explicit or generated."""
    performer_name = normalize_performer_name(performer_name)
    if code is not None:
        canonical = normalize_code(code)
        if not canonical:
            raise ValidationError("Exchange code cannot be blank")
        if await _code_exists(db, canonical):
            raise ValidationError(f"Exchange code {canonical} already exists")
    else:
        canonical = await generate_unique_code(db, volume)

    if session_id is not None:
        await _require_session(db, session_id)

    exchange_code = ExchangeCode(code=canonical, performer_name=performer_name, session_id=session_id)
    db.add(exchange_code)
    try:
        await db.flush()
    except IntegrityError:
        raise ValidationError(f"Exchange code {canonical} already exists")
    await db.refresh(exchange_code)
    logger.info("exchange_code_created", code=canonical, performer=performer_name)
    return exchange_code


async def generate_batch(
    db: AsyncSession,
    performer_name: str,
    codes_per_session: dict[int, int],
    volume: Optional[str] = None,
) -> list[ExchangeCode]:
    """
    Create `count` fresh codes for each session, all tagged with the performer.

    The volume tag defaults to the session's performance volume.
    """
    performer_name = normalize_performer_name(performer_name)
    if performer_name is None:
        raise ValidationError("Performer is required")
    if not codes_per_session or not any(codes_per_session.values()):
        raise ValidationError("No codes to generate")

    taken: set[str] = set()
    created = []
    for session_id, count in codes_per_session.items():
        if count < 0:
            raise ValidationError(f"Code count for session {session_id} cannot be negative")
        if not count:
            continue
        session = await _require_session(db, session_id)
        tag = volume if volume is not None else session.performance.volume
        for _ in range(count):
            code = await generate_unique_code(db, tag, taken=taken)
            taken.add(code)
            created.append(ExchangeCode(code=code, performer_name=performer_name, session_id=session_id))

    db.add_all(created)
    await db.flush()
    logger.info("exchange_codes_generated", performer=performer_name, count=len(created))
    return created


async def list_codes(
    db: AsyncSession,
    is_used: Optional[bool] = None,
    performer_name: Optional[str] = None,
    session_id: Optional[int] = None,
) -> list[ExchangeCode]:
    query = select(ExchangeCode)
    if is_used is not None:
        query = query.where(ExchangeCode.is_used.is_(is_used))
    performer_name = normalize_performer_name(performer_name)
    if performer_name:
        query = query.where(func.lower(ExchangeCode.performer_name) == performer_name.lower())
    if session_id is not None:
        query = query.where(ExchangeCode.session_id == session_id)
    result = await db.execute(query.order_by(ExchangeCode.created_at.desc(), ExchangeCode.id.desc()))
    return list(result.scalars().all())


async def list_performers(db: AsyncSession) -> list[str]:
    """Distinct performer tags in use, for pickers that keep new batches on an existing tag."""
    result = await db.execute(
        select(ExchangeCode.performer_name)
        .where(ExchangeCode.performer_name.is_not(None))
        .distinct()
        .order_by(ExchangeCode.performer_name)
    )
    return list(result.scalars().all())


async def code_stats(db: AsyncSession) -> dict:
    total = await db.scalar(select(func.count(ExchangeCode.id)))
    used = await db.scalar(select(func.count(ExchangeCode.id)).where(ExchangeCode.is_used.is_(True)))
    return {"total": total or 0, "used": used or 0, "unused": (total or 0) - (used or 0)}


async def release_code(db: AsyncSession, code: str) -> ExchangeCode:
    """
    Admin override: un-bind a code whose order never completed.

    Only codes bound to CANCELLED or EXPIRED orders can be released.
    """
    exchange_code = await _get_code(db, normalize_code(code))
    if not exchange_code.is_used:
        return exchange_code

    if exchange_code.order_id is not None:
        status = await db.scalar(select(Order.status).where(Order.id == exchange_code.order_id))
        if status not in (OrderStatus.CANCELLED.value, OrderStatus.EXPIRED.value):
            raise InvalidStateError(
                f"Exchange code {exchange_code.code} belongs to an order that is {status}",
                current=status,
            )

    await db.execute(
        update(ExchangeCode)
        .where(ExchangeCode.id == exchange_code.id)
        .values(is_used=False, used_at=None, order_id=None)
        .execution_options(synchronize_session=False)
    )
    logger.warning("exchange_code_released", code=exchange_code.code, order_id=exchange_code.order_id)
    return await _get_code(db, exchange_code.code)


async def _get_code(db: AsyncSession, canonical: str) -> ExchangeCode:
    result = await db.execute(
        select(ExchangeCode)
        .where(ExchangeCode.code == canonical)
        .execution_options(populate_existing=True)
    )
    exchange_code = result.scalar_one_or_none()
    if exchange_code is None:
        raise CodeNotFoundError(canonical)
    return exchange_code


async def _require_session(db: AsyncSession, session_id: int) -> PerformanceSession:
    session = await db.get(PerformanceSession, session_id)
    if session is None:
        raise NotFoundError("Session", session_id)
    return session
