from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional, List

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from circulation.core.config import settings
from circulation.core.logging import get_logger
from circulation.db.models import Penalty, PenaltyType

logger = get_logger("services.penalty")


def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes; everything is stored as UTC
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def overdue_days(due_date: datetime, return_date: datetime) -> int:
    """Whole days a return is past its due date (0 when on time)."""
    due_date = _as_utc(due_date)
    return_date = _as_utc(return_date)
    if return_date <= due_date:
        return 0
    return (return_date - due_date).days


def classify_overdue(days: int) -> PenaltyType:
    """Map an overdue day count to its penalty tier.

    Tiers are checked in a fixed order and the first match wins, so the
    ten-day tier only covers 11 to 30 days.
    """
    if 30 < days <= 60:
        return PenaltyType.TWO_MONTHS
    if 60 < days <= 365:
        return PenaltyType.ONE_YEAR
    if days > 365:
        return PenaltyType.LIMITLESS
    if days > 10:
        return PenaltyType.TEN_DAYS
    return PenaltyType.NONE


def compute_total_fee(days: int, daily_fee: Decimal) -> Decimal:
    return (Decimal(daily_fee) * days).quantize(Decimal("0.01"))


async def calculate_penalty(
    db: AsyncSession,
    member_id: str,
    due_date: datetime,
    return_date: datetime,
    loan_id: Optional[str] = None,
) -> Optional[Penalty]:
    """Record a penalty for a late return.

    Returns None (and writes nothing) when the book came back on time or the
    overdue period falls in the untiered ``None`` band.
    """
    if _as_utc(return_date) <= _as_utc(due_date):
        return None

    days = overdue_days(due_date, return_date)
    penalty_type = classify_overdue(days)
    if penalty_type == PenaltyType.NONE:
        logger.info(f"Late return within grace band: member={member_id} overdue_days={days}")
        return None

    daily_fee = settings.PENALTY_DAILY_FEE
    penalty = Penalty(
        member_id=member_id,
        loan_id=loan_id,
        daily_fee=daily_fee,
        total_fee=compute_total_fee(days, daily_fee),
        start_date=due_date,
        end_date=return_date,
        overdue_days=days,
        type=penalty_type,
    )
    db.add(penalty)
    await db.flush()

    logger.info(
        f"Penalty recorded: id={penalty.id} member={member_id} overdue_days={days} "
        f"type={penalty_type.value} total_fee={penalty.total_fee}"
    )
    return penalty


async def get_penalty_by_id(db: AsyncSession, penalty_id: str) -> Optional[Penalty]:
    """Get a single penalty by ID."""
    result = await db.execute(select(Penalty).where(Penalty.id == penalty_id))
    return result.scalar_one_or_none()


async def get_penalties_by_member(db: AsyncSession, member_id: str) -> List[Penalty]:
    """List a member's penalties, newest first."""
    result = await db.execute(
        select(Penalty)
        .where(Penalty.member_id == member_id)
        .order_by(Penalty.created_at.desc())
    )
    return list(result.scalars().all())
