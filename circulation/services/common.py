from typing import Type

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from circulation.core.errors import ConcurrencyConflictError, NotFoundError
from circulation.core.logging import get_logger
from circulation.db.models import Base

logger = get_logger("services.common")


async def entity_exists(db: AsyncSession, model: Type[Base], entity_id: str) -> bool:
    """Check whether a row with the given primary key exists."""
    result = await db.execute(
        select(func.count()).select_from(model).where(model.id == entity_id)
    )
    return result.scalar() > 0


async def flush_or_recheck(
    db: AsyncSession, model: Type[Base], entity_id: str, label: str
) -> None:
    """Flush pending changes, translating a lost optimistic-concurrency race.

    When the versioned UPDATE matches no row the unit of work is rolled back and
    the target is looked up again: a vanished row is reported as NotFound, an
    existing one as a concurrency conflict the caller may retry.
    """
    try:
        await db.flush()
    except StaleDataError as exc:
        await db.rollback()
        if not await entity_exists(db, model, entity_id):
            raise NotFoundError(f"{label} not found") from exc
        logger.warning(f"Concurrent modification detected: {label.lower()} id={entity_id}")
        raise ConcurrencyConflictError(
            f"{label} was modified by another request, please retry"
        ) from exc
