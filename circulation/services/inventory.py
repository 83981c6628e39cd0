"""
Physical copy bookkeeping for books.

Copies are never deleted: a book is created with N Active copies, later
additions insert more Active rows and reductions flip Active rows to InActive.
"""
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Optional, Type

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from circulation.core.config import settings
from circulation.core.errors import (
    CapacityExceededError,
    DuplicateIsbnError,
    InsufficientCopiesError,
    InvalidInputError,
    NotFoundError,
)
from circulation.core.logging import get_logger
from circulation.db.models import (
    Author,
    Base,
    Book,
    BookCopy,
    CatalogStatus,
    CopyStatus,
    Language,
    Location,
    Publisher,
    SubCategory,
)
from circulation.services.common import entity_exists, flush_or_recheck

logger = get_logger("services.inventory")


async def get_book_by_id(db: AsyncSession, book_id: str) -> Optional[Book]:
    """Get a single book by ID."""
    result = await db.execute(select(Book).where(Book.id == book_id))
    return result.scalar_one_or_none()


async def count_copies(db: AsyncSession, book_id: str) -> Dict[str, int]:
    """Count a book's copies per status, including zero buckets."""
    result = await db.execute(
        select(BookCopy.status, func.count())
        .where(BookCopy.book_id == book_id)
        .group_by(BookCopy.status)
    )
    counts = {status.value: 0 for status in CopyStatus}
    for status, total in result.all():
        counts[CopyStatus(status).value] = total
    return counts


async def count_active_copies(db: AsyncSession, book_id: str) -> int:
    result = await db.execute(
        select(func.count())
        .select_from(BookCopy)
        .where(BookCopy.book_id == book_id, BookCopy.status == CopyStatus.ACTIVE)
    )
    return result.scalar()


async def count_active_copies_at_location(db: AsyncSession, location_id: str) -> int:
    """Active copies shelved at a location, across all books."""
    result = await db.execute(
        select(func.count())
        .select_from(BookCopy)
        .join(Book, Book.id == BookCopy.book_id)
        .where(Book.location_id == location_id, BookCopy.status == CopyStatus.ACTIVE)
    )
    return result.scalar()


async def list_book_copies(
    db: AsyncSession, book_id: str, status: Optional[CopyStatus] = None
) -> List[BookCopy]:
    """List a book's copies, optionally filtered by status."""
    query = select(BookCopy).where(BookCopy.book_id == book_id)
    if status is not None:
        query = query.where(BookCopy.status == status)
    result = await db.execute(query.order_by(BookCopy.id))
    return list(result.scalars().all())


async def _load_all(
    db: AsyncSession, model: Type[Base], ids: Iterable[str], label: str
) -> List[Base]:
    wanted = list(dict.fromkeys(ids))
    if not wanted:
        return []
    result = await db.execute(select(model).where(model.id.in_(wanted)))
    found = list(result.scalars().all())
    missing = set(wanted) - {row.id for row in found}
    if missing:
        raise NotFoundError(f"{label} not found: {', '.join(sorted(missing))}")
    return found


async def create_book(
    db: AsyncSession, data: dict, copy_count: int, actor_id: Optional[str] = None
) -> Book:
    """Create a book together with ``copy_count`` Active copies.

    The shelf cap is checked against the copies already Active at the target
    location; this is the only place it is enforced.
    """
    if copy_count < 0:
        raise InvalidInputError("Copy count cannot be negative")

    data = dict(data)
    author_ids = data.pop("author_ids", None) or []
    language_ids = data.pop("language_ids", None) or []
    subcategory_ids = data.pop("subcategory_ids", None) or []

    existing = await db.execute(select(Book.id).where(Book.isbn == data["isbn"]))
    if existing.scalar_one_or_none() is not None:
        raise DuplicateIsbnError("The book with the specified ISBN is already in the database")

    location_id = data.get("location_id")
    if location_id:
        if not await entity_exists(db, Location, location_id):
            raise NotFoundError("Location not found")
        shelved = await count_active_copies_at_location(db, location_id)
        if shelved >= settings.SHELF_CAPACITY:
            raise CapacityExceededError(
                f"The shelf already has {settings.SHELF_CAPACITY} books. "
                "No more books can be added to this shelf"
            )

    publisher = None
    publisher_id = data.get("publisher_id")
    if publisher_id:
        publisher = await db.get(Publisher, publisher_id)
        if publisher is None:
            raise NotFoundError("Publisher not found")

    book = Book(**data, status=CatalogStatus.ACTIVE)
    book.publisher = publisher
    book.authors = await _load_all(db, Author, author_ids, "Author")
    book.languages = await _load_all(db, Language, language_ids, "Language")
    book.subcategories = await _load_all(db, SubCategory, subcategory_ids, "SubCategory")
    db.add(book)
    await db.flush()

    db.add_all(
        [BookCopy(book_id=book.id, status=CopyStatus.ACTIVE) for _ in range(copy_count)]
    )
    await db.flush()
    await db.refresh(book)

    logger.info(
        f"Book created: id={book.id} isbn={book.isbn} copies={copy_count} by actor={actor_id}"
    )
    return book


async def adjust_copies(
    db: AsyncSession, book_id: str, delta: int, actor_id: Optional[str] = None
) -> Dict[str, int]:
    """Add or retire copies of a book; returns the per-status counts afterwards.

    Positive deltas insert Active copies. Negative deltas flip up to ``|delta|``
    Active copies to InActive; Borrowed copies are never touched.
    """
    book = await get_book_by_id(db, book_id)
    if not book:
        raise NotFoundError("Book not found")

    active_count = await count_active_copies(db, book_id)
    if active_count + delta < 0:
        raise InsufficientCopiesError("Not enough copies available")

    if delta > 0:
        db.add_all([BookCopy(book_id=book_id, status=CopyStatus.ACTIVE) for _ in range(delta)])
    elif delta < 0:
        result = await db.execute(
            select(BookCopy)
            .where(BookCopy.book_id == book_id, BookCopy.status == CopyStatus.ACTIVE)
            .limit(-delta)
        )
        for copy in result.scalars().all():
            copy.status = CopyStatus.INACTIVE

    # Bump the book version so concurrent adjustments of the same book conflict
    book.updated_at = datetime.now(timezone.utc)
    await flush_or_recheck(db, Book, book_id, "Book")

    logger.info(f"Book copies adjusted: book={book_id} delta={delta} by actor={actor_id}")
    return await count_copies(db, book_id)
