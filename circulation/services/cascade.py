"""
Status propagation through the catalog hierarchy.

A container (category, subcategory, language, author, publisher) pushes its
status down to every book it owns. Books linked to several containers settle on
the most restrictive status among all of them (Banned > InActive > Active), so
the outcome does not depend on the order cascades run in. Container cascades
stop at the book; only ``set_book_status`` relabels the physical copies.
"""
import enum
from typing import Dict, Iterable, List, Optional, Tuple, Type

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from circulation.core.errors import ContainerInUseError, NotFoundError
from circulation.core.logging import get_logger
from circulation.db.models import (
    Author,
    Base,
    Book,
    BookCopy,
    CatalogStatus,
    Category,
    CopyStatus,
    Language,
    Location,
    Publisher,
    SubCategory,
    author_books,
    book_languages,
    book_subcategories,
)
from circulation.services.common import flush_or_recheck

logger = get_logger("services.cascade")


class ContainerKind(str, enum.Enum):
    CATEGORY = "category"
    SUBCATEGORY = "subcategory"
    LANGUAGE = "language"
    AUTHOR = "author"
    PUBLISHER = "publisher"


CONTAINER_MODELS: Dict[ContainerKind, Tuple[Type[Base], str]] = {
    ContainerKind.CATEGORY: (Category, "Category"),
    ContainerKind.SUBCATEGORY: (SubCategory, "SubCategory"),
    ContainerKind.LANGUAGE: (Language, "Language"),
    ContainerKind.AUTHOR: (Author, "Author"),
    ContainerKind.PUBLISHER: (Publisher, "Publisher"),
}

_RESTRICTIVENESS = {
    CatalogStatus.ACTIVE: 0,
    CatalogStatus.INACTIVE: 1,
    CatalogStatus.BANNED: 2,
}


def most_restrictive(statuses: Iterable[CatalogStatus]) -> CatalogStatus:
    return max(statuses, key=_RESTRICTIVENESS.__getitem__, default=CatalogStatus.ACTIVE)


def effective_book_status(book: Book) -> CatalogStatus:
    """Status a book should carry given every container that owns it."""
    statuses: List[CatalogStatus] = []
    for subcategory in book.subcategories:
        statuses.append(subcategory.status)
        if subcategory.category is not None:
            statuses.append(subcategory.category.status)
    statuses.extend(language.status for language in book.languages)
    statuses.extend(author.status for author in book.authors)
    if book.publisher is not None:
        statuses.append(book.publisher.status)
    return most_restrictive(statuses)


async def _books_linked_through(db: AsyncSession, join_table, column: str, ids: List[str]) -> List[Book]:
    if not ids:
        return []
    result = await db.execute(
        select(Book)
        .join(join_table, join_table.c.book_id == Book.id)
        .where(join_table.c[column].in_(ids))
    )
    return list(result.scalars().unique().all())


async def _owned_books(
    db: AsyncSession, kind: ContainerKind, container_id: str, subcategory_ids: List[str]
) -> List[Book]:
    if kind in (ContainerKind.CATEGORY, ContainerKind.SUBCATEGORY):
        return await _books_linked_through(db, book_subcategories, "subcategory_id", subcategory_ids)
    if kind == ContainerKind.LANGUAGE:
        return await _books_linked_through(db, book_languages, "language_id", [container_id])
    if kind == ContainerKind.AUTHOR:
        return await _books_linked_through(db, author_books, "author_id", [container_id])
    result = await db.execute(select(Book).where(Book.publisher_id == container_id))
    return list(result.scalars().all())


async def set_container_status(
    db: AsyncSession,
    kind: ContainerKind,
    container_id: str,
    status: CatalogStatus,
    actor_id: Optional[str] = None,
) -> Base:
    """Set a container's status and cascade it onto the books it owns.

    A category also relabels its subcategories. A publisher cannot be made
    InActive while it still owns Active books.
    """
    model, label = CONTAINER_MODELS[kind]
    container = await db.get(model, container_id)
    if container is None:
        raise NotFoundError(f"{label} not found")

    if kind == ContainerKind.PUBLISHER and status == CatalogStatus.INACTIVE:
        active_books = await db.execute(
            select(func.count())
            .select_from(Book)
            .where(Book.publisher_id == container_id, Book.status == CatalogStatus.ACTIVE)
        )
        if active_books.scalar():
            raise ContainerInUseError("Cannot deactivate publisher with active books")

    subcategories: List[SubCategory] = []
    if kind == ContainerKind.CATEGORY:
        result = await db.execute(select(SubCategory).where(SubCategory.category_id == container_id))
        subcategories = list(result.scalars().all())
    elif kind == ContainerKind.SUBCATEGORY:
        subcategories = [container]

    # Load everything before mutating so autoflush cannot fire mid-cascade
    books = await _owned_books(db, kind, container_id, [sub.id for sub in subcategories])

    container.status = status
    for subcategory in subcategories:
        subcategory.status = status
    for book in books:
        book.status = effective_book_status(book)

    await flush_or_recheck(db, model, container_id, label)

    logger.info(
        f"{label} status set: id={container_id} status={status.value} "
        f"subcategories={len(subcategories) if kind == ContainerKind.CATEGORY else 0} "
        f"books={len(books)} by actor={actor_id}"
    )
    return container


async def set_book_status(
    db: AsyncSession, book_id: str, status: CatalogStatus, actor_id: Optional[str] = None
) -> Book:
    """Set a book's status and mirror it onto every copy, Borrowed ones included.

    Borrowed copies are relabelled only; their open loans stay open.
    """
    book = await db.get(Book, book_id)
    if book is None:
        raise NotFoundError("Book not found")

    result = await db.execute(select(BookCopy).where(BookCopy.book_id == book_id))
    copies = list(result.scalars().all())

    book.status = status
    copy_status = CopyStatus(status.value)
    for copy in copies:
        copy.status = copy_status

    await flush_or_recheck(db, Book, book_id, "Book")

    logger.info(
        f"Book status set: id={book_id} status={status.value} copies={len(copies)} by actor={actor_id}"
    )
    return book


async def set_location_status(
    db: AsyncSession, location_id: str, status: CatalogStatus, actor_id: Optional[str] = None
) -> Location:
    """Set a shelf location's status. Refuses to deactivate a shelf holding Active books."""
    location = await db.get(Location, location_id)
    if location is None:
        raise NotFoundError("Location not found")

    if status == CatalogStatus.INACTIVE:
        active_books = await db.execute(
            select(func.count())
            .select_from(Book)
            .where(Book.location_id == location_id, Book.status == CatalogStatus.ACTIVE)
        )
        if active_books.scalar():
            raise ContainerInUseError(
                "Location cannot be set to not active as there are books in this location"
            )

    location.status = status
    await flush_or_recheck(db, Location, location_id, "Location")

    logger.info(f"Location status set: id={location_id} status={status.value} by actor={actor_id}")
    return location
