from typing import Annotated, List

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from circulation.api.v1.dependencies import get_actor_id
from circulation.core.errors import NotFoundError
from circulation.db.models import Book, CopyStatus
from circulation.db.session import get_db
from circulation.schemas.book import (
    BookCopiesAdjust,
    BookCopyResponse,
    BookCreate,
    BookResponse,
    CopyCountsResponse,
)
from circulation.schemas.catalog import StatusUpdate
from circulation.schemas.common import ServiceResult
from circulation.services.cascade import set_book_status
from circulation.services.inventory import (
    adjust_copies,
    count_copies,
    create_book,
    get_book_by_id,
    list_book_copies,
)

router = APIRouter(prefix="/books", tags=["Books"])


async def _book_response(db: AsyncSession, book: Book) -> BookResponse:
    response = BookResponse.model_validate(book)
    response.copy_counts = await count_copies(db, book.id)
    return response


@router.post(
    "",
    response_model=ServiceResult[BookResponse],
    status_code=status.HTTP_201_CREATED,
    summary="Add a book",
    description="Create a book with its author, language and subcategory links and `copy_count` Active copies.",
    responses={
        201: {"description": "Book created"},
        404: {"description": "A referenced publisher, location, author, language or subcategory does not exist"},
        409: {"description": "ISBN already taken or shelf full"},
    },
)
async def create_book_endpoint(
    data: BookCreate,
    db: Annotated[AsyncSession, Depends(get_db)],
    actor_id: Annotated[str | None, Depends(get_actor_id)],
):
    book = await create_book(
        db, data.model_dump(exclude={"copy_count"}), data.copy_count, actor_id=actor_id
    )
    return ServiceResult[BookResponse].ok(await _book_response(db, book), "Book created")


@router.get(
    "/{book_id}",
    response_model=ServiceResult[BookResponse],
    summary="Get book details",
    description="Book fields plus the number of copies in each status.",
    responses={404: {"description": "Book not found"}},
)
async def get_book_endpoint(
    book_id: str,
    db: Annotated[AsyncSession, Depends(get_db)],
):
    book = await get_book_by_id(db, book_id)
    if not book:
        raise NotFoundError("Book not found")
    return ServiceResult[BookResponse].ok(await _book_response(db, book))


@router.get(
    "/{book_id}/copies",
    response_model=ServiceResult[List[BookCopyResponse]],
    summary="List a book's copies",
)
async def list_copies_endpoint(
    book_id: str,
    db: Annotated[AsyncSession, Depends(get_db)],
    copy_status: CopyStatus | None = Query(None, alias="status"),
):
    copies = await list_book_copies(db, book_id, status=copy_status)
    return ServiceResult[List[BookCopyResponse]].ok(
        [BookCopyResponse.model_validate(c) for c in copies]
    )


@router.put(
    "/{book_id}/copies",
    response_model=ServiceResult[CopyCountsResponse],
    summary="Add or retire copies",
    description="A positive delta adds Active copies; a negative delta retires Active copies to InActive.",
    responses={
        404: {"description": "Book not found"},
        409: {"description": "Not enough Active copies to retire, or concurrent modification"},
    },
)
async def adjust_copies_endpoint(
    book_id: str,
    data: BookCopiesAdjust,
    db: Annotated[AsyncSession, Depends(get_db)],
    actor_id: Annotated[str | None, Depends(get_actor_id)],
):
    counts = await adjust_copies(db, book_id, data.delta, actor_id=actor_id)
    return ServiceResult[CopyCountsResponse].ok(
        CopyCountsResponse(book_id=book_id, counts=counts), "Copies updated"
    )


@router.patch(
    "/{book_id}/status",
    response_model=ServiceResult[BookResponse],
    summary="Set book status",
    description="Set the book's status and apply it to every copy, Borrowed copies included.",
    responses={
        404: {"description": "Book not found"},
        409: {"description": "Concurrent modification, retry"},
    },
)
async def set_book_status_endpoint(
    book_id: str,
    data: StatusUpdate,
    db: Annotated[AsyncSession, Depends(get_db)],
    actor_id: Annotated[str | None, Depends(get_actor_id)],
):
    book = await set_book_status(db, book_id, data.status, actor_id=actor_id)
    return ServiceResult[BookResponse].ok(await _book_response(db, book), "Book status updated")
