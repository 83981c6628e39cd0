"""
Shared fixtures for unit tests.
Uses an in-memory SQLite database for fast isolated testing.
"""
from uuid import uuid4

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession

from circulation.db.models import (
    Base, Author, Category, CatalogStatus, Employee,
    Language, Location, Member, Nationality, Publisher, SubCategory,
)
from circulation.db.session import build_engine, build_session_factory
from circulation.services.inventory import create_book, list_book_copies


@pytest_asyncio.fixture
async def async_engine():
    """Create an in-memory SQLite engine for testing."""
    engine = build_engine("sqlite+aiosqlite:///:memory:")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest_asyncio.fixture
async def db_session(async_engine) -> AsyncSession:
    """Provide a transactional database session for each test."""
    session_factory = build_session_factory(async_engine)
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest_asyncio.fixture
async def file_session_factory(tmp_path):
    """Session factory on a file database, so several sessions see each other's commits."""
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'circulation.db'}")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield build_session_factory(engine)

    await engine.dispose()


# ─── Helper factories ───────────────────────────────────────────


@pytest.fixture
def make_member():
    """Factory fixture to create Member instances."""
    def _make(id_number: str = None, full_name: str = "Test Member") -> Member:
        return Member(
            id=str(uuid4()),
            id_number=id_number or f"M{uuid4().int % 10**10:010d}",
            full_name=full_name,
        )
    return _make


@pytest.fixture
def make_employee():
    """Factory fixture to create Employee instances."""
    def _make(full_name: str = "Test Librarian", title: str = "Librarian") -> Employee:
        return Employee(id=str(uuid4()), full_name=full_name, title=title)
    return _make


@pytest.fixture
def make_location():
    def _make(status: CatalogStatus = CatalogStatus.ACTIVE) -> Location:
        return Location(
            id=str(uuid4()),
            section_code="A",
            aisle_code="01",
            shelf_number="S1",
            status=status,
        )
    return _make


@pytest_asyncio.fixture
async def catalog(db_session):
    """A small catalog: one of each container kind, all Active."""
    nationality = Nationality(id=str(uuid4()), name="Turkey", code="TR")
    language = Language(id=str(uuid4()), name="Turkish", nationality=nationality)
    category = Category(id=str(uuid4()), name="Literature")
    subcategory = SubCategory(id=str(uuid4()), name="Novel", category=category)
    author = Author(id=str(uuid4()), full_name="Orhan Pamuk")
    publisher = Publisher(id=str(uuid4()), name="Iletisim")
    db_session.add_all([nationality, language, category, subcategory, author, publisher])
    await db_session.flush()
    return {
        "language": language,
        "category": category,
        "subcategory": subcategory,
        "author": author,
        "publisher": publisher,
    }


@pytest.fixture
def add_book(db_session, catalog):
    """Factory fixture creating a book through the inventory service, linked to the catalog."""
    async def _add(copy_count: int = 3, isbn: str = None, location_id: str = None, **links):
        data = {
            "isbn": isbn or f"978{uuid4().int % 10**10:010d}",
            "title": "Test Book",
            "publisher_id": links.pop("publisher_id", catalog["publisher"].id),
            "location_id": location_id,
            "author_ids": links.pop("author_ids", [catalog["author"].id]),
            "language_ids": links.pop("language_ids", [catalog["language"].id]),
            "subcategory_ids": links.pop("subcategory_ids", [catalog["subcategory"].id]),
        }
        return await create_book(db_session, data, copy_count)
    return _add


@pytest_asyncio.fixture
async def lending_setup(db_session, add_book, make_member, make_employee):
    """A book with two Active copies, one member and one employee."""
    member = make_member(id_number="12345678901")
    employee = make_employee()
    db_session.add_all([member, employee])
    await db_session.flush()
    book = await add_book(copy_count=2)
    copies = await list_book_copies(db_session, book.id)
    return {
        "book": book,
        "copy_ids": [copy.id for copy in copies],
        "member": member,
        "employee": employee,
    }
