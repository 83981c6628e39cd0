"""
Shared fixtures for functional tests.
Uses httpx.AsyncClient against the real FastAPI app with an in-memory SQLite DB.
"""
from uuid import uuid4

import pytest_asyncio
from httpx import AsyncClient, ASGITransport

from circulation.db.models import (
    Base, Author, Category, Employee, Language, Location, Member, Nationality,
    Publisher, SubCategory,
)
from circulation.db import session as db_session_module
from circulation.main import app


# ─── DB override ────────────────────────────────────────────────

@pytest_asyncio.fixture
async def test_engine():
    """Create an in-memory SQLite engine for functional testing."""
    engine = db_session_module.build_engine("sqlite+aiosqlite:///:memory:")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest_asyncio.fixture
async def test_session_factory(test_engine):
    """Session factory bound to the test engine."""
    return db_session_module.build_session_factory(test_engine)


@pytest_asyncio.fixture
async def client(test_session_factory):
    """Provide an httpx.AsyncClient with DB overridden to use the test DB."""

    async def override_get_db():
        async with test_session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[db_session_module.get_db] = override_get_db

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


# ─── Seed data ──────────────────────────────────────────────────

@pytest_asyncio.fixture
async def library(test_session_factory):
    """Seed people and catalog containers directly in the DB; returns their ids."""
    async with test_session_factory() as session:
        nationality = Nationality(id=str(uuid4()), name="United Kingdom", code="GB")
        language = Language(id=str(uuid4()), name="English", nationality=nationality)
        category = Category(id=str(uuid4()), name="Fiction")
        subcategory = SubCategory(id=str(uuid4()), name="Science Fiction", category=category)
        author = Author(id=str(uuid4()), full_name="Ursula K. Le Guin")
        publisher = Publisher(id=str(uuid4()), name="Ace Books")
        location = Location(id=str(uuid4()), section_code="F", aisle_code="12", shelf_number="3")
        member = Member(id=str(uuid4()), id_number="11122233344", full_name="Ada Reader")
        employee = Employee(id=str(uuid4()), full_name="Desk Librarian", title="Librarian")
        session.add_all([
            nationality, language, category, subcategory, author,
            publisher, location, member, employee,
        ])
        await session.commit()

    return {
        "language_id": language.id,
        "category_id": category.id,
        "subcategory_id": subcategory.id,
        "author_id": author.id,
        "publisher_id": publisher.id,
        "location_id": location.id,
        "member_id": member.id,
        "member_id_number": member.id_number,
        "employee_id": employee.id,
    }


def book_payload(library: dict, isbn: str = "9780441478125", copy_count: int = 2, **overrides) -> dict:
    """Return a BookCreate body linked to every seeded container."""
    payload = {
        "isbn": isbn,
        "title": "The Left Hand of Darkness",
        "publishing_year": 1969,
        "publisher_id": library["publisher_id"],
        "location_id": library["location_id"],
        "author_ids": [library["author_id"]],
        "language_ids": [library["language_id"]],
        "subcategory_ids": [library["subcategory_id"]],
        "copy_count": copy_count,
    }
    payload.update(overrides)
    return payload


async def first_copy_id(client: AsyncClient, book_id: str) -> str:
    resp = await client.get(f"/api/v1/books/{book_id}/copies", params={"status": "Active"})
    assert resp.status_code == 200
    return resp.json()["data"][0]["id"]
