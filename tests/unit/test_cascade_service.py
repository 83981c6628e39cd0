"""
Unit tests for circulation.services.cascade – container, book and location status.
"""
from uuid import uuid4

import pytest
from sqlalchemy import delete

from circulation.core.errors import ConcurrencyConflictError, ContainerInUseError, NotFoundError
from circulation.db.models import (
    Author, CatalogStatus, Location, Publisher, SubCategory,
)
from circulation.services.cascade import (
    ContainerKind,
    most_restrictive,
    set_book_status,
    set_container_status,
    set_location_status,
)
from circulation.services.inventory import count_copies
from circulation.services.loan import create_loan

ACTIVE = CatalogStatus.ACTIVE
INACTIVE = CatalogStatus.INACTIVE
BANNED = CatalogStatus.BANNED


class TestMostRestrictive:
    def test_banned_beats_everything(self):
        assert most_restrictive([ACTIVE, BANNED, INACTIVE]) == BANNED

    def test_inactive_beats_active(self):
        assert most_restrictive([ACTIVE, INACTIVE, ACTIVE]) == INACTIVE

    def test_all_active(self):
        assert most_restrictive([ACTIVE, ACTIVE]) == ACTIVE

    def test_empty_is_active(self):
        assert most_restrictive([]) == ACTIVE


class TestSetContainerStatus:
    @pytest.mark.asyncio
    async def test_subcategory_cascades_to_book(self, db_session, add_book, catalog):
        book = await add_book(copy_count=2)
        sub = await set_container_status(
            db_session, ContainerKind.SUBCATEGORY, catalog["subcategory"].id, BANNED
        )
        assert sub.status == BANNED
        assert book.status == BANNED

    @pytest.mark.asyncio
    async def test_container_cascade_leaves_copies_alone(self, db_session, add_book, catalog):
        book = await add_book(copy_count=2)
        await set_container_status(db_session, ContainerKind.LANGUAGE, catalog["language"].id, BANNED)
        counts = await count_copies(db_session, book.id)
        assert counts["Active"] == 2

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "kind,key",
        [
            (ContainerKind.LANGUAGE, "language"),
            (ContainerKind.AUTHOR, "author"),
            (ContainerKind.PUBLISHER, "publisher"),
            (ContainerKind.CATEGORY, "category"),
        ],
    )
    async def test_every_container_kind_cascades(self, db_session, add_book, catalog, kind, key):
        book = await add_book()
        await set_container_status(db_session, kind, catalog[key].id, BANNED)
        assert book.status == BANNED

    @pytest.mark.asyncio
    async def test_category_relabels_its_subcategories(self, db_session, add_book, catalog):
        second = SubCategory(id=str(uuid4()), name="Poetry", category=catalog["category"])
        db_session.add(second)
        await db_session.flush()
        first_book = await add_book()
        second_book = await add_book(subcategory_ids=[second.id])

        await set_container_status(db_session, ContainerKind.CATEGORY, catalog["category"].id, INACTIVE)

        assert catalog["subcategory"].status == INACTIVE
        assert second.status == INACTIVE
        assert first_book.status == INACTIVE
        assert second_book.status == INACTIVE

    @pytest.mark.asyncio
    async def test_unrelated_books_untouched(self, db_session, add_book, catalog):
        other_author = Author(id=str(uuid4()), full_name="Someone Else")
        db_session.add(other_author)
        await db_session.flush()
        linked = await add_book()
        unlinked = await add_book(author_ids=[other_author.id])

        await set_container_status(db_session, ContainerKind.AUTHOR, catalog["author"].id, BANNED)

        assert linked.status == BANNED
        assert unlinked.status == ACTIVE

    @pytest.mark.asyncio
    async def test_reactivating_twice_is_idempotent(self, db_session, add_book, catalog):
        book = await add_book(copy_count=2)
        sub_id = catalog["subcategory"].id
        await set_container_status(db_session, ContainerKind.SUBCATEGORY, sub_id, BANNED)

        await set_container_status(db_session, ContainerKind.SUBCATEGORY, sub_id, ACTIVE)
        once = (book.status, await count_copies(db_session, book.id))
        await set_container_status(db_session, ContainerKind.SUBCATEGORY, sub_id, ACTIVE)
        twice = (book.status, await count_copies(db_session, book.id))

        assert once == twice == (ACTIVE, {"Active": 2, "InActive": 0, "Banned": 0, "Borrowed": 0})

    @pytest.mark.asyncio
    async def test_most_restrictive_container_wins(self, db_session, add_book, catalog):
        first = Author(id=str(uuid4()), full_name="First Author")
        second = Author(id=str(uuid4()), full_name="Second Author")
        db_session.add_all([first, second])
        await db_session.flush()
        book = await add_book(author_ids=[first.id, second.id])

        await set_container_status(db_session, ContainerKind.AUTHOR, first.id, BANNED)
        assert book.status == BANNED

        await set_container_status(db_session, ContainerKind.AUTHOR, second.id, INACTIVE)
        assert book.status == BANNED

        await set_container_status(db_session, ContainerKind.AUTHOR, first.id, ACTIVE)
        assert book.status == INACTIVE

        await set_container_status(db_session, ContainerKind.AUTHOR, second.id, ACTIVE)
        assert book.status == ACTIVE

    @pytest.mark.asyncio
    async def test_outcome_independent_of_order(self, db_session, add_book, catalog):
        book = await add_book()
        await set_container_status(db_session, ContainerKind.LANGUAGE, catalog["language"].id, INACTIVE)
        await set_container_status(db_session, ContainerKind.AUTHOR, catalog["author"].id, BANNED)
        forward = book.status

        await set_container_status(db_session, ContainerKind.AUTHOR, catalog["author"].id, ACTIVE)
        await set_container_status(db_session, ContainerKind.LANGUAGE, catalog["language"].id, ACTIVE)

        await set_container_status(db_session, ContainerKind.AUTHOR, catalog["author"].id, BANNED)
        await set_container_status(db_session, ContainerKind.LANGUAGE, catalog["language"].id, INACTIVE)
        assert book.status == forward == BANNED

    @pytest.mark.asyncio
    async def test_unknown_container(self, db_session):
        with pytest.raises(NotFoundError, match="Category not found"):
            await set_container_status(db_session, ContainerKind.CATEGORY, str(uuid4()), BANNED)


class TestPublisherGuard:
    @pytest.mark.asyncio
    async def test_cannot_deactivate_publisher_with_active_books(self, db_session, add_book, catalog):
        book = await add_book()
        with pytest.raises(ContainerInUseError, match="active books"):
            await set_container_status(
                db_session, ContainerKind.PUBLISHER, catalog["publisher"].id, INACTIVE
            )
        assert catalog["publisher"].status == ACTIVE
        assert book.status == ACTIVE

    @pytest.mark.asyncio
    async def test_deactivate_publisher_without_active_books(self, db_session, add_book, catalog):
        book = await add_book()
        publisher_id = catalog["publisher"].id
        await set_container_status(db_session, ContainerKind.PUBLISHER, publisher_id, BANNED)
        assert book.status == BANNED

        await set_container_status(db_session, ContainerKind.PUBLISHER, publisher_id, INACTIVE)
        assert catalog["publisher"].status == INACTIVE
        assert book.status == INACTIVE


class TestSetBookStatus:
    @pytest.mark.asyncio
    async def test_status_mirrored_on_all_copies(self, db_session, lending_setup):
        book = lending_setup["book"]
        await create_loan(
            db_session,
            lending_setup["copy_ids"][0],
            lending_setup["member"].id_number,
            lending_setup["employee"].id,
        )

        await set_book_status(db_session, book.id, BANNED)

        assert book.status == BANNED
        counts = await count_copies(db_session, book.id)
        assert counts == {"Active": 0, "InActive": 0, "Banned": 2, "Borrowed": 0}

    @pytest.mark.asyncio
    async def test_inactive_book(self, db_session, add_book):
        book = await add_book(copy_count=3)
        await set_book_status(db_session, book.id, INACTIVE)
        assert (await count_copies(db_session, book.id))["InActive"] == 3

    @pytest.mark.asyncio
    async def test_unknown_book(self, db_session):
        with pytest.raises(NotFoundError, match="Book not found"):
            await set_book_status(db_session, str(uuid4()), BANNED)


class TestSetLocationStatus:
    @pytest.mark.asyncio
    async def test_blocked_while_active_books_shelved(self, db_session, add_book, make_location):
        location = make_location()
        db_session.add(location)
        await add_book(location_id=location.id)

        with pytest.raises(ContainerInUseError, match="books in this location"):
            await set_location_status(db_session, location.id, INACTIVE)
        assert location.status == ACTIVE

    @pytest.mark.asyncio
    async def test_empty_location_can_be_deactivated(self, db_session, make_location):
        location = make_location()
        db_session.add(location)
        await db_session.flush()
        updated = await set_location_status(db_session, location.id, INACTIVE)
        assert updated.status == INACTIVE

    @pytest.mark.asyncio
    async def test_banning_location_does_not_cascade(self, db_session, add_book, make_location):
        location = make_location()
        db_session.add(location)
        book = await add_book(location_id=location.id)
        await set_location_status(db_session, location.id, BANNED)
        assert location.status == BANNED
        assert book.status == ACTIVE

    @pytest.mark.asyncio
    async def test_unknown_location(self, db_session):
        with pytest.raises(NotFoundError, match="Location not found"):
            await set_location_status(db_session, str(uuid4()), INACTIVE)


class TestOptimisticConcurrency:
    async def _committed_publisher(self, file_session_factory) -> str:
        async with file_session_factory() as setup:
            publisher = Publisher(id=str(uuid4()), name="Race Press")
            setup.add(publisher)
            await setup.commit()
            return publisher.id

    @pytest.mark.asyncio
    async def test_deleted_container_reports_not_found(self, file_session_factory):
        publisher_id = await self._committed_publisher(file_session_factory)

        async with file_session_factory() as first:
            stale = await first.get(Publisher, publisher_id)
            assert stale is not None

            async with file_session_factory() as second:
                await second.execute(delete(Publisher).where(Publisher.id == publisher_id))
                await second.commit()

            with pytest.raises(NotFoundError, match="Publisher not found"):
                await set_container_status(first, ContainerKind.PUBLISHER, publisher_id, BANNED)

    @pytest.mark.asyncio
    async def test_modified_container_reports_conflict(self, file_session_factory):
        publisher_id = await self._committed_publisher(file_session_factory)

        async with file_session_factory() as first:
            stale = await first.get(Publisher, publisher_id)
            assert stale.version_id == 1

            async with file_session_factory() as second:
                other = await second.get(Publisher, publisher_id)
                other.name = "Race Press International"
                await second.commit()

            with pytest.raises(ConcurrencyConflictError, match="modified by another request"):
                await set_container_status(first, ContainerKind.PUBLISHER, publisher_id, BANNED)

        async with file_session_factory() as check:
            publisher = await check.get(Publisher, publisher_id)
            assert publisher.status == ACTIVE
            assert publisher.name == "Race Press International"

    @pytest.mark.asyncio
    async def test_deleted_location_reports_not_found(self, file_session_factory):
        async with file_session_factory() as setup:
            location = Location(
                id=str(uuid4()), section_code="B", aisle_code="02", shelf_number="S2"
            )
            setup.add(location)
            await setup.commit()
            location_id = location.id

        async with file_session_factory() as first:
            stale = await first.get(Location, location_id)
            assert stale is not None

            async with file_session_factory() as second:
                await second.execute(delete(Location).where(Location.id == location_id))
                await second.commit()

            with pytest.raises(NotFoundError, match="Location not found"):
                await set_location_status(first, location_id, BANNED)
