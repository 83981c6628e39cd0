import enum
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional, List
from uuid import uuid4

from sqlalchemy import (
    String,
    Text,
    Integer,
    SmallInteger,
    Boolean,
    DateTime,
    ForeignKey,
    Enum,
    Numeric,
    Index,
    Table,
    Column,
    CheckConstraint,
    text,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


class Base(DeclarativeBase):
    pass


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _new_id() -> str:
    return str(uuid4())


def _enum_values(enum_cls) -> List[str]:
    # Persist the literal status vocabulary ("Active", "InActive", ...), not member names
    return [member.value for member in enum_cls]


# ──────────────────────────── Enums ────────────────────────────


class CatalogStatus(str, enum.Enum):
    ACTIVE = "Active"
    INACTIVE = "InActive"
    BANNED = "Banned"


class CopyStatus(str, enum.Enum):
    ACTIVE = "Active"
    INACTIVE = "InActive"
    BANNED = "Banned"
    BORROWED = "Borrowed"


class LoanStatus(str, enum.Enum):
    BORROWED = "Borrowed"
    RETURNED = "Returned"
    LOST = "Lost"
    DAMAGED = "Damaged"


class PenaltyType(str, enum.Enum):
    NONE = "None"
    TEN_DAYS = "TenDays"
    TWO_MONTHS = "TwoMonths"
    ONE_YEAR = "OneYear"
    LIMITLESS = "Limitless"


def _catalog_status_column() -> Mapped[CatalogStatus]:
    return mapped_column(
        Enum(
            CatalogStatus,
            name="catalog_status",
            native_enum=False,
            length=10,
            values_callable=_enum_values,
        ),
        nullable=False,
        default=CatalogStatus.ACTIVE,
        index=True,
    )


# ──────────────────────────── Association tables ────────────────────────────


book_subcategories = Table(
    "book_subcategories",
    Base.metadata,
    Column("book_id", UUID(as_uuid=False), ForeignKey("books.id", ondelete="CASCADE"), primary_key=True),
    Column("subcategory_id", UUID(as_uuid=False), ForeignKey("subcategories.id"), primary_key=True),
)

book_languages = Table(
    "book_languages",
    Base.metadata,
    Column("book_id", UUID(as_uuid=False), ForeignKey("books.id", ondelete="CASCADE"), primary_key=True),
    Column("language_id", UUID(as_uuid=False), ForeignKey("languages.id"), primary_key=True),
)

author_books = Table(
    "author_books",
    Base.metadata,
    Column("book_id", UUID(as_uuid=False), ForeignKey("books.id", ondelete="CASCADE"), primary_key=True),
    Column("author_id", UUID(as_uuid=False), ForeignKey("authors.id"), primary_key=True),
)


# ──────────────────────────── Catalog containers ────────────────────────────


class Nationality(Base):
    __tablename__ = "nationalities"

    id: Mapped[str] = mapped_column(UUID(as_uuid=False), primary_key=True, default=_new_id)
    name: Mapped[str] = mapped_column(String(50), nullable=False)
    code: Mapped[str] = mapped_column(String(3), nullable=False)


class Language(Base):
    __tablename__ = "languages"

    id: Mapped[str] = mapped_column(UUID(as_uuid=False), primary_key=True, default=_new_id)
    name: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)
    status: Mapped[CatalogStatus] = _catalog_status_column()
    nationality_id: Mapped[str] = mapped_column(
        UUID(as_uuid=False), ForeignKey("nationalities.id"), nullable=False
    )
    version_id: Mapped[int] = mapped_column(Integer, nullable=False)

    # Relationships
    nationality: Mapped["Nationality"] = relationship("Nationality", lazy="selectin")

    __mapper_args__ = {"version_id_col": version_id}


class Category(Base):
    __tablename__ = "categories"

    id: Mapped[str] = mapped_column(UUID(as_uuid=False), primary_key=True, default=_new_id)
    name: Mapped[str] = mapped_column(String(800), unique=True, nullable=False)
    status: Mapped[CatalogStatus] = _catalog_status_column()
    version_id: Mapped[int] = mapped_column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version_id}


class SubCategory(Base):
    __tablename__ = "subcategories"

    id: Mapped[str] = mapped_column(UUID(as_uuid=False), primary_key=True, default=_new_id)
    name: Mapped[str] = mapped_column(String(800), nullable=False)
    status: Mapped[CatalogStatus] = _catalog_status_column()
    category_id: Mapped[str] = mapped_column(
        UUID(as_uuid=False), ForeignKey("categories.id"), nullable=False, index=True
    )
    version_id: Mapped[int] = mapped_column(Integer, nullable=False)

    # Relationships
    category: Mapped["Category"] = relationship("Category", lazy="selectin")

    __mapper_args__ = {"version_id_col": version_id}


class Author(Base):
    __tablename__ = "authors"

    id: Mapped[str] = mapped_column(UUID(as_uuid=False), primary_key=True, default=_new_id)
    full_name: Mapped[str] = mapped_column(String(800), nullable=False)
    biography: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    status: Mapped[CatalogStatus] = _catalog_status_column()
    language_id: Mapped[Optional[str]] = mapped_column(
        UUID(as_uuid=False), ForeignKey("languages.id"), nullable=True
    )
    version_id: Mapped[int] = mapped_column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version_id}


class Publisher(Base):
    __tablename__ = "publishers"

    id: Mapped[str] = mapped_column(UUID(as_uuid=False), primary_key=True, default=_new_id)
    name: Mapped[str] = mapped_column(String(800), nullable=False)
    status: Mapped[CatalogStatus] = _catalog_status_column()
    version_id: Mapped[int] = mapped_column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version_id}


class Location(Base):
    __tablename__ = "locations"

    id: Mapped[str] = mapped_column(UUID(as_uuid=False), primary_key=True, default=_new_id)
    section_code: Mapped[str] = mapped_column(String(1000), nullable=False)
    aisle_code: Mapped[str] = mapped_column(String(100), nullable=False)
    shelf_number: Mapped[str] = mapped_column(String(6), nullable=False)
    status: Mapped[CatalogStatus] = _catalog_status_column()
    version_id: Mapped[int] = mapped_column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version_id}


# ──────────────────────────── Books and copies ────────────────────────────


class Book(Base):
    __tablename__ = "books"

    id: Mapped[str] = mapped_column(UUID(as_uuid=False), primary_key=True, default=_new_id)
    isbn: Mapped[str] = mapped_column(String(13), unique=True, nullable=False, index=True)
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    page_count: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    publishing_year: Mapped[Optional[int]] = mapped_column(SmallInteger, nullable=True)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    print_count: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    status: Mapped[CatalogStatus] = _catalog_status_column()
    publisher_id: Mapped[Optional[str]] = mapped_column(
        UUID(as_uuid=False), ForeignKey("publishers.id"), nullable=True, index=True
    )
    location_id: Mapped[Optional[str]] = mapped_column(
        UUID(as_uuid=False), ForeignKey("locations.id"), nullable=True, index=True
    )
    version_id: Mapped[int] = mapped_column(Integer, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, onupdate=_utcnow, nullable=False
    )

    # Relationships
    publisher: Mapped[Optional["Publisher"]] = relationship("Publisher", lazy="selectin")
    subcategories: Mapped[List["SubCategory"]] = relationship(
        "SubCategory", secondary=book_subcategories, lazy="selectin"
    )
    languages: Mapped[List["Language"]] = relationship(
        "Language", secondary=book_languages, lazy="selectin"
    )
    authors: Mapped[List["Author"]] = relationship(
        "Author", secondary=author_books, lazy="selectin"
    )

    __mapper_args__ = {"version_id_col": version_id}


class BookCopy(Base):
    __tablename__ = "book_copies"

    id: Mapped[str] = mapped_column(UUID(as_uuid=False), primary_key=True, default=_new_id)
    book_id: Mapped[str] = mapped_column(
        UUID(as_uuid=False), ForeignKey("books.id", ondelete="CASCADE"), nullable=False, index=True
    )
    status: Mapped[CopyStatus] = mapped_column(
        Enum(
            CopyStatus,
            name="copy_status",
            native_enum=False,
            length=10,
            values_callable=_enum_values,
        ),
        nullable=False,
        default=CopyStatus.ACTIVE,
        index=True,
    )
    version_id: Mapped[int] = mapped_column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version_id}

    __table_args__ = (
        Index("ix_book_copies_book_status", "book_id", "status"),
    )


# ──────────────────────────── People ────────────────────────────


class Member(Base):
    __tablename__ = "members"

    id: Mapped[str] = mapped_column(UUID(as_uuid=False), primary_key=True, default=_new_id)
    id_number: Mapped[str] = mapped_column(String(20), unique=True, nullable=False, index=True)
    full_name: Mapped[str] = mapped_column(String(255), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)


class Employee(Base):
    __tablename__ = "employees"

    id: Mapped[str] = mapped_column(UUID(as_uuid=False), primary_key=True, default=_new_id)
    full_name: Mapped[str] = mapped_column(String(255), nullable=False)
    title: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)


# ──────────────────────────── Circulation ────────────────────────────


class Loan(Base):
    __tablename__ = "loans"

    id: Mapped[str] = mapped_column(UUID(as_uuid=False), primary_key=True, default=_new_id)
    member_id: Mapped[str] = mapped_column(
        UUID(as_uuid=False), ForeignKey("members.id"), nullable=False
    )
    employee_id: Mapped[str] = mapped_column(
        UUID(as_uuid=False), ForeignKey("employees.id"), nullable=False, index=True
    )
    book_copy_id: Mapped[str] = mapped_column(
        UUID(as_uuid=False), ForeignKey("book_copies.id"), nullable=False
    )
    loaned_date: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, nullable=False
    )
    count_day: Mapped[int] = mapped_column(SmallInteger, nullable=False)
    due_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    return_date: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    # Free-form at the storage level; canonical values come from LoanStatus
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=LoanStatus.BORROWED.value, index=True
    )
    version_id: Mapped[int] = mapped_column(Integer, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, onupdate=_utcnow, nullable=False
    )

    # Relationships
    transactions: Mapped[List["LoanTransaction"]] = relationship(
        "LoanTransaction",
        back_populates="loan",
        lazy="selectin",
        order_by="LoanTransaction.id",
    )

    __mapper_args__ = {"version_id_col": version_id}

    __table_args__ = (
        Index("ix_loans_member_status", "member_id", "status"),
        # At most one open loan per physical copy
        Index(
            "uq_loans_open_copy",
            "book_copy_id",
            unique=True,
            sqlite_where=text("status = 'Borrowed'"),
            postgresql_where=text("status = 'Borrowed'"),
        ),
        CheckConstraint("count_day BETWEEN 1 AND 365", name="ck_loans_count_day_range"),
    )


class LoanTransaction(Base):
    """Append-only audit record of a loan status change."""

    __tablename__ = "loan_transactions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    loan_id: Mapped[str] = mapped_column(
        UUID(as_uuid=False), ForeignKey("loans.id"), nullable=False, index=True
    )
    employee_id: Mapped[str] = mapped_column(
        UUID(as_uuid=False), ForeignKey("employees.id"), nullable=False
    )
    previous_status: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    status: Mapped[str] = mapped_column(String(20), nullable=False)
    changed_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, nullable=False
    )

    # Relationships
    loan: Mapped["Loan"] = relationship("Loan", back_populates="transactions")


class Penalty(Base):
    __tablename__ = "penalties"

    id: Mapped[str] = mapped_column(UUID(as_uuid=False), primary_key=True, default=_new_id)
    member_id: Mapped[str] = mapped_column(
        UUID(as_uuid=False), ForeignKey("members.id"), nullable=False, index=True
    )
    loan_id: Mapped[Optional[str]] = mapped_column(
        UUID(as_uuid=False), ForeignKey("loans.id"), nullable=True
    )
    daily_fee: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False)
    total_fee: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False)
    start_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    end_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    overdue_days: Mapped[int] = mapped_column(Integer, nullable=False)
    type: Mapped[PenaltyType] = mapped_column(
        Enum(
            PenaltyType,
            name="penalty_type",
            native_enum=False,
            length=20,
            values_callable=_enum_values,
        ),
        nullable=False,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, nullable=False
    )

    __table_args__ = (
        CheckConstraint("overdue_days >= 0", name="ck_penalties_overdue_days_positive"),
        CheckConstraint("total_fee >= 0", name="ck_penalties_total_fee_positive"),
    )
