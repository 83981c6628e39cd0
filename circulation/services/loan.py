from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional, Tuple

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from circulation.core.errors import (
    CopyUnavailableError,
    InvalidInputError,
    InvalidLoanStateError,
    NotFoundError,
)
from circulation.core.logging import get_logger
from circulation.db.models import (
    BookCopy,
    CopyStatus,
    Employee,
    Loan,
    LoanStatus,
    LoanTransaction,
    Member,
    Penalty,
)
from circulation.services.common import entity_exists, flush_or_recheck
from circulation.services.penalty import calculate_penalty

logger = get_logger("services.loan")

MIN_LOAN_DAYS = 1
MAX_LOAN_DAYS = 365
DEFAULT_LOAN_DAYS = 20
MAX_STATUS_LENGTH = 20

VALID_TRANSITIONS: Dict[LoanStatus, List[LoanStatus]] = {
    LoanStatus.BORROWED: [LoanStatus.RETURNED, LoanStatus.LOST, LoanStatus.DAMAGED],
}


async def _reserve_copy(db: AsyncSession, book_copy_id: str) -> bool:
    """Flip a copy from Active to Borrowed in one conditional UPDATE.

    Returns False when no Active copy with that id exists; two callers racing
    for the same copy cannot both succeed. The version is bumped as well, so a
    session still holding the copy as Active fails its next flush.
    """
    result = await db.execute(
        update(BookCopy)
        .where(BookCopy.id == book_copy_id, BookCopy.status == CopyStatus.ACTIVE)
        .values(status=CopyStatus.BORROWED, version_id=BookCopy.version_id + 1)
        .execution_options(synchronize_session="evaluate")
    )
    return result.rowcount == 1


async def create_loan(
    db: AsyncSession,
    book_copy_id: str,
    member_id_number: str,
    employee_id: str,
    day_count: int = DEFAULT_LOAN_DAYS,
) -> Loan:
    """Lend an Active copy to a member for ``day_count`` days."""
    if not MIN_LOAN_DAYS <= day_count <= MAX_LOAN_DAYS:
        raise InvalidInputError(
            f"Day count must be between {MIN_LOAN_DAYS} and {MAX_LOAN_DAYS}"
        )

    result = await db.execute(select(Member).where(Member.id_number == member_id_number))
    member = result.scalar_one_or_none()
    if not member:
        raise NotFoundError("Member not found")

    if not await entity_exists(db, Employee, employee_id):
        raise NotFoundError("Employee not found")

    if not await _reserve_copy(db, book_copy_id):
        if not await entity_exists(db, BookCopy, book_copy_id):
            raise NotFoundError("Book copy not found")
        raise CopyUnavailableError("Book copy not available for loan")

    now = datetime.now(timezone.utc)
    loan = Loan(
        member_id=member.id,
        employee_id=employee_id,
        book_copy_id=book_copy_id,
        loaned_date=now,
        count_day=day_count,
        due_date=now + timedelta(days=day_count),
        status=LoanStatus.BORROWED.value,
    )
    db.add(loan)
    try:
        await db.flush()
    except IntegrityError as exc:
        await db.rollback()
        raise CopyUnavailableError("Book copy not available for loan") from exc
    await db.refresh(loan)

    logger.info(
        f"Loan created: id={loan.id} copy={book_copy_id} member={member.id} "
        f"employee={employee_id} days={day_count}"
    )
    return loan


def _parse_status(value: str, force: bool) -> str:
    if force:
        status = value.strip()
        if not status or len(status) > MAX_STATUS_LENGTH:
            raise InvalidInputError(
                f"Loan status must be 1 to {MAX_STATUS_LENGTH} characters"
            )
        return status
    try:
        return LoanStatus(value).value
    except ValueError:
        raise InvalidInputError(f"Unknown loan status '{value}'")


async def update_loan(
    db: AsyncSession,
    loan_id: str,
    new_status: str,
    employee_id: str,
    force: bool = False,
) -> Loan:
    """Change a loan's status and append the change to its audit trail.

    The transition table is enforced unless ``force`` is set, in which case any
    short status string is written as-is. The copy is never touched here; use
    ``return_book`` to bring a copy back into circulation.
    """
    loan = await get_loan_by_id(db, loan_id)
    if not loan:
        raise NotFoundError("Loan not found")
    if not await entity_exists(db, Employee, employee_id):
        raise NotFoundError("Employee not found")

    target = _parse_status(new_status, force)
    current = loan.status
    if target == current:
        return loan

    if target == LoanStatus.RETURNED.value and current != LoanStatus.BORROWED.value:
        raise InvalidLoanStateError("Book is not borrowed")
    if not force and target not in VALID_TRANSITIONS.get(current, []):
        raise InvalidLoanStateError(f"Cannot transition from '{current}' to '{target}'")

    loan.status = target
    loan.transactions.append(
        LoanTransaction(employee_id=employee_id, previous_status=current, status=target)
    )
    try:
        await flush_or_recheck(db, Loan, loan_id, "Loan")
    except IntegrityError as exc:
        # Forcing a loan back to Borrowed while its copy is lent again
        await db.rollback()
        raise CopyUnavailableError("Book copy already has an open loan") from exc
    await db.refresh(loan)

    logger.info(
        f"Loan status changed: id={loan_id} {current} -> {target} "
        f"by employee={employee_id} forced={force}"
    )
    return loan


async def return_book(
    db: AsyncSession, loan_id: str, employee_id: Optional[str] = None
) -> Tuple[Loan, Optional[Penalty]]:
    """Close a Borrowed loan, shelve its copy again and charge any late fee.

    The audit entry is attributed to ``employee_id`` when given, otherwise to
    the employee who issued the loan.
    """
    loan = await get_loan_by_id(db, loan_id)
    if not loan:
        raise NotFoundError("Loan not found")
    if loan.status != LoanStatus.BORROWED.value:
        raise InvalidLoanStateError("Book is not borrowed")
    if employee_id and not await entity_exists(db, Employee, employee_id):
        raise NotFoundError("Employee not found")

    copy = await db.get(BookCopy, loan.book_copy_id)

    actor = employee_id or loan.employee_id
    now = datetime.now(timezone.utc)
    loan.return_date = now
    loan.status = LoanStatus.RETURNED.value
    loan.transactions.append(
        LoanTransaction(
            employee_id=actor,
            previous_status=LoanStatus.BORROWED.value,
            status=LoanStatus.RETURNED.value,
        )
    )
    copy.status = CopyStatus.ACTIVE

    await flush_or_recheck(db, Loan, loan_id, "Loan")

    penalty = await calculate_penalty(
        db, loan.member_id, loan.due_date, now, loan_id=loan.id
    )
    await db.refresh(loan)

    logger.info(
        f"Book returned: loan={loan_id} copy={loan.book_copy_id} by employee={actor} "
        f"penalty={penalty.id if penalty else None}"
    )
    return loan, penalty


async def get_loan_by_id(db: AsyncSession, loan_id: str) -> Optional[Loan]:
    """Get a single loan by ID."""
    result = await db.execute(select(Loan).where(Loan.id == loan_id))
    return result.scalar_one_or_none()


async def get_loans_by_member(db: AsyncSession, member_id: str) -> List[Loan]:
    result = await db.execute(
        select(Loan).where(Loan.member_id == member_id).order_by(Loan.loaned_date.desc())
    )
    return list(result.scalars().all())


async def get_loans_by_employee(db: AsyncSession, employee_id: str) -> List[Loan]:
    result = await db.execute(
        select(Loan).where(Loan.employee_id == employee_id).order_by(Loan.loaned_date.desc())
    )
    return list(result.scalars().all())


async def get_loan_transactions(db: AsyncSession, loan_id: str) -> List[LoanTransaction]:
    """Audit trail of one loan, oldest first."""
    result = await db.execute(
        select(LoanTransaction)
        .where(LoanTransaction.loan_id == loan_id)
        .order_by(LoanTransaction.id)
    )
    return list(result.scalars().all())
