from typing import Annotated, List

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from circulation.api.v1.dependencies import get_actor_id
from circulation.core.errors import NotFoundError
from circulation.db.session import get_db
from circulation.schemas.common import ServiceResult
from circulation.schemas.loan import (
    LoanCreate,
    LoanResponse,
    LoanReturn,
    LoanReturnResponse,
    LoanStatusUpdate,
    LoanTransactionResponse,
)
from circulation.schemas.penalty import PenaltyResponse
from circulation.services.loan import (
    create_loan,
    get_loan_by_id,
    get_loan_transactions,
    get_loans_by_employee,
    get_loans_by_member,
    return_book,
    update_loan,
)

router = APIRouter(prefix="/loans", tags=["Loans"])


@router.post(
    "",
    response_model=ServiceResult[LoanResponse],
    status_code=status.HTTP_201_CREATED,
    summary="Lend a copy",
    description="Lend an Active book copy to a member (looked up by ID number) for 1 to 365 days.",
    responses={
        201: {"description": "Loan created, copy marked Borrowed"},
        404: {"description": "Copy, member or employee not found"},
        409: {"description": "Copy is not available for loan"},
        422: {"description": "Day count out of range"},
    },
)
async def create_loan_endpoint(
    data: LoanCreate,
    db: Annotated[AsyncSession, Depends(get_db)],
):
    loan = await create_loan(
        db,
        book_copy_id=data.book_copy_id,
        member_id_number=data.member_id_number,
        employee_id=data.employee_id,
        day_count=data.day_count,
    )
    return ServiceResult[LoanResponse].ok(
        LoanResponse.model_validate(loan), "Loan created"
    )


@router.get(
    "/member/{member_id}",
    response_model=ServiceResult[List[LoanResponse]],
    summary="Loans of a member",
)
async def list_member_loans(
    member_id: str,
    db: Annotated[AsyncSession, Depends(get_db)],
):
    loans = await get_loans_by_member(db, member_id)
    return ServiceResult[List[LoanResponse]].ok(
        [LoanResponse.model_validate(loan) for loan in loans]
    )


@router.get(
    "/employee/{employee_id}",
    response_model=ServiceResult[List[LoanResponse]],
    summary="Loans processed by an employee",
)
async def list_employee_loans(
    employee_id: str,
    db: Annotated[AsyncSession, Depends(get_db)],
):
    loans = await get_loans_by_employee(db, employee_id)
    return ServiceResult[List[LoanResponse]].ok(
        [LoanResponse.model_validate(loan) for loan in loans]
    )


@router.get(
    "/{loan_id}",
    response_model=ServiceResult[LoanResponse],
    summary="Get loan details",
    responses={404: {"description": "Loan not found"}},
)
async def get_loan_endpoint(
    loan_id: str,
    db: Annotated[AsyncSession, Depends(get_db)],
):
    loan = await get_loan_by_id(db, loan_id)
    if not loan:
        raise NotFoundError("Loan not found")
    return ServiceResult[LoanResponse].ok(LoanResponse.model_validate(loan))


@router.get(
    "/{loan_id}/transactions",
    response_model=ServiceResult[List[LoanTransactionResponse]],
    summary="Loan audit trail",
    description="Status changes of one loan, oldest first.",
)
async def list_loan_transactions(
    loan_id: str,
    db: Annotated[AsyncSession, Depends(get_db)],
):
    transactions = await get_loan_transactions(db, loan_id)
    return ServiceResult[List[LoanTransactionResponse]].ok(
        [LoanTransactionResponse.model_validate(t) for t in transactions]
    )


@router.put(
    "/{loan_id}",
    response_model=ServiceResult[LoanResponse],
    summary="Update loan status",
    description=(
        "Change a loan's status and record it in the audit trail.\n\n"
        "Allowed transitions: `Borrowed` → `Returned` | `Lost` | `Damaged`. "
        "With `force` set, any status string of up to 20 characters is written as-is. "
        "The book copy is not touched; use the return endpoint to shelve it again."
    ),
    responses={
        404: {"description": "Loan or employee not found"},
        409: {"description": "Transition not allowed"},
        422: {"description": "Unknown status"},
    },
)
async def update_loan_endpoint(
    loan_id: str,
    data: LoanStatusUpdate,
    db: Annotated[AsyncSession, Depends(get_db)],
):
    loan = await update_loan(
        db, loan_id=loan_id, new_status=data.status,
        employee_id=data.employee_id, force=data.force,
    )
    return ServiceResult[LoanResponse].ok(
        LoanResponse.model_validate(loan), "Loan updated"
    )


@router.patch(
    "/{loan_id}/return",
    response_model=ServiceResult[LoanReturnResponse],
    summary="Return a borrowed copy",
    description="Close a Borrowed loan, put the copy back to Active and record a penalty if it is late.",
    responses={
        404: {"description": "Loan not found"},
        409: {"description": "Loan is not Borrowed"},
    },
)
async def return_book_endpoint(
    loan_id: str,
    db: Annotated[AsyncSession, Depends(get_db)],
    actor_id: Annotated[str | None, Depends(get_actor_id)],
    data: LoanReturn | None = None,
):
    employee_id = (data.employee_id if data else None) or actor_id
    loan, penalty = await return_book(db, loan_id, employee_id=employee_id)
    return ServiceResult[LoanReturnResponse].ok(
        LoanReturnResponse(
            loan=LoanResponse.model_validate(loan),
            penalty=PenaltyResponse.model_validate(penalty) if penalty else None,
        ),
        "Book returned",
    )
