from datetime import datetime
from typing import Optional, List
from pydantic import BaseModel, Field

from circulation.schemas.penalty import PenaltyResponse
from circulation.services.loan import DEFAULT_LOAN_DAYS, MAX_STATUS_LENGTH


class LoanCreate(BaseModel):
    book_copy_id: str
    member_id_number: str = Field(..., min_length=1, max_length=20)
    employee_id: str
    day_count: int = DEFAULT_LOAN_DAYS


class LoanStatusUpdate(BaseModel):
    status: str = Field(..., min_length=1, max_length=MAX_STATUS_LENGTH)
    employee_id: str
    force: bool = False


class LoanReturn(BaseModel):
    employee_id: Optional[str] = None


class LoanTransactionResponse(BaseModel):
    id: int
    loan_id: str
    employee_id: str
    previous_status: Optional[str]
    status: str
    changed_at: datetime

    model_config = {"from_attributes": True}


class LoanResponse(BaseModel):
    id: str
    member_id: str
    employee_id: str
    book_copy_id: str
    loaned_date: datetime
    count_day: int
    due_date: datetime
    return_date: Optional[datetime]
    status: str
    created_at: datetime
    updated_at: datetime
    transactions: List[LoanTransactionResponse] = []

    model_config = {"from_attributes": True}


class LoanReturnResponse(BaseModel):
    loan: LoanResponse
    penalty: Optional[PenaltyResponse] = None
