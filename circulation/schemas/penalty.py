from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel

from circulation.db.models import PenaltyType


class PenaltyResponse(BaseModel):
    id: str
    member_id: str
    loan_id: Optional[str]
    daily_fee: Decimal
    total_fee: Decimal
    start_date: datetime
    end_date: datetime
    overdue_days: int
    type: PenaltyType
    created_at: datetime

    model_config = {"from_attributes": True}
