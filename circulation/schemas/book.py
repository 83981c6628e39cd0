from datetime import datetime
from typing import Dict, Optional, List
from pydantic import BaseModel, Field

from circulation.db.models import CatalogStatus, CopyStatus


class BookCreate(BaseModel):
    isbn: str = Field(..., min_length=10, max_length=13)
    title: str = Field(..., min_length=1, max_length=200)
    page_count: Optional[int] = Field(None, ge=1)
    publishing_year: Optional[int] = None
    description: Optional[str] = None
    print_count: Optional[int] = Field(None, ge=1)
    publisher_id: Optional[str] = None
    location_id: Optional[str] = None
    author_ids: List[str] = []
    language_ids: List[str] = []
    subcategory_ids: List[str] = []
    copy_count: int = Field(1, ge=0)


class BookCopiesAdjust(BaseModel):
    delta: int


class BookResponse(BaseModel):
    id: str
    isbn: str
    title: str
    page_count: Optional[int]
    publishing_year: Optional[int]
    description: Optional[str]
    print_count: Optional[int]
    status: CatalogStatus
    publisher_id: Optional[str]
    location_id: Optional[str]
    created_at: datetime
    updated_at: datetime
    copy_counts: Dict[str, int] = {}

    model_config = {"from_attributes": True}


class BookCopyResponse(BaseModel):
    id: str
    book_id: str
    status: CopyStatus

    model_config = {"from_attributes": True}


class CopyCountsResponse(BaseModel):
    book_id: str
    counts: Dict[str, int]
