from pydantic import BaseModel, ConfigDict, Field, constr, field_validator
from datetime import datetime, timezone
from typing import List, Literal, Optional

class BookBase(BaseModel):
    title: constr(min_length=1)
    author: constr(min_length=1)
    genre: Optional[str] = None
    total_copies: int = Field(default=1, ge=0)

    @field_validator('total_copies')
    @classmethod
    def ensure_non_negative_copies(cls, v):
        if v < 0:
            raise ValueError('total_copies must be >= 0')
        return v

class BookCreate(BookBase):
    pass

class BookUpdate(BaseModel):
    title: Optional[constr(min_length=1)] = None
    author: Optional[constr(min_length=1)] = None
    genre: Optional[str] = None
    total_copies: Optional[int] = Field(default=None, ge=0)

class InventoryResize(BaseModel):
    total_copies: int = Field(ge=0)

class BookOut(BookBase):
    id: int
    available_copies: int
    created_at: datetime
    model_config = ConfigDict(from_attributes=True)

class UserBase(BaseModel):
    name: constr(min_length=1)
    email: constr(min_length=5)
    role: Literal["admin", "student"] = "student"
    student_number: Optional[str] = None

class UserCreate(UserBase):
    pass

class UserOut(UserBase):
    id: int
    joined_at: datetime
    model_config = ConfigDict(from_attributes=True)

class IssueIn(BaseModel):
    book_id: int
    student_id: int
    due_date: Optional[datetime] = None

    @field_validator('due_date')
    @classmethod
    def due_date_as_naive_utc(cls, v):
        # stored naive and compared against utcnow
        if v is not None and v.tzinfo is not None:
            v = v.astimezone(timezone.utc).replace(tzinfo=None)
        return v

class LoanOut(BaseModel):
    id: int
    book_id: int
    student_id: int
    status: str
    issued_at: datetime
    return_date: Optional[datetime] = None
    returned_at: Optional[datetime] = None
    overdue: bool
    book_title: str
    book_author: str
    book_genre: Optional[str] = None
    student_name: str
    student_number: Optional[str] = None
    model_config = ConfigDict(from_attributes=True)

class StudentLoansOut(BaseModel):
    current_loans: List[LoanOut]
    past_loans: List[LoanOut]
    borrowed: int

class BorrowRequestIn(BaseModel):
    student_id: int
    book_id: int

class BorrowRequestOut(BaseModel):
    id: int
    student_id: int
    book_id: int
    status: str
    requested_at: datetime
    resolved_at: Optional[datetime] = None
    loan_id: Optional[int] = None
    book_title: str
    student_name: str
    student_number: Optional[str] = None
    model_config = ConfigDict(from_attributes=True)

class DashboardOut(BaseModel):
    total_books: int
    total_copies: int
    total_students: int
    books_loaned: int
    books_returned: int
    overdue_books: int
