from pydantic import BaseModel, Field
from typing import Optional
from datetime import datetime
from app.models.loan import LoanStatus

class LoanCreate(BaseModel):
    book_id: int
    member_id: int
    initial_status: LoanStatus = LoanStatus.ACTIVE
    loan_days: Optional[int] = Field(None, ge=1, le=365)

class LoanRequest(BaseModel):
    book_id: int

class LoanReturn(BaseModel):
    damaged: bool = False

class LoanResponse(BaseModel):
    id: str
    bookId: Optional[str] = None
    memberId: Optional[str] = None
    bookTitle: str
    bookIsbn: str
    startDate: datetime
    dueDate: datetime
    returnDate: Optional[datetime] = None
    status: str
    fineAmount: float

    class Config:
        from_attributes = True

class LoanBookDetails(BaseModel):
    title: str
    author: str
    isbn: str

class LoanMemberDetails(BaseModel):
    name: str
    memberNumber: str
    email: str

class LoanDetailsResponse(LoanResponse):
    book: Optional[LoanBookDetails] = None
    member: Optional[LoanMemberDetails] = None

class SweepResponse(BaseModel):
    updated: int
    loanIds: list[str]
