from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session
from typing import List, Optional
from app.database import get_db
from app.models.loan import LoanStatus
from app.models.user import UserAccount
from app.services.auth import get_current_user, require_librarian, require_member
from app.services.loan_engine import LoanEngine
from app.schemas.loan import (
    LoanCreate,
    LoanRequest,
    LoanReturn,
    LoanResponse,
    LoanDetailsResponse,
    SweepResponse,
)

router = APIRouter(prefix="/api/loans", tags=["Library Loans"])

@router.get("", response_model=List[LoanDetailsResponse])
async def get_loans(
    status_filter: Optional[LoanStatus] = Query(None, alias="status", description="Filter by loan status"),
    _: UserAccount = Depends(require_librarian),
    db: Session = Depends(get_db)
):
    """All loans, newest first, with current book and member details."""
    engine = LoanEngine(db)
    loans = engine.list_loans(status_filter)
    return [LoanDetailsResponse(**data) for data in engine.list_loans_with_details(loans)]

@router.get("/mine", response_model=List[LoanDetailsResponse])
async def get_my_loans(
    current_user: UserAccount = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Loan history of the caller's member record."""
    engine = LoanEngine(db)
    member = engine.member_for_account(current_user)
    loans = engine.list_loans_for_member(member.member_id)
    return [LoanDetailsResponse(**data) for data in engine.list_loans_with_details(loans)]

@router.post("", response_model=LoanResponse, status_code=status.HTTP_201_CREATED)
async def create_loan(
    loan_data: LoanCreate,
    _: UserAccount = Depends(require_librarian),
    db: Session = Depends(get_db)
):
    """Create a loan at the desk (active immediately unless created as pending)."""
    loan = LoanEngine(db).create_loan(
        loan_data.book_id,
        loan_data.member_id,
        initial_status=loan_data.initial_status,
        loan_days=loan_data.loan_days,
    )
    return LoanResponse(**loan.to_dict())

@router.post("/request", response_model=LoanResponse, status_code=status.HTTP_201_CREATED)
async def request_loan(
    request: LoanRequest,
    current_user: UserAccount = Depends(require_member),
    db: Session = Depends(get_db)
):
    """Member self-service request; stays pending until a librarian approves it."""
    loan = LoanEngine(db).request_loan(current_user, request.book_id)
    return LoanResponse(**loan.to_dict())

@router.post("/sweep-overdue", response_model=SweepResponse)
async def sweep_overdue(
    _: UserAccount = Depends(require_librarian),
    db: Session = Depends(get_db)
):
    """Mark active loans past their due date as overdue."""
    changed = LoanEngine(db).sweep_overdue()
    return SweepResponse(updated=len(changed), loanIds=[str(loan.loan_id) for loan in changed])

@router.get("/{loan_id}", response_model=LoanDetailsResponse)
async def get_loan(
    loan_id: int,
    current_user: UserAccount = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Get specific loan details."""
    engine = LoanEngine(db)
    loan = engine.get_loan(loan_id)
    engine.ensure_can_act_for(current_user, loan.member_id)
    return LoanDetailsResponse(**engine.list_loans_with_details([loan])[0])

@router.post("/{loan_id}/approve", response_model=LoanResponse)
async def approve_loan(
    loan_id: int,
    _: UserAccount = Depends(require_librarian),
    db: Session = Depends(get_db)
):
    loan = LoanEngine(db).approve_loan(loan_id)
    return LoanResponse(**loan.to_dict())

@router.post("/{loan_id}/reject", status_code=status.HTTP_204_NO_CONTENT)
async def reject_loan(
    loan_id: int,
    _: UserAccount = Depends(require_librarian),
    db: Session = Depends(get_db)
):
    """Reject a pending request; the loan record is removed."""
    LoanEngine(db).reject_loan(loan_id)

@router.post("/{loan_id}/return", response_model=LoanResponse)
async def return_loan(
    loan_id: int,
    data: Optional[LoanReturn] = None,
    _: UserAccount = Depends(require_librarian),
    db: Session = Depends(get_db)
):
    """Check a book back in, charging late and damage fines to the member."""
    damaged = data.damaged if data else False
    loan = LoanEngine(db).return_loan(loan_id, damaged=damaged)
    return LoanResponse(**loan.to_dict())
