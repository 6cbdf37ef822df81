from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session
from typing import List
from app.database import get_db
from app.models.user import UserAccount
from app.schemas.member import MemberCreate, MemberUpdate, FinePayment, MemberResponse
from app.schemas.loan import LoanResponse
from app.services.auth import get_current_user, require_librarian
from app.services.catalog import CatalogManager
from app.services.loan_engine import LoanEngine

router = APIRouter(prefix="/api/members", tags=["Library Members"])

@router.get("", response_model=List[MemberResponse])
async def get_members(
    with_pending_fines: bool = False,
    _: UserAccount = Depends(require_librarian),
    db: Session = Depends(get_db)
):
    """List members, optionally only those owing fines."""
    members = CatalogManager(db).list_members(with_pending_fines=with_pending_fines)
    return [MemberResponse(**member.to_dict()) for member in members]

@router.get("/me", response_model=MemberResponse)
async def get_own_member(
    current_user: UserAccount = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Member record of the caller (fines included)."""
    return MemberResponse(**LoanEngine(db).member_for_account(current_user).to_dict())

@router.get("/{member_id}", response_model=MemberResponse)
async def get_member(
    member_id: int,
    _: UserAccount = Depends(require_librarian),
    db: Session = Depends(get_db)
):
    return MemberResponse(**CatalogManager(db).get_member(member_id).to_dict())

@router.get("/{member_id}/loans", response_model=List[LoanResponse])
async def get_member_loans(
    member_id: int,
    _: UserAccount = Depends(require_librarian),
    db: Session = Depends(get_db)
):
    CatalogManager(db).get_member(member_id)
    loans = LoanEngine(db).list_loans_for_member(member_id)
    return [LoanResponse(**loan.to_dict()) for loan in loans]

@router.post("", response_model=MemberResponse, status_code=status.HTTP_201_CREATED)
async def create_member(
    data: MemberCreate,
    _: UserAccount = Depends(require_librarian),
    db: Session = Depends(get_db)
):
    """Create a member; the member number is assigned automatically."""
    member = CatalogManager(db).create_member(data.name, data.national_id, data.email)
    return MemberResponse(**member.to_dict())

@router.put("/{member_id}", response_model=MemberResponse)
async def update_member(
    member_id: int,
    data: MemberUpdate,
    _: UserAccount = Depends(require_librarian),
    db: Session = Depends(get_db)
):
    member = CatalogManager(db).update_member(
        member_id,
        name=data.name,
        national_id=data.national_id,
        email=data.email,
        member_number=data.member_number,
    )
    return MemberResponse(**member.to_dict())

@router.delete("/{member_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_member(
    member_id: int,
    _: UserAccount = Depends(require_librarian),
    db: Session = Depends(get_db)
):
    """Delete a member; refused while they have open loans."""
    CatalogManager(db).delete_member(member_id)

@router.post("/{member_id}/pay-fine", response_model=MemberResponse)
async def pay_fine(
    member_id: int,
    payment: FinePayment,
    current_user: UserAccount = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Pay part or all of the pending fines (librarians, or the member themselves)."""
    engine = LoanEngine(db)
    engine.ensure_can_act_for(current_user, member_id)
    member = engine.pay_fine(member_id, payment.amount)
    return MemberResponse(**member.to_dict())
