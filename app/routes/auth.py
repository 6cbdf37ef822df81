from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session
from typing import List, Optional
from app.database import get_db
from app.models.user import UserAccount, UserStatus
from app.schemas.auth import (
    LibrarianCreate,
    MembershipRequestCreate,
    CompleteRegistration,
    UserLogin,
    PasswordChange,
    UserResponse,
    ApprovalResponse,
    Token,
)
from app.services.accounts import AccountService
from app.services.auth import (
    change_password,
    create_token_for,
    get_current_user,
    get_optional_user,
    require_librarian,
)

router = APIRouter(prefix="/api/auth", tags=["Authentication"])

def _token(account: UserAccount) -> Token:
    return Token(
        access_token=create_token_for(account),
        token_type="bearer",
        user=UserResponse(**account.to_dict()),
    )

@router.post("/register", response_model=Token, status_code=status.HTTP_201_CREATED)
async def register_librarian(
    user_data: LibrarianCreate,
    current_user: Optional[UserAccount] = Depends(get_optional_user),
    db: Session = Depends(get_db)
):
    """Register a librarian account (active immediately).

    Open only while the library has no librarian; afterwards a librarian token is required.
    """
    account = AccountService(db).register_librarian(
        email=user_data.email,
        full_name=user_data.full_name,
        national_id=user_data.national_id,
        password=user_data.password,
        created_by=current_user,
    )
    return _token(account)

@router.post("/login", response_model=Token)
async def login(user_data: UserLogin, db: Session = Depends(get_db)):
    """Login and get access token."""
    account = AccountService(db).authenticate(user_data.email, user_data.password)
    return _token(account)

@router.get("/me", response_model=UserResponse)
async def get_current_user_info(current_user: UserAccount = Depends(get_current_user)):
    """Get current authenticated user information."""
    return UserResponse(**current_user.to_dict())

@router.post("/change-password", response_model=UserResponse)
async def change_own_password(
    data: PasswordChange,
    current_user: UserAccount = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Change the caller's password (limited to one change per cooldown window)."""
    account = change_password(db, current_user, data.new_password)
    return UserResponse(**account.to_dict())

@router.post("/membership-requests", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
async def request_membership(data: MembershipRequestCreate, db: Session = Depends(get_db)):
    """Submit a membership request; a librarian has to approve it."""
    account = AccountService(db).request_membership(data.email, data.full_name, data.national_id)
    return UserResponse(**account.to_dict())

@router.get("/membership-requests", response_model=List[UserResponse])
async def list_membership_requests(
    status_filter: Optional[UserStatus] = UserStatus.PENDING,
    _: UserAccount = Depends(require_librarian),
    db: Session = Depends(get_db)
):
    """List accounts by status (pending requests by default)."""
    accounts = AccountService(db).list_accounts(status_filter)
    return [UserResponse(**account.to_dict()) for account in accounts]

# sync: the approval email is sent inline
@router.post("/membership-requests/{user_id}/approve", response_model=ApprovalResponse)
def approve_membership(
    user_id: int,
    _: UserAccount = Depends(require_librarian),
    db: Session = Depends(get_db)
):
    """Approve a request and send the applicant a registration link."""
    account, email_sent = AccountService(db).approve_membership(user_id)
    return ApprovalResponse(user=UserResponse(**account.to_dict()), emailSent=email_sent)

@router.post("/membership-requests/{user_id}/reject", response_model=UserResponse)
async def reject_membership(
    user_id: int,
    _: UserAccount = Depends(require_librarian),
    db: Session = Depends(get_db)
):
    account = AccountService(db).reject_membership(user_id)
    return UserResponse(**account.to_dict())

@router.post("/complete-registration", response_model=Token)
async def complete_registration(data: CompleteRegistration, db: Session = Depends(get_db)):
    """Set the password from a registration link; activates the member."""
    account, _member = AccountService(db).complete_registration(data.token, data.password)
    return _token(account)
