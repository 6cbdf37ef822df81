from .auth import (
    LibrarianCreate, MembershipRequestCreate, CompleteRegistration,
    UserLogin, PasswordChange, UserResponse, ApprovalResponse, Token
)
from .book import BookBase, BookCreate, BookUpdate, BookResponse
from .member import MemberCreate, MemberUpdate, FinePayment, MemberResponse
from .loan import (
    LoanCreate, LoanRequest, LoanReturn, LoanResponse,
    LoanBookDetails, LoanMemberDetails, LoanDetailsResponse, SweepResponse
)
from .report import SummaryReport

__all__ = [
    "LibrarianCreate", "MembershipRequestCreate", "CompleteRegistration",
    "UserLogin", "PasswordChange", "UserResponse", "ApprovalResponse", "Token",
    "BookBase", "BookCreate", "BookUpdate", "BookResponse",
    "MemberCreate", "MemberUpdate", "FinePayment", "MemberResponse",
    "LoanCreate", "LoanRequest", "LoanReturn", "LoanResponse",
    "LoanBookDetails", "LoanMemberDetails", "LoanDetailsResponse", "SweepResponse",
    "SummaryReport",
]
