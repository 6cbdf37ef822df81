from .user import UserAccount, UserRole, UserStatus
from .book import Book, BookStatus
from .member import Member
from .loan import Loan, LoanStatus, OPEN_LOAN_STATUSES

__all__ = [
    "UserAccount",
    "UserRole",
    "UserStatus",
    "Book",
    "BookStatus",
    "Member",
    "Loan",
    "LoanStatus",
    "OPEN_LOAN_STATUSES",
]
