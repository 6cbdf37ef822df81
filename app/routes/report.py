from fastapi import APIRouter, Depends
from sqlalchemy import func
from sqlalchemy.orm import Session
from app.database import get_db
from app.models.book import Book, BookStatus
from app.models.loan import Loan, LoanStatus
from app.models.member import Member
from app.models.user import UserAccount
from app.schemas.report import SummaryReport
from app.services.auth import require_librarian

router = APIRouter(prefix="/api/reports", tags=["Reports"])

@router.get("/summary", response_model=SummaryReport)
async def get_summary(
    _: UserAccount = Depends(require_librarian),
    db: Session = Depends(get_db)
):
    """Dashboard counters: books and loans by status, outstanding fines."""
    book_counts = dict(db.query(Book.status, func.count(Book.book_id)).group_by(Book.status).all())
    loan_counts = dict(db.query(Loan.status, func.count(Loan.loan_id)).group_by(Loan.status).all())
    members_with_fines, outstanding = db.query(
        func.count(Member.member_id), func.coalesce(func.sum(Member.pending_fines), 0)
    ).filter(Member.pending_fines > 0).one()

    return SummaryReport(
        books={s.value: book_counts.get(s, 0) for s in BookStatus},
        loans={s.value: loan_counts.get(s, 0) for s in LoanStatus},
        membersWithFines=members_with_fines,
        outstandingFines=float(outstanding),
    )
