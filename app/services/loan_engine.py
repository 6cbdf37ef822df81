"""Loan lifecycle: creation, approval, rejection, return, overdue sweep, fines.

Every operation reads the records it needs, checks its preconditions and then
writes Loan, Book and Member inside a single store transaction, so a failed
step leaves nothing half-applied.
"""
import logging
from datetime import datetime, timedelta
from decimal import Decimal, InvalidOperation
from typing import Callable, List, Optional

from sqlalchemy.orm import Session

from app.config import settings
from app.errors import (
    IneligibleMemberError,
    InvalidAmountError,
    InvalidStateError,
    NotFoundError,
    PermissionDeniedError,
    UnavailableError,
    ValidationError,
)
from app.models.book import Book, BookStatus
from app.models.loan import Loan, LoanStatus, RETURNABLE_LOAN_STATUSES
from app.models.member import Member
from app.models.user import UserAccount, UserRole
from app.services.entity_store import EntityStore, transaction
from app.utils.timezone import ensure_utc, now_utc

logger = logging.getLogger(__name__)

ONE_DAY = timedelta(days=1)
CENT = Decimal("0.01")


def calculate_fine(due_date: datetime, returned_at: datetime, damaged: bool = False) -> Decimal:
    """Late fee per whole day past the due date, plus the flat damage fee."""
    late = ensure_utc(returned_at) - ensure_utc(due_date)
    late_days = max(0, late // ONE_DAY)
    fine = late_days * settings.late_fee_per_day
    if damaged:
        fine += settings.damage_fee
    return Decimal(fine)


class LoanEngine:
    def __init__(self, db: Session, clock: Callable[[], datetime] = now_utc):
        self.db = db
        self.clock = clock
        self.books: EntityStore[Book] = EntityStore(db, Book)
        self.members: EntityStore[Member] = EntityStore(db, Member)
        self.loans: EntityStore[Loan] = EntityStore(db, Loan)

    # Queries
    def get_loan(self, loan_id: int) -> Loan:
        return self.loans.require(loan_id)

    def list_loans(self, status: Optional[LoanStatus] = None) -> List[Loan]:
        if status is not None:
            return self.loans.query(Loan.status == status, order_by="-start_date")
        return self.loans.get_all(order_by="-start_date")

    def list_loans_for_member(self, member_id: int) -> List[Loan]:
        return self.loans.query(Loan.member_id == member_id, order_by="-start_date")

    def list_loans_for_book(self, book_id: int) -> List[Loan]:
        return self.loans.query(Loan.book_id == book_id, order_by="-start_date")

    def list_loans_with_details(self, loans: Optional[List[Loan]] = None) -> List[dict]:
        """Loans joined with the current book and member records (when they still exist)."""
        if loans is None:
            loans = self.list_loans()
        detailed = []
        for loan in loans:
            data = loan.to_dict()
            book = loan.book
            member = loan.member
            data["book"] = {"title": book.title, "author": book.author, "isbn": book.isbn} if book else None
            data["member"] = (
                {"name": member.name, "memberNumber": member.member_number, "email": member.email}
                if member else None
            )
            detailed.append(data)
        return detailed

    def member_for_account(self, account: UserAccount) -> Member:
        member = self.members.get_by_id(account.member_id)
        if member is None:
            raise NotFoundError(f"No member record is linked to {account.email}")
        return member

    def ensure_can_act_for(self, account: UserAccount, member_id: int) -> None:
        """Librarians act for anyone; members only for their own record."""
        if account.role == UserRole.LIBRARIAN:
            return
        if self.member_for_account(account).member_id != member_id:
            raise PermissionDeniedError("Members can only act on their own record")

    # Lifecycle
    def create_loan(
        self,
        book_id: int,
        member_id: int,
        initial_status: LoanStatus = LoanStatus.ACTIVE,
        loan_days: Optional[int] = None,
    ) -> Loan:
        if loan_days is None:
            loan_days = settings.loan_days
        if loan_days < 1:
            raise ValidationError("A loan must last at least one day")
        if initial_status not in (LoanStatus.PENDING, LoanStatus.ACTIVE):
            raise ValidationError(f"Loans cannot be created as {initial_status.value}")

        with transaction(self.db):
            book = self.books.require(book_id)
            if book.status != BookStatus.AVAILABLE:
                logger.warning(f"Loan refused: book {book_id} is {book.status.value}")
                raise UnavailableError(f"Book '{book.title}' is not available")

            member = self.members.require(member_id)
            if not member.can_borrow:
                logger.warning(f"Loan refused: member {member_id} owes {member.pending_fines}")
                raise IneligibleMemberError(f"Member {member.member_number} has pending fines of {member.pending_fines}")

            start = self.clock()
            loan = self.loans.create(
                book_id=book.book_id,
                member_id=member.member_id,
                book_title=book.title,
                book_isbn=book.isbn,
                start_date=start,
                due_date=start + timedelta(days=loan_days),
                status=initial_status,
                fine_amount=Decimal("0"),
            )
            if initial_status == LoanStatus.ACTIVE:
                self.books.update(book.book_id, status=BookStatus.LOANED)

        logger.info(f"Loan {loan.loan_id} created as {initial_status.value}: book {book_id} -> member {member_id}, {loan_days} day(s)")
        return loan

    def request_loan(self, account: UserAccount, book_id: int) -> Loan:
        """Member self-service request; waits for a librarian's approval."""
        member = self.member_for_account(account)
        return self.create_loan(
            book_id,
            member.member_id,
            initial_status=LoanStatus.PENDING,
            loan_days=settings.member_request_loan_days,
        )

    def approve_loan(self, loan_id: int) -> Loan:
        with transaction(self.db):
            loan = self.loans.require(loan_id)
            if loan.status != LoanStatus.PENDING:
                raise InvalidStateError(f"Only pending loans can be approved (loan {loan_id} is {loan.status.value})")
            book = self.books.require(loan.book_id)
            if book.status != BookStatus.AVAILABLE:
                raise UnavailableError(f"Book '{book.title}' is no longer available")

            self.loans.update(loan_id, status=LoanStatus.ACTIVE)
            self.books.update(book.book_id, status=BookStatus.LOANED)

        logger.info(f"Loan {loan_id} approved, book {book.book_id} loaned")
        return loan

    def reject_loan(self, loan_id: int) -> None:
        with transaction(self.db):
            loan = self.loans.require(loan_id)
            if loan.status != LoanStatus.PENDING:
                raise InvalidStateError(f"Only pending loans can be rejected (loan {loan_id} is {loan.status.value})")
            self.loans.delete(loan_id)

        logger.info(f"Loan {loan_id} rejected and removed")

    def return_loan(self, loan_id: int, damaged: bool = False) -> Loan:
        with transaction(self.db):
            loan = self.loans.require(loan_id)
            if loan.status not in RETURNABLE_LOAN_STATUSES:
                raise InvalidStateError(f"Loan {loan_id} is {loan.status.value} and cannot be returned")

            returned_at = self.clock()
            fine = calculate_fine(loan.due_date, returned_at, damaged)
            self.loans.update(loan_id, status=LoanStatus.FINISHED, return_date=returned_at, fine_amount=fine)

            book = self.books.get_by_id(loan.book_id)
            if book is not None:
                self.books.update(book.book_id, status=BookStatus.AVAILABLE)
            else:
                logger.warning(f"Loan {loan_id} returned but its book no longer exists")

            if fine > 0:
                member = self.members.get_by_id(loan.member_id)
                if member is not None:
                    self.members.update(member.member_id, pending_fines=member.pending_fines + fine)
                else:
                    logger.warning(f"Fine of {fine} for loan {loan_id} has no member to charge")

        logger.info(f"Loan {loan_id} returned (damaged={damaged}), fine {fine}")
        return loan

    def sweep_overdue(self) -> List[Loan]:
        """Mark every active loan past its due date as overdue."""
        now = self.clock()
        with transaction(self.db):
            overdue = self.loans.query(Loan.status == LoanStatus.ACTIVE, Loan.due_date < now)
            for loan in overdue:
                self.loans.update(loan.loan_id, status=LoanStatus.OVERDUE)

        if overdue:
            logger.info(f"Overdue sweep marked {len(overdue)} loan(s): {[loan.loan_id for loan in overdue]}")
        else:
            logger.debug("Overdue sweep found nothing to mark")
        return overdue

    def pay_fine(self, member_id: int, amount) -> Member:
        try:
            amount = Decimal(str(amount))
        except (InvalidOperation, ValueError) as exc:
            raise InvalidAmountError(f"Invalid payment amount: {amount!r}") from exc

        with transaction(self.db):
            member = self.members.require(member_id)
            if not amount.is_finite() or amount <= 0:
                raise InvalidAmountError("The payment amount must be greater than zero")
            if amount > member.pending_fines:
                raise InvalidAmountError(
                    f"The payment of {amount} exceeds the pending fines of {member.pending_fines}"
                )
            # Balances are stored in cents
            if amount != amount.quantize(CENT):
                raise InvalidAmountError(f"The payment amount {amount} has more than two decimal places")
            amount = amount.quantize(CENT)
            self.members.update(member_id, pending_fines=member.pending_fines - amount)

        logger.info(f"Member {member_id} paid {amount}, pending fines now {member.pending_fines}")
        return member
