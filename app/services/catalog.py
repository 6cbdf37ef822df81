import logging
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import or_
from sqlalchemy.orm import Session

from app.errors import ConflictError, HasActiveLoansError, UniquenessError, ValidationError
from app.models.book import Book, BookStatus
from app.models.loan import Loan, OPEN_LOAN_STATUSES
from app.models.member import Member
from app.services.entity_store import EntityStore, in_transaction
from app.utils.validators import (
    format_member_number,
    is_valid_dni,
    is_valid_email,
    is_valid_isbn,
    is_valid_member_number,
    member_number_suffix,
)

logger = logging.getLogger(__name__)

# Attempts at claiming a fresh member number when another writer takes it first
MEMBER_NUMBER_ATTEMPTS = 3


def _require_text(value: Optional[str], field: str) -> str:
    if value is None or not value.strip():
        raise ValidationError(f"{field} is required")
    return value.strip()


class CatalogManager:
    """Books and members: primary-field edits and uniqueness rules."""

    def __init__(self, db: Session):
        self.db = db
        self.books: EntityStore[Book] = EntityStore(db, Book)
        self.members: EntityStore[Member] = EntityStore(db, Member)
        self.loans: EntityStore[Loan] = EntityStore(db, Loan)

    # Books
    def isbn_exists(self, isbn: str, exclude_id: Optional[int] = None) -> bool:
        criteria = [Book.isbn == isbn]
        if exclude_id is not None:
            criteria.append(Book.book_id != exclude_id)
        return self.books.count(*criteria) > 0

    def _check_isbn(self, isbn: str, exclude_id: Optional[int] = None) -> str:
        isbn = (isbn or "").strip()
        if not is_valid_isbn(isbn):
            raise ValidationError("ISBN must be exactly 13 digits")
        if self.isbn_exists(isbn, exclude_id):
            raise UniquenessError(f"A book with ISBN {isbn} is already registered")
        return isbn

    def get_book(self, book_id: int) -> Book:
        return self.books.require(book_id)

    def list_books(self, status: Optional[BookStatus] = None, search: Optional[str] = None) -> List[Book]:
        criteria = []
        if status is not None:
            criteria.append(Book.status == status)
        if search:
            term = f"%{search.strip()}%"
            criteria.append(or_(Book.title.ilike(term), Book.author.ilike(term), Book.isbn.ilike(term)))
        return self.books.query(*criteria, order_by="title")

    def create_book(self, title: str, author: str, isbn: str) -> Book:
        title = _require_text(title, "Title")
        author = _require_text(author, "Author")
        isbn = self._check_isbn(isbn)

        book = self.books.create(title=title, author=author, isbn=isbn, status=BookStatus.AVAILABLE)
        logger.info(f"Book {book.book_id} created (ISBN {isbn})")
        return book

    def update_book(self, book_id: int, title: Optional[str] = None, author: Optional[str] = None, isbn: Optional[str] = None) -> Book:
        self.books.require(book_id)
        changes = {}
        if title is not None:
            changes["title"] = _require_text(title, "Title")
        if author is not None:
            changes["author"] = _require_text(author, "Author")
        if isbn is not None:
            changes["isbn"] = self._check_isbn(isbn, exclude_id=book_id)

        book = self.books.update(book_id, **changes)
        logger.info(f"Book {book_id} updated: {sorted(changes)}")
        return book

    def delete_book(self, book_id: int) -> None:
        self.books.require(book_id)
        open_loans = self.loans.count(Loan.book_id == book_id, Loan.status.in_(OPEN_LOAN_STATUSES))
        if open_loans:
            logger.warning(f"Refusing to delete book {book_id}: {open_loans} open loan(s)")
            raise HasActiveLoansError(f"Book {book_id} has {open_loans} open loan(s) and cannot be deleted")
        self.books.delete(book_id)
        logger.info(f"Book {book_id} deleted")

    # Members
    def dni_exists(self, national_id: str, exclude_id: Optional[int] = None) -> bool:
        criteria = [Member.national_id == national_id]
        if exclude_id is not None:
            criteria.append(Member.member_id != exclude_id)
        return self.members.count(*criteria) > 0

    def member_number_exists(self, member_number: str, exclude_id: Optional[int] = None) -> bool:
        criteria = [Member.member_number == member_number]
        if exclude_id is not None:
            criteria.append(Member.member_id != exclude_id)
        return self.members.count(*criteria) > 0

    def _check_dni(self, national_id: str, exclude_id: Optional[int] = None) -> str:
        national_id = (national_id or "").strip()
        if not is_valid_dni(national_id):
            raise ValidationError("DNI must have 7 or 8 digits")
        if self.dni_exists(national_id, exclude_id):
            raise UniquenessError(f"A member with DNI {national_id} is already registered")
        return national_id

    @staticmethod
    def _check_email(email: str) -> str:
        email = (email or "").strip()
        if not is_valid_email(email):
            raise ValidationError(f"Invalid email address: {email!r}")
        return email

    def generate_member_number(self) -> str:
        """Next "SOC" number: highest numeric suffix in use plus one."""
        suffixes = [
            member_number_suffix(number)
            for (number,) in self.db.query(Member.member_number).all()
        ]
        highest = max((s for s in suffixes if s is not None), default=0)
        return format_member_number(highest + 1)

    def get_member(self, member_id: int) -> Member:
        return self.members.require(member_id)

    def get_member_by_dni(self, national_id: str) -> Optional[Member]:
        return self.members.first(Member.national_id == national_id)

    def list_members(self, with_pending_fines: bool = False) -> List[Member]:
        if with_pending_fines:
            return self.members.query(Member.pending_fines > 0, order_by="-pending_fines")
        return self.members.get_all(order_by="name")

    def create_member(self, name: str, national_id: str, email: str) -> Member:
        name = _require_text(name, "Name")
        national_id = self._check_dni(national_id)
        email = self._check_email(email)

        for attempt in range(1, MEMBER_NUMBER_ATTEMPTS + 1):
            member_number = self.generate_member_number()
            try:
                member = self.members.create(
                    name=name,
                    national_id=national_id,
                    email=email,
                    member_number=member_number,
                    pending_fines=Decimal("0"),
                )
            except ConflictError:
                # Inside a caller's transaction the session must be rolled back first
                if (
                    attempt == MEMBER_NUMBER_ATTEMPTS
                    or in_transaction(self.db)
                    or not self.member_number_exists(member_number)
                ):
                    raise
                logger.warning(f"Member number {member_number} was taken concurrently, retrying")
                continue
            logger.info(f"Member {member.member_id} created as {member_number}")
            return member

    def update_member(
        self,
        member_id: int,
        name: Optional[str] = None,
        national_id: Optional[str] = None,
        email: Optional[str] = None,
        member_number: Optional[str] = None,
    ) -> Member:
        self.members.require(member_id)
        changes = {}
        if name is not None:
            changes["name"] = _require_text(name, "Name")
        if national_id is not None:
            changes["national_id"] = self._check_dni(national_id, exclude_id=member_id)
        if email is not None:
            changes["email"] = self._check_email(email)
        if member_number is not None:
            member_number = member_number.strip()
            if not is_valid_member_number(member_number):
                raise ValidationError("Member number must look like SOC001")
            if self.member_number_exists(member_number, exclude_id=member_id):
                raise UniquenessError(f"Member number {member_number} is already assigned")
            changes["member_number"] = member_number

        member = self.members.update(member_id, **changes)
        logger.info(f"Member {member_id} updated: {sorted(changes)}")
        return member

    def delete_member(self, member_id: int) -> None:
        self.members.require(member_id)
        open_loans = self.loans.count(Loan.member_id == member_id, Loan.status.in_(OPEN_LOAN_STATUSES))
        if open_loans:
            logger.warning(f"Refusing to delete member {member_id}: {open_loans} open loan(s)")
            raise HasActiveLoansError(f"Member {member_id} has {open_loans} open loan(s) and cannot be deleted")
        self.members.delete(member_id)
        logger.info(f"Member {member_id} deleted")
