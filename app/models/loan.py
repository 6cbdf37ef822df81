import enum
from sqlalchemy import Column, String, DateTime, Integer, Numeric, Enum, ForeignKey, CheckConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from app.database import Base


class LoanStatus(str, enum.Enum):
    PENDING = "PENDING"
    ACTIVE = "ACTIVE"
    FINISHED = "FINISHED"
    OVERDUE = "OVERDUE"


# Loans that still hold (or claim) a book
OPEN_LOAN_STATUSES = (LoanStatus.PENDING, LoanStatus.ACTIVE, LoanStatus.OVERDUE)
RETURNABLE_LOAN_STATUSES = (LoanStatus.ACTIVE, LoanStatus.OVERDUE)


class Loan(Base):
    __tablename__ = "loan"

    loan_id = Column(Integer, primary_key=True, autoincrement=True)
    book_id = Column(Integer, ForeignKey("book.book_id", ondelete="SET NULL"), nullable=True, index=True)
    member_id = Column(Integer, ForeignKey("member.member_id", ondelete="SET NULL"), nullable=True, index=True)
    # Receipt data copied at creation so catalog edits do not rewrite history
    book_title = Column(String(255), nullable=False)
    book_isbn = Column(String(13), nullable=False)
    start_date = Column(DateTime(timezone=True), nullable=False, index=True)
    due_date = Column(DateTime(timezone=True), nullable=False, index=True)
    return_date = Column(DateTime(timezone=True), nullable=True)
    status = Column(
        Enum(LoanStatus, native_enum=False, length=20, name="loan_status"),
        default=LoanStatus.PENDING,
        nullable=False,
        index=True,
    )
    fine_amount = Column(Numeric(10, 2), default=0, nullable=False)
    version = Column(Integer, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    # Relationships
    book = relationship("Book", back_populates="loans")
    member = relationship("Member", back_populates="loans")

    __table_args__ = (
        CheckConstraint("fine_amount >= 0", name="chk_loan_fine_amount"),
    )
    __mapper_args__ = {"version_id_col": version}

    def to_dict(self):
        return {
            "id": str(self.loan_id),
            "bookId": str(self.book_id) if self.book_id else None,
            "memberId": str(self.member_id) if self.member_id else None,
            "bookTitle": self.book_title,
            "bookIsbn": self.book_isbn,
            "startDate": self.start_date.isoformat() if self.start_date else None,
            "dueDate": self.due_date.isoformat() if self.due_date else None,
            "returnDate": self.return_date.isoformat() if self.return_date else None,
            "status": self.status.value,
            "fineAmount": float(self.fine_amount),
        }
