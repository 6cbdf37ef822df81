import enum
from sqlalchemy import Column, String, DateTime, Integer, Enum
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from app.database import Base


class BookStatus(str, enum.Enum):
    AVAILABLE = "AVAILABLE"
    LOANED = "LOANED"


class Book(Base):
    __tablename__ = "book"

    book_id = Column(Integer, primary_key=True, autoincrement=True)
    title = Column(String(255), nullable=False, index=True)
    author = Column(String(255), nullable=False)
    isbn = Column(String(13), unique=True, nullable=False, index=True)
    status = Column(
        Enum(BookStatus, native_enum=False, length=20, name="book_status"),
        default=BookStatus.AVAILABLE,
        nullable=False,
        index=True,
    )
    version = Column(Integer, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    # Relationships
    loans = relationship("Loan", back_populates="book")

    __mapper_args__ = {"version_id_col": version}

    def to_dict(self):
        return {
            "id": str(self.book_id),
            "title": self.title,
            "author": self.author,
            "isbn": self.isbn,
            "status": self.status.value,
        }
