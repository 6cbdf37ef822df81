from sqlalchemy import Column, String, DateTime, Integer, Numeric, CheckConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from app.database import Base


class Member(Base):
    __tablename__ = "member"

    member_id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(255), nullable=False, index=True)
    national_id = Column(String(8), unique=True, nullable=False, index=True)
    member_number = Column(String(20), unique=True, nullable=False, index=True)
    email = Column(String(255), nullable=False, index=True)
    pending_fines = Column(Numeric(10, 2), default=0, nullable=False)
    version = Column(Integer, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    # Relationships
    loans = relationship("Loan", back_populates="member")
    accounts = relationship("UserAccount", back_populates="member")

    __table_args__ = (
        CheckConstraint("pending_fines >= 0", name="chk_member_pending_fines"),
    )
    __mapper_args__ = {"version_id_col": version}

    @property
    def can_borrow(self) -> bool:
        return self.pending_fines == 0

    def to_dict(self):
        return {
            "id": str(self.member_id),
            "name": self.name,
            "nationalId": self.national_id,
            "memberNumber": self.member_number,
            "email": self.email,
            "pendingFines": float(self.pending_fines),
        }
