import enum
from sqlalchemy import Column, String, DateTime, Integer, Enum, ForeignKey
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from app.database import Base


class UserRole(str, enum.Enum):
    LIBRARIAN = "LIBRARIAN"
    MEMBER = "MEMBER"


class UserStatus(str, enum.Enum):
    PENDING = "PENDING"
    ACTIVE = "ACTIVE"
    PROVISIONAL = "PROVISIONAL"
    REJECTED = "REJECTED"


class UserAccount(Base):
    __tablename__ = "user_account"

    user_id = Column(Integer, primary_key=True, autoincrement=True)
    email = Column(String(255), unique=True, nullable=False, index=True)
    full_name = Column(String(255), nullable=False)
    national_id = Column(String(8), nullable=False)
    role = Column(Enum(UserRole, native_enum=False, length=20, name="user_role"), default=UserRole.MEMBER, nullable=False)
    status = Column(Enum(UserStatus, native_enum=False, length=20, name="user_status"), default=UserStatus.PENDING, nullable=False, index=True)
    hashed_password = Column(String(255), nullable=True)  # unset until registration is completed
    last_password_change_at = Column(DateTime(timezone=True), nullable=True)
    approved_at = Column(DateTime(timezone=True), nullable=True)
    registration_token = Column(String(64), unique=True, nullable=True, index=True)
    registration_token_expires_at = Column(DateTime(timezone=True), nullable=True)
    # Member record of a MEMBER account, set when registration completes
    member_id = Column(Integer, ForeignKey("member.member_id", ondelete="SET NULL"), nullable=True, index=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    # Relationships
    member = relationship("Member", back_populates="accounts")

    def to_dict(self):
        return {
            "id": str(self.user_id),
            "email": self.email,
            "fullName": self.full_name,
            "nationalId": self.national_id,
            "role": self.role.value,
            "status": self.status.value,
            "memberId": str(self.member_id) if self.member_id else None,
        }
