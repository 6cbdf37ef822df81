from pydantic import BaseModel, EmailStr, Field
from typing import Optional

class LibrarianCreate(BaseModel):
    email: EmailStr
    full_name: str = Field(..., min_length=1, max_length=255)
    national_id: str = Field(..., pattern=r"^\d{7,8}$")
    password: str = Field(..., min_length=6)

class MembershipRequestCreate(BaseModel):
    email: EmailStr
    full_name: str = Field(..., min_length=1, max_length=255)
    national_id: str = Field(..., pattern=r"^\d{7,8}$")

class CompleteRegistration(BaseModel):
    token: str = Field(..., min_length=1)
    password: str = Field(..., min_length=6)

class UserLogin(BaseModel):
    email: EmailStr
    password: str

class PasswordChange(BaseModel):
    new_password: str = Field(..., min_length=6)

class UserResponse(BaseModel):
    id: str
    email: str
    fullName: str
    nationalId: str
    role: str
    status: str
    memberId: Optional[str] = None

    class Config:
        from_attributes = True

class ApprovalResponse(BaseModel):
    user: UserResponse
    emailSent: bool

class Token(BaseModel):
    access_token: str
    token_type: str = "bearer"
    user: UserResponse
