from decimal import Decimal
from pydantic import BaseModel, Field
from typing import Optional

class MemberCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    national_id: str = Field(..., description="7 or 8 digits")
    email: str = Field(..., max_length=255)

class MemberUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    national_id: Optional[str] = None
    email: Optional[str] = Field(None, max_length=255)
    member_number: Optional[str] = None

class FinePayment(BaseModel):
    amount: Decimal = Field(..., gt=0, decimal_places=2)

class MemberResponse(BaseModel):
    id: str
    name: str
    nationalId: str
    memberNumber: str
    email: str
    pendingFines: float

    class Config:
        from_attributes = True
