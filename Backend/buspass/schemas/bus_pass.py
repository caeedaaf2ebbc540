from pydantic import BaseModel, Field
from typing import Literal, Optional
from datetime import date, datetime

Gender = Literal["male", "female", "other"]
PassCategory = Literal["student", "senior", "regular", "disabled"]

MOBILE_PATTERN = r"^\d{10}$"
EMAIL_PATTERN = r"^[\w.+-]+@[\w-]+(\.[\w-]+)*\.\w{2,}$"


# ============ Pass Applications ============

class PassApplicationCreate(BaseModel):
    """
    Pass application form.
    aadhaar_document and photo are references returned by the document upload service.
    """
    user_id: str = Field(..., min_length=1, max_length=100)
    name: str = Field(..., min_length=1, max_length=100)
    age: int = Field(..., ge=1, le=120)
    gender: Gender
    category: PassCategory
    mobile: str = Field(..., pattern=MOBILE_PATTERN, description="10 digit mobile number")
    email: str = Field(..., pattern=EMAIL_PATTERN, max_length=255)
    address: str = Field(..., min_length=1, max_length=255)
    source: str = Field(..., min_length=1, max_length=100)
    destination: str = Field(..., min_length=1, max_length=100)
    validity_months: Literal[1, 3, 6, 12] = 1
    aadhaar_document: str = Field(..., min_length=1, max_length=255)
    photo: Optional[str] = Field(None, max_length=255)


class OtpVerification(BaseModel):
    user_id: str = Field(..., min_length=1, max_length=100)
    otp: str = Field(..., min_length=1, max_length=10)


class ApplicationStatusUpdate(BaseModel):
    """Admin decision on an application"""
    status: Literal["pending", "verification", "approved", "rejected"]
    admin_remarks: Optional[str] = Field(None, max_length=500)
    rejection_reason: Optional[str] = Field(None, max_length=500)


class PassApplicationResponse(BaseModel):
    id: int
    user_id: str
    name: str
    age: int
    gender: str
    category: str
    mobile: str
    email: str
    address: str
    source: str
    destination: str
    validity_months: int
    aadhaar_document: str
    photo: Optional[str] = None
    status: str
    mobile_verified: bool
    admin_remarks: Optional[str] = None
    rejection_reason: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


# ============ Passes ============

class PassIssue(BaseModel):
    """
    Issue a pass for an approved application.
    valid_from defaults to today, valid_until to valid_from plus the application's validity.
    """
    application_id: int
    amount: float = Field(..., ge=0)
    valid_from: Optional[date] = None
    valid_until: Optional[date] = None


class PassRenew(BaseModel):
    valid_until: date


class PassCancel(BaseModel):
    reason: Optional[str] = Field(None, max_length=500)


class PassVerify(BaseModel):
    pass_number: str = Field(..., min_length=1, max_length=30)
    location: Optional[str] = Field(None, max_length=255)


class PassResponse(BaseModel):
    id: int
    pass_number: str
    user_id: str
    application_id: int
    name: str
    category: str
    source: str
    destination: str
    valid_from: date
    valid_until: date
    amount: float
    status: str
    payment_status: str
    renewal_count: int
    cancellation_reason: Optional[str] = None
    cancelled_at: Optional[datetime] = None
    qr_code_data: Optional[str] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class PassVerificationResponse(BaseModel):
    id: int
    verified_by: str
    location: str
    verified_at: datetime

    class Config:
        from_attributes = True


class PassCheckResult(BaseModel):
    """Outcome of checking a pass in the field"""
    message: str
    is_valid: bool
    pass_number: str
    name: str
    category: str
    valid_from: date
    valid_until: date
    status: str
