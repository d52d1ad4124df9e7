"""Pydantic schemas for request/response validation."""

import re
from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator

PASSWORD_PATTERN = re.compile(r"^(?=.*[a-z])(?=.*[A-Z])(?=.*\d).{6,}$")
PASSWORD_MAX_BYTES = 72


# --- Auth Schemas ---
class UserCreate(BaseModel):
    """Schema for user registration."""

    name: str = Field(..., min_length=1, max_length=255)
    email: EmailStr
    password: str

    @field_validator("password")
    @classmethod
    def password_strength(cls, value: str) -> str:
        if not PASSWORD_PATTERN.match(value):
            raise ValueError(
                "Password must be at least 6 characters and contain at least one uppercase letter, "
                "one lowercase letter, and one number"
            )
        # bcrypt only accepts up to 72 bytes
        if len(value.encode("utf-8")) > PASSWORD_MAX_BYTES:
            raise ValueError(f"Password must be at most {PASSWORD_MAX_BYTES} bytes")
        return value


class UserResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    email: str
    role: str
    created_at: datetime


class LoginRequest(BaseModel):
    email: EmailStr
    password: str


class Token(BaseModel):
    """JWT token response."""

    access_token: str
    token_type: str = "bearer"
    role: Optional[str] = None


# --- Cause Schemas ---
class CauseCreateRequest(BaseModel):
    title: str = Field(..., min_length=1, max_length=255)
    description: str = Field(default="", max_length=10000)
    image_url: Optional[str] = Field(default=None, max_length=500)
    goal_amount: Decimal = Field(..., gt=0, max_digits=12, decimal_places=2)


class CauseUpdateRequest(BaseModel):
    title: Optional[str] = Field(default=None, min_length=1, max_length=255)
    description: Optional[str] = Field(default=None, max_length=10000)
    image_url: Optional[str] = Field(default=None, max_length=500)
    goal_amount: Optional[Decimal] = Field(default=None, gt=0, max_digits=12, decimal_places=2)
    is_active: Optional[bool] = None


class CauseResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    title: str
    description: str
    image_url: Optional[str] = None
    goal_amount: Decimal
    raised_amount: Decimal
    is_active: bool
    created_at: datetime


class CauseListResponse(BaseModel):
    items: List[CauseResponse]


# --- Payment Schemas ---
class InitializePaymentRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    amount: Decimal
    cause_id: int = Field(..., alias="causeId")
    payment_method: str = Field(..., alias="paymentMethod")
    donor_name: Optional[str] = Field(default=None, alias="donorName", max_length=255)
    donor_email: Optional[EmailStr] = Field(default=None, alias="donorEmail")
    is_anonymous: bool = Field(default=False, alias="isAnonymous")
    cause_name: Optional[str] = Field(default=None, alias="causeName", max_length=255)


class InitializePaymentResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    success: bool = True
    payment_url: str = Field(..., alias="paymentUrl")
    reference: str


class WebhookAckResponse(BaseModel):
    status: str = "success"


# --- Donation Schemas ---
class DonationResponse(BaseModel):
    id: str
    amount: Decimal
    currency: str
    payment_id: str
    payment_method: str
    status: str
    is_anonymous: bool
    cause_id: int
    cause_title: Optional[str] = None
    created_at: datetime
    completed_at: Optional[datetime] = None


class DonorSummary(BaseModel):
    total_donated: Decimal
    total_donations: int
    causes_supported: int


class DonationHistoryResponse(BaseModel):
    summary: DonorSummary
    items: List[DonationResponse]
