# schemas/auth.py - Authentication & User Schemas
# ============================================================================
from datetime import datetime
from pydantic import BaseModel, ConfigDict, EmailStr
from typing import List, Literal, Optional


class SignupRequest(BaseModel):
    email: EmailStr
    password: str = ""
    skills: List[str] = []


class LoginRequest(BaseModel):
    email: str = ""
    password: str = ""


class ForgotPasswordRequest(BaseModel):
    email: str = ""


class ResetPasswordRequest(BaseModel):
    password: str = ""


class UpdateUserRequest(BaseModel):
    email: str
    role: Optional[Literal["user", "moderator", "admin"]] = None
    skills: List[str] = []


class UserResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    email: str
    role: str
    skills: List[str]
    issues_resolved: int
    score: int
    credits_remaining: int
    credits_used: int
    subscription_status: str
    razorpay_payment_id: Optional[str] = None
    razorpay_order_id: Optional[str] = None
    created_at: datetime


class TokenResponse(BaseModel):
    user: UserResponse
    token: str
    token_type: str = "bearer"


class MessageResponse(BaseModel):
    message: str
