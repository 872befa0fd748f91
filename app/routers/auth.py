# routers/auth.py - Authentication Routes
# ============================================================================

import logging
from typing import List

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_db
from app.schemas.auth import (
    ForgotPasswordRequest,
    LoginRequest,
    MessageResponse,
    ResetPasswordRequest,
    SignupRequest,
    TokenResponse,
    UpdateUserRequest,
    UserResponse,
)
from app.services.auth import AuthService, Principal, UserNotFoundError, normalize_email
from app.services.dispatch import enqueue
from app.routers.deps import get_current_principal, require_admin
from app.tasks.password_reset import send_password_reset_task

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/auth", tags=["auth"])

FORGOT_PASSWORD_MESSAGE = "If your account exists, a password reset link has been sent to your email."


@router.post("/signup", response_model=TokenResponse, status_code=201)
async def signup(request: SignupRequest, db: AsyncSession = Depends(get_db)):
    return await AuthService().signup(request.email, request.password, request.skills, db)


@router.post("/login", response_model=TokenResponse)
async def login(request: LoginRequest, db: AsyncSession = Depends(get_db)):
    return await AuthService().login(request.email, request.password, db)


@router.post("/logout", response_model=MessageResponse)
async def logout(principal: Principal = Depends(get_current_principal)):
    """Tokens are stateless; the client drops its copy."""
    return {"message": "Logout successful."}


@router.post("/forgot-password", response_model=MessageResponse)
async def forgot_password(request: ForgotPasswordRequest, db: AsyncSession = Depends(get_db)):
    email = normalize_email(request.email)
    if not email:
        raise HTTPException(status_code=400, detail="Email is required.")

    if not enqueue(send_password_reset_task, email=email):
        try:
            await AuthService().issue_password_reset(email, db)
        except UserNotFoundError:
            pass
        except Exception as e:
            logger.error(f"❌ Password reset mail failed: {e}")

    # Same answer whether or not the account exists
    return {"message": FORGOT_PASSWORD_MESSAGE}


@router.post("/reset-password/{token}", response_model=MessageResponse)
async def reset_password(token: str, request: ResetPasswordRequest, db: AsyncSession = Depends(get_db)):
    await AuthService().reset_password(token, request.password, db)
    return {"message": "Password reset successful."}


@router.post("/update-user", response_model=MessageResponse)
async def update_user(
    request: UpdateUserRequest,
    admin: Principal = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    await AuthService().update_user(request.email, request.role, request.skills, db)
    return {"message": "User updated successfully."}


@router.get("/users", response_model=List[UserResponse])
async def list_users(admin: Principal = Depends(require_admin), db: AsyncSession = Depends(get_db)):
    return await AuthService().list_users(db)
