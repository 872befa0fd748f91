# services/auth.py - Authentication Service
# ============================================================================

import hashlib
import logging
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import List, Optional

import jwt
from fastapi import HTTPException, status
from passlib.context import CryptContext
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.models.user import User, UserRole
from app.services.dispatch import NonRetriableError
from app.services.email import EmailService

logger = logging.getLogger(__name__)

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

ALGORITHM = "HS256"
MIN_PASSWORD_LENGTH = 6


class UserNotFoundError(NonRetriableError):
    pass


@dataclass(frozen=True)
class Principal:
    """The authenticated caller, passed explicitly into every service call."""

    id: int
    role: str
    email: str

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN

    @property
    def is_moderator(self) -> bool:
        return self.role == UserRole.MODERATOR

    @property
    def is_staff(self) -> bool:
        return self.role in (UserRole.MODERATOR, UserRole.ADMIN)

    @classmethod
    def from_user(cls, user: User) -> "Principal":
        return cls(id=user.id, role=user.role, email=user.email)


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    return pwd_context.verify(plain_password, hashed_password)


def hash_reset_token(raw_token: str) -> str:
    return hashlib.sha256(raw_token.encode()).hexdigest()


def normalize_email(email: Optional[str]) -> str:
    return str(email or "").strip().lower()


class AuthService:
    def __init__(self, email_service: Optional[EmailService] = None):
        self.email_service = email_service or EmailService()

    def create_access_token(self, data: dict, expires_delta: Optional[timedelta] = None) -> str:
        """Create JWT access token"""
        to_encode = data.copy()
        now = datetime.now(timezone.utc)
        expire = now + (expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES))
        to_encode.update({"exp": expire, "iat": now})
        return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=ALGORITHM)

    def decode_access_token(self, token: str) -> Optional[dict]:
        try:
            return jwt.decode(token, settings.SECRET_KEY, algorithms=[ALGORITHM])
        except jwt.PyJWTError:
            return None

    def token_for(self, user: User) -> str:
        return self.create_access_token({"sub": str(user.id), "role": user.role})

    async def get_current_user(self, token: str, db: AsyncSession) -> Optional[User]:
        """Get current user from JWT token"""
        payload = self.decode_access_token(token)
        if not payload:
            return None
        try:
            user_id = int(payload.get("sub"))
        except (TypeError, ValueError):
            return None
        return await db.get(User, user_id)

    async def signup(self, email: str, password: str, skills: List[str], db: AsyncSession) -> dict:
        email = normalize_email(email)
        if not email or not password:
            raise HTTPException(status_code=400, detail="Email and password are required.")

        user = User(
            email=email,
            hashed_password=hash_password(password),
            skills=[str(skill).strip() for skill in skills if str(skill).strip()],
        )
        db.add(user)
        try:
            await db.commit()
        except IntegrityError:
            await db.rollback()
            raise HTTPException(status_code=400, detail="An account with this email already exists.")
        await db.refresh(user)

        logger.info(f"👤 New user signed up: {user.id}")
        return {"user": user, "token": self.token_for(user)}

    async def login(self, email: str, password: str, db: AsyncSession) -> dict:
        email = normalize_email(email)
        if not email or not password:
            raise HTTPException(status_code=400, detail="Email and password are required.")

        result = await db.execute(select(User).where(User.email == email))
        user = result.scalar_one_or_none()
        if not user:
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="User not found")
        if not verify_password(password, user.hashed_password):
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid credentials.")

        return {"user": user, "token": self.token_for(user)}

    async def update_user(
        self, email: str, role: Optional[str], skills: List[str], db: AsyncSession
    ) -> None:
        result = await db.execute(select(User).where(User.email == normalize_email(email)))
        user = result.scalar_one_or_none()
        if not user:
            raise HTTPException(status_code=404, detail="User not found.")

        user.role = role or user.role
        if skills:
            user.skills = [str(skill).strip() for skill in skills if str(skill).strip()]
        await db.commit()
        logger.info(f"User {user.id} updated: role={user.role}")

    async def list_users(self, db: AsyncSession) -> List[User]:
        result = await db.execute(select(User).order_by(User.created_at, User.id))
        return list(result.scalars().all())

    async def issue_password_reset(self, email: str, db: AsyncSession) -> None:
        """Store a hashed reset token for the user and mail them the raw one.

        Raises UserNotFoundError for unknown emails; callers must not reveal it.
        """
        result = await db.execute(select(User).where(User.email == normalize_email(email)))
        user = result.scalar_one_or_none()
        if not user:
            raise UserNotFoundError("User does not exist")

        raw_token = secrets.token_hex(32)
        user.reset_password_token = hash_reset_token(raw_token)
        user.reset_password_expire = datetime.now(timezone.utc) + timedelta(
            minutes=settings.RESET_TOKEN_EXPIRE_MINUTES
        )
        await db.commit()

        reset_link = f"{settings.FRONTEND_URL}/reset-password/{raw_token}"
        body = (
            f"Hi {user.email},\n\n"
            "You requested a password reset.\n\n"
            f"Reset link:\n{reset_link}\n\n"
            f"This link expires in {settings.RESET_TOKEN_EXPIRE_MINUTES} minutes.\n"
            "If you did not request this, ignore this email."
        )
        try:
            await self.email_service.send_mail(user.email, "Reset your password", body)
        except Exception:
            if not settings.is_production:
                logger.warning(f"DEV reset link fallback: {reset_link}")
            raise

    async def reset_password(self, raw_token: str, password: str, db: AsyncSession) -> None:
        if not raw_token or len(password or "") < MIN_PASSWORD_LENGTH:
            raise HTTPException(
                status_code=400,
                detail=f"Token and a password of at least {MIN_PASSWORD_LENGTH} characters are required.",
            )

        result = await db.execute(
            select(User).where(
                User.reset_password_token == hash_reset_token(raw_token),
                User.reset_password_expire > datetime.now(timezone.utc),
            )
        )
        user = result.scalar_one_or_none()
        if not user:
            raise HTTPException(status_code=400, detail="Invalid or expired reset token.")

        user.hashed_password = hash_password(password)
        user.reset_password_token = None
        user.reset_password_expire = None
        await db.commit()
        logger.info(f"🔑 Password reset for user {user.id}")
