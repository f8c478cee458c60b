# auth.py — Authentication & identity for Brand Tasks
# Features:
# - bcrypt password hashing
# - JWT access tokens and short-lived password-reset tokens
# - One-shot OTP for password reset with a fixed-window request limit
# - Two-tier RBAC (admin, user)

import os
import uuid
import secrets
import logging
from datetime import datetime, timedelta, timezone
from typing import Optional, Dict, Any, Callable

import bcrypt
from jose import jwt, JWTError, ExpiredSignatureError
from fastapi import Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from pydantic import BaseModel, EmailStr, Field
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from database import get_db_session
from errors import (
    ValidationError, Unauthorized, Forbidden, NotFound, Conflict, RateLimited,
    store_errors,
)
from models import User, AuditLog, AuditEventType, UserRole, as_utc, utcnow

logger = logging.getLogger("brand-tasks.auth")

# ============================================================
# CONFIGURATION
# ============================================================

SECRET_KEY = os.getenv("JWT_SECRET_KEY", "")
if not SECRET_KEY:
    SECRET_KEY = secrets.token_urlsafe(64)
    logger.warning(
        "JWT_SECRET_KEY not set. Generated ephemeral key; tokens will not "
        "survive a restart. Set JWT_SECRET_KEY in production!"
    )

ALGORITHM = "HS256"
ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", "1440"))
RESET_TOKEN_EXPIRE_MINUTES = int(os.getenv("RESET_TOKEN_EXPIRE_MINUTES", "10"))
OTP_TTL_SECONDS = int(os.getenv("OTP_TTL_SECONDS", "120"))
OTP_MAX_ATTEMPTS = int(os.getenv("OTP_MAX_ATTEMPTS", "3"))
OTP_WINDOW_MINUTES = int(os.getenv("OTP_WINDOW_MINUTES", "10"))
ENVIRONMENT = os.getenv("ENVIRONMENT", "development")

security = HTTPBearer(auto_error=False)


def normalize_email(email: Optional[str]) -> str:
    return (email or "").strip().lower()


# ============================================================
# PYDANTIC SCHEMAS
# ============================================================

class Identity(BaseModel):
    """The acting principal attached to every core operation"""
    id: str
    name: str = ""
    email: str
    role: str = UserRole.USER.value

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN.value


class UserRegister(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    email: EmailStr
    password: str = Field(..., min_length=6)


class UserLogin(BaseModel):
    email: EmailStr
    password: str


class ForgetPasswordRequest(BaseModel):
    email: EmailStr


class VerifyOtpRequest(BaseModel):
    email: EmailStr
    otp: int


class ChangePasswordRequest(BaseModel):
    reset_token: str
    new_password: str = Field(..., min_length=6)


class TokenResponse(BaseModel):
    token: str
    token_type: str = "bearer"
    expires_in: int
    user: Dict[str, Any]


def public_user(user: User) -> Dict[str, Any]:
    """User fields safe to return to callers (no hash, no OTP state)"""
    return {
        "id": user.id,
        "name": user.name or "",
        "email": user.email,
        "role": user.role.value if isinstance(user.role, UserRole) else user.role,
        "created_at": user.created_at.isoformat() if user.created_at else None,
    }


def identity_of(user: User) -> Identity:
    return Identity(
        id=user.id,
        name=user.name or "",
        email=user.email,
        role=user.role.value if isinstance(user.role, UserRole) else user.role,
    )


# ============================================================
# OTP DELIVERY
# ============================================================

def log_otp_sender(email: str, otp: int, name: str) -> bool:
    """Default sender: no mail transport configured, so nothing is delivered."""
    logger.info("OTP issued for %s; no mail transport configured", email)
    return False


# Replaced at startup (or in tests) with a real transport
otp_sender: Callable[[str, int, str], bool] = log_otp_sender


# ============================================================
# AUTH SERVICE
# ============================================================

class AuthService:
    """Identity store operations"""

    @staticmethod
    def hash_password(password: str) -> str:
        salt = bcrypt.gensalt(rounds=12)
        return bcrypt.hashpw(password.encode("utf-8"), salt).decode("utf-8")

    @staticmethod
    def verify_password(password: str, password_hash: str) -> bool:
        try:
            return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
        except ValueError:
            return False

    @staticmethod
    def _create_token(data: Dict[str, Any], token_type: str, expires_delta: timedelta) -> str:
        to_encode = data.copy()
        now = datetime.now(timezone.utc)
        to_encode.update({
            "exp": now + expires_delta,
            "iat": now,
            "type": token_type,
            "jti": str(uuid.uuid4()),
        })
        return jwt.encode(to_encode, SECRET_KEY, algorithm=ALGORITHM)

    @staticmethod
    def create_access_token(user: User) -> str:
        data = {
            "sub": user.id,
            "email": user.email,
            "name": user.name or "",
            "role": user.role.value if isinstance(user.role, UserRole) else user.role,
        }
        return AuthService._create_token(data, "access", timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES))

    @staticmethod
    def create_reset_token(user: User) -> str:
        return AuthService._create_token(
            {"sub": user.id, "email": user.email}, "reset",
            timedelta(minutes=RESET_TOKEN_EXPIRE_MINUTES),
        )

    @staticmethod
    def verify_token(token: str, expected_type: str = "access") -> Dict[str, Any]:
        try:
            payload = jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
        except ExpiredSignatureError:
            raise Unauthorized("Token expired")
        except JWTError:
            raise Unauthorized("Invalid token")
        if payload.get("type") != expected_type:
            raise Unauthorized("Invalid token type")
        return payload

    @staticmethod
    def token_response(user: User) -> TokenResponse:
        return TokenResponse(
            token=AuthService.create_access_token(user),
            expires_in=ACCESS_TOKEN_EXPIRE_MINUTES * 60,
            user=public_user(user),
        )

    @staticmethod
    async def get_user_by_email(email: str, db: AsyncSession) -> Optional[User]:
        stmt = select(User).where(User.email == normalize_email(email))
        result = await db.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    def _audit(db: AsyncSession, event_type: AuditEventType, user_id: Optional[str], **details) -> None:
        db.add(AuditLog(
            event_type=event_type,
            user_id=user_id,
            resource_type="user",
            resource_id=user_id,
            details=details or None,
            request_id=str(uuid.uuid4()),
        ))

    @staticmethod
    async def register_user(data: UserRegister, db: AsyncSession) -> User:
        email = normalize_email(data.email)
        async with store_errors(db, "register user"):
            if await AuthService.get_user_by_email(email, db):
                raise Conflict("User already exists")

            user = User(
                name=data.name.strip(),
                email=email,
                password_hash=AuthService.hash_password(data.password),
                role=UserRole.USER,
            )
            db.add(user)
            await db.flush()
            AuthService._audit(db, AuditEventType.USER_REGISTER, user.id)
            await db.commit()
            await db.refresh(user)

        logger.info("Registered user %s", user.id)
        return user

    @staticmethod
    async def authenticate_user(email: str, password: str, db: AsyncSession) -> User:
        async with store_errors(db, "authenticate"):
            user = await AuthService.get_user_by_email(email, db)
            if not user or not AuthService.verify_password(password, user.password_hash):
                logger.info("Failed login for %s", normalize_email(email))
                raise Unauthorized("Invalid email or password")

            AuthService._audit(db, AuditEventType.USER_LOGIN, user.id)
            await db.commit()
        return user

    @staticmethod
    async def forget_password(email: str, db: AsyncSession) -> Dict[str, Any]:
        """Issue a fresh OTP. Concurrent requests overwrite each other (last write wins)."""
        async with store_errors(db, "issue OTP"):
            user = await AuthService.get_user_by_email(email, db)
            if not user:
                raise NotFound("Email not found")

            now = utcnow()
            window_expiry = as_utc(user.otp_attempts_expiry)
            if window_expiry is None or window_expiry <= now:
                user.otp_attempts = 0
                user.otp_attempts_expiry = now + timedelta(minutes=OTP_WINDOW_MINUTES)
            if (user.otp_attempts or 0) >= OTP_MAX_ATTEMPTS:
                raise RateLimited(
                    f"Too many OTP requests. Try again in {OTP_WINDOW_MINUTES} minutes."
                )

            otp = secrets.randbelow(900000) + 100000
            user.otp_attempts = (user.otp_attempts or 0) + 1
            user.reset_otp = otp
            user.otp_expiry = now + timedelta(seconds=OTP_TTL_SECONDS)
            AuthService._audit(db, AuditEventType.OTP_ISSUED, user.id)
            await db.commit()

        delivered = otp_sender(user.email, otp, user.name or "")
        response: Dict[str, Any] = {
            "email": user.email,
            "delivered": delivered,
            "expires_at": user.otp_expiry.isoformat(),
        }
        if not delivered and ENVIRONMENT != "production":
            response["otp"] = otp
        return response

    @staticmethod
    async def verify_otp(email: str, otp: int, db: AsyncSession) -> str:
        """Consume the OTP and hand back a reset token for change_password"""
        async with store_errors(db, "verify OTP"):
            user = await AuthService.get_user_by_email(email, db)
            if not user:
                raise NotFound("User not found")
            if user.reset_otp is None:
                raise ValidationError("No OTP requested")
            if as_utc(user.otp_expiry) < utcnow():
                raise ValidationError("OTP expired")
            if user.reset_otp != otp:
                raise ValidationError("Invalid OTP")

            user.reset_otp = None
            user.otp_expiry = None
            AuthService._audit(db, AuditEventType.OTP_VERIFIED, user.id)
            await db.commit()
        return AuthService.create_reset_token(user)

    @staticmethod
    async def change_password(reset_token: str, new_password: str, db: AsyncSession) -> None:
        payload = AuthService.verify_token(reset_token, expected_type="reset")
        async with store_errors(db, "change password"):
            user = await db.get(User, payload.get("sub"))
            if not user:
                raise NotFound("User not found")
            user.password_hash = AuthService.hash_password(new_password)
            AuthService._audit(db, AuditEventType.PASSWORD_CHANGED, user.id)
            await db.commit()
        logger.info("Password changed for user %s", user.id)


# ============================================================
# FASTAPI DEPENDENCIES
# ============================================================

async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    db: AsyncSession = Depends(get_db_session),
) -> Identity:
    if credentials is None or credentials.scheme.lower() != "bearer":
        raise Unauthorized("No token provided")

    payload = AuthService.verify_token(credentials.credentials)
    user_id = payload.get("sub")
    if not user_id:
        raise Unauthorized("Invalid token")

    user = await db.get(User, user_id)
    if not user:
        raise Unauthorized("User not found")

    return identity_of(user)


async def require_admin(user: Identity = Depends(get_current_user)) -> Identity:
    if not user.is_admin:
        raise Forbidden("Access denied. Admin only.")
    return user
