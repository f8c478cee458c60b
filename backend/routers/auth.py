# routers/auth.py — Registration, login and OTP password reset
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from auth import (
    AuthService, UserRegister, UserLogin, ForgetPasswordRequest, VerifyOtpRequest,
    ChangePasswordRequest, Identity, get_current_user,
)
from database import get_db_session
from routers import envelope

router = APIRouter(prefix="/api/v1/auth", tags=["Authentication"])


@router.post("/register", status_code=201)
async def register(
    user_data: UserRegister,
    db: AsyncSession = Depends(get_db_session),
):
    """Register a new user account"""
    user = await AuthService.register_user(user_data, db)
    return envelope(AuthService.token_response(user).model_dump(), "User registered successfully")


@router.post("/login")
async def login(
    credentials: UserLogin,
    db: AsyncSession = Depends(get_db_session),
):
    """Authenticate and receive an access token"""
    user = await AuthService.authenticate_user(credentials.email, credentials.password, db)
    return envelope(AuthService.token_response(user).model_dump(), "Login successful")


@router.post("/forget-password")
async def forget_password(
    data: ForgetPasswordRequest,
    db: AsyncSession = Depends(get_db_session),
):
    result = await AuthService.forget_password(data.email, db)
    return envelope(result, "OTP sent to your email")


@router.post("/verify-otp")
async def verify_otp(
    data: VerifyOtpRequest,
    db: AsyncSession = Depends(get_db_session),
):
    reset_token = await AuthService.verify_otp(data.email, data.otp, db)
    return envelope({"reset_token": reset_token}, "OTP verified successfully")


@router.post("/change-password")
async def change_password(
    data: ChangePasswordRequest,
    db: AsyncSession = Depends(get_db_session),
):
    """Set a new password using the reset token from /verify-otp"""
    await AuthService.change_password(data.reset_token, data.new_password, db)
    return envelope(None, "Password updated successfully")


@router.get("/me")
async def get_current_user_info(user: Identity = Depends(get_current_user)):
    """Get current authenticated user information"""
    return envelope(user.model_dump(), "Current user")
