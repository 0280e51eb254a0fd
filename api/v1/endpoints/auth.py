# app/api/v1/endpoints/auth.py
from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from core.capabilities import Capability, add_unimplemented_route
from core.config import settings
from core.database import get_db
from core.permissions import get_current_user
from core.rate_limiter import rate_limit
from models.user import User
from schemas.user import (
    ChangePasswordRequest, DeleteAccountRequest, ForgotPasswordRequest, RefreshRequest,
    ResetPasswordRequest, TokenResponse, UserCreate, UserLogin, UserUpdate, VerifyEmailRequest
)
from services.auth_service import AuthService

router = APIRouter()


@router.post("/register", status_code=201, dependencies=[Depends(rate_limit("auth"))])
async def register(data: UserCreate, request: Request, db: AsyncSession = Depends(get_db)):
    return await AuthService(db, request).register_user(data)


@router.post("/login", dependencies=[Depends(rate_limit("auth"))])
async def login(data: UserLogin, request: Request, db: AsyncSession = Depends(get_db)):
    return await AuthService(db, request).authenticate_user(data.email, data.password)


@router.post("/refresh", response_model=TokenResponse, dependencies=[Depends(rate_limit("auth"))])
async def refresh(data: RefreshRequest, db: AsyncSession = Depends(get_db)):
    return await AuthService(db).refresh_token(data.refresh_token)


@router.post("/logout")
async def logout(request: Request, user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)):
    return await AuthService(db, request).logout(user)


@router.get("/me")
async def me(user: User = Depends(get_current_user)):
    return {"user": AuthService.profile(user)}


@router.get("/check")
async def check(user: User = Depends(get_current_user)):
    return {"valid": True, "user": {"id": user.id, "email": user.email, "role": user.role.value}}


@router.put("/me")
@router.put("/profile")
async def update_profile(
        data: UserUpdate,
        request: Request,
        user: User = Depends(get_current_user),
        db: AsyncSession = Depends(get_db),
):
    return await AuthService(db, request).update_profile(user, data)


@router.put("/change-password")
async def change_password(
        data: ChangePasswordRequest,
        request: Request,
        user: User = Depends(get_current_user),
        db: AsyncSession = Depends(get_db),
):
    return await AuthService(db, request).change_password(user, data.current_password, data.new_password)


@router.post("/forgot-password", dependencies=[Depends(rate_limit("password_reset"))])
async def forgot_password(data: ForgotPasswordRequest, db: AsyncSession = Depends(get_db)):
    response, token = await AuthService(db).forgot_password(data.email)
    if settings.DEBUG and token:
        response["reset_token"] = token
    return response


@router.post("/reset-password", dependencies=[Depends(rate_limit("password_reset"))])
async def reset_password(data: ResetPasswordRequest, request: Request, db: AsyncSession = Depends(get_db)):
    return await AuthService(db, request).reset_password(data.token, data.password)


@router.post("/verify-email", dependencies=[Depends(rate_limit("auth"))])
async def verify_email(data: VerifyEmailRequest, request: Request, db: AsyncSession = Depends(get_db)):
    return await AuthService(db, request).verify_email(data.token)


@router.post("/resend-verification", dependencies=[Depends(rate_limit("password_reset"))])
async def resend_verification(user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)):
    response, token = await AuthService(db).resend_verification(user)
    if settings.DEBUG:
        response["verification_token"] = token
    return response


@router.delete("/me")
@router.delete("/account")
async def delete_account(
        request: Request,
        data: DeleteAccountRequest = DeleteAccountRequest(),
        user: User = Depends(get_current_user),
        db: AsyncSession = Depends(get_db),
):
    return await AuthService(db, request).delete_account(user, data.password)


# ========== social sign-in ==========
add_unimplemented_route(router, "POST", "/google", Capability.GOOGLE_OAUTH)
add_unimplemented_route(router, "POST", "/facebook", Capability.FACEBOOK_OAUTH)
