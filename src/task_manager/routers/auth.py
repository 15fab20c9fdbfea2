from __future__ import annotations

from fastapi import APIRouter, Depends, status

from ..accounts import AccountService
from ..notifications import Notifier, get_notifier
from ..repositories import UserRepository, get_user_repository
from ..schemas import (
    ForgotPasswordRequest,
    LoginRequest,
    MessageOut,
    RegisterRequest,
    ResetPasswordRequest,
    TokenOut,
)

router = APIRouter(
    prefix="/api/auth",
    tags=["auth"],
)

_RESET_SENT = "If that email is registered, a password reset link has been sent."


def get_account_service(
    users: UserRepository = Depends(get_user_repository),
    notifier: Notifier = Depends(get_notifier),
) -> AccountService:
    return AccountService(users, notifier)


# PUBLIC_INTERFACE
@router.post(
    "/register",
    response_model=TokenOut,
    status_code=status.HTTP_201_CREATED,
    summary="Register",
    responses={409: {"description": "User already exists"}},
)
def register(payload: RegisterRequest, accounts: AccountService = Depends(get_account_service)) -> TokenOut:
    user, token = accounts.register(payload.email, payload.password)
    return TokenOut(token=token, user_id=user["id"])


# PUBLIC_INTERFACE
@router.post(
    "/login",
    response_model=TokenOut,
    summary="Login",
    responses={401: {"description": "Invalid credentials"}},
)
def login(payload: LoginRequest, accounts: AccountService = Depends(get_account_service)) -> TokenOut:
    user, token = accounts.login(payload.email, payload.password)
    return TokenOut(token=token, user_id=user["id"])


# PUBLIC_INTERFACE
@router.post(
    "/forgot-password",
    response_model=MessageOut,
    summary="Request Password Reset",
    description="Email a reset link. The response is the same whether or not the email is registered.",
)
def forgot_password(
    payload: ForgotPasswordRequest,
    accounts: AccountService = Depends(get_account_service),
) -> MessageOut:
    accounts.request_password_reset(payload.email)
    return MessageOut(message=_RESET_SENT)


# PUBLIC_INTERFACE
@router.post(
    "/reset-password",
    response_model=MessageOut,
    summary="Reset Password",
    responses={422: {"description": "Invalid or expired reset token"}},
)
def reset_password(
    payload: ResetPasswordRequest,
    accounts: AccountService = Depends(get_account_service),
) -> MessageOut:
    accounts.reset_password(payload.email, payload.token, payload.new_password)
    return MessageOut(message="Password has been reset. You can now log in.")
