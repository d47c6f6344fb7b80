import logging

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from marketplace.config import settings
from marketplace.crud.crud_provider import service_provider as provider_crud
from marketplace.crud.crud_user import user as user_crud
from marketplace.database import get_db
from marketplace.models.otp_verification import PURPOSE_PASSWORD_RESET, PURPOSE_REGISTRATION
from marketplace.models.service_provider import APPROVAL_APPROVED, APPROVAL_REJECTED, TOTAL_STEPS
from marketplace.models.user import STATUS_ACTIVE, USER_TYPE_PROVIDER
from marketplace.schemas.auth import (
    ForgotPasswordRequest,
    LoginRequest,
    ResetPasswordRequest,
    VerifyForgotPasswordOtp,
)
from marketplace.services import account_service
from marketplace.services.auth_middleware import AUDIENCE_PASSWORD_RESET, AuthContext, get_current_token
from marketplace.services.auth_service import get_password_hash, token_service, verify_password
from marketplace.services.onboarding_service import serialize_provider
from marketplace.services.rate_limit import limiter
from marketplace.utils.errors import ForbiddenError, NotFoundError, ValidationFailed
from marketplace.utils.response import create_response, handle_exception

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["Auth"])


def _provider_login_payload(db: Session, account, data: dict):
    """Attach the onboarding state a provider has to act on next."""
    provider = provider_crud.get_by_user_id(db, account.id)
    if provider is None:
        data.update(profile_required=True, current_step=0, total_steps=TOTAL_STEPS)
        return "Login successful. Please create your provider profile.", data

    step = provider.step_completed or 0
    if step < TOTAL_STEPS:
        data.update(setup_required=True, current_step=step, total_steps=TOTAL_STEPS)
        return "Please complete your profile setup first", data

    if provider.is_approved != APPROVAL_APPROVED:
        data.update(approval_required=True, is_approved=provider.is_approved)
        if provider.is_approved == APPROVAL_REJECTED:
            data["rejection_reason"] = provider.rejection_reason
            return "Your profile was rejected by the admin", data
        return "Wait for the admin to verify your profile", data

    data["service_provider"] = serialize_provider(provider, account)
    return "Login successful", data


@router.post("/login")
@limiter.limit(settings.LOGIN_RATE_LIMIT)
def login(request: Request, body: LoginRequest, db: Session = Depends(get_db)):
    try:
        account = user_crud.get_by_phone(db, body.phone_code, body.phone_number)
        if account is None or not verify_password(body.password, account.password):
            raise ValidationFailed("Invalid credentials", "INVALID_CREDENTIALS")

        if account.status != STATUS_ACTIVE:
            raise ForbiddenError("Your account is not active", "ACCOUNT_INACTIVE")

        if not account.is_verified:
            record = account_service.ensure_otp(db, account, PURPOSE_REGISTRATION)
            raise ForbiddenError(
                "Please verify your account first",
                "VERIFICATION_REQUIRED",
                user_id=account.id,
                user_type=account.user_type,
                otp_expires_at=record.expires_at,
            )

        token = account_service.issue_account_token(db, account)
        data = {
            "access_token": token,
            "token_type": "bearer",
            "user_type": account.user_type,
            "user": account_service.serialize_account(account),
        }
        message = "Login successfully"
        if account.user_type == USER_TYPE_PROVIDER:
            message, data = _provider_login_payload(db, account, data)

        logger.info("%s %s logged in", account.user_type, account.id)
        return create_response(message=message, data=data)
    except Exception as exc:
        return handle_exception(exc)


@router.post("/forgot-password")
@limiter.limit(settings.OTP_RATE_LIMIT)
def forgot_password(request: Request, body: ForgotPasswordRequest, db: Session = Depends(get_db)):
    try:
        account = user_crud.get_by_phone(db, body.phone_code, body.phone_number)
        if account is None:
            raise NotFoundError("User not found with the provided phone number")

        record = account_service.send_otp(db, account, PURPOSE_PASSWORD_RESET)
        return create_response(
            message="OTP sent successfully",
            data=account_service.otp_payload(account, record),
        )
    except Exception as exc:
        return handle_exception(exc)


@router.post("/verify-forgot-password-otp")
def verify_forgot_password_otp(body: VerifyForgotPasswordOtp, db: Session = Depends(get_db)):
    try:
        account = user_crud.get(db, body.user_id)
        if account is None:
            raise NotFoundError("User not found")

        result = account_service.verify_otp(db, account, body.otp, PURPOSE_PASSWORD_RESET)
        account_service.raise_for_otp(result)

        reset_token = token_service.issue(
            db,
            {"id": account.id, "userType": AUDIENCE_PASSWORD_RESET},
            expire_minutes=settings.PASSWORD_RESET_TOKEN_EXPIRE_MINUTES,
        )
        return create_response(
            message="OTP verified successfully",
            data={
                "user_id": account.id,
                "reset_token": reset_token,
                "expires_in_minutes": settings.PASSWORD_RESET_TOKEN_EXPIRE_MINUTES,
            },
        )
    except Exception as exc:
        return handle_exception(exc)


@router.post("/reset-password")
def reset_password(body: ResetPasswordRequest, db: Session = Depends(get_db)):
    try:
        claims = token_service.verify(db, body.reset_token)
        if claims is None or claims.get("userType") != AUDIENCE_PASSWORD_RESET:
            raise ValidationFailed("Invalid or expired reset token", "INVALID_RESET_TOKEN")

        account = user_crud.get(db, claims.get("id"))
        if account is None:
            raise NotFoundError("User not found")

        user_crud.update(db, account, {"password": get_password_hash(body.password)})
        token_service.revoke(db, body.reset_token)
        # Sessions opened with the old password end here.
        token_service.revoke_all(db, account.user_type, account.id)
        logger.info("Password reset for %s %s", account.user_type, account.id)
        return create_response(message="Password updated successfully")
    except Exception as exc:
        return handle_exception(exc)


@router.post("/logout")
@limiter.limit(settings.LOGOUT_RATE_LIMIT)
def logout(
    request: Request,
    context: AuthContext = Depends(get_current_token),
    db: Session = Depends(get_db),
):
    try:
        token_service.revoke(db, context.token)
        return create_response(message="Logged out successfully")
    except Exception as exc:
        return handle_exception(exc)
