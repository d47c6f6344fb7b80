import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy.orm import Session

from marketplace.config import settings
from marketplace.crud.crud_provider import service_provider as provider_crud
from marketplace.crud.crud_user import user as user_crud
from marketplace.database import get_db
from marketplace.models.otp_verification import PURPOSE_REGISTRATION
from marketplace.models.user import USER_TYPE_USER
from marketplace.schemas.user import (
    ChangePassword,
    DeleteAccount,
    ResendUserOtp,
    UserProfileUpdate,
    UserRegister,
    VerifyUserOtp,
)
from marketplace.services import account_service
from marketplace.services.auth_middleware import UserContext, get_current_user
from marketplace.services.auth_service import get_password_hash, token_service, verify_password
from marketplace.services.onboarding_service import serialize_provider
from marketplace.services.rate_limit import limiter
from marketplace.utils.errors import ConflictError, NotFoundError, ValidationFailed
from marketplace.utils.response import create_response, handle_exception

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/users", tags=["Users"])


def _get_customer(db: Session, user_id: int):
    account = user_crud.get(db, user_id)
    if account is None or account.user_type != USER_TYPE_USER:
        raise NotFoundError("User not found")
    return account


@router.post("/register")
def register_user(body: UserRegister, db: Session = Depends(get_db)):
    try:
        account = account_service.register_account(db, body, USER_TYPE_USER)
        record = account_service.send_otp(db, account, PURPOSE_REGISTRATION)

        data = account_service.serialize_account(account)
        data["otp_expires_at"] = record.expires_at
        return create_response(
            message="Account created successfully! Please verify your phone number with the OTP sent to your registered mobile number.",
            data=data,
            status_code=status.HTTP_201_CREATED,
        )
    except Exception as exc:
        return handle_exception(exc)


@router.post("/verify-verification-otp")
def verify_registration_otp(body: VerifyUserOtp, db: Session = Depends(get_db)):
    try:
        account = _get_customer(db, body.user_id)
        if account.is_verified:
            raise ConflictError("Account is already verified", "ALREADY_VERIFIED")

        result = account_service.verify_otp(db, account, body.otp, PURPOSE_REGISTRATION)
        account_service.raise_for_otp(result)

        account = user_crud.mark_verified(db, account)
        token = account_service.issue_account_token(db, account)
        return create_response(
            message="Account verified successfully",
            data={
                "access_token": token,
                "token_type": "bearer",
                "user": account_service.serialize_account(account),
            },
        )
    except Exception as exc:
        return handle_exception(exc)


@router.patch("/resend-otp")
@limiter.limit(settings.OTP_RATE_LIMIT)
def resend_registration_otp(request: Request, body: ResendUserOtp, db: Session = Depends(get_db)):
    try:
        account = _get_customer(db, body.user_id)
        if account.is_verified:
            raise ConflictError("Account is already verified", "ALREADY_VERIFIED")

        record = account_service.send_otp(db, account, PURPOSE_REGISTRATION)
        return create_response(
            message="OTP has been resent to your registered phone number",
            data=account_service.otp_payload(account, record),
        )
    except Exception as exc:
        return handle_exception(exc)


@router.get("/profile")
def get_profile(context: UserContext = Depends(get_current_user)):
    try:
        return create_response(
            message="User profile data retrieved successfully",
            data=account_service.serialize_account(context.user),
        )
    except Exception as exc:
        return handle_exception(exc)


@router.put("/profile")
def update_profile(
    body: UserProfileUpdate,
    context: UserContext = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    try:
        account = context.user
        changes = body.model_dump(exclude_unset=True, exclude_none=True)
        if not changes:
            raise ValidationFailed("No profile fields were provided")

        account_service.ensure_email_available(db, changes.get("email"), exclude_user_id=account.id)
        if "city_id" in changes or "country_id" in changes:
            account_service.ensure_location(
                db,
                changes.get("country_id", account.country_id),
                changes.get("city_id", account.city_id),
            )

        if "first_name" in changes or "last_name" in changes:
            first_name = changes.get("first_name", account.first_name)
            last_name = changes.get("last_name", account.last_name) or ""
            changes["full_name"] = f"{first_name} {last_name}".strip()

        account = user_crud.update(db, account, changes)
        return create_response(
            message="User updated successfully",
            data=account_service.serialize_account(account),
        )
    except Exception as exc:
        return handle_exception(exc)


@router.post("/change-password")
def change_password(
    body: ChangePassword,
    context: UserContext = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    try:
        account = context.user
        if not verify_password(body.old_password, account.password):
            raise ValidationFailed("Old password is incorrect", "INVALID_PASSWORD")

        user_crud.update(db, account, {"password": get_password_hash(body.new_password)})
        return create_response(message="Password changed successfully")
    except Exception as exc:
        return handle_exception(exc)


@router.post("/delete-my-account")
def delete_my_account(
    body: DeleteAccount,
    context: UserContext = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    try:
        account = context.user
        if not verify_password(body.password, account.password):
            raise ValidationFailed("You have entered wrong password.", "INVALID_PASSWORD")

        token_service.revoke_all(db, account.user_type, account.id)
        user_crud.soft_delete(db, account)
        logger.info("User %s deleted their account", account.id)
        return create_response(message="Account deleted successfully.")
    except Exception as exc:
        return handle_exception(exc)


@router.get("/providers")
def list_providers(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    city_id: Optional[int] = Query(None, ge=1),
    provider_type: Optional[str] = Query(None, pattern="^(individual|salon)$"),
    search: Optional[str] = Query(None, max_length=100),
    context: UserContext = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    try:
        result = provider_crud.list_directory(
            db,
            page,
            limit,
            city_id=city_id,
            provider_type=provider_type,
            search=search,
        )
        return create_response(
            message="Providers fetched successfully",
            data=result.payload(lambda provider: serialize_provider(provider, provider.user), key="providers"),
        )
    except Exception as exc:
        return handle_exception(exc)
