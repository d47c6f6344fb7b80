import logging
from typing import Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from marketplace.crud.crud_catalog import city as city_crud
from marketplace.crud.crud_user import user as user_crud
from marketplace.models.otp_verification import OtpVerification
from marketplace.models.user import STATUS_ACTIVE, User
from marketplace.schemas.user import RegisterBase
from marketplace.services import sms_service
from marketplace.services.auth_service import create_access_token, get_password_hash
from marketplace.services.otp_service import (
    MESSAGE_INVALID,
    MESSAGE_NOT_FOUND,
    MESSAGE_TOO_MANY_ATTEMPTS,
    OtpVerificationResult,
    otp_engine,
)
from marketplace.utils.errors import ConflictError, ValidationFailed

logger = logging.getLogger(__name__)


def ensure_phone_available(db: Session, phone_code: str, phone_number: str) -> None:
    existing = user_crud.get_by_phone(db, phone_code, phone_number)
    if existing is None:
        return
    if existing.is_verified:
        raise ConflictError(
            "Phone number already exists and is verified. Please use the login endpoint.",
            "PHONE_EXISTS_VERIFIED",
        )
    raise ConflictError(
        "Phone number already exists but not verified. Please complete verification or use resend OTP.",
        "PHONE_EXISTS_UNVERIFIED",
        user_id=existing.id,
    )


def ensure_email_available(db: Session, email: Optional[str], exclude_user_id: Optional[int] = None) -> None:
    if not email:
        return
    existing = user_crud.get_by_email(db, email)
    if existing is not None and existing.id != exclude_user_id:
        raise ConflictError("Email already exists", "EMAIL_EXISTS")


def ensure_location(db: Session, country_id: Optional[int], city_id: Optional[int]) -> None:
    if city_id is None:
        return
    if country_id is None:
        raise ValidationFailed("country_id is required when city_id is given")
    if city_crud.get_in_country(db, city_id, country_id) is None:
        raise ValidationFailed("Selected city does not belong to the selected country")


def register_account(db: Session, body: RegisterBase, user_type: str) -> User:
    ensure_phone_available(db, body.phone_code, body.phone_number)
    ensure_email_available(db, body.email)
    ensure_location(db, body.country_id, body.city_id)

    account = User(
        first_name=body.first_name.strip(),
        last_name=body.last_name.strip(),
        full_name=f"{body.first_name.strip()} {body.last_name.strip()}",
        email=body.email,
        user_type=user_type,
        phone_code=body.phone_code,
        phone_number=body.phone_number,
        password=get_password_hash(body.password),
        gender=body.gender,
        terms_and_condition=body.terms_and_condition,
        country_id=body.country_id,
        city_id=body.city_id,
        is_verified=0,
        status=STATUS_ACTIVE,
    )
    db.add(account)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise ConflictError("Phone number or email already exists", "ACCOUNT_EXISTS")
    db.refresh(account)
    logger.info("Registered %s account %s", user_type, account.id)
    return account


def send_otp(db: Session, account: User, purpose: str) -> OtpVerification:
    """Issue a fresh OTP for the account and hand it to the SMS channel."""
    record = otp_engine.create_for_entity(
        db,
        account.user_type,
        account.id,
        account.full_phone_number,
        purpose,
    )
    sms_service.send_otp(account.full_phone_number, record.otp_code, purpose)
    return record


def ensure_otp(db: Session, account: User, purpose: str) -> OtpVerification:
    """Return the live OTP of the scope, sending a new one only when none is left.

    Keeps the attempt counter of a live code intact across repeated requests.
    """
    record = otp_engine.find_valid_for_entity(db, account.user_type, account.id, purpose)
    if record is not None:
        return record
    return send_otp(db, account, purpose)


def verify_otp(db: Session, account: User, code: str, purpose: str) -> OtpVerificationResult:
    return otp_engine.verify_for_entity(db, account.user_type, account.id, code, purpose)


def issue_account_token(db: Session, account: User) -> str:
    return create_access_token(
        db,
        {
            "id": account.id,
            "userType": account.user_type,
            "phone_code": account.phone_code,
            "phone_number": account.phone_number,
        },
    )


def serialize_account(account: User) -> dict:
    return {
        "id": account.id,
        "first_name": account.first_name,
        "last_name": account.last_name,
        "full_name": account.full_name,
        "user_type": account.user_type,
        "email": account.email,
        "phone_code": account.phone_code,
        "phone_number": account.phone_number,
        "gender": account.gender,
        "country_id": account.country_id,
        "city_id": account.city_id,
        "is_verified": account.is_verified,
        "verified_at": account.verified_at,
        "status": account.status,
    }


def otp_payload(account: User, record: OtpVerification) -> dict:
    return {
        "user_id": account.id,
        "phone_code": account.phone_code,
        "phone_number": account.phone_number,
        "otp_expires_at": record.expires_at,
    }


OTP_ERROR_CODES = {
    MESSAGE_NOT_FOUND: "OTP_EXPIRED",
    MESSAGE_TOO_MANY_ATTEMPTS: "OTP_ATTEMPTS_EXCEEDED",
    MESSAGE_INVALID: "OTP_INVALID",
}


def raise_for_otp(result: OtpVerificationResult) -> None:
    if not result.success:
        raise ValidationFailed(result.message, OTP_ERROR_CODES.get(result.message, "OTP_INVALID"))
