import json
import logging
from typing import List, Optional

from fastapi import APIRouter, BackgroundTasks, Depends, File, Form, Query, Request, UploadFile
from pydantic import ValidationError
from sqlalchemy.orm import Session

from marketplace.config import settings
from marketplace.crud.crud_provider import service_provider as provider_crud
from marketplace.crud.crud_user import user as user_crud
from marketplace.database import get_db
from marketplace.models.otp_verification import PURPOSE_REGISTRATION
from marketplace.models.service_provider import APPROVAL_APPROVED, APPROVAL_REJECTED
from marketplace.models.user import STATUS_INACTIVE, USER_TYPE_PROVIDER
from marketplace.schemas.provider import (
    ProfileActionRequest,
    ProviderRegister,
    ProviderTypeRequest,
    ResendProviderOtp,
    ServicesSetupPayload,
    SubscriptionPaymentRequest,
    ToggleAvailabilityRequest,
    VerifyProviderOtp,
    WorkingHoursRequest,
)
from marketplace.schemas.user import ChangePassword, DeleteAccount
from marketplace.services import account_service, onboarding_service, spaces_service
from marketplace.services.auth_middleware import (
    AdminContext,
    ProviderContext,
    get_current_admin,
    get_current_onboarding_provider,
    get_current_provider,
    require_step,
)
from marketplace.services.auth_service import get_password_hash, token_service, verify_password
from marketplace.services.rate_limit import limiter
from marketplace.utils.errors import ConflictError, NotFoundError, ValidationFailed, describe_validation_errors
from marketplace.utils.response import create_response, handle_exception

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/provider", tags=["Provider"])


def _step_response(message: str, outcome: onboarding_service.StepOutcome, background_tasks: BackgroundTasks):
    if outcome.stale_urls:
        background_tasks.add_task(spaces_service.cleanup_images, outcome.stale_urls)
    return create_response(message=message, data=outcome.data)


def _require_profile(context: ProviderContext):
    if context.provider is None:
        raise NotFoundError("Provider profile not found")
    return context.provider


def _parse_services(raw: str) -> ServicesSetupPayload:
    try:
        services = json.loads(raw)
    except json.JSONDecodeError:
        raise ValidationFailed("services must be a JSON array")
    try:
        return ServicesSetupPayload.model_validate({"services": services})
    except ValidationError as exc:
        raise ValidationFailed.from_errors(describe_validation_errors(exc.errors()))


# Registration

@router.post("/register")
def register_provider(body: ProviderRegister, db: Session = Depends(get_db)):
    try:
        account = account_service.register_account(db, body, USER_TYPE_PROVIDER)
        record = account_service.send_otp(db, account, PURPOSE_REGISTRATION)

        data = account_service.serialize_account(account)
        data["otp_expires_at"] = record.expires_at
        return create_response(
            message="Provider account created successfully. Please verify your phone number with the OTP sent to your registered mobile number.",
            data=data,
            status_code=201,
        )
    except Exception as exc:
        return handle_exception(exc)


def _get_provider_account(db: Session, phone_code: str, phone_number: str):
    account = user_crud.get_by_phone(db, phone_code, phone_number, user_type=USER_TYPE_PROVIDER)
    if account is None:
        raise NotFoundError("Provider user account not found")
    return account


@router.post("/verify-verification-otp")
def verify_registration_otp(body: VerifyProviderOtp, db: Session = Depends(get_db)):
    try:
        account = _get_provider_account(db, body.phone_code, body.phone_number)
        if account.is_verified:
            raise ConflictError("Account is already verified", "ALREADY_VERIFIED")

        result = account_service.verify_otp(db, account, body.otp, PURPOSE_REGISTRATION)
        account_service.raise_for_otp(result)

        account = user_crud.mark_verified(db, account)
        token = account_service.issue_account_token(db, account)
        return create_response(
            message="Account verification successful. You can now create your provider profile.",
            data={
                "access_token": token,
                "token_type": "bearer",
                "user": account_service.serialize_account(account),
            },
        )
    except Exception as exc:
        return handle_exception(exc)


@router.post("/resend-otp")
@limiter.limit(settings.OTP_RATE_LIMIT)
def resend_registration_otp(request: Request, body: ResendProviderOtp, db: Session = Depends(get_db)):
    try:
        account = _get_provider_account(db, body.phone_code, body.phone_number)
        if account.is_verified:
            raise ConflictError("Account is already verified", "ALREADY_VERIFIED")

        record = account_service.send_otp(db, account, PURPOSE_REGISTRATION)
        return create_response(
            message="OTP has been resent to your registered phone number",
            data=account_service.otp_payload(account, record),
        )
    except Exception as exc:
        return handle_exception(exc)


# Onboarding steps

@router.post("/step1-subscription-payment")
def step1_subscription_payment(
    background_tasks: BackgroundTasks,
    body: Optional[SubscriptionPaymentRequest] = None,
    context: ProviderContext = Depends(require_step(1)),
    db: Session = Depends(get_db),
):
    try:
        outcome = onboarding_service.subscription_payment(
            db, context.user, body.payment_reference if body else None
        )
        return _step_response("Subscription updated successfully", outcome, background_tasks)
    except Exception as exc:
        return handle_exception(exc)


@router.post("/step2-provider-type")
def step2_provider_type(
    body: ProviderTypeRequest,
    background_tasks: BackgroundTasks,
    context: ProviderContext = Depends(require_step(2)),
    db: Session = Depends(get_db),
):
    try:
        outcome = onboarding_service.set_provider_type(db, context.user, body.provider_type)
        return _step_response("Provider type saved successfully", outcome, background_tasks)
    except Exception as exc:
        return handle_exception(exc)


@router.post("/step3-salon-details")
def step3_salon_details(
    background_tasks: BackgroundTasks,
    country_id: int = Form(...),
    city_id: int = Form(...),
    address: str = Form(...),
    salon_name: Optional[str] = Form(None),
    description: Optional[str] = Form(None),
    latitude: Optional[float] = Form(None),
    longitude: Optional[float] = Form(None),
    banner_image_id: Optional[int] = Form(None),
    banner_image: Optional[UploadFile] = File(None),
    context: ProviderContext = Depends(require_step(3)),
    db: Session = Depends(get_db),
):
    try:
        outcome = onboarding_service.save_salon_details(
            db,
            context.user,
            context.provider,
            country_id=country_id,
            city_id=city_id,
            address=address,
            salon_name=salon_name,
            description=description,
            latitude=latitude,
            longitude=longitude,
            banner_image_id=banner_image_id,
            banner_upload=banner_image,
        )
        return _step_response("Salon details saved successfully", outcome, background_tasks)
    except Exception as exc:
        return handle_exception(exc)


@router.post("/step4-documents-bank")
def step4_documents_bank(
    background_tasks: BackgroundTasks,
    account_holder_name: str = Form(...),
    bank_name: str = Form(...),
    iban: str = Form(...),
    national_id: Optional[UploadFile] = File(None),
    commercial_registration: Optional[UploadFile] = File(None),
    freelance_certificate: Optional[UploadFile] = File(None),
    context: ProviderContext = Depends(require_step(4)),
    db: Session = Depends(get_db),
):
    try:
        outcome = onboarding_service.save_documents_and_bank(
            db,
            context.user,
            context.provider,
            account_holder_name=account_holder_name,
            bank_name=bank_name,
            iban=iban,
            national_id=national_id,
            commercial_registration=commercial_registration,
            freelance_certificate=freelance_certificate,
        )
        return _step_response("Documents uploaded successfully", outcome, background_tasks)
    except Exception as exc:
        return handle_exception(exc)


@router.post("/step5-working-hours")
def step5_working_hours(
    body: WorkingHoursRequest,
    background_tasks: BackgroundTasks,
    context: ProviderContext = Depends(require_step(5)),
    db: Session = Depends(get_db),
):
    try:
        outcome = onboarding_service.save_working_hours(db, context.provider, body.availability)
        return _step_response("Working hours saved successfully", outcome, background_tasks)
    except Exception as exc:
        return handle_exception(exc)


@router.post("/step6-setup-services")
def step6_setup_services(
    background_tasks: BackgroundTasks,
    services: str = Form(...),
    service_images: Optional[List[UploadFile]] = File(None),
    context: ProviderContext = Depends(require_step(6)),
    db: Session = Depends(get_db),
):
    try:
        payload = _parse_services(services)
        outcome = onboarding_service.setup_services(
            db,
            context.user,
            context.provider,
            payload.services,
            service_images or [],
        )
        return _step_response("Services setup successfully", outcome, background_tasks)
    except Exception as exc:
        return handle_exception(exc)


# Onboarding read side

@router.get("/onboarding-progress")
def onboarding_progress(context: ProviderContext = Depends(get_current_onboarding_provider)):
    try:
        return create_response(
            message="Onboarding progress retrieved successfully",
            data=onboarding_service.progress_payload(context.provider),
        )
    except Exception as exc:
        return handle_exception(exc)


@router.get("/onboarding-complete")
def onboarding_complete(context: ProviderContext = Depends(get_current_onboarding_provider)):
    try:
        return create_response(
            message="Onboarding status retrieved successfully",
            data=onboarding_service.completion_payload(context.provider),
        )
    except Exception as exc:
        return handle_exception(exc)


@router.get("/onboarding-data")
def onboarding_data(
    context: ProviderContext = Depends(get_current_onboarding_provider),
    db: Session = Depends(get_db),
):
    try:
        return create_response(
            message="Onboarding data retrieved successfully",
            data=onboarding_service.onboarding_data(db, context.user, context.provider),
        )
    except Exception as exc:
        return handle_exception(exc)


# Account

@router.get("/profile")
def get_profile(
    context: ProviderContext = Depends(get_current_provider),
    db: Session = Depends(get_db),
):
    try:
        provider = _require_profile(context)
        data = onboarding_service.serialize_provider(provider, context.user)
        data["address"] = onboarding_service.serialize_address(provider_crud.get_address(db, context.user.id))
        data["availability"] = [
            onboarding_service.serialize_availability(row) for row in provider_crud.get_availability(db, provider.id)
        ]
        data["services"] = [
            onboarding_service.serialize_service(row) for row in provider_crud.get_services(db, provider.id)
        ]
        return create_response(message="Provider profile retrieved successfully", data=data)
    except Exception as exc:
        return handle_exception(exc)


@router.post("/toggle-availability")
def toggle_availability(
    body: Optional[ToggleAvailabilityRequest] = None,
    context: ProviderContext = Depends(get_current_provider),
    db: Session = Depends(get_db),
):
    try:
        provider = _require_profile(context)
        if body is not None and body.is_available is not None:
            provider.is_available = body.is_available
        else:
            provider.is_available = 0 if provider.is_available else 1
        db.commit()
        return create_response(
            message="Availability status updated successfully",
            data={"is_available": provider.is_available},
        )
    except Exception as exc:
        return handle_exception(exc)


@router.post("/change-password")
def change_password(
    body: ChangePassword,
    context: ProviderContext = Depends(get_current_onboarding_provider),
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


@router.delete("/delete-my-account")
def delete_my_account(
    body: DeleteAccount,
    context: ProviderContext = Depends(get_current_onboarding_provider),
    db: Session = Depends(get_db),
):
    try:
        account = context.user
        if not verify_password(body.password, account.password):
            raise ValidationFailed("You have entered wrong password.", "INVALID_PASSWORD")

        if context.provider is not None:
            context.provider.status = STATUS_INACTIVE
            provider_crud.soft_delete(db, context.provider, commit=False)
        token_service.revoke_all(db, account.user_type, account.id)
        user_crud.soft_delete(db, account)
        logger.info("Provider user %s deleted their account", account.id)
        return create_response(message="Account deleted successfully.")
    except Exception as exc:
        return handle_exception(exc)


# Admin

@router.get("/get-all")
def list_providers(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    search: Optional[str] = Query(None, max_length=100),
    is_approved: Optional[int] = Query(None, ge=0, le=2),
    provider_type: Optional[str] = Query(None, pattern="^(individual|salon)$"),
    min_step: Optional[int] = Query(None, ge=0, le=6),
    context: AdminContext = Depends(get_current_admin),
    db: Session = Depends(get_db),
):
    try:
        result = provider_crud.list_for_admin(
            db,
            page,
            limit,
            search=search,
            is_approved=is_approved,
            provider_type=provider_type,
            min_step=min_step,
        )
        return create_response(
            message="Providers fetched successfully",
            data=result.payload(
                lambda provider: onboarding_service.serialize_provider(provider, provider.user),
                key="providers",
            ),
        )
    except Exception as exc:
        return handle_exception(exc)


@router.post("/provider-profile-action/{provider_id}")
def provider_profile_action(
    provider_id: int,
    body: ProfileActionRequest,
    context: AdminContext = Depends(get_current_admin),
    db: Session = Depends(get_db),
):
    try:
        provider = provider_crud.get(db, provider_id)
        if provider is None:
            raise NotFoundError("Provider account not found")
        if body.approve == APPROVAL_APPROVED and not provider.is_onboarding_complete:
            raise ValidationFailed(
                "Provider has not completed onboarding yet",
                "ONBOARDING_INCOMPLETE",
                step_completed=provider.step_completed,
            )

        provider.is_approved = body.approve
        provider.rejection_reason = body.rejection_reason.strip() if body.approve == APPROVAL_REJECTED else None
        db.commit()
        logger.info("Admin %s set provider %s approval to %s", context.admin.id, provider.id, body.approve)

        message = "Provider profile has been approved successfully"
        if body.approve == APPROVAL_REJECTED:
            message = "Provider profile has been rejected"
        return create_response(
            message=message,
            data=onboarding_service.serialize_provider(provider, provider.user),
        )
    except Exception as exc:
        return handle_exception(exc)


@router.get("/admin/get-provider/{provider_id}")
def admin_get_provider(
    provider_id: int,
    context: AdminContext = Depends(get_current_admin),
    db: Session = Depends(get_db),
):
    try:
        provider = provider_crud.get(db, provider_id)
        if provider is None:
            raise NotFoundError("Provider account not found")

        data = onboarding_service.serialize_provider(provider, provider.user)
        data["onboarding"] = onboarding_service.onboarding_data(db, provider.user, provider)
        data["progress"] = onboarding_service.progress_payload(provider)
        return create_response(message="Provider fetched successfully", data=data)
    except Exception as exc:
        return handle_exception(exc)
