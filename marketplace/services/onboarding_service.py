"""Six-step provider onboarding.

Each step function validates its input, uploads any new images, then stages
all of its database writes and commits once. ``step_completed`` only moves
forward. Images a step replaces are returned as ``stale_urls`` so the caller
can remove them after the response is sent.
"""

import logging
import secrets
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import List, Optional, Sequence

from fastapi import UploadFile
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from marketplace.crud.crud_catalog import banner_image as banner_image_crud
from marketplace.crud.crud_catalog import category as category_crud
from marketplace.crud.crud_catalog import city as city_crud
from marketplace.crud.crud_catalog import country as country_crud
from marketplace.crud.crud_catalog import service as service_crud
from marketplace.crud.crud_catalog import service_image as service_image_crud
from marketplace.crud.crud_catalog import sub_category as sub_category_crud
from marketplace.crud.crud_provider import service_provider as provider_crud
from marketplace.models.service_provider import (
    APPROVAL_APPROVED,
    APPROVAL_PENDING,
    APPROVAL_REJECTED,
    PROVIDER_TYPE_SALON,
    TOTAL_STEPS,
    ServiceProvider,
)
from marketplace.models.user import User
from marketplace.schemas.provider import AvailabilityEntry, ServiceEntry, normalize_iban
from marketplace.services import spaces_service
from marketplace.utils.errors import StorageError, ValidationFailed

logger = logging.getLogger(__name__)

ONBOARDING_STEPS = (
    (1, "subscription_payment", "subscription payment"),
    (2, "provider_type", "provider type"),
    (3, "salon_details", "salon details"),
    (4, "documents_bank", "documents and bank details"),
    (5, "working_hours", "working hours"),
    (6, "services_setup", "services setup"),
)
STEP_TITLES = {step: title for step, _, title in ONBOARDING_STEPS}

APPROVAL_LABELS = {
    APPROVAL_PENDING: "pending",
    APPROVAL_APPROVED: "approved",
    APPROVAL_REJECTED: "rejected",
}

SUBSCRIPTION_DAYS = 365
ADDRESS_MIN_LENGTH = 10
ADDRESS_MAX_LENGTH = 500


@dataclass
class StepOutcome:
    provider: ServiceProvider
    data: dict
    stale_urls: List[str] = field(default_factory=list)


def has_file(upload: Optional[UploadFile]) -> bool:
    return upload is not None and bool(getattr(upload, "filename", None))


class UploadBatch:
    """Objects uploaded by one step; removed again if the step cannot commit.

    Used as a context manager: any exception raised inside the block, a
    failed upload or commit included, deletes what the batch stored so far.
    """

    def __init__(self, user_id: int):
        self.namespace = f"providers/{user_id}"
        self.urls: List[str] = []

    def __enter__(self) -> "UploadBatch":
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        if exc_type is not None:
            self.discard()
        return False

    def add(self, upload: UploadFile, subpath: str, label: str, thumbnail: bool = False) -> spaces_service.UploadResult:
        data = upload.file.read()
        result = spaces_service.upload_image(
            data,
            upload.filename,
            self.namespace,
            subpath,
            content_type=upload.content_type,
            generate_thumbnail=thumbnail,
        )
        if not result.success:
            raise StorageError(f"{label}: {result.error}")
        self.urls.append(result.main_url)
        return result

    def upload(self, upload: UploadFile, subpath: str, label: str) -> str:
        return self.add(upload, subpath, label).main_url

    def discard(self) -> None:
        if self.urls:
            logger.info("Discarding %s uploads from %s", len(self.urls), self.namespace)
            spaces_service.cleanup_images(self.urls)
            self.urls = []


def commit_step(db: Session) -> None:
    try:
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        raise


def _replaced(old: Optional[str], new: Optional[str]) -> List[str]:
    if old and old != new:
        return [old]
    return []


# Step 1

def subscription_payment(db: Session, user: User, payment_reference: Optional[str] = None) -> StepOutcome:
    provider = provider_crud.get_or_create(db, user.id)
    now = datetime.utcnow()
    provider.subscription_id = secrets.randbelow(900000) + 100000
    provider.subscription_expiry = now + timedelta(days=SUBSCRIPTION_DAYS)
    if provider_crud.get_address(db, user.id) is None:
        provider_crud.upsert_address(db, user.id)
    provider.advance_step(1)
    commit_step(db)
    logger.info("Provider %s completed subscription step", provider.id)

    return StepOutcome(
        provider,
        {
            "subscription_id": provider.subscription_id,
            "subscription_expiry": provider.subscription_expiry,
            "payment_reference": payment_reference,
            "step_completed": provider.step_completed,
        },
    )


# Step 2

def set_provider_type(db: Session, user: User, provider_type: str) -> StepOutcome:
    provider = provider_crud.get_or_create(db, user.id)
    provider.provider_type = provider_type
    provider.advance_step(2)
    commit_step(db)

    return StepOutcome(
        provider,
        {"provider_type": provider.provider_type, "step_completed": provider.step_completed},
    )


# Step 3

def save_salon_details(
    db: Session,
    user: User,
    provider: ServiceProvider,
    *,
    country_id: int,
    city_id: int,
    address: str,
    salon_name: Optional[str] = None,
    description: Optional[str] = None,
    latitude: Optional[float] = None,
    longitude: Optional[float] = None,
    banner_image_id: Optional[int] = None,
    banner_upload: Optional[UploadFile] = None,
) -> StepOutcome:
    errors = []
    is_salon = provider.provider_type == PROVIDER_TYPE_SALON
    address = (address or "").strip()
    salon_name = (salon_name or "").strip() or None

    if country_crud.get(db, country_id) is None:
        errors.append("Selected country does not exist")
    elif city_crud.get_in_country(db, city_id, country_id) is None:
        errors.append("Selected city does not belong to the selected country")

    if not ADDRESS_MIN_LENGTH <= len(address) <= ADDRESS_MAX_LENGTH:
        errors.append(f"address must be between {ADDRESS_MIN_LENGTH} and {ADDRESS_MAX_LENGTH} characters")
    if is_salon and not salon_name:
        errors.append("salon_name is required for salon providers")
    if latitude is not None and not -90 <= latitude <= 90:
        errors.append("latitude must be between -90 and 90")
    if longitude is not None and not -180 <= longitude <= 180:
        errors.append("longitude must be between -180 and 180")

    uploading = has_file(banner_upload)
    predefined_url = None
    if not uploading:
        if banner_image_id is None:
            errors.append("Provide either banner_image_id or a banner_image upload")
        else:
            predefined = banner_image_crud.get(db, banner_image_id)
            if predefined is None:
                errors.append("Selected banner image does not exist")
            else:
                predefined_url = predefined.image_url

    if errors:
        raise ValidationFailed.from_errors(errors)

    with UploadBatch(user.id) as batch:
        banner_url = batch.upload(banner_upload, "banner", "banner_image") if uploading else predefined_url

        stale = _replaced(provider.banner_image, banner_url)
        provider.salon_name = salon_name if is_salon else None
        provider.description = description
        provider.banner_image = banner_url
        provider_crud.upsert_address(
            db,
            user.id,
            country_id=country_id,
            city_id=city_id,
            address=address,
            latitude=latitude,
            longitude=longitude,
        )
        provider.advance_step(3)
        commit_step(db)

    return StepOutcome(
        provider,
        {
            "salon_name": provider.salon_name,
            "description": provider.description,
            "banner_image": provider.banner_image,
            "address": serialize_address(provider_crud.get_address(db, user.id)),
            "step_completed": provider.step_completed,
        },
        stale,
    )


# Step 4

def save_documents_and_bank(
    db: Session,
    user: User,
    provider: ServiceProvider,
    *,
    account_holder_name: str,
    bank_name: str,
    iban: str,
    national_id: Optional[UploadFile] = None,
    commercial_registration: Optional[UploadFile] = None,
    freelance_certificate: Optional[UploadFile] = None,
) -> StepOutcome:
    errors = []
    is_salon = provider.provider_type == PROVIDER_TYPE_SALON
    account_holder_name = (account_holder_name or "").strip()
    bank_name = (bank_name or "").strip()

    if not account_holder_name:
        errors.append("account_holder_name is required")
    if not bank_name:
        errors.append("bank_name is required")
    try:
        iban = normalize_iban(iban or "")
    except ValueError as exc:
        errors.append(str(exc))

    if not has_file(national_id) and not provider.national_id_image_url:
        errors.append("national_id image is required")
    if is_salon and not has_file(commercial_registration) and not provider.commercial_registration_image_url:
        errors.append("commercial_registration image is required for salon providers")

    if errors:
        raise ValidationFailed.from_errors(errors)

    stale = []
    with UploadBatch(user.id) as batch:
        if has_file(national_id):
            url = batch.upload(national_id, "documents", "national_id")
            stale += _replaced(provider.national_id_image_url, url)
            provider.national_id_image_url = url
        if is_salon and has_file(commercial_registration):
            url = batch.upload(commercial_registration, "documents", "commercial_registration")
            stale += _replaced(provider.commercial_registration_image_url, url)
            provider.commercial_registration_image_url = url
        if not is_salon and has_file(freelance_certificate):
            url = batch.upload(freelance_certificate, "documents", "freelance_certificate")
            stale += _replaced(provider.freelance_certificate_image_url, url)
            provider.freelance_certificate_image_url = url

        bank = provider_crud.upsert_bank_details(
            db,
            provider.id,
            account_holder_name=account_holder_name,
            bank_name=bank_name,
            iban=iban,
        )
        provider.advance_step(4)
        commit_step(db)

    return StepOutcome(
        provider,
        {
            "documents": serialize_documents(provider),
            "bank_details": serialize_bank_details(bank),
            "step_completed": provider.step_completed,
        },
        stale,
    )


# Step 5

def save_working_hours(db: Session, provider: ServiceProvider, entries: Sequence[AvailabilityEntry]) -> StepOutcome:
    rows = provider_crud.replace_availability(
        db,
        provider.id,
        [entry.model_dump() for entry in entries],
    )
    provider.advance_step(5)
    commit_step(db)

    return StepOutcome(
        provider,
        {
            "availability": [serialize_availability(row) for row in rows],
            "step_completed": provider.step_completed,
        },
    )


# Step 6

def _validate_service_entries(
    db: Session,
    entries: Sequence[ServiceEntry],
    upload_count: int,
) -> List[Optional[str]]:
    """Check catalog references; returns the predefined image url per entry (None for uploads)."""
    errors = []
    predefined = []
    for index, entry in enumerate(entries):
        label = f"services[{index}]"
        if service_crud.get(db, entry.service_id) is None:
            errors.append(f"{label}: service {entry.service_id} does not exist")
        if category_crud.get(db, entry.category_id) is None:
            errors.append(f"{label}: category {entry.category_id} does not exist")
        elif entry.sub_category_id is not None and sub_category_crud.get_in_category(
            db, entry.sub_category_id, entry.category_id
        ) is None:
            errors.append(f"{label}: sub category {entry.sub_category_id} does not belong to category {entry.category_id}")

        url = None
        if entry.image_index is not None:
            if entry.image_index >= upload_count:
                errors.append(f"{label}: image_index {entry.image_index} has no matching upload")
        else:
            image = service_image_crud.get(db, entry.image_id)
            if image is None:
                errors.append(f"{label}: service image {entry.image_id} does not exist")
            else:
                url = image.image_url
        predefined.append(url)

    if errors:
        raise ValidationFailed.from_errors(errors)
    return predefined


def setup_services(
    db: Session,
    user: User,
    provider: ServiceProvider,
    entries: Sequence[ServiceEntry],
    uploads: Sequence[UploadFile] = (),
) -> StepOutcome:
    uploads = [upload for upload in uploads if has_file(upload)]
    predefined = _validate_service_entries(db, entries, len(uploads))

    uploaded = {}
    with UploadBatch(user.id) as batch:
        for entry in entries:
            if entry.image_index is not None and entry.image_index not in uploaded:
                uploaded[entry.image_index] = batch.upload(
                    uploads[entry.image_index], "services", f"service_images[{entry.image_index}]"
                )

        previous_images = {row.image for row in provider_crud.get_services(db, provider.id) if row.image}
        rows = provider_crud.replace_services(
            db,
            provider.id,
            [
                {
                    "service_id": entry.service_id,
                    "category_id": entry.category_id,
                    "sub_category_id": entry.sub_category_id,
                    "title": entry.title,
                    "description": entry.description,
                    "price": entry.price,
                    "image": uploaded[entry.image_index] if entry.image_index is not None else url,
                }
                for entry, url in zip(entries, predefined)
            ],
        )
        kept_images = {row.image for row in rows}
        provider.advance_step(6)
        if provider.is_approved == APPROVAL_REJECTED:
            # Resubmitting after a rejection puts the profile back in the review queue.
            provider.is_approved = APPROVAL_PENDING
        commit_step(db)
    logger.info("Provider %s submitted %s services", provider.id, len(rows))

    return StepOutcome(
        provider,
        {
            "services": [serialize_service(row) for row in rows],
            "step_completed": provider.step_completed,
            "is_approved": provider.is_approved,
        },
        sorted(previous_images - kept_images),
    )


# Read side

def progress_payload(provider: Optional[ServiceProvider]) -> dict:
    completed = (provider.step_completed or 0) if provider else 0
    steps = [
        {
            "step": step,
            "key": key,
            "title": title.capitalize(),
            "completed": completed >= step,
            "can_access": completed >= step - 1,
            "can_edit": completed >= step,
        }
        for step, key, title in ONBOARDING_STEPS
    ]
    return {
        "step_completed": completed,
        "total_steps": TOTAL_STEPS,
        "next_step": completed + 1 if completed < TOTAL_STEPS else None,
        "is_complete": completed >= TOTAL_STEPS,
        "steps": steps,
        **approval_payload(provider),
    }


def approval_payload(provider: Optional[ServiceProvider]) -> dict:
    is_approved = provider.is_approved if provider else APPROVAL_PENDING
    return {
        "is_approved": is_approved,
        "approval_status": APPROVAL_LABELS.get(is_approved, "pending"),
        "rejection_reason": provider.rejection_reason if provider and is_approved == APPROVAL_REJECTED else None,
    }


def completion_payload(provider: Optional[ServiceProvider]) -> dict:
    complete = bool(provider and provider.is_onboarding_complete)
    approved = bool(provider and provider.is_approved == APPROVAL_APPROVED)
    return {
        "is_complete": complete,
        "approval_required": complete and not approved,
        "step_completed": (provider.step_completed or 0) if provider else 0,
        "total_steps": TOTAL_STEPS,
        **approval_payload(provider),
    }


def onboarding_data(db: Session, user: User, provider: Optional[ServiceProvider]) -> dict:
    if provider is None:
        return {"step_completed": 0, "provider": None}

    return {
        "step_completed": provider.step_completed,
        "subscription": {
            "subscription_id": provider.subscription_id,
            "subscription_expiry": provider.subscription_expiry,
        },
        "provider_type": provider.provider_type,
        "salon_details": {
            "salon_name": provider.salon_name,
            "description": provider.description,
            "banner_image": provider.banner_image,
            "address": serialize_address(provider_crud.get_address(db, user.id)),
        },
        "documents": serialize_documents(provider),
        "bank_details": serialize_bank_details(provider_crud.get_bank_details(db, provider.id)),
        "availability": [serialize_availability(row) for row in provider_crud.get_availability(db, provider.id)],
        "services": [serialize_service(row) for row in provider_crud.get_services(db, provider.id)],
    }


# Serializers

def serialize_address(address) -> Optional[dict]:
    if address is None:
        return None
    return {
        "country_id": address.country_id,
        "city_id": address.city_id,
        "address": address.address,
        "latitude": address.latitude,
        "longitude": address.longitude,
    }


def serialize_documents(provider: ServiceProvider) -> dict:
    return {
        "national_id_image_url": provider.national_id_image_url,
        "commercial_registration_image_url": provider.commercial_registration_image_url,
        "freelance_certificate_image_url": provider.freelance_certificate_image_url,
    }


def serialize_bank_details(bank) -> Optional[dict]:
    if bank is None:
        return None
    return {
        "account_holder_name": bank.account_holder_name,
        "bank_name": bank.bank_name,
        "iban": bank.iban,
    }


def serialize_availability(row) -> dict:
    return {
        "day": row.day,
        "from_time": row.from_time,
        "to_time": row.to_time,
        "available": row.available,
    }


def serialize_service(row) -> dict:
    return {
        "id": row.id,
        "service_id": row.service_id,
        "category_id": row.category_id,
        "sub_category_id": row.sub_category_id,
        "title": row.title,
        "description": row.description,
        "price": row.price,
        "image": row.image,
    }


def serialize_provider(provider: ServiceProvider, user: User) -> dict:
    return {
        "id": provider.id,
        "user_id": user.id,
        "first_name": user.first_name,
        "last_name": user.last_name,
        "full_name": user.full_name,
        "email": user.email,
        "phone_code": user.phone_code,
        "phone_number": user.phone_number,
        "provider_type": provider.provider_type,
        "salon_name": provider.salon_name,
        "banner_image": provider.banner_image,
        "description": provider.description,
        "overall_rating": provider.overall_rating,
        "total_reviews": provider.total_reviews,
        "is_available": provider.is_available,
        "step_completed": provider.step_completed,
        "is_approved": provider.is_approved,
        "rejection_reason": provider.rejection_reason,
        "subscription_expiry": provider.subscription_expiry,
        "created_at": provider.created_at,
    }
