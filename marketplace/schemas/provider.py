import re
from typing import List, Literal

from pydantic import BaseModel, Field, field_validator, model_validator

from marketplace.schemas.user import PhoneBody, RegisterBase

WEEK_DAYS = ("monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday")
TIME_PATTERN = re.compile(r"^([01]\d|2[0-3]):[0-5]\d$")
IBAN_PATTERN = re.compile(r"^[A-Z]{2}\d{2}[A-Z0-9]{11,30}$")
# Matches the DECIMAL(10, 2) price column.
MAX_PRICE = 99_999_999.99


def normalize_iban(value: str) -> str:
    iban = value.replace(" ", "").upper()
    if not IBAN_PATTERN.match(iban):
        raise ValueError(
            "IBAN must be 15 to 34 letters and digits starting with a country code and two check digits"
        )
    return iban


class ProviderRegister(RegisterBase):
    pass


class VerifyProviderOtp(PhoneBody):
    otp: str = Field(min_length=4, max_length=6)


class ResendProviderOtp(PhoneBody):
    pass


class SubscriptionPaymentRequest(BaseModel):
    # Payment capture is stubbed; the reference is only echoed back.
    payment_reference: str | None = Field(default=None, max_length=255)


class ProviderTypeRequest(BaseModel):
    provider_type: Literal["individual", "salon"]


class AvailabilityEntry(BaseModel):
    day: str
    from_time: str
    to_time: str
    available: Literal[0, 1] = 1

    @field_validator("day")
    @classmethod
    def known_day(cls, value: str) -> str:
        day = value.strip().lower()
        if day not in WEEK_DAYS:
            raise ValueError(f"day must be one of {', '.join(WEEK_DAYS)}")
        return day

    @field_validator("from_time", "to_time")
    @classmethod
    def clock_time(cls, value: str) -> str:
        value = value.strip()
        if not TIME_PATTERN.match(value):
            raise ValueError("time must use the 24h HH:MM format")
        return value

    @model_validator(mode="after")
    def ordered_times(self):
        # Zero-padded HH:MM strings compare in clock order.
        if self.from_time >= self.to_time:
            raise ValueError(f"from_time must be earlier than to_time for {self.day}")
        return self


class WorkingHoursRequest(BaseModel):
    availability: List[AvailabilityEntry] = Field(min_length=1, max_length=len(WEEK_DAYS))

    @field_validator("availability")
    @classmethod
    def unique_days(cls, entries: List[AvailabilityEntry]) -> List[AvailabilityEntry]:
        seen = set()
        for entry in entries:
            if entry.day in seen:
                raise ValueError(f"{entry.day} is listed more than once")
            seen.add(entry.day)
        return entries


class ServiceEntry(BaseModel):
    service_id: int = Field(ge=1)
    category_id: int = Field(ge=1)
    sub_category_id: int | None = Field(default=None, ge=1)
    title: str | None = Field(default=None, max_length=255)
    description: str | None = Field(default=None, max_length=2000)
    price: float = Field(gt=0, le=MAX_PRICE)
    image_id: int | None = Field(default=None, ge=1)
    image_index: int | None = Field(default=None, ge=0)

    @field_validator("price")
    @classmethod
    def two_decimal_price(cls, value: float) -> float:
        if round(value, 2) != value:
            raise ValueError("price can have at most 2 decimal places")
        return value

    @model_validator(mode="after")
    def image_source(self):
        if self.image_id is None and self.image_index is None:
            raise ValueError("Each service needs an image_id or an image_index")
        return self


class ServicesSetupPayload(BaseModel):
    services: List[ServiceEntry] = Field(min_length=1)


class ToggleAvailabilityRequest(BaseModel):
    is_available: Literal[0, 1] | None = None


class ProfileActionRequest(BaseModel):
    approve: Literal[1, 2] = 1
    rejection_reason: str | None = Field(default=None, max_length=1000)

    @model_validator(mode="after")
    def reason_for_rejection(self):
        if self.approve == 2 and not (self.rejection_reason or "").strip():
            raise ValueError("rejection_reason is required when rejecting a provider")
        return self
