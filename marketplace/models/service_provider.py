from datetime import datetime

from sqlalchemy import (
    Column,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import relationship

from marketplace.database import Base

PROVIDER_TYPE_INDIVIDUAL = "individual"
PROVIDER_TYPE_SALON = "salon"

APPROVAL_PENDING = 0
APPROVAL_APPROVED = 1
APPROVAL_REJECTED = 2

TOTAL_STEPS = 6


class ServiceProvider(Base):
    __tablename__ = "service_providers"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, unique=True, index=True)

    provider_type = Column(String(20), nullable=False, default=PROVIDER_TYPE_INDIVIDUAL)
    salon_name = Column(String, nullable=True)
    banner_image = Column(String, nullable=True)
    description = Column(Text, nullable=True)

    national_id_image_url = Column(String, nullable=True)
    freelance_certificate_image_url = Column(String, nullable=True)
    commercial_registration_image_url = Column(String, nullable=True)

    overall_rating = Column(Float, nullable=False, default=0)
    total_reviews = Column(Integer, nullable=False, default=0)

    step_completed = Column(Integer, nullable=False, default=0)
    is_approved = Column(Integer, nullable=False, default=APPROVAL_PENDING)
    rejection_reason = Column(Text, nullable=True)
    is_available = Column(Integer, nullable=False, default=1)
    status = Column(Integer, nullable=False, default=1)

    subscription_id = Column(Integer, nullable=True, default=0)
    subscription_expiry = Column(DateTime, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)
    deleted_at = Column(DateTime, nullable=True)

    user = relationship("User")
    bank_details = relationship("BankDetails", uselist=False, back_populates="service_provider")
    availability = relationship(
        "ServiceProviderAvailability",
        back_populates="service_provider",
        order_by="ServiceProviderAvailability.id",
    )
    services = relationship(
        "ServiceList",
        back_populates="service_provider",
        order_by="ServiceList.id",
    )

    def advance_step(self, step: int) -> int:
        """Record a finished step without ever moving backwards."""
        self.step_completed = max(self.step_completed or 0, step)
        return self.step_completed

    @property
    def is_onboarding_complete(self) -> bool:
        return (self.step_completed or 0) >= TOTAL_STEPS


class ServiceProviderAddress(Base):
    __tablename__ = "service_provider_addresses"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, unique=True, index=True)
    country_id = Column(Integer, ForeignKey("countries.id"), nullable=True)
    city_id = Column(Integer, ForeignKey("cities.id"), nullable=True)
    address = Column(Text, nullable=True)
    latitude = Column(Float, nullable=True)
    longitude = Column(Float, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)


class BankDetails(Base):
    __tablename__ = "bank_details"

    id = Column(Integer, primary_key=True, index=True)
    service_provider_id = Column(
        Integer,
        ForeignKey("service_providers.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
        index=True,
    )
    account_holder_name = Column(String, nullable=False)
    bank_name = Column(String, nullable=False)
    iban = Column(String(34), nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    service_provider = relationship("ServiceProvider", back_populates="bank_details")


class ServiceProviderAvailability(Base):
    __tablename__ = "service_provider_availability"

    id = Column(Integer, primary_key=True, index=True)
    service_provider_id = Column(
        Integer,
        ForeignKey("service_providers.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    day = Column(String(10), nullable=False)
    from_time = Column(String(5), nullable=False)  # HH:MM
    to_time = Column(String(5), nullable=False)
    available = Column(Integer, nullable=False, default=1)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    service_provider = relationship("ServiceProvider", back_populates="availability")
