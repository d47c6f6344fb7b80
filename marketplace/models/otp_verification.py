import uuid
from datetime import datetime

from sqlalchemy import Boolean, Column, DateTime, Index, Integer, String

from marketplace.database import Base

# entity_type holds the account's user_type ("user" or "provider").
PURPOSE_REGISTRATION = "registration"
PURPOSE_LOGIN = "login"
PURPOSE_PASSWORD_RESET = "password_reset"
PURPOSE_PHONE_VERIFICATION = "phone_verification"


class OtpVerification(Base):
    __tablename__ = "otp_verifications"
    __table_args__ = (
        Index("ix_otp_scope", "entity_type", "entity_id", "purpose", "is_verified"),
    )

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    entity_type = Column(String(16), nullable=False)
    entity_id = Column(Integer, nullable=False)
    phone_number = Column(String(20), nullable=False, index=True)
    purpose = Column(String(32), nullable=False, default=PURPOSE_REGISTRATION)
    otp_code = Column(String(6), nullable=False)
    expires_at = Column(DateTime, nullable=False, index=True)
    attempts = Column(Integer, nullable=False, default=0)
    # Doubles as the "consumed" flag.
    is_verified = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)
