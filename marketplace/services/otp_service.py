"""One-time code lifecycle scoped to (entity_type, entity_id, purpose).

At most one unconsumed, unexpired code exists per scope: creating a code
consumes every earlier live code of the same scope first. A record counts as
consumed once ``is_verified`` is set, whether by a successful match or by
hitting the attempt cap.
"""

import logging
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Optional, Protocol

from sqlalchemy.orm import Session

from marketplace.config import settings
from marketplace.crud.crud_otp import otp_verification as otp_crud
from marketplace.models.otp_verification import OtpVerification

logger = logging.getLogger(__name__)

MESSAGE_NOT_FOUND = "OTP not found or expired"
MESSAGE_TOO_MANY_ATTEMPTS = "Too many failed attempts"
MESSAGE_INVALID = "Invalid OTP"
MESSAGE_VERIFIED = "OTP verified successfully"


class CodeGenerator(Protocol):
    def __call__(self) -> str: ...


class RandomCodeGenerator:
    def __init__(self, length: int = 4):
        if length < 4 or length > 6:
            raise ValueError("OTP length must be between 4 and 6 digits")
        self.length = length

    def __call__(self) -> str:
        return f"{secrets.randbelow(10 ** self.length):0{self.length}d}"


class FixedCodeGenerator:
    """Always returns the same code. Only meant for demo and staging setups."""

    def __init__(self, code: str):
        if not code.isdigit():
            raise ValueError("Fixed OTP code must be numeric")
        self.code = code

    def __call__(self) -> str:
        return self.code


@dataclass
class OtpVerificationResult:
    success: bool
    message: str
    record: Optional[OtpVerification] = None


class OtpVerificationEngine:
    def __init__(
        self,
        expiry_minutes: int = 5,
        max_attempts: int = 5,
        code_generator: Optional[CodeGenerator] = None,
        clock: Callable[[], datetime] = datetime.utcnow,
    ):
        self.expiry_minutes = expiry_minutes
        self.max_attempts = max_attempts
        self.code_generator = code_generator or RandomCodeGenerator()
        self.clock = clock

    def generate_code(self) -> str:
        return self.code_generator()

    def create_for_entity(
        self,
        db: Session,
        entity_type: str,
        entity_id: int,
        phone_number: str,
        purpose: str,
    ) -> OtpVerification:
        invalidated = otp_crud.invalidate_scope(db, entity_type, entity_id, purpose)
        now = self.clock()
        record = otp_crud.create(
            db,
            entity_type=entity_type,
            entity_id=entity_id,
            phone_number=phone_number,
            purpose=purpose,
            otp_code=self.generate_code(),
            expires_at=now + timedelta(minutes=self.expiry_minutes),
        )
        record.created_at = now
        db.commit()
        db.refresh(record)
        logger.info(
            "OTP created for %s:%s purpose=%s (invalidated %s earlier codes)",
            entity_type,
            entity_id,
            purpose,
            invalidated,
        )
        return record

    def find_valid_for_entity(
        self, db: Session, entity_type: str, entity_id: int, purpose: str
    ) -> Optional[OtpVerification]:
        return otp_crud.find_live(db, entity_type, entity_id, purpose, self.clock())

    def verify_for_entity(
        self,
        db: Session,
        entity_type: str,
        entity_id: int,
        submitted_code: str,
        purpose: str,
    ) -> OtpVerificationResult:
        record = self.find_valid_for_entity(db, entity_type, entity_id, purpose)
        if record is None:
            return OtpVerificationResult(False, MESSAGE_NOT_FOUND)

        # Every try counts, including the one that ends up matching.
        record.attempts = (record.attempts or 0) + 1

        if record.attempts >= self.max_attempts:
            record.is_verified = True
            db.commit()
            logger.warning(
                "OTP for %s:%s purpose=%s locked after %s attempts",
                entity_type,
                entity_id,
                purpose,
                record.attempts,
            )
            return OtpVerificationResult(False, MESSAGE_TOO_MANY_ATTEMPTS)

        if record.otp_code != str(submitted_code):
            db.commit()
            return OtpVerificationResult(False, MESSAGE_INVALID)

        record.is_verified = True
        db.commit()
        db.refresh(record)
        logger.info("OTP verified for %s:%s purpose=%s", entity_type, entity_id, purpose)
        return OtpVerificationResult(True, MESSAGE_VERIFIED, record)

    def purge_stale(self, db: Session) -> int:
        return otp_crud.delete_stale(db, self.clock())


def build_code_generator() -> CodeGenerator:
    if settings.OTP_FIXED_CODE:
        logger.warning("OTP_FIXED_CODE is set; every OTP will use the same code")
        return FixedCodeGenerator(settings.OTP_FIXED_CODE)
    return RandomCodeGenerator(settings.OTP_LENGTH)


otp_engine = OtpVerificationEngine(
    expiry_minutes=settings.OTP_EXPIRE_MINUTES,
    max_attempts=settings.OTP_MAX_ATTEMPTS,
    code_generator=build_code_generator(),
)
